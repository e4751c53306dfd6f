"""
Tests for starting, answering and submitting attempts
"""
from datetime import timedelta
from unittest.mock import patch

from django.test import TestCase
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from trainee.exceptions import (
    AssessmentNotInCourse, AttemptConflict, AttemptLimitExceeded, NotEnrolled, SessionClosed,
)
from trainee.models import Attempt, AttemptSession
from trainee.services.attempts import AttemptManager
from trainee.services.timer import expire_overdue_sessions
from trainee.testing import enroll, make_assessment, make_course, make_profile, question_ids


class AttemptSubmissionTest(TestCase):
    """Scoring, limits and validation on submit"""

    def setUp(self):
        self.instructor = make_profile('instructor')
        self.trainee = make_profile('trainee')
        self.course = make_course(self.instructor)
        self.assessment = make_assessment(self.course, passing_score=50)
        self.mc_id, self.ms_id = question_ids(self.assessment)
        self.enrollment = enroll(self.trainee, self.course)

    def submit(self, answers, **kwargs):
        return AttemptManager.submit(self.assessment.id, self.enrollment.id, answers, **kwargs)

    def test_half_correct_passes_at_fifty(self):
        attempt = self.submit({self.mc_id: 1, self.ms_id: [0]})

        self.assertEqual(attempt.score, 50)
        self.assertTrue(attempt.is_passed)
        self.assertEqual(attempt.attempt_number, 1)
        self.assertEqual((attempt.points_earned, attempt.points_possible), (1, 2))
        self.assertEqual(attempt.trainee_id, self.trainee.id)
        self.assertEqual(attempt.submission_type, 'manual')

    def test_missing_answers_score_zero(self):
        attempt = self.submit({})
        self.assertEqual(attempt.score, 0)
        self.assertFalse(attempt.is_passed)

    def test_third_submission_rejected_with_two_attempts_allowed(self):
        self.assessment.max_attempts = 2
        self.assessment.save()

        first = self.submit({self.mc_id: 0})
        second = self.submit({self.mc_id: 0})
        with self.assertRaises(AttemptLimitExceeded) as ctx:
            self.submit({self.mc_id: 1})

        self.assertEqual((first.attempt_number, second.attempt_number), (1, 2))
        self.assertEqual(ctx.exception.extra, {'max_attempts': 2, 'attempts_used': 2})
        self.assertEqual(Attempt.objects.filter(enrollment=self.enrollment).count(), 2)

    def test_constraint_blocks_extra_attempt_when_count_is_stale(self):
        self.assessment.max_attempts = 1
        self.assessment.save()
        self.submit({self.mc_id: 1})

        with patch.object(AttemptManager, '_prior_attempt_count', return_value=0):
            with self.assertRaises(AttemptConflict):
                self.submit({self.mc_id: 1})

        self.assertEqual(Attempt.objects.filter(enrollment=self.enrollment).count(), 1)

    def test_unknown_question_rejected_before_write(self):
        with self.assertRaises(ValidationError):
            self.submit({'not-a-question': 1})
        self.assertFalse(Attempt.objects.exists())

    def test_non_mapping_answers_rejected(self):
        with self.assertRaises(ValidationError):
            self.submit([1, 2])

    def test_wrong_answer_shape_rejected(self):
        with self.assertRaises(ValidationError):
            self.submit({self.mc_id: [1]})
        with self.assertRaises(ValidationError):
            self.submit({self.ms_id: 2})

    def test_out_of_range_index_scores_wrong(self):
        attempt = self.submit({self.mc_id: 9, self.ms_id: [0, 2]})
        self.assertEqual(attempt.score, 50)

    def test_dropped_enrollment_cannot_submit(self):
        self.enrollment.status = 'dropped'
        self.enrollment.save()
        with self.assertRaises(NotEnrolled):
            self.submit({self.mc_id: 1})

    def test_assessment_from_another_course_rejected(self):
        other = make_assessment(make_course(self.instructor, title='Other'))
        with self.assertRaises(AssessmentNotInCourse):
            AttemptManager.submit(other.id, self.enrollment.id, {})

    def test_attempts_are_immutable(self):
        attempt = self.submit({self.mc_id: 1})
        attempt.score = 100
        with self.assertRaises(ValueError):
            attempt.save()

    def test_untimed_submit_keeps_reported_time(self):
        attempt = self.submit({self.mc_id: 1}, time_taken=95)

        self.assertFalse(attempt.timing_flagged)
        self.assertEqual(attempt.time_taken, 95)
        self.assertIsNone(attempt.started_at)

    def test_passing_attempt_completes_single_item_course(self):
        self.submit({self.mc_id: 1, self.ms_id: [0, 2]})
        self.enrollment.refresh_from_db()

        self.assertEqual(self.enrollment.progress_percentage, 100)
        self.assertEqual(self.enrollment.status, 'completed')

    def test_failed_attempt_does_not_count_as_progress(self):
        self.submit({})
        self.enrollment.refresh_from_db()
        self.assertEqual(self.enrollment.progress_percentage, 0)

    def test_list_attempts_most_recent_first(self):
        now = timezone.now()
        self.submit({}, now=now - timedelta(minutes=5))
        self.submit({self.mc_id: 1}, now=now)

        numbers = [a.attempt_number for a in AttemptManager.list_attempts(enrollment_id=self.enrollment.id)]
        self.assertEqual(numbers, [2, 1])


class AttemptSessionTest(TestCase):
    """Timed sessions: start, answers, deadline and abandonment"""

    def setUp(self):
        self.instructor = make_profile('instructor')
        self.trainee = make_profile('trainee')
        self.course = make_course(self.instructor)
        self.assessment = make_assessment(self.course, passing_score=50, time_limit=60)
        self.mc_id, self.ms_id = question_ids(self.assessment)
        self.enrollment = enroll(self.trainee, self.course)
        self.t0 = timezone.now() - timedelta(hours=1)

    def start(self, now=None):
        return AttemptManager.start_attempt(self.assessment.id, self.enrollment.id, now=now or self.t0)

    def at(self, seconds):
        return self.t0 + timedelta(seconds=seconds)

    def test_start_sets_deadline_and_is_idempotent(self):
        session = self.start()
        again = AttemptManager.start_attempt(self.assessment.id, self.enrollment.id, now=self.at(10))

        self.assertEqual(session.id, again.id)
        self.assertEqual(session.deadline, self.at(60))
        self.assertEqual(AttemptSession.objects.count(), 1)

    def test_start_refused_when_attempts_used_up(self):
        self.assessment.max_attempts = 1
        self.assessment.save()
        session = self.start()
        AttemptManager.submit(self.assessment.id, self.enrollment.id, {}, session_id=session.id, now=self.at(10))

        with self.assertRaises(AttemptLimitExceeded):
            self.start(now=self.at(20))

    def test_submit_inside_limit_uses_server_time(self):
        session = self.start()
        AttemptManager.record_answers(session.id, {self.mc_id: 1}, now=self.at(10))

        attempt = AttemptManager.submit(
            self.assessment.id, self.enrollment.id, {self.ms_id: [0, 2]}, time_taken=5, now=self.at(30),
        )

        self.assertEqual(attempt.submission_type, 'manual')
        self.assertEqual(attempt.time_taken, 30)
        self.assertFalse(attempt.timing_flagged)
        self.assertEqual(attempt.score, 100)
        session.refresh_from_db()
        self.assertEqual(session.status, 'submitted')
        self.assertEqual(session.attempt_id, attempt.id)

    def test_late_submit_scores_only_answers_recorded_in_time(self):
        session = self.start()
        AttemptManager.record_answers(session.id, {self.mc_id: 1}, now=self.at(10))

        attempt = AttemptManager.submit(
            self.assessment.id, self.enrollment.id,
            {self.mc_id: 1, self.ms_id: [0, 2]}, session_id=session.id, now=self.at(120),
        )

        self.assertEqual(attempt.submission_type, 'auto')
        self.assertTrue(attempt.timing_flagged)
        self.assertEqual(attempt.time_taken, 60)
        self.assertEqual(attempt.score, 50)

    def test_answers_after_deadline_trigger_auto_submit(self):
        session = self.start()
        AttemptManager.record_answers(session.id, {self.mc_id: 1}, now=self.at(10))

        session = AttemptManager.record_answers(session.id, {self.ms_id: [0, 2]}, now=self.at(90))

        self.assertEqual(session.status, 'auto_submitted')
        attempt = Attempt.objects.get(enrollment=self.enrollment)
        self.assertEqual(attempt.answers, {self.mc_id: 1})
        self.assertEqual(attempt.submission_type, 'auto')

    def test_manual_submit_after_auto_submit_returns_same_attempt(self):
        session = self.start()
        auto = AttemptManager.auto_submit_session(session.id, now=self.at(70))

        manual = AttemptManager.submit(
            self.assessment.id, self.enrollment.id, {self.mc_id: 1}, session_id=session.id, now=self.at(71),
        )

        self.assertEqual(auto.id, manual.id)
        self.assertEqual(Attempt.objects.count(), 1)

    def test_timed_submit_without_start_is_refused(self):
        with self.assertRaises(ValidationError):
            AttemptManager.submit(self.assessment.id, self.enrollment.id, {self.mc_id: 1}, now=self.at(10))
        self.assertFalse(Attempt.objects.exists())

    def test_sessionless_submit_after_auto_submit_returns_that_attempt(self):
        session = self.start()
        auto = AttemptManager.auto_submit_session(session.id, now=self.at(70))

        again = AttemptManager.submit(
            self.assessment.id, self.enrollment.id, {self.mc_id: 1, self.ms_id: [0, 2]},
            time_taken=30, now=self.at(71),
        )

        self.assertEqual(again.id, auto.id)
        self.assertEqual(again.submission_type, 'auto')
        self.assertEqual(Attempt.objects.count(), 1)

    def test_racing_sessionless_submit_returns_first_attempt(self):
        session = self.start()
        first = AttemptManager.submit(
            self.assessment.id, self.enrollment.id, {self.mc_id: 1}, session_id=session.id, now=self.at(59),
        )

        second = AttemptManager.submit(self.assessment.id, self.enrollment.id, {self.mc_id: 1}, now=self.at(60))

        self.assertEqual(first.id, second.id)
        self.assertEqual(Attempt.objects.count(), 1)

    def test_sessionless_submit_after_grace_window_is_refused(self):
        session = self.start()
        AttemptManager.submit(self.assessment.id, self.enrollment.id, {}, session_id=session.id, now=self.at(30))

        with self.assertRaises(SessionClosed):
            AttemptManager.submit(self.assessment.id, self.enrollment.id, {self.mc_id: 1}, now=self.at(100))
        self.assertEqual(Attempt.objects.count(), 1)

    def test_abandon_discards_answers_without_attempt(self):
        session = self.start()
        AttemptManager.record_answers(session.id, {self.mc_id: 1}, now=self.at(5))

        session = AttemptManager.abandon(session.id, now=self.at(20))

        self.assertEqual(session.status, 'abandoned')
        self.assertEqual(session.answers, {})
        self.assertFalse(Attempt.objects.exists())
        self.assertEqual(AttemptManager.abandon(session.id).status, 'abandoned')

    def test_abandoned_session_cannot_be_submitted_or_answered(self):
        session = self.start()
        AttemptManager.abandon(session.id, now=self.at(5))

        with self.assertRaises(SessionClosed):
            AttemptManager.submit(self.assessment.id, self.enrollment.id, {}, session_id=session.id)
        with self.assertRaises(SessionClosed):
            AttemptManager.record_answers(session.id, {self.mc_id: 1})

    def test_overdue_session_auto_submitted_on_next_start(self):
        first = self.start()
        AttemptManager.record_answers(first.id, {self.mc_id: 1}, now=self.at(10))

        second = self.start(now=self.at(300))

        self.assertNotEqual(first.id, second.id)
        first.refresh_from_db()
        self.assertEqual(first.status, 'auto_submitted')
        self.assertEqual(Attempt.objects.get().score, 50)

    def test_sweep_expires_overdue_sessions(self):
        session = self.start()

        pending = expire_overdue_sessions(dry_run=True)
        self.assertEqual(pending, [session.id])
        self.assertFalse(Attempt.objects.exists())

        expire_overdue_sessions()
        session.refresh_from_db()
        self.assertEqual(session.status, 'auto_submitted')
        self.assertEqual(Attempt.objects.get().submission_type, 'auto')
