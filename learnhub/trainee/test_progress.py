"""
Tests for content completion tracking and progress aggregation
"""
from django.test import TestCase
from rest_framework.exceptions import NotFound, ValidationError

from instructor.models import Enrollment
from trainee.exceptions import NotEnrolled
from trainee.models import ProgressRecord
from trainee.services.attempts import AttemptManager
from trainee.services.completion import ContentCompletionTracker
from trainee.services.progress import ProgressAggregator
from trainee.signals import progress_event
from trainee.testing import (
    enroll, make_assessment, make_content, make_course, make_module, make_profile, question_ids,
)


class ProgressTestCase(TestCase):

    def setUp(self):
        self.instructor = make_profile('instructor')
        self.trainee = make_profile('trainee')
        self.course = make_course(self.instructor)
        self.module = make_module(self.course)
        self.enrollment = enroll(self.trainee, self.course)

        self.events = []
        progress_event.connect(self._capture, dispatch_uid='test-capture')
        self.addCleanup(progress_event.disconnect, dispatch_uid='test-capture')

    def _capture(self, sender, **kwargs):
        self.events.append(kwargs)

    def complete(self, content, **kwargs):
        return ContentCompletionTracker.complete_content(
            self.enrollment.id, content.id, content.module_id, **kwargs
        )

    def reload(self):
        self.enrollment.refresh_from_db()
        return self.enrollment


class ContentCompletionTest(ProgressTestCase):

    def test_three_of_five_is_sixty_percent(self):
        items = [make_content(self.module, order=i) for i in range(5)]
        for content in items[:3]:
            self.complete(content)

        enrollment = self.reload()
        self.assertEqual(enrollment.progress_percentage, 60)
        self.assertEqual(enrollment.status, 'in_progress')
        self.assertIsNotNone(enrollment.started_at)

    def test_completion_is_idempotent(self):
        content = make_content(self.module)

        first = self.complete(content, time_spent=30)
        second = self.complete(content)

        self.assertEqual(first.id, second.id)
        self.assertEqual(first.completed_at, second.completed_at)
        self.assertEqual(ProgressRecord.objects.filter(content=content).count(), 1)
        self.assertEqual(len(self.events), 1)
        self.assertEqual(self.events[0]['kind'], 'content_completed')

    def test_time_spent_accumulates(self):
        content = make_content(self.module)
        self.complete(content, time_spent=30)
        record = self.complete(content, time_spent=15)
        self.assertEqual(record.time_spent, 45)

    def test_touch_creates_not_started_record(self):
        content = make_content(self.module)
        record = ContentCompletionTracker.touch_content(self.enrollment.id, content.id, self.module.id)
        self.assertEqual(record.status, 'not_started')
        self.assertEqual(self.events, [])

    def test_video_completes_once_past_threshold(self):
        video = make_content(self.module, content_type='video', duration=100)

        def report(seconds):
            return ContentCompletionTracker.report_video_progress(
                self.enrollment.id, video.id, self.module.id, seconds
            )

        self.assertFalse(report(50)['completed'])
        self.assertEqual(self.events, [])

        outcome = report(81)
        self.assertTrue(outcome['completed'])
        self.assertTrue(outcome['newly_completed'])

        self.assertFalse(report(95)['newly_completed'])
        self.assertEqual(len(self.events), 1)

    def test_video_progress_requires_a_video(self):
        text = make_content(self.module)
        with self.assertRaises(ValidationError):
            ContentCompletionTracker.report_video_progress(self.enrollment.id, text.id, self.module.id, 10)

    def test_content_must_belong_to_module(self):
        content = make_content(self.module)
        other_module = make_module(self.course, order=1)
        with self.assertRaises(ValidationError):
            ContentCompletionTracker.complete_content(self.enrollment.id, content.id, other_module.id)

    def test_module_must_belong_to_enrolled_course(self):
        foreign = make_module(make_course(self.instructor, title='Other'))
        content = make_content(foreign)
        with self.assertRaises(ValidationError):
            ContentCompletionTracker.complete_content(self.enrollment.id, content.id, foreign.id)

    def test_dropped_enrollment_cannot_complete(self):
        content = make_content(self.module)
        ProgressAggregator.drop(self.enrollment.id)
        with self.assertRaises(NotEnrolled):
            self.complete(content)


class ProgressAggregationTest(ProgressTestCase):

    def test_optional_items_are_excluded(self):
        required = make_content(self.module, order=0)
        optional = make_content(self.module, order=1, is_required=False)

        self.complete(optional)
        self.assertEqual(self.reload().progress_percentage, 0)

        self.complete(required)
        self.assertEqual(self.reload().progress_percentage, 100)

    def test_passed_assessments_count_as_items(self):
        content = make_content(self.module)
        assessment = make_assessment(self.course, module=self.module, passing_score=50)
        mc_id, _ = question_ids(assessment)

        self.complete(content)
        self.assertEqual(self.reload().progress_percentage, 50)

        AttemptManager.submit(assessment.id, self.enrollment.id, {mc_id: 0})
        self.assertEqual(self.reload().progress_percentage, 50)

        AttemptManager.submit(assessment.id, self.enrollment.id, {mc_id: 1})
        self.assertEqual(self.reload().progress_percentage, 100)

    def test_no_required_items_means_zero(self):
        make_content(self.module, is_required=False)
        summary = ProgressAggregator.recompute(self.enrollment.id)
        self.assertEqual(summary['progress_percentage'], 0)
        self.assertEqual(summary['status'], 'enrolled')

    def test_stored_percentage_never_decreases(self):
        items = [make_content(self.module, order=i) for i in range(4)]
        self.complete(items[0])
        Enrollment.objects.filter(id=self.enrollment.id).update(progress_percentage=80)

        summary = ProgressAggregator.recompute(self.enrollment.id)

        self.assertEqual(summary['progress_percentage'], 80)
        self.assertEqual(summary['completed_items'], 1)

    def test_completion_stamped_once(self):
        content = make_content(self.module)
        self.complete(content)
        completed_at = self.reload().completed_at

        ProgressAggregator.recompute(self.enrollment.id)

        enrollment = self.reload()
        self.assertEqual(enrollment.status, 'completed')
        self.assertEqual(enrollment.completed_at, completed_at)

    def test_finished_module_gets_completed_record(self):
        content = make_content(self.module)
        second = make_module(self.course, order=1)
        make_content(second)

        self.complete(content)

        record = ProgressRecord.objects.get(enrollment=self.enrollment, module=self.module, content__isnull=True)
        self.assertEqual(record.status, 'completed')
        self.assertFalse(
            ProgressRecord.objects.filter(enrollment=self.enrollment, module=second, content__isnull=True).exists()
        )

    def test_module_breakdown(self):
        a = make_content(self.module, order=0)
        make_content(self.module, order=1)
        second = make_module(self.course, order=1)
        make_content(second)
        self.complete(a)

        modules = {m['module_id']: m for m in ProgressAggregator.recompute(self.enrollment.id)['modules']}

        self.assertEqual(modules[str(self.module.id)]['percentage'], 50)
        self.assertEqual(modules[str(second.id)]['percentage'], 0)

    def test_reset_allows_decrease(self):
        content = make_content(self.module)
        self.complete(content)
        self.assertEqual(self.reload().status, 'completed')

        summary = ProgressAggregator.reset(self.enrollment.id)

        self.assertEqual(summary['progress_percentage'], 0)
        self.assertEqual(summary['status'], 'enrolled')
        self.assertIsNone(self.reload().completed_at)
        self.assertFalse(ProgressRecord.objects.filter(enrollment=self.enrollment).exists())

    def test_dropped_enrollment_left_unchanged(self):
        content = make_content(self.module)
        ProgressAggregator.drop(self.enrollment.id)
        ProgressRecord.objects.create(
            enrollment=self.enrollment, module=self.module, content=content, status='completed'
        )

        summary = ProgressAggregator.recompute(self.enrollment.id)

        self.assertEqual(summary['status'], 'dropped')
        self.assertEqual(summary['progress_percentage'], 0)

    def test_course_summary(self):
        content = make_content(self.module)
        other = enroll(make_profile('trainee'), self.course)
        dropped = enroll(make_profile('trainee'), self.course)
        ProgressAggregator.drop(dropped.id)
        self.complete(content)

        summary = ProgressAggregator.course_summary(self.course.id)

        self.assertEqual(summary['total_enrollments'], 3)
        self.assertEqual(summary['enrollments_by_status']['completed'], 1)
        self.assertEqual(summary['enrollments_by_status']['dropped'], 1)
        self.assertEqual(summary['completion_rate'], 50)
        self.assertEqual(summary['average_progress'], 50)
        self.assertEqual(summary['total_modules'], 1)
        self.assertIsNotNone(other)

    def test_course_summary_attempt_stats(self):
        assessment = make_assessment(self.course, passing_score=50)
        mc_id, _ = question_ids(assessment)
        AttemptManager.submit(assessment.id, self.enrollment.id, {mc_id: 0})
        AttemptManager.submit(assessment.id, self.enrollment.id, {mc_id: 1})

        stats = ProgressAggregator.course_summary(self.course.id)['assessments'][0]

        self.assertEqual(stats['attempt_count'], 2)
        self.assertEqual(stats['learner_count'], 1)
        self.assertEqual(stats['pass_rate'], 50)
        self.assertEqual(stats['average_score'], 25)

    def test_unknown_course_summary(self):
        with self.assertRaises(NotFound):
            ProgressAggregator.course_summary('00000000-0000-0000-0000-000000000000')
