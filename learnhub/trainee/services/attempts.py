"""
Attempt Manager
Starts timed attempt sessions, enforces attempt limits and records scored attempts.

Every write path locks the enrollment row first (then the session row) inside
``transaction.atomic()``, so concurrent submissions for one enrollment are
serialized. The unique (assessment, enrollment, attempt_number) constraint
catches anything that slips past the lock.
"""
from datetime import timedelta
import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from instructor.models import Assessment, Enrollment
from trainee.exceptions import (
    AssessmentNotInCourse, AttemptConflict, AttemptLimitExceeded, NotEnrolled, SessionClosed,
)
from trainee.models import Attempt, AttemptSession
from trainee.services.scorer import score_answers
from trainee.services.timer import AUTO_SUBMITTED, SessionClock, time_tolerance
from trainee.signals import send_progress_event

logger = logging.getLogger(__name__)


def _is_index(value):
    return isinstance(value, int) and not isinstance(value, bool)


class AttemptManager:
    """Service for starting, answering, submitting and listing assessment attempts"""

    # ---- lookups ---------------------------------------------------------

    @staticmethod
    def get_assessment(assessment_id):
        try:
            return Assessment.objects.select_related('course').get(id=assessment_id)
        except (Assessment.DoesNotExist, ValueError, DjangoValidationError):
            raise NotFound('Assessment not found')

    @staticmethod
    def get_enrollment(enrollment_id, assessment=None, lock=False):
        """
        Return the active enrollment, optionally locked for update.
        Raises NotEnrolled for missing or dropped enrollments and
        AssessmentNotInCourse when the assessment belongs to another course.
        """
        queryset = Enrollment.objects.select_related('course')
        if lock:
            queryset = queryset.select_for_update()
        try:
            enrollment = queryset.get(id=enrollment_id)
        except (Enrollment.DoesNotExist, ValueError, DjangoValidationError):
            raise NotEnrolled()

        if not enrollment.is_active:
            raise NotEnrolled('This enrollment has been dropped.')
        if assessment is not None and assessment.course_id != enrollment.course_id:
            raise AssessmentNotInCourse()
        return enrollment

    @staticmethod
    def get_session(session_id):
        try:
            return AttemptSession.objects.select_related('assessment').get(id=session_id)
        except (AttemptSession.DoesNotExist, ValueError, DjangoValidationError):
            raise NotFound('Attempt session not found')

    # ---- eligibility -----------------------------------------------------

    @staticmethod
    def _prior_attempt_count(assessment, enrollment):
        return Attempt.objects.filter(assessment=assessment, enrollment=enrollment).count()

    @classmethod
    def eligibility(cls, assessment, enrollment):
        """Attempts used and remaining, without raising."""
        used = cls._prior_attempt_count(assessment, enrollment)
        remaining = None if assessment.max_attempts is None else max(0, assessment.max_attempts - used)
        return {
            'attempts_used': used,
            'max_attempts': assessment.max_attempts,
            'attempts_remaining': remaining,
            'can_attempt': remaining is None or remaining > 0,
        }

    @classmethod
    def check_eligibility(cls, assessment, enrollment):
        info = cls.eligibility(assessment, enrollment)
        if not info['can_attempt']:
            logger.info(
                f"[CHECK_ELIGIBILITY] Enrollment {enrollment.id} used {info['attempts_used']}"
                f"/{assessment.max_attempts} attempts on {assessment.id}"
            )
            raise AttemptLimitExceeded(assessment.max_attempts, info['attempts_used'])
        return info

    # ---- validation ------------------------------------------------------

    @staticmethod
    def validate_answers(questions, answers):
        """
        Check the shape of submitted answers before anything is written.
        Unanswered questions may be omitted or null; out-of-range indices are
        left for the scorer to mark wrong.
        """
        if answers is None:
            return {}
        if not isinstance(answers, dict):
            raise ValidationError({'answers': 'Answers must be an object keyed by question id'})

        by_id = {str(q.id): q for q in questions}
        errors = {}
        cleaned = {}
        for question_id, value in answers.items():
            question = by_id.get(str(question_id))
            if question is None:
                errors[str(question_id)] = 'Unknown question'
                continue
            if value is None:
                continue
            if question.type == 'multiple-select':
                if not isinstance(value, list) or not all(_is_index(i) for i in value):
                    errors[str(question_id)] = 'Expected a list of option indices'
                    continue
            elif not _is_index(value):
                errors[str(question_id)] = 'Expected a single option index'
                continue
            cleaned[str(question_id)] = value

        if errors:
            raise ValidationError({'answers': errors})
        return cleaned

    @staticmethod
    def _validate_time_taken(time_taken):
        if time_taken is None:
            return None
        if not _is_index(time_taken) or time_taken < 0:
            raise ValidationError({'time_taken': 'Time taken must be a non-negative number of seconds'})
        return time_taken

    # ---- sessions --------------------------------------------------------

    @classmethod
    def start_attempt(cls, assessment_id, enrollment_id, now=None):
        """
        Start (or resume) the running session for this learner.

        Returns the running AttemptSession. Calling it again while a session
        runs returns that session; an overdue session is auto-submitted first.
        """
        now = now or timezone.now()
        assessment = cls.get_assessment(assessment_id)

        enrollment = cls.get_enrollment(enrollment_id, assessment)

        stale = AttemptSession.objects.filter(
            assessment=assessment, enrollment=enrollment, status='running'
        ).first()
        if stale is not None and SessionClock(stale).is_overdue(now):
            cls.auto_submit_session(stale.id, now=now)

        try:
            with transaction.atomic():
                enrollment = cls.get_enrollment(enrollment.id, assessment, lock=True)
                running = (
                    AttemptSession.objects.select_for_update()
                    .filter(assessment=assessment, enrollment=enrollment, status='running')
                    .first()
                )
                if running is not None:
                    logger.info(f"[START_ATTEMPT] Resuming session {running.id}")
                    return running

                cls.check_eligibility(assessment, enrollment)
                session = AttemptSession.objects.create(
                    assessment=assessment,
                    enrollment=enrollment,
                    started_at=now,
                    deadline=SessionClock.deadline_for(assessment, now),
                )
        except IntegrityError:
            logger.warning(f"[START_ATTEMPT] Concurrent start for {assessment_id} / {enrollment_id}")
            raise AttemptConflict()

        logger.info(
            f"[START_ATTEMPT] Session {session.id} started for enrollment {enrollment.id} "
            f"on {assessment.id} (deadline={session.deadline})"
        )
        return session

    @classmethod
    def record_answers(cls, session_id, answers, now=None):
        """
        Merge answers into a running session.

        After the deadline the session is auto-submitted with the answers it
        already holds and the new ones are discarded. Returns the session.
        """
        now = now or timezone.now()
        session = cls.get_session(session_id)
        questions = list(session.assessment.questions.all())
        cleaned = cls.validate_answers(questions, answers)
        attempt = None

        with transaction.atomic():
            enrollment = cls.get_enrollment(session.enrollment_id, lock=True)
            session = AttemptSession.objects.select_for_update().select_related('assessment').get(id=session.id)
            if not session.is_running:
                raise SessionClosed()

            timer = SessionClock(session).timer(
                lambda recorded, time_taken, submission_type: cls._finalize(
                    session, enrollment, recorded, submission_type, now, questions=questions
                ),
                now=now,
            )
            if timer.state == AUTO_SUBMITTED:
                attempt = timer.result
                logger.info(f"[RECORD_ANSWERS] Session {session.id} expired, auto-submitted")
            else:
                for question_id, value in cleaned.items():
                    timer.record_answer(question_id, value)
                session.answers = timer.answers
                session.save(update_fields=['answers'])

        if attempt is not None and attempt.is_passed:
            send_progress_event(attempt.enrollment_id, 'assessment_passed', attempt.assessment_id)
        return session

    @classmethod
    def abandon(cls, session_id, now=None):
        """
        Learner navigated away: discard the running session's answers.
        Sessions that are already closed are returned untouched; an overdue
        session is auto-submitted rather than abandoned.
        """
        now = now or timezone.now()
        session = cls.get_session(session_id)
        attempt = None

        with transaction.atomic():
            enrollment = Enrollment.objects.select_for_update().get(id=session.enrollment_id)
            session = AttemptSession.objects.select_for_update().select_related('assessment').get(id=session.id)
            if not session.is_running:
                return session

            timer = SessionClock(session).timer(
                lambda recorded, time_taken, submission_type: cls._finalize(
                    session, enrollment, recorded, submission_type, now
                ),
                now=now,
            )
            if timer.state == AUTO_SUBMITTED:
                attempt = timer.result
            else:
                timer.cancel()
                session.status = 'abandoned'
                session.answers = timer.answers
                session.closed_at = now
                session.save(update_fields=['status', 'answers', 'closed_at'])
                logger.info(f"[ABANDON_ATTEMPT] Session {session.id} abandoned")

        if attempt is not None and attempt.is_passed:
            send_progress_event(attempt.enrollment_id, 'assessment_passed', attempt.assessment_id)
        return session

    @classmethod
    def auto_submit_session(cls, session_id, now=None):
        """Force-submit a session with the answers it holds. Returns the Attempt, or None."""
        now = now or timezone.now()
        session = cls.get_session(session_id)

        with transaction.atomic():
            enrollment = Enrollment.objects.select_for_update().get(id=session.enrollment_id)
            session = AttemptSession.objects.select_for_update().select_related('assessment').get(id=session.id)
            attempt = cls._auto_submit_locked(session, enrollment, now)

        if attempt is not None and attempt.is_passed:
            send_progress_event(attempt.enrollment_id, 'assessment_passed', attempt.assessment_id)
        return attempt

    @classmethod
    def _auto_submit_locked(cls, session, enrollment, now):
        if not session.is_running:
            return session.attempt
        if not enrollment.is_active:
            cls._close_session(session, 'abandoned', now)
            return None
        try:
            return cls._finalize(session, enrollment, session.answers, 'auto', now)
        except AttemptLimitExceeded:
            logger.warning(f"[AUTO_SUBMIT] Session {session.id} closed without attempt, limit reached")
            cls._close_session(session, 'abandoned', now)
            return None

    # ---- submission ------------------------------------------------------

    @classmethod
    def submit(cls, assessment_id, enrollment_id, answers, time_taken=None, session_id=None, now=None):
        """
        Score and record an attempt.

        When the learner has a session, server-measured time decides the
        outcome: inside the limit plus grace the submission is manual, past it
        the session is auto-submitted with only the answers recorded in time.
        Timed assessments must be started first; untimed ones may be submitted
        without a session, using the reported time. Returns the Attempt.
        """
        now = now or timezone.now()
        assessment = cls.get_assessment(assessment_id)
        questions = list(assessment.questions.all())
        cleaned = cls.validate_answers(questions, answers)
        reported_time = cls._validate_time_taken(time_taken)

        try:
            with transaction.atomic():
                enrollment = cls.get_enrollment(enrollment_id, assessment, lock=True)
                session = cls._submission_session(assessment, enrollment, session_id, now)

                if session is not None and session.attempt_id:
                    logger.info(f"[SUBMIT_ATTEMPT] Session {session.id} already submitted, returning its attempt")
                    return session.attempt

                if session is not None:
                    session.assessment = assessment
                    if SessionClock(session).is_overdue(now):
                        attempt = cls._finalize(session, enrollment, session.answers, 'auto', now, questions=questions)
                    else:
                        merged = {**session.answers, **cleaned}
                        attempt = cls._finalize(session, enrollment, merged, 'manual', now, questions=questions)
                else:
                    attempt = cls._create_attempt(
                        assessment, enrollment, cleaned, questions,
                        time_taken=reported_time or 0,
                        submission_type='manual',
                        timing_flagged=False,
                        started_at=None,
                        now=now,
                    )
        except IntegrityError:
            logger.warning(f"[SUBMIT_ATTEMPT] Attempt number collision for {assessment_id} / {enrollment_id}")
            raise AttemptConflict()

        if attempt.is_passed:
            send_progress_event(attempt.enrollment_id, 'assessment_passed', attempt.assessment_id)
        return attempt

    @staticmethod
    def _submission_session(assessment, enrollment, session_id, now):
        """
        The session a submit applies to, or None for an untimed sessionless submit.

        Without a session id a timed assessment falls back to the running
        session, then to the latest session if it produced an attempt less
        than one grace period ago (a replayed or racing submit gets that
        attempt back). Anything else is refused.
        """
        queryset = AttemptSession.objects.select_for_update().filter(assessment=assessment, enrollment=enrollment)
        if session_id:
            try:
                session = queryset.get(id=session_id)
            except (AttemptSession.DoesNotExist, ValueError, DjangoValidationError):
                raise NotFound('Attempt session not found')
            if not session.is_running and not session.attempt_id:
                raise SessionClosed()
            return session

        running = queryset.filter(status='running').first()
        if running is not None or not assessment.time_limit:
            return running

        latest = queryset.order_by('-started_at').first()
        if latest is None:
            raise ValidationError({'session_id': 'Start this timed assessment before submitting'})
        if latest.attempt_id and latest.closed_at:
            ended = max(latest.deadline or latest.closed_at, latest.closed_at)
            cutoff = ended + timedelta(seconds=time_tolerance())
            if now <= cutoff:
                return latest
        logger.info(f"[SUBMIT_ATTEMPT] Refusing sessionless submit on {assessment.id}, session {latest.id} is closed")
        raise SessionClosed()

    @classmethod
    def _finalize(cls, session, enrollment, answers, submission_type, now, questions=None):
        """Turn a session into an attempt and close it. Caller holds the locks."""
        assessment = session.assessment
        if questions is None:
            questions = list(assessment.questions.all())

        clock = SessionClock(session)
        elapsed = clock.elapsed_seconds(now)
        if assessment.time_limit:
            flagged = submission_type == 'auto' or elapsed > assessment.time_limit
        else:
            flagged = False

        attempt = cls._create_attempt(
            assessment, enrollment, answers, questions,
            time_taken=elapsed,
            submission_type=submission_type,
            timing_flagged=flagged,
            started_at=session.started_at,
            now=now,
        )
        session.attempt = attempt
        cls._close_session(session, 'auto_submitted' if submission_type == 'auto' else 'submitted', now)
        return attempt

    @staticmethod
    def _close_session(session, status, now):
        session.status = status
        session.closed_at = now
        session.save(update_fields=['status', 'closed_at', 'attempt'])

    @classmethod
    def _create_attempt(cls, assessment, enrollment, answers, questions, time_taken,
                        submission_type, timing_flagged, started_at, now):
        """Count, check the limit, score and insert. Caller holds the enrollment lock."""
        used = cls._prior_attempt_count(assessment, enrollment)
        if assessment.max_attempts is not None and used >= assessment.max_attempts:
            raise AttemptLimitExceeded(assessment.max_attempts, used)

        if assessment.time_limit:
            time_taken = min(time_taken, assessment.time_limit)

        scored = score_answers(questions, answers)
        with transaction.atomic():
            attempt = Attempt.objects.create(
                assessment=assessment,
                enrollment=enrollment,
                trainee_id=enrollment.trainee_id,
                attempt_number=used + 1,
                answers=answers,
                results=scored['results'],
                score=scored['score'],
                points_earned=scored['points_earned'],
                points_possible=scored['points_possible'],
                is_passed=scored['score'] >= assessment.passing_score,
                time_taken=time_taken,
                submission_type=submission_type,
                timing_flagged=timing_flagged,
                started_at=started_at,
                submitted_at=now,
            )

        logger.info(
            f"[SUBMIT_ATTEMPT] Attempt {attempt.attempt_number} on {assessment.id} by enrollment "
            f"{enrollment.id}: {attempt.score}% ({'passed' if attempt.is_passed else 'failed'}, "
            f"{submission_type}{', flagged' if timing_flagged else ''})"
        )
        return attempt

    # ---- queries ---------------------------------------------------------

    @staticmethod
    def list_attempts(assessment_id=None, enrollment_id=None, trainee_id=None):
        """Attempts matching the given filters, most recent first."""
        queryset = Attempt.objects.select_related('assessment')
        if assessment_id:
            queryset = queryset.filter(assessment_id=assessment_id)
        if enrollment_id:
            queryset = queryset.filter(enrollment_id=enrollment_id)
        if trainee_id:
            queryset = queryset.filter(trainee_id=trainee_id)
        return queryset.order_by('-submitted_at', '-attempt_number')
