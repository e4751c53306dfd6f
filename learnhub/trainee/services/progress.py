"""
Progress Aggregator
Derives module and enrollment progress from completion records and passed attempts.

Every progress percentage the API reports is computed here:

    round_half_up(100 * (completed required content + passed required assessments)
                  / (required content + required assessments))

The stored enrollment percentage never goes down, except through reset().
"""
import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Avg, Count, Q
from django.utils import timezone
from rest_framework.exceptions import NotFound

from instructor.models import Assessment, Content, Course, Enrollment
from trainee.models import Attempt, AttemptSession, ProgressRecord
from trainee.services.scorer import percentage, round_half_up

logger = logging.getLogger(__name__)


class ProgressAggregator:
    """Service for recomputing and summarizing learner progress"""

    @staticmethod
    def _get_enrollment(enrollment_id, lock=False):
        queryset = Enrollment.objects.select_related('course')
        if lock:
            queryset = queryset.select_for_update()
        try:
            return queryset.get(id=enrollment_id)
        except (Enrollment.DoesNotExist, ValueError, DjangoValidationError):
            raise NotFound('Enrollment not found')

    @staticmethod
    def compute(enrollment):
        """
        Fresh breakdown for one enrollment, without writing anything.

        Content counts as required when both it and its module are required.
        """
        course = enrollment.course
        modules = list(course.modules.all())
        required_modules = {m.id for m in modules if m.is_required}

        required_content = [
            (content_id, module_id)
            for content_id, module_id in Content.objects.filter(
                module__course=course, is_required=True
            ).values_list('id', 'module_id')
            if module_id in required_modules
        ]
        required_assessments = [
            (assessment_id, module_id)
            for assessment_id, module_id in Assessment.objects.filter(
                course=course, is_required=True
            ).values_list('id', 'module_id')
            if module_id is None or module_id in required_modules
        ]

        completed_content = set(
            ProgressRecord.objects.filter(
                enrollment=enrollment, content__isnull=False, status='completed'
            ).values_list('content_id', flat=True)
        )
        passed_assessments = set(
            Attempt.objects.filter(enrollment=enrollment, is_passed=True).values_list('assessment_id', flat=True)
        )

        per_module = {m.id: {'required': 0, 'completed': 0} for m in modules}
        for content_id, module_id in required_content:
            per_module[module_id]['required'] += 1
            if content_id in completed_content:
                per_module[module_id]['completed'] += 1
        for assessment_id, module_id in required_assessments:
            if module_id is None:
                continue
            per_module[module_id]['required'] += 1
            if assessment_id in passed_assessments:
                per_module[module_id]['completed'] += 1

        required_total = len(required_content) + len(required_assessments)
        completed_total = (
            sum(1 for content_id, _ in required_content if content_id in completed_content)
            + sum(1 for assessment_id, _ in required_assessments if assessment_id in passed_assessments)
        )

        return {
            'percentage': percentage(completed_total, required_total),
            'required_items': required_total,
            'completed_items': completed_total,
            'has_activity': bool(completed_content or passed_assessments),
            'modules': [
                {
                    'module_id': str(m.id),
                    'title': m.title,
                    'is_required': m.is_required,
                    'required_items': per_module[m.id]['required'],
                    'completed_items': per_module[m.id]['completed'],
                    'percentage': percentage(per_module[m.id]['completed'], per_module[m.id]['required']),
                }
                for m in modules
            ],
        }

    @staticmethod
    def _summary(enrollment, breakdown=None):
        data = {
            'enrollment_id': str(enrollment.id),
            'course_id': str(enrollment.course_id),
            'status': enrollment.status,
            'progress_percentage': enrollment.progress_percentage,
            'started_at': enrollment.started_at,
            'completed_at': enrollment.completed_at,
        }
        if breakdown is not None:
            data.update({
                'required_items': breakdown['required_items'],
                'completed_items': breakdown['completed_items'],
                'modules': breakdown['modules'],
            })
        return data

    @classmethod
    def snapshot(cls, enrollment):
        """Stored progress with a fresh breakdown. Read-only."""
        if not enrollment.is_active:
            return cls._summary(enrollment)
        breakdown = cls.compute(enrollment)
        data = cls._summary(enrollment, breakdown)
        data['computed_percentage'] = breakdown['percentage']
        return data

    @classmethod
    def recompute(cls, enrollment_id, allow_decrease=False, now=None):
        """
        Recompute and store an enrollment's progress and status.
        Safe to call any number of times, in any order.
        """
        now = now or timezone.now()
        with transaction.atomic():
            enrollment = cls._get_enrollment(enrollment_id, lock=True)
            if not enrollment.is_active:
                return cls._summary(enrollment)

            breakdown = cls.compute(enrollment)
            computed = breakdown['percentage']
            stored = enrollment.progress_percentage
            new_percentage = computed if allow_decrease else max(stored, computed)

            if new_percentage >= 100:
                status = 'completed'
            elif new_percentage > 0 or breakdown['has_activity']:
                status = 'in_progress'
            else:
                status = 'enrolled'

            enrollment.progress_percentage = new_percentage
            enrollment.status = status
            if status != 'enrolled' and enrollment.started_at is None:
                enrollment.started_at = now
            if status == 'completed' and enrollment.completed_at is None:
                enrollment.completed_at = now
            elif status != 'completed':
                enrollment.completed_at = None
            enrollment.save(update_fields=[
                'progress_percentage', 'status', 'started_at', 'completed_at', 'updated_at'
            ])

            cls._complete_finished_modules(enrollment, breakdown['modules'], now)

        if new_percentage != stored:
            logger.info(
                f"[RECOMPUTE_PROGRESS] Enrollment {enrollment.id}: {stored}% -> {new_percentage}% ({status})"
            )
        return cls._summary(enrollment, breakdown)

    @staticmethod
    def _complete_finished_modules(enrollment, modules, now):
        for module in modules:
            if module['required_items'] == 0 or module['percentage'] < 100:
                continue
            record, _ = ProgressRecord.objects.get_or_create(
                enrollment=enrollment,
                module_id=module['module_id'],
                content=None,
                defaults={'started_at': now, 'last_accessed_at': now},
            )
            marked = ProgressRecord.objects.filter(pk=record.pk).exclude(
                status='completed'
            ).update(status='completed', completed_at=now, last_accessed_at=now)
            if marked:
                logger.info(f"[MODULE_COMPLETED] Module {module['module_id']} completed by enrollment {enrollment.id}")

    @classmethod
    def reset(cls, enrollment_id, now=None):
        """Clear an enrollment's completion records and open sessions, then recompute allowing decrease."""
        now = now or timezone.now()
        with transaction.atomic():
            enrollment = cls._get_enrollment(enrollment_id, lock=True)
            deleted, _ = ProgressRecord.objects.filter(enrollment=enrollment).delete()
            AttemptSession.objects.filter(enrollment=enrollment, status='running').delete()
            enrollment.status = 'enrolled'
            enrollment.progress_percentage = 0
            enrollment.started_at = None
            enrollment.completed_at = None
            enrollment.save(update_fields=[
                'status', 'progress_percentage', 'started_at', 'completed_at', 'updated_at'
            ])
            summary = cls.recompute(enrollment.id, allow_decrease=True, now=now)

        logger.info(f"[RESET_PROGRESS] Enrollment {enrollment.id} reset ({deleted} record(s) removed)")
        return summary

    @classmethod
    def drop(cls, enrollment_id, now=None):
        """Mark an enrollment dropped and close its running sessions without attempts."""
        now = now or timezone.now()
        with transaction.atomic():
            enrollment = cls._get_enrollment(enrollment_id, lock=True)
            if enrollment.is_active:
                enrollment.status = 'dropped'
                enrollment.save(update_fields=['status', 'updated_at'])
                AttemptSession.objects.filter(enrollment=enrollment, status='running').update(
                    status='abandoned', answers={}, closed_at=now
                )
                logger.info(f"[DROP_ENROLLMENT] Enrollment {enrollment.id} dropped")
        return cls._summary(enrollment)

    @staticmethod
    def course_summary(course_id):
        """
        Course-level statistics for instructors.

        Returns:
            dict: enrollment counts by status, completion rate and average
            progress of non-dropped enrollments, and per-assessment attempt stats
        """
        try:
            course = Course.objects.get(id=course_id)
        except (Course.DoesNotExist, ValueError, DjangoValidationError):
            raise NotFound('Course not found')

        enrollments = Enrollment.objects.filter(course=course)
        by_status = {key: 0 for key, _ in Enrollment.STATUS_CHOICES}
        for row in enrollments.values('status').annotate(count=Count('id')):
            by_status[row['status']] = row['count']

        active = enrollments.exclude(status='dropped')
        active_count = active.count()
        average = active.aggregate(avg=Avg('progress_percentage'))['avg']

        assessments = []
        for assessment in Assessment.objects.filter(course=course).annotate(
            attempt_count=Count('attempts'),
            passed_count=Count('attempts', filter=Q(attempts__is_passed=True)),
            learner_count=Count('attempts__enrollment', distinct=True),
            average_score=Avg('attempts__score'),
        ).order_by('created_at'):
            assessments.append({
                'assessment_id': str(assessment.id),
                'title': assessment.title,
                'type': assessment.type,
                'attempt_count': assessment.attempt_count,
                'learner_count': assessment.learner_count,
                'pass_rate': percentage(assessment.passed_count, assessment.attempt_count),
                'average_score': round_half_up(assessment.average_score) if assessment.average_score is not None else None,
            })

        return {
            'course_id': str(course.id),
            'title': course.title,
            'total_enrollments': enrollments.count(),
            'enrollments_by_status': by_status,
            'completion_rate': percentage(by_status['completed'], active_count),
            'average_progress': round_half_up(average) if average is not None else 0,
            'total_modules': course.modules.count(),
            'assessments': assessments,
        }
