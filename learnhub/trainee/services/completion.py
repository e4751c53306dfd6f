"""
Content Completion Tracker
Records first views and completions of content items for an enrollment.

Completion is a conditional update (not_started -> completed), so however
many times a learner finishes an item, only the first call emits a
progress event.
"""
import logging

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import F
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from instructor.models import Content, Enrollment, Module
from trainee.exceptions import NotEnrolled
from trainee.models import ProgressRecord
from trainee.signals import send_progress_event

logger = logging.getLogger(__name__)


def video_threshold():
    return float(getattr(settings, 'VIDEO_COMPLETION_THRESHOLD', 0.8))


class ContentCompletionTracker:
    """Service for touching and completing content items"""

    @staticmethod
    def _resolve(enrollment_id, content_id, module_id):
        try:
            enrollment = Enrollment.objects.get(id=enrollment_id)
        except (Enrollment.DoesNotExist, ValueError, DjangoValidationError):
            raise NotEnrolled()
        if not enrollment.is_active:
            raise NotEnrolled('This enrollment has been dropped.')

        try:
            module = Module.objects.get(id=module_id)
        except (Module.DoesNotExist, ValueError, DjangoValidationError):
            raise NotFound('Module not found')
        try:
            content = Content.objects.get(id=content_id)
        except (Content.DoesNotExist, ValueError, DjangoValidationError):
            raise NotFound('Content not found')

        if content.module_id != module.id:
            raise ValidationError({'content_id': 'Content does not belong to this module'})
        if module.course_id != enrollment.course_id:
            raise ValidationError({'module_id': 'Module does not belong to the enrolled course'})
        return enrollment, module, content

    @staticmethod
    def _validate_seconds(value, field):
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
            raise ValidationError({field: 'Must be a non-negative number of seconds'})
        return value

    @staticmethod
    def _record_for(enrollment, module, content, now):
        record, created = ProgressRecord.objects.get_or_create(
            enrollment=enrollment,
            content=content,
            defaults={'module': module, 'started_at': now, 'last_accessed_at': now},
        )
        if created:
            logger.info(f"[TRACK_CONTENT] First view of {content.id} by enrollment {enrollment.id}")
        return record

    @classmethod
    def touch_content(cls, enrollment_id, content_id, module_id, time_spent=None, now=None):
        """Create the record on first view, refresh its last access time and add any time spent."""
        now = now or timezone.now()
        time_spent = cls._validate_seconds(time_spent, 'time_spent')
        enrollment, module, content = cls._resolve(enrollment_id, content_id, module_id)

        with transaction.atomic():
            record = cls._record_for(enrollment, module, content, now)
            updates = {'last_accessed_at': now}
            if time_spent:
                updates['time_spent'] = F('time_spent') + int(time_spent)
            ProgressRecord.objects.filter(pk=record.pk).update(**updates)
            record.refresh_from_db()
        return record

    @classmethod
    def complete_content(cls, enrollment_id, content_id, module_id, time_spent=None, now=None):
        """Mark a content item completed. Repeated calls return the existing record."""
        record, _ = cls._complete(enrollment_id, content_id, module_id, time_spent=time_spent, now=now)
        return record

    @classmethod
    def _complete(cls, enrollment_id, content_id, module_id, time_spent=None, now=None, resolved=None):
        now = now or timezone.now()
        time_spent = cls._validate_seconds(time_spent, 'time_spent')
        enrollment, module, content = resolved or cls._resolve(enrollment_id, content_id, module_id)

        with transaction.atomic():
            record = cls._record_for(enrollment, module, content, now)
            updates = {'last_accessed_at': now}
            if time_spent:
                updates['time_spent'] = F('time_spent') + int(time_spent)
            ProgressRecord.objects.filter(pk=record.pk).update(**updates)

            newly_completed = ProgressRecord.objects.filter(
                pk=record.pk
            ).exclude(status='completed').update(status='completed', completed_at=now) == 1
            record.refresh_from_db()

        if newly_completed:
            logger.info(f"[COMPLETE_CONTENT] {content.id} completed by enrollment {enrollment.id}")
            send_progress_event(enrollment.id, 'content_completed', content.id)
        return record, newly_completed

    @classmethod
    def report_video_progress(cls, enrollment_id, content_id, module_id, watched_seconds, now=None):
        """
        Complete a video once the watched share reaches VIDEO_COMPLETION_THRESHOLD.

        Returns:
            dict: record, watched_ratio, completed, newly_completed
        """
        now = now or timezone.now()
        watched_seconds = cls._validate_seconds(watched_seconds, 'watched_seconds')
        if watched_seconds is None:
            raise ValidationError({'watched_seconds': 'This field is required.'})

        enrollment, module, content = cls._resolve(enrollment_id, content_id, module_id)
        if content.content_type != 'video':
            raise ValidationError({'content_id': 'Content is not a video'})
        if not content.duration:
            raise ValidationError({'content_id': 'Video duration is unknown'})

        ratio = min(1.0, watched_seconds / content.duration)
        newly_completed = False
        if ratio >= video_threshold():
            record, newly_completed = cls._complete(
                enrollment_id, content_id, module_id, now=now, resolved=(enrollment, module, content)
            )
        else:
            record = cls._record_for(enrollment, module, content, now)
            ProgressRecord.objects.filter(pk=record.pk).update(last_accessed_at=now)
            record.last_accessed_at = now

        return {
            'record': record,
            'watched_ratio': round(ratio, 4),
            'completed': record.is_completed,
            'newly_completed': newly_completed,
        }
