"""
Progress events.

``progress_event`` is sent after a content item is completed for the first
time or an attempt passes. Senders fire it after their atomic block has
exited; the receiver re-derives the enrollment's progress.
"""
import logging

from django.dispatch import Signal, receiver

logger = logging.getLogger(__name__)

# kwargs: enrollment_id, kind ('content_completed' | 'assessment_passed'), object_id
progress_event = Signal()


def send_progress_event(enrollment_id, kind, object_id):
    logger.info(f"[PROGRESS_EVENT] {kind} {object_id} for enrollment {enrollment_id}")
    progress_event.send(sender=None, enrollment_id=enrollment_id, kind=kind, object_id=object_id)


@receiver(progress_event)
def recompute_on_progress_event(sender, enrollment_id, **kwargs):
    from .services.progress import ProgressAggregator

    ProgressAggregator.recompute(enrollment_id)
