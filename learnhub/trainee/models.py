"""
Trainee app models - attempt sessions, submitted attempts and progress records
"""
from django.db import models
from django.db.models import Q
from django.utils import timezone
import uuid

from accounts.models import Profile
from instructor.models import Assessment, Content, Enrollment, Module


class AttemptSession(models.Model):
    """
    The open, timed attempt a learner is working on.
    Created by an explicit start, closed by a submission, an auto-submit or abandonment.
    """
    STATUS_CHOICES = [
        ('running', 'Running'),
        ('submitted', 'Submitted'),
        ('auto_submitted', 'Auto Submitted'),
        ('abandoned', 'Abandoned'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='session_id')
    assessment = models.ForeignKey(Assessment, on_delete=models.CASCADE, related_name='sessions', db_column='assessment_id')
    enrollment = models.ForeignKey(Enrollment, on_delete=models.CASCADE, related_name='attempt_sessions', db_column='enrollment_id')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='running', db_column='status')
    answers = models.JSONField(default=dict, db_column='answers')
    started_at = models.DateTimeField(default=timezone.now, db_column='started_at')
    deadline = models.DateTimeField(blank=True, null=True, db_column='deadline')
    closed_at = models.DateTimeField(blank=True, null=True, db_column='closed_at')
    attempt = models.OneToOneField(
        'Attempt', on_delete=models.SET_NULL, null=True, blank=True,
        related_name='session', db_column='attempt_id'
    )

    class Meta:
        db_table = 'attempt_sessions'
        ordering = ['-started_at']
        constraints = [
            models.UniqueConstraint(
                fields=['assessment', 'enrollment'],
                condition=Q(status='running'),
                name='one_running_session_per_enrollment',
            ),
        ]

    @property
    def is_running(self):
        return self.status == 'running'

    def __str__(self):
        return f"Session {self.id} ({self.status})"


class Attempt(models.Model):
    """A scored submission. Rows are written once and never updated."""
    SUBMISSION_TYPES = [
        ('manual', 'Manual'),
        ('auto', 'Auto'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='attempt_id')
    assessment = models.ForeignKey(Assessment, on_delete=models.CASCADE, related_name='attempts', db_column='assessment_id')
    enrollment = models.ForeignKey(Enrollment, on_delete=models.CASCADE, related_name='attempts', db_column='enrollment_id')
    trainee = models.ForeignKey(Profile, on_delete=models.CASCADE, related_name='attempts', db_column='trainee_id')
    attempt_number = models.PositiveIntegerField(db_column='attempt_number')
    answers = models.JSONField(default=dict, db_column='answers')
    results = models.JSONField(default=list, db_column='results')
    score = models.IntegerField(default=0, db_column='score')
    points_earned = models.IntegerField(default=0, db_column='points_earned')
    points_possible = models.IntegerField(default=0, db_column='points_possible')
    is_passed = models.BooleanField(default=False, db_column='is_passed')
    time_taken = models.PositiveIntegerField(default=0, db_column='time_taken')  # seconds
    submission_type = models.CharField(max_length=10, choices=SUBMISSION_TYPES, default='manual', db_column='submission_type')
    timing_flagged = models.BooleanField(default=False, db_column='timing_flagged')
    started_at = models.DateTimeField(blank=True, null=True, db_column='started_at')
    submitted_at = models.DateTimeField(default=timezone.now, db_column='submitted_at')

    class Meta:
        db_table = 'attempts'
        ordering = ['-submitted_at']
        unique_together = ['assessment', 'enrollment', 'attempt_number']

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError('Attempts are immutable once submitted')
        super().save(*args, **kwargs)

    def __str__(self):
        return f"Attempt {self.attempt_number} on {self.assessment_id}: {self.score}%"


class ProgressRecord(models.Model):
    """
    Per-learner completion record for one content item, or for a whole module
    when ``content`` is empty.
    """
    STATUS_CHOICES = [
        ('not_started', 'Not Started'),
        ('completed', 'Completed'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='progress_id')
    enrollment = models.ForeignKey(Enrollment, on_delete=models.CASCADE, related_name='progress_records', db_column='enrollment_id')
    module = models.ForeignKey(Module, on_delete=models.CASCADE, related_name='progress_records', db_column='module_id')
    content = models.ForeignKey(
        Content, on_delete=models.CASCADE, null=True, blank=True,
        related_name='progress_records', db_column='content_id'
    )
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='not_started', db_column='status')
    time_spent = models.PositiveIntegerField(default=0, db_column='time_spent')  # seconds
    started_at = models.DateTimeField(default=timezone.now, db_column='started_at')
    last_accessed_at = models.DateTimeField(default=timezone.now, db_column='last_accessed_at')
    completed_at = models.DateTimeField(blank=True, null=True, db_column='completed_at')

    class Meta:
        db_table = 'progress_records'
        constraints = [
            models.UniqueConstraint(
                fields=['enrollment', 'content'],
                condition=Q(content__isnull=False),
                name='one_record_per_content',
            ),
            models.UniqueConstraint(
                fields=['enrollment', 'module'],
                condition=Q(content__isnull=True),
                name='one_record_per_module',
            ),
        ]

    @property
    def is_completed(self):
        return self.status == 'completed'

    def __str__(self):
        target = self.content_id or self.module_id
        return f"{self.enrollment_id} / {target}: {self.status}"
