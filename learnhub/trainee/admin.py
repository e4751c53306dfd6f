"""
Django admin configuration for attempts and progress.
Attempts are shown read-only; they are never edited after submission.
"""
from django.contrib import admin

from .models import Attempt, AttemptSession, ProgressRecord


@admin.register(AttemptSession)
class AttemptSessionAdmin(admin.ModelAdmin):
    list_display = ('id', 'assessment', 'enrollment', 'status', 'started_at', 'deadline')
    list_filter = ('status',)


@admin.register(Attempt)
class AttemptAdmin(admin.ModelAdmin):
    list_display = ('assessment', 'trainee', 'attempt_number', 'score', 'is_passed', 'submission_type', 'submitted_at')
    list_filter = ('is_passed', 'submission_type', 'timing_flagged')

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(ProgressRecord)
class ProgressRecordAdmin(admin.ModelAdmin):
    list_display = ('enrollment', 'module', 'content', 'status', 'time_spent', 'completed_at')
    list_filter = ('status',)
