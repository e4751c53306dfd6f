"""
Django admin configuration for the course catalog.
Courses, modules and content are maintained here rather than through the API.
"""
from django.contrib import admin

from .models import Assessment, Content, Course, Enrollment, Module, Question


class ModuleInline(admin.TabularInline):
    model = Module
    extra = 0
    fields = ('title', 'order', 'is_required')


class ContentInline(admin.TabularInline):
    model = Content
    extra = 0
    fields = ('title', 'content_type', 'order', 'duration', 'is_required')


class QuestionInline(admin.StackedInline):
    model = Question
    extra = 0


@admin.register(Course)
class CourseAdmin(admin.ModelAdmin):
    list_display = ('title', 'course_code', 'instructor', 'status', 'created_at')
    list_filter = ('status',)
    search_fields = ('title', 'course_code')
    inlines = [ModuleInline]


@admin.register(Module)
class ModuleAdmin(admin.ModelAdmin):
    list_display = ('title', 'course', 'order', 'is_required')
    list_filter = ('is_required',)
    inlines = [ContentInline]


@admin.register(Content)
class ContentAdmin(admin.ModelAdmin):
    list_display = ('title', 'module', 'content_type', 'duration', 'is_required')
    list_filter = ('content_type', 'is_required')


@admin.register(Assessment)
class AssessmentAdmin(admin.ModelAdmin):
    list_display = ('title', 'course', 'type', 'passing_score', 'max_attempts', 'time_limit', 'is_required')
    list_filter = ('type', 'is_required')
    inlines = [QuestionInline]


@admin.register(Enrollment)
class EnrollmentAdmin(admin.ModelAdmin):
    list_display = ('trainee', 'course', 'status', 'progress_percentage', 'completed_at')
    list_filter = ('status',)
    readonly_fields = ('progress_percentage', 'started_at', 'completed_at')
