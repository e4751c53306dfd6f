"""
Instructor app models - course catalog and assessment authoring
Courses, modules, content items, assessments with their questions, and enrollments
"""
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone
import uuid

from accounts.models import Profile


QUESTION_TYPES = [
    ('multiple-choice', 'Multiple Choice'),
    ('true-false', 'True/False'),
    ('multiple-select', 'Multiple Select'),
]
SINGLE_ANSWER_TYPES = ('multiple-choice', 'true-false')


def _is_index(value):
    return isinstance(value, int) and not isinstance(value, bool)


def question_definition_errors(question_type, options, correct_answer, points=1):
    """
    Check a question definition against the authoring invariants.
    Returns a dict of field -> message, empty when the definition is valid.
    """
    errors = {}
    if question_type not in dict(QUESTION_TYPES):
        errors['type'] = f'Unknown question type: {question_type}'
        return errors

    if not isinstance(options, list) or not all(isinstance(o, str) for o in options):
        errors['options'] = 'Options must be a list of strings'
        return errors
    if len(options) < 2:
        errors['options'] = 'At least two options are required'
    elif question_type == 'true-false' and len(options) != 2:
        errors['options'] = 'True/false questions have exactly two options'

    if question_type in SINGLE_ANSWER_TYPES:
        if not _is_index(correct_answer):
            errors['correct_answer'] = 'A single option index is required'
        elif not 0 <= correct_answer < len(options):
            errors['correct_answer'] = f'Index {correct_answer} is not a valid option'
    else:
        if not isinstance(correct_answer, list) or not correct_answer:
            errors['correct_answer'] = 'A non-empty list of option indices is required'
        elif not all(_is_index(i) for i in correct_answer):
            errors['correct_answer'] = 'Option indices must be integers'
        elif len(set(correct_answer)) != len(correct_answer):
            errors['correct_answer'] = 'Option indices must be distinct'
        elif any(not 0 <= i < len(options) for i in correct_answer):
            errors['correct_answer'] = 'Every index must point at a valid option'

    if not _is_index(points) or points < 1:
        errors['points'] = 'Points must be a positive integer'
    return errors


class Course(models.Model):
    """Maps to courses table - only the fields progress and scoring depend on"""
    STATUS_CHOICES = [
        ('draft', 'Draft'),
        ('published', 'Published'),
        ('archived', 'Archived'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='course_id')
    title = models.CharField(max_length=500, db_column='title')
    course_code = models.CharField(max_length=50, blank=True, null=True, db_column='course_code')
    description = models.TextField(blank=True, null=True, db_column='description')
    status = models.CharField(max_length=20, default='draft', choices=STATUS_CHOICES, db_column='status')
    instructor = models.ForeignKey(
        Profile, on_delete=models.SET_NULL, null=True, blank=True,
        related_name='taught_courses', db_column='instructor_id'
    )
    created_at = models.DateTimeField(default=timezone.now, db_column='created_at')
    updated_at = models.DateTimeField(auto_now=True, db_column='updated_at')

    class Meta:
        db_table = 'courses'
        ordering = ['-created_at']

    def __str__(self):
        return self.title


class Module(models.Model):
    """Course module - ordered container of content items and assessments"""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='module_id')
    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name='modules', db_column='course_id')
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True, null=True)
    order = models.IntegerField(default=0, db_column='sequence_order')
    is_required = models.BooleanField(default=True, db_column='is_required')
    created_at = models.DateTimeField(default=timezone.now, db_column='created_at')
    updated_at = models.DateTimeField(auto_now=True, db_column='updated_at')

    class Meta:
        db_table = 'modules'
        ordering = ['course', 'order']

    def __str__(self):
        return self.title


class Content(models.Model):
    """Learning content item inside a module"""
    CONTENT_TYPES = [
        ('video', 'Video'),
        ('document', 'Document'),
        ('text', 'Text'),
        ('link', 'Link'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='content_id')
    module = models.ForeignKey(Module, on_delete=models.CASCADE, related_name='contents', db_column='module_id')
    content_type = models.CharField(max_length=20, choices=CONTENT_TYPES, db_column='content_type')
    title = models.CharField(max_length=255, db_column='title')
    order = models.IntegerField(default=0, db_column='order')
    file_url = models.TextField(blank=True, null=True, db_column='file_url')
    duration = models.IntegerField(blank=True, null=True, db_column='duration')  # seconds
    content_data = models.JSONField(blank=True, null=True, db_column='content_data')
    is_required = models.BooleanField(default=True, db_column='is_required')
    created_at = models.DateTimeField(default=timezone.now, db_column='created_at')
    updated_at = models.DateTimeField(auto_now=True, db_column='updated_at')

    class Meta:
        db_table = 'content'
        ordering = ['module', 'order']

    def __str__(self):
        return f"{self.title} ({self.content_type})"


def default_assessment_settings():
    return {'show_results_immediately': True, 'randomize_questions': False}


class Assessment(models.Model):
    """Gradable unit - quiz, exam or assignment - attached to a course and optionally a module"""
    TYPE_CHOICES = [
        ('quiz', 'Quiz'),
        ('assignment', 'Assignment'),
        ('exam', 'Exam'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='id')
    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name='assessments', db_column='course_id')
    module = models.ForeignKey(
        Module, on_delete=models.SET_NULL, null=True, blank=True,
        related_name='assessments', db_column='module_id'
    )
    title = models.CharField(max_length=255, db_column='title')
    description = models.TextField(blank=True, null=True, db_column='description')
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='quiz', db_column='type')
    passing_score = models.IntegerField(
        default=70, validators=[MinValueValidator(0), MaxValueValidator(100)], db_column='passing_score'
    )
    max_attempts = models.PositiveIntegerField(blank=True, null=True, db_column='max_attempts')
    time_limit = models.PositiveIntegerField(blank=True, null=True, db_column='time_limit')  # seconds
    is_required = models.BooleanField(default=True, db_column='is_required')
    settings = models.JSONField(default=default_assessment_settings, db_column='settings')
    created_at = models.DateTimeField(default=timezone.now, db_column='created_at')
    updated_at = models.DateTimeField(auto_now=True, db_column='updated_at')

    class Meta:
        db_table = 'assessments'
        ordering = ['-created_at']

    @property
    def requires_questions(self):
        return self.type in ('quiz', 'exam')

    @property
    def show_results_immediately(self):
        return bool((self.settings or {}).get('show_results_immediately', True))

    def clean(self):
        if self.module_id and self.module.course_id != self.course_id:
            raise ValidationError({'module': 'Module does not belong to the assessment course'})

    def __str__(self):
        return self.title


class Question(models.Model):
    """Assessment question - maps to questions table"""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='id')
    assessment = models.ForeignKey(Assessment, on_delete=models.CASCADE, related_name='questions', db_column='assessment_id')
    type = models.CharField(max_length=30, choices=QUESTION_TYPES, db_column='type')
    text = models.TextField(db_column='text')
    options = models.JSONField(default=list, db_column='options')
    correct_answer = models.JSONField(db_column='correct_answer')
    points = models.PositiveIntegerField(default=1, db_column='points')
    explanation = models.TextField(blank=True, null=True, db_column='explanation')
    order = models.IntegerField(default=0, db_column='order')

    class Meta:
        db_table = 'questions'
        ordering = ['assessment', 'order']

    def clean(self):
        errors = question_definition_errors(self.type, self.options, self.correct_answer, self.points)
        if errors:
            raise ValidationError(errors)


class Enrollment(models.Model):
    """Learner enrollment in a course, carrying the aggregate progress"""
    STATUS_CHOICES = [
        ('enrolled', 'Enrolled'),
        ('in_progress', 'In Progress'),
        ('completed', 'Completed'),
        ('dropped', 'Dropped'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='id')
    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name='enrollments', db_column='course_id')
    trainee = models.ForeignKey(Profile, on_delete=models.CASCADE, related_name='enrollments', db_column='trainee_id')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='enrolled', db_column='status')
    progress_percentage = models.IntegerField(default=0, db_column='progress_percentage')
    enrolled_at = models.DateTimeField(default=timezone.now, db_column='enrolled_at')
    started_at = models.DateTimeField(blank=True, null=True, db_column='started_at')
    completed_at = models.DateTimeField(blank=True, null=True, db_column='completed_at')
    due_date = models.DateTimeField(blank=True, null=True, db_column='due_date')
    updated_at = models.DateTimeField(auto_now=True, db_column='updated_at')

    class Meta:
        db_table = 'enrollments'
        unique_together = ['course', 'trainee']

    @property
    def is_active(self):
        return self.status != 'dropped'

    def __str__(self):
        return f"{self.trainee} in {self.course}"
