"""
Instructor app serializers - assessment authoring and enrollment administration
"""
from django.db import transaction
from rest_framework import serializers

from .models import Assessment, Course, Enrollment, Module, Question, question_definition_errors


class QuestionSerializer(serializers.ModelSerializer):
    """Full question definition, including the answer key. Never sent to trainees."""
    id = serializers.UUIDField(read_only=True)
    options = serializers.ListField(child=serializers.CharField(allow_blank=True), min_length=2)
    correct_answer = serializers.JSONField()
    points = serializers.IntegerField(min_value=1, default=1)

    class Meta:
        model = Question
        fields = ['id', 'type', 'text', 'options', 'correct_answer', 'points', 'explanation', 'order']

    def validate(self, attrs):
        errors = question_definition_errors(
            attrs.get('type'),
            attrs.get('options'),
            attrs.get('correct_answer'),
            attrs.get('points', 1),
        )
        if errors:
            raise serializers.ValidationError(errors)
        return attrs


class AssessmentSerializer(serializers.ModelSerializer):
    """
    Instructor view of an assessment with its questions inline.

    Writing ``questions`` replaces the whole question list; quizzes and exams
    must always end up with at least one question.
    """
    questions = QuestionSerializer(many=True, required=False)
    course = serializers.PrimaryKeyRelatedField(queryset=Course.objects.all())
    module = serializers.PrimaryKeyRelatedField(queryset=Module.objects.all(), required=False, allow_null=True)
    max_attempts = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    time_limit = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    passing_score = serializers.IntegerField(min_value=0, max_value=100, required=False)
    settings = serializers.JSONField(required=False)

    class Meta:
        model = Assessment
        fields = [
            'id', 'course', 'module', 'title', 'description', 'type', 'passing_score',
            'max_attempts', 'time_limit', 'is_required', 'settings', 'questions',
            'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate_settings(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError('Settings must be an object')
        for key in ('show_results_immediately', 'randomize_questions'):
            if key in value and not isinstance(value[key], bool):
                raise serializers.ValidationError(f'{key} must be a boolean')
        return value

    def validate(self, attrs):
        course = attrs.get('course', getattr(self.instance, 'course', None))
        module = attrs.get('module', getattr(self.instance, 'module', None))
        if module is not None and course is not None and module.course_id != course.id:
            raise serializers.ValidationError({'module': 'Module does not belong to the assessment course'})

        assessment_type = attrs.get('type', getattr(self.instance, 'type', 'quiz'))
        if Assessment(type=assessment_type).requires_questions:
            if 'questions' in attrs:
                question_count = len(attrs['questions'])
            elif self.instance is not None:
                question_count = self.instance.questions.count()
            else:
                question_count = 0
            if question_count == 0:
                raise serializers.ValidationError({'questions': f'A {assessment_type} needs at least one question'})
        return attrs

    def _write_questions(self, assessment, questions):
        assessment.questions.all().delete()
        for index, question in enumerate(questions):
            question.setdefault('order', index)
        Question.objects.bulk_create([Question(assessment=assessment, **q) for q in questions])

    def create(self, validated_data):
        questions = validated_data.pop('questions', [])
        settings = validated_data.pop('settings', None)
        with transaction.atomic():
            assessment = Assessment(**validated_data)
            if settings is not None:
                assessment.settings = {**assessment.settings, **settings}
            assessment.save()
            self._write_questions(assessment, questions)
        return assessment

    def update(self, instance, validated_data):
        questions = validated_data.pop('questions', None)
        settings = validated_data.pop('settings', None)
        with transaction.atomic():
            for attr, value in validated_data.items():
                setattr(instance, attr, value)
            if settings is not None:
                instance.settings = {**(instance.settings or {}), **settings}
            instance.save()
            if questions is not None:
                self._write_questions(instance, questions)
        return instance


class EnrollmentSerializer(serializers.ModelSerializer):
    trainee_name = serializers.CharField(source='trainee.full_name', read_only=True)
    course_title = serializers.CharField(source='course.title', read_only=True)

    class Meta:
        model = Enrollment
        fields = [
            'id', 'course', 'course_title', 'trainee', 'trainee_name', 'status',
            'progress_percentage', 'enrolled_at', 'started_at', 'completed_at', 'due_date',
        ]
        read_only_fields = fields
