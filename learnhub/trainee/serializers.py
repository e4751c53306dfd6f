"""
Trainee app serializers - learner-facing assessment, session, attempt and progress payloads

Question payloads built here never carry ``correct_answer`` or ``explanation``
unless the ``reveal_answers`` context flag is set.
"""
import random

from rest_framework import serializers

from instructor.models import Assessment, Question
from trainee.models import Attempt, AttemptSession, ProgressRecord
from trainee.services.timer import SessionClock


class TraineeQuestionSerializer(serializers.ModelSerializer):
    """Question as delivered to a learner - answer key stripped"""
    class Meta:
        model = Question
        fields = ['id', 'type', 'text', 'options', 'points', 'order']
        read_only_fields = fields


class TraineeAssessmentSerializer(serializers.ModelSerializer):
    questions = serializers.SerializerMethodField()
    show_results_immediately = serializers.BooleanField(read_only=True)

    class Meta:
        model = Assessment
        fields = [
            'id', 'course', 'module', 'title', 'description', 'type', 'passing_score',
            'max_attempts', 'time_limit', 'is_required', 'show_results_immediately', 'questions',
        ]
        read_only_fields = fields

    def get_questions(self, obj):
        questions = list(obj.questions.all())
        if (obj.settings or {}).get('randomize_questions'):
            questions = random.sample(questions, len(questions))
        return TraineeQuestionSerializer(questions, many=True).data


class AttemptSessionSerializer(serializers.ModelSerializer):
    remaining_seconds = serializers.SerializerMethodField()
    attempt_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = AttemptSession
        fields = [
            'id', 'assessment', 'enrollment', 'status', 'answers', 'started_at',
            'deadline', 'remaining_seconds', 'closed_at', 'attempt_id',
        ]
        read_only_fields = fields

    def get_remaining_seconds(self, obj):
        if not obj.is_running:
            return None
        return SessionClock(obj).remaining_seconds()


class AttemptSerializer(serializers.ModelSerializer):
    """Attempt summary - no per-question breakdown"""
    assessment_title = serializers.CharField(source='assessment.title', read_only=True)

    class Meta:
        model = Attempt
        fields = [
            'id', 'assessment', 'assessment_title', 'enrollment', 'trainee', 'attempt_number',
            'score', 'points_earned', 'points_possible', 'is_passed', 'time_taken',
            'submission_type', 'timing_flagged', 'started_at', 'submitted_at',
        ]
        read_only_fields = fields


class AttemptReviewSerializer(AttemptSerializer):
    """
    Attempt with the learner's answers and per-question outcome.
    Correct answers and explanations are added only when ``reveal_answers`` is in the context.
    """
    answers = serializers.JSONField(read_only=True)
    results = serializers.SerializerMethodField()
    answers_revealed = serializers.SerializerMethodField()

    class Meta(AttemptSerializer.Meta):
        fields = AttemptSerializer.Meta.fields + ['answers', 'results', 'answers_revealed']
        read_only_fields = fields

    def get_answers_revealed(self, obj):
        return bool(self.context.get('reveal_answers'))

    def get_results(self, obj):
        results = [dict(r) for r in (obj.results or [])]
        if not self.context.get('reveal_answers'):
            return results

        questions = {str(q.id): q for q in obj.assessment.questions.all()}
        for result in results:
            question = questions.get(result['question_id'])
            if question is not None:
                result['correct_answer'] = question.correct_answer
                result['explanation'] = question.explanation
        return results


class ProgressRecordSerializer(serializers.ModelSerializer):
    class Meta:
        model = ProgressRecord
        fields = [
            'id', 'enrollment', 'module', 'content', 'status', 'time_spent',
            'started_at', 'last_accessed_at', 'completed_at',
        ]
        read_only_fields = fields


# ---- request bodies ------------------------------------------------------

class StartAttemptSerializer(serializers.Serializer):
    enrollment_id = serializers.UUIDField(required=False)


class RecordAnswersSerializer(serializers.Serializer):
    answers = serializers.JSONField()


class SubmitAttemptSerializer(serializers.Serializer):
    enrollment_id = serializers.UUIDField(required=False)
    session_id = serializers.UUIDField(required=False, allow_null=True)
    answers = serializers.JSONField(required=False)
    time_taken = serializers.IntegerField(min_value=0, required=False, allow_null=True)


class CompleteContentSerializer(serializers.Serializer):
    enrollment_id = serializers.UUIDField(required=False)
    module_id = serializers.UUIDField()
    content_id = serializers.UUIDField()
    time_spent = serializers.IntegerField(min_value=0, required=False, allow_null=True)


class VideoProgressSerializer(serializers.Serializer):
    enrollment_id = serializers.UUIDField(required=False)
    module_id = serializers.UUIDField()
    content_id = serializers.UUIDField()
    watched_seconds = serializers.FloatField(min_value=0)
