"""
Trainee app views - taking assessments and reporting learning progress

Domain errors (attempt limits, closed sessions, missing enrollments) are raised
by the services and rendered by the project exception handler.
"""
import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from accounts.auth import get_request_profile
from accounts.permissions import can_act_on_enrollment, can_view_enrollment
from instructor.models import Assessment, Enrollment, Module
from instructor.serializers import QuestionSerializer
from trainee.exceptions import NotEnrolled
from trainee.models import Attempt, AttemptSession, ProgressRecord
from trainee.serializers import (
    AttemptReviewSerializer, AttemptSerializer, AttemptSessionSerializer, CompleteContentSerializer,
    ProgressRecordSerializer, RecordAnswersSerializer, StartAttemptSerializer, SubmitAttemptSerializer,
    TraineeAssessmentSerializer, VideoProgressSerializer,
)
from trainee.services.attempts import AttemptManager
from trainee.services.completion import ContentCompletionTracker
from trainee.services.progress import ProgressAggregator

logger = logging.getLogger(__name__)

LOOKUP_ERRORS = (ValueError, DjangoValidationError)


def _sees_answer_key(profile, course):
    return profile.is_admin or (profile.is_instructor and course.instructor_id == profile.id)


def _learner_enrollment(profile, course_id, enrollment_id=None):
    """
    The enrollment a learning action applies to: the given one, or the
    caller's own enrollment in the course. Only its trainee (or an admin) may act on it.
    """
    if enrollment_id:
        try:
            enrollment = Enrollment.objects.select_related('course').get(id=enrollment_id)
        except (Enrollment.DoesNotExist,) + LOOKUP_ERRORS:
            raise NotEnrolled()
    else:
        enrollment = (
            Enrollment.objects.select_related('course')
            .filter(trainee=profile, course_id=course_id)
            .exclude(status='dropped')
            .first()
        )
        if enrollment is None:
            raise NotEnrolled()

    if not can_act_on_enrollment(profile, enrollment):
        raise PermissionDenied('You can only act on your own enrollment')
    return enrollment


# ============ Assessments ============

@api_view(['GET'])
@permission_classes([IsAuthenticated])
def trainee_assessment_detail(request, assessment_id):
    """Assessment for taking, with the caller's attempt history and open session"""
    profile = get_request_profile(request)
    try:
        assessment = Assessment.objects.select_related('course').get(id=assessment_id)
    except (Assessment.DoesNotExist,) + LOOKUP_ERRORS:
        return Response({'error': 'Assessment not found'}, status=status.HTTP_404_NOT_FOUND)

    data = dict(TraineeAssessmentSerializer(assessment).data)
    if _sees_answer_key(profile, assessment.course):
        data['questions'] = QuestionSerializer(assessment.questions.all(), many=True).data
        return Response(data)

    enrollment = _learner_enrollment(profile, assessment.course_id, request.query_params.get('enrollment_id'))
    if enrollment.course_id != assessment.course_id:
        return Response({'error': 'Assessment not found'}, status=status.HTTP_404_NOT_FOUND)

    running = AttemptSession.objects.filter(
        assessment=assessment, enrollment=enrollment, status='running'
    ).first()
    attempts = AttemptManager.list_attempts(assessment_id=assessment.id, enrollment_id=enrollment.id)

    data['enrollment_id'] = str(enrollment.id)
    data['eligibility'] = AttemptManager.eligibility(assessment, enrollment)
    data['attempts'] = AttemptSerializer(attempts, many=True).data
    data['session'] = AttemptSessionSerializer(running).data if running else None
    return Response(data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def trainee_attempt_start(request, assessment_id):
    """Start the clock on an assessment - explicit learner action only"""
    profile = get_request_profile(request)
    body = StartAttemptSerializer(data=request.data)
    body.is_valid(raise_exception=True)

    try:
        assessment = Assessment.objects.get(id=assessment_id)
    except (Assessment.DoesNotExist,) + LOOKUP_ERRORS:
        return Response({'error': 'Assessment not found'}, status=status.HTTP_404_NOT_FOUND)

    enrollment = _learner_enrollment(profile, assessment.course_id, body.validated_data.get('enrollment_id'))
    session = AttemptManager.start_attempt(assessment.id, enrollment.id)

    data = dict(AttemptSessionSerializer(session).data)
    data['questions'] = TraineeAssessmentSerializer(assessment).data['questions']
    return Response(data, status=status.HTTP_201_CREATED)


def _owned_session(profile, session_id):
    try:
        session = AttemptSession.objects.select_related('enrollment').get(id=session_id)
    except (AttemptSession.DoesNotExist,) + LOOKUP_ERRORS:
        return None
    if not can_act_on_enrollment(profile, session.enrollment):
        raise PermissionDenied('You can only act on your own attempt')
    return session


@api_view(['PATCH'])
@permission_classes([IsAuthenticated])
def trainee_session_answers(request, session_id):
    """Save answers to a running session; past the deadline the session is auto-submitted"""
    profile = get_request_profile(request)
    if _owned_session(profile, session_id) is None:
        return Response({'error': 'Attempt session not found'}, status=status.HTTP_404_NOT_FOUND)

    body = RecordAnswersSerializer(data=request.data)
    body.is_valid(raise_exception=True)

    session = AttemptManager.record_answers(session_id, body.validated_data['answers'])
    return Response(AttemptSessionSerializer(session).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def trainee_session_abandon(request, session_id):
    """Discard a running session without creating an attempt"""
    profile = get_request_profile(request)
    if _owned_session(profile, session_id) is None:
        return Response({'error': 'Attempt session not found'}, status=status.HTTP_404_NOT_FOUND)

    session = AttemptManager.abandon(session_id)
    return Response(AttemptSessionSerializer(session).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def trainee_attempt_submit(request, assessment_id):
    """Score and record an attempt"""
    profile = get_request_profile(request)
    body = SubmitAttemptSerializer(data=request.data)
    body.is_valid(raise_exception=True)
    payload = body.validated_data

    try:
        assessment = Assessment.objects.get(id=assessment_id)
    except (Assessment.DoesNotExist,) + LOOKUP_ERRORS:
        return Response({'error': 'Assessment not found'}, status=status.HTTP_404_NOT_FOUND)

    enrollment = _learner_enrollment(profile, assessment.course_id, payload.get('enrollment_id'))
    attempt = AttemptManager.submit(
        assessment.id,
        enrollment.id,
        payload.get('answers') or {},
        time_taken=payload.get('time_taken'),
        session_id=payload.get('session_id'),
    )

    reveal = assessment.show_results_immediately or _sees_answer_key(profile, enrollment.course)
    data = AttemptReviewSerializer(attempt, context={'reveal_answers': reveal}).data
    return Response(data, status=status.HTTP_201_CREATED)


# ============ Attempt history ============

@api_view(['GET'])
@permission_classes([IsAuthenticated])
def trainee_attempts(request):
    """Attempts visible to the caller, most recent first"""
    profile = get_request_profile(request)
    params = request.query_params
    trainee_id = params.get('trainee_id')
    if profile.is_trainee:
        trainee_id = profile.id

    try:
        attempts = AttemptManager.list_attempts(
            assessment_id=params.get('assessment_id'),
            enrollment_id=params.get('enrollment_id'),
            trainee_id=trainee_id,
        )
        if profile.is_instructor:
            attempts = attempts.filter(assessment__course__instructor=profile)
        results = AttemptSerializer(attempts, many=True).data
    except LOOKUP_ERRORS:
        return Response({'error': 'Invalid filter value'}, status=status.HTTP_400_BAD_REQUEST)

    return Response({'count': len(results), 'results': results})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def trainee_attempt_detail(request, attempt_id):
    """Review of one attempt; answer key included per the assessment's settings"""
    profile = get_request_profile(request)
    try:
        attempt = Attempt.objects.select_related('assessment', 'enrollment__course').get(id=attempt_id)
    except (Attempt.DoesNotExist,) + LOOKUP_ERRORS:
        return Response({'error': 'Attempt not found'}, status=status.HTTP_404_NOT_FOUND)

    if not can_view_enrollment(profile, attempt.enrollment):
        return Response({'error': 'Attempt not found'}, status=status.HTTP_404_NOT_FOUND)

    reveal = attempt.assessment.show_results_immediately or _sees_answer_key(profile, attempt.enrollment.course)
    return Response(AttemptReviewSerializer(attempt, context={'reveal_answers': reveal}).data)


# ============ Progress ============

def _module_for(module_id):
    try:
        return Module.objects.get(id=module_id)
    except Module.DoesNotExist:
        return None


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def trainee_progress_complete(request):
    """Acknowledge a content item as completed"""
    profile = get_request_profile(request)
    body = CompleteContentSerializer(data=request.data)
    body.is_valid(raise_exception=True)
    payload = body.validated_data

    module = _module_for(payload['module_id'])
    if module is None:
        return Response({'error': 'Module not found'}, status=status.HTTP_404_NOT_FOUND)

    enrollment = _learner_enrollment(profile, module.course_id, payload.get('enrollment_id'))
    record = ContentCompletionTracker.complete_content(
        enrollment.id, payload['content_id'], module.id, time_spent=payload.get('time_spent'),
    )
    enrollment.refresh_from_db()

    return Response({
        'record': ProgressRecordSerializer(record).data,
        'progress_percentage': enrollment.progress_percentage,
        'enrollment_status': enrollment.status,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def trainee_progress_video(request):
    """Report the watched position of a video; completes it past the threshold"""
    profile = get_request_profile(request)
    body = VideoProgressSerializer(data=request.data)
    body.is_valid(raise_exception=True)
    payload = body.validated_data

    module = _module_for(payload['module_id'])
    if module is None:
        return Response({'error': 'Module not found'}, status=status.HTTP_404_NOT_FOUND)

    enrollment = _learner_enrollment(profile, module.course_id, payload.get('enrollment_id'))
    outcome = ContentCompletionTracker.report_video_progress(
        enrollment.id, payload['content_id'], module.id, payload['watched_seconds'],
    )
    enrollment.refresh_from_db()

    return Response({
        'record': ProgressRecordSerializer(outcome['record']).data,
        'watched_ratio': outcome['watched_ratio'],
        'completed': outcome['completed'],
        'newly_completed': outcome['newly_completed'],
        'progress_percentage': enrollment.progress_percentage,
        'enrollment_status': enrollment.status,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def trainee_enrollment_progress(request, enrollment_id):
    """Enrollment progress with per-module breakdown; recomputation happens on progress events"""
    profile = get_request_profile(request)
    try:
        enrollment = Enrollment.objects.select_related('course').get(id=enrollment_id)
    except (Enrollment.DoesNotExist,) + LOOKUP_ERRORS:
        return Response({'error': 'Enrollment not found'}, status=status.HTTP_404_NOT_FOUND)

    if not can_view_enrollment(profile, enrollment):
        return Response({'error': 'Enrollment not found'}, status=status.HTTP_404_NOT_FOUND)

    return Response(ProgressAggregator.snapshot(enrollment))


@api_view(['PUT'])
@permission_classes([IsAuthenticated])
def trainee_progress_update(request):
    """Record a view of a content item and the time spent on it"""
    profile = get_request_profile(request)
    body = CompleteContentSerializer(data=request.data)
    body.is_valid(raise_exception=True)
    payload = body.validated_data

    module = _module_for(payload['module_id'])
    if module is None:
        return Response({'error': 'Module not found'}, status=status.HTTP_404_NOT_FOUND)

    enrollment = _learner_enrollment(profile, module.course_id, payload.get('enrollment_id'))
    record = ContentCompletionTracker.touch_content(
        enrollment.id, payload['content_id'], module.id, time_spent=payload.get('time_spent'),
    )
    return Response(ProgressRecordSerializer(record).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def trainee_progress_records(request, enrollment_id):
    """Progress records of an enrollment, optionally filtered by module_id and content_id"""
    profile = get_request_profile(request)
    try:
        enrollment = Enrollment.objects.select_related('course').get(id=enrollment_id)
    except (Enrollment.DoesNotExist,) + LOOKUP_ERRORS:
        return Response({'error': 'Enrollment not found'}, status=status.HTTP_404_NOT_FOUND)

    if not can_view_enrollment(profile, enrollment):
        return Response({'error': 'Enrollment not found'}, status=status.HTTP_404_NOT_FOUND)

    params = request.query_params
    try:
        records = ProgressRecord.objects.filter(enrollment=enrollment)
        if params.get('module_id'):
            records = records.filter(module_id=params['module_id'])
        if params.get('content_id'):
            records = records.filter(content_id=params['content_id'])
        results = ProgressRecordSerializer(records.order_by('module__order', 'content__order'), many=True).data
    except LOOKUP_ERRORS:
        return Response({'error': 'Invalid filter value'}, status=status.HTTP_400_BAD_REQUEST)

    return Response({'count': len(results), 'results': results})
