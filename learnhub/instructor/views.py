"""
Instructor app views - assessment authoring, enrollment administration and course progress
"""
import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import status, viewsets
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.response import Response

from accounts.auth import get_request_profile
from accounts.permissions import CanManageCourse, IsInstructorOrAdmin
from trainee.serializers import AttemptSerializer
from trainee.services.attempts import AttemptManager
from trainee.services.progress import ProgressAggregator

from .models import Assessment, Course, Enrollment
from .serializers import AssessmentSerializer, EnrollmentSerializer

logger = logging.getLogger(__name__)


class AssessmentViewSet(viewsets.ModelViewSet):
    """Create and edit assessments together with their questions"""
    serializer_class = AssessmentSerializer
    permission_classes = [IsInstructorOrAdmin, CanManageCourse]

    def get_queryset(self):
        profile = get_request_profile(self.request)
        queryset = Assessment.objects.select_related('course', 'module').prefetch_related('questions')
        if not profile.is_admin:
            queryset = queryset.filter(course__instructor=profile)

        course_id = self.request.query_params.get('course_id')
        if course_id:
            queryset = queryset.filter(course_id=course_id)
        return queryset

    def _check_course(self, course):
        profile = get_request_profile(self.request)
        if not profile.is_admin and course.instructor_id != profile.id:
            raise PermissionDenied('You can only author assessments for your own courses')

    def perform_create(self, serializer):
        self._check_course(serializer.validated_data['course'])
        assessment = serializer.save()
        logger.info(f"[CREATE_ASSESSMENT] {assessment.id} ({assessment.type}) in course {assessment.course_id}")

    def perform_update(self, serializer):
        if 'course' in serializer.validated_data:
            self._check_course(serializer.validated_data['course'])
        assessment = serializer.save()
        logger.info(f"[UPDATE_ASSESSMENT] {assessment.id}")

    @action(detail=True, methods=['get'])
    def attempts(self, request, pk=None):
        """Every attempt on this assessment, most recent first"""
        assessment = self.get_object()
        attempts = AttemptManager.list_attempts(assessment_id=assessment.id)
        return Response(AttemptSerializer(attempts, many=True).data)


class EnrollmentViewSet(viewsets.ReadOnlyModelViewSet):
    """Enrollments of the instructor's courses, with drop and reset"""
    serializer_class = EnrollmentSerializer
    permission_classes = [IsInstructorOrAdmin, CanManageCourse]

    def get_queryset(self):
        profile = get_request_profile(self.request)
        queryset = Enrollment.objects.select_related('course', 'trainee')
        if not profile.is_admin:
            queryset = queryset.filter(course__instructor=profile)

        course_id = self.request.query_params.get('course_id')
        if course_id:
            queryset = queryset.filter(course_id=course_id)
        return queryset.order_by('-enrolled_at')

    @action(detail=True, methods=['post'])
    def drop(self, request, pk=None):
        enrollment = self.get_object()
        return Response(ProgressAggregator.drop(enrollment.id))

    @action(detail=True, methods=['post'])
    def reset(self, request, pk=None):
        enrollment = self.get_object()
        return Response(ProgressAggregator.reset(enrollment.id))


@api_view(['GET'])
@permission_classes([IsInstructorOrAdmin])
def course_progress_summary(request, course_id):
    """Completion and attempt statistics for one course"""
    profile = get_request_profile(request)
    try:
        course = Course.objects.get(id=course_id)
    except (Course.DoesNotExist, ValueError, DjangoValidationError):
        return Response({'error': 'Course not found'}, status=status.HTTP_404_NOT_FOUND)

    if not profile.is_admin and course.instructor_id != profile.id:
        return Response({'error': 'Course not found'}, status=status.HTTP_404_NOT_FOUND)

    return Response(ProgressAggregator.course_summary(course.id))
