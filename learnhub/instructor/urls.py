"""
Instructor app URL configuration
"""
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import AssessmentViewSet, EnrollmentViewSet, course_progress_summary

router = DefaultRouter()
router.register(r'assessments', AssessmentViewSet, basename='assessment')
router.register(r'enrollments', EnrollmentViewSet, basename='enrollment')

urlpatterns = [
    path('courses/<uuid:course_id>/progress-summary/', course_progress_summary, name='course-progress-summary'),
    path('', include(router.urls)),
]
