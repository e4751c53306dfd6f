"""
Trainee app URL configuration - assessment taking and progress reporting
"""
from django.urls import path

from . import views

urlpatterns = [
    # Assessments and attempts
    path('assessments/<uuid:assessment_id>/', views.trainee_assessment_detail, name='trainee-assessment-detail'),
    path('assessments/<uuid:assessment_id>/start/', views.trainee_attempt_start, name='trainee-attempt-start'),
    path('assessments/<uuid:assessment_id>/submit/', views.trainee_attempt_submit, name='trainee-attempt-submit'),
    path('sessions/<uuid:session_id>/answers/', views.trainee_session_answers, name='trainee-session-answers'),
    path('sessions/<uuid:session_id>/abandon/', views.trainee_session_abandon, name='trainee-session-abandon'),
    path('attempts/', views.trainee_attempts, name='trainee-attempts'),
    path('attempts/<uuid:attempt_id>/', views.trainee_attempt_detail, name='trainee-attempt-detail'),

    # Progress
    path('progress/', views.trainee_progress_update, name='trainee-progress-update'),
    path('progress/<uuid:enrollment_id>/', views.trainee_progress_records, name='trainee-progress-records'),
    path('progress/complete/', views.trainee_progress_complete, name='trainee-progress-complete'),
    path('progress/video/', views.trainee_progress_video, name='trainee-progress-video'),
    path('enrollments/<uuid:enrollment_id>/progress/', views.trainee_enrollment_progress, name='trainee-enrollment-progress'),
]
