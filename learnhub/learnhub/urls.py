"""
URL configuration for the learnhub project.

/api/trainee/     assessment taking and progress reporting
/api/instructor/  authoring, enrollment administration and course summaries
/api/health/      liveness and database checks
"""
from django.contrib import admin
from django.urls import include, path

from .health_check import database_status, health_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/trainee/', include('trainee.urls')),
    path('api/instructor/', include('instructor.urls')),
    path('api/health/', health_check, name='health-check'),
    path('api/health/database/', database_status, name='health-database'),
]
