"""
Role-based access control for instructor and trainee operations
"""
from rest_framework import permissions

from .models import Profile


def _profile(request):
    user = request.user
    if not user or not user.is_authenticated:
        return None
    try:
        return user.profile
    except Profile.DoesNotExist:
        return None


class IsInstructorOrAdmin(permissions.BasePermission):
    """Only instructors and admins"""
    def has_permission(self, request, view):
        profile = _profile(request)
        return profile is not None and (profile.is_instructor or profile.is_admin)


class CanManageCourse(permissions.BasePermission):
    """
    Instructor can only manage objects of courses they teach.
    Admin can manage anything.
    """
    def has_permission(self, request, view):
        return _profile(request) is not None

    def has_object_permission(self, request, view, obj):
        profile = _profile(request)
        if profile is None:
            return False
        if profile.is_admin:
            return True
        course = obj if hasattr(obj, 'instructor_id') else getattr(obj, 'course', None)
        if profile.is_instructor:
            return course is not None and course.instructor_id == profile.id
        return request.method in permissions.SAFE_METHODS


def can_view_enrollment(profile, enrollment):
    """
    Trainees see their own enrollments, instructors the enrollments of
    their courses, admins everything.
    """
    if profile.is_admin:
        return True
    if profile.is_instructor:
        return enrollment.course.instructor_id == profile.id
    return enrollment.trainee_id == profile.id


def can_act_on_enrollment(profile, enrollment):
    """Only the enrolled trainee (or an admin) records learning activity."""
    return profile.is_admin or enrollment.trainee_id == profile.id
