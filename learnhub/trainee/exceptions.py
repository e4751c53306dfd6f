"""
Domain errors raised by the attempt and progress services.

They are DRF APIExceptions so views can let them propagate; the project
exception handler renders them as ``{'error': ..., 'code': ...}``.
"""
from rest_framework import status
from rest_framework.exceptions import APIException


class AttemptLimitExceeded(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Maximum attempts reached for this assessment.'
    default_code = 'attempt_limit_exceeded'

    def __init__(self, max_attempts=None, attempts_used=None):
        detail = None
        if max_attempts is not None:
            detail = f'Maximum attempts ({max_attempts}) reached for this assessment.'
        super().__init__(detail)
        self.extra = {}
        if max_attempts is not None:
            self.extra = {'max_attempts': max_attempts, 'attempts_used': attempts_used}


class NotEnrolled(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'No active enrollment for this course.'
    default_code = 'not_enrolled'


class AssessmentNotInCourse(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Assessment does not belong to the enrolled course.'
    default_code = 'assessment_not_in_course'


class AttemptConflict(APIException):
    """Another submission for the same enrollment won the race; the client may retry."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'A concurrent submission was recorded first. Please retry.'
    default_code = 'attempt_conflict'
    retryable = True


class SessionClosed(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'This attempt session is no longer running.'
    default_code = 'session_closed'
