"""
Resolve the LMS profile behind an authenticated request
"""
import logging

from rest_framework.exceptions import NotAuthenticated, PermissionDenied

from .models import Profile

logger = logging.getLogger(__name__)


def get_request_profile(request):
    """
    Return the Profile linked to ``request.user``.

    Raises NotAuthenticated for anonymous requests and PermissionDenied when
    the auth user has no LMS profile or the profile is inactive.
    """
    user = getattr(request, 'user', None)
    if not user or not user.is_authenticated:
        raise NotAuthenticated()

    try:
        profile = user.profile
    except Profile.DoesNotExist:
        logger.warning(f"[AUTH] Auth user {user.pk} has no LMS profile")
        raise PermissionDenied('No LMS profile is linked to this account')

    if profile.status != 'active':
        raise PermissionDenied('This account is inactive')
    return profile
