"""
Permission classes and role helpers for API endpoints.
"""
from rest_framework import permissions


def get_profile(user):
    """Return the user's profile or None (anonymous users, half-created users)."""
    if not user or not user.is_authenticated:
        return None
    return getattr(user, 'profile', None)


def is_admin_user(user):
    """Platform administrators: ADMIN role or Django superuser."""
    if not user or not user.is_authenticated:
        return False
    if getattr(user, 'is_superuser', False):
        return True
    prof = get_profile(user)
    return bool(prof and prof.is_admin)


class IsAdministrator(permissions.BasePermission):
    """
    Permission to check if user is an Administrator.
    """

    def has_permission(self, request, view):
        return is_admin_user(request.user)


class IsActiveAccount(permissions.BasePermission):
    """
    Reject accounts that have been soft-deleted.

    Deactivated auth users are already refused at login; this covers sessions
    that were opened before the deletion ran.
    """
    message = 'This account has been deleted.'

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False
        prof = get_profile(user)
        return not (prof and prof.is_deleted)
