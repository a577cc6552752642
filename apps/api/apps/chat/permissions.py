"""
Chat permissions.
"""
from rest_framework import permissions

from apps.core.errors import InvalidRole


class HasChatIdentity(permissions.BasePermission):
    """
    Only patients and doctors with a profile may use chat.

    The authentication class puts the resolved identity on request.auth;
    it is None for admins and for users whose role profile is missing.
    """

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        if request.auth is None:
            raise InvalidRole()
        return True
