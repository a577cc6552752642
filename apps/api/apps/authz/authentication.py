"""
DRF authentication backed by opaque session tokens.
"""
from django.conf import settings
from rest_framework import authentication, exceptions

from apps.authz import identity as identity_resolver
from apps.core.errors import Unauthenticated
from apps.core.observability.correlation import bind_user_context


def get_request_token(request):
    """Bearer token from the Authorization header, falling back to the auth cookie."""
    header = authentication.get_authorization_header(request).split()
    if header and header[0].lower() == b'bearer':
        if len(header) != 2:
            return None
        try:
            return header[1].decode()
        except UnicodeError:
            return None
    return request.COOKIES.get(settings.AUTH_COOKIE_NAME)


class SessionTokenAuthentication(authentication.BaseAuthentication):
    """
    Authenticate `Authorization: Bearer <token>` or the `auth_token` cookie.

    On success `request.user` is the User and `request.auth` is its chat
    Identity (PatientIdentity / DoctorIdentity, or None for admins).
    """
    keyword = 'Bearer'

    def authenticate(self, request):
        token = get_request_token(request)
        if not token:
            return None

        try:
            resolved = identity_resolver.resolve(token)
        except Unauthenticated as exc:
            raise exceptions.AuthenticationFailed(exc.message)

        bind_user_context(resolved.user)
        return resolved.user, resolved.identity

    def authenticate_header(self, request):
        # Makes DRF answer 401 (not 403) for unauthenticated requests
        return self.keyword
