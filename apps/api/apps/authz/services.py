"""
Session token issuance and revocation.
"""
import logging
import secrets
from datetime import timedelta

from django.conf import settings
from django.contrib.auth import authenticate
from django.utils import timezone

from apps.authz.models import AuthSession
from apps.core.errors import Unauthenticated

logger = logging.getLogger(__name__)


def create_session(user) -> AuthSession:
    """Issue a new opaque token for the user."""
    return AuthSession.objects.create(
        user=user,
        token=secrets.token_hex(32),
        expires_at=timezone.now() + timedelta(days=settings.AUTH_SESSION_TTL_DAYS),
    )


def login(email, password) -> AuthSession:
    """
    Verify credentials and issue a session.

    Raises:
        Unauthenticated: unknown email, wrong password, or inactive user
    """
    user = authenticate(email=email, password=password)
    if user is None:
        logger.warning('Login rejected', extra={'event': 'auth_login_rejected'})
        raise Unauthenticated('Invalid credentials')

    session = create_session(user)
    logger.info(
        'Login succeeded',
        extra={'event': 'auth_login', 'login_user_id': str(user.id), 'role': user.role}
    )
    return session


def invalidate_session(token) -> bool:
    """Delete the session for a token. Returns False if there was none."""
    if not token:
        return False
    deleted, _ = AuthSession.objects.filter(token=token).delete()
    return deleted > 0


def purge_expired_sessions() -> int:
    """Delete sessions past expires_at. Returns how many were removed."""
    deleted, _ = AuthSession.objects.filter(expires_at__lte=timezone.now()).delete()
    return deleted
