"""
Authz views - login, logout, current user.
"""
import logging

from django.conf import settings
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.authz import services
from apps.authz.authentication import get_request_token
from apps.authz.serializers import LoginSerializer, MeSerializer, SessionSerializer

logger = logging.getLogger(__name__)


class LoginView(APIView):
    """
    POST /api/auth/login/

    Exchanges email + password for an opaque session token. The token is
    returned in the body and also set as the auth cookie.
    """
    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        session = services.login(
            serializer.validated_data['email'],
            serializer.validated_data['password'],
        )

        response = Response(SessionSerializer(session).data, status=status.HTTP_200_OK)
        response.set_cookie(
            settings.AUTH_COOKIE_NAME,
            session.token,
            expires=session.expires_at,
            httponly=True,
            secure=not settings.DEBUG,
            samesite='Lax',
        )
        return response


class LogoutView(APIView):
    """
    POST /api/auth/logout/

    Idempotent: an unknown or missing token still answers 204.
    """
    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request):
        revoked = services.invalidate_session(get_request_token(request))
        logger.info('Logout', extra={'event': 'auth_logout', 'revoked': revoked})

        response = Response(status=status.HTTP_204_NO_CONTENT)
        response.delete_cookie(settings.AUTH_COOKIE_NAME)
        return response


class MeView(APIView):
    """GET /api/v1/me/ - the authenticated user and their chat identity."""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        serializer = MeSerializer(request.user, context={'identity': request.auth})
        return Response(serializer.data)
