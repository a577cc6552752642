"""
Health check endpoints.

Provides /healthz and /readyz endpoints for monitoring.
"""
import logging

import redis
from django.http import JsonResponse
from django.views import View
from django.db import DatabaseError, connection
from django.conf import settings

logger = logging.getLogger(__name__)


class HealthzView(View):
    """
    Basic health check endpoint.

    Returns 200 OK if application is running.
    Does not check dependencies.
    """

    def get(self, request):
        """Return basic health status."""
        health_data = {
            'status': 'ok',
            'version': getattr(settings, 'VERSION', 'unknown'),
        }

        commit_hash = getattr(settings, 'COMMIT_HASH', None)
        if commit_hash:
            health_data['commit'] = commit_hash

        return JsonResponse(health_data, status=200)


class ReadyzView(View):
    """
    Readiness check endpoint.

    Returns 200 OK if application is ready to serve traffic.
    Checks the database, and the Celery broker when chat broadcasts are
    published asynchronously. The broadcast relay itself is advisory and
    is not a readiness dependency.
    """

    def get(self, request):
        """Return readiness status with dependency checks."""
        checks = {
            'database': self._check_database(),
        }
        if settings.CHAT_BROADCAST_ASYNC:
            checks['broker'] = self._check_broker()

        all_healthy = all(checks.values())

        response_data = {
            'status': 'ready' if all_healthy else 'not_ready',
            'checks': checks,
        }

        return JsonResponse(response_data, status=200 if all_healthy else 503)

    def _check_database(self):
        """Check database connection."""
        try:
            with connection.cursor() as cursor:
                cursor.execute('SELECT 1')
                return True
        except DatabaseError as e:
            logger.error(
                'Database health check failed',
                extra={
                    'event': 'health_check_failed',
                    'check': 'database',
                    'error': str(e)
                }
            )
            return False

    def _check_broker(self):
        """Check the Redis broker used for async broadcasts."""
        try:
            redis.Redis.from_url(settings.CELERY_BROKER_URL).ping()
            return True
        except redis.RedisError as e:
            logger.error(
                'Broker health check failed',
                extra={
                    'event': 'health_check_failed',
                    'check': 'broker',
                    'error': str(e)
                }
            )
            return False
