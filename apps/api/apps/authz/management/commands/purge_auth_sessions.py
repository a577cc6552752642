"""
Django management command to delete expired session tokens.

Usage:
    python manage.py purge_auth_sessions

Expired tokens are already rejected at authentication; this only keeps the
auth_session table small. Safe to run from cron.
"""
from django.core.management.base import BaseCommand

from apps.authz.services import purge_expired_sessions


class Command(BaseCommand):
    help = 'Delete expired auth sessions'

    def handle(self, *args, **options):
        deleted = purge_expired_sessions()
        self.stdout.write(self.style.SUCCESS(f'✓ Deleted {deleted} expired session(s)'))
