"""
Broadcast relay client (Pusher Channels).

The relay is advisory: the database is the source of truth and clients can
rebuild their view from history at any time. This module only knows how to
name channels, shape the event payload, publish, and sign subscription
grants.

The backend is configured with settings.CHAT_RELAY_BACKEND and built once
per process by get_relay(); tests switch it with override_settings.
"""
import logging
import re

import pusher
import requests
from django.conf import settings
from django.core.signals import setting_changed
from django.dispatch import receiver
from django.utils.module_loading import import_string
from pusher.errors import PusherError

from apps.core.errors import DomainValidationError, RelayError

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = 'private-chat-'
MESSAGE_EVENT = 'message'

_CHANNEL_RE = re.compile(r'^private-chat-(\d+)$')

_RELAY_SETTINGS = {
    'CHAT_RELAY_BACKEND',
    'PUSHER_APP_ID',
    'PUSHER_KEY',
    'PUSHER_SECRET',
    'PUSHER_CLUSTER',
}


def channel_for_conversation(conversation_id):
    return f'{CHANNEL_PREFIX}{conversation_id}'


def conversation_id_from_channel(channel_name):
    """Conversation id encoded in a chat channel name, or None for other channels."""
    match = _CHANNEL_RE.match(channel_name or '')
    if match is None:
        return None
    return int(match.group(1))


def message_payload(message):
    """Relay event body for a stored message."""
    return {
        'id': message.id,
        'conversation_id': message.conversation_id,
        'sender_id': str(message.sender_id),
        'sender_name': message.sender.display_name,
        'body': message.body,
        'created_at': message.created_at.isoformat(),
    }


class BaseRelay:
    """Interface every relay backend implements."""

    def publish(self, channel_name, event_name, payload):
        raise NotImplementedError

    def authorize_subscription(self, socket_id, channel_name):
        """Return the signed grant the client passes back to the relay."""
        raise NotImplementedError

    def client_config(self):
        """Public connection parameters for subscribers."""
        raise NotImplementedError


class PusherRelay(BaseRelay):
    """Pusher Channels over its HTTP API."""

    def __init__(self, app_id=None, key=None, secret=None, cluster=None):
        self.key = key or settings.PUSHER_KEY
        self.cluster = cluster or settings.PUSHER_CLUSTER
        self.client = pusher.Pusher(
            app_id=app_id or settings.PUSHER_APP_ID,
            key=self.key,
            secret=secret or settings.PUSHER_SECRET,
            cluster=self.cluster,
            ssl=True,
        )

    def publish(self, channel_name, event_name, payload):
        try:
            self.client.trigger(channel_name, event_name, payload)
        except (PusherError, requests.RequestException, ValueError) as exc:
            raise RelayError(f'{exc.__class__.__name__}: {exc}') from exc

    def authorize_subscription(self, socket_id, channel_name):
        try:
            return self.client.authenticate(channel=channel_name, socket_id=socket_id)
        except ValueError as exc:
            raise DomainValidationError(str(exc)) from exc

    def client_config(self):
        return {'key': self.key, 'cluster': self.cluster}


class InMemoryRelay(PusherRelay):
    """
    Records publishes instead of sending them. Grants are still signed by
    the Pusher SDK (signing is local, no network).

    Set `fail_with` to an exception instance to make publish raise it.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.published = []
        self.fail_with = None

    def publish(self, channel_name, event_name, payload):
        if self.fail_with is not None:
            raise self.fail_with
        self.published.append((channel_name, event_name, payload))

    def events_for(self, conversation_id):
        channel = channel_for_conversation(conversation_id)
        return [payload for name, _, payload in self.published if name == channel]


_relay = None


def get_relay() -> BaseRelay:
    """Process-wide relay backend, built on first use."""
    global _relay
    if _relay is None:
        _relay = import_string(settings.CHAT_RELAY_BACKEND)()
        logger.debug(
            'Relay backend initialised',
            extra={'event': 'chat_relay_init', 'backend': settings.CHAT_RELAY_BACKEND}
        )
    return _relay


def reset_relay():
    global _relay
    _relay = None


@receiver(setting_changed)
def _reset_relay_on_setting_change(setting, **kwargs):
    if setting in _RELAY_SETTINGS:
        reset_relay()
