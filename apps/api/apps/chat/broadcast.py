"""
Publish stored messages to the relay.

Write-then-publish: publishing is registered with transaction.on_commit, so
nothing is broadcast for an append that did not commit. A failed publish is
logged and counted, never raised to the sender: the message is already
stored and shows up on the next history load.
"""
from django.conf import settings
from django.db import transaction
from kombu.exceptions import OperationalError

from apps.chat.relay import MESSAGE_EVENT, channel_for_conversation, get_relay, message_payload
from apps.core.errors import BroadcastFailure, RelayError
from apps.core.observability import metrics
from apps.core.observability.events import log_broadcast_failed, log_broadcast_published
from apps.core.observability.tracing import trace_span


def publish_message(message, relay=None):
    """
    Publish one message event.

    Raises:
        BroadcastFailure: the relay rejected or failed the publish; the
            relay's RelayError is chained as the cause
    """
    relay = relay or get_relay()
    channel = channel_for_conversation(message.conversation_id)
    with trace_span('chat.publish_message', kind='producer', attributes={'message_id': message.id}):
        try:
            relay.publish(channel, MESSAGE_EVENT, message_payload(message))
        except RelayError as exc:
            raise BroadcastFailure(exc.message) from exc
    log_broadcast_published(message.id, message.conversation_id, channel)
    return channel


def record_broadcast_failure(message_id, conversation_id, exc, mode, stage='publish'):
    metrics.chat_broadcasts_total.labels(mode=mode, result='failure').inc()
    log_broadcast_failed(
        message_id,
        conversation_id,
        error_type=exc.__class__.__name__,
        stage=stage,
        mode=mode,
    )


def _publish_inline(message):
    try:
        publish_message(message)
    except BroadcastFailure as exc:
        record_broadcast_failure(message.id, message.conversation_id, exc, mode='inline')
        return
    metrics.chat_broadcasts_total.labels(mode='inline', result='success').inc()


def _enqueue(message):
    from apps.chat.tasks import publish_message_event

    try:
        publish_message_event.delay(message.id)
    except OperationalError as exc:
        record_broadcast_failure(
            message.id, message.conversation_id, exc, mode='async', stage='enqueue'
        )


def schedule_broadcast(message):
    """Publish the message after the current transaction commits."""
    if settings.CHAT_BROADCAST_ASYNC:
        transaction.on_commit(lambda: _enqueue(message))
    else:
        transaction.on_commit(lambda: _publish_inline(message))
