"""
Message store: append-only, id-ordered message log per conversation.
"""
import time

from django.db import transaction

from apps.chat.broadcast import schedule_broadcast
from apps.chat.models import Conversation, Message
from apps.core.errors import DomainValidationError, Forbidden, NotFound
from apps.core.observability import metrics
from apps.core.observability.events import log_message_appended
from apps.core.observability.tracing import trace_span


def append_message(conversation_id, sender_id, body) -> Message:
    """
    Durably append a message.

    The conversation row is locked for the duration of the insert, so ids
    within a conversation follow commit order. The body is stored as sent;
    only its trimmed form is checked for emptiness.

    Raises:
        DomainValidationError: body empty or whitespace only
        NotFound: conversation does not exist
        Forbidden: sender is not the conversation's patient or doctor
    """
    if body is None or not str(body).strip():
        raise DomainValidationError('message body must not be empty')

    start_time = time.time()
    with trace_span('chat.append_message', attributes={'conversation_id': str(conversation_id)}):
        with transaction.atomic():
            conversation = (
                Conversation.objects
                .select_for_update(of=('self',))
                .select_related('patient', 'doctor')
                .filter(id=conversation_id)
                .first()
            )
            if conversation is None:
                raise NotFound('conversation not found')

            if str(sender_id) == str(conversation.patient.user_id):
                sender_role = 'patient'
            elif str(sender_id) == str(conversation.doctor.user_id):
                sender_role = 'doctor'
            else:
                raise Forbidden()

            message = Message.objects.create(
                conversation=conversation,
                sender_id=sender_id,
                body=body,
            )
            Conversation.objects.filter(id=conversation.id).update(
                last_activity_at=message.created_at
            )

    duration = time.time() - start_time
    metrics.chat_message_append_duration_seconds.observe(duration)
    metrics.chat_messages_appended_total.labels(sender_role=sender_role).inc()
    log_message_appended(message, duration_ms=round(duration * 1000, 2))
    return message


def send_message(conversation_id, sender, body) -> Message:
    """
    Append, then publish once the append has committed.

    A publish failure never fails the send; see apps.chat.broadcast.
    """
    message = append_message(conversation_id, sender.id, body)
    message.sender = sender
    schedule_broadcast(message)
    return message


def list_messages(conversation_id, after_id=None):
    """
    Messages of a conversation in ascending id order.

    after_id restricts the result to newer messages, same ordering.
    """
    queryset = (
        Message.objects
        .select_related('sender')
        .filter(conversation_id=conversation_id)
    )
    if after_id is not None:
        queryset = queryset.filter(id__gt=after_id)
    return list(queryset.order_by('id'))
