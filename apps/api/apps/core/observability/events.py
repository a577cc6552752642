"""
Domain events logging helpers.

Provides structured event logging for chat operations. Only identifiers
are logged; message bodies and names are redacted by sanitize_dict.
"""
from typing import Dict, Optional
from .logging import get_sanitized_logger, sanitize_dict

logger = get_sanitized_logger(__name__)


def log_domain_event(
    event_name: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    entity_ids: Optional[Dict[str, str]] = None,
    result: str = 'success',
    **extra_fields
):
    """
    Log a domain event with structured data.

    Args:
        event_name: Name of the event (e.g., 'chat_message_appended')
        entity_type: Type of entity (e.g., 'Conversation', 'Message')
        entity_id: ID of primary entity
        entity_ids: Dictionary of related entity IDs
        result: Result of operation (success, failure, etc.)
        **extra_fields: Additional fields to log (will be sanitized)

    Example:
        log_domain_event(
            'chat_message_appended',
            entity_type='Message',
            entity_id=str(message.id),
            entity_ids={'conversation_id': str(message.conversation_id)},
            result='success',
        )
    """
    event_data = {
        'event': event_name,
        'result': result,
    }

    if entity_type:
        event_data['entity_type'] = entity_type

    if entity_id:
        event_data['entity_id'] = entity_id

    if entity_ids:
        event_data.update(entity_ids)

    event_data.update(sanitize_dict(extra_fields))

    # Log at appropriate level based on result
    if result in ['failure', 'error']:
        logger.error(f'Domain event: {event_name}', extra=event_data)
    elif result in ['warning', 'blocked', 'denied', 'race']:
        logger.warning(f'Domain event: {event_name}', extra=event_data)
    else:
        logger.info(f'Domain event: {event_name}', extra=event_data)


def log_conversation_ensured(conversation, created, requester_role):
    """Log EnsureConversation outcome (created vs. returned existing)."""
    log_domain_event(
        'chat_conversation_ensured',
        entity_type='Conversation',
        entity_id=str(conversation.id),
        entity_ids={
            'conversation_id': str(conversation.id),
            'appointment_id': str(conversation.appointment_id),
        },
        result='created' if created else 'existing',
        requester_role=requester_role,
    )


def log_conversation_insert_race(appointment_id, patient_id, doctor_id, winner_id):
    """Log a concurrent insert that lost the uniqueness race and was resolved to the winner."""
    log_domain_event(
        'chat_conversation_insert_race',
        entity_type='Conversation',
        entity_id=str(winner_id),
        entity_ids={
            'appointment_id': str(appointment_id),
            'patient_id': str(patient_id),
            'doctor_id': str(doctor_id),
        },
        result='race',
    )


def log_message_appended(message, duration_ms=None):
    """Log a durable message append."""
    extra = {}
    if duration_ms is not None:
        extra['duration_ms'] = duration_ms

    log_domain_event(
        'chat_message_appended',
        entity_type='Message',
        entity_id=str(message.id),
        entity_ids={
            'message_id': str(message.id),
            'conversation_id': str(message.conversation_id),
            'sender_id': str(message.sender_id),
        },
        result='success',
        **extra
    )


def log_broadcast_published(message_id, conversation_id, channel):
    """Log a successful relay publish."""
    log_domain_event(
        'chat_broadcast_published',
        entity_type='Message',
        entity_id=str(message_id),
        entity_ids={'conversation_id': str(conversation_id)},
        result='success',
        channel=channel,
    )


def log_broadcast_failed(message_id, conversation_id, error_type, stage='publish', **extra):
    """
    Log a broadcast failure after a successful durable append.

    The message is stored; participants will see it on their next history
    reload. Never surfaced to the sender.
    """
    log_domain_event(
        'chat_broadcast_failed',
        entity_type='Message',
        entity_id=str(message_id),
        entity_ids={'conversation_id': str(conversation_id)},
        result='failure',
        error_type=error_type,
        stage=stage,
        **extra
    )


def log_relay_subscription(channel_name, user_id, granted, reason=None, membership_checked=False):
    """Log a relay subscription authorization decision."""
    extra = {
        'channel': channel_name,
        'requesting_user_id': str(user_id),
        'membership_checked': membership_checked,
    }
    if reason:
        extra['reason'] = reason

    log_domain_event(
        'chat_relay_subscription_authorized' if granted else 'chat_relay_subscription_denied',
        entity_type='RelayChannel',
        entity_id=channel_name,
        result='success' if granted else 'denied',
        **extra
    )
