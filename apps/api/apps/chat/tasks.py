"""
Celery tasks for chat broadcast.
"""
import logging

from celery import shared_task

from apps.core.errors import BroadcastFailure

logger = logging.getLogger(__name__)


@shared_task(name='apps.chat.tasks.publish_message_event', bind=True, max_retries=3)
def publish_message_event(self, message_id):
    """
    Publish a stored message to the relay, retrying broadcast failures.

    Args:
        message_id: Message model ID
    """
    from apps.chat import broadcast
    from apps.chat.models import Message
    from apps.core.observability import metrics

    message = Message.objects.select_related('sender').filter(id=message_id).first()
    if message is None:
        logger.warning(
            'Broadcast skipped, message not found',
            extra={'event': 'chat_broadcast_skipped', 'message_id': message_id}
        )
        return None

    try:
        channel = broadcast.publish_message(message)
    except BroadcastFailure as exc:
        if self.request.retries >= self.max_retries:
            broadcast.record_broadcast_failure(
                message.id, message.conversation_id, exc, mode='async'
            )
            return None
        raise self.retry(exc=exc, countdown=2 ** self.request.retries)

    metrics.chat_broadcasts_total.labels(mode='async', result='success').inc()
    return channel
