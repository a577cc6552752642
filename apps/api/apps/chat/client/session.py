"""
Client-side chat session for one open conversation.

    IDLE -> LOADING_HISTORY -> LIVE -> CLOSED
                  |
                  v
               FAILED  (retry() goes back to LOADING_HISTORY)

The session subscribes before it fetches history, so a message stored
between the two is seen by at least one of them; merging by id makes the
overlap harmless. The local list never holds a duplicate id and is always
in ascending id order.
"""
import bisect
import enum
import logging
import threading

from apps.chat.relay import MESSAGE_EVENT, channel_for_conversation
from apps.core.errors import DomainError, DomainValidationError

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    IDLE = 'idle'
    LOADING_HISTORY = 'loading_history'
    LIVE = 'live'
    FAILED = 'failed'
    CLOSED = 'closed'


class InvalidSessionState(Exception):
    pass


class ChatSession:
    """
    Args:
        conversation_id: conversation to open
        current_user_id: id of the signed-in user (for is_own_message)
        api: ChatApiClient, or anything with list_messages / send_message
        subscriber: RelaySubscriber
        on_change: optional callable(session), called after the visible
            message list or state changed
    """

    def __init__(self, conversation_id, current_user_id, api, subscriber, on_change=None):
        self.conversation_id = int(conversation_id)
        self.current_user_id = str(current_user_id)
        self.api = api
        self.subscriber = subscriber
        self.on_change = on_change
        self.state = SessionState.IDLE
        self.draft = ''
        self.last_error = None
        self._lock = threading.RLock()
        self._ids = []
        self._by_id = {}
        self._subscription = None
        self._refresh_pending = False

    @property
    def channel_name(self):
        return channel_for_conversation(self.conversation_id)

    @property
    def messages(self):
        """Snapshot of the merged view, ascending by id."""
        with self._lock:
            return [self._by_id[message_id] for message_id in self._ids]

    def is_own_message(self, message):
        return str(message.get('sender_id')) == self.current_user_id

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self):
        with self._lock:
            if self.state not in (SessionState.IDLE, SessionState.FAILED):
                raise InvalidSessionState(f'cannot open a session in state {self.state.value}')
            self.state = SessionState.LOADING_HISTORY
            self.last_error = None
            self._refresh_pending = False

        try:
            self._subscription = self.subscriber.subscribe(
                self.channel_name, MESSAGE_EVENT, self._on_event, on_ready=self._on_subscribed
            )
            history = self.api.list_messages(self.conversation_id)
        except DomainError as exc:
            if self._subscription is not None:
                self._subscription.unsubscribe()
                self._subscription = None
            with self._lock:
                if self.state is SessionState.LOADING_HISTORY:
                    self.state = SessionState.FAILED
                    self.last_error = exc
            logger.warning(
                'Session open failed',
                extra={'event': 'chat_session_open_failed',
                       'conversation_id': self.conversation_id,
                       'error_type': exc.__class__.__name__}
            )
            self._notify()
            raise

        with self._lock:
            if self.state is not SessionState.LOADING_HISTORY:
                # closed while loading
                return self
            self._merge(history)
            self.state = SessionState.LIVE
            catch_up, self._refresh_pending = self._refresh_pending, False
        self._notify()
        if catch_up:
            self._refresh_logged()
        return self

    def retry(self):
        if self.state is not SessionState.FAILED:
            raise InvalidSessionState(f'nothing to retry in state {self.state.value}')
        return self.open()

    def close(self):
        """Unsubscribe and drop local state. Safe to call more than once."""
        with self._lock:
            if self.state is SessionState.CLOSED:
                return
            self.state = SessionState.CLOSED
            subscription, self._subscription = self._subscription, None
            self._ids = []
            self._by_id = {}
        if subscription is not None:
            subscription.unsubscribe()

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def send(self, body=None):
        """
        Send `body`, or the current draft when body is None.

        When the draft is what got sent, it is cleared only after the server
        confirms the message is stored. An explicit body leaves the draft
        alone on success. On failure the unsent text stays in the draft and
        the error propagates. The message itself arrives through the relay
        echo.
        """
        text = self.draft if body is None else body
        if text is None or not text.strip():
            raise DomainValidationError('message body must not be empty')
        if self.state is not SessionState.LIVE:
            raise InvalidSessionState(f'cannot send in state {self.state.value}')

        try:
            message = self.api.send_message(self.conversation_id, text)
        except DomainError:
            self.draft = text
            raise

        if body is None:
            self.draft = ''
        return message

    def refresh(self):
        """Fetch messages newer than the last one held and merge them."""
        with self._lock:
            if self.state is not SessionState.LIVE:
                return 0
            after_id = self._ids[-1] if self._ids else None

        newer = self.api.list_messages(self.conversation_id, after_id=after_id)
        with self._lock:
            if self.state is not SessionState.LIVE:
                return 0
            added = self._merge(newer)
        if added:
            self._notify()
        return added

    # ------------------------------------------------------------------
    # Relay callbacks (websocket thread)
    # ------------------------------------------------------------------

    def _on_event(self, payload):
        try:
            conversation_id = int(payload.get('conversation_id'))
        except (TypeError, ValueError):
            return
        if conversation_id != self.conversation_id:
            return

        with self._lock:
            if self.state not in (SessionState.LOADING_HISTORY, SessionState.LIVE):
                return
            added = self._merge([payload])
        if added:
            self._notify()

    def _on_subscribed(self):
        # Covers messages stored after history was read but before the relay
        # confirmed the subscription. While history is still loading the
        # refresh is deferred to open().
        with self._lock:
            if self.state is SessionState.LOADING_HISTORY:
                self._refresh_pending = True
                return
        self._refresh_logged()

    def _refresh_logged(self):
        try:
            self.refresh()
        except DomainError as exc:
            logger.warning(
                'Refresh after subscribe failed',
                extra={'event': 'chat_session_refresh_failed',
                       'conversation_id': self.conversation_id,
                       'error_type': exc.__class__.__name__}
            )

    # ------------------------------------------------------------------

    def _merge(self, incoming):
        """Insert unseen messages keeping ascending id order. Caller holds the lock."""
        added = 0
        for message in incoming:
            message_id = int(message['id'])
            if message_id in self._by_id:
                continue
            self._by_id[message_id] = message
            bisect.insort(self._ids, message_id)
            added += 1
        return added

    def _notify(self):
        if self.on_change is not None:
            self.on_change(self)
