"""
Relay subscription for client sessions (Pusher Channels via pysher).
"""
import json
import logging
import threading

import pysher

from apps.core.errors import DomainError

logger = logging.getLogger(__name__)


class Subscription:
    """Handle for one live channel binding. unsubscribe() is idempotent."""

    def __init__(self, channel_name, unsubscribe):
        self.channel_name = channel_name
        self._unsubscribe = unsubscribe
        self.active = True

    def unsubscribe(self):
        if not self.active:
            return
        self.active = False
        self._unsubscribe()


class RelaySubscriber:
    """Interface used by ChatSession."""

    def subscribe(self, channel_name, event_name, callback, on_ready=None) -> Subscription:
        """
        Deliver every `event_name` payload (a dict) on `channel_name` to callback.

        on_ready, if given, is called once the relay confirms the subscription.
        """
        raise NotImplementedError


class PysherSubscriber(RelaySubscriber):
    """
    Websocket subscriber. Private-channel grants are fetched from the API's
    relay auth endpoint through `authorize(socket_id, channel_name)`, e.g.
    ChatApiClient.authorize_channel.

    Every active subscription is bound again on each
    `pusher:connection_established`, with a fresh grant for the new
    socket id, so a reconnect does not silently drop the live stream.

    Callbacks run on pysher's websocket thread.
    """

    def __init__(self, key, cluster, authorize, secure=True):
        self.authorize = authorize
        self.pusher = pysher.Pusher(key=key, cluster=cluster, secure=secure)
        self._lock = threading.Lock()
        self._bindings = []
        self._connected = False
        self.pusher.connection.bind('pusher:connection_established', self._on_connected)
        self.pusher.connect()

    @classmethod
    def from_api(cls, api, **kwargs):
        config = api.relay_config()
        return cls(config['key'], config['cluster'], api.authorize_channel, **kwargs)

    def _on_connected(self, data):
        with self._lock:
            self._connected = True
            bindings = list(self._bindings)
        for args in bindings:
            try:
                self._bind(*args)
            except DomainError as exc:
                logger.warning(
                    'Relay subscription failed after connect',
                    extra={'event': 'chat_relay_resubscribe_failed',
                           'channel': args[0],
                           'error_type': exc.__class__.__name__}
                )

    def _bind(self, channel_name, event_name, callback, on_ready, subscription):
        if not subscription.active:
            return
        socket_id = self.pusher.connection.socket_id
        grant = self.authorize(socket_id, channel_name)
        channel = self.pusher.subscribe(channel_name, auth=grant['auth'])

        def deliver(data):
            payload = json.loads(data) if isinstance(data, str) else data
            callback(payload)

        channel.bind(event_name, deliver)
        if on_ready is not None:
            channel.bind('pusher_internal:subscription_succeeded', lambda *_: on_ready())

    def subscribe(self, channel_name, event_name, callback, on_ready=None):
        def release():
            with self._lock:
                if args in self._bindings:
                    self._bindings.remove(args)
            self.pusher.unsubscribe(channel_name)

        subscription = Subscription(channel_name, release)
        args = (channel_name, event_name, callback, on_ready, subscription)
        with self._lock:
            self._bindings.append(args)
            connected = self._connected
        if connected:
            try:
                self._bind(*args)
            except DomainError:
                with self._lock:
                    self._bindings.remove(args)
                subscription.active = False
                raise
        return subscription

    def disconnect(self):
        self.pusher.disconnect()
