"""
Tests for the client side: ChatSession merge/state machine and ChatApiClient.

No server involved; the API and relay are fakes.
"""
from unittest.mock import MagicMock, call, patch

import pytest
import requests

from apps.chat.client.api import ChatApiClient, ChatApiError, error_from_response
from apps.chat.client.session import ChatSession, InvalidSessionState, SessionState
from apps.chat.client.transport import PysherSubscriber, Subscription
from apps.core.errors import (
    DomainValidationError,
    Forbidden,
    InvalidRole,
    NotFound,
    PersistenceFailure,
)

CONVERSATION_ID = 7
ME = 'user-me'
THEM = 'user-them'


def msg(message_id, body='hi', sender_id=THEM, conversation_id=CONVERSATION_ID):
    return {
        'id': message_id,
        'conversation_id': conversation_id,
        'sender_id': sender_id,
        'sender_name': 'Someone',
        'body': body,
        'created_at': '2026-01-01T10:00:00+00:00',
    }


class FakeApi:
    def __init__(self, history=None):
        self.history = list(history or [])
        self.calls = []
        self.fail_list_with = None
        self.fail_send_with = None

    def list_messages(self, conversation_id, after_id=None):
        self.calls.append(('list_messages', conversation_id, after_id))
        if self.fail_list_with is not None:
            raise self.fail_list_with
        return [m for m in self.history if after_id is None or m['id'] > after_id]

    def send_message(self, conversation_id, body):
        self.calls.append(('send_message', conversation_id, body))
        if self.fail_send_with is not None:
            raise self.fail_send_with
        message = msg(len(self.history) + 100, body=body, sender_id=ME)
        self.history.append(message)
        return message


class FakeSubscriber:
    """Holds the bound callback so tests can push events by hand."""

    def __init__(self, api=None):
        self.api = api
        self.callback = None
        self.on_ready = None
        self.subscribed = []
        self.unsubscribed = []

    def subscribe(self, channel_name, event_name, callback, on_ready=None):
        if self.api is not None:
            self.api.calls.append(('subscribe', channel_name))
        self.subscribed.append((channel_name, event_name))
        self.callback = callback
        self.on_ready = on_ready
        return Subscription(channel_name, lambda: self.unsubscribed.append(channel_name))

    def push(self, payload):
        self.callback(payload)


@pytest.fixture
def api():
    return FakeApi(history=[msg(1), msg(2)])


@pytest.fixture
def subscriber(api):
    return FakeSubscriber(api)


@pytest.fixture
def session(api, subscriber):
    return ChatSession(CONVERSATION_ID, ME, api, subscriber)


class TestOpen:
    """Test ChatSession.open."""

    def test_subscribes_before_loading_history(self, session, api):
        session.open()

        assert api.calls[0] == ('subscribe', 'private-chat-7')
        assert api.calls[1] == ('list_messages', CONVERSATION_ID, None)
        assert session.state is SessionState.LIVE
        assert [m['id'] for m in session.messages] == [1, 2]

    def test_event_during_history_load_is_kept(self, api, subscriber):
        session = ChatSession(CONVERSATION_ID, ME, api, subscriber)
        original = api.list_messages

        def list_with_race(conversation_id, after_id=None):
            # Message 3 arrives live while history (which lacks it) is in flight
            subscriber.push(msg(3))
            return original(conversation_id, after_id)

        api.list_messages = list_with_race
        session.open()

        assert [m['id'] for m in session.messages] == [1, 2, 3]

    def test_history_failure_moves_to_failed_and_unsubscribes(self, session, api, subscriber):
        api.fail_list_with = PersistenceFailure('db down')

        with pytest.raises(PersistenceFailure):
            session.open()

        assert session.state is SessionState.FAILED
        assert isinstance(session.last_error, PersistenceFailure)
        assert subscriber.unsubscribed == ['private-chat-7']

    def test_retry_after_failure(self, session, api):
        api.fail_list_with = PersistenceFailure('db down')
        with pytest.raises(PersistenceFailure):
            session.open()

        api.fail_list_with = None
        session.retry()

        assert session.state is SessionState.LIVE
        assert session.last_error is None
        assert len(session.messages) == 2

    def test_subscribe_failure_moves_to_failed_and_can_retry(self, api, subscriber):
        session = ChatSession(CONVERSATION_ID, ME, api, subscriber)
        real_subscribe = subscriber.subscribe
        attempts = []

        def subscribe_denied_once(*args, **kwargs):
            attempts.append(args[0])
            if len(attempts) == 1:
                raise Forbidden()
            return real_subscribe(*args, **kwargs)

        subscriber.subscribe = subscribe_denied_once

        with pytest.raises(Forbidden):
            session.open()

        assert session.state is SessionState.FAILED
        assert isinstance(session.last_error, Forbidden)
        assert not [c for c in api.calls if c[0] == 'list_messages']

        session.retry()

        assert session.state is SessionState.LIVE
        assert [m['id'] for m in session.messages] == [1, 2]

    def test_retry_only_from_failed(self, session):
        with pytest.raises(InvalidSessionState):
            session.retry()

    def test_cannot_open_twice(self, session):
        session.open()

        with pytest.raises(InvalidSessionState):
            session.open()


class TestLiveEvents:
    """Test merging of relay events."""

    def test_duplicate_event_is_ignored(self, session, subscriber):
        session.open()

        subscriber.push(msg(2, body='dup'))
        subscriber.push(msg(3))
        subscriber.push(msg(3))

        assert [m['id'] for m in session.messages] == [1, 2, 3]
        assert session.messages[1]['body'] == 'hi'

    def test_out_of_order_events_end_up_sorted(self, session, subscriber):
        session.open()

        subscriber.push(msg(5))
        subscriber.push(msg(4))
        subscriber.push(msg(3))

        assert [m['id'] for m in session.messages] == [1, 2, 3, 4, 5]

    def test_other_conversation_is_ignored(self, session, subscriber):
        session.open()

        subscriber.push(msg(9, conversation_id=CONVERSATION_ID + 1))
        subscriber.push({'id': 10, 'conversation_id': 'junk'})

        assert [m['id'] for m in session.messages] == [1, 2]

    def test_events_after_close_are_ignored(self, session, subscriber):
        session.open()
        callback = subscriber.callback

        session.close()
        callback(msg(3))

        assert session.state is SessionState.CLOSED
        assert session.messages == []
        assert subscriber.unsubscribed == ['private-chat-7']

    def test_close_is_idempotent(self, session, subscriber):
        session.open()

        session.close()
        session.close()

        assert subscriber.unsubscribed == ['private-chat-7']

    def test_on_change_called_for_new_messages(self, api, subscriber):
        seen = []
        session = ChatSession(
            CONVERSATION_ID, ME, api, subscriber,
            on_change=lambda s: seen.append([m['id'] for m in s.messages]),
        )
        session.open()
        subscriber.push(msg(3))
        subscriber.push(msg(3))

        assert seen == [[1, 2], [1, 2, 3]]

    def test_is_own_message(self, session):
        assert session.is_own_message(msg(1, sender_id=ME))
        assert not session.is_own_message(msg(1, sender_id=THEM))


class TestRefresh:
    """Test ChatSession.refresh and the subscription-confirmed hook."""

    def test_refresh_asks_only_for_newer(self, session, api):
        session.open()
        api.history.append(msg(3))

        added = session.refresh()

        assert added == 1
        assert api.calls[-1] == ('list_messages', CONVERSATION_ID, 2)
        assert [m['id'] for m in session.messages] == [1, 2, 3]

    def test_subscription_confirmed_triggers_refresh(self, session, api, subscriber):
        session.open()
        api.history.append(msg(3))

        subscriber.on_ready()

        assert [m['id'] for m in session.messages] == [1, 2, 3]

    def test_confirmation_during_history_load_catches_up(self, session, api, subscriber):
        original = api.list_messages

        def list_then_confirm(conversation_id, after_id=None):
            result = original(conversation_id, after_id)
            if after_id is None:
                # Message 3 is stored after the history read, then the relay confirms
                api.history.append(msg(3))
                subscriber.on_ready()
            return result

        api.list_messages = list_then_confirm
        session.open()

        assert session.state is SessionState.LIVE
        assert [m['id'] for m in session.messages] == [1, 2, 3]
        assert api.calls[-1] == ('list_messages', CONVERSATION_ID, 2)

    def test_refresh_failure_in_ready_hook_is_logged(self, session, api, subscriber):
        session.open()
        api.fail_list_with = PersistenceFailure('db down')

        subscriber.on_ready()

        assert session.state is SessionState.LIVE

    def test_refresh_when_not_live_is_noop(self, session, api):
        assert session.refresh() == 0
        assert api.calls == []


class TestSend:
    """Test ChatSession.send and the draft."""

    @pytest.mark.parametrize('draft', ['', '   ', '\n'])
    def test_empty_draft_makes_no_call(self, session, api, draft):
        session.open()
        session.draft = draft

        with pytest.raises(DomainValidationError):
            session.send()

        assert not [c for c in api.calls if c[0] == 'send_message']

    def test_success_clears_draft(self, session, api):
        session.open()
        session.draft = 'Hello Doctor'

        sent = session.send()

        assert sent['body'] == 'Hello Doctor'
        assert session.draft == ''
        assert api.calls[-1] == ('send_message', CONVERSATION_ID, 'Hello Doctor')

    def test_failure_keeps_draft(self, session, api):
        session.open()
        session.draft = 'Hello Doctor'
        api.fail_send_with = Forbidden()

        with pytest.raises(Forbidden):
            session.send()

        assert session.draft == 'Hello Doctor'

    def test_explicit_body_failure_lands_in_draft(self, session, api):
        session.open()
        api.fail_send_with = PersistenceFailure('db down')

        with pytest.raises(PersistenceFailure):
            session.send('typed text')

        assert session.draft == 'typed text'

    def test_explicit_body_success_keeps_draft(self, session, api):
        session.open()
        session.draft = 'half typed'

        session.send('quick reply')

        assert session.draft == 'half typed'
        assert api.calls[-1] == ('send_message', CONVERSATION_ID, 'quick reply')

    def test_send_requires_live(self, session):
        with pytest.raises(InvalidSessionState):
            session.send('too early')


class TestPysherSubscriber:
    """Test PysherSubscriber binding and rebinding on reconnect."""

    @pytest.fixture
    def pusher(self):
        pusher = MagicMock()
        pusher.connection.socket_id = '1.1'
        handlers = {}
        pusher.connection.bind.side_effect = lambda event, handler: handlers.__setitem__(event, handler)
        pusher.handlers = handlers
        return pusher

    @pytest.fixture
    def authorize(self):
        return MagicMock(side_effect=lambda socket_id, channel: {'auth': f'key:{socket_id}'})

    @pytest.fixture
    def relay_subscriber(self, pusher, authorize):
        with patch('pysher.Pusher', return_value=pusher):
            return PysherSubscriber('key', 'eu', authorize)

    def connect(self, pusher, socket_id):
        pusher.connection.socket_id = socket_id
        pusher.handlers['pusher:connection_established']({'socket_id': socket_id})

    def test_subscription_before_connect_binds_on_connect(self, relay_subscriber, pusher, authorize):
        relay_subscriber.subscribe('private-chat-7', 'message', lambda payload: None)
        authorize.assert_not_called()

        self.connect(pusher, '1.1')

        authorize.assert_called_once_with('1.1', 'private-chat-7')
        pusher.subscribe.assert_called_once_with('private-chat-7', auth='key:1.1')

    def test_reconnect_rebinds_with_new_grant(self, relay_subscriber, pusher, authorize):
        ready = []
        relay_subscriber.subscribe(
            'private-chat-7', 'message', lambda payload: None, on_ready=lambda: ready.append(1)
        )
        self.connect(pusher, '1.1')

        self.connect(pusher, '2.2')

        assert authorize.call_args_list[-1] == call('2.2', 'private-chat-7')
        assert pusher.subscribe.call_count == 2
        assert pusher.subscribe.call_args == call('private-chat-7', auth='key:2.2')
        bound_events = [c[0][0] for c in pusher.subscribe.return_value.bind.call_args_list]
        assert bound_events.count('message') == 2
        assert bound_events.count('pusher_internal:subscription_succeeded') == 2

    def test_unsubscribed_channel_is_not_rebound(self, relay_subscriber, pusher, authorize):
        subscription = relay_subscriber.subscribe('private-chat-7', 'message', lambda payload: None)
        self.connect(pusher, '1.1')

        subscription.unsubscribe()
        self.connect(pusher, '2.2')

        assert authorize.call_count == 1
        pusher.unsubscribe.assert_called_once_with('private-chat-7')

    def test_failed_grant_on_reconnect_is_logged(self, relay_subscriber, pusher, authorize):
        relay_subscriber.subscribe('private-chat-7', 'message', lambda payload: None)
        self.connect(pusher, '1.1')
        authorize.side_effect = Forbidden()

        with patch('apps.chat.client.transport.logger') as mock_logger:
            self.connect(pusher, '2.2')

        mock_logger.warning.assert_called_once()
        assert mock_logger.warning.call_args[1]['extra']['event'] == 'chat_relay_resubscribe_failed'

    def test_failed_grant_while_connected_raises(self, relay_subscriber, pusher, authorize):
        self.connect(pusher, '1.1')
        authorize.side_effect = Forbidden()

        with pytest.raises(Forbidden):
            relay_subscriber.subscribe('private-chat-7', 'message', lambda payload: None)

        authorize.side_effect = None
        self.connect(pusher, '3.3')
        authorize.assert_called_once_with('1.1', 'private-chat-7')

    def test_json_string_payload_is_decoded(self, relay_subscriber, pusher):
        received = []
        relay_subscriber.subscribe('private-chat-7', 'message', received.append)
        self.connect(pusher, '1.1')

        [deliver] = [
            c[0][1] for c in pusher.subscribe.return_value.bind.call_args_list if c[0][0] == 'message'
        ]
        deliver('{"id": 3, "conversation_id": 7}')

        assert received == [{'id': 3, 'conversation_id': 7}]


def make_response(status_code, json_body=None, content=b'{}'):
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    response.content = content
    if isinstance(json_body, Exception):
        response.json.side_effect = json_body
    else:
        response.json.return_value = json_body
    return response


class TestChatApiClient:
    """Test ChatApiClient against a mocked requests session."""

    def make_client(self, response=None, error=None):
        http = MagicMock()
        http.headers = {}
        if error is not None:
            http.request.side_effect = error
        else:
            http.request.return_value = response
        return ChatApiClient('http://api.test/', 'tok123', timeout=3, session=http), http

    def test_sets_bearer_and_timeout(self):
        client, http = self.make_client(make_response(200, {'messages': []}))

        assert client.list_messages(7, after_id=4) == []

        assert http.headers['Authorization'] == 'Bearer tok123'
        http.request.assert_called_once_with(
            'GET', 'http://api.test/api/v1/chat/conversations/7/messages/',
            timeout=3, params={'after_id': 4},
        )

    def test_send_message_posts_json(self):
        client, http = self.make_client(make_response(201, {'message': msg(1, body='x')}))

        assert client.send_message(7, 'x')['body'] == 'x'
        assert http.request.call_args[1]['json'] == {'body': 'x'}

    @pytest.mark.parametrize('status_code, code, expected', [
        (403, 'FORBIDDEN', Forbidden),
        (400, 'INVALID_ROLE', InvalidRole),
        (400, 'VALIDATION_ERROR', DomainValidationError),
        (404, None, NotFound),
        (500, None, PersistenceFailure),
        (418, None, ChatApiError),
    ])
    def test_error_envelope_mapping(self, status_code, code, expected):
        body = {'error': {'code': code, 'message': 'nope'}} if code else {}
        client, _ = self.make_client(make_response(status_code, body))

        with pytest.raises(expected):
            client.list_messages(7)

    def test_non_json_error_maps_by_status(self):
        error = error_from_response(make_response(404, ValueError('not json')))

        assert isinstance(error, NotFound)
        assert error.message == 'HTTP 404'

    def test_transport_error_is_chat_api_error(self):
        client, _ = self.make_client(error=requests.ConnectionError('refused'))

        with pytest.raises(ChatApiError):
            client.list_conversations()
