"""
HTTP client for the chat API.

Errors come back as the server's envelope and are re-raised as the same
DomainError subclasses the server raised, so client code handles one
taxonomy on both sides.
"""
import logging

import requests

from apps.core.errors import (
    DomainError,
    DomainValidationError,
    Forbidden,
    InvalidRole,
    NotFound,
    PersistenceFailure,
    ProfileNotFound,
    RelayError,
    Unauthenticated,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10


class ChatApiError(DomainError):
    """Transport failure or an unexpected response from the chat API."""
    code = 'CHAT_API_ERROR'
    status_code = 502
    default_message = 'Chat API request failed'


_ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (
        Unauthenticated,
        Forbidden,
        InvalidRole,
        NotFound,
        ProfileNotFound,
        DomainValidationError,
        PersistenceFailure,
        RelayError,
    )
}

_ERRORS_BY_STATUS = {
    400: DomainValidationError,
    401: Unauthenticated,
    403: Forbidden,
    404: NotFound,
    500: PersistenceFailure,
}


def error_from_response(response):
    """Build the DomainError matching an error response."""
    try:
        error = response.json().get('error') or {}
    except ValueError:
        error = {}
    if not isinstance(error, dict):
        error = {}

    cls = (
        _ERRORS_BY_CODE.get(error.get('code'))
        or _ERRORS_BY_STATUS.get(response.status_code)
        or ChatApiError
    )
    return cls(error.get('message') or f'HTTP {response.status_code}')


class ChatApiClient:
    """
    Thin wrapper over the chat endpoints, authenticated with a session token.

    Every call applies `timeout` seconds; nothing blocks indefinitely.
    """

    def __init__(self, base_url, token, timeout=DEFAULT_TIMEOUT, session=None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            'Authorization': f'Bearer {token}',
            'Accept': 'application/json',
        })

    def _request(self, method, path, **kwargs):
        url = f'{self.base_url}{path}'
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            logger.warning(
                'Chat API request failed',
                extra={'event': 'chat_client_request_failed', 'path': path,
                       'error_type': exc.__class__.__name__}
            )
            raise ChatApiError(str(exc)) from exc

        if response.status_code >= 400:
            raise error_from_response(response)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ChatApiError('Response is not JSON') from exc

    def me(self):
        return self._request('GET', '/api/v1/me/')

    def ensure_conversation(self, appointment_id, counterpart_user_id):
        data = self._request('POST', '/api/v1/chat/conversations/', json={
            'appointment_id': str(appointment_id),
            'counterpart_user_id': str(counterpart_user_id),
        })
        return data['conversation']

    def list_conversations(self, role=None):
        params = {'role': role} if role else None
        return self._request('GET', '/api/v1/chat/conversations/', params=params)['conversations']

    def list_messages(self, conversation_id, after_id=None):
        params = {'after_id': after_id} if after_id is not None else None
        data = self._request(
            'GET', f'/api/v1/chat/conversations/{conversation_id}/messages/', params=params
        )
        return data['messages']

    def send_message(self, conversation_id, body):
        data = self._request(
            'POST', f'/api/v1/chat/conversations/{conversation_id}/messages/', json={'body': body}
        )
        return data['message']

    def relay_config(self):
        return self._request('GET', '/api/v1/chat/relay/config')

    def authorize_channel(self, socket_id, channel_name):
        """Signed grant for a private relay channel."""
        return self._request('POST', '/api/v1/chat/relay/auth', data={
            'socket_id': socket_id,
            'channel_name': channel_name,
        })
