"""
Domain error taxonomy shared by the server and the chat client.

Pure Python (no Django imports) so the client package can raise the same
types when it maps HTTP error responses back to domain errors.
"""


class DomainError(Exception):
    """Base class for errors that map onto an API error envelope."""
    code = 'ERROR'
    status_code = 400
    default_message = 'Request failed'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(DomainError):
    """Missing, unknown or expired credential."""
    code = 'UNAUTHENTICATED'
    status_code = 401
    default_message = 'Authentication credentials were not provided or are invalid'


class Forbidden(DomainError):
    """Authenticated caller is not allowed to act on the resource."""
    code = 'FORBIDDEN'
    status_code = 403
    default_message = 'You are not a participant of this conversation'


class InvalidRole(DomainError):
    """Caller has no patient/doctor identity (admin, or profile missing)."""
    code = 'INVALID_ROLE'
    status_code = 400
    default_message = 'Invalid role'


class NotFound(DomainError):
    code = 'NOT_FOUND'
    status_code = 404
    default_message = 'Not found'


class ProfileNotFound(NotFound):
    code = 'PROFILE_NOT_FOUND'
    default_message = 'counterpart profile not found'


class DomainValidationError(DomainError):
    """Rejected before any store mutation."""
    code = 'VALIDATION_ERROR'
    status_code = 400
    default_message = 'Invalid request'


class PersistenceFailure(DomainError):
    """The durable store did not confirm the operation."""
    code = 'PERSISTENCE_FAILURE'
    status_code = 500
    default_message = 'The message store is unavailable'


class RelayError(DomainError):
    """The hosted broadcast relay rejected or failed a call."""
    code = 'RELAY_ERROR'
    status_code = 502
    default_message = 'Broadcast relay call failed'


class BroadcastFailure(RelayError):
    """
    Publish failed after a successful durable append.

    Logged for operational visibility, never returned to the sender.
    """
    code = 'BROADCAST_FAILURE'
    default_message = 'Message stored but live broadcast failed'
