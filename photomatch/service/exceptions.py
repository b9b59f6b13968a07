class ServiceError(Exception):
    """Base exception for application-level operations."""


class EventNotFoundError(ServiceError):
    """Raised when the requested event does not exist."""


class AuthorizationError(ServiceError):
    """Raised when a user may not upload to an event."""
