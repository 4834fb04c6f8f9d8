"""Exceptions raised by the Smart Home Dashboard."""


class SmartHomeError(Exception):
    """Base exception for the dashboard."""


class ValidationError(SmartHomeError):
    """Input rejected locally, before any call to the hosted service."""


class NotFoundError(SmartHomeError):
    """The requested record does not exist for the current identity."""


class ServiceError(SmartHomeError):
    """The hosted service reported a failure.

    ``str(err)`` is the service's own message, unmodified.
    """

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


class AuthenticationError(ServiceError):
    """The auth API rejected the credentials or the session."""


class ServiceConnectionError(ServiceError):
    """The hosted service could not be reached."""
