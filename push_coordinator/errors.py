"""Error taxonomy for the push coordinator.

Every failure carries an ``ErrorKind`` so the lifecycle manager can turn it
into a typed result instead of letting it escape to the host application.
``SubscriptionError`` covers platform-side failures and ``RegistrationError``
covers backend-side ones.
"""

from push_coordinator.models.enums import ErrorKind


class PushCoordinatorError(Exception):
    """Base class for all coordinator failures."""

    kind: ErrorKind

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.kind.value)
        self.message = message or self.kind.value


class SubscriptionError(PushCoordinatorError):
    """Platform-side failure while obtaining a push channel."""


class RegistrationError(PushCoordinatorError):
    """Backend-side failure while syncing the subscription."""


class Unsupported(SubscriptionError):
    kind = ErrorKind.UNSUPPORTED


class PermissionDenied(SubscriptionError):
    kind = ErrorKind.PERMISSION_DENIED


class WorkerRegistrationFailed(SubscriptionError):
    kind = ErrorKind.WORKER_REGISTRATION_FAILED


class PushChannelDenied(SubscriptionError):
    kind = ErrorKind.PUSH_CHANNEL_DENIED


class MalformedKey(SubscriptionError):
    kind = ErrorKind.MALFORMED_KEY


class Timeout(SubscriptionError):
    """A platform step exceeded the configured step timeout."""

    kind = ErrorKind.TIMEOUT


class Unauthenticated(RegistrationError):
    kind = ErrorKind.UNAUTHENTICATED


class RegistrationRejected(RegistrationError):
    """The backend refused the request, or transient retries ran out."""

    kind = ErrorKind.REGISTRATION_REJECTED

    def __init__(
        self,
        message: str = "",
        status_code: int | None = None,
        after_retries: bool = False,
        attempts: int = 1,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.after_retries = after_retries
        self.attempts = attempts


class NetworkTransient(RegistrationError):
    """Retryable network or 5xx failure."""

    kind = ErrorKind.NETWORK_TRANSIENT

    def __init__(self, message: str = "", status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
