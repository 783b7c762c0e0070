"""Enums shared across the coordinator."""

from enum import Enum


class PermissionState(str, Enum):
    """Notification permission as reported by the platform."""

    UNSUPPORTED = "unsupported"
    DEFAULT = "default"
    GRANTED = "granted"
    DENIED = "denied"

    def can_prompt(self) -> bool:
        """Check if the user can still be asked for permission."""
        return self == PermissionState.DEFAULT


class ChannelKind(str, Enum):
    """Delivery substrate backing a subscription."""

    WEBPUSH = "webpush"
    FCM = "fcm"


class LifecycleState(str, Enum):
    """States of the subscription lifecycle."""

    IDLE = "idle"
    DETECTING = "detecting"
    AWAITING_PERMISSION = "awaiting_permission"
    SUBSCRIBING = "subscribing"
    REGISTERING = "registering"
    ACTIVE = "active"
    ERROR = "error"
    REVOKED = "revoked"


class ErrorKind(str, Enum):
    """Typed failure kinds surfaced to callers."""

    UNSUPPORTED = "unsupported"
    PERMISSION_DENIED = "permission_denied"
    WORKER_REGISTRATION_FAILED = "worker_registration_failed"
    PUSH_CHANNEL_DENIED = "push_channel_denied"
    MALFORMED_KEY = "malformed_key"
    UNAUTHENTICATED = "unauthenticated"
    REGISTRATION_REJECTED = "registration_rejected"
    NETWORK_TRANSIENT = "network_transient"
    TIMEOUT = "timeout"
