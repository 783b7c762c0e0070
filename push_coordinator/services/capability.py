"""Capability detection for push notifications."""

import logging
from dataclasses import dataclass, field

from push_coordinator.models.enums import ChannelKind, PermissionState
from push_coordinator.platform import MessagingProvider, Platform

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Capabilities:
    """Snapshot of what the runtime can do right now."""

    supported: bool
    permission: PermissionState
    channels: tuple[ChannelKind, ...] = field(default_factory=tuple)


class CapabilityDetector:
    """Inspects the platform for notification, worker and push support.

    ``detect`` has no side effects and can be called again at any time to pick
    up a permission change the user made outside the app.
    """

    def __init__(
        self,
        platform: Platform,
        messaging: MessagingProvider | None = None,
        preferred_channels: list[str] | None = None,
    ) -> None:
        self.platform = platform
        self.messaging = messaging
        self.preferred_channels = [
            ChannelKind(c) for c in (preferred_channels or [ChannelKind.WEBPUSH, ChannelKind.FCM])
        ]

    def detect(self) -> Capabilities:
        """Return the capability flag, permission state and usable channels."""
        supported = (
            self.platform.has_notification_surface
            and self.platform.has_worker_host
            and self.platform.has_push_manager
        )
        if not supported:
            logger.debug("Push notifications unsupported on this platform")
            return Capabilities(supported=False, permission=PermissionState.UNSUPPORTED)

        permission = PermissionState(self.platform.notification_permission())

        available = {ChannelKind.WEBPUSH}
        if self.messaging is not None and self.messaging.supported:
            available.add(ChannelKind.FCM)
        channels = tuple(c for c in self.preferred_channels if c in available)

        return Capabilities(supported=True, permission=permission, channels=channels)
