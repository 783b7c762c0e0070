"""Channel subscribers: the platform half of push subscription.

Two interchangeable variants share one contract, selected by ``kind``:

- ``WebPushSubscriber`` opens a raw Web-Push channel bound to the VAPID key.
- ``CloudMessageSubscriber`` asks a cloud-messaging provider for a token.

Both register the background worker first, return an existing live channel
unchanged instead of opening a second one, and bound every platform step with
the configured timeout.
"""

import logging
from abc import ABC, abstractmethod
from datetime import UTC, datetime

from push_coordinator.errors import (
    NetworkTransient,
    PushChannelDenied,
    PushCoordinatorError,
    Unsupported,
    WorkerRegistrationFailed,
)
from push_coordinator.models.enums import ChannelKind
from push_coordinator.platform import (
    MessagingProvider,
    MessagingUnavailable,
    Platform,
    PlatformError,
    PlatformNotAllowed,
    PushChannelHandle,
    WorkerRegistration,
    run_step,
)
from push_coordinator.schemas.subscription import Subscription
from push_coordinator.services import key_codec

logger = logging.getLogger(__name__)

FCM_ENDPOINT_PREFIX = "https://fcm.googleapis.com/fcm/send/"


class ChannelSubscriber(ABC):
    """One delivery substrate's subscribe/unsubscribe contract."""

    kind: ChannelKind

    def __init__(self, platform: Platform, worker_script_url: str, step_timeout: float) -> None:
        self.platform = platform
        self.worker_script_url = worker_script_url
        self.step_timeout = step_timeout
        self._registration: WorkerRegistration | None = None

    async def _ensure_worker(self) -> WorkerRegistration:
        """Register (or reuse) the background worker and wait for activation."""
        if self._registration is not None:
            return self._registration
        try:
            await run_step(
                "worker registration",
                self.platform.register_worker(self.worker_script_url),
                self.step_timeout,
            )
            registration = await run_step(
                "worker activation", self.platform.worker_ready(), self.step_timeout
            )
        except PlatformError as e:
            logger.error(f"Worker registration at {self.worker_script_url} failed: {e}")
            raise WorkerRegistrationFailed(str(e)) from e

        logger.debug(f"Worker active with scope {registration.scope}")
        self._registration = registration
        return registration

    @abstractmethod
    async def current(self) -> Subscription | None:
        """Return the live channel on this device, if any."""

    @abstractmethod
    async def subscribe(self, key: bytes) -> Subscription:
        """Open (or return the existing) channel for the decoded VAPID key."""

    @abstractmethod
    async def unsubscribe(self) -> bool:
        """Tear down the platform channel. Returns False if none existed."""


class WebPushSubscriber(ChannelSubscriber):
    """Raw Web-Push channel through the worker's push manager."""

    kind = ChannelKind.WEBPUSH

    @staticmethod
    def _to_subscription(handle: PushChannelHandle) -> Subscription:
        expiration = None
        if handle.expiration_time is not None:
            expiration = datetime.fromtimestamp(handle.expiration_time / 1000, UTC)
        keys = dict(handle.keys or {})
        credential = key_codec.decode(keys["p256dh"]) if keys.get("p256dh") else b""
        return Subscription(
            endpoint=handle.endpoint,
            channel=ChannelKind.WEBPUSH,
            credential=credential,
            keys=keys,
            expiration_time=expiration,
        )

    async def _existing_handle(self) -> PushChannelHandle | None:
        registration = await self._ensure_worker()
        try:
            return await run_step(
                "push subscription lookup",
                registration.push_manager.get_subscription(),
                self.step_timeout,
            )
        except PlatformError as e:
            logger.error(f"Push subscription lookup failed: {e}")
            raise PushChannelDenied(str(e)) from e

    async def current(self) -> Subscription | None:
        handle = await self._existing_handle()
        return self._to_subscription(handle) if handle else None

    async def subscribe(self, key: bytes) -> Subscription:
        registration = await self._ensure_worker()

        existing = await self._existing_handle()
        if existing is not None:
            logger.info("Reusing existing web-push channel")
            return self._to_subscription(existing)

        try:
            handle = await run_step(
                "push channel creation",
                registration.push_manager.subscribe(
                    user_visible_only=True, application_server_key=key
                ),
                self.step_timeout,
            )
        except PlatformNotAllowed as e:
            logger.warning(f"User declined push channel creation: {e}")
            raise PushChannelDenied(str(e)) from e
        except PlatformError as e:
            logger.error(f"Push manager refused subscription: {e}")
            raise PushChannelDenied(str(e)) from e

        logger.info("Created web-push channel")
        return self._to_subscription(handle)

    async def unsubscribe(self) -> bool:
        handle = await self._existing_handle()
        if handle is None:
            return False
        try:
            removed = await run_step(
                "push channel teardown", handle.unsubscribe(), self.step_timeout
            )
        except PlatformError as e:
            logger.error(f"Web-push channel teardown failed: {e}")
            raise PushChannelDenied(str(e)) from e
        logger.info(f"Web-push channel teardown {'succeeded' if removed else 'was a no-op'}")
        return bool(removed)


class CloudMessageSubscriber(ChannelSubscriber):
    """Cloud-messaging channel identified by a provider-issued token."""

    kind = ChannelKind.FCM

    def __init__(
        self,
        platform: Platform,
        messaging: MessagingProvider,
        worker_script_url: str,
        step_timeout: float,
    ) -> None:
        super().__init__(platform, worker_script_url, step_timeout)
        self.messaging = messaging

    @staticmethod
    def _to_subscription(token: str) -> Subscription:
        return Subscription(
            endpoint=f"{FCM_ENDPOINT_PREFIX}{token}",
            channel=ChannelKind.FCM,
            credential=token,
        )

    @staticmethod
    def _provider_error(step: str, e: PlatformError) -> PushCoordinatorError:
        """Map a messaging provider failure onto the error taxonomy."""
        if isinstance(e, PlatformNotAllowed):
            logger.warning(f"User blocked cloud messaging during {step}: {e}")
            return PushChannelDenied(str(e))
        if isinstance(e, MessagingUnavailable):
            logger.warning(f"Cloud messaging unavailable during {step}: {e}")
            return Unsupported(str(e))
        logger.warning(f"Cloud messaging {step} failed: {e}")
        return NetworkTransient(str(e))

    async def current(self) -> Subscription | None:
        try:
            token = await run_step(
                "token lookup", self.messaging.current_token(), self.step_timeout
            )
        except PlatformError as e:
            raise self._provider_error("token lookup", e) from e
        return self._to_subscription(token) if token else None

    async def subscribe(self, key: bytes) -> Subscription:
        if not self.messaging.supported:
            raise Unsupported("Cloud messaging is not supported on this platform")

        existing = await self.current()
        if existing is not None:
            logger.info("Reusing existing cloud-messaging token")
            return existing

        registration = await self._ensure_worker()
        try:
            token = await run_step(
                "token issue",
                self.messaging.get_token(
                    vapid_key=key_codec.encode(key), worker_registration=registration
                ),
                self.step_timeout,
            )
        except PlatformError as e:
            raise self._provider_error("token request", e) from e

        if not token:
            raise NetworkTransient("Cloud messaging provider returned an empty token")

        logger.info("Obtained cloud-messaging token")
        return self._to_subscription(token)

    async def unsubscribe(self) -> bool:
        try:
            removed = await run_step(
                "token deletion", self.messaging.delete_token(), self.step_timeout
            )
        except PlatformError as e:
            raise self._provider_error("token deletion", e) from e
        logger.info(f"Cloud-messaging token deletion {'succeeded' if removed else 'was a no-op'}")
        return bool(removed)
