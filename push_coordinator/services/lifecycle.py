"""Subscription lifecycle manager.

Drives detection, permission, platform subscription and backend registration
in order, owns the single canonical ``Subscription`` for this device, and
publishes every state change to listeners (the UI layer).

State machine::

    Idle -> Detecting -> AwaitingPermission -> Subscribing -> Registering -> Active
                 \\______________ any step ______________/            |
                                   v                                  v
                                 Error                             Revoked

Operations are serialized by a lock. Failures never propagate to the caller;
they come back as a ``LifecycleResult`` carrying the error kind, and the
manager stays usable.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta

from push_coordinator.config import Settings, get_settings
from push_coordinator.errors import PermissionDenied, PushCoordinatorError, Unsupported
from push_coordinator.models.enums import ChannelKind, ErrorKind, LifecycleState, PermissionState
from push_coordinator.platform import (
    MessagingProvider,
    Platform,
    PlatformError,
    PlatformNotAllowed,
    run_step,
)
from push_coordinator.schemas.subscription import (
    LifecycleResult,
    RegistrationRequest,
    Subscription,
)
from push_coordinator.services import key_codec
from push_coordinator.services.capability import Capabilities, CapabilityDetector
from push_coordinator.services.channel_subscriber import (
    ChannelSubscriber,
    CloudMessageSubscriber,
    WebPushSubscriber,
)
from push_coordinator.services.prompt_gate import should_prompt
from push_coordinator.services.registrar import BackendRegistrar
from push_coordinator.services.state_store import StateStore

logger = logging.getLogger(__name__)

AuthTokenProvider = Callable[[], str | None | Awaitable[str | None]]
Listener = Callable[[LifecycleResult], None]


class SubscriptionLifecycleManager:
    """Coordinates the push subscription for one device session."""

    def __init__(
        self,
        detector: CapabilityDetector,
        subscribers: list[ChannelSubscriber],
        registrar: BackendRegistrar,
        auth_token_provider: AuthTokenProvider,
        state_store: StateStore | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.detector = detector
        self.subscribers: dict[ChannelKind, ChannelSubscriber] = {s.kind: s for s in subscribers}
        self.registrar = registrar
        self.auth_token_provider = auth_token_provider
        self.state_store = state_store
        self.step_timeout = self.settings.step_timeout_seconds

        self._state = LifecycleState.IDLE
        self._error: ErrorKind | None = None
        self._capabilities: Capabilities | None = None
        self._subscription: Subscription | None = None
        self._pending: Subscription | None = None
        self._denied_this_session = False
        self._listeners: list[Listener] = []
        self._lock = asyncio.Lock()
        self._inflight: asyncio.Task | None = None
        self._closed = False

    # Surface exposed to the UI layer

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def subscription(self) -> Subscription | None:
        return self._subscription

    @property
    def supported(self) -> bool:
        return self.detector.detect().supported

    @property
    def permission(self) -> PermissionState:
        return self.detector.detect().permission

    @property
    def prompt_display_delay(self) -> timedelta:
        """How long the UI waits before showing the enable-notifications prompt."""
        return timedelta(seconds=self.settings.prompt_display_delay_seconds)

    def should_show_prompt(self, now: datetime | None = None) -> bool:
        """Check if the enable-notifications prompt should be shown now."""
        capabilities = self.detector.detect()
        dismissal = self.state_store.dismissal() if self.state_store is not None else None
        return should_prompt(
            capabilities.supported,
            capabilities.permission,
            dismissal,
            now=now,
            cooldown=timedelta(days=self.settings.prompt_cooldown_days),
        )

    def dismiss_prompt(self, when: datetime | None = None) -> None:
        """Record that the user dismissed the prompt, starting the cooldown."""
        if self.state_store is None:
            logger.warning("Prompt dismissal not persisted: no state store configured")
            return
        self.state_store.record_dismissal(when)

    def snapshot(self, message: str | None = None) -> LifecycleResult:
        """Current state as a result object."""
        return LifecycleResult(
            state=self._state,
            subscription=self._subscription,
            error=self._error,
            message=message,
        )

    def add_listener(self, listener: Listener) -> None:
        """Register a callback invoked on every state change."""
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def request_permission(self) -> PermissionState:
        """Ask the user for notification permission (user-driven)."""
        result = await self._run(self._request_permission_flow)
        return result.permission if isinstance(result, _PermissionOutcome) else self.permission

    async def subscribe(self) -> LifecycleResult:
        """Obtain a push channel and register it with the backend."""
        return await self._run(self._subscribe_flow)

    async def retry_registration(self) -> LifecycleResult:
        """Re-run only the backend registration for a pending subscription."""
        return await self._run(self._retry_registration_flow)

    async def unsubscribe(self) -> LifecycleResult:
        """Deregister from the backend, then tear down the platform channel."""
        return await self._run(self._unsubscribe_flow)

    async def startup(self) -> LifecycleResult:
        """Re-derive the subscription from the live platform channel."""
        return await self._run(self._startup_flow)

    async def close(self) -> None:
        """Cancel any in-flight operation and release the HTTP client."""
        self._closed = True
        task = self._inflight
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                logger.info("Cancelled in-flight push operation on teardown")
        await self.registrar.close()
        self._listeners.clear()

    # Internals

    async def _run(self, flow: Callable[[], Awaitable]):
        if self._closed:
            raise RuntimeError("Subscription lifecycle manager is closed")

        async with self._lock:
            if self._closed:
                raise RuntimeError("Subscription lifecycle manager is closed")
            task = asyncio.ensure_future(self._guarded(flow))
            self._inflight = task
            try:
                return await task
            except asyncio.CancelledError:
                current = asyncio.current_task()
                if self._closed and task.cancelled() and not (current and current.cancelling()):
                    return self.snapshot("Lifecycle manager closed")
                raise
            finally:
                self._inflight = None

    async def _guarded(self, flow: Callable[[], Awaitable]):
        try:
            return await flow()
        except PushCoordinatorError as e:
            logger.error(f"Push operation failed in state {self._state.value}: {e.kind.value}: {e}")
            self._set_state(LifecycleState.ERROR, error=e.kind, message=e.message)
            return self.snapshot(e.message)
        except asyncio.CancelledError:
            if self._state in _IN_FLIGHT_STATES:
                logger.info(f"Push operation cancelled in state {self._state.value}")
                settled = LifecycleState.ACTIVE if self._subscription else LifecycleState.IDLE
                self._set_state(settled, message="Operation cancelled")
            raise

    def _set_state(
        self,
        state: LifecycleState,
        error: ErrorKind | None = None,
        message: str | None = None,
    ) -> None:
        if state != self._state:
            logger.debug(f"Lifecycle {self._state.value} -> {state.value}")
        self._state = state
        self._error = error
        result = self.snapshot(message)
        for listener in list(self._listeners):
            try:
                listener(result)
            except Exception as e:
                # A broken observer must not break the pipeline
                logger.error(f"Lifecycle listener failed: {e}")

    def _detect(self) -> Capabilities:
        capabilities = self.detector.detect()
        previous = self._capabilities.permission if self._capabilities else None
        reset = capabilities.permission == PermissionState.DEFAULT
        if previous == PermissionState.DENIED and reset:
            logger.info("Notification permission was reset by the user")
        self._capabilities = capabilities
        if self.state_store is not None:
            self.state_store.save_permission(capabilities.permission)
        return capabilities

    async def _auth_token(self) -> str | None:
        token = self.auth_token_provider()
        if inspect.isawaitable(token):
            token = await token
        return token

    async def _prompt(self) -> PermissionState:
        try:
            permission = await run_step(
                "permission prompt",
                self.detector.platform.request_permission(),
                self.step_timeout,
            )
        except PlatformNotAllowed as e:
            logger.warning(f"Platform blocked the permission prompt: {e}")
            raise PermissionDenied(str(e)) from e
        except PlatformError as e:
            logger.error(f"Permission prompt unavailable: {e}")
            raise Unsupported(str(e)) from e
        permission = PermissionState(permission)
        if self.state_store is not None:
            self.state_store.save_permission(permission)
        if permission == PermissionState.DENIED:
            self._denied_this_session = True
        elif permission == PermissionState.GRANTED:
            self._denied_this_session = False
        logger.info(f"Notification permission prompt resolved: {permission.value}")
        return permission

    async def _request_permission_flow(self) -> "_PermissionOutcome":
        capabilities = self._detect()
        if not capabilities.supported:
            return _PermissionOutcome(PermissionState.UNSUPPORTED)
        if capabilities.permission != PermissionState.DEFAULT:
            return _PermissionOutcome(capabilities.permission)

        previous = self._state
        self._set_state(LifecycleState.AWAITING_PERMISSION)
        permission = await self._prompt()
        if permission == PermissionState.DENIED:
            self._set_state(LifecycleState.ERROR, error=ErrorKind.PERMISSION_DENIED)
        else:
            self._set_state(previous if previous != LifecycleState.ERROR else LifecycleState.IDLE)
        return _PermissionOutcome(permission)

    async def _ensure_permission(self, capabilities: Capabilities) -> None:
        permission = capabilities.permission
        if permission == PermissionState.GRANTED:
            return
        if not permission.can_prompt():
            raise PermissionDenied(f"Notification permission is {permission.value}")
        if self._denied_this_session:
            raise PermissionDenied("Permission was denied earlier in this session")

        self._set_state(LifecycleState.AWAITING_PERMISSION)
        permission = await self._prompt()
        if permission != PermissionState.GRANTED:
            raise PermissionDenied(f"Notification permission {permission.value}")

    async def _live_subscription(
        self, channels: tuple[ChannelKind, ...]
    ) -> tuple[ChannelSubscriber, Subscription] | None:
        """Find a channel already open on the platform, in preference order."""
        for kind in channels:
            subscriber = self.subscribers.get(kind)
            if subscriber is None:
                continue
            existing = await subscriber.current()
            if existing is not None:
                return subscriber, existing
        return None

    def _select_subscriber(self, channels: tuple[ChannelKind, ...]) -> ChannelSubscriber:
        for kind in channels:
            if kind in self.subscribers:
                return self.subscribers[kind]
        raise Unsupported("No channel subscriber available for this platform")

    async def _register(self, subscription: Subscription) -> LifecycleResult:
        self._pending = subscription
        self._set_state(LifecycleState.REGISTERING)
        token = await self._auth_token()
        request = RegistrationRequest(subscription=subscription, auth_token=token)
        await self.registrar.register(request)

        self._subscription = subscription
        self._pending = None
        self._set_state(LifecycleState.ACTIVE)
        logger.info(f"Push subscription active on {subscription.channel.value}")
        return self.snapshot()

    async def _subscribe_flow(self) -> LifecycleResult:
        if self._state == LifecycleState.ACTIVE and self._subscription is not None:
            subscriber = self.subscribers.get(self._subscription.channel)
            live = await subscriber.current() if subscriber else None
            if live is not None:
                logger.debug("Already active, reconciling registration with backend")
                if live.endpoint == self._subscription.endpoint:
                    live = self._subscription
                return await self._register(live)
            logger.warning("Active subscription vanished from the platform, resubscribing")
            self._subscription = None

        self._set_state(LifecycleState.DETECTING)
        capabilities = self._detect()
        if not capabilities.supported:
            raise Unsupported("Push notifications are not supported on this platform")

        await self._ensure_permission(capabilities)
        self._set_state(LifecycleState.SUBSCRIBING)

        if self._pending is not None and self._pending.channel in capabilities.channels:
            subscriber = self.subscribers[self._pending.channel]
            live = await subscriber.current()
            if live is not None:
                logger.info("Retrying registration of pending subscription")
                if live.endpoint == self._pending.endpoint:
                    live = self._pending
                return await self._register(live)
            self._pending = None

        found = await self._live_subscription(capabilities.channels)
        if found is not None:
            subscriber, subscription = found
            logger.info(f"Found existing {subscriber.kind.value} channel on the platform")
        else:
            subscriber = self._select_subscriber(capabilities.channels)
            key = key_codec.decode(await self.registrar.fetch_vapid_key())
            subscription = await subscriber.subscribe(key)

        return await self._register(subscription)

    async def _retry_registration_flow(self) -> LifecycleResult:
        if self._pending is None:
            return self.snapshot("No pending subscription to register")
        return await self._register(self._pending)

    async def _unsubscribe_flow(self) -> LifecycleResult:
        subscription = self._subscription or self._pending
        if subscription is None:
            capabilities = self._detect()
            if capabilities.supported:
                found = await self._live_subscription(capabilities.channels)
                if found is not None:
                    subscription = found[1]

        if subscription is None:
            self._set_state(LifecycleState.REVOKED)
            return self.snapshot("No subscription to revoke")

        token = await self._auth_token()
        await self.registrar.unregister(subscription.endpoint, token)

        subscriber = self.subscribers.get(subscription.channel)
        if subscriber is not None:
            await subscriber.unsubscribe()

        self._subscription = None
        self._pending = None
        self._set_state(LifecycleState.REVOKED)
        logger.info(f"Push subscription on {subscription.channel.value} revoked")
        return self.snapshot()

    async def _startup_flow(self) -> LifecycleResult:
        self._set_state(LifecycleState.DETECTING)
        capabilities = self._detect()
        if not capabilities.supported or capabilities.permission != PermissionState.GRANTED:
            self._set_state(LifecycleState.IDLE)
            return self.snapshot()

        found = await self._live_subscription(capabilities.channels)
        if found is None:
            self._subscription = None
            self._set_state(LifecycleState.IDLE)
            return self.snapshot()

        return await self._register(found[1])


_IN_FLIGHT_STATES = frozenset(
    {
        LifecycleState.DETECTING,
        LifecycleState.AWAITING_PERMISSION,
        LifecycleState.SUBSCRIBING,
        LifecycleState.REGISTERING,
    }
)


class _PermissionOutcome:
    """Result of a permission request routed through the operation guard."""

    def __init__(self, permission: PermissionState) -> None:
        self.permission = permission


def build_lifecycle_manager(
    platform: Platform,
    auth_token_provider: AuthTokenProvider,
    messaging: MessagingProvider | None = None,
    settings: Settings | None = None,
    registrar: BackendRegistrar | None = None,
) -> SubscriptionLifecycleManager:
    """Wire a lifecycle manager for one device session from settings."""
    settings = settings or get_settings()
    worker_url = settings.worker_script_url
    timeout = settings.step_timeout_seconds

    subscribers: list[ChannelSubscriber] = [WebPushSubscriber(platform, worker_url, timeout)]
    if messaging is not None:
        subscribers.append(CloudMessageSubscriber(platform, messaging, worker_url, timeout))

    return SubscriptionLifecycleManager(
        detector=CapabilityDetector(platform, messaging, settings.preferred_channels),
        subscribers=subscribers,
        registrar=registrar or BackendRegistrar(settings=settings),
        auth_token_provider=auth_token_provider,
        state_store=StateStore(settings.state_file),
        settings=settings,
    )
