"""Protocols describing the runtime the coordinator drives.

The host (browser bridge, device runtime, or a test double) implements these.
Implementations signal failures by raising the ``Platform*`` exceptions below;
the services translate them into the coordinator's error taxonomy.
"""

import asyncio
import logging
from collections.abc import Awaitable
from typing import Protocol, TypeVar, runtime_checkable

from push_coordinator.errors import Timeout
from push_coordinator.models.enums import PermissionState

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PlatformError(Exception):
    """The platform rejected an operation (insecure context, bad script, ...)."""


class PlatformNotAllowed(PlatformError):
    """The user declined the operation at a platform gate."""


class MessagingUnavailable(PlatformError):
    """The cloud-messaging provider cannot run on this runtime."""


@runtime_checkable
class PushChannelHandle(Protocol):
    """A live push channel as issued by the platform's push manager."""

    endpoint: str
    expiration_time: float | None
    keys: dict[str, str]

    async def unsubscribe(self) -> bool: ...


class PushManager(Protocol):
    async def get_subscription(self) -> PushChannelHandle | None: ...

    async def subscribe(
        self, *, user_visible_only: bool, application_server_key: bytes
    ) -> PushChannelHandle: ...


class WorkerRegistration(Protocol):
    """An activated background worker."""

    scope: str
    push_manager: PushManager


class Platform(Protocol):
    """Capabilities and primitives of the notification runtime."""

    @property
    def has_notification_surface(self) -> bool: ...

    @property
    def has_worker_host(self) -> bool: ...

    @property
    def has_push_manager(self) -> bool: ...

    def notification_permission(self) -> PermissionState: ...

    async def request_permission(self) -> PermissionState: ...

    async def register_worker(self, script_url: str) -> WorkerRegistration: ...

    async def worker_ready(self) -> WorkerRegistration: ...


class MessagingProvider(Protocol):
    """Third-party cloud-messaging client issuing per-device tokens."""

    @property
    def supported(self) -> bool: ...

    async def get_token(
        self, *, vapid_key: str, worker_registration: WorkerRegistration
    ) -> str: ...

    async def current_token(self) -> str | None: ...

    async def delete_token(self) -> bool: ...


async def run_step(step: str, awaitable: Awaitable[T], timeout: float | None) -> T:
    """Await one platform step, raising Timeout if it outlives ``timeout``."""
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except TimeoutError as e:
        logger.warning(f"Platform step '{step}' timed out after {timeout}s")
        raise Timeout(f"{step} timed out after {timeout}s") from e
