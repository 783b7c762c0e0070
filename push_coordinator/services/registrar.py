"""Backend registrar: syncs the device subscription with the registry API."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx
from pydantic import ValidationError

from push_coordinator.config import Settings, get_settings
from push_coordinator.errors import (
    NetworkTransient,
    RegistrationRejected,
    Unauthenticated,
)
from push_coordinator.schemas.notification import RegistrationAck, VapidPublicKeyResponse
from push_coordinator.schemas.subscription import RegistrationRequest

logger = logging.getLogger(__name__)

T = TypeVar("T")

REGISTER_PATH = "/notifications/register-web"
UNREGISTER_PATH = "/notifications/unregister-web"
VAPID_KEY_PATH = "/notifications/vapid-public-key"


class BackendRegistrar:
    """Authenticated, idempotent client for the notification registry.

    Transient failures (network errors, 5xx) are retried once per entry in
    ``retry_delays``; auth failures and other 4xx responses are surfaced
    immediately. Backoff sleeps are plain ``asyncio.sleep`` calls, so
    cancelling the calling task or closing the registrar stops them.
    """

    def __init__(
        self,
        base_url: str | None = None,
        retry_delays: list[float] | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.base_url = (base_url or self.settings.api_base_url).rstrip("/")
        self.retry_delays = list(
            self.settings.registration_retry_delays if retry_delays is None else retry_delays
        )
        self.timeout = timeout or self.settings.http_timeout_seconds
        self._transport = transport
        self._sleep = sleep
        self._client: httpx.AsyncClient | None = None
        self._closed = False

    @property
    def max_attempts(self) -> int:
        return len(self.retry_delays) + 1

    def _get_client(self) -> httpx.AsyncClient:
        if self._closed:
            raise RuntimeError("Registrar is closed")
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client. Pending retries stop at their next step."""
        self._closed = True
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch_vapid_key(self) -> str:
        """Get the application's VAPID public key from the backend."""
        data = await self._with_retries(VAPID_KEY_PATH, self._fetch_vapid_once)
        if not data.public_key:
            raise RegistrationRejected("Backend has no VAPID public key configured")
        return data.public_key

    async def _fetch_vapid_once(self) -> VapidPublicKeyResponse:
        try:
            response = await self._get_client().get(VAPID_KEY_PATH)
        except httpx.HTTPError as e:
            raise NetworkTransient(str(e)) from e

        status = response.status_code
        if status >= 500:
            raise NetworkTransient(f"VAPID key request returned {status}", status_code=status)
        if status >= 400:
            raise RegistrationRejected(
                f"VAPID key request rejected: {status}", status_code=status
            )
        try:
            return VapidPublicKeyResponse.model_validate(response.json())
        except (ValidationError, ValueError) as e:
            raise RegistrationRejected(f"Malformed VAPID key response: {e}") from e

    async def register(self, req: RegistrationRequest) -> RegistrationAck:
        """Upsert the subscription in the registry (idempotent by endpoint)."""
        body = {"subscription": req.subscription.to_wire()}
        ack = await self._send(REGISTER_PATH, body, req.auth_token)
        logger.info(f"Registered {req.subscription.channel.value} subscription with backend")
        return ack

    async def unregister(self, endpoint: str, auth_token: str | None) -> RegistrationAck:
        """Remove the subscription for ``endpoint`` from the registry."""
        ack = await self._send(UNREGISTER_PATH, {"endpoint": endpoint}, auth_token)
        logger.info("Unregistered subscription from backend")
        return ack

    async def _send(self, path: str, body: dict, auth_token: str | None) -> RegistrationAck:
        if not auth_token:
            raise Unauthenticated("No bearer token available for registry call")

        headers = {"Authorization": f"Bearer {auth_token}"}
        return await self._with_retries(path, lambda: self._attempt(path, body, headers))

    async def _with_retries(self, path: str, attempt_once: Callable[[], Awaitable[T]]) -> T:
        """Run ``attempt_once``, retrying NetworkTransient per ``retry_delays``."""
        last_error: NetworkTransient | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await attempt_once()
            except NetworkTransient as e:
                last_error = e
                logger.warning(
                    f"Transient failure on {path} (attempt {attempt}/{self.max_attempts}): {e}"
                )
                if attempt < self.max_attempts:
                    await self._sleep(self.retry_delays[attempt - 1])

        logger.error(f"Giving up on {path} after {self.max_attempts} attempts")
        raise RegistrationRejected(
            f"{path} failed after {self.max_attempts} attempts: {last_error}",
            status_code=last_error.status_code if last_error else None,
            after_retries=True,
            attempts=self.max_attempts,
        )

    async def _attempt(self, path: str, body: dict, headers: dict) -> RegistrationAck:
        try:
            response = await self._get_client().post(path, json=body, headers=headers)
        except httpx.HTTPError as e:
            raise NetworkTransient(str(e)) from e

        status = response.status_code
        if status in (401, 403):
            raise Unauthenticated(f"Registry rejected credentials ({status})")
        if status >= 500:
            raise NetworkTransient(f"Registry returned {status}", status_code=status)
        if status >= 400:
            raise RegistrationRejected(
                f"Registry rejected request ({status}): {response.text}", status_code=status
            )

        try:
            return RegistrationAck.model_validate(response.json() if response.content else {})
        except (ValidationError, ValueError):
            return RegistrationAck()
