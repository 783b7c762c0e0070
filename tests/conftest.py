"""Pytest configuration and fixtures."""

import asyncio
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from push_coordinator.config import Settings, get_settings
from push_coordinator.models.enums import PermissionState
from push_coordinator.services.capability import CapabilityDetector
from push_coordinator.services.channel_subscriber import (
    CloudMessageSubscriber,
    WebPushSubscriber,
)
from push_coordinator.services.key_codec import encode
from push_coordinator.services.lifecycle import SubscriptionLifecycleManager
from push_coordinator.services.registrar import BackendRegistrar
from push_coordinator.services.registry_store import get_registry_store
from push_coordinator.services.state_store import StateStore

VAPID_PUBLIC_KEY = encode(bytes([4]) + bytes(range(64)))
P256DH_KEY = encode(bytes([4]) + bytes(range(64, 128)))
AUTH_SECRET = encode(bytes(range(16)))
ENDPOINT = "https://push.example.com/send/device-abc"
AUTH_TOKEN = "test-token"


class CallLog(list):
    """Ordered record of platform and backend calls shared by the fakes."""


class FakeHandle:
    """A push channel handle issued by FakePushManager."""

    def __init__(self, manager: "FakePushManager", endpoint: str) -> None:
        self.manager = manager
        self.endpoint = endpoint
        self.expiration_time = None
        self.keys = {"p256dh": P256DH_KEY, "auth": AUTH_SECRET}

    async def unsubscribe(self) -> bool:
        self.manager.calls.append("platform.unsubscribe")
        if self.manager.teardown_error is not None:
            raise self.manager.teardown_error
        self.manager.handle = None
        return True


class FakePushManager:
    def __init__(self, calls: CallLog) -> None:
        self.calls = calls
        self.handle: FakeHandle | None = None
        self.subscribe_error: Exception | None = None
        self.lookup_error: Exception | None = None
        self.teardown_error: Exception | None = None
        self.created = 0
        self.last_key: bytes | None = None
        self.user_visible_only: bool | None = None

    async def get_subscription(self) -> FakeHandle | None:
        if self.lookup_error is not None:
            raise self.lookup_error
        return self.handle

    async def subscribe(self, *, user_visible_only: bool, application_server_key: bytes):
        self.calls.append("platform.subscribe")
        if self.subscribe_error is not None:
            raise self.subscribe_error
        self.created += 1
        self.last_key = application_server_key
        self.user_visible_only = user_visible_only
        self.handle = FakeHandle(self, ENDPOINT)
        return self.handle


class FakeRegistration:
    def __init__(self, push_manager: FakePushManager) -> None:
        self.scope = "/"
        self.push_manager = push_manager


class FakePlatform:
    """In-memory notification runtime."""

    def __init__(self, calls: CallLog) -> None:
        self.calls = calls
        self.has_notification_surface = True
        self.has_worker_host = True
        self.has_push_manager = True
        self.permission = PermissionState.DEFAULT
        self.prompt_result = PermissionState.GRANTED
        self.prompt_delay = 0.0
        self.prompt_error: Exception | None = None
        self.register_error: Exception | None = None
        self.worker_urls: list[str] = []
        self.push_manager = FakePushManager(calls)

    def notification_permission(self) -> PermissionState:
        return self.permission

    async def request_permission(self) -> PermissionState:
        self.calls.append("platform.request_permission")
        if self.prompt_delay:
            await asyncio.sleep(self.prompt_delay)
        if self.prompt_error is not None:
            raise self.prompt_error
        self.permission = self.prompt_result
        return self.permission

    async def register_worker(self, script_url: str) -> FakeRegistration:
        self.calls.append("platform.register_worker")
        if self.register_error is not None:
            raise self.register_error
        self.worker_urls.append(script_url)
        return FakeRegistration(self.push_manager)

    async def worker_ready(self) -> FakeRegistration:
        return FakeRegistration(self.push_manager)


class FakeMessaging:
    """In-memory cloud-messaging provider."""

    def __init__(self, calls: CallLog) -> None:
        self.calls = calls
        self.supported = True
        self.token: str | None = None
        self.issue_error: Exception | None = None
        self.lookup_error: Exception | None = None
        self.delete_error: Exception | None = None
        self.last_vapid_key: str | None = None

    async def get_token(self, *, vapid_key: str, worker_registration) -> str:
        self.calls.append("messaging.get_token")
        if self.issue_error is not None:
            raise self.issue_error
        self.last_vapid_key = vapid_key
        self.token = "fcm-token-123"
        return self.token

    async def current_token(self) -> str | None:
        if self.lookup_error is not None:
            raise self.lookup_error
        return self.token

    async def delete_token(self) -> bool:
        self.calls.append("messaging.delete_token")
        if self.delete_error is not None:
            raise self.delete_error
        existed = self.token is not None
        self.token = None
        return existed


class FakeBackend:
    """Scriptable registry backend served through httpx.MockTransport."""

    def __init__(self, calls: CallLog) -> None:
        self.calls = calls
        self.requests: list[httpx.Request] = []
        self.responses: dict[str, list[httpx.Response]] = {}
        self.registered: dict[str, dict] = {}

    def script(self, path: str, *responses: httpx.Response | Exception) -> None:
        """Queue responses for ``path``; the last one repeats."""
        self.responses[path] = list(responses)

    def _next(self, path: str):
        queue = self.responses.get(path)
        if not queue:
            return None
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append(request)
        self.calls.append(f"backend.{path.rsplit('/', 1)[-1]}")

        scripted = self._next(path)
        if isinstance(scripted, Exception):
            raise scripted
        if scripted is not None:
            return scripted

        if path.endswith("/vapid-public-key"):
            return httpx.Response(200, json={"publicKey": VAPID_PUBLIC_KEY})
        body = json.loads(request.content)
        if path.endswith("/register-web"):
            endpoint = body["subscription"]["endpoint"]
            created = endpoint not in self.registered
            self.registered[endpoint] = body["subscription"]
            return httpx.Response(200, json={"status": "registered", "created": created})
        if path.endswith("/unregister-web"):
            self.registered.pop(body["endpoint"], None)
            return httpx.Response(200, json={"status": "unregistered"})
        return httpx.Response(404)

    def count(self, suffix: str) -> int:
        return sum(1 for r in self.requests if r.url.path.endswith(suffix))


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def calls():
    return CallLog()


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the environment."""
    return Settings(
        _env_file=None,
        api_base_url="https://api.example.com",
        step_timeout_seconds=0.5,
        state_file=tmp_path / "state.json",
        vapid_public_key=VAPID_PUBLIC_KEY,
        registry_tokens=[AUTH_TOKEN],
    )


@pytest.fixture
def platform(calls):
    return FakePlatform(calls)


@pytest.fixture
def messaging(calls):
    return FakeMessaging(calls)


@pytest.fixture
def backend(calls):
    return FakeBackend(calls)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def registrar(settings, backend, sleep):
    return BackendRegistrar(
        settings=settings, transport=httpx.MockTransport(backend.handler), sleep=sleep
    )


@pytest.fixture
def state_store(settings):
    return StateStore(settings.state_file)


@pytest.fixture
def webpush_subscriber(platform, settings):
    return WebPushSubscriber(platform, settings.worker_script_url, settings.step_timeout_seconds)


@pytest.fixture
def fcm_subscriber(platform, messaging, settings):
    return CloudMessageSubscriber(
        platform, messaging, settings.worker_script_url, settings.step_timeout_seconds
    )


@pytest.fixture
def manager(platform, webpush_subscriber, registrar, state_store, settings):
    """Lifecycle manager wired to the web-push channel only."""
    return SubscriptionLifecycleManager(
        detector=CapabilityDetector(platform, None, settings.preferred_channels),
        subscribers=[webpush_subscriber],
        registrar=registrar,
        auth_token_provider=lambda: AUTH_TOKEN,
        state_store=state_store,
        settings=settings,
    )


@pytest.fixture
def registry_client(monkeypatch):
    """Test client for the local registry service."""
    monkeypatch.setenv("PUSH_VAPID_PUBLIC_KEY", VAPID_PUBLIC_KEY)
    monkeypatch.setenv("PUSH_REGISTRY_TOKENS", json.dumps([AUTH_TOKEN]))
    get_settings.cache_clear()
    get_registry_store.cache_clear()

    from push_coordinator.main import app

    with TestClient(app) as test_client:
        yield test_client

    get_settings.cache_clear()
    get_registry_store.cache_clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {AUTH_TOKEN}"}

