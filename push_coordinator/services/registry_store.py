"""In-memory subscription registry backing the local registry service."""

import logging
import threading
from datetime import UTC, datetime
from functools import lru_cache

from pydantic import BaseModel

from push_coordinator.schemas.notification import PushSubscriptionPayload

logger = logging.getLogger(__name__)


class RegisteredSubscription(BaseModel):
    """A stored subscription, keyed by endpoint."""

    token: str
    subscription: PushSubscriptionPayload
    created_at: datetime
    updated_at: datetime


class RegistryStore:
    """Endpoint-keyed store with upsert semantics."""

    def __init__(self) -> None:
        self._records: dict[str, RegisteredSubscription] = {}
        self._lock = threading.Lock()

    def upsert(self, token: str, subscription: PushSubscriptionPayload) -> bool:
        """Add or update a subscription. Returns True if it was new."""
        now = datetime.now(UTC)
        with self._lock:
            existing = self._records.get(subscription.endpoint)
            if existing:
                # Update keys if changed
                self._records[subscription.endpoint] = existing.model_copy(
                    update={"token": token, "subscription": subscription, "updated_at": now}
                )
                logger.info(f"Updated push subscription (total: {len(self._records)})")
                return False

            self._records[subscription.endpoint] = RegisteredSubscription(
                token=token, subscription=subscription, created_at=now, updated_at=now
            )
            logger.info(f"Added push subscription (total: {len(self._records)})")
            return True

    def remove(self, token: str, endpoint: str) -> bool:
        """Remove a subscription by endpoint if it belongs to ``token``."""
        with self._lock:
            record = self._records.get(endpoint)
            if record is None or record.token != token:
                return False
            del self._records[endpoint]
            logger.info(f"Removed push subscription (total: {len(self._records)})")
            return True

    def get(self, endpoint: str) -> RegisteredSubscription | None:
        return self._records.get(endpoint)

    def get_all(self) -> list[RegisteredSubscription]:
        """Get all registered subscriptions."""
        with self._lock:
            return list(self._records.values())

    def clear(self) -> None:
        with self._lock:
            self._records.clear()


@lru_cache
def get_registry_store() -> RegistryStore:
    """Get the process-wide registry store."""
    return RegistryStore()
