"""Subscription-related Pydantic schemas."""

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from push_coordinator.models.enums import ChannelKind, ErrorKind, LifecycleState
from push_coordinator.services.key_codec import encode


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Subscription(BaseModel):
    """Canonical record of one live push channel on this device."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    endpoint: str = Field(min_length=1)
    channel: ChannelKind
    credential: bytes | str
    keys: dict[str, str] = Field(default_factory=dict)
    expiration_time: datetime | None = Field(default=None, alias="expirationTime")
    created_at: datetime = Field(default_factory=_utcnow, alias="createdAt")

    @field_serializer("credential")
    def serialize_credential(self, credential: bytes | str) -> str:
        """Render binary credentials as unpadded base64url."""
        if isinstance(credential, bytes):
            return encode(credential)
        return credential

    def to_wire(self) -> dict:
        """Shape sent to the backend registry (browser ``toJSON()`` plus channel)."""
        expiration = None
        if self.expiration_time is not None:
            expiration = int(self.expiration_time.timestamp() * 1000)
        return {
            "endpoint": self.endpoint,
            "expirationTime": expiration,
            "keys": dict(self.keys),
            "channel": self.channel.value,
        }


class DismissalRecord(BaseModel):
    """When the user last dismissed the notification prompt."""

    dismissed_at: datetime


class RegistrationRequest(BaseModel):
    """Subscription plus the bearer credential used to register it."""

    subscription: Subscription
    auth_token: str | None = None


class LifecycleResult(BaseModel):
    """Typed outcome of a lifecycle operation, handed to the UI layer."""

    state: LifecycleState
    subscription: Subscription | None = None
    error: ErrorKind | None = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        """Check if the operation completed without error."""
        return self.error is None
