"""Wire schemas for the backend notification registry."""

from pydantic import BaseModel, ConfigDict, Field


class VapidPublicKeyResponse(BaseModel):
    """Schema for VAPID public key response."""

    model_config = ConfigDict(populate_by_name=True)

    public_key: str | None = Field(default=None, alias="publicKey")


class PushSubscriptionKeys(BaseModel):
    """Encryption keys issued with a web-push channel."""

    p256dh: str | None = None
    auth: str | None = None


class PushSubscriptionPayload(BaseModel):
    """Browser-shaped push subscription as posted to the registry."""

    model_config = ConfigDict(populate_by_name=True)

    endpoint: str = Field(min_length=1)
    expiration_time: int | None = Field(default=None, alias="expirationTime")
    keys: PushSubscriptionKeys = Field(default_factory=PushSubscriptionKeys)
    channel: str = "webpush"


class RegisterWebRequest(BaseModel):
    """Schema for registering a subscription."""

    subscription: PushSubscriptionPayload


class UnregisterWebRequest(BaseModel):
    """Schema for removing a subscription by endpoint."""

    endpoint: str = Field(min_length=1)


class RegistrationAck(BaseModel):
    """Acknowledgement returned by the registry."""

    model_config = ConfigDict(extra="allow")

    status: str = "ok"
    endpoint: str | None = None
    created: bool | None = None
