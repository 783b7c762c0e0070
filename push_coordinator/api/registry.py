"""Registry endpoints for web push subscriptions."""

from fastapi import APIRouter, HTTPException, status

from push_coordinator.api.dependencies import CurrentToken, Store
from push_coordinator.config import get_settings
from push_coordinator.schemas.notification import (
    RegisterWebRequest,
    RegistrationAck,
    UnregisterWebRequest,
    VapidPublicKeyResponse,
)

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/vapid-public-key", response_model=VapidPublicKeyResponse)
async def get_vapid_public_key() -> VapidPublicKeyResponse:
    """Get the VAPID public key for push notification subscription."""
    settings = get_settings()
    if not settings.vapid_public_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="VAPID public key not configured",
        )
    return VapidPublicKeyResponse(public_key=settings.vapid_public_key)


@router.post("/register-web", response_model=RegistrationAck)
async def register_web(
    request: RegisterWebRequest, token: CurrentToken, store: Store
) -> RegistrationAck:
    """Register a device for push notifications (upsert by endpoint)."""
    created = store.upsert(token, request.subscription)
    return RegistrationAck(
        status="registered", endpoint=request.subscription.endpoint, created=created
    )


@router.post("/unregister-web", response_model=RegistrationAck)
async def unregister_web(
    request: UnregisterWebRequest, token: CurrentToken, store: Store
) -> RegistrationAck:
    """Remove a device's push subscription."""
    removed = store.remove(token, request.endpoint)
    return RegistrationAck(
        status="unregistered" if removed else "not_found", endpoint=request.endpoint
    )
