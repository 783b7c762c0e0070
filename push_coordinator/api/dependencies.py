"""FastAPI dependencies for the local registry service."""

import secrets
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from push_coordinator.config import get_settings
from push_coordinator.services.registry_store import RegistryStore, get_registry_store

security = HTTPBearer(auto_error=False)


def get_current_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> str:
    """Validate the bearer token against the configured registry tokens."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = credentials.credentials
    allowed = get_settings().registry_tokens
    if not any(secrets.compare_digest(token, candidate) for candidate in allowed):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token


def get_store() -> RegistryStore:
    """Get the registry store instance."""
    return get_registry_store()


CurrentToken = Annotated[str, Depends(get_current_token)]
Store = Annotated[RegistryStore, Depends(get_store)]
