"""Local registry service entry point."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from push_coordinator.api import registry
from push_coordinator.config import get_settings

settings = get_settings()

app = FastAPI(
    title="Push Registry",
    description="Local notification registry for developing against the push coordinator",
    version="0.1.0",
)

# CORS middleware for development
if settings.is_development:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:3001"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(registry.router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "environment": settings.environment}
