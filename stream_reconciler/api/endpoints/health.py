"""Health check endpoints."""

from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ...infrastructure.dependencies import ServiceContainer, get_service_container

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    store_backend: str
    providers: List[str]
    supported_providers: List[str]
    configured_providers: List[str]
    background_sweep: bool


@router.get("/health", response_model=HealthResponse)
async def health_check(
    container: ServiceContainer = Depends(get_service_container),
) -> HealthResponse:
    """Check service health and available providers.

    Returns:
        Store backend, provider availability and sweep status
    """
    providers = sorted(provider.value for provider in container.active_providers)
    return HealthResponse(
        status="healthy" if providers else "degraded",
        version="0.1.0",
        store_backend=container.config.store_backend,
        providers=providers,
        supported_providers=container.provider_factory.list_providers(),
        configured_providers=container.provider_factory.list_configured_providers(),
        background_sweep=container.get_poll_scheduler().is_running,
    )
