"""Health check endpoint"""

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import BaseModel, Field
import structlog

from provider_hub.supervisor.supervisor import ConnectionSupervisor

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1", tags=["health"])


async def get_supervisor(request: Request) -> ConnectionSupervisor:
    """Get connection supervisor from app state"""
    return request.app.state.supervisor


class HealthResponse(BaseModel):
    """Health check response model"""

    status: str = Field(description="Overall health status (healthy or unhealthy)")
    provider: str = Field(description="Supervisor state")
    network_id: Optional[int] = Field(default=None, description="Active network id")
    last_error: Optional[str] = Field(default=None, description="Last connection error kind")


@router.get("/health", response_model=HealthResponse)
async def health_check(
    response: Response,
    supervisor: ConnectionSupervisor = Depends(get_supervisor),
) -> HealthResponse:
    """
    Health check endpoint.

    Returns:
    - 200 OK when an adapter is active
    - 503 Service Unavailable otherwise
    """
    current = supervisor.status
    if not current.is_active:
        logger.warning("health_check_failed", state=current.state.value)
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return HealthResponse(
        status="healthy" if current.is_active else "unhealthy",
        provider=current.state.value,
        network_id=current.active_network_id,
        last_error=current.last_error.value if current.last_error else None,
    )
