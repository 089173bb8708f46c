"""Connection status and pending transaction endpoints"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
import structlog

from provider_hub.supervisor.supervisor import ConnectionSupervisor
from provider_hub.transactions.tracker import PendingTransactionTracker

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1", tags=["status"])


async def get_supervisor(request: Request) -> ConnectionSupervisor:
    """Get connection supervisor from app state"""
    return request.app.state.supervisor


async def get_tracker(request: Request) -> PendingTransactionTracker:
    """Get pending transaction tracker from app state"""
    return request.app.state.tracker


class StatusResponse(BaseModel):
    """Connection status snapshot"""

    state: str
    active_network_id: Optional[int] = None
    account: Optional[str] = None
    is_active: bool
    injected_loaded: bool
    injected_active: bool
    injected_network_id: Optional[int] = None
    backup_loaded: bool
    fallback_active: bool
    active_adapter: Optional[str] = Field(default=None, description="injected or bridging")
    last_error: Optional[str] = None
    wallet_state: str = Field(description="wrong_network, connected, error or disconnected")


class PendingResponse(BaseModel):
    """Pending transactions of one account"""

    account: str
    has_pending: bool
    transactions: List[str]


@router.get("/status", response_model=StatusResponse)
async def get_status(supervisor: ConnectionSupervisor = Depends(get_supervisor)) -> StatusResponse:
    """Current connection status"""
    return StatusResponse(**supervisor.status.to_dict())


@router.post("/reload", response_model=StatusResponse)
async def reload_provider(supervisor: ConnectionSupervisor = Depends(get_supervisor)) -> StatusResponse:
    """Re-probe the environment and re-run adapter selection"""
    logger.info("reload_requested")
    current = await supervisor.reload()
    return StatusResponse(**current.to_dict())


@router.get("/accounts/{account}/pending", response_model=PendingResponse)
async def get_pending(
    account: str,
    tracker: PendingTransactionTracker = Depends(get_tracker),
) -> PendingResponse:
    """Pending transactions for an account"""
    return PendingResponse(
        account=account,
        has_pending=tracker.has_pending(account),
        transactions=sorted(tracker.pending(account)),
    )
