"""Integration status and session endpoints."""

from __future__ import annotations

from typing import Dict

from fastapi import APIRouter, Depends

from clinic_sync.dependencies import get_orchestrator
from clinic_sync.schemas import Entitlement
from clinic_sync.services.orchestrator import SyncOrchestrator

router = APIRouter()


@router.get("/entitlement", response_model=Entitlement)
async def current_entitlement(
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> Entitlement:
    return await orchestrator.entitlement.resolve()


@router.post("/messaging/authenticate")
async def authenticate_messaging(
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> Dict[str, bool]:
    """Open the messaging session; concurrent sends wait until it settles."""

    authenticated = await orchestrator.dispatcher.authenticate()
    return {"authenticated": authenticated}


@router.post("/messaging/disconnect")
async def disconnect_messaging(
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> Dict[str, bool]:
    await orchestrator.dispatcher.disconnect()
    return {"authenticated": False}
