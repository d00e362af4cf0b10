"""Batch maintenance endpoints for calendar resync and reminders."""

from __future__ import annotations

from datetime import date
from typing import Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from clinic_sync.dependencies import get_orchestrator
from clinic_sync.services.orchestrator import SyncOrchestrator

router = APIRouter()


class ResyncRequest(BaseModel):
    start: date
    end: date


class ReminderRequest(BaseModel):
    today: Optional[date] = None


@router.post("/calendar-resync")
async def resync_calendar(
    payload: ResyncRequest,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> Dict[str, int]:
    return await orchestrator.resync_calendar(payload.start, payload.end)


@router.post("/reminders")
async def send_reminders(
    payload: ReminderRequest,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> Dict[str, int]:
    return await orchestrator.send_reminders(payload.today or date.today())
