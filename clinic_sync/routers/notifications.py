"""Manual notification endpoints."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from clinic_sync.dependencies import get_orchestrator
from clinic_sync.routers.appointments import load_patient
from clinic_sync.schemas import DispatchResult
from clinic_sync.services.orchestrator import SyncOrchestrator

router = APIRouter()


class MessageRequest(BaseModel):
    """Free-text message for a patient."""

    patient_id: str = Field(min_length=1)
    message: str = Field(min_length=1)
    appointment_id: Optional[str] = None


@router.post("", response_model=DispatchResult, status_code=201)
async def send_message(
    payload: MessageRequest,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> DispatchResult:
    patient = await load_patient(orchestrator, payload.patient_id)
    return await orchestrator.send_message(patient, payload.message, payload.appointment_id)


@router.post("/{notification_id}/resend", response_model=DispatchResult)
async def resend_notification(
    notification_id: str,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> DispatchResult:
    """Retry a pending or failed notification with its original text."""

    return await orchestrator.resend_notification(notification_id)
