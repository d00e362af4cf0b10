"""Appointment endpoints backed by the synchronization orchestrator."""

from __future__ import annotations

import datetime as dt
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from clinic_sync.dependencies import get_orchestrator
from clinic_sync.errors import NotFoundError
from clinic_sync.schemas import Appointment, DeleteResult, Patient, SyncResult
from clinic_sync.services.calls import store_call
from clinic_sync.services.orchestrator import SyncOrchestrator

router = APIRouter()


class AppointmentPayload(BaseModel):
    """Caller-editable appointment fields."""

    patient_id: str = Field(min_length=1)
    date: dt.date
    time: str = Field(pattern=r"^\d{2}:\d{2}$")
    duration: int = Field(default=30, gt=0)
    appointment_type: str = Field(default="visit", min_length=1)
    notes: Optional[str] = None


async def load_patient(orchestrator: SyncOrchestrator, patient_id: str) -> Patient:
    patient = await store_call(
        "get_patient",
        orchestrator.timeouts.store,
        orchestrator.store.get_patient,
        patient_id,
    )
    if patient is None:
        raise NotFoundError("patient", patient_id)
    return patient


@router.post("", response_model=SyncResult, status_code=201)
async def create_appointment(
    payload: AppointmentPayload,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> SyncResult:
    """Create an appointment and confirm it to the patient."""

    patient = await load_patient(orchestrator, payload.patient_id)
    appointment = Appointment(**payload.model_dump())
    return await orchestrator.create_appointment(appointment, patient)


@router.put("/{appointment_id}", response_model=SyncResult)
async def update_appointment(
    appointment_id: str,
    payload: AppointmentPayload,
    notify_patient: bool = False,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> SyncResult:
    patient = await load_patient(orchestrator, payload.patient_id)
    appointment = Appointment(id=appointment_id, **payload.model_dump())
    return await orchestrator.update_appointment(appointment, patient, notify_patient)


@router.delete("/{appointment_id}", response_model=DeleteResult)
async def delete_appointment(
    appointment_id: str,
    notify_patient: bool = False,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> DeleteResult:
    existing = await store_call(
        "get_appointment",
        orchestrator.timeouts.store,
        orchestrator.store.get_appointment,
        appointment_id,
    )
    if existing is None:
        raise NotFoundError("appointment", appointment_id)
    patient = await load_patient(orchestrator, existing.patient_id)
    return await orchestrator.delete_appointment(appointment_id, patient, notify_patient)
