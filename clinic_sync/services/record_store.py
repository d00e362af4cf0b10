"""SQLAlchemy-backed record store."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Callable, List, Optional, TypeVar

import anyio
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from clinic_sync import models
from clinic_sync.errors import NotFoundError, PersistenceError
from clinic_sync.schemas import (
    Appointment,
    Notification,
    NotificationStatus,
    Patient,
    utcnow,
)
from clinic_sync.services.db import session_scope

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

_APPOINTMENT_FIELDS = (
    "patient_id",
    "date",
    "time",
    "duration",
    "appointment_type",
    "notes",
    "calendar_synced",
    "calendar_event_ref",
    "message_sent",
    "message_sent_at",
    "created_at",
    "updated_at",
)

_NOTIFICATION_FIELDS = (
    "patient_id",
    "appointment_id",
    "message",
    "type",
    "status",
    "sent_at",
    "created_at",
    "updated_at",
)


class SqlAlchemyRecordStore:
    """Record store over the relational database.

    SQLAlchemy sessions are blocking, so every operation runs in a worker
    thread. Driver errors are re-raised as ``PersistenceError``.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    async def _run(self, operation: str, func: Callable[[Session], T]) -> T:
        def _work() -> T:
            with session_scope(self._session_factory) as session:
                return func(session)

        try:
            return await anyio.to_thread.run_sync(_work, abandon_on_cancel=True)
        except SQLAlchemyError as exc:
            LOGGER.error("Record store %s failed: %s", operation, exc)
            raise PersistenceError(f"{operation} failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Appointments
    # ------------------------------------------------------------------
    async def save_appointment(self, appointment: Appointment) -> Appointment:
        if not appointment.id:
            raise PersistenceError("appointment has no id")

        def _save(session: Session) -> Appointment:
            row = session.get(models.Appointment, appointment.id)
            if row is None:
                row = models.Appointment(id=appointment.id)
                session.add(row)
            for field in _APPOINTMENT_FIELDS:
                setattr(row, field, getattr(appointment, field))
            session.flush()
            return Appointment.model_validate(row)

        return await self._run("save_appointment", _save)

    async def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        def _get(session: Session) -> Optional[Appointment]:
            row = session.get(models.Appointment, appointment_id)
            return Appointment.model_validate(row) if row is not None else None

        return await self._run("get_appointment", _get)

    async def delete_appointment(self, appointment_id: str) -> bool:
        def _delete(session: Session) -> bool:
            row = session.get(models.Appointment, appointment_id)
            if row is None:
                return False
            session.delete(row)
            return True

        return await self._run("delete_appointment", _delete)

    async def list_appointments(self, start: date, end: date) -> List[Appointment]:
        def _list(session: Session) -> List[Appointment]:
            stmt = (
                select(models.Appointment)
                .where(models.Appointment.date >= start, models.Appointment.date <= end)
                .order_by(models.Appointment.date, models.Appointment.time)
            )
            return [Appointment.model_validate(row) for row in session.scalars(stmt)]

        return await self._run("list_appointments", _list)

    # ------------------------------------------------------------------
    # Patients
    # ------------------------------------------------------------------
    async def get_patient(self, patient_id: str) -> Optional[Patient]:
        def _get(session: Session) -> Optional[Patient]:
            row = session.get(models.Patient, patient_id)
            return Patient.model_validate(row) if row is not None else None

        return await self._run("get_patient", _get)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------
    async def save_notification(self, notification: Notification) -> Notification:
        def _save(session: Session) -> Notification:
            row = session.get(models.Notification, notification.id)
            if row is None:
                row = models.Notification(id=notification.id)
                session.add(row)
            for field in _NOTIFICATION_FIELDS:
                setattr(row, field, getattr(notification, field))
            session.flush()
            return Notification.model_validate(row)

        return await self._run("save_notification", _save)

    async def get_notification(self, notification_id: str) -> Optional[Notification]:
        def _get(session: Session) -> Optional[Notification]:
            row = session.get(models.Notification, notification_id)
            return Notification.model_validate(row) if row is not None else None

        return await self._run("get_notification", _get)

    async def update_notification_status(
        self,
        notification_id: str,
        status: NotificationStatus,
        sent_at: Optional[datetime] = None,
    ) -> Notification:
        def _update(session: Session) -> Optional[Notification]:
            row = session.get(models.Notification, notification_id)
            if row is None:
                return None
            row.status = status
            row.sent_at = (sent_at or utcnow()) if status == "sent" else None
            row.updated_at = utcnow()
            session.flush()
            return Notification.model_validate(row)

        updated = await self._run("update_notification_status", _update)
        if updated is None:
            raise NotFoundError("notification", notification_id)
        return updated
