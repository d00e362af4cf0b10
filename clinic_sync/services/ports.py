"""Interfaces of the collaborators the synchronization core depends on."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional, Protocol

from clinic_sync.schemas import (
    Appointment,
    License,
    Notification,
    NotificationStatus,
    NotificationType,
    Patient,
)


class RecordStore(Protocol):
    """Durable CRUD for appointments, patients and notifications."""

    async def save_appointment(self, appointment: Appointment) -> Appointment: ...

    async def get_appointment(self, appointment_id: str) -> Optional[Appointment]: ...

    async def delete_appointment(self, appointment_id: str) -> bool: ...

    async def list_appointments(self, start: date, end: date) -> List[Appointment]: ...

    async def get_patient(self, patient_id: str) -> Optional[Patient]: ...

    async def save_notification(self, notification: Notification) -> Notification: ...

    async def get_notification(self, notification_id: str) -> Optional[Notification]: ...

    async def update_notification_status(
        self,
        notification_id: str,
        status: NotificationStatus,
        sent_at: Optional[datetime] = None,
    ) -> Notification: ...


class FallbackCache(Protocol):
    """Best-effort local mirror of appointments."""

    async def upsert(self, appointment: Appointment) -> None: ...

    async def remove(self, appointment_id: str) -> None: ...

    async def all(self) -> List[Appointment]: ...


class CalendarAdapter(Protocol):
    async def is_authenticated(self) -> bool: ...

    async def create_event(self, appointment: Appointment) -> str: ...

    async def delete_event(self, event_ref: str) -> bool: ...


class MessagingAdapter(Protocol):
    async def is_enabled(self) -> bool: ...

    async def is_authenticated(self) -> bool: ...

    async def authenticate(self) -> bool: ...

    async def send(self, phone: str, message: str, notification_type: NotificationType) -> bool: ...


class EntitlementSource(Protocol):
    async def current_license(self) -> Optional[License]: ...
