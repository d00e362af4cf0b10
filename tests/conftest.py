"""Shared fakes for the synchronization core.

Every port gets an in-memory stand-in that records its calls, so tests can
assert on ordering and simulate unreachable integrations by flipping a flag.
"""

from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

import pytest

from clinic_sync.errors import NotFoundError, PersistenceError
from clinic_sync.schemas import Appointment, License, Notification, Patient, utcnow
from clinic_sync.services.dispatcher import NotificationDispatcher
from clinic_sync.services.entitlement import EntitlementGate
from clinic_sync.services.orchestrator import SyncOrchestrator
from clinic_sync.services.templates import TemplateResolver


class InMemoryRecordStore:
    def __init__(self) -> None:
        self.appointments: Dict[str, Appointment] = {}
        self.patients: Dict[str, Patient] = {}
        self.notifications: Dict[str, Notification] = {}
        self.fail_writes = False
        self.calls: List[str] = []

    def _check(self, operation: str) -> None:
        self.calls.append(operation)
        if self.fail_writes:
            raise PersistenceError(f"{operation} failed: database offline")

    async def save_appointment(self, appointment: Appointment) -> Appointment:
        self._check("save_appointment")
        self.appointments[appointment.id] = appointment.model_copy(deep=True)
        return appointment.model_copy(deep=True)

    async def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        found = self.appointments.get(appointment_id)
        return found.model_copy(deep=True) if found else None

    async def delete_appointment(self, appointment_id: str) -> bool:
        self._check("delete_appointment")
        return self.appointments.pop(appointment_id, None) is not None

    async def list_appointments(self, start: date, end: date) -> List[Appointment]:
        return [
            item.model_copy(deep=True)
            for item in self.appointments.values()
            if start <= item.date <= end
        ]

    async def get_patient(self, patient_id: str) -> Optional[Patient]:
        return self.patients.get(patient_id)

    async def save_notification(self, notification: Notification) -> Notification:
        self._check("save_notification")
        self.notifications[notification.id] = notification.model_copy(deep=True)
        return notification.model_copy(deep=True)

    async def get_notification(self, notification_id: str) -> Optional[Notification]:
        found = self.notifications.get(notification_id)
        return found.model_copy(deep=True) if found else None

    async def update_notification_status(
        self,
        notification_id: str,
        status: str,
        sent_at: Optional[datetime] = None,
    ) -> Notification:
        self._check("update_notification_status")
        current = self.notifications.get(notification_id)
        if current is None:
            raise NotFoundError("notification", notification_id)
        updated = current.model_copy(
            update={
                "status": status,
                "sent_at": (sent_at or utcnow()) if status == "sent" else None,
                "updated_at": utcnow(),
            }
        )
        self.notifications[notification_id] = updated
        return updated.model_copy(deep=True)


class FakeCache:
    def __init__(self) -> None:
        self.entries: Dict[str, Appointment] = {}
        self.broken = False

    async def upsert(self, appointment: Appointment) -> None:
        if self.broken:
            raise RuntimeError("redis down")
        self.entries[appointment.id] = appointment.model_copy(deep=True)

    async def remove(self, appointment_id: str) -> None:
        if self.broken:
            raise RuntimeError("redis down")
        self.entries.pop(appointment_id, None)

    async def all(self) -> List[Appointment]:
        return list(self.entries.values())


class FakeCalendar:
    def __init__(self) -> None:
        self.authenticated = True
        self.broken = False
        self.fail_create = False
        self.fail_delete = False
        self.calls: List[tuple] = []
        self._counter = 0

    async def is_authenticated(self) -> bool:
        if self.broken:
            raise ConnectionError("calendar unreachable")
        return self.authenticated

    async def create_event(self, appointment: Appointment) -> str:
        self.calls.append(("create", appointment.id))
        if self.broken or self.fail_create:
            raise ConnectionError("calendar unreachable")
        self._counter += 1
        return f"evt-{self._counter}"

    async def delete_event(self, event_ref: str) -> bool:
        self.calls.append(("delete", event_ref))
        if self.broken or self.fail_delete:
            raise ConnectionError("calendar unreachable")
        return True


class FakeMessaging:
    def __init__(self) -> None:
        self.enabled = True
        self.authenticated = True
        self.broken = False
        self.fail_send = False
        self.sent: List[tuple] = []

    async def is_enabled(self) -> bool:
        if self.broken:
            raise ConnectionError("bridge unreachable")
        return self.enabled

    async def is_authenticated(self) -> bool:
        if self.broken:
            raise ConnectionError("bridge unreachable")
        return self.authenticated

    async def authenticate(self) -> bool:
        self.authenticated = True
        return True

    async def send(self, phone: str, message: str, notification_type: str) -> bool:
        if self.broken or self.fail_send:
            raise ConnectionError("bridge unreachable")
        self.sent.append((phone, message, notification_type))
        return True


class StaticEntitlementSource:
    def __init__(self, license_: Optional[License]) -> None:
        self.license = license_

    async def current_license(self) -> Optional[License]:
        return self.license


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def store() -> InMemoryRecordStore:
    store = InMemoryRecordStore()
    store.patients["p1"] = Patient(id="p1", name="Mario Rossi", phone="+391234")
    store.patients["p2"] = Patient(id="p2", name="Anna Bianchi", phone=None)
    return store


@pytest.fixture
def cache() -> FakeCache:
    return FakeCache()


@pytest.fixture
def calendar() -> FakeCalendar:
    return FakeCalendar()


@pytest.fixture
def messaging() -> FakeMessaging:
    return FakeMessaging()


@pytest.fixture
def license_source() -> StaticEntitlementSource:
    return StaticEntitlementSource(
        License(license_type="full", expiry_date=date.today() + timedelta(days=365))
    )


@pytest.fixture
def dispatcher(store, messaging) -> NotificationDispatcher:
    return NotificationDispatcher(store=store, messaging=messaging)


@pytest.fixture
def orchestrator(store, cache, calendar, dispatcher, license_source) -> SyncOrchestrator:
    return SyncOrchestrator(
        store=store,
        cache=cache,
        calendar=calendar,
        dispatcher=dispatcher,
        entitlement=EntitlementGate(license_source),
        templates=TemplateResolver(),
    )


@pytest.fixture
def patient(store) -> Patient:
    return store.patients["p1"]


def make_appointment(**overrides) -> Appointment:
    fields = {
        "patient_id": "p1",
        "date": date(2025, 3, 10),
        "time": "09:00",
        "duration": 30,
        "appointment_type": "cleaning",
    }
    fields.update(overrides)
    return Appointment(**fields)
