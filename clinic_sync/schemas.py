"""Domain entities and outcome tags exchanged with the synchronization core."""

from __future__ import annotations

import datetime as dt
import uuid
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from clinic_sync.errors import FailureKind

NotificationType = Literal["confirmation", "reminder", "update", "cancel", "custom"]
NotificationStatus = Literal["pending", "sent", "failed"]
LicenseType = Literal["basic", "google", "whatsapp", "full"]
SideEffect = Literal["calendar", "messaging"]
OutcomeStatus = Literal["fully_synced", "partially_synced", "persistence_failed"]


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


class Patient(BaseModel):
    """Read-only patient reference used for messaging."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None


class Appointment(BaseModel):
    """One scheduled visit together with its external sync state."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    patient_id: str
    date: dt.date
    time: str = Field(pattern=r"^\d{2}:\d{2}$")
    duration: int = Field(default=30, gt=0)
    appointment_type: str = "visit"
    notes: Optional[str] = None
    calendar_synced: bool = False
    calendar_event_ref: Optional[str] = None
    message_sent: bool = False
    message_sent_at: Optional[dt.datetime] = None
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None

    @model_validator(mode="after")
    def _check_sync_fields(self) -> "Appointment":
        if bool(self.calendar_event_ref) != self.calendar_synced:
            raise ValueError("calendar_event_ref must be set exactly when calendar_synced")
        if (self.message_sent_at is not None) != self.message_sent:
            raise ValueError("message_sent_at must be set exactly when message_sent")
        return self

    def mark_calendar_synced(self, event_ref: str) -> None:
        self.calendar_synced = True
        self.calendar_event_ref = event_ref

    def clear_calendar_sync(self) -> None:
        self.calendar_synced = False
        self.calendar_event_ref = None

    def mark_message_sent(self, sent_at: dt.datetime) -> None:
        self.message_sent = True
        self.message_sent_at = sent_at


class Notification(BaseModel):
    """Record of one attempted or completed patient message."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=new_id)
    patient_id: str
    appointment_id: Optional[str] = None
    message: str
    type: NotificationType
    status: NotificationStatus = "pending"
    sent_at: Optional[dt.datetime] = None
    created_at: dt.datetime = Field(default_factory=utcnow)
    updated_at: dt.datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _check_sent_at(self) -> "Notification":
        if (self.sent_at is not None) != (self.status == "sent"):
            raise ValueError("sent_at must be set exactly when status is 'sent'")
        return self


class License(BaseModel):
    """Installed license as read from the entitlement source."""

    model_config = ConfigDict(from_attributes=True)

    license_type: LicenseType
    expiry_date: dt.date


class Entitlement(BaseModel):
    """Integrations unlocked by the active license at a point in time."""

    calendar_enabled: bool = False
    messaging_enabled: bool = False
    days_until_expiry: int = 0


class SideEffectFailure(BaseModel):
    effect: SideEffect
    kind: FailureKind
    detail: str = ""


class SyncOutcome(BaseModel):
    """Caller-visible classification of an orchestrator call."""

    status: OutcomeStatus = "fully_synced"
    failures: List[SideEffectFailure] = Field(default_factory=list)
    skipped: List[SideEffect] = Field(default_factory=list)

    def record_failure(self, effect: SideEffect, kind: FailureKind, detail: str = "") -> None:
        self.failures.append(SideEffectFailure(effect=effect, kind=kind, detail=detail))
        self.status = "partially_synced"

    def record_skipped(self, effect: SideEffect) -> None:
        if effect not in self.skipped:
            self.skipped.append(effect)

    def merge(self, other: "SyncOutcome") -> None:
        for failure in other.failures:
            self.record_failure(failure.effect, failure.kind, failure.detail)
        for effect in other.skipped:
            self.record_skipped(effect)

    def failed(self, effect: SideEffect) -> Optional[SideEffectFailure]:
        return next((item for item in self.failures if item.effect == effect), None)

    @classmethod
    def persistence_failed(cls) -> "SyncOutcome":
        return cls(status="persistence_failed")


class SyncResult(BaseModel):
    appointment: Appointment
    outcome: SyncOutcome = Field(default_factory=SyncOutcome)
    notification: Optional[Notification] = None


class DeleteResult(SyncResult):
    deleted: bool = True


class DispatchResult(BaseModel):
    notification: Notification
    outcome: SyncOutcome = Field(default_factory=SyncOutcome)

    @property
    def sent(self) -> bool:
        return self.notification.status == "sent"
