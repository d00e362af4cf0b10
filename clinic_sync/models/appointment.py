"""Appointment model definition."""

from __future__ import annotations

import datetime as dt
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clinic_sync.models.base import Base

if TYPE_CHECKING:
    from clinic_sync.models.patient import Patient
else:  # pragma: no cover - typing runtime fallback
    Patient = "Patient"  # type: ignore[assignment]


class Appointment(Base):
    """Represents a scheduled clinic visit and its external sync state."""

    __tablename__ = "appointments"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    patient_id: Mapped[str] = mapped_column(
        ForeignKey("patients.id"),
        nullable=False,
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)
    time: Mapped[str] = mapped_column(String(5), nullable=False)
    duration: Mapped[int] = mapped_column(Integer, default=30, nullable=False)
    appointment_type: Mapped[str] = mapped_column(String(64), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    calendar_synced: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    calendar_event_ref: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    message_sent: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    message_sent_at: Mapped[Optional[dt.datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    patient: Mapped["Patient"] = relationship(back_populates="appointments")
