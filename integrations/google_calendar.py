"""Google Calendar API adapter."""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, time as dtime, timedelta
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

import httpx

from clinic_sync.errors import CalendarSyncError
from clinic_sync.schemas import Appointment

LOGGER = logging.getLogger(__name__)


class GoogleCalendarAdapter:
    """Adapter creating and deleting one Google Calendar event per appointment."""

    def __init__(
        self,
        *,
        access_token: str,
        calendar_id: str = "primary",
        base_url: str = "https://www.googleapis.com/calendar/v3",
        timezone: str = "Europe/Rome",
        use_stub: bool = False,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.access_token = access_token
        self.calendar_id = calendar_id
        self.base_url = base_url.rstrip("/")
        self.timezone = timezone
        self.use_stub = use_stub or not access_token
        self._timeout = timeout_seconds
        self._transport = transport

    # ---------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------
    async def is_authenticated(self) -> bool:
        return self.use_stub or bool(self.access_token)

    async def create_event(self, appointment: Appointment) -> str:
        """Create the event and return its Google id."""

        LOGGER.info(
            "google calendar create: use_stub=%s appointment=%s",
            self.use_stub,
            appointment.id,
        )
        payload = self._build_event_payload(appointment)

        if self.use_stub:
            return self._stub_event_id(appointment)

        async with self._http_client() as client:
            LOGGER.debug("google calendar request: %s", json.dumps(payload, default=str))
            response = await client.post(self._events_path(), json=payload)
            if response.is_error:
                raise CalendarSyncError(
                    f"event create failed: status={response.status_code} body={response.text}"
                )
            body = response.json()

        event_id = body.get("id") if isinstance(body, dict) else None
        if not event_id:
            raise CalendarSyncError("event create response carried no id")
        return str(event_id)

    async def delete_event(self, event_ref: str) -> bool:
        """Delete the event; an event that is already gone counts as deleted."""

        LOGGER.info("google calendar delete: use_stub=%s event=%s", self.use_stub, event_ref)
        if self.use_stub:
            return True

        async with self._http_client() as client:
            response = await client.delete(f"{self._events_path()}/{event_ref}")

        if response.status_code in (404, 410):
            LOGGER.debug("google calendar event %s already removed", event_ref)
            return True
        if response.is_error:
            raise CalendarSyncError(
                f"event delete failed: status={response.status_code} body={response.text}"
            )
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _http_client(self) -> httpx.AsyncClient:
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self._timeout,
            transport=self._transport,
        )

    def _events_path(self) -> str:
        return f"/calendars/{self.calendar_id}/events"

    def _build_event_payload(self, appointment: Appointment) -> Dict[str, Any]:
        tz = ZoneInfo(self.timezone)
        hours, minutes = (int(part) for part in appointment.time.split(":"))
        start = datetime.combine(appointment.date, dtime(hours, minutes), tzinfo=tz)
        end = start + timedelta(minutes=appointment.duration)

        return {
            "summary": f"Appuntamento: {appointment.appointment_type}",
            "description": appointment.notes or "Nessuna nota",
            "start": {"dateTime": start.isoformat(), "timeZone": self.timezone},
            "end": {"dateTime": end.isoformat(), "timeZone": self.timezone},
            "extendedProperties": {"private": {"appointmentId": appointment.id}},
            "reminders": {
                "useDefault": False,
                "overrides": [
                    {"method": "email", "minutes": 24 * 60},
                    {"method": "popup", "minutes": 30},
                ],
            },
        }

    @staticmethod
    def _stub_event_id(appointment: Appointment) -> str:
        return f"stub_event_{appointment.id}_{int(time.time() * 1000):x}"
