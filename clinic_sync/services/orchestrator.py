"""Appointment synchronization across the record store and integrations."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Optional, Tuple

from clinic_sync.errors import (
    CalendarSyncError,
    NotFoundError,
    PersistenceError,
    ServiceUnavailable,
)
from clinic_sync.schemas import (
    Appointment,
    DeleteResult,
    DispatchResult,
    Entitlement,
    Notification,
    NotificationType,
    Patient,
    SyncOutcome,
    SyncResult,
    new_id,
    utcnow,
)
from clinic_sync.services.calls import Timeouts, bounded, store_call
from clinic_sync.services.dispatcher import NotificationDispatcher
from clinic_sync.services.entitlement import EntitlementGate
from clinic_sync.services.ports import CalendarAdapter, FallbackCache, RecordStore
from clinic_sync.services.templates import TemplateResolver, format_date

LOGGER = logging.getLogger(__name__)


class SyncOrchestrator:
    """Create, update and delete appointments with best-effort side effects.

    The record store write is the only step that can fail an operation.
    Fallback cache mirroring, calendar events and patient messages are
    attempted afterwards; their failures are logged and reported in the
    returned ``SyncOutcome`` but never undo the stored appointment.
    """

    def __init__(
        self,
        *,
        store: RecordStore,
        cache: FallbackCache,
        calendar: CalendarAdapter,
        dispatcher: NotificationDispatcher,
        entitlement: EntitlementGate,
        templates: Optional[TemplateResolver] = None,
        timeouts: Optional[Timeouts] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.cache = cache
        self.calendar = calendar
        self.dispatcher = dispatcher
        self.entitlement = entitlement
        self.templates = templates or TemplateResolver()
        self.timeouts = timeouts or Timeouts()
        self._clock = clock

    # ---------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------
    async def create_appointment(self, appointment: Appointment, patient: Patient) -> SyncResult:
        """Store a new appointment, then sync the calendar and confirm by message."""

        appointment = appointment.model_copy(deep=True)
        if not appointment.id:
            appointment.id = new_id()
        now = self._clock()
        appointment.created_at = now
        appointment.updated_at = now
        appointment.clear_calendar_sync()
        appointment.message_sent = False
        appointment.message_sent_at = None

        appointment = await self._persist(appointment)
        LOGGER.info("Appointment %s created for patient %s", appointment.id, patient.id)

        entitlement = await self.entitlement.resolve(now)
        outcome = SyncOutcome()
        appointment = await self._sync_calendar(appointment, entitlement, outcome)
        appointment, notification = await self._notify(
            appointment, patient, "confirmation", entitlement, outcome
        )
        return SyncResult(appointment=appointment, outcome=outcome, notification=notification)

    async def update_appointment(
        self,
        appointment: Appointment,
        patient: Patient,
        notify_patient: bool = False,
    ) -> SyncResult:
        """Store edits to an existing appointment and replace its calendar event."""

        if not appointment.id:
            raise NotFoundError("appointment", "<missing id>")
        existing = await self._load(appointment.id)

        now = self._clock()
        updated = appointment.model_copy(
            deep=True,
            update={
                "created_at": existing.created_at,
                "updated_at": now,
                "calendar_synced": existing.calendar_synced,
                "calendar_event_ref": existing.calendar_event_ref,
                "message_sent": existing.message_sent,
                "message_sent_at": existing.message_sent_at,
            },
        )
        updated = await self._persist(updated)
        LOGGER.info("Appointment %s updated", updated.id)

        entitlement = await self.entitlement.resolve(now)
        outcome = SyncOutcome()
        previous_ref = existing.calendar_event_ref if existing.calendar_synced else None
        updated = await self._sync_calendar(updated, entitlement, outcome, previous_ref=previous_ref)

        notification: Optional[Notification] = None
        if notify_patient:
            updated, notification = await self._notify(
                updated, patient, "update", entitlement, outcome
            )
        else:
            outcome.record_skipped("messaging")
        return SyncResult(appointment=updated, outcome=outcome, notification=notification)

    async def delete_appointment(
        self,
        appointment_id: str,
        patient: Patient,
        notify_patient: bool = False,
    ) -> DeleteResult:
        """Remove the calendar event, optionally notify, then delete the record."""

        existing = await self._load(appointment_id)
        entitlement = await self.entitlement.resolve(self._clock())
        outcome = SyncOutcome()

        if existing.calendar_synced and existing.calendar_event_ref:
            await self._remove_calendar_event(existing.calendar_event_ref, entitlement, outcome)
        else:
            outcome.record_skipped("calendar")

        notification: Optional[Notification] = None
        if notify_patient:
            _, notification = await self._notify(existing, patient, "cancel", entitlement, outcome)
        else:
            outcome.record_skipped("messaging")

        deleted = await store_call(
            "delete_appointment",
            self.timeouts.store,
            self.store.delete_appointment,
            appointment_id,
        )
        if not deleted:
            raise NotFoundError("appointment", appointment_id)
        await self._unmirror(appointment_id)
        LOGGER.info("Appointment %s deleted", appointment_id)
        return DeleteResult(appointment=existing, outcome=outcome, notification=notification)

    async def resend_notification(self, notification_id: str) -> DispatchResult:
        """Resend a stored notification and flag its appointment when delivered."""

        result = await self.dispatcher.resend(notification_id)
        notification = result.notification
        if (
            not result.sent
            or not notification.appointment_id
            or notification.type in ("cancel", "custom")
        ):
            return result

        appointment = await store_call(
            "get_appointment",
            self.timeouts.store,
            self.store.get_appointment,
            notification.appointment_id,
        )
        if appointment is not None and not appointment.message_sent:
            appointment.mark_message_sent(notification.sent_at or self._clock())
            await self._persist(appointment)
        return result

    async def send_message(
        self,
        patient: Patient,
        message: str,
        appointment_id: Optional[str] = None,
    ) -> DispatchResult:
        """Send a free-text message. Raises ``ServiceUnavailable`` when unlicensed."""

        entitlement = await self.entitlement.resolve(self._clock())
        if not entitlement.messaging_enabled:
            raise ServiceUnavailable("messaging is not included in the active license")
        return await self.dispatcher.dispatch(
            patient=patient,
            notification_type="custom",
            message=message,
            appointment_id=appointment_id,
        )

    async def resync_calendar(self, start: date, end: date) -> Dict[str, int]:
        """Create calendar events for every unsynced appointment in a date range."""

        counts = {"success": 0, "failed": 0}
        entitlement = await self.entitlement.resolve(self._clock())
        if not entitlement.calendar_enabled or await self._calendar_unavailable():
            return counts

        appointments = await store_call(
            "list_appointments",
            self.timeouts.store,
            self.store.list_appointments,
            start,
            end,
        )
        for appointment in appointments:
            if appointment.calendar_synced:
                continue
            outcome = SyncOutcome()
            await self._sync_calendar(appointment, entitlement, outcome)
            counts["failed" if outcome.failed("calendar") else "success"] += 1
        LOGGER.info("Calendar resync %s..%s: %s", start, end, counts)
        return counts

    async def send_reminders(self, today: date) -> Dict[str, int]:
        """Message patients whose upcoming appointments have no message yet.

        Tomorrow's appointments get a ``reminder``; the day after tomorrow
        gets a catch-up ``confirmation``. Nothing is attempted, and no
        notification rows are written, while messaging is unavailable.
        """

        counts = {"success": 0, "failed": 0, "pending": 0}
        entitlement = await self.entitlement.resolve(self._clock())
        if not entitlement.messaging_enabled:
            return counts
        unavailable = await self.dispatcher.unavailable()
        if unavailable is not None:
            LOGGER.warning("Reminder sweep skipped: %s", unavailable)
            return counts

        tomorrow = today + timedelta(days=1)
        appointments = await store_call(
            "list_appointments",
            self.timeouts.store,
            self.store.list_appointments,
            tomorrow,
            today + timedelta(days=2),
        )
        for appointment in appointments:
            if appointment.message_sent:
                continue
            patient = await store_call(
                "get_patient",
                self.timeouts.store,
                self.store.get_patient,
                appointment.patient_id,
            )
            if patient is None or not (patient.phone or "").strip():
                continue
            notification_type: NotificationType = (
                "reminder" if appointment.date == tomorrow else "confirmation"
            )
            outcome = SyncOutcome()
            _, notification = await self._notify(
                appointment, patient, notification_type, entitlement, outcome
            )
            if notification is None or notification.status == "failed":
                counts["failed"] += 1
            elif notification.status == "sent":
                counts["success"] += 1
            else:
                counts["pending"] += 1
        LOGGER.info("Reminder sweep from %s: %s", tomorrow, counts)
        return counts

    # ------------------------------------------------------------------
    # Record store and fallback cache
    # ------------------------------------------------------------------
    async def _load(self, appointment_id: str) -> Appointment:
        appointment = await store_call(
            "get_appointment",
            self.timeouts.store,
            self.store.get_appointment,
            appointment_id,
        )
        if appointment is None:
            raise NotFoundError("appointment", appointment_id)
        return appointment

    async def _persist(self, appointment: Appointment) -> Appointment:
        try:
            stored = await store_call(
                "save_appointment",
                self.timeouts.store,
                self.store.save_appointment,
                appointment,
            )
        except PersistenceError as exc:
            LOGGER.error("Appointment %s not persisted: %s", appointment.id, exc)
            raise
        await self._mirror(stored)
        return stored

    async def _mirror(self, appointment: Appointment) -> None:
        try:
            await bounded(self.timeouts.cache, self.cache.upsert, appointment)
        except Exception as exc:
            LOGGER.warning("Fallback cache write for %s failed: %s", appointment.id, exc)

    async def _unmirror(self, appointment_id: str) -> None:
        try:
            await bounded(self.timeouts.cache, self.cache.remove, appointment_id)
        except Exception as exc:
            LOGGER.warning("Fallback cache removal of %s failed: %s", appointment_id, exc)

    # ------------------------------------------------------------------
    # Calendar
    # ------------------------------------------------------------------
    async def _calendar_unavailable(self) -> Optional[ServiceUnavailable]:
        try:
            if await bounded(self.timeouts.calendar, self.calendar.is_authenticated):
                return None
            return ServiceUnavailable("calendar is not authenticated")
        except Exception as exc:
            return ServiceUnavailable(f"calendar status check failed: {exc!r}")

    async def _sync_calendar(
        self,
        appointment: Appointment,
        entitlement: Entitlement,
        outcome: SyncOutcome,
        previous_ref: Optional[str] = None,
    ) -> Appointment:
        if not entitlement.calendar_enabled:
            outcome.record_skipped("calendar")
            return appointment

        unavailable = await self._calendar_unavailable()
        if unavailable is not None:
            LOGGER.warning("Calendar sync of %s skipped: %s", appointment.id, unavailable)
            outcome.record_failure("calendar", unavailable.kind, str(unavailable))
            return appointment

        # The old event goes first so two remote events never share an appointment.
        if previous_ref:
            await self._delete_event(previous_ref)

        try:
            event_ref = await bounded(self.timeouts.calendar, self.calendar.create_event, appointment)
            if not event_ref:
                raise CalendarSyncError("calendar adapter returned no event id")
        except Exception as exc:
            error = exc if isinstance(exc, CalendarSyncError) else CalendarSyncError(repr(exc))
            LOGGER.warning("Calendar sync of %s failed: %s", appointment.id, error)
            outcome.record_failure("calendar", error.kind, str(error))
            if previous_ref:
                appointment.clear_calendar_sync()
                return await self._persist(appointment)
            return appointment

        appointment.mark_calendar_synced(event_ref)
        LOGGER.info("Appointment %s synced to calendar event %s", appointment.id, event_ref)
        return await self._persist(appointment)

    async def _delete_event(self, event_ref: str) -> bool:
        try:
            removed = await bounded(self.timeouts.calendar, self.calendar.delete_event, event_ref)
        except Exception as exc:
            LOGGER.warning("Calendar event %s not deleted: %r", event_ref, exc)
            return False
        if not removed:
            LOGGER.warning("Calendar adapter refused to delete event %s", event_ref)
        return bool(removed)

    async def _remove_calendar_event(
        self,
        event_ref: str,
        entitlement: Entitlement,
        outcome: SyncOutcome,
    ) -> None:
        if not entitlement.calendar_enabled:
            reason = ServiceUnavailable("calendar is not included in the active license")
        else:
            reason = await self._calendar_unavailable()
        if reason is not None:
            LOGGER.warning("Calendar event %s left in place: %s", event_ref, reason)
            outcome.record_failure("calendar", reason.kind, str(reason))
            return
        if not await self._delete_event(event_ref):
            outcome.record_failure(
                "calendar", "calendar_sync_error", f"event {event_ref} was not deleted"
            )

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------
    def render_message(
        self,
        notification_type: NotificationType,
        appointment: Appointment,
        patient: Patient,
    ) -> str:
        return self.templates.render(
            notification_type,
            {
                "patient": patient.name,
                "data": format_date(appointment.date),
                "ora": appointment.time,
            },
        )

    async def _notify(
        self,
        appointment: Appointment,
        patient: Patient,
        notification_type: NotificationType,
        entitlement: Entitlement,
        outcome: SyncOutcome,
    ) -> Tuple[Appointment, Optional[Notification]]:
        if not entitlement.messaging_enabled or not (patient.phone or "").strip():
            outcome.record_skipped("messaging")
            return appointment, None

        message = self.render_message(notification_type, appointment, patient)
        try:
            result = await self.dispatcher.dispatch(
                patient=patient,
                notification_type=notification_type,
                message=message,
                appointment_id=appointment.id,
            )
        except PersistenceError as exc:
            LOGGER.warning("Notification for %s not recorded: %s", appointment.id, exc)
            outcome.record_failure("messaging", "messaging_dispatch_error", str(exc))
            return appointment, None

        outcome.merge(result.outcome)
        if result.sent and notification_type != "cancel":
            appointment.mark_message_sent(result.notification.sent_at or self._clock())
            appointment = await self._persist(appointment)
        return appointment, result.notification
