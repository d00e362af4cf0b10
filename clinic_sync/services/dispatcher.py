"""Single-notification dispatch through the messaging adapter."""

from __future__ import annotations

import logging
from contextlib import nullcontext
from typing import Any, AsyncContextManager, Optional

from clinic_sync.errors import (
    MessagingDispatchError,
    NotFoundError,
    NotificationStateError,
    ServiceUnavailable,
)
from clinic_sync.schemas import (
    DispatchResult,
    Notification,
    NotificationType,
    Patient,
    SyncOutcome,
    utcnow,
)
from clinic_sync.services.calls import Timeouts, bounded, store_call
from clinic_sync.services.ports import MessagingAdapter, RecordStore

LOGGER = logging.getLogger(__name__)


class NotificationDispatcher:
    """Send one notification and record its status transitions.

    ``pending -> sent``, ``pending -> failed`` on a first attempt and
    ``failed -> pending -> sent|failed`` on a resend. A notification is
    left ``pending`` when the messaging service cannot be used at all.
    """

    def __init__(
        self,
        *,
        store: RecordStore,
        messaging: MessagingAdapter,
        timeouts: Optional[Timeouts] = None,
    ) -> None:
        self.store = store
        self.messaging = messaging
        self.timeouts = timeouts or Timeouts()

    # ---------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------
    async def dispatch(
        self,
        *,
        patient: Patient,
        notification_type: NotificationType,
        message: str,
        appointment_id: Optional[str] = None,
    ) -> DispatchResult:
        """Persist a new notification and try to deliver it."""

        notification = Notification(
            patient_id=patient.id,
            appointment_id=appointment_id,
            message=message,
            type=notification_type,
        )
        notification = await store_call(
            "save_notification",
            self.timeouts.store,
            self.store.save_notification,
            notification,
        )
        return await self._deliver(notification, patient.phone)

    async def resend(self, notification_id: str) -> DispatchResult:
        """Retry delivery of an existing notification with its stored text."""

        notification = await store_call(
            "get_notification",
            self.timeouts.store,
            self.store.get_notification,
            notification_id,
        )
        if notification is None:
            raise NotFoundError("notification", notification_id)
        if notification.status == "sent":
            raise NotificationStateError(f"notification {notification_id} was already sent")

        patient = await store_call(
            "get_patient",
            self.timeouts.store,
            self.store.get_patient,
            notification.patient_id,
        )
        if patient is None:
            raise NotFoundError("patient", notification.patient_id)

        if notification.status == "failed":
            notification = await self._set_status(notification.id, "pending")

        LOGGER.info("Resending notification %s (%s)", notification.id, notification.type)
        return await self._deliver(notification, patient.phone)

    async def authenticate(self) -> bool:
        return await bounded(self.timeouts.messaging, self.messaging.authenticate)

    async def disconnect(self) -> None:
        disconnect = getattr(self.messaging, "disconnect", None)
        if disconnect is not None:
            await bounded(self.timeouts.messaging, disconnect)

    async def unavailable(self) -> Optional[ServiceUnavailable]:
        """Return why messaging cannot be used right now, or ``None`` when it can."""

        async with self._session():
            return await self._check_service()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _session(self) -> AsyncContextManager[Any]:
        # One shared section spans the status check and the send, so a login
        # or logout cannot slip in between them.
        session = getattr(self.messaging, "session", None)
        return session() if session is not None else nullcontext()

    async def _deliver(self, notification: Notification, phone: Optional[str]) -> DispatchResult:
        outcome = SyncOutcome()
        error: Optional[MessagingDispatchError] = None

        async with self._session():
            unavailable = await self._check_service()
            if unavailable is None:
                try:
                    await self._send(notification, phone)
                except MessagingDispatchError as exc:
                    error = exc
                except Exception as exc:
                    error = MessagingDispatchError(str(exc) or exc.__class__.__name__)

        if unavailable is not None:
            LOGGER.warning(
                "Messaging unavailable; notification %s left pending: %s",
                notification.id,
                unavailable,
            )
            outcome.record_failure("messaging", unavailable.kind, str(unavailable))
            return DispatchResult(notification=notification, outcome=outcome)

        if error is None:
            sent = await self._set_status(notification.id, "sent")
            LOGGER.info("Notification %s sent (%s)", sent.id, sent.type)
            return DispatchResult(notification=sent, outcome=outcome)

        LOGGER.warning("Notification %s failed: %s", notification.id, error)
        failed = await self._set_status(notification.id, "failed")
        outcome.record_failure("messaging", error.kind, str(error))
        return DispatchResult(notification=failed, outcome=outcome)

    async def _send(self, notification: Notification, phone: Optional[str]) -> None:
        if not phone:
            raise MessagingDispatchError("patient has no phone number")
        delivered = await bounded(
            self.timeouts.messaging,
            self.messaging.send,
            phone,
            notification.message,
            notification.type,
        )
        if not delivered:
            raise MessagingDispatchError("messaging adapter reported failure")

    async def _check_service(self) -> Optional[ServiceUnavailable]:
        try:
            if not await bounded(self.timeouts.messaging, self.messaging.is_enabled):
                return ServiceUnavailable("messaging service is disabled")
            if not await bounded(self.timeouts.messaging, self.messaging.is_authenticated):
                return ServiceUnavailable("messaging service is not authenticated")
        except Exception as exc:
            return ServiceUnavailable(f"messaging status check failed: {exc!r}")
        return None

    async def _set_status(self, notification_id: str, status: str) -> Notification:
        sent_at = utcnow() if status == "sent" else None
        return await store_call(
            "update_notification_status",
            self.timeouts.store,
            self.store.update_notification_status,
            notification_id,
            status,
            sent_at,
        )
