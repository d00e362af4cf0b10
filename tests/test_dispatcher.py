"""Notification status transitions."""

import anyio
import pytest

from conftest import FakeMessaging

from clinic_sync.errors import NotFoundError, NotificationStateError
from clinic_sync.services.dispatcher import NotificationDispatcher
from clinic_sync.services.session_guard import GuardedMessagingAdapter

pytestmark = pytest.mark.anyio


async def test_dispatch_success_sets_sent_at(dispatcher, store, patient):
    result = await dispatcher.dispatch(patient=patient, notification_type="custom", message="Ciao")

    assert result.sent
    assert result.notification.sent_at is not None
    assert result.notification.appointment_id is None
    assert store.notifications[result.notification.id].status == "sent"
    assert result.outcome.status == "fully_synced"


async def test_disabled_service_leaves_notification_pending(dispatcher, store, messaging, patient):
    messaging.enabled = False

    result = await dispatcher.dispatch(patient=patient, notification_type="custom", message="Ciao")

    assert result.notification.status == "pending"
    assert result.notification.sent_at is None
    assert result.outcome.failed("messaging").kind == "service_unavailable"
    assert store.notifications[result.notification.id].status == "pending"


async def test_adapter_returning_false_counts_as_failure(dispatcher, messaging, patient):
    async def refuse(phone, message, notification_type):
        return False

    messaging.send = refuse

    result = await dispatcher.dispatch(patient=patient, notification_type="custom", message="Ciao")

    assert result.notification.status == "failed"
    assert result.outcome.failed("messaging").kind == "messaging_dispatch_error"


async def test_resend_pending_after_authentication(dispatcher, messaging, patient):
    messaging.authenticated = False
    first = await dispatcher.dispatch(patient=patient, notification_type="custom", message="Ciao")
    assert first.notification.status == "pending"

    await dispatcher.authenticate()
    result = await dispatcher.resend(first.notification.id)

    assert result.notification.status == "sent"
    assert messaging.sent == [("+391234", "Ciao", "custom")]


async def test_resend_failed_passes_through_pending(dispatcher, store, messaging, patient):
    messaging.fail_send = True
    first = await dispatcher.dispatch(patient=patient, notification_type="custom", message="Ciao")
    store.calls.clear()

    await dispatcher.resend(first.notification.id)

    assert store.calls == ["update_notification_status", "update_notification_status"]
    assert store.notifications[first.notification.id].status == "failed"


async def test_resend_sent_notification_is_rejected(dispatcher, patient):
    first = await dispatcher.dispatch(patient=patient, notification_type="custom", message="Ciao")

    with pytest.raises(NotificationStateError):
        await dispatcher.resend(first.notification.id)


async def test_resend_unknown_notification(dispatcher):
    with pytest.raises(NotFoundError):
        await dispatcher.resend("missing")


async def test_logout_waits_until_checked_message_is_sent(store, patient):
    class SlowCheckMessaging(FakeMessaging):
        def __init__(self) -> None:
            super().__init__()
            self.checked = anyio.Event()
            self.log = []

        async def is_authenticated(self) -> bool:
            self.checked.set()
            return self.authenticated

        async def send(self, phone, message, notification_type):
            await anyio.sleep(0.01)
            self.log.append("send")
            return await super().send(phone, message, notification_type)

        async def disconnect(self) -> None:
            self.log.append("disconnect")
            self.authenticated = False

    inner = SlowCheckMessaging()
    dispatcher = NotificationDispatcher(store=store, messaging=GuardedMessagingAdapter(inner))
    results = []

    async def deliver():
        results.append(
            await dispatcher.dispatch(patient=patient, notification_type="custom", message="Ciao")
        )

    async def logout():
        await inner.checked.wait()
        await dispatcher.disconnect()

    async with anyio.create_task_group() as tg:
        tg.start_soon(deliver)
        tg.start_soon(logout)

    assert inner.log == ["send", "disconnect"]
    assert results[0].notification.status == "sent"


async def test_unavailable_reports_logged_out_service(dispatcher, messaging):
    assert await dispatcher.unavailable() is None

    messaging.authenticated = False

    assert (await dispatcher.unavailable()).kind == "service_unavailable"
