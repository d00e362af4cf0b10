"""Construction of the shared synchronization services.

Adapters hold session state, so one instance of each is built per process
and handed to the orchestrator explicitly. Tests replace ``get_orchestrator``
through FastAPI's dependency overrides.
"""

from __future__ import annotations

from functools import lru_cache

from clinic_sync.services.cache import RedisFallbackCache, get_redis_client
from clinic_sync.services.calls import Timeouts
from clinic_sync.services.db import get_engine, make_session_factory
from clinic_sync.services.dispatcher import NotificationDispatcher
from clinic_sync.services.entitlement import DatabaseEntitlementSource, EntitlementGate
from clinic_sync.services.orchestrator import SyncOrchestrator
from clinic_sync.services.record_store import SqlAlchemyRecordStore
from clinic_sync.services.session_guard import GuardedMessagingAdapter
from clinic_sync.services.templates import TemplateResolver
from clinic_sync.utils.config import Settings, get_settings
from integrations.google_calendar import GoogleCalendarAdapter
from integrations.whatsapp import WhatsAppWebAdapter


def build_orchestrator(settings: Settings) -> SyncOrchestrator:
    """Wire the orchestrator and its collaborators from settings."""

    session_factory = make_session_factory(get_engine())
    store = SqlAlchemyRecordStore(session_factory)
    timeouts = Timeouts(
        store=settings.store_timeout_seconds,
        cache=settings.cache_timeout_seconds,
        calendar=settings.calendar_timeout_seconds,
        messaging=settings.messaging_timeout_seconds,
    )
    calendar = GoogleCalendarAdapter(
        access_token=settings.google_access_token,
        calendar_id=settings.google_calendar_id,
        timezone=settings.calendar_timezone,
        use_stub=settings.calendar_use_stub,
        timeout_seconds=settings.calendar_timeout_seconds,
    )
    messaging = GuardedMessagingAdapter(
        WhatsAppWebAdapter(
            base_url=settings.whatsapp_bridge_url,
            api_token=settings.whatsapp_api_token,
            enabled=settings.whatsapp_enabled,
            use_stub=settings.whatsapp_use_stub,
            default_country_code=settings.default_country_code,
            timeout_seconds=settings.messaging_timeout_seconds,
        )
    )
    dispatcher = NotificationDispatcher(store=store, messaging=messaging, timeouts=timeouts)
    return SyncOrchestrator(
        store=store,
        cache=RedisFallbackCache(get_redis_client(), settings.fallback_cache_key),
        calendar=calendar,
        dispatcher=dispatcher,
        entitlement=EntitlementGate(DatabaseEntitlementSource(session_factory)),
        templates=TemplateResolver(settings.message_templates),
        timeouts=timeouts,
    )


@lru_cache()
def get_orchestrator() -> SyncOrchestrator:
    """Return the process-wide orchestrator."""

    return build_orchestrator(get_settings())
