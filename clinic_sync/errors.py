"""Error taxonomy for appointment synchronization."""

from __future__ import annotations

from typing import Literal

FailureKind = Literal[
    "calendar_sync_error",
    "messaging_dispatch_error",
    "service_unavailable",
]


class SyncError(Exception):
    """Base class for errors raised by the synchronization core."""


class PersistenceError(SyncError):
    """The record store could not read or write an entity."""


class NotFoundError(SyncError):
    """A referenced appointment, patient or notification does not exist."""

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class CacheWriteError(SyncError):
    """The fallback cache rejected a write. Never fatal."""


class SideEffectError(SyncError):
    """A best-effort remote side effect did not happen."""

    kind: FailureKind


class CalendarSyncError(SideEffectError):
    kind: FailureKind = "calendar_sync_error"


class MessagingDispatchError(SideEffectError):
    kind: FailureKind = "messaging_dispatch_error"


class ServiceUnavailable(SideEffectError):
    """The integration is disabled or unauthenticated; nothing was attempted."""

    kind: FailureKind = "service_unavailable"


class TemplateError(SyncError, ValueError):
    """A message template references an unknown type or placeholder."""


class NotificationStateError(SyncError):
    """The notification cannot be resent from its current status."""
