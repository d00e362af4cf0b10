"""Serialize session-changing calls on shared integration adapters."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncIterator

import anyio

from clinic_sync.schemas import NotificationType
from clinic_sync.services.ports import MessagingAdapter

LOGGER = logging.getLogger(__name__)


class SessionGuard:
    """Shared/exclusive lock keyed to an adapter's login session.

    Sends and event writes hold the shared side and may overlap. Login and
    logout hold the exclusive side: they wait for in-flight users to drain
    and block new ones until the session state has settled.
    """

    def __init__(self) -> None:
        self._condition = anyio.Condition()
        self._active = 0
        self._exclusive = False

    @asynccontextmanager
    async def shared(self) -> AsyncIterator[None]:
        async with self._condition:
            while self._exclusive:
                await self._condition.wait()
            self._active += 1
        try:
            yield
        finally:
            with anyio.CancelScope(shield=True):
                async with self._condition:
                    self._active -= 1
                    self._condition.notify_all()

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[None]:
        async with self._condition:
            while self._exclusive or self._active:
                await self._condition.wait()
            self._exclusive = True
        try:
            yield
        finally:
            with anyio.CancelScope(shield=True):
                async with self._condition:
                    self._exclusive = False
                    self._condition.notify_all()


class GuardedMessagingAdapter:
    """Messaging adapter wrapper that routes every call through a SessionGuard."""

    def __init__(self, adapter: MessagingAdapter, guard: SessionGuard | None = None) -> None:
        self.adapter = adapter
        self.guard = guard or SessionGuard()

    def session(self) -> AsyncContextManager[None]:
        """Hold the shared side across several calls (status check, then send).

        Nested shared sections are safe: the exclusive side only waits for
        the active count to drop to zero.
        """

        return self.guard.shared()

    async def is_enabled(self) -> bool:
        return await self.adapter.is_enabled()

    async def is_authenticated(self) -> bool:
        async with self.guard.shared():
            return await self.adapter.is_authenticated()

    async def authenticate(self) -> bool:
        async with self.guard.exclusive():
            LOGGER.info("Authenticating messaging session")
            return await self.adapter.authenticate()

    async def disconnect(self) -> None:
        disconnect = getattr(self.adapter, "disconnect", None)
        if disconnect is None:
            return
        async with self.guard.exclusive():
            LOGGER.info("Disconnecting messaging session")
            await disconnect()

    async def send(self, phone: str, message: str, notification_type: NotificationType) -> bool:
        async with self.guard.shared():
            return await self.adapter.send(phone, message, notification_type)
