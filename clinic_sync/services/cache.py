"""Redis-backed fallback cache of appointments."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import List

import anyio
import redis
from pydantic import ValidationError

from clinic_sync.errors import CacheWriteError
from clinic_sync.schemas import Appointment
from clinic_sync.utils.config import get_settings

LOGGER = logging.getLogger(__name__)


@lru_cache()
def get_redis_client() -> redis.Redis:
    """Return a shared Redis client built from settings."""

    settings = get_settings()
    return redis.Redis.from_url(settings.redis_url, decode_responses=True)


class RedisFallbackCache:
    """Mirror appointments into one Redis hash keyed by appointment id.

    The mirror is never authoritative and may lag behind the record store.
    """

    def __init__(self, client: redis.Redis, key: str) -> None:
        self._client = client
        self._key = key

    async def upsert(self, appointment: Appointment) -> None:
        payload = appointment.model_dump_json()
        try:
            await anyio.to_thread.run_sync(
                self._client.hset,
                self._key,
                appointment.id,
                payload,
                abandon_on_cancel=True,
            )
        except redis.RedisError as exc:
            raise CacheWriteError(f"upsert {appointment.id} failed: {exc}") from exc

    async def remove(self, appointment_id: str) -> None:
        try:
            await anyio.to_thread.run_sync(
                self._client.hdel, self._key, appointment_id, abandon_on_cancel=True
            )
        except redis.RedisError as exc:
            raise CacheWriteError(f"remove {appointment_id} failed: {exc}") from exc

    async def all(self) -> List[Appointment]:
        """Return every mirrored appointment, skipping unreadable entries."""

        raw_entries = await anyio.to_thread.run_sync(self._client.hgetall, self._key)
        appointments: List[Appointment] = []
        for appointment_id, raw in raw_entries.items():
            try:
                appointments.append(Appointment.model_validate_json(raw))
            except ValidationError:
                LOGGER.warning("Cached appointment %s unreadable; skipping", appointment_id)
        appointments.sort(key=lambda item: (item.date, item.time))
        return appointments
