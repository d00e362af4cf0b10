"""Timeout wrappers around port calls."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

import anyio

from clinic_sync.errors import PersistenceError, SyncError

T = TypeVar("T")


@dataclass(frozen=True)
class Timeouts:
    """Per-collaborator time limits, in seconds."""

    store: float = 10.0
    cache: float = 2.0
    calendar: float = 15.0
    messaging: float = 30.0


async def bounded(timeout: float, func: Callable[..., Awaitable[T]], *args: Any) -> T:
    """Await ``func(*args)``; raise ``TimeoutError`` once ``timeout`` elapses."""

    with anyio.fail_after(timeout):
        return await func(*args)


async def store_call(
    operation: str,
    timeout: float,
    func: Callable[..., Awaitable[T]],
    *args: Any,
) -> T:
    """Run a record store call, folding every failure into ``PersistenceError``."""

    try:
        return await bounded(timeout, func, *args)
    except SyncError:
        raise
    except TimeoutError as exc:
        raise PersistenceError(f"{operation} timed out after {timeout}s") from exc
    except Exception as exc:
        raise PersistenceError(f"{operation} failed: {exc}") from exc
