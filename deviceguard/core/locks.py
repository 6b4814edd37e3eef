"""Per-key asyncio locks giving single-writer access to one record at a time."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from deviceguard.modules.common.exceptions import LockTimeoutError

logger = logging.getLogger(__name__)


class KeyedLock:
    """Lazily creates one ``asyncio.Lock`` per key and drops it once nobody waits on it."""

    def __init__(self, acquire_timeout: float = 5.0) -> None:
        self._acquire_timeout = acquire_timeout
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self._acquire_timeout)
            except asyncio.TimeoutError as exc:
                logger.warning("Timed out waiting for lock %s", key)
                raise LockTimeoutError(key) from exc
            try:
                yield
            finally:
                lock.release()
        finally:
            remaining = self._holders[key] - 1
            if remaining:
                self._holders[key] = remaining
            else:
                del self._holders[key]
                self._locks.pop(key, None)

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


def device_key(device_id: str) -> str:
    return f"device:{device_id}"


def challenge_key(challenge_id: str) -> str:
    return f"challenge:{challenge_id}"


__all__ = ["KeyedLock", "device_key", "challenge_key"]
