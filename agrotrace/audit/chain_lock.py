"""Per-scope serialization of chain appends (fetch tail, hash, advance tail)."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncIterator, Dict, Protocol


class ChainLock(Protocol):
    """Exclusive access to one chain scope's tail for the duration of an append."""

    def hold(self, scope_key: str) -> AsyncContextManager[None]: ...


class LocalChainLock:
    """One asyncio.Lock per scope. Serializes appends within this process only."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, scope_key: str) -> asyncio.Lock:
        lock = self._locks.get(scope_key)
        if lock is None:
            lock = self._locks.setdefault(scope_key, asyncio.Lock())
        return lock

    @asynccontextmanager
    async def hold(self, scope_key: str) -> AsyncIterator[None]:
        async with self._lock_for(scope_key):
            yield
