"""Cross-process chain lock on Redis. SET NX EX with a per-acquire token, compare-and-delete release."""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Protocol

from agrotrace.audit.chain_lock import LocalChainLock
from agrotrace.audit.exceptions import ChainLockTimeoutError

LOCK_PREFIX = "audit:chain-lock:"


class RedisLockBackend(Protocol):
    """Minimal Redis operations for the lock. Injected; no global state."""

    async def set_nx_ex(self, key: str, value: str, ttl: int) -> bool: ...
    async def delete_if_value(self, key: str, value: str) -> bool: ...


class RedisChainLock:
    """
    Serializes appends to one chain scope across replicas. Coroutines of this
    process queue on a local lock first, so only one of them polls Redis.
    The TTL bounds how long a crashed holder can block the scope.
    """

    def __init__(
        self,
        backend: RedisLockBackend,
        *,
        ttl_seconds: int = 10,
        wait_seconds: float = 5.0,
        poll_interval_seconds: float = 0.05,
        key_prefix: str = LOCK_PREFIX,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._backend = backend
        self._ttl = ttl_seconds
        self._wait = wait_seconds
        self._poll = poll_interval_seconds
        self._prefix = key_prefix
        self._local = LocalChainLock()
        self._logger = logger or logging.getLogger(__name__)

    def _key(self, scope_key: str) -> str:
        return f"{self._prefix}{scope_key}"

    @asynccontextmanager
    async def hold(self, scope_key: str) -> AsyncIterator[None]:
        async with self._local.hold(scope_key):
            key = self._key(scope_key)
            token = str(uuid.uuid4())
            await self._acquire(key, token, scope_key)
            try:
                yield
            finally:
                released = await self._backend.delete_if_value(key, token)
                if not released:
                    # TTL expired while held; another replica may have appended meanwhile.
                    self._logger.warning(
                        "audit_chain_lock_expired",
                        extra={"scope_key": scope_key, "ttl_seconds": self._ttl},
                    )

    async def _acquire(self, key: str, token: str, scope_key: str) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._wait
        while not await self._backend.set_nx_ex(key, token, self._ttl):
            if loop.time() >= deadline:
                raise ChainLockTimeoutError(
                    f"Timed out after {self._wait}s waiting for chain lock {scope_key}"
                )
            await asyncio.sleep(self._poll)
