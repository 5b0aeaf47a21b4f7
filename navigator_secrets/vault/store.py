"""
Secret Stores — TTL-capable key-value backends with atomic primitives.

Every store provides:
- ``create(id, record, ttl)`` — atomic set-if-absent, returns False on conflict
- ``read_and_delete(id)`` — atomic fetch-and-remove, at most one caller wins
- ``delete(id)`` — idempotent removal
- ``ping()`` / ``close()`` — liveness and resource release

Expiry is owned by the backend: records vanish once their TTL elapses
without any application involvement.

Security Note:
    Never log record contents. Only log identifiers and outcomes.
"""
import time
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import orjson
from pydantic import ValidationError
from redis import asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ..exceptions import BackendUnavailable, IntegrityFailure
from .models import SecretRecord

logger = logging.getLogger("navigator.secrets")

# Single round-trip get-and-delete for servers without GETDEL (< 6.2)
_LUA_GETDEL = """
local v = redis.call('GET', KEYS[1])
if v then
  redis.call('DEL', KEYS[1])
end
return v
"""


class SecretStore(ABC):
    """Abstract secret backend."""

    def __init__(self, key_prefix: str = "secrets:"):
        self._prefix = key_prefix

    def storage_key(self, secret_id: str) -> str:
        """Build backend key for a secret identifier."""
        return f"{self._prefix}{secret_id}"

    def _decode(self, secret_id: str, raw: Any) -> SecretRecord:
        try:
            return SecretRecord.from_bytes(raw)
        except (orjson.JSONDecodeError, ValidationError) as err:
            # the key is already gone, nothing stale is left behind
            logger.error(
                "Corrupt record discarded for id=%s: %s",
                secret_id, type(err).__name__,
            )
            raise IntegrityFailure() from err

    @abstractmethod
    async def create(self, secret_id: str, record: SecretRecord, ttl: int) -> bool:
        """Store ``record`` only if nothing is stored under ``secret_id``.

        Returns:
            True if written, False if a record already exists.
        """

    @abstractmethod
    async def read_and_delete(self, secret_id: str) -> Optional[SecretRecord]:
        """Atomically fetch and remove a record.

        Returns:
            The record, or None if absent.
        """

    @abstractmethod
    async def delete(self, secret_id: str) -> None:
        """Remove a record. Absent records are not an error."""

    @abstractmethod
    async def ping(self) -> bool:
        """Return True if the backend answers."""

    async def close(self) -> None:
        """Release backend resources."""


class RedisSecretStore(SecretStore):
    """Redis backed store.

    ``create`` maps to ``SET key value NX EX ttl`` and ``read_and_delete``
    to ``GETDEL`` (or an equivalent Lua script when ``atomic_script`` is set).
    """

    def __init__(
        self,
        redis: Any,
        key_prefix: str = "secrets:",
        atomic_script: bool = False,
    ):
        super().__init__(key_prefix)
        self._redis = redis
        self._atomic_script = atomic_script
        self._getdel_script = None

    @classmethod
    def from_url(
        cls,
        url: str,
        timeout: float = 2.0,
        key_prefix: str = "secrets:",
        atomic_script: bool = False,
    ) -> "RedisSecretStore":
        """Build a store with its own connection pool.

        Args:
            url: Redis URL (redis://, rediss:// or unix://).
            timeout: Socket connect/read timeout in seconds.
            key_prefix: Namespace for secret keys.
            atomic_script: Use a Lua script instead of GETDEL.
        """
        client = aioredis.from_url(
            url,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )
        return cls(client, key_prefix=key_prefix, atomic_script=atomic_script)

    async def create(self, secret_id: str, record: SecretRecord, ttl: int) -> bool:
        try:
            created = await self._redis.set(
                self.storage_key(secret_id), record.to_bytes(), ex=ttl, nx=True,
            )
        except (RedisConnectionError, RedisTimeoutError) as err:
            logger.error("Redis create failed for id=%s: %s", secret_id, err)
            raise BackendUnavailable() from err
        return bool(created)

    async def _getdel(self, key: str) -> Any:
        if not self._atomic_script:
            return await self._redis.getdel(key)
        if self._getdel_script is None:
            self._getdel_script = self._redis.register_script(_LUA_GETDEL)
        return await self._getdel_script(keys=[key])

    async def read_and_delete(self, secret_id: str) -> Optional[SecretRecord]:
        try:
            raw = await self._getdel(self.storage_key(secret_id))
        except (RedisConnectionError, RedisTimeoutError) as err:
            logger.error("Redis read failed for id=%s: %s", secret_id, err)
            raise BackendUnavailable() from err
        if raw is None:
            return None
        return self._decode(secret_id, raw)

    async def delete(self, secret_id: str) -> None:
        try:
            await self._redis.delete(self.storage_key(secret_id))
        except (RedisConnectionError, RedisTimeoutError) as err:
            logger.error("Redis delete failed for id=%s: %s", secret_id, err)
            raise BackendUnavailable() from err

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except (RedisConnectionError, RedisTimeoutError) as err:
            logger.warning("Redis ping failed: %s", err)
            return False

    async def close(self) -> None:
        await self._redis.aclose()


class MemorySecretStore(SecretStore):
    """In-process store for development and tests.

    Each operation runs under a lock with no suspension point, so it is
    atomic for both coroutines and threads. Deadlines use ``clock``
    (monotonic by default) and expired records are purged on access.
    """

    def __init__(
        self,
        key_prefix: str = "secrets:",
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(key_prefix)
        self._clock = clock
        self._lock = threading.Lock()
        self._data: dict[str, tuple[float, bytes]] = {}  # key -> (deadline, bytes)

    def _live(self, key: str) -> Optional[bytes]:
        item = self._data.get(key)
        if item is None:
            return None
        deadline, raw = item
        if deadline <= self._clock():
            del self._data[key]
            return None
        return raw

    def __len__(self) -> int:
        with self._lock:
            return sum(1 for key in list(self._data) if self._live(key) is not None)

    async def create(self, secret_id: str, record: SecretRecord, ttl: int) -> bool:
        key = self.storage_key(secret_id)
        with self._lock:
            if self._live(key) is not None:
                return False
            self._data[key] = (self._clock() + ttl, record.to_bytes())
            return True

    async def read_and_delete(self, secret_id: str) -> Optional[SecretRecord]:
        key = self.storage_key(secret_id)
        with self._lock:
            raw = self._live(key)
            if raw is None:
                return None
            del self._data[key]
        return self._decode(secret_id, raw)

    async def delete(self, secret_id: str) -> None:
        with self._lock:
            self._data.pop(self.storage_key(secret_id), None)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        with self._lock:
            self._data.clear()


def create_store(config: Any) -> SecretStore:
    """Build the store selected by ``config.redis_url``."""
    if config.use_memory_backend:
        logger.warning(
            "Using in-memory secret store, data is not shared between processes"
        )
        return MemorySecretStore(key_prefix=config.key_prefix)
    return RedisSecretStore.from_url(
        config.redis_url,
        timeout=config.backend_timeout,
        key_prefix=config.key_prefix,
        atomic_script=config.atomic_script,
    )
