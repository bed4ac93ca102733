"""Advisory TTL cache with pluggable backends.

The memory backend keeps entries per uvicorn worker. With --workers 2, a
derivation may run twice (once per worker); the datastore backend shares
entries through the ``cache`` table instead.

The cache never raises on backend trouble: a failed or slow read is a miss
and a failed write is dropped.
"""

import asyncio
import copy
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Protocol

from services.datastore import Datastore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

CACHE_TABLE = "cache"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CacheBackend(Protocol):
    name: str

    async def read(self, key: str) -> tuple[datetime, Any] | None: ...

    async def write(self, key: str, value: Any, expires_at: datetime) -> None: ...

    async def discard(self, key: str) -> None: ...


class MemoryCacheBackend:
    name = "memory"

    def __init__(self):
        self._store: dict[str, tuple[datetime, Any]] = {}

    async def read(self, key: str) -> tuple[datetime, Any] | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        return expires_at, copy.deepcopy(value)

    async def write(self, key: str, value: Any, expires_at: datetime) -> None:
        # Stored by value, like a datastore round trip.
        self._store[key] = (expires_at, copy.deepcopy(value))

    async def discard(self, key: str) -> None:
        self._store.pop(key, None)

    def __len__(self) -> int:
        return len(self._store)


class DatastoreCacheBackend:
    name = "datastore"

    def __init__(self, datastore: Datastore):
        self._datastore = datastore

    async def read(self, key: str) -> tuple[datetime, Any] | None:
        row = await self._datastore.select(CACHE_TABLE, columns="value,expires_at", eq={"key": key}, single=True)
        if not row:
            return None
        return _parse_timestamp(row["expires_at"]), row["value"]

    async def write(self, key: str, value: Any, expires_at: datetime) -> None:
        await self._datastore.upsert(
            CACHE_TABLE,
            {"key": key, "value": value, "expires_at": expires_at.isoformat()},
            on_conflict="key",
        )

    async def discard(self, key: str) -> None:
        # Expired rows are left for the next upsert to overwrite.
        return None


class TTLCache:
    """Memoize JSON-serializable results per key for ``ttl_minutes``."""

    def __init__(
        self,
        backend: CacheBackend | None,
        default_ttl_minutes: int = 60,
        timeout_seconds: float = 5.0,
        clock: Clock = utc_now,
    ):
        self._backend = backend
        self._default_ttl = default_ttl_minutes
        self._timeout = timeout_seconds
        self._clock = clock

    @property
    def backend_name(self) -> str:
        return self._backend.name if self._backend is not None else "disabled"

    async def get(self, key: str) -> Any | None:
        if self._backend is None:
            return None
        try:
            entry = await asyncio.wait_for(self._backend.read(key), self._timeout)
        except Exception as e:
            logger.warning("Cache read failed for %s: %s", key, e)
            return None

        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() < expires_at:
            return value

        try:
            await asyncio.wait_for(self._backend.discard(key), self._timeout)
        except Exception as e:
            logger.debug("Cache prune failed for %s: %s", key, e)
        return None

    async def set(self, key: str, value: Any, ttl_minutes: int | None = None) -> None:
        ttl = self._default_ttl if ttl_minutes is None else ttl_minutes
        if ttl <= 0:
            raise ValueError(f"ttl_minutes must be positive, got {ttl}")
        if self._backend is None:
            return

        expires_at = self._clock() + timedelta(minutes=ttl)
        try:
            await asyncio.wait_for(self._backend.write(key, value, expires_at), self._timeout)
        except Exception as e:
            logger.warning("Cache write failed for %s: %s", key, e)


def _parse_timestamp(value: str | datetime) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def create_cache(backend_name: str, datastore: Datastore | None, default_ttl_minutes: int, timeout_seconds: float) -> TTLCache:
    backend: CacheBackend | None
    if backend_name == "datastore" and datastore is not None:
        backend = DatastoreCacheBackend(datastore)
    elif backend_name == "memory":
        backend = MemoryCacheBackend()
    else:
        backend = None
    logger.info("Cache backend: %s", backend.name if backend is not None else "disabled")
    return TTLCache(backend, default_ttl_minutes=default_ttl_minutes, timeout_seconds=timeout_seconds)
