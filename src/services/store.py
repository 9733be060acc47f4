"""Record store for complaint and technician records.

The engine is written against the :class:`RecordStore` protocol.  Two
implementations are provided:

* :class:`InMemoryRecordStore` -- process-local, used in development and
  tests.  Records are held as serialised bytes so callers never share
  mutable state with the store.
* :class:`RedisRecordStore` -- one key per record on ``redis.asyncio``,
  with ``WATCH``/``MULTI`` compare-and-swap on saves.

Every record carries a ``version``.  :meth:`RecordStore.save` succeeds
only when the caller's version matches the stored one and bumps it by
one; otherwise it raises :class:`VersionConflict`.  Retrying is the
caller's job (see :mod:`src.services.optimistic`).
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar, runtime_checkable

import orjson
import structlog
from pydantic import BaseModel

logger = structlog.get_logger(__name__)

R = TypeVar("R", bound=BaseModel)

Predicate = Callable[[Any], bool]


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class StoreError(Exception):
    """Base class for record-store failures."""


class VersionConflict(StoreError):
    """The stored record changed (or vanished) since it was read."""


class DuplicateRecord(StoreError):
    """A record id or unique field value is already taken."""

    def __init__(self, collection: str, field: str, value: Any) -> None:
        self.collection = collection
        self.field = field
        self.value = value
        super().__init__(f"{collection}.{field}={value!r} already exists")


# ---------------------------------------------------------------------------
# Query helpers
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Sort:
    field: str
    descending: bool = False


@dataclass(frozen=True, slots=True)
class Page:
    offset: int = 0
    limit: int | None = None


def _sort_key(field: str) -> Callable[[Any], tuple[bool, Any]]:
    def key(record: Any) -> tuple[bool, Any]:
        value = getattr(record, field)
        return (value is None, value)

    return key


def select(
    records: list[R],
    predicate: Predicate | None = None,
    *,
    sort: Sort | None = None,
    page: Page | None = None,
) -> list[R]:
    """Filter, order and slice *records* in memory."""
    selected = [r for r in records if predicate is None or predicate(r)]
    if sort is not None:
        selected.sort(key=_sort_key(sort.field), reverse=sort.descending)
    if page is not None:
        end = None if page.limit is None else page.offset + page.limit
        selected = selected[page.offset:end]
    return selected


def _dump(record: BaseModel) -> bytes:
    return orjson.dumps(record.model_dump(mode="json"))


def _load(model: type[R], raw: bytes) -> R:
    return model.model_validate(orjson.loads(raw))


def _unique_values(record: BaseModel) -> dict[str, Any]:
    data = record.model_dump(mode="json", include=set(getattr(record, "unique_fields", ())))
    return {field: value for field, value in data.items() if value is not None}


# ---------------------------------------------------------------------------
# Store protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class RecordStore(Protocol):
    """Async record store with optimistic concurrency."""

    async def get(self, model: type[R], record_id: str) -> R | None: ...

    async def find_one(self, model: type[R], predicate: Predicate) -> R | None: ...

    async def find(
        self,
        model: type[R],
        predicate: Predicate | None = None,
        *,
        sort: Sort | None = None,
        page: Page | None = None,
    ) -> list[R]: ...

    async def count(self, model: type[R], predicate: Predicate | None = None) -> int: ...

    async def insert(self, record: R) -> R: ...

    async def save(self, record: R) -> R: ...

    async def delete(self, record: BaseModel) -> None: ...

    async def next_sequence(self, name: str) -> int: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------


class InMemoryRecordStore:
    """Dict-backed store; writes are serialised by a single :class:`asyncio.Lock`.

    Sufficient for single-process async workloads, which is also what the
    lock-free reads rely on.
    """

    __slots__ = ("_collections", "_lock", "_sequences", "_unique")

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, bytes]] = defaultdict(dict)
        # (collection, field) -> value -> record id
        self._unique: dict[tuple[str, str], dict[Any, str]] = defaultdict(dict)
        self._sequences: dict[str, int] = defaultdict(int)
        self._lock = asyncio.Lock()

    # -- Reads -----------------------------------------------------------------

    async def get(self, model: type[R], record_id: str) -> R | None:
        raw = self._collections[model.collection].get(record_id)
        return _load(model, raw) if raw is not None else None

    async def find(
        self,
        model: type[R],
        predicate: Predicate | None = None,
        *,
        sort: Sort | None = None,
        page: Page | None = None,
    ) -> list[R]:
        raws = list(self._collections[model.collection].values())
        return select([_load(model, raw) for raw in raws], predicate, sort=sort, page=page)

    async def find_one(self, model: type[R], predicate: Predicate) -> R | None:
        for raw in list(self._collections[model.collection].values()):
            record = _load(model, raw)
            if predicate(record):
                return record
        return None

    async def count(self, model: type[R], predicate: Predicate | None = None) -> int:
        return len(await self.find(model, predicate))

    # -- Writes ----------------------------------------------------------------

    def _check_unique(self, collection: str, record_id: str, values: dict[str, Any]) -> None:
        for field, value in values.items():
            owner = self._unique[(collection, field)].get(value)
            if owner is not None and owner != record_id:
                raise DuplicateRecord(collection, field, value)

    async def insert(self, record: R) -> R:
        collection = type(record).collection
        async with self._lock:
            if record.id in self._collections[collection]:
                raise DuplicateRecord(collection, "id", record.id)
            values = _unique_values(record)
            self._check_unique(collection, record.id, values)

            stored = record.model_copy(update={"version": 1})
            self._collections[collection][record.id] = _dump(stored)
            for field, value in values.items():
                self._unique[(collection, field)][value] = record.id
        return stored

    async def save(self, record: R) -> R:
        model = type(record)
        collection = model.collection
        async with self._lock:
            raw = self._collections[collection].get(record.id)
            if raw is None:
                raise VersionConflict(f"{collection}/{record.id} no longer exists")
            current = _load(model, raw)
            if current.version != record.version:
                raise VersionConflict(
                    f"{collection}/{record.id} is at version {current.version}, not {record.version}"
                )

            old_values = _unique_values(current)
            new_values = _unique_values(record)
            self._check_unique(collection, record.id, new_values)

            stored = record.model_copy(update={"version": record.version + 1})
            self._collections[collection][record.id] = _dump(stored)
            for field, value in old_values.items():
                if new_values.get(field) != value:
                    self._unique[(collection, field)].pop(value, None)
            for field, value in new_values.items():
                self._unique[(collection, field)][value] = record.id
        return stored

    async def delete(self, record: BaseModel) -> None:
        model = type(record)
        collection = model.collection
        async with self._lock:
            raw = self._collections[collection].get(record.id)
            if raw is None or _load(model, raw).version != record.version:
                raise VersionConflict(f"{collection}/{record.id} changed before delete")
            del self._collections[collection][record.id]
            for field, value in _unique_values(record).items():
                self._unique[(collection, field)].pop(value, None)

    async def next_sequence(self, name: str) -> int:
        async with self._lock:
            self._sequences[name] += 1
            return self._sequences[name]

    # -- Lifecycle -------------------------------------------------------------

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


# ---------------------------------------------------------------------------
# Redis store
# ---------------------------------------------------------------------------


class RedisRecordStore:
    """Redis-backed store using ``redis.asyncio`` with connection pooling.

    Layout under *namespace*::

        {ns}:{collection}:{id}                 record JSON
        {ns}:{collection}:_ids                 set of record ids
        {ns}:{collection}:_unique:{field}      hash value -> record id
        {ns}:_seq:{name}                       INCR counter
    """

    __slots__ = ("_namespace", "_pool", "_redis")

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        *,
        namespace: str = "shikayat",
        max_connections: int = 20,
    ) -> None:
        import redis.asyncio as aioredis

        self._namespace = namespace
        self._pool = aioredis.ConnectionPool.from_url(
            url,
            max_connections=max_connections,
            decode_responses=False,
        )
        self._redis = aioredis.Redis(connection_pool=self._pool)

    # -- Keys ------------------------------------------------------------------

    def _record_key(self, collection: str, record_id: str) -> str:
        return f"{self._namespace}:{collection}:{record_id}"

    def _ids_key(self, collection: str) -> str:
        return f"{self._namespace}:{collection}:_ids"

    def _unique_key(self, collection: str, field: str) -> str:
        return f"{self._namespace}:{collection}:_unique:{field}"

    # -- Reads -----------------------------------------------------------------

    async def get(self, model: type[R], record_id: str) -> R | None:
        raw = await self._redis.get(self._record_key(model.collection, record_id))
        return _load(model, raw) if raw is not None else None

    async def _all(self, model: type[R]) -> list[R]:
        ids = await self._redis.smembers(self._ids_key(model.collection))
        if not ids:
            return []
        keys = [self._record_key(model.collection, rid.decode()) for rid in ids]
        raws = await self._redis.mget(keys)
        return [_load(model, raw) for raw in raws if raw is not None]

    async def find(
        self,
        model: type[R],
        predicate: Predicate | None = None,
        *,
        sort: Sort | None = None,
        page: Page | None = None,
    ) -> list[R]:
        return select(await self._all(model), predicate, sort=sort, page=page)

    async def find_one(self, model: type[R], predicate: Predicate) -> R | None:
        for record in await self._all(model):
            if predicate(record):
                return record
        return None

    async def count(self, model: type[R], predicate: Predicate | None = None) -> int:
        if predicate is None:
            return int(await self._redis.scard(self._ids_key(model.collection)))
        return len(await self.find(model, predicate))

    # -- Writes ----------------------------------------------------------------

    async def _claim_unique(self, collection: str, record_id: str, values: dict[str, Any]) -> list[tuple[str, Any]]:
        """Reserve unique values; roll back partial claims on collision."""
        claimed: list[tuple[str, Any]] = []
        for field, value in values.items():
            key = self._unique_key(collection, field)
            if await self._redis.hsetnx(key, str(value), record_id):
                claimed.append((field, value))
                continue
            owner = await self._redis.hget(key, str(value))
            if owner is not None and owner.decode() != record_id:
                for f, v in claimed:
                    await self._redis.hdel(self._unique_key(collection, f), str(v))
                raise DuplicateRecord(collection, field, value)
        return claimed

    async def insert(self, record: R) -> R:
        collection = type(record).collection
        values = _unique_values(record)
        claimed = await self._claim_unique(collection, record.id, values)

        stored = record.model_copy(update={"version": 1})
        key = self._record_key(collection, record.id)
        if not await self._redis.set(key, _dump(stored), nx=True):
            for field, value in claimed:
                await self._redis.hdel(self._unique_key(collection, field), str(value))
            raise DuplicateRecord(collection, "id", record.id)
        await self._redis.sadd(self._ids_key(collection), record.id)
        return stored

    async def save(self, record: R) -> R:
        from redis.exceptions import WatchError

        model = type(record)
        collection = model.collection
        key = self._record_key(collection, record.id)
        stored = record.model_copy(update={"version": record.version + 1})

        async with self._redis.pipeline(transaction=True) as pipe:
            await pipe.watch(key)
            raw = await pipe.get(key)
            if raw is None:
                raise VersionConflict(f"{collection}/{record.id} no longer exists")
            current = _load(model, raw)
            if current.version != record.version:
                raise VersionConflict(
                    f"{collection}/{record.id} is at version {current.version}, not {record.version}"
                )

            old_values = _unique_values(current)
            new_values = _unique_values(record)
            changed = {f: v for f, v in new_values.items() if old_values.get(f) != v}
            claimed = await self._claim_unique(collection, record.id, changed)

            pipe.multi()
            pipe.set(key, _dump(stored))
            for field, value in old_values.items():
                if new_values.get(field) != value:
                    pipe.hdel(self._unique_key(collection, field), str(value))
            try:
                await pipe.execute()
            except WatchError:
                for field, value in claimed:
                    await self._redis.hdel(self._unique_key(collection, field), str(value))
                raise VersionConflict(f"{collection}/{record.id} changed during save") from None
        return stored

    async def delete(self, record: BaseModel) -> None:
        from redis.exceptions import WatchError

        model = type(record)
        collection = model.collection
        key = self._record_key(collection, record.id)

        async with self._redis.pipeline(transaction=True) as pipe:
            await pipe.watch(key)
            raw = await pipe.get(key)
            if raw is None or _load(model, raw).version != record.version:
                raise VersionConflict(f"{collection}/{record.id} changed before delete")
            pipe.multi()
            pipe.delete(key)
            pipe.srem(self._ids_key(collection), record.id)
            for field, value in _unique_values(record).items():
                pipe.hdel(self._unique_key(collection, field), str(value))
            try:
                await pipe.execute()
            except WatchError:
                raise VersionConflict(f"{collection}/{record.id} changed during delete") from None

    async def next_sequence(self, name: str) -> int:
        return int(await self._redis.incr(f"{self._namespace}:_seq:{name}"))

    # -- Lifecycle -------------------------------------------------------------

    async def ping(self) -> bool:
        """Return *True* if the Redis server is reachable."""
        try:
            return bool(await self._redis.ping())
        except Exception:
            logger.warning("store.redis_ping_failed", exc_info=True)
            return False

    async def close(self) -> None:
        await self._redis.aclose()
        await self._pool.aclose()


def create_store(backend: str, *, redis_url: str, namespace: str) -> RecordStore:
    """Build the configured store backend."""
    if backend == "redis":
        logger.info("store.backend_selected", backend="redis", namespace=namespace)
        return RedisRecordStore(redis_url, namespace=namespace)
    logger.info("store.backend_selected", backend="memory")
    return InMemoryRecordStore()
