"""Bounded optimistic read-modify-write against the record store."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, TypeVar

import structlog
from pydantic import BaseModel
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random,
)

from src.services.errors import Conflict, NotFound
from src.services.store import VersionConflict

if TYPE_CHECKING:
    from src.services.store import RecordStore

logger = structlog.get_logger(__name__)

R = TypeVar("R", bound=BaseModel)
T = TypeVar("T")


async def update_record(
    store: RecordStore,
    model: type[R],
    record_id: str,
    mutate: Callable[[R], T],
    *,
    attempts: int = 3,
    max_jitter: float = 0.02,
) -> tuple[R, T]:
    """Apply *mutate* to the freshest copy of a record and save it atomically.

    *mutate* receives the record as currently stored, edits it in place and
    returns an arbitrary outcome value.  It is re-run from scratch on every
    attempt, so it must derive all changes from the record it is given.
    When it leaves the record unchanged no write is issued.  Exceptions
    raised by *mutate* propagate immediately without a retry.

    Raises :class:`NotFound` when the record does not exist and
    :class:`Conflict` once *attempts* saves have lost the version race.
    """
    try:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(VersionConflict),
            stop=stop_after_attempt(attempts),
            wait=wait_random(0, max_jitter),
        ):
            with attempt:
                record = await store.get(model, record_id)
                if record is None:
                    raise NotFound(
                        f"{model.__name__} '{record_id}' not found",
                        details={"id": record_id},
                    )
                before = record.model_copy(deep=True)
                outcome = mutate(record)
                if record == before:
                    return record, outcome
                try:
                    saved = await store.save(record)
                except VersionConflict:
                    logger.info(
                        "store.version_conflict",
                        collection=model.collection,
                        record_id=record_id,
                        attempt=attempt.retry_state.attempt_number,
                    )
                    raise
                return saved, outcome
    except RetryError as exc:
        logger.warning(
            "store.retries_exhausted",
            collection=model.collection,
            record_id=record_id,
            attempts=attempts,
        )
        raise Conflict(
            f"{model.__name__} '{record_id}' was modified concurrently; retry the request",
            details={"id": record_id},
        ) from exc
    raise AssertionError("unreachable")  # pragma: no cover
