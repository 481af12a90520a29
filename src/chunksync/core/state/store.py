# src/chunksync/core/state/store.py
"""SharedStateStore: keyed, expiring, lock-guarded state.

Used by components that accumulate data across many (possibly
concurrent) job invocations, e.g. pagination cursors or per-run deltas.

Locking is a non-blocking trylock: the lock for `key` is a companion
row `key + "_lock"`. Its presence means held; its expiry bounds how long
a crashed holder can block others. Concurrent writers must go through
update(), which takes the lock; set() is for single-writer keys.

Every read goes to the database. Nothing is cached in-process, so a
read never observes a value another worker has already superseded.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from tenacity import RetryError, Retrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from chunksync.contracts import LockedError, LockTimeoutError
from chunksync.core.clock import DEFAULT_CLOCK, Clock
from chunksync.core.config import SharedStateSettings
from chunksync.core.database import ChunkSyncDB
from chunksync.core.schema import shared_state_table
from chunksync.core.state.merge import merge_values

logger = structlog.get_logger(__name__)

LOCK_SUFFIX = "_lock"


def lock_key(key: str) -> str:
    return key + LOCK_SUFFIX


class SharedStateStore:
    """Durable key -> JSON value store with expiry and trylock.

    Example:
        state = SharedStateStore(db)
        state.update(group, {"pending_items": [1, 2]}, concat_arrays=True)
        state.get(group)  # {"pending_items": [1, 2]}
    """

    def __init__(
        self,
        db: ChunkSyncDB,
        clock: Clock = DEFAULT_CLOCK,
        settings: SharedStateSettings | None = None,
    ) -> None:
        self._db = db
        self._clock = clock
        self._settings = settings or SharedStateSettings()
        # Identifies this execution context as lock holder
        self._owner = uuid.uuid4().hex
        self._held: set[str] = set()

    @property
    def settings(self) -> SharedStateSettings:
        return self._settings

    def _expires_at(self, ttl: float | None) -> float:
        return self._clock.time() + (self._settings.default_ttl_seconds if ttl is None else ttl)

    # === Plain access ===

    def get(self, key: str, default: Any = None) -> Any:
        """Current value of `key`, or `default` if absent or expired."""
        now = self._clock.time()
        with self._db.engine.connect() as conn:
            row = conn.execute(
                select(shared_state_table.c.value, shared_state_table.c.expires_at).where(shared_state_table.c.key == key)
            ).fetchone()
        if row is None or (row.expires_at is not None and row.expires_at <= now):
            return default
        return json.loads(row.value)

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Replace the value of `key`.

        Args:
            key: State key
            value: JSON-compatible value (NaN/Infinity rejected)
            ttl: Seconds until expiry (default: settings.default_ttl_seconds)
        """
        encoded = json.dumps(value, allow_nan=False)
        expires_at = self._expires_at(ttl)
        with self._db.connection() as conn:
            conn.execute(delete(shared_state_table).where(shared_state_table.c.key == key))
            conn.execute(shared_state_table.insert().values(key=key, value=encoded, expires_at=expires_at))

    def delete(self, key: str) -> None:
        """Remove `key`. Deleting an absent key is a no-op."""
        with self._db.connection() as conn:
            conn.execute(delete(shared_state_table).where(shared_state_table.c.key == key))

    # === Locking ===

    def acquire(self, key: str, ttl: float | None = None) -> None:
        """Take the lock for `key` without waiting.

        An expired lock left behind by a crashed holder is replaced.

        Args:
            key: State key to lock
            ttl: Lock lifetime in seconds (default: settings.lock_ttl_seconds)

        Raises:
            LockedError: If the lock is currently held
        """
        name = lock_key(key)
        now = self._clock.time()
        lifetime = self._settings.lock_ttl_seconds if ttl is None else ttl
        try:
            with self._db.connection() as conn:
                conn.execute(
                    delete(shared_state_table).where(
                        shared_state_table.c.key == name,
                        shared_state_table.c.expires_at <= now,
                    )
                )
                conn.execute(
                    shared_state_table.insert().values(
                        key=name,
                        value=json.dumps({"owner": self._owner, "acquired_at": now}),
                        expires_at=now + lifetime,
                    )
                )
        except IntegrityError as e:
            raise LockedError(key) from e
        self._held.add(key)

    def release(self, key: str) -> None:
        """Delete the lock entry for `key`."""
        with self._db.connection() as conn:
            conn.execute(delete(shared_state_table).where(shared_state_table.c.key == lock_key(key)))
        self._held.discard(key)

    def holds(self, key: str) -> bool:
        """Whether this store instance acquired the lock for `key` and has not released it."""
        return key in self._held

    @contextmanager
    def locked(self, key: str, ttl: float | None = None) -> Iterator[None]:
        """Hold the lock for `key` for the duration of the block (no retry)."""
        self.acquire(key, ttl)
        try:
            yield
        finally:
            self.release(key)

    def _acquire_with_retry(self, key: str) -> None:
        attempts = self._settings.lock_attempts
        retrying = Retrying(
            stop=stop_after_attempt(attempts),
            wait=wait_fixed(self._settings.lock_retry_delay_seconds),
            retry=retry_if_exception_type(LockedError),
            sleep=self._clock.sleep,
        )
        try:
            for attempt in retrying:
                with attempt:
                    self.acquire(key)
        except RetryError as e:
            logger.error("Shared state lock not acquired", key=key, attempts=attempts)
            raise LockTimeoutError(key, attempts) from e

    # === Locked read-modify-write ===

    def update(
        self,
        key: str,
        patch: Mapping[str, Any],
        *,
        deep_merge: bool = False,
        concat_arrays: bool = False,
        ttl: float | None = None,
    ) -> dict[str, Any]:
        """Merge `patch` into the mapping stored at `key` under its lock.

        A missing or non-mapping current value is treated as {}.
        On contention the lock is retried settings.lock_attempts times
        with settings.lock_retry_delay_seconds between attempts.

        Returns:
            The merged value as written

        Raises:
            LockTimeoutError: If the lock could not be taken within the retry budget
        """
        self._acquire_with_retry(key)
        try:
            current = self.get(key)
            if not isinstance(current, dict):
                current = {}
            merged = merge_values(current, patch, deep_merge=deep_merge, concat_arrays=concat_arrays)
            self.set(key, merged, ttl)
        finally:
            self.release(key)
        return merged

    # === Housekeeping ===

    def purge_expired(self) -> int:
        """Delete every expired entry (values and stale locks). Returns rows deleted."""
        now = self._clock.time()
        with self._db.connection() as conn:
            result = conn.execute(
                delete(shared_state_table).where(
                    shared_state_table.c.expires_at.isnot(None),
                    shared_state_table.c.expires_at <= now,
                )
            )
        return result.rowcount
