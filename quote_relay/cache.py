# quote_relay/cache.py
# Purpose: In-memory quote store with per-entry expiry and stale reads.
# Why: Protect the upstream quota; keep a last-known-good quote for degraded serving.
# Pitfalls: Expiry is lazy (checked on read). An optional shared backend mirrors
#           entries across worker processes; its failures are logged, never raised.

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from quote_relay.backends import KeyValueBackend
from quote_relay.schemas import QuoteResult

logger = logging.getLogger("quote_relay.cache")


@dataclass(frozen=True)
class CacheEntry:
    value: QuoteResult
    expires_at: float


class QuoteStore:
    """
    get()        -> value while now <= expires_at, else evicts and returns None
    get_stale()  -> last value set for the key, whatever its age
    set()/delete() replace or drop the whole entry under one lock.

    An expired entry leaves the fresh index on the first get() after its
    deadline but is kept as the key's last-known-good value until it is
    overwritten or deleted.

    With a shared backend, get() serves the local fresh entry first and reads
    through on a miss; get_stale() asks the backend first so a delete or a
    newer write from another worker is seen. The local copy is only used when
    the backend read fails.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        backend: KeyValueBackend | None = None,
    ) -> None:
        self._clock = clock
        self._backend = backend
        self._fresh: dict[str, CacheEntry] = {}
        self._last_good: dict[str, QuoteResult] = {}
        self._lock = threading.Lock()

    def set(self, key: str, value: QuoteResult, ttl: float) -> None:
        if ttl < 0:
            raise ValueError(f"ttl must be >= 0, got {ttl}")
        entry = CacheEntry(value=value, expires_at=self._clock() + ttl)
        with self._lock:
            self._fresh[key] = entry
            self._last_good[key] = value
        if self._backend is not None:
            try:
                self._backend.put(
                    key, {"value": value.to_json(), "expires_at": entry.expires_at}
                )
            except Exception:
                logger.warning("shared cache write failed for %s", key, exc_info=True)

    def get(self, key: str) -> QuoteResult | None:
        now = self._clock()
        with self._lock:
            entry = self._fresh.get(key)
            if entry is not None:
                if now <= entry.expires_at:
                    return entry.value
                # expired
                self._fresh.pop(key, None)

        remote = self._load_remote(key)
        if remote is None or now > remote.expires_at:
            return None
        with self._lock:
            self._fresh[key] = remote
            self._last_good[key] = remote.value
        return remote.value

    def get_stale(self, key: str) -> QuoteResult | None:
        if self._backend is not None:
            # shared record wins; absent means deleted (or never set) by any worker
            try:
                remote = self._read_remote(key)
            except Exception:
                logger.warning(
                    "shared cache read failed for %s; using local copy", key, exc_info=True
                )
            else:
                with self._lock:
                    if remote is None:
                        self._fresh.pop(key, None)
                        self._last_good.pop(key, None)
                        return None
                    self._last_good[key] = remote.value
                    return remote.value

        with self._lock:
            return self._last_good.get(key)

    def delete(self, key: str) -> None:
        with self._lock:
            self._fresh.pop(key, None)
            self._last_good.pop(key, None)
        if self._backend is not None:
            try:
                self._backend.delete(key)
            except Exception:
                logger.warning("shared cache delete failed for %s", key, exc_info=True)

    def clear(self) -> None:
        """Drop local entries only; the shared backend keeps its copies."""
        with self._lock:
            self._fresh.clear()
            self._last_good.clear()

    def _read_remote(self, key: str) -> CacheEntry | None:
        record = self._backend.get(key)
        if record is None:
            return None
        return CacheEntry(
            value=QuoteResult.model_validate(record["value"]),
            expires_at=float(record["expires_at"]),
        )

    def _load_remote(self, key: str) -> CacheEntry | None:
        if self._backend is None:
            return None
        try:
            return self._read_remote(key)
        except Exception:
            logger.warning("shared cache read failed for %s; treating as miss", key, exc_info=True)
            return None
