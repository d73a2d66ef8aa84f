# quote_relay/rate_limit.py
# Purpose: One process-wide "blocked until" deadline for the upstream quota.
# Why: The upstream quota is global, so a single scalar gates every symbol.
# Pitfalls: Deadlines only move later. With a shared backend, its record wins:
#           a deadline or reset from another worker applies on the next check.

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from quote_relay.backends import KeyValueBackend
from quote_relay.utils import epoch_to_iso, next_utc_midnight

logger = logging.getLogger("quote_relay.rate_limit")

RATE_LIMIT_KEY = "__rate_limit_until__"


class RateLimiter:
    def __init__(
        self,
        *,
        window_seconds: float | None = None,
        clock: Callable[[], float] = time.time,
        backend: KeyValueBackend | None = None,
    ) -> None:
        self._window_seconds = window_seconds
        self._clock = clock
        self._backend = backend
        self._until: float | None = None
        self._lock = threading.Lock()

    @property
    def blocked_until(self) -> float | None:
        return self._until

    def _default_deadline(self, now: float) -> float:
        if self._window_seconds is None:
            return next_utc_midnight(now)
        return now + self._window_seconds

    def mark_limited(self, until: float | None = None) -> float:
        """Record a throttle signal. Returns the deadline now in force."""
        deadline = until if until is not None else self._default_deadline(self._clock())
        with self._lock:
            previous = self._until
            if previous is not None and previous >= deadline:
                deadline = previous
            self._until = deadline

        if previous == deadline:
            logger.info("rate limit already active until %s; unchanged", epoch_to_iso(deadline))
        else:
            logger.warning("rate limit set until %s", epoch_to_iso(deadline))
        self._publish(deadline)
        return deadline

    def is_limited(self) -> bool:
        now = self._clock()
        if self._backend is not None:
            # the shared record is authoritative; absent means reset or never set
            try:
                remote = self._read_remote()
            except Exception:
                logger.warning(
                    "shared rate-limit read failed; using local deadline", exc_info=True
                )
            else:
                with self._lock:
                    self._until = remote

        with self._lock:
            if self._until is None:
                return False
            if now < self._until:
                return True
            # passed; clear so the next check is a plain None test
            self._until = None
        logger.info("rate limit window passed; cleared")
        return False

    def reset(self) -> None:
        with self._lock:
            self._until = None
        if self._backend is not None:
            try:
                self._backend.delete(RATE_LIMIT_KEY)
            except Exception:
                logger.warning("shared rate-limit delete failed", exc_info=True)
        logger.info("rate limit reset by admin")

    def _publish(self, deadline: float) -> None:
        if self._backend is None:
            return
        try:
            self._backend.put(RATE_LIMIT_KEY, {"value": deadline, "expires_at": deadline})
        except Exception:
            logger.warning("shared rate-limit write failed", exc_info=True)

    def _read_remote(self) -> float | None:
        record = self._backend.get(RATE_LIMIT_KEY)
        return None if record is None else float(record["value"])
