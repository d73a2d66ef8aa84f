"""
Shared key/value layer behind the in-process cache and rate limiter.

Each record is a small JSON object:
  {"value": <json>, "expires_at": <epoch seconds or null>}

JsonFileBackend keeps one file per key in a directory, so several worker
processes on the same host see the same quote and the same rate-limit
deadline. Writes go to a temp file and are swapped in with os.replace, so a
reader never sees a half-written record.

Callers treat every exception from a backend as "miss" and carry on.

Pitfalls:
- Backend calls are synchronous and run on the event loop from the async
  quote handler. Each is one small local file read/write, a few per request.
  A network-backed implementation would need asyncio.to_thread (or an async
  protocol) instead.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger("quote_relay.backends")


class KeyValueBackend(Protocol):
    def get(self, key: str) -> dict[str, Any] | None: ...

    def put(self, key: str, record: dict[str, Any]) -> None: ...

    def delete(self, key: str) -> None: ...


class JsonFileBackend:
    """File-per-key JSON store."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        safe_key = "".join(c if c.isalnum() or c in "_-" else "_" for c in key)
        if len(safe_key) > 100:
            safe_key = hashlib.md5(key.encode()).hexdigest()
        return self.root / f"{safe_key}.json"

    def get(self, key: str) -> dict[str, Any] | None:
        path = self._path(key)
        try:
            with open(path, encoding="utf-8") as f:
                record = json.load(f)
        except FileNotFoundError:
            return None
        if not isinstance(record, dict):
            raise ValueError(f"corrupt record for {key!r}")
        return record

    def put(self, key: str, record: dict[str, Any]) -> None:
        path = self._path(key)
        fd, tmp = tempfile.mkstemp(dir=self.root, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(record, f, ensure_ascii=False)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
