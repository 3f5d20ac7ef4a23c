"""
Two-tier cache for the latest rate snapshot.

The in-process tier is always written; the durable tier (a JSON file) is only
used when a path is configured and is strictly best-effort.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from sosx.models import CachedSnapshot
from sosx.storage import read_json, write_json

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CacheCorrupt(ValueError):
    """Persisted cache content could not be parsed into a snapshot."""


def parse_snapshot(raw: Any) -> CachedSnapshot:
    """
    Parse a persisted snapshot.

    Raises:
        CacheCorrupt: if the content is not a valid snapshot
    """
    try:
        return CachedSnapshot.model_validate(raw)
    except ValidationError as e:
        raise CacheCorrupt(f"Malformed cached snapshot: {e.error_count()} error(s)") from e


class CacheStore:
    """
    Holds the most recent CachedSnapshot.

    Args:
        persist_path: durable JSON file, or None for in-process only
        clock: returns the current aware datetime (injectable for tests)
    """

    def __init__(self, persist_path: str | Path | None = None, clock: Clock = utc_now):
        self.persist_path = Path(persist_path).expanduser() if persist_path else None
        self._clock = clock
        self._memory: CachedSnapshot | None = None

    async def read(self) -> CachedSnapshot | None:
        """Return the cached snapshot, or None on any kind of miss."""
        if self._memory is not None:
            return self._memory

        if self.persist_path is None:
            return None

        raw = await read_json(self.persist_path)
        if raw is None:
            return None

        try:
            snapshot = parse_snapshot(raw)
        except CacheCorrupt as e:
            logger.warning(f"Ignoring corrupt cache at {self.persist_path}: {e}")
            return None

        self._memory = snapshot
        return snapshot

    async def write(self, snapshot: CachedSnapshot) -> None:
        """Replace the snapshot. Never fails because of the durable tier."""
        self._memory = snapshot

        if self.persist_path is None:
            return

        ok = await write_json(self.persist_path, snapshot.model_dump(mode="json"))
        if not ok:
            logger.error(f"Durable cache write to {self.persist_path} skipped")

    def is_fresh(self, snapshot: CachedSnapshot, ttl: timedelta) -> bool:
        return self._clock() - snapshot.captured_at < ttl

    def now(self) -> datetime:
        return self._clock()

    def clear(self) -> None:
        """Forget the in-process snapshot (the durable file is left alone)."""
        self._memory = None
