"""
Best-effort JSON file storage.

Reads that fail for any reason are misses; writes that fail are no-ops. The
blocking file call runs in a worker thread so the event loop only waits on it.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def _read(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def _write(path: Path, value: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    with tmp.open("w", encoding="utf-8") as handle:
        json.dump(value, handle, indent=2)
    tmp.replace(path)


async def read_json(path: str | Path) -> Any | None:
    """Return the decoded JSON at path, or None if missing/unreadable/invalid."""
    path = Path(path).expanduser()
    try:
        return await asyncio.to_thread(_read, path)
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        logger.warning(f"Could not read {path}: {e}")
        return None


async def write_json(path: str | Path, value: Any) -> bool:
    """Write value as JSON, creating parent directories. Returns success."""
    path = Path(path).expanduser()
    try:
        await asyncio.to_thread(_write, path, value)
        return True
    except (OSError, TypeError, ValueError) as e:
        logger.error(f"Failed to write {path}: {e}")
        return False
