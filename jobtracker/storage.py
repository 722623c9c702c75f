"""
Local cache of the tracked job collection.

The cache holds one entry per storage key shaped as
``{"jobs": [...], "savedAt": "<ISO timestamp>"}``. It is the fallback read
path at startup and is rewritten after every change.
"""

import json
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from .errors import CacheError, InvariantViolationError
from .logger import get_logger
from .models import TrackedJob, jobs_from_dicts, jobs_to_dicts, parse_timestamp, utcnow

logger = get_logger()

CACHE_KEY = "candidate_tracked_jobs"


@dataclass(frozen=True)
class CacheSnapshot:
    jobs: List[TrackedJob]
    saved_at: datetime


class LocalCache(Protocol):
    """Durable, all-or-nothing snapshot of the whole collection."""

    def load(self) -> Optional[CacheSnapshot]:
        ...

    def save(self, jobs: List[TrackedJob]) -> None:
        ...

    def clear(self) -> None:
        ...


def build_entry(jobs: List[TrackedJob]) -> Dict[str, Any]:
    return {"jobs": jobs_to_dicts(jobs), "savedAt": utcnow().isoformat()}


def parse_entry(entry: Any) -> Optional[CacheSnapshot]:
    """Turn a stored entry back into a snapshot; None if it is unusable."""
    if not isinstance(entry, dict) or not isinstance(entry.get("jobs"), list):
        return None
    try:
        jobs = jobs_from_dicts(entry["jobs"])
        saved_at = parse_timestamp(entry["savedAt"]) if entry.get("savedAt") else utcnow()
    except (InvariantViolationError, ValueError, TypeError, AttributeError) as e:
        logger.warning("Discarding malformed cache entry", error=str(e))
        return None
    return CacheSnapshot(jobs=jobs, saved_at=saved_at)


def load_store(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open("r", encoding="utf-8") as f:
            content = f.read().strip()
            if not content:
                return {}
            store = json.loads(content)
            return store if isinstance(store, dict) else {}
    except json.JSONDecodeError:
        logger.warning("Cache file is not valid JSON, ignoring it", path=str(path))
        return {}
    except OSError as e:
        raise CacheError(f"Failed to read cache {path}: {e}") from e


def save_store(path: Path, store: Dict[str, Any]) -> None:
    """Write the whole store through a temp file and an atomic rename."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(store, f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
    except OSError as e:
        raise CacheError(f"Failed to write cache {path}: {e}") from e


class JsonFileCache:
    """LocalCache backed by a JSON file."""

    def __init__(self, path: Path, key: str = CACHE_KEY):
        self.path = Path(path)
        self.key = key

    def load(self) -> Optional[CacheSnapshot]:
        store = load_store(self.path)
        if self.key not in store:
            return None
        return parse_entry(store[self.key])

    def save(self, jobs: List[TrackedJob]) -> None:
        store = load_store(self.path)
        store[self.key] = build_entry(jobs)
        save_store(self.path, store)

    def clear(self) -> None:
        store = load_store(self.path)
        if store.pop(self.key, None) is not None:
            save_store(self.path, store)


def open_cache(path: Path, key: str = CACHE_KEY) -> LocalCache:
    """Pick a cache backend from the file suffix (.db/.sqlite = SQLite)."""
    path = Path(path)
    if path.suffix in (".db", ".sqlite", ".sqlite3"):
        from .database import SqliteCache
        return SqliteCache(path, key=key)
    return JsonFileCache(path, key=key)
