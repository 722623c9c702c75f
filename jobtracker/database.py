"""
SQLite cache backend.

Uses SQLite with SQLAlchemy; each storage key is one row holding the
serialized collection, upserted in a single commit.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from sqlalchemy import create_engine, Column, String, Text, DateTime
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from .errors import CacheError
from .models import TrackedJob, utcnow
from .storage import CACHE_KEY, CacheSnapshot, build_entry, parse_entry

Base = declarative_base()


class CacheEntry(Base):
    """One cached collection snapshot."""

    __tablename__ = "cache_entries"

    key = Column(String, primary_key=True)
    payload = Column(Text, nullable=False)  # JSON: {"jobs": [...], "savedAt": ...}
    saved_at = Column(DateTime, nullable=False, default=datetime.now)


def init_database(db_path: Path):
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy engine bound to the file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    return engine


class SqliteCache:
    """LocalCache backed by a SQLite table."""

    def __init__(self, db_path: Path, key: str = CACHE_KEY):
        self.db_path = Path(db_path)
        self.key = key
        try:
            self.engine = init_database(self.db_path)
        except (SQLAlchemyError, OSError) as e:
            raise CacheError(f"Failed to open cache database {self.db_path}: {e}") from e
        self.Session = sessionmaker(bind=self.engine)

    def load(self) -> Optional[CacheSnapshot]:
        try:
            with self.Session() as session:
                row = session.get(CacheEntry, self.key)
                payload = row.payload if row is not None else None
        except SQLAlchemyError as e:
            raise CacheError(f"Failed to read cache {self.db_path}: {e}") from e
        if payload is None:
            return None
        try:
            entry = json.loads(payload)
        except json.JSONDecodeError:
            return None
        return parse_entry(entry)

    def save(self, jobs: List[TrackedJob]) -> None:
        entry = build_entry(jobs)
        try:
            with self.Session() as session:
                session.merge(CacheEntry(
                    key=self.key,
                    payload=json.dumps(entry, ensure_ascii=False),
                    saved_at=utcnow().replace(tzinfo=None),
                ))
                session.commit()
        except SQLAlchemyError as e:
            raise CacheError(f"Failed to write cache {self.db_path}: {e}") from e

    def clear(self) -> None:
        try:
            with self.Session() as session:
                row = session.get(CacheEntry, self.key)
                if row is not None:
                    session.delete(row)
                    session.commit()
        except SQLAlchemyError as e:
            raise CacheError(f"Failed to clear cache {self.db_path}: {e}") from e

    def close(self) -> None:
        self.engine.dispose()
