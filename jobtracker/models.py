"""
Tracked job data model.

A TrackedJob is a candidate's personal record of an external job
opportunity, placed in one Kanban column at a dense integer position.
Records are immutable: every change produces a new record via
``dataclasses.replace``, which makes collection snapshots cheap.
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .errors import InvariantViolationError

TEMP_ID_PREFIX = "temp_"
LOCAL_ID_PREFIX = "local_"


class KanbanColumn(Enum):
    """Pipeline stages, in board order."""
    WISHLIST = "wishlist"
    APPLIED = "applied"
    INTERVIEWING = "interviewing"
    OFFER = "offer"
    REJECTED = "rejected"

    @property
    def title(self) -> str:
        return self.value.capitalize()

    @classmethod
    def parse(cls, value: Any) -> "KanbanColumn":
        """Accept a member, its value ("applied") or its name ("APPLIED")."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise ValueError(f"Unknown column: {value!r}")


DEFAULT_COLUMN = KanbanColumn.WISHLIST

# Carried verbatim, never interpreted by the core
DESCRIPTIVE_FIELDS: Tuple[str, ...] = (
    "title",
    "company",
    "job_id",
    "company_logo",
    "location",
    "url",
    "salary_range",
    "notes",
    "deadline",
    "contact_person",
    "contact_email",
    "follow_up_date",
    "tags",
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_temp_id() -> str:
    return f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}"


def new_local_id() -> str:
    return f"{LOCAL_ID_PREFIX}{uuid.uuid4().hex}"


def is_temp_id(job_id: str) -> bool:
    return job_id.startswith(TEMP_ID_PREFIX)


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO 8601 timestamp (trailing Z allowed) into an aware datetime."""
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        ts = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Invalid timestamp: {value!r}")
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


@dataclass(frozen=True)
class TrackedJob:
    """One card on the applications board."""

    id: str
    column: KanbanColumn
    position: int
    title: str = ""
    company: str = ""

    job_id: Optional[str] = None          # Listing id when tracked from the job board
    company_logo: Optional[str] = None
    location: Optional[str] = None
    url: Optional[str] = None
    salary_range: Optional[str] = None
    notes: Optional[str] = None
    deadline: Optional[str] = None
    contact_person: Optional[str] = None
    contact_email: Optional[str] = None
    follow_up_date: Optional[str] = None
    tags: Tuple[str, ...] = ()

    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_temporary(self) -> bool:
        return is_temp_id(self.id)

    def moved(self, column: KanbanColumn, position: int) -> "TrackedJob":
        return replace(self, column=column, position=position)

    def touched(self, now: Optional[datetime] = None) -> "TrackedJob":
        """Return a copy with updated_at refreshed (never moved backwards)."""
        now = now or utcnow()
        return replace(self, updated_at=max(now, self.updated_at))

    def with_fields(self, fields: Dict[str, Any]) -> "TrackedJob":
        changes = {k: v for k, v in fields.items() if k in DESCRIPTIVE_FIELDS}
        if "tags" in changes:
            changes["tags"] = tuple(changes["tags"] or ())
        return replace(self, **changes)

    def descriptive_fields(self) -> Dict[str, Any]:
        data = {}
        for name in DESCRIPTIVE_FIELDS:
            value = getattr(self, name)
            if name == "tags":
                value = list(value)
            data[name] = value
        return data

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the REST wire shape (column travels as ``status``)."""
        data: Dict[str, Any] = {"id": self.id}
        data.update(self.descriptive_fields())
        data["status"] = self.column.value
        data["position"] = self.position
        data["created_at"] = self.created_at.isoformat()
        data["updated_at"] = self.updated_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrackedJob":
        """
        Deserialize a wire or cache record.

        Raises:
            InvariantViolationError: not an object, missing id, unknown column,
                bad position or malformed tags
        """
        if not isinstance(data, Mapping):
            raise InvariantViolationError(f"Tracked job record must be an object, got {data!r}")

        job_id = data.get("id")
        if job_id is None or str(job_id).strip() == "":
            raise InvariantViolationError(f"Tracked job without id: {data!r}")

        raw_column = data.get("status", data.get("column"))
        try:
            column = KanbanColumn.parse(raw_column)
        except ValueError as e:
            raise InvariantViolationError(f"Job {job_id}: {e}") from e

        position = data.get("position")
        if isinstance(position, bool) or not isinstance(position, int) or position < 0:
            raise InvariantViolationError(
                f"Job {job_id}: position must be a non-negative integer, got {position!r}"
            )

        now = utcnow()
        try:
            created_at = parse_timestamp(data["created_at"]) if data.get("created_at") else now
            updated_at = parse_timestamp(data["updated_at"]) if data.get("updated_at") else created_at
        except ValueError as e:
            raise InvariantViolationError(f"Job {job_id}: {e}") from e

        fields = {name: data.get(name) for name in DESCRIPTIVE_FIELDS if name in data}
        tags = fields.get("tags") or ()
        if not isinstance(tags, (list, tuple)) or not all(isinstance(t, str) for t in tags):
            raise InvariantViolationError(f"Job {job_id}: tags must be a list of strings, got {tags!r}")
        fields["tags"] = tuple(tags)
        fields.setdefault("title", "")
        fields.setdefault("company", "")
        if fields["title"] is None:
            fields["title"] = ""
        if fields["company"] is None:
            fields["company"] = ""

        return cls(
            id=str(job_id),
            column=column,
            position=position,
            created_at=created_at,
            updated_at=max(updated_at, created_at),
            **fields,
        )


def jobs_from_dicts(items: List[Dict[str, Any]]) -> List[TrackedJob]:
    return [TrackedJob.from_dict(item) for item in items]


def jobs_to_dicts(jobs: List[TrackedJob]) -> List[Dict[str, Any]]:
    return [job.to_dict() for job in jobs]
