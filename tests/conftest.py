"""
Pytest configuration and shared fixtures.
"""

import os

# Keep test runs from writing log files into the working directory
os.environ.setdefault("JOBTRACKER_LOG_DIR", "")

import pytest
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from jobtracker.collection import PositionedCollection
from jobtracker.errors import GatewayError
from jobtracker.models import KanbanColumn, TrackedJob, jobs_from_dicts
from jobtracker.storage import JsonFileCache

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def make_job(job_id: str, column: str = "applied", position: int = 0, **fields) -> TrackedJob:
    """Build a tracked job with sensible defaults."""
    fields.setdefault("title", f"Role {job_id}")
    fields.setdefault("company", f"Company {job_id}")
    return TrackedJob(
        id=job_id,
        column=KanbanColumn(column),
        position=position,
        created_at=T0,
        updated_at=T0,
        **fields,
    )


class FakeGateway:
    """In-memory RemoteGateway with per-method failure injection."""

    def __init__(self, jobs: Optional[List[TrackedJob]] = None):
        self.jobs: Dict[str, TrackedJob] = {j.id: j for j in (jobs or [])}
        self.calls: List[tuple] = []
        self.fail_on: Dict[str, Exception] = {}
        self.on_call: Optional[Callable[[str], None]] = None
        self._next_id = 100

    def seed(self, jobs: List[TrackedJob]) -> None:
        self.jobs = {j.id: j for j in jobs}

    def fail(self, method: str, message: str = "Network unreachable", status_code: Optional[int] = None) -> None:
        self.fail_on[method] = GatewayError(message, status_code=status_code)

    def _enter(self, method: str, *args: Any) -> None:
        self.calls.append((method, *args))
        if self.on_call is not None:
            self.on_call(method)
        if method in self.fail_on:
            raise self.fail_on[method]

    def called(self, method: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == method]

    def fetch_all(self) -> List[TrackedJob]:
        self._enter("fetch_all")
        return list(self.jobs.values())

    def create(self, fields: Dict[str, Any]) -> TrackedJob:
        self._enter("create", fields)
        self._next_id += 1
        column = KanbanColumn(fields.get("status", "wishlist"))
        position = sum(1 for j in self.jobs.values() if j.column == column)
        data = dict(fields, id=f"srv-{self._next_id}", position=position,
                    created_at=T0.isoformat(), updated_at=T0.isoformat())
        job = TrackedJob.from_dict(data)
        self.jobs[job.id] = job
        return job

    def patch_status(self, job_id: str, column: KanbanColumn, position: int) -> TrackedJob:
        self._enter("patch_status", job_id, column, position)
        job = self.jobs[job_id].moved(column, position)
        self.jobs[job_id] = job
        return job

    def patch_fields(self, job_id: str, fields: Dict[str, Any]) -> TrackedJob:
        self._enter("patch_fields", job_id, fields)
        job = self.jobs[job_id].with_fields(fields)
        self.jobs[job_id] = job
        return job

    def delete(self, job_id: str) -> None:
        self._enter("delete", job_id)
        self.jobs.pop(job_id, None)

    def batch_reorder(self, entries: List[Dict[str, Any]]) -> None:
        self._enter("batch_reorder", entries)
        for entry in entries:
            if entry["id"] in self.jobs:
                self.jobs[entry["id"]] = self.jobs[entry["id"]].moved(
                    KanbanColumn(entry["status"]), entry["position"]
                )


class RawBoardGateway(FakeGateway):
    """FakeGateway whose board is decoded from raw wire records, as RestGateway does."""

    def __init__(self, payload: List[Any]):
        super().__init__()
        self.payload = payload

    def fetch_all(self) -> List[TrackedJob]:
        self._enter("fetch_all")
        return jobs_from_dicts(self.payload)


class StepClock:
    """Clock advancing one second per call."""

    def __init__(self, start: datetime = T0 + timedelta(days=1)):
        self.now = start

    def __call__(self) -> datetime:
        self.now = self.now + timedelta(seconds=1)
        return self.now


@pytest.fixture
def board_jobs() -> List[TrackedJob]:
    """applied: A, B, C; interview: D; wishlist: W."""
    return [
        make_job("A", "applied", 0),
        make_job("B", "applied", 1),
        make_job("C", "applied", 2),
        make_job("D", "interviewing", 0),
        make_job("W", "wishlist", 0),
    ]


@pytest.fixture
def gateway(board_jobs) -> FakeGateway:
    return FakeGateway(board_jobs)


@pytest.fixture
def cache(tmp_path) -> JsonFileCache:
    return JsonFileCache(tmp_path / "cache.json")


@pytest.fixture
def collection(board_jobs) -> PositionedCollection:
    return PositionedCollection(board_jobs)


@pytest.fixture
def clock() -> StepClock:
    return StepClock()
