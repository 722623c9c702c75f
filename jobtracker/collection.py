"""
In-memory model of the applications board.

The collection only answers queries and commits whole validated states;
the position arithmetic lives in positions.py and the transactional
envelope in mutator.py.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .errors import InvariantViolationError
from .models import KanbanColumn, TrackedJob
from .positions import check_density, column_jobs

Snapshot = Dict[str, TrackedJob]


@dataclass(frozen=True)
class ColumnView:
    """Read-only projection of one column for the UI."""
    id: KanbanColumn
    title: str
    jobs: List[TrackedJob]


class PositionedCollection:
    """Authoritative set of tracked jobs, keyed by id."""

    def __init__(self, jobs: Optional[Iterable[TrackedJob]] = None):
        self._jobs: Snapshot = {}
        if jobs is not None:
            self.replace(jobs)

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._jobs

    @property
    def total(self) -> int:
        return len(self._jobs)

    def get(self, job_id: str) -> Optional[TrackedJob]:
        return self._jobs.get(job_id)

    def jobs(self) -> List[TrackedJob]:
        """All jobs in board order: column order, then position."""
        current = list(self._jobs.values())
        ordered: List[TrackedJob] = []
        for column in KanbanColumn:
            ordered.extend(column_jobs(current, column))
        return ordered

    def column_view(self, column: KanbanColumn) -> List[TrackedJob]:
        return column_jobs(self._jobs.values(), column)

    def columns(self) -> List[ColumnView]:
        current = list(self._jobs.values())
        return [
            ColumnView(id=column, title=column.title, jobs=column_jobs(current, column))
            for column in KanbanColumn
        ]

    def stats_by_column(self) -> Dict[str, int]:
        counts = {column.value: 0 for column in KanbanColumn}
        for job in self._jobs.values():
            counts[job.column.value] += 1
        return counts

    def replace(self, jobs: Iterable[TrackedJob]) -> None:
        """
        Commit a whole new state after checking density and id uniqueness.

        Raises:
            InvariantViolationError: the new state is malformed; the current
                state is left untouched
        """
        jobs = list(jobs)
        problems = check_density(jobs)
        if problems:
            raise InvariantViolationError("; ".join(problems))
        # Single reference swap: readers see the old or the new state, never a mix
        self._jobs = {job.id: job for job in jobs}

    def snapshot(self) -> Snapshot:
        return dict(self._jobs)

    def restore(self, snapshot: Snapshot) -> None:
        self._jobs = dict(snapshot)
