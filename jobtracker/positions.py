"""
Dense position arithmetic for Kanban columns.

Every function takes the full job list and returns a new one; inputs are
never mutated. Given a list whose columns are dense ([0, N) per column),
each function returns a list that is dense again.
"""

from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from .models import KanbanColumn, TrackedJob


def column_jobs(jobs: Iterable[TrackedJob], column: KanbanColumn) -> List[TrackedJob]:
    """Jobs of one column, ordered by position."""
    return sorted((j for j in jobs if j.column == column), key=lambda j: j.position)


def check_density(jobs: Iterable[TrackedJob]) -> List[str]:
    """
    Returns a list of problems with the layout. Empty list means every id
    is unique and every column holds exactly positions 0..N-1.
    """
    problems: List[str] = []
    seen_ids = set()
    by_column: Dict[KanbanColumn, List[int]] = defaultdict(list)

    for job in jobs:
        if job.id in seen_ids:
            problems.append(f"Duplicate job id: {job.id}")
        seen_ids.add(job.id)
        by_column[job.column].append(job.position)

    for column, positions in by_column.items():
        expected = list(range(len(positions)))
        if sorted(positions) != expected:
            problems.append(
                f"Column '{column.value}' positions {sorted(positions)} are not dense (expected {expected})"
            )
    return problems


def append_job(jobs: List[TrackedJob], job: TrackedJob) -> List[TrackedJob]:
    """Add ``job`` at the end of its column (its own position is ignored)."""
    position = sum(1 for j in jobs if j.column == job.column)
    return [*jobs, job.moved(job.column, position)]


def move_job(
    jobs: List[TrackedJob],
    job_id: str,
    target: KanbanColumn,
    target_index: Optional[int] = None,
    now: Optional[datetime] = None,
) -> List[TrackedJob]:
    """
    Move a job into another column at ``target_index`` (default: the end).

    Target jobs at or after the index shift up by one, source jobs after the
    old position shift down by one. The index is clamped to the target length.
    """
    moving = next(j for j in jobs if j.id == job_id)
    source, old_position = moving.column, moving.position
    if source == target:
        index = len(column_jobs(jobs, target)) - 1 if target_index is None else target_index
        return reorder_column(jobs, target, job_id, index, now=now)

    target_len = sum(1 for j in jobs if j.column == target)
    index = target_len if target_index is None else max(0, min(target_index, target_len))

    result = []
    for job in jobs:
        if job.id == job_id:
            result.append(job.moved(target, index).touched(now))
        elif job.column == target and job.position >= index:
            result.append(job.moved(target, job.position + 1))
        elif job.column == source and job.position > old_position:
            result.append(job.moved(source, job.position - 1))
        else:
            result.append(job)
    return result


def reorder_column(
    jobs: List[TrackedJob],
    column: KanbanColumn,
    job_id: str,
    new_index: int,
    now: Optional[datetime] = None,
) -> List[TrackedJob]:
    """Reinsert a job at ``new_index`` in its column and renumber 0..N-1."""
    ordered = column_jobs(jobs, column)
    current = next(i for i, j in enumerate(ordered) if j.id == job_id)
    moving = ordered.pop(current)
    index = max(0, min(new_index, len(ordered)))
    ordered.insert(index, moving)

    renumbered = {}
    for position, job in enumerate(ordered):
        if job.position != position or job.id == job_id:
            job = job.moved(column, position).touched(now)
        renumbered[job.id] = job

    others = [j for j in jobs if j.column != column]
    return others + [renumbered[j.id] for j in ordered]


def remove_job(jobs: List[TrackedJob], job_id: str) -> List[TrackedJob]:
    """Drop a job and close the gap it leaves in its column."""
    removed = next(j for j in jobs if j.id == job_id)
    result = []
    for job in jobs:
        if job.id == job_id:
            continue
        if job.column == removed.column and job.position > removed.position:
            job = job.moved(job.column, job.position - 1)
        result.append(job)
    return result


def replace_job(jobs: List[TrackedJob], job_id: str, replacement: TrackedJob) -> List[TrackedJob]:
    """Swap the record with ``job_id`` for ``replacement`` (temp id confirmation)."""
    return [replacement if j.id == job_id else j for j in jobs]
