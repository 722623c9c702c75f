"""
Optimistic mutations with rollback.

Every change to the board runs through ``run_transaction``:

1. snapshot the collection,
2. apply the new state locally and mark changes as pending,
3. write the local cache,
4. call the remote gateway,
5. on success merge any canonical data the server returned (the real id
   of a created job),
6. on failure restore the snapshot, rewrite the cache, record the error
   and re-raise so the caller can undo its own visual state.

Mutations are serialized on one re-entrant lock held for the whole
sequence, including the remote call. A second mutation waits for the
first instead of being dropped, so each rollback restores exactly the
state its own mutation started from.
"""

import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .collection import PositionedCollection
from .errors import CacheError, InvalidOperationError
from .gateway import RemoteGateway
from .logger import get_logger
from .models import (
    DEFAULT_COLUMN,
    KanbanColumn,
    TrackedJob,
    is_temp_id,
    new_local_id,
    new_temp_id,
    utcnow,
)
from .positions import append_job, move_job, remove_job, reorder_column, replace_job
from .schema import validate_job_input
from .storage import LocalCache

logger = get_logger()


def parse_column(value: Any) -> KanbanColumn:
    try:
        return KanbanColumn.parse(value)
    except ValueError as e:
        raise InvalidOperationError(str(e)) from e


def _check_index(index: Optional[int], name: str = "index") -> None:
    if index is None:
        return
    if isinstance(index, bool) or not isinstance(index, int) or index < 0:
        raise InvalidOperationError(f"{name} must be a non-negative integer, got {index!r}")


def _wire_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    payload = dict(fields)
    if payload.get("tags") is not None:
        payload["tags"] = list(payload["tags"])
    return payload


class OptimisticMutator:
    """Transactional envelope around every state change of the board."""

    def __init__(
        self,
        collection: PositionedCollection,
        cache: Optional[LocalCache] = None,
        gateway: Optional[RemoteGateway] = None,
        clock: Callable[[], datetime] = utcnow,
        on_change: Optional[Callable[[], None]] = None,
    ):
        self.collection = collection
        self.cache = cache
        self.gateway = gateway
        self.clock = clock
        self.on_change = on_change
        self.lock = threading.RLock()
        self.pending_changes = False
        self.error: Optional[str] = None

    @property
    def remote_enabled(self) -> bool:
        return self.gateway is not None

    def notify(self) -> None:
        if self.on_change is not None:
            self.on_change()

    def save_cache(self) -> None:
        """Mirror the collection into the cache; a failed write is logged, not fatal."""
        if self.cache is None:
            return
        try:
            self.cache.save(self.collection.jobs())
        except CacheError as e:
            logger.error("Failed to save to local cache", error=str(e))

    def run_transaction(
        self,
        operation: str,
        apply: Callable[[], List[TrackedJob]],
        persist: Optional[Callable[[], Any]] = None,
        confirm: Optional[Callable[[Any], Any]] = None,
    ) -> Any:
        """
        Apply a local change, persist it remotely, roll back on failure.

        Args:
            operation: Name used in logs and metrics
            apply: Returns the complete new job list
            persist: Remote call; skipped when running without a gateway
            confirm: Receives the remote result and merges canonical data

        Returns:
            The value returned by ``confirm`` (or ``persist`` when there is
            no confirm step); None in local-only mode

        Raises:
            InvariantViolationError: ``apply`` produced a malformed state
                (nothing is committed)
            Exception: whatever ``persist``/``confirm`` raised, after rollback
        """
        with self.lock:
            previous = self.collection.snapshot()
            self.collection.replace(apply())
            if self.gateway is not None:
                self.pending_changes = True
            self.error = None
            logger.record_mutation_attempt(operation)
            self.save_cache()
            self.notify()

            if persist is None or self.gateway is None:
                return None

            try:
                result = persist()
                if confirm is not None:
                    result = confirm(result)
            except Exception as e:
                self.collection.restore(previous)
                self.save_cache()
                self.error = str(e) or f"Failed to {operation} job"
                logger.record_mutation_rollback(operation, type(e).__name__)
                logger.error(f"Rolled back {operation}", error=self.error)
                self.notify()
                raise

            logger.record_mutation_confirmed(operation)
            if confirm is not None:
                self.save_cache()
                self.notify()
            return result

    def _require(self, job_id: str) -> TrackedJob:
        job = self.collection.get(job_id)
        if job is None:
            raise InvalidOperationError(f"Unknown job: {job_id}")
        if self.remote_enabled and is_temp_id(job_id):
            raise InvalidOperationError(f"Job {job_id} has not been confirmed by the server yet")
        return job

    def create(self, fields: Dict[str, Any]) -> TrackedJob:
        """Append a new job to its column (``status`` or the wishlist)."""
        errors = validate_job_input(fields)
        if errors:
            raise InvalidOperationError("; ".join(errors))
        fields = dict(fields)
        column = parse_column(fields.pop("status", None) or DEFAULT_COLUMN)
        job_id = new_temp_id() if self.remote_enabled else new_local_id()

        def apply():
            now = self.clock()
            draft = TrackedJob(id=job_id, column=column, position=0, created_at=now, updated_at=now)
            return append_job(self.collection.jobs(), draft.with_fields(fields))

        def persist():
            return self.gateway.create({**_wire_fields(fields), "status": column.value})

        def confirm(server_job: TrackedJob) -> TrackedJob:
            # Keep the local layout; reconciliation brings the server's
            local = self.collection.get(job_id)
            merged = server_job.moved(local.column, local.position)
            self.collection.replace(replace_job(self.collection.jobs(), job_id, merged))
            logger.debug("Confirmed new job", temp_id=job_id, id=merged.id)
            return merged

        with self.lock:
            confirmed = self.run_transaction("create", apply, persist, confirm)
            return confirmed if confirmed is not None else self.collection.get(job_id)

    def move(self, job_id: str, target_column: Any, target_index: Optional[int] = None) -> TrackedJob:
        """Move a job to another column; same-column moves become a reorder."""
        target = parse_column(target_column)
        _check_index(target_index, "target_index")

        with self.lock:
            job = self._require(job_id)
            if job.column == target:
                index = len(self.collection.column_view(target)) - 1 if target_index is None else target_index
                return self.reorder(target, job_id, index)

            def apply():
                return move_job(self.collection.jobs(), job_id, target, target_index, now=self.clock())

            def persist():
                moved = self.collection.get(job_id)
                return self.gateway.patch_status(job_id, moved.column, moved.position)

            self.run_transaction("move", apply, persist)
            return self.collection.get(job_id)

    def reorder(self, column: Any, job_id: str, new_index: int) -> TrackedJob:
        """Reinsert a job at ``new_index`` within its own column."""
        column = parse_column(column)
        _check_index(new_index, "new_index")
        if new_index is None:
            raise InvalidOperationError("new_index is required")

        with self.lock:
            job = self._require(job_id)
            if job.column != column:
                raise InvalidOperationError(
                    f"Job {job_id} is in column '{job.column.value}', not '{column.value}'"
                )
            if self.remote_enabled and any(is_temp_id(j.id) for j in self.collection.column_view(column)):
                raise InvalidOperationError(
                    f"Column '{column.value}' holds jobs not yet confirmed by the server"
                )

            def apply():
                return reorder_column(self.collection.jobs(), column, job_id, new_index, now=self.clock())

            def persist():
                entries = [
                    {"id": j.id, "position": j.position, "status": j.column.value}
                    for j in self.collection.column_view(column)
                ]
                return self.gateway.batch_reorder(entries)

            self.run_transaction("reorder", apply, persist)
            return self.collection.get(job_id)

    def update_fields(self, job_id: str, partial: Dict[str, Any]) -> TrackedJob:
        """Change descriptive fields only; column and position are untouched."""
        if not partial:
            raise InvalidOperationError("No fields to update")
        errors = validate_job_input(partial, partial=True)
        if errors:
            raise InvalidOperationError("; ".join(errors))
        partial = dict(partial)

        with self.lock:
            self._require(job_id)

            def apply():
                now = self.clock()
                return [
                    j.with_fields(partial).touched(now) if j.id == job_id else j
                    for j in self.collection.jobs()
                ]

            def persist():
                return self.gateway.patch_fields(job_id, _wire_fields(partial))

            self.run_transaction("update", apply, persist)
            return self.collection.get(job_id)

    def delete(self, job_id: str) -> None:
        """Remove a job and close the gap in its column."""
        with self.lock:
            self._require(job_id)

            def apply():
                return remove_job(self.collection.jobs(), job_id)

            def persist():
                return self.gateway.delete(job_id)

            self.run_transaction("delete", apply, persist)
