"""
JobTracker: the applications board as seen by the UI.

Composes the collection, the optimistic mutator, the reconciliation
scheduler, the local cache and the remote gateway into one instance per
session. The UI reads column projections and calls the mutation methods;
it never edits positions or columns itself.
"""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .collection import ColumnView, PositionedCollection
from .config import TrackerConfig, load_config
from .errors import CacheError, GatewayError, InvariantViolationError
from .gateway import RemoteGateway, RestGateway
from .logger import get_logger
from .models import TrackedJob, is_temp_id, utcnow
from .mutator import OptimisticMutator, parse_column
from .positions import remove_job
from .scheduler import DEFAULT_SYNC_INTERVAL, ReconciliationScheduler
from .storage import LocalCache, open_cache

logger = get_logger()

STALE_CACHE_WARNING = "Using locally cached tracked jobs; data may be stale"

Listener = Callable[["JobTracker"], None]


class JobTracker:
    """Optimistic, cache-backed Kanban of tracked jobs."""

    def __init__(
        self,
        gateway: Optional[RemoteGateway] = None,
        cache: Optional[LocalCache] = None,
        sync_interval: float = DEFAULT_SYNC_INTERVAL,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.collection = PositionedCollection()
        self.mutator = OptimisticMutator(
            self.collection, cache=cache, gateway=gateway, clock=clock, on_change=self._emit
        )
        self.scheduler = ReconciliationScheduler(self.mutator, gateway, interval=sync_interval)
        self.is_loading = False
        self.warning: Optional[str] = None
        self._listeners: List[Listener] = []

    @classmethod
    def from_config(cls, config: Optional[TrackerConfig] = None) -> "JobTracker":
        """Build a tracker with the REST gateway and cache the config names."""
        config = config or load_config()
        gateway = None
        if config.sync_with_server:
            gateway = RestGateway(config.api_url, token=config.api_token, timeout=config.request_timeout)
        cache = open_cache(config.cache_path) if config.cache_enabled else None
        return cls(gateway=gateway, cache=cache, sync_interval=config.sync_interval)

    # Observable state

    @property
    def gateway(self) -> Optional[RemoteGateway]:
        return self.mutator.gateway

    @property
    def cache(self) -> Optional[LocalCache]:
        return self.mutator.cache

    @property
    def error(self) -> Optional[str]:
        return self.mutator.error

    @property
    def pending_changes(self) -> bool:
        return self.mutator.pending_changes

    @property
    def is_syncing(self) -> bool:
        return self.scheduler.is_syncing

    @property
    def last_synced(self) -> Optional[datetime]:
        return self.scheduler.last_synced

    @property
    def tracked_jobs(self) -> List[TrackedJob]:
        return self.collection.jobs()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener(tracker)`` after every state change; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _emit(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    # Loading

    def _load_from_cache(self) -> bool:
        if self.cache is None:
            return False
        try:
            snapshot = self.cache.load()
        except CacheError as e:
            logger.error("Failed to load from local cache", error=str(e))
            return False
        if snapshot is None:
            return False
        jobs = snapshot.jobs
        # A create interrupted before confirmation leaves its placeholder behind
        unconfirmed = [j.id for j in jobs if is_temp_id(j.id)]
        for job_id in unconfirmed:
            jobs = remove_job(jobs, job_id)
        if unconfirmed:
            logger.warning("Dropping unconfirmed jobs from local cache", ids=unconfirmed)
        try:
            self.collection.replace(jobs)
        except InvariantViolationError as e:
            logger.warning("Ignoring inconsistent local cache", error=str(e))
            return False
        logger.info("Loaded tracked jobs from local cache",
                    jobs=len(jobs), saved_at=snapshot.saved_at.isoformat())
        return True

    def fetch_tracked_jobs(self) -> bool:
        """
        Initial load: server first, local cache as fallback.

        Returns:
            True if the board now mirrors the server. On a failed fetch the
            cache is used (``warning`` set) and ``error`` holds the reason.
        """
        with self.mutator.lock:
            self.is_loading = True
            self.mutator.error = None
            self.warning = None
            self._emit()
            try:
                if self.gateway is None:
                    self._load_from_cache()
                    return False

                try:
                    jobs = self.gateway.fetch_all()
                    self.collection.replace(jobs)
                except (GatewayError, InvariantViolationError) as e:
                    self.mutator.error = str(e) or "Failed to load tracked jobs"
                    logger.warning("Initial load failed, falling back to local cache", error=str(e))
                    if self._load_from_cache():
                        self.warning = STALE_CACHE_WARNING
                    return False

                self.mutator.pending_changes = False
                self.scheduler.last_synced = self.mutator.clock()
                self.mutator.save_cache()
                logger.info("Loaded tracked jobs from server", jobs=len(jobs))
                return True
            finally:
                self.is_loading = False
                self._emit()

    def start(self) -> "JobTracker":
        """Load the board and start background reconciliation."""
        self.fetch_tracked_jobs()
        self.scheduler.start()
        return self

    def close(self) -> None:
        self.scheduler.stop()
        metrics = logger.metrics
        if metrics["mutations_attempted"] or metrics["syncs_attempted"]:
            logger.log_metrics_summary()
        for resource in (self.gateway, self.cache):
            close = getattr(resource, "close", None)
            if callable(close):
                close()

    def __enter__(self) -> "JobTracker":
        return self.start()

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # Queries

    def columns(self) -> List[ColumnView]:
        return self.collection.columns()

    def get_jobs_by_status(self, column: Any) -> List[TrackedJob]:
        return self.collection.column_view(parse_column(column))

    def get_stats(self) -> Dict[str, Any]:
        return {"total": self.collection.total, "by_column": self.collection.stats_by_column()}

    # Mutations

    def add_job(self, job_input: Dict[str, Any]) -> TrackedJob:
        return self.mutator.create(job_input)

    def move_job(self, job_id: str, source_column: Any, target_column: Any, new_index: Optional[int] = None) -> TrackedJob:
        """Drag-and-drop entry point; the job's current column wins over ``source_column``."""
        job = self.collection.get(job_id)
        if job is not None and source_column is not None:
            source = parse_column(source_column)
            if source != job.column:
                logger.warning("Move source column does not match job",
                               id=job_id, given=source.value, actual=job.column.value)
        return self.mutator.move(job_id, target_column, new_index)

    def update_job_status(self, job_id: str, new_status: Any, new_position: Optional[int] = None) -> TrackedJob:
        return self.mutator.move(job_id, new_status, new_position)

    def update_job(self, job_id: str, data: Dict[str, Any]) -> TrackedJob:
        return self.mutator.update_fields(job_id, data)

    def delete_job(self, job_id: str) -> None:
        self.mutator.delete(job_id)

    def reorder_in_column(self, column: Any, job_id: str, new_index: int) -> TrackedJob:
        return self.mutator.reorder(column, job_id, new_index)

    def sync_with_server(self) -> bool:
        """Manual reconciliation; same code path as the timer."""
        return self.scheduler.reconcile()
