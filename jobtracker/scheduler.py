"""
Background reconciliation with the remote store.

While optimistic mutations are pending, a timer periodically replaces the
local model with the server's collection. Fetch failures are logged and
retried on the next tick; the optimistic state and the cache keep the
board usable in the meantime.
"""

import threading
from datetime import datetime
from typing import Optional

from .errors import GatewayError, InvariantViolationError
from .gateway import RemoteGateway
from .logger import get_logger
from .mutator import OptimisticMutator

logger = get_logger()

DEFAULT_SYNC_INTERVAL = 60.0


class ReconciliationScheduler:
    """Overwrites local state with server truth on a fixed interval."""

    def __init__(
        self,
        mutator: OptimisticMutator,
        gateway: Optional[RemoteGateway],
        interval: float = DEFAULT_SYNC_INTERVAL,
    ):
        self.mutator = mutator
        self.gateway = gateway
        self.interval = interval
        self.is_syncing = False
        self.last_synced: Optional[datetime] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def reconcile(self) -> bool:
        """
        Fetch the full collection and replace the local model with it.

        Returns:
            True if local state now mirrors the server, False if the fetch
            failed (state untouched) or there is no gateway

        Raises:
            InvariantViolationError: the server sent a malformed collection;
                the previous local state is kept
        """
        if self.gateway is None:
            return False

        mutator = self.mutator
        with mutator.lock:
            self.is_syncing = True
            mutator.notify()
            logger.record_sync_attempt()
            try:
                jobs = self.gateway.fetch_all()
                mutator.collection.replace(jobs)
            except GatewayError as e:
                logger.record_sync_failure(type(e).__name__)
                logger.warning("Failed to sync with server", error=str(e))
                return False
            except InvariantViolationError as e:
                logger.record_sync_failure(type(e).__name__)
                logger.error("Rejected malformed server collection", error=str(e))
                mutator.error = f"Server returned an invalid board: {e}"
                raise
            else:
                mutator.pending_changes = False
                self.last_synced = mutator.clock()
                mutator.save_cache()
                logger.record_sync_success()
                logger.info("Synced with server", jobs=len(jobs))
                return True
            finally:
                self.is_syncing = False
                mutator.notify()

    def tick(self) -> bool:
        """
        One timer tick: reconcile if changes are pending and no mutation is
        in flight. Gateway and payload errors are logged, not raised.
        """
        if self.gateway is None or not self.mutator.pending_changes:
            return False
        if not self.mutator.lock.acquire(blocking=False):
            logger.debug("Skipping sync tick, a mutation is in flight")
            return False
        try:
            return self.reconcile()
        except InvariantViolationError:
            # Already logged and surfaced through mutator.error
            return False
        finally:
            self.mutator.lock.release()

    def _run(self):
        while not self._stop.wait(self.interval):
            try:
                self.tick()
            except Exception as e:
                # Keep the timer alive; the next tick tries again
                logger.error("Sync tick failed", error=str(e), error_type=type(e).__name__)

    def start(self) -> None:
        if self.gateway is None or self.interval <= 0 or self.is_running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="jobtracker-sync", daemon=True)
        self._thread.start()
        logger.debug("Reconciliation scheduler started", interval=self.interval)

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
