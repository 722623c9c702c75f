"""
Error taxonomy for the job tracker core.

Mutation failures roll back and re-raise one of these; reconciliation
failures are logged and retried on the next tick.
"""

from typing import Optional


class JobTrackerError(Exception):
    """Base class for every error raised by jobtracker."""
    pass


class GatewayError(JobTrackerError):
    """The remote store could not be reached or rejected the request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class InvariantViolationError(JobTrackerError):
    """A job list breaks column/position density or id uniqueness."""
    pass


class InvalidOperationError(JobTrackerError):
    """A mutation targets a missing job or carries invalid input."""
    pass


class CacheError(JobTrackerError):
    """The local cache could not be read or written."""
    pass
