"""
Structured logging system for jobtracker.

Provides centralized logging with console and file outputs, key/value
context on every line, and counters for monitoring how often optimistic
mutations are confirmed or rolled back and how reconciliation fares.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional
from datetime import datetime
import json


def _empty_metrics() -> dict:
    return {
        "gateway_calls": 0,
        "mutations_attempted": 0,
        "mutations_confirmed": 0,
        "mutations_rolled_back": 0,
        "syncs_attempted": 0,
        "syncs_succeeded": 0,
        "syncs_failed": 0,
        "errors_by_type": {},
        "operation_stats": {},
    }


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks metrics for monitoring sync health.
    """

    def __init__(
        self,
        name: str = "jobtracker",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        """
        Initialize the structured logger.

        Args:
            name: Logger name
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (default: logs/)
            enable_file: Write logs to file
            enable_console: Output logs to console
        """
        self.logger = logging.getLogger(name)
        self.metrics = _empty_metrics()
        self.configure(level=level, log_dir=log_dir, enable_file=enable_file, enable_console=enable_console)

    def configure(
        self,
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        """(Re)build handlers in place so module-level references stay valid."""
        self.logger.setLevel(logging.DEBUG)
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()
        self.logger.propagate = False

        # Console handler
        if enable_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        # File handler
        if enable_file:
            if log_dir is None:
                log_dir = Path("logs")
            log_dir = Path(log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"jobtracker_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

        if not self.logger.handlers:
            self.logger.addHandler(logging.NullHandler())

    def debug(self, message: str, **kwargs):
        """Log debug message with optional context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        """Log info message with optional context."""
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with optional context."""
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with optional context."""
        self._log(logging.ERROR, message, kwargs)

    def critical(self, message: str, **kwargs):
        """Log critical message with optional context."""
        self._log(logging.CRITICAL, message, kwargs)

    def _log(self, level: int, message: str, context: dict):
        """Internal logging method with context."""
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message, stacklevel=3)

    # Metric tracking methods

    def record_gateway_call(self):
        """Increment remote call counter."""
        self.metrics["gateway_calls"] += 1

    def record_mutation_attempt(self, operation: str):
        """Record an optimistic mutation being applied."""
        self.metrics["mutations_attempted"] += 1
        stats = self.metrics["operation_stats"].setdefault(
            operation, {"attempts": 0, "confirmed": 0, "rolled_back": 0}
        )
        stats["attempts"] += 1

    def record_mutation_confirmed(self, operation: str):
        """Record a mutation the remote store accepted."""
        self.metrics["mutations_confirmed"] += 1
        if operation in self.metrics["operation_stats"]:
            self.metrics["operation_stats"][operation]["confirmed"] += 1

    def record_mutation_rollback(self, operation: str, error_type: str):
        """Record a mutation undone after a remote failure."""
        self.metrics["mutations_rolled_back"] += 1
        if operation in self.metrics["operation_stats"]:
            self.metrics["operation_stats"][operation]["rolled_back"] += 1
        self._record_error(error_type)

    def record_sync_attempt(self):
        self.metrics["syncs_attempted"] += 1

    def record_sync_success(self):
        self.metrics["syncs_succeeded"] += 1

    def record_sync_failure(self, error_type: str):
        self.metrics["syncs_failed"] += 1
        self._record_error(error_type)

    def _record_error(self, error_type: str):
        errors = self.metrics["errors_by_type"]
        errors[error_type] = errors.get(error_type, 0) + 1

    def reset_metrics(self):
        self.metrics = _empty_metrics()

    def get_metrics(self) -> dict:
        """Return current metrics."""
        # Calculate confirmation rates
        metrics_copy = self.metrics.copy()
        for operation, stats in metrics_copy["operation_stats"].items():
            if stats["attempts"] > 0:
                stats["confirmation_rate"] = round(
                    stats["confirmed"] / stats["attempts"], 3
                )

        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        attempted = metrics["mutations_attempted"]
        confirmed = metrics["mutations_confirmed"]
        overall_rate = 0
        if attempted > 0:
            overall_rate = round(confirmed / attempted * 100, 1)

        self.info("=== Tracker Session Metrics ===")
        self.info(f"Gateway Calls: {metrics['gateway_calls']}")
        self.info(f"Mutations: {confirmed}/{attempted} confirmed ({overall_rate}%), "
                  f"{metrics['mutations_rolled_back']} rolled back")
        self.info(f"Syncs: {metrics['syncs_succeeded']}/{metrics['syncs_attempted']} succeeded")

        if metrics["operation_stats"]:
            self.info("Operations:")
            for operation, stats in metrics["operation_stats"].items():
                rate = stats.get("confirmation_rate", 0) * 100
                self.info(f"  {operation}: {stats['confirmed']}/{stats['attempts']} ({rate:.1f}%)")

        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")


# Global logger instance
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "jobtracker",
    level: Optional[str] = None,
    **kwargs
) -> StructuredLogger:
    """
    Get or create the global logger instance.

    Defaults come from JOBTRACKER_LOG_LEVEL and JOBTRACKER_LOG_DIR (an empty
    JOBTRACKER_LOG_DIR disables the file handler).

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **kwargs: Additional arguments passed to StructuredLogger

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    if _global_logger is None:
        if level is None:
            level = os.environ.get("JOBTRACKER_LOG_LEVEL", "INFO")
        if "log_dir" not in kwargs and "enable_file" not in kwargs:
            env_dir = os.environ.get("JOBTRACKER_LOG_DIR")
            if env_dir is not None:
                kwargs["enable_file"] = bool(env_dir.strip())
                kwargs["log_dir"] = Path(env_dir) if env_dir.strip() else None
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Reset the global logger (useful for testing)."""
    global _global_logger
    _global_logger = None
