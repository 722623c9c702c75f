"""
Remote gateway to the tracker REST API.

The core depends only on the RemoteGateway protocol; RestGateway is the
``requests`` implementation used in production. Every failure surfaces
as GatewayError so callers handle one exception type for the network.
"""

from typing import Any, Dict, List, Optional, Protocol

import requests

from .errors import GatewayError
from .logger import get_logger
from .models import KanbanColumn, TrackedJob, jobs_from_dicts
from .retry import (
    CircuitBreaker,
    CircuitOpenError,
    RetryError,
    exponential_backoff,
    is_transient_error,
    should_retry_http_status,
)

logger = get_logger()

TRACKER_PATH = "/candidate/tracker"


class RemoteGateway(Protocol):
    """Capabilities the tracker needs from the backing API."""

    def fetch_all(self) -> List[TrackedJob]:
        ...

    def create(self, fields: Dict[str, Any]) -> TrackedJob:
        """Persist a new job; the server assigns id and position."""
        ...

    def patch_status(self, job_id: str, column: KanbanColumn, position: int) -> Optional[TrackedJob]:
        ...

    def patch_fields(self, job_id: str, fields: Dict[str, Any]) -> Optional[TrackedJob]:
        ...

    def delete(self, job_id: str) -> None:
        ...

    def batch_reorder(self, entries: List[Dict[str, Any]]) -> None:
        """entries: ``[{"id", "position", "status"}, ...]``"""
        ...


def _unwrap_list(body: Any) -> List[Dict[str, Any]]:
    """Accept a bare list or a ``{"data"|"jobs"|"items": [...]}`` envelope."""
    if isinstance(body, list):
        return body
    if isinstance(body, dict):
        for key in ("data", "jobs", "items"):
            if isinstance(body.get(key), list):
                return body[key]
    raise GatewayError(f"Unexpected tracker list payload: {type(body).__name__}")


def _unwrap_record(body: Any) -> Dict[str, Any]:
    if isinstance(body, dict) and isinstance(body.get("data"), dict):
        return body["data"]
    if isinstance(body, dict):
        return body
    raise GatewayError(f"Unexpected tracker record payload: {type(body).__name__}")


class RestGateway:
    """RemoteGateway over HTTP with retry on reads and circuit breaking."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
        breaker: Optional[CircuitBreaker] = None,
        max_retries: int = 2,
        retry_delay: float = 0.5,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"
        self.breaker = breaker or CircuitBreaker(failure_threshold=5, recovery_timeout=30)
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    def _url(self, suffix: str = "") -> str:
        return f"{self.base_url}{TRACKER_PATH}{suffix}"

    def _send(self, method: str, url: str, payload: Optional[Any] = None) -> requests.Response:
        resp = self.session.request(method, url, json=payload, timeout=self.timeout)
        # Server errors and throttling count against the breaker, client errors do not
        if resp.status_code >= 500 or should_retry_http_status(resp.status_code):
            resp.raise_for_status()
        return resp

    def _request(self, method: str, suffix: str = "", payload: Optional[Any] = None, retry: bool = False) -> Any:
        """Send a request and return the decoded JSON body (None when empty).

        Raises:
            GatewayError: On any HTTP error, timeout, open circuit or bad body
        """
        url = self._url(suffix)
        send = self._send
        if retry:
            send = exponential_backoff(
                max_retries=self.max_retries,
                base_delay=self.retry_delay,
                exceptions=(
                    requests.exceptions.Timeout,
                    requests.exceptions.ConnectionError,
                    requests.exceptions.HTTPError,
                ),
                on_retry=lambda attempt, e, delay: logger.warning(
                    "Retrying tracker request", method=method, url=url, attempt=attempt, delay=delay
                ),
            )(self._send)

        logger.record_gateway_call()
        try:
            resp = self.breaker.call(send, method, url, payload)
            resp.raise_for_status()
        except CircuitOpenError as e:
            logger.warning("Tracker API circuit open", method=method, url=url)
            raise GatewayError(str(e)) from e
        except RetryError as e:
            cause = e.__cause__
            status = None
            if isinstance(cause, requests.exceptions.HTTPError) and cause.response is not None:
                status = cause.response.status_code
            logger.error("Tracker API unreachable", method=method, url=url, status=status, error=str(e))
            raise GatewayError(f"Tracker API unreachable: {e}", status_code=status) from e
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            logger.error("Tracker API request failed", method=method, url=url, status=status)
            raise GatewayError(f"Tracker API request failed ({status}): {method} {url}", status_code=status) from e
        except requests.exceptions.Timeout as e:
            logger.warning("Tracker API request timed out", method=method, url=url)
            raise GatewayError("Tracker API request timed out. Try again later.") from e
        except requests.exceptions.RequestException as e:
            log = logger.warning if is_transient_error(e) else logger.error
            log("Tracker API request error", method=method, url=url, error=str(e))
            raise GatewayError(f"Tracker API request error: {e}") from e

        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise GatewayError(f"Tracker API returned invalid JSON: {method} {url}") from e

    def fetch_all(self) -> List[TrackedJob]:
        body = self._request("GET", retry=True)
        return jobs_from_dicts(_unwrap_list(body))

    def create(self, fields: Dict[str, Any]) -> TrackedJob:
        body = self._request("POST", payload=fields)
        return TrackedJob.from_dict(_unwrap_record(body))

    def patch_status(self, job_id: str, column: KanbanColumn, position: int) -> Optional[TrackedJob]:
        body = self._request("PATCH", f"/{job_id}", payload={"status": column.value, "position": position})
        return TrackedJob.from_dict(_unwrap_record(body)) if body is not None else None

    def patch_fields(self, job_id: str, fields: Dict[str, Any]) -> Optional[TrackedJob]:
        body = self._request("PATCH", f"/{job_id}", payload=fields)
        return TrackedJob.from_dict(_unwrap_record(body)) if body is not None else None

    def delete(self, job_id: str) -> None:
        self._request("DELETE", f"/{job_id}")

    def batch_reorder(self, entries: List[Dict[str, Any]]) -> None:
        self._request("POST", "/reorder", payload={"jobs": entries})

    def close(self) -> None:
        self.session.close()
