from typing import Any, Dict, List
from urllib.parse import urlparse

from .models import DESCRIPTIVE_FIELDS, KanbanColumn

REQUIRED_STR_FIELDS = ["title", "company"]
OPTIONAL_STR_FIELDS = [f for f in DESCRIPTIVE_FIELDS if f not in REQUIRED_STR_FIELDS and f != "tags"]

# Layout and identity are owned by the tracker, never by a field update
PROTECTED_FIELDS = {"id", "status", "column", "position", "created_at", "updated_at"}


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def _valid_url(v: str) -> bool:
    try:
        p = urlparse(v)
        return bool(p.scheme and p.netloc)
    except Exception:
        return False


def validate_job_input(data: Dict[str, Any], partial: bool = False) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.

    partial=False checks a new-job payload (title/company required, optional
    ``status`` column); partial=True checks a field update, where layout and
    identity keys are rejected and nothing is required.
    """
    errors: List[str] = []

    if not isinstance(data, dict):
        return ["Job input must be a mapping"]

    allowed = set(DESCRIPTIVE_FIELDS)
    if not partial:
        allowed.add("status")
    for key in data:
        if partial and key in PROTECTED_FIELDS:
            errors.append(f"Field '{key}' cannot be changed by a field update")
        elif key not in allowed:
            errors.append(f"Unknown field: {key}")

    # Required string fields
    for f in REQUIRED_STR_FIELDS:
        if f not in data:
            if not partial:
                errors.append(f"Missing required field: {f}")
        elif not _is_non_empty_str(data[f]):
            errors.append(f"Field '{f}' must be a non-empty string")

    # Optional strings: None clears the value, anything else must be a string
    for f in OPTIONAL_STR_FIELDS:
        if f in data and data[f] is not None and not isinstance(data[f], str):
            errors.append(f"Field '{f}' must be a string if provided")

    if "tags" in data and data["tags"] is not None:
        tags = data["tags"]
        if not isinstance(tags, (list, tuple)) or not all(isinstance(t, str) for t in tags):
            errors.append("Field 'tags' must be a list of strings")

    # URL shape if present
    if isinstance(data.get("url"), str) and data["url"].strip():
        if not _valid_url(data["url"]):
            errors.append("Field 'url' must be a valid absolute URL (scheme + host)")

    if not partial and data.get("status") is not None:
        try:
            KanbanColumn.parse(data["status"])
        except ValueError:
            errors.append(f"Field 'status' must be one of: {', '.join(c.value for c in KanbanColumn)}")

    return errors
