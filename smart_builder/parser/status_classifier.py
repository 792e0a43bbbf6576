"""
Status Classifier
=================
Maps a raw GitHub Actions (status, conclusion) pair to a semantic outcome,
a terminal flag, a user-facing label and the log level used to report it.

Mapping:
    queued                  → queued             (not terminal)
    in_progress             → running            (not terminal)
    completed + success     → succeeded          (terminal)
    completed + failure     → failed             (terminal)
    completed + cancelled   → cancelled          (terminal)
    completed + other/None  → unknown-completed  (terminal)
    cancelled               → cancelled          (terminal)
    anything else           → unknown            (not terminal)

Never raises. Unrecognised values degrade to a generic "Status: <raw>" label.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Outcome(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    UNKNOWN_COMPLETED = "unknown-completed"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class StatusClassification:
    """Immutable result of classifying a run snapshot."""
    outcome: Outcome
    is_terminal: bool
    label: str
    level: str = "info"


# ---------------------------------------------------------------------------
# Classification Table
# ---------------------------------------------------------------------------
# status → result, for statuses whose conclusion does not matter
_STATUS_TABLE: dict[str, StatusClassification] = {
    "queued":      StatusClassification(Outcome.QUEUED,    False, "Queued"),
    "in_progress": StatusClassification(Outcome.RUNNING,   False, "In progress"),
    "cancelled":   StatusClassification(Outcome.CANCELLED, True,  "Build cancelled", "warning"),
}

# conclusion → result, for status == "completed"
_CONCLUSION_TABLE: dict[str, StatusClassification] = {
    "success":   StatusClassification(Outcome.SUCCEEDED, True, "Build succeeded", "success"),
    "failure":   StatusClassification(Outcome.FAILED,    True, "Build failed",    "error"),
    "cancelled": StatusClassification(Outcome.CANCELLED, True, "Build cancelled", "warning"),
}

_UNKNOWN_COMPLETED = StatusClassification(
    Outcome.UNKNOWN_COMPLETED, True, "Build ended abnormally", "warning"
)


def _normalise(value: Optional[str]) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip().lower()


def classify_status(status: Optional[str], conclusion: Optional[str] = None) -> StatusClassification:
    """
    Classify a (status, conclusion) pair.

    Parameters
    ----------
    status : str | None
        Raw run status as returned by GitHub.
    conclusion : str | None
        Raw run conclusion; only consulted when status is "completed".

    Returns
    -------
    StatusClassification
        Frozen dataclass with outcome, is_terminal, label, level.
    """
    key = _normalise(status)

    if key == "completed":
        return _CONCLUSION_TABLE.get(_normalise(conclusion), _UNKNOWN_COMPLETED)

    if key in _STATUS_TABLE:
        return _STATUS_TABLE[key]

    raw = status if isinstance(status, str) and status.strip() else "unknown"
    return StatusClassification(Outcome.UNKNOWN, False, f"Status: {raw}")
