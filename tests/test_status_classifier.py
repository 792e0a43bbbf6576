import pytest

from smart_builder.parser.status_classifier import Outcome, classify_status


@pytest.mark.parametrize("status,conclusion,outcome,terminal", [
    ("queued", None, Outcome.QUEUED, False),
    ("in_progress", None, Outcome.RUNNING, False),
    ("completed", "success", Outcome.SUCCEEDED, True),
    ("completed", "failure", Outcome.FAILED, True),
    ("completed", "cancelled", Outcome.CANCELLED, True),
    ("completed", "timed_out", Outcome.UNKNOWN_COMPLETED, True),
    ("completed", None, Outcome.UNKNOWN_COMPLETED, True),
    ("cancelled", None, Outcome.CANCELLED, True),
    ("waiting", None, Outcome.UNKNOWN, False),
])
def test_classification_table(status, conclusion, outcome, terminal):
    result = classify_status(status, conclusion)
    assert result.outcome is outcome
    assert result.is_terminal is terminal


def test_conclusion_ignored_unless_completed():
    result = classify_status("in_progress", "failure")
    assert result.outcome is Outcome.RUNNING
    assert not result.is_terminal


def test_case_and_whitespace_tolerated():
    assert classify_status(" Completed ", "SUCCESS").outcome is Outcome.SUCCEEDED


def test_unknown_values_degrade_to_generic_label():
    result = classify_status("pending_review")
    assert result.label == "Status: pending_review"
    assert result.level == "info"


def test_missing_status_never_raises():
    result = classify_status(None, None)
    assert result.outcome is Outcome.UNKNOWN
    assert result.label == "Status: unknown"


def test_levels_follow_outcome():
    assert classify_status("completed", "success").level == "success"
    assert classify_status("completed", "failure").level == "error"
    assert classify_status("completed", "cancelled").level == "warning"
