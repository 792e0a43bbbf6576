import os

import pytest

from smart_builder.parser.status_classifier import Outcome
from smart_builder.services.progress_estimator import (
    Phase,
    PhaseEstimator,
    ProgressTracker,
    estimator_for,
    load_phase_tables,
)

MIN = 60.0

PHASES = [
    Phase("prep", 3 * MIN, 10),
    Phase("fetch", 8 * MIN, 20),
    Phase("configure", 5 * MIN, 30),
    Phase("kernel", 25 * MIN, 60),
    Phase("packages", 35 * MIN, 85),
    Phase("pack", 8 * MIN, 95),
]

CONFIG_PATH = os.path.join(os.path.dirname(__file__), "..", "config", "phases.yaml")


@pytest.fixture
def estimator():
    return PhaseEstimator(PHASES)


def test_interpolates_within_current_phase(estimator):
    result = estimator.estimate(4 * MIN)
    assert result.percent == pytest.approx(11.25)
    assert result.phase.name == "fetch"


def test_phase_boundaries(estimator):
    assert estimator.estimate(0).percent == 0
    assert estimator.estimate(3 * MIN).percent == pytest.approx(10)
    assert estimator.estimate(16 * MIN).percent == pytest.approx(30)


def test_clamps_to_ninety_past_all_phases(estimator):
    assert estimator.total_seconds == 84 * MIN
    result = estimator.estimate(200 * MIN)
    assert result.percent == 90
    assert result.phase.name == "pack"


def test_negative_elapsed_clamps_to_zero(estimator):
    # GitHub clock slightly ahead of ours
    assert estimator.estimate(-30).percent == 0


def test_monotonic_and_bounded(estimator):
    previous = -1.0
    for second in range(0, 100 * 60, 45):
        percent = estimator.estimate(second).percent
        assert 0 <= percent <= 90
        assert percent >= previous
        previous = percent


def test_progress_for_outcomes(estimator):
    assert estimator.progress_for(Outcome.QUEUED, 9999) == 5
    assert estimator.progress_for(Outcome.SUCCEEDED, 0) == 100
    assert estimator.progress_for(Outcome.FAILED, 0) == 100
    assert estimator.progress_for(Outcome.UNKNOWN, 100) is None
    assert estimator.progress_for(Outcome.RUNNING, 4 * MIN) == pytest.approx(11.25)


@pytest.mark.parametrize("phases", [
    [],
    [Phase("a", 60, 20), Phase("b", 60, 20)],
    [Phase("a", 60, 50), Phase("b", 60, 100)],
    [Phase("a", 0, 50)],
])
def test_rejects_invalid_tables(phases):
    with pytest.raises(ValueError):
        PhaseEstimator(phases)


def test_tracker_never_regresses_while_running():
    tracker = ProgressTracker()
    assert tracker.observe(40) == 40
    assert tracker.observe(35) == 40
    assert tracker.observe(100, running=False) == 100


def test_load_phase_tables(tmp_path):
    path = tmp_path / "phases.yaml"
    path.write_text(
        "default:\n"
        "  - {name: setup, minutes: 2, ceiling: 40}\n"
        "  - {name: build, minutes: 10, ceiling: 80}\n"
        "x86:\n"
        "  - {name: build, minutes: 30, ceiling: 90}\n",
        encoding="utf-8",
    )
    tables = load_phase_tables(str(path))
    assert set(tables) == {"default", "x86"}
    assert tables["default"].phases[1].duration_seconds == 600
    assert estimator_for(tables, "x86") is tables["x86"]
    assert estimator_for(tables, "mips") is tables["default"]


def test_load_requires_default_table(tmp_path):
    path = tmp_path / "phases.yaml"
    path.write_text("router:\n  - {name: build, minutes: 5, ceiling: 50}\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_phase_tables(str(path))


def test_load_rejects_malformed_entries(tmp_path):
    path = tmp_path / "phases.yaml"
    path.write_text("default:\n  - {name: build, ceiling: 50}\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_phase_tables(str(path))


def test_shipped_phase_tables_are_valid():
    tables = load_phase_tables(CONFIG_PATH)
    assert {"default", "router", "arm", "x86"} <= set(tables)
    assert tables["default"].total_seconds == 84 * MIN
