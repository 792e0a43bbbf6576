"""
Phase-Based Progress Estimator
==============================
Turns "minutes since the run was created" into an approximate build
percentage using a table of named phases with expected durations.

Algorithm:
    Walk the phases accumulating duration. The phase whose window contains
    the elapsed time is current; progress is the linear interpolation between
    the previous phase's ceiling and the current phase's ceiling. Past the
    last window, progress stays at the last ceiling.

Bounds:
    queued       → 5
    in_progress  → clamped to [0, 90]; the last 10% is reserved for completion
    completed    → 100

This is a heuristic, not a measurement: build logs are never read.
Phase tables are data (config/phases.yaml), keyed by device class.
"""
import logging
import os
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import yaml

from smart_builder.core.constants import COMPLETED_PROGRESS, IN_PROGRESS_CEILING, QUEUED_PROGRESS
from smart_builder.parser.status_classifier import Outcome

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Phase:
    """A named, heuristically timed slice of the expected build."""
    name: str
    duration_seconds: float
    ceiling: float


@dataclass(frozen=True)
class PhaseEstimate:
    percent: float
    phase: Phase


def _clamp(value: float, low: float = 0.0, high: float = IN_PROGRESS_CEILING) -> float:
    return max(low, min(high, value))


# ---------------------------------------------------------------------------
# Estimator
# ---------------------------------------------------------------------------
class PhaseEstimator:
    """
    Estimates in-progress build percentage from elapsed time.

    Usage:
        estimator = PhaseEstimator(phases)
        estimator.estimate(240).percent   # 4 minutes in
    """

    def __init__(self, phases: Sequence[Phase]) -> None:
        if not phases:
            raise ValueError("Phase table must not be empty")

        previous = 0.0
        for phase in phases:
            if phase.duration_seconds <= 0:
                raise ValueError(f"Phase '{phase.name}' must have a positive duration")
            if phase.ceiling <= previous:
                raise ValueError(f"Phase ceilings must strictly increase (at '{phase.name}')")
            previous = phase.ceiling
        if previous >= 100:
            raise ValueError("Last phase ceiling must stay below 100")

        self.phases: List[Phase] = list(phases)

    @property
    def total_seconds(self) -> float:
        return sum(p.duration_seconds for p in self.phases)

    def estimate(self, elapsed_seconds: float) -> PhaseEstimate:
        """Return the interpolated percentage and current phase for an elapsed time."""
        elapsed = max(0.0, elapsed_seconds)
        accumulated = 0.0
        previous_ceiling = 0.0

        for phase in self.phases:
            if elapsed <= accumulated + phase.duration_seconds:
                fraction = (elapsed - accumulated) / phase.duration_seconds
                percent = previous_ceiling + (phase.ceiling - previous_ceiling) * fraction
                return PhaseEstimate(_clamp(percent), phase)
            accumulated += phase.duration_seconds
            previous_ceiling = phase.ceiling

        last = self.phases[-1]
        return PhaseEstimate(_clamp(last.ceiling), last)

    def progress_for(self, outcome: Outcome, elapsed_seconds: float) -> Optional[float]:
        """
        Map a classified outcome to a percentage.

        Returns None for unknown, non-terminal statuses (progress is left
        unchanged by the caller).
        """
        if outcome is Outcome.QUEUED:
            return QUEUED_PROGRESS
        if outcome is Outcome.RUNNING:
            return self.estimate(elapsed_seconds).percent
        if outcome is Outcome.UNKNOWN:
            return None
        return COMPLETED_PROGRESS


class ProgressTracker:
    """
    Keeps emitted in-progress percentages monotonic across ticks.

    Clock skew between GitHub and the host, or a phase table swap, must
    never make the bar move backwards while the run is still building.
    """

    def __init__(self) -> None:
        self.last_percent: Optional[float] = None

    def observe(self, percent: float, running: bool = True) -> float:
        if running and self.last_percent is not None:
            percent = max(percent, self.last_percent)
        self.last_percent = percent
        return percent


# ---------------------------------------------------------------------------
# Phase Table Loading
# ---------------------------------------------------------------------------
def parse_phase_table(entries: list) -> List[Phase]:
    """Convert YAML entries ({name, minutes, ceiling}) into Phase objects."""
    phases = []
    for entry in entries or []:
        phases.append(Phase(
            name=str(entry["name"]),
            duration_seconds=float(entry["minutes"]) * 60.0,
            ceiling=float(entry["ceiling"]),
        ))
    return phases


def load_phase_tables(path: str) -> Dict[str, PhaseEstimator]:
    """
    Load every phase table from a YAML file.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ValueError
        If the file has no "default" table or a table is malformed.
    """
    abs_path = os.path.abspath(path)
    with open(abs_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Phase file {abs_path} must map device classes to tables")

    tables: Dict[str, PhaseEstimator] = {}
    for device_class, entries in data.items():
        try:
            tables[str(device_class)] = PhaseEstimator(parse_phase_table(entries))
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed phase table '{device_class}': {e}") from e

    if "default" not in tables:
        raise ValueError(f"Phase file {abs_path} has no 'default' table")

    logger.info("Loaded %d phase tables from %s", len(tables), abs_path)
    return tables


def estimator_for(tables: Dict[str, PhaseEstimator], device_class: str) -> PhaseEstimator:
    return tables.get(device_class) or tables["default"]
