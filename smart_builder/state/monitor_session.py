"""
Monitor Session
===============
Per-build monitoring state, owned exclusively by one BuildMonitor.

Modes:
    locating → monitoring-real → stopped
    locating → monitoring-basic → stopped
    locating → stopped
    monitoring-real → monitoring-basic (repeated fetch failures)

Invariants:
    - run_id is write-once.
    - tick_count never exceeds max_ticks.
    - The session reaches "stopped" at most once; emit() after that is a
      defect and is dropped (logged at ERROR), never delivered.
"""
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, Optional

from smart_builder.models.events import EventSink, LogEvent, LogLevel, MonitorEvent
from smart_builder.services.progress_estimator import ProgressTracker

logger = logging.getLogger(__name__)


class MonitorMode(str, Enum):
    LOCATING = "locating"
    MONITORING_REAL = "monitoring-real"
    MONITORING_BASIC = "monitoring-basic"
    STOPPED = "stopped"


_TRANSITIONS: Dict[MonitorMode, FrozenSet[MonitorMode]] = {
    MonitorMode.LOCATING: frozenset({
        MonitorMode.MONITORING_REAL, MonitorMode.MONITORING_BASIC, MonitorMode.STOPPED,
    }),
    MonitorMode.MONITORING_REAL: frozenset({MonitorMode.MONITORING_BASIC, MonitorMode.STOPPED}),
    MonitorMode.MONITORING_BASIC: frozenset({MonitorMode.STOPPED}),
    MonitorMode.STOPPED: frozenset(),
}

_LOG_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class InvalidTransition(RuntimeError):
    pass


class MonitorSession:
    """State of one build's monitoring, from dispatch until stop."""

    def __init__(
        self,
        build_id: str,
        repo: str,
        sink: EventSink,
        max_ticks: int,
        started_at: Optional[datetime] = None,
    ) -> None:
        self.build_id = build_id
        self.repo = repo
        self.max_ticks = max_ticks
        self.started_at = started_at or datetime.now(timezone.utc)
        self.tick_count = 0
        self.mode = MonitorMode.LOCATING
        self.last_emitted_status: Optional[str] = None
        self.last_emitted_text: Optional[str] = None
        self.stop_reason: Optional[str] = None
        self.run_number: Optional[int] = None
        self.progress = ProgressTracker()
        self._sink = sink
        self._run_id: Optional[int] = None

    @property
    def run_id(self) -> Optional[int]:
        return self._run_id

    @property
    def is_active(self) -> bool:
        return self.mode is not MonitorMode.STOPPED

    def bind_run(self, run_id: int, run_number: Optional[int] = None) -> None:
        if self._run_id is not None and self._run_id != run_id:
            raise RuntimeError(f"Session {self.build_id} is already bound to run {self._run_id}")
        self._run_id = run_id
        self.run_number = run_number

    def transition(self, mode: MonitorMode) -> None:
        if mode is self.mode:
            return
        if mode not in _TRANSITIONS[self.mode]:
            raise InvalidTransition(f"{self.mode.value} → {mode.value}")
        logger.debug("Session %s: %s → %s", self.build_id, self.mode.value, mode.value)
        self.mode = mode

    def register_tick(self) -> int:
        if self.tick_count < self.max_ticks:
            self.tick_count += 1
        return self.tick_count

    @property
    def ticks_exhausted(self) -> bool:
        return self.tick_count >= self.max_ticks

    def emit(self, event: MonitorEvent) -> bool:
        if not self.is_active:
            logger.error("Dropped %s event for stopped session %s", event.kind, self.build_id)
            return False
        if isinstance(event, LogEvent):
            logger.log(_LOG_LEVELS.get(event.level, logging.INFO), "[%s] %s", self.build_id, event.message)
        self._sink.publish(event)
        return True

    def log(self, level: LogLevel, message: str) -> bool:
        return self.emit(LogEvent(level=level, message=message))

    def stop(self, reason: str) -> bool:
        """Move to STOPPED. Returns False if the session had already stopped."""
        if not self.is_active:
            return False
        self.log("info", "Build monitoring stopped")
        self.stop_reason = reason
        self.mode = MonitorMode.STOPPED
        return True
