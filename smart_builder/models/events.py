"""
Monitor Events
==============
Pydantic models for everything the build monitor hands to its consumer,
plus the sink protocol the consumer implements.

Event Kinds:
    LogEvent       — {level: info|success|warning|error, message, timestamp}
    ProgressEvent  — {percent, status_text} plus elapsed / remaining estimates
    TerminalEvent  — emitted exactly once, when a session stops on its own

The monitor never renders anything; UI layers subscribe through an EventSink.
"""
import math
from datetime import datetime, timezone
from typing import List, Literal, Optional, Protocol, Union

from pydantic import BaseModel, Field, computed_field

LogLevel = Literal["info", "success", "warning", "error"]

StopReason = Literal["completed", "timeout", "not_found", "stopped", "error"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LogEvent(BaseModel):
    kind: Literal["log"] = "log"
    level: LogLevel = "info"
    message: str
    timestamp: datetime = Field(default_factory=_utcnow)


class ProgressEvent(BaseModel):
    kind: Literal["progress"] = "progress"
    percent: float
    status_text: str = ""
    elapsed_seconds: float = 0.0
    remaining_seconds: Optional[float] = None
    timestamp: datetime = Field(default_factory=_utcnow)

    @computed_field
    @property
    def display_percent(self) -> int:
        return int(math.floor(self.percent))


class TerminalEvent(BaseModel):
    kind: Literal["terminal"] = "terminal"
    reason: StopReason
    outcome: str = ""
    conclusion: Optional[str] = None
    run_id: Optional[int] = None
    run_number: Optional[int] = None
    duration_seconds: float = 0.0
    url: str = ""
    timestamp: datetime = Field(default_factory=_utcnow)


MonitorEvent = Union[LogEvent, ProgressEvent, TerminalEvent]


class EventSink(Protocol):
    def publish(self, event: MonitorEvent) -> None:
        ...


class MemoryEventSink:
    """Collects events in order; the API layer reads them back."""

    def __init__(self, max_events: int = 1000) -> None:
        self.max_events = max_events
        self.events: List[MonitorEvent] = []

    def publish(self, event: MonitorEvent) -> None:
        self.events.append(event)
        # Keep the newest entries only
        if len(self.events) > self.max_events:
            del self.events[: len(self.events) - self.max_events]

    def logs(self) -> List[LogEvent]:
        return [e for e in self.events if isinstance(e, LogEvent)]

    def progress(self) -> List[ProgressEvent]:
        return [e for e in self.events if isinstance(e, ProgressEvent)]

    def terminal(self) -> Optional[TerminalEvent]:
        for event in reversed(self.events):
            if isinstance(event, TerminalEvent):
                return event
        return None

    def latest_progress(self) -> Optional[ProgressEvent]:
        for event in reversed(self.events):
            if isinstance(event, ProgressEvent):
                return event
        return None
