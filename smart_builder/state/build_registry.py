"""
Build Registry
==============
Holds the live monitoring handles, one per build attempt.

Each build gets its own MonitorSession, BuildMonitor and event sink; the
registry only maps build ids to those handles so the API layer can find
them again. Nothing here is shared between builds.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from smart_builder.agents.build_monitor import BuildMonitor
from smart_builder.models.events import MemoryEventSink
from smart_builder.state.monitor_session import MonitorSession

logger = logging.getLogger(__name__)


@dataclass
class BuildHandle:
    build_id: str
    session: MonitorSession
    monitor: BuildMonitor
    sink: MemoryEventSink
    simulated: bool = False


class BuildRegistry:
    def __init__(self, max_finished: int = 20) -> None:
        self.max_finished = max_finished
        self._handles: Dict[str, BuildHandle] = {}

    def add(self, handle: BuildHandle) -> None:
        if handle.build_id in self._handles:
            raise KeyError(f"Build {handle.build_id} is already registered")
        self._handles[handle.build_id] = handle
        self._prune()

    def get(self, build_id: str) -> Optional[BuildHandle]:
        return self._handles.get(build_id)

    def active(self) -> List[BuildHandle]:
        return [h for h in self._handles.values() if h.session.is_active]

    def stop_all(self, reason: str = "shutdown") -> int:
        stopped = 0
        for handle in self.active():
            if handle.monitor.stop(reason):
                stopped += 1
        if stopped:
            logger.info("Stopped %d active build monitors (%s)", stopped, reason)
        return stopped

    def _prune(self) -> None:
        """Forget the oldest finished sessions beyond max_finished."""
        finished = [bid for bid, h in self._handles.items() if not h.session.is_active]
        for build_id in finished[: max(0, len(finished) - self.max_finished)]:
            del self._handles[build_id]

    def __len__(self) -> int:
        return len(self._handles)
