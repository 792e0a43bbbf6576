"""
Build Orchestrator
==================
Turns a validated wizard request into a dispatched, monitored build.

Flow:
    1. Check the access token format (ghp_* / github_pat_*)
    2. Check plugin conflicts (rejected unless force=True)
    3. Create the per-build session, sink and GitHub client
    4. Send the repository_dispatch (event type: web_build)
    5. Record the build in history
    6. Start the BuildMonitor task

Simulated Mode:
    When GITHUB_REPO is not configured, or the dispatch never got an HTTP
    response (network failure), the build still starts but the monitor runs
    basic (simulated) progress only, and the user is told to trigger the
    workflow manually. An HTTP error response is a hard failure instead.
"""
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from smart_builder.agents.build_monitor import BuildMonitor, Notifier
from smart_builder.core.catalog import DEVICES, SOURCE_BRANCHES, device_class_for
from smart_builder.core.config import (
    DISPATCH_EVENT_TYPE,
    GITHUB_REPO,
    GITHUB_TOKEN,
    PHASES_PATH,
    MonitorSettings,
)
from smart_builder.models.build_record import BuildRecord
from smart_builder.models.build_request import BuildRequest
from smart_builder.models.events import MemoryEventSink, TerminalEvent
from smart_builder.parser.plugin_conflicts import (
    PluginConflict,
    check_arch_compatibility,
    detect_plugin_conflicts,
)
from smart_builder.services.github_client import GitHubAPIError, GitHubClient
from smart_builder.services.history_store import HistoryStore
from smart_builder.services.progress_estimator import PhaseEstimator, estimator_for, load_phase_tables
from smart_builder.state.build_registry import BuildHandle, BuildRegistry
from smart_builder.state.monitor_session import MonitorSession
from smart_builder.utils.token_utils import is_valid_token_format, mask_token

logger = logging.getLogger(__name__)

# terminal outcome → history status
_HISTORY_STATUS: Dict[str, str] = {
    "succeeded": "success",
    "failed": "failed",
    "cancelled": "cancelled",
}


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------
class BuildRejected(Exception):
    """A build request that cannot be started."""
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidTokenError(BuildRejected):
    status_code = 401


class PluginConflictError(BuildRejected):
    status_code = 409

    def __init__(self, conflicts: List[PluginConflict]) -> None:
        super().__init__("; ".join(c.message for c in conflicts))
        self.conflicts = conflicts


class DispatchFailed(BuildRejected):
    status_code = 502

    def __init__(self, message: str, upstream_status: Optional[int] = None) -> None:
        super().__init__(message)
        self.upstream_status = upstream_status


def new_build_id() -> str:
    return f"web_build_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"


class BuildOrchestrator:
    """
    Starts builds and owns their monitoring handles.

    Usage:
        orchestrator = BuildOrchestrator()
        handle = await orchestrator.start_build(request, token="ghp_...")
    """

    def __init__(
        self,
        repo: str = GITHUB_REPO,
        default_token: Optional[str] = GITHUB_TOKEN,
        event_type: str = DISPATCH_EVENT_TYPE,
        settings: Optional[MonitorSettings] = None,
        phase_tables: Optional[Dict[str, PhaseEstimator]] = None,
        history: Optional[HistoryStore] = None,
        registry: Optional[BuildRegistry] = None,
        client_factory: Callable[[Optional[str]], GitHubClient] = GitHubClient,
        is_online: Optional[Callable[[], bool]] = None,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self.repo = repo
        self.default_token = default_token
        self.event_type = event_type
        self.settings = settings or MonitorSettings.from_env()
        self.phase_tables = phase_tables if phase_tables is not None else load_phase_tables(PHASES_PATH)
        self.history = history or HistoryStore()
        self.registry = registry or BuildRegistry()
        self.client_factory = client_factory
        self.is_online = is_online
        self.notifier = notifier

    async def start_build(
        self,
        request: BuildRequest,
        token: Optional[str] = None,
        force: bool = False,
    ) -> BuildHandle:
        """
        Dispatch a build and start monitoring it.

        Raises
        ------
        InvalidTokenError
            Missing token or unrecognised token format.
        PluginConflictError
            Mutually exclusive plugins selected and force is False.
        DispatchFailed
            GitHub rejected the dispatch with an HTTP error.
        """
        token = token or self.default_token
        if not is_valid_token_format(token):
            raise InvalidTokenError("A GitHub token starting with ghp_ or github_pat_ is required")

        conflicts = detect_plugin_conflicts(request.plugins)
        if conflicts and not force:
            raise PluginConflictError(conflicts)

        build_id = new_build_id()
        sink = MemoryEventSink()
        session = MonitorSession(build_id, self.repo, sink, self.settings.max_ticks)
        device = DEVICES[request.target_device]

        session.log("info", "Starting the smart build workflow...")
        session.log("info", f"Source: {SOURCE_BRANCHES[request.source_branch].name}")
        session.log("info", f"Device: {device.name}")
        session.log("info", f"Plugins: {len(request.plugins)}")
        for conflict in conflicts:
            session.log("warning", conflict.message)
        for issue in check_arch_compatibility(request.plugins, device.arch):
            session.log(
                "warning",
                f"{issue.plugin} is only known to build on {', '.join(issue.supported_arch)}",
            )

        client = self.client_factory(token)
        dispatched_at = datetime.now(timezone.utc)
        simulated = await self._dispatch(client, session, request, build_id)

        try:
            self.history.add(BuildRecord(
                id=build_id,
                status="running",
                source_branch=request.source_branch,
                target_device=request.target_device,
                plugins=request.plugins,
                simulated=simulated,
            ))
        except OSError as e:
            logger.error("Could not record build %s in history: %s", build_id, e)

        monitor = BuildMonitor(
            session,
            client,
            estimator_for(self.phase_tables, device_class_for(request.target_device)),
            self.settings,
            is_online=self.is_online,
            notifier=self.notifier,
            on_stop=self._on_stop,
            owns_client=True,
        )
        handle = BuildHandle(build_id, session, monitor, sink, simulated=simulated)
        self.registry.add(handle)
        monitor.start(dispatched_at, basic_only=simulated)
        logger.info("Build %s started (simulated=%s, token=%s)", build_id, simulated, mask_token(token))
        return handle

    async def _dispatch(
        self,
        client: GitHubClient,
        session: MonitorSession,
        request: BuildRequest,
        build_id: str,
    ) -> bool:
        """Send the dispatch; returns True when the build falls back to simulated mode."""
        if not self.repo:
            logger.warning("GITHUB_REPO is not configured, using simulated mode")
            session.log("warning", "No repository configured, progress will be simulated")
            return True

        try:
            await client.dispatch(self.repo, self.event_type, request.to_client_payload(build_id))
        except GitHubAPIError as e:
            if e.is_network_error:
                session.log("warning", "Network problem, progress will be simulated")
                session.log("info", "Trigger the build manually from the GitHub Actions page")
                return True
            session.log("error", f"Build trigger failed: {e}")
            await client.close()
            raise DispatchFailed(f"Build trigger failed: {e}", e.status_code) from e

        session.log("success", f"Smart build workflow triggered ({self.settings.workflow_file})")
        return False

    def stop_build(self, build_id: str) -> bool:
        handle = self.registry.get(build_id)
        if handle is None:
            raise KeyError(build_id)
        return handle.monitor.stop("stopped")

    def set_background(self, build_id: str, background: bool) -> None:
        handle = self.registry.get(build_id)
        if handle is None:
            raise KeyError(build_id)
        handle.monitor.set_background(background)

    def _on_stop(self, session: MonitorSession, terminal: Optional[TerminalEvent]) -> None:
        if terminal is None:
            status = "stopped"
        elif terminal.reason == "completed":
            status = _HISTORY_STATUS.get(terminal.outcome, "unknown")
        else:
            status = "unknown"
        try:
            self.history.update(
                session.build_id,
                status=status,
                run_id=session.run_id,
                run_number=session.run_number,
                url=terminal.url if terminal else "",
            )
        except OSError as e:
            logger.error("Could not update history for %s: %s", session.build_id, e)
