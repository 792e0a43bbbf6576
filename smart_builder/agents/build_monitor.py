"""
Build Monitor Agent
===================
Drives one MonitorSession from dispatch to stop: locates the dispatched
workflow run, polls it on a fixed cadence and turns each snapshot into
progress and log events.

State Machine:
    locating → monitoring-real  → stopped
    locating → monitoring-basic → stopped   (run not found, fallback enabled)
    locating → stopped                       (run not found, no fallback)
    monitoring-real → monitoring-basic       (every Nth consecutive fetch failure)

Tick (monitoring-real):
    1. Connectivity signal absent → warn, skip the network call
    2. Fetch the run snapshot
    3. Classify + estimate, emit per the de-duplication rule
    4. Terminal outcome → terminal event, notification, stop
    5. Job details (after the run-status emission)
    6. tick_count ≥ max_ticks → timeout event, stop

Basic Monitoring:
    No network calls. Progress grows by a random 1–5 points per tick, capped
    at 95, with phase labels derived from progress thresholds. It never
    reports success or failure; it ends by user stop or by the tick budget,
    which emits a timeout with an "unknown" outcome so the user verifies
    the build manually.

Scheduling:
    One asyncio task per session. A tick's request settles (or times out in
    httpx) before the next pause starts. stop() is synchronous: it flips the
    session to stopped, wakes any pending pause and cancels the task, so no
    event can follow it.
"""
import asyncio
import logging
import random
from datetime import datetime, timezone
from typing import Callable, Optional

from smart_builder.agents.run_locator import RunLocator
from smart_builder.core.config import MonitorSettings
from smart_builder.core.constants import (
    BASIC_PHASE_SPAN,
    BASIC_PROGRESS_CAP,
    BASIC_START_PROGRESS,
    BASIC_STEP_MAX,
    BASIC_STEP_MIN,
)
from smart_builder.models.events import ProgressEvent, TerminalEvent
from smart_builder.models.workflow_run import WorkflowRun
from smart_builder.parser.status_classifier import Outcome, StatusClassification, classify_status
from smart_builder.services.github_client import GitHubAPIError, GitHubClient
from smart_builder.services.progress_estimator import PhaseEstimator
from smart_builder.state.monitor_session import MonitorMode, MonitorSession
from smart_builder.utils.duration import estimate_remaining, format_duration

logger = logging.getLogger(__name__)

Notifier = Callable[[str, str, str], None]
StopHook = Callable[[MonitorSession, Optional[TerminalEvent]], None]


def _log_notifier(title: str, message: str, level: str) -> None:
    logger.info("Notification (%s): %s: %s", level, title, message)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BuildMonitor:
    """
    Monitors the GitHub Actions run behind one build session.

    Usage:
        monitor = BuildMonitor(session, client, estimator, settings)
        monitor.start(dispatched_at)
        ...
        monitor.stop()
    """

    def __init__(
        self,
        session: MonitorSession,
        client: GitHubClient,
        estimator: PhaseEstimator,
        settings: Optional[MonitorSettings] = None,
        locator: Optional[RunLocator] = None,
        is_online: Optional[Callable[[], bool]] = None,
        notifier: Optional[Notifier] = None,
        on_stop: Optional[StopHook] = None,
        clock: Callable[[], datetime] = _utcnow,
        rng: Optional[random.Random] = None,
        owns_client: bool = False,
    ) -> None:
        self.session = session
        self.client = client
        self.estimator = estimator
        self.settings = settings or MonitorSettings.from_env()
        self.locator = locator or RunLocator(client, self.settings)
        self.is_online = is_online or (lambda: True)
        self.notifier = notifier or _log_notifier
        self.on_stop = on_stop
        self.clock = clock
        self.rng = rng or random.Random()
        self.owns_client = owns_client

        self.background = False
        self.consecutive_failures = 0
        self.basic_progress = BASIC_START_PROGRESS
        self.basic_phase_index = 0
        self.last_job_status: Optional[str] = None

        self._task: Optional[asyncio.Task] = None
        self._wake: Optional[asyncio.Event] = None
        self._client_closed = False
        self._close_task: Optional[asyncio.Task] = None

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------
    @property
    def interval(self) -> float:
        if self.background:
            return self.settings.background_poll_interval
        return self.settings.poll_interval

    def start(
        self,
        dispatched_at: datetime,
        fallback: bool = True,
        basic_only: bool = False,
    ) -> asyncio.Task:
        """Schedule the monitoring loop on the running event loop."""
        if self._task is not None:
            raise RuntimeError(f"Monitor for {self.session.build_id} already started")
        self._task = asyncio.get_running_loop().create_task(
            self.run(dispatched_at, fallback=fallback, basic_only=basic_only),
            name=f"build-monitor-{self.session.build_id}",
        )
        # A task cancelled before its first step never runs run()'s finally
        self._task.add_done_callback(self._on_task_done)
        return self._task

    def _on_task_done(self, task: asyncio.Task) -> None:
        if self.owns_client and not self._client_closed:
            self._close_task = task.get_loop().create_task(self._close_client())

    async def _close_client(self) -> None:
        if self.owns_client and not self._client_closed:
            self._client_closed = True
            await self.client.close()

    def set_background(self, background: bool) -> None:
        """Visibility signal: only the polling cadence changes."""
        if background != self.background:
            self.background = background
            logger.info(
                "Session %s polling every %.0fs (%s)",
                self.session.build_id, self.interval, "background" if background else "foreground",
            )

    def stop(self, reason: str = "stopped") -> bool:
        """Stop monitoring now. Returns False if the session had already stopped."""
        return self._finish(reason, None)

    async def _pause(self, seconds: float) -> bool:
        """Sleep unless stopped first; returns whether the session is still active."""
        if not self.session.is_active:
            return False
        if self._wake is None:
            self._wake = asyncio.Event()
        if seconds > 0:
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=seconds)
            except asyncio.TimeoutError:
                pass
        else:
            await asyncio.sleep(0)
        return self.session.is_active

    def _finish(self, reason: str, terminal: Optional[TerminalEvent]) -> bool:
        s = self.session
        if not s.is_active:
            return False
        if terminal is not None:
            s.emit(terminal)
        s.stop(reason)
        if self._wake is not None:
            self._wake.set()
        if self._task is not None and not self._task.done() and self._task is not _current_task():
            self._task.cancel()
        if self.on_stop is not None:
            try:
                self.on_stop(s, terminal)
            except Exception as e:
                logger.error("Stop hook failed for %s: %s", s.build_id, e, exc_info=True)
        return True

    # -----------------------------------------------------------------------
    # Main loop
    # -----------------------------------------------------------------------
    async def run(self, dispatched_at: datetime, fallback: bool = True, basic_only: bool = False) -> None:
        """Full session: settle, locate, then monitor until stopped."""
        s = self.session
        try:
            if basic_only:
                await self._run_basic()
                return

            s.log("info", "Monitoring GitHub Actions build status...")
            s.log("info", "Waiting for GitHub Actions to pick up the build request...")
            if not await self._pause(self.settings.settle_delay):
                return

            run = await self.locator.locate(s, dispatched_at, self._pause)
            if not s.is_active:
                return

            if run is None:
                s.log("warning", "No matching build run was found")
                if not fallback:
                    self._finish("not_found", TerminalEvent(
                        reason="not_found", outcome="unknown", url=self._actions_url(),
                    ))
                    return
                s.log("info", "The build may still be queued; switching to basic monitoring")
                await self._run_basic()
                return

            self._attach(run)
            await self._run_real()
            if s.is_active and s.mode is MonitorMode.MONITORING_BASIC:
                await self._run_basic()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Build monitor for %s crashed: %s", s.build_id, e, exc_info=True)
            if s.is_active:
                s.log("error", f"Build monitoring failed: {e}")
                self._finish("error", TerminalEvent(reason="error", outcome="unknown", url=self._actions_url()))
        finally:
            await self._close_client()

    def _attach(self, run: WorkflowRun) -> None:
        s = self.session
        s.bind_run(run.id, run.run_number)
        s.transition(MonitorMode.MONITORING_REAL)
        s.log("success", f"Found build run #{run.run_number}")
        s.log("info", f"Run status: {classify_status(run.status, run.conclusion).label}")
        s.log("info", f"Started at: {run.created_at.astimezone(timezone.utc):%Y-%m-%d %H:%M:%S} UTC")

    async def _run_real(self) -> None:
        s = self.session
        while s.is_active and s.mode is MonitorMode.MONITORING_REAL:
            if not await self._pause(self.interval):
                return
            await self.tick()

    async def _run_basic(self) -> None:
        s = self.session
        if not s.is_active:
            return
        if s.ticks_exhausted:
            self._check_tick_budget()
            return
        if s.mode is not MonitorMode.MONITORING_BASIC:
            s.transition(MonitorMode.MONITORING_BASIC)
        if s.progress.last_percent is not None:
            self.basic_progress = min(max(self.basic_progress, s.progress.last_percent), BASIC_PROGRESS_CAP)
        s.log("info", "Basic monitoring enabled")
        s.log("info", "Progress is estimated from typical build times")
        while s.is_active:
            if not await self._pause(self.interval):
                return
            self.basic_tick()

    # -----------------------------------------------------------------------
    # Ticks
    # -----------------------------------------------------------------------
    async def tick(self) -> None:
        """One monitoring-real poll."""
        s = self.session
        if not s.is_active or s.run_id is None:
            return
        s.register_tick()

        if not self.is_online():
            s.log("warning", "Network unreachable, skipping this check")
            self._check_tick_budget()
            return

        try:
            run = await self.client.get_run(s.repo, s.run_id)
        except GitHubAPIError as e:
            self._record_failure(e)
            return

        if not s.is_active:
            return
        self.consecutive_failures = 0

        classification = classify_status(run.status, run.conclusion)
        self._report_run(run, classification)

        if classification.is_terminal:
            self._complete(run, classification)
            return

        await self._report_jobs(run)
        self._check_tick_budget()

    def _record_failure(self, error: GitHubAPIError) -> None:
        s = self.session
        self.consecutive_failures += 1
        logger.warning(
            "Run fetch failed for %s (%d consecutive): %s",
            s.build_id, self.consecutive_failures, error,
        )
        if self.consecutive_failures >= self.settings.failure_switch_threshold:
            s.log("warning", f"Lost contact with GitHub Actions: {error}")
            s.log("info", "Switching to basic monitoring...")
            s.transition(MonitorMode.MONITORING_BASIC)
        self._check_tick_budget()

    def _report_run(self, run: WorkflowRun, classification: StatusClassification) -> None:
        s = self.session
        outcome = classification.outcome
        running = outcome is Outcome.RUNNING
        elapsed = (self.clock() - run.created_at).total_seconds()

        if running:
            estimate = self.estimator.estimate(elapsed)
            text = f"Building... ({estimate.phase.name}) - run #{run.run_number}"
            minutes = int(max(0.0, elapsed) // 60)
            if minutes > 0 and s.tick_count % self.settings.heartbeat_every == 0:
                s.log("info", f"Running for {minutes} min, current phase: {estimate.phase.name}")
        elif outcome is Outcome.QUEUED:
            text = f"Build run #{run.run_number} is queued..."
        else:
            text = classification.label

        changed = run.status != s.last_emitted_status or text != s.last_emitted_text
        if not running and not changed:
            return

        percent = self.estimator.progress_for(outcome, elapsed)
        if percent is not None:
            percent = s.progress.observe(percent, running=running)
            monitored = (self.clock() - s.started_at).total_seconds()
            s.emit(ProgressEvent(
                percent=percent,
                status_text=text,
                elapsed_seconds=monitored,
                remaining_seconds=estimate_remaining(monitored, percent),
            ))

        if text != s.last_emitted_text:
            s.log(classification.level, text)
        s.last_emitted_status = run.status
        s.last_emitted_text = text

    async def _report_jobs(self, run: WorkflowRun) -> None:
        s = self.session
        try:
            jobs = await self.client.list_jobs(s.repo, run.id)
        except GitHubAPIError as e:
            # Job details are optional; they never count as a tick failure
            logger.debug("Job details unavailable for run %s: %s", run.id, e)
            return
        if not jobs or not s.is_active:
            return

        current = next((j for j in jobs if j.status == "in_progress"), jobs[-1])
        if current.status == self.last_job_status:
            return
        self.last_job_status = current.status

        if current.status == "in_progress":
            s.log("info", f"Running: {current.name}")
            if current.steps:
                done = sum(1 for step in current.steps if step.status == "completed")
                total = len(current.steps)
                s.log("info", f"Steps: {done}/{total} ({done * 100 // total}%)")

    def _complete(self, run: WorkflowRun, classification: StatusClassification) -> None:
        s = self.session
        duration = format_duration(run.duration_seconds)
        url = run.html_url or self._run_url(run.id)
        outcome = classification.outcome

        if outcome is Outcome.SUCCEEDED:
            s.log("success", "Firmware build completed successfully!")
            s.log("info", f"Total time: {duration}")
            s.log("info", f"Results: {url}")
            s.log("info", f"Download firmware: https://github.com/{s.repo}/releases")
            self.notifier("Build succeeded", "Firmware is ready on the Releases page", "success")
        elif outcome is Outcome.FAILED:
            s.log("error", "Firmware build failed")
            s.log("info", f"Run time: {duration}")
            s.log("error", f"Detailed logs: {url}")
            s.log("info", "Hint: check plugin conflicts, trim the plugin list or try another source branch")
            self.notifier("Build failed", "Check the configuration or the detailed logs", "error")
        elif outcome is Outcome.CANCELLED:
            s.log("warning", "Build run was cancelled")
            s.log("info", f"Run time: {duration}")
            self.notifier("Build cancelled", "The build run was cancelled", "warning")
        else:
            s.log("warning", f"Build finished with conclusion: {run.conclusion or 'unknown'}")
            s.log("info", f"Details: {url}")
            self.notifier("Build finished", "Check the run on GitHub Actions", "warning")

        self._finish("completed", TerminalEvent(
            reason="completed",
            outcome=outcome.value,
            conclusion=run.conclusion,
            run_id=run.id,
            run_number=run.run_number,
            duration_seconds=run.duration_seconds,
            url=url,
        ))

    def basic_tick(self) -> None:
        """One simulated-progress step; no network access."""
        s = self.session
        if not s.is_active:
            return
        s.register_tick()

        step = self.rng.uniform(BASIC_STEP_MIN, BASIC_STEP_MAX)
        self.basic_progress = min(self.basic_progress + step, BASIC_PROGRESS_CAP)
        phases = self.estimator.phases

        if (self.basic_progress > (self.basic_phase_index + 1) * BASIC_PHASE_SPAN
                and self.basic_phase_index < len(phases) - 1):
            self.basic_phase_index += 1
            s.log("info", f"Current phase: {phases[self.basic_phase_index].name}")

        percent = s.progress.observe(self.basic_progress)
        monitored = (self.clock() - s.started_at).total_seconds()
        s.emit(ProgressEvent(
            percent=percent,
            status_text=f"Estimated progress ({phases[self.basic_phase_index].name})",
            elapsed_seconds=monitored,
            remaining_seconds=estimate_remaining(monitored, percent),
        ))

        if s.tick_count % self.settings.reminder_every == 0:
            s.log("info", f"See GitHub Actions for detailed progress: {self._actions_url()}")

        self._check_tick_budget()

    def _check_tick_budget(self) -> None:
        s = self.session
        if not s.is_active or not s.ticks_exhausted:
            return
        s.log("warning", "Monitoring timed out, please check the build status manually")
        url = self._run_url(s.run_id) if s.run_id is not None else self._actions_url()
        s.log("info", f"Details: {url}")
        self._finish("timeout", TerminalEvent(
            reason="timeout",
            outcome="unknown",
            run_id=s.run_id,
            run_number=s.run_number,
            url=url,
        ))

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------
    def _actions_url(self) -> str:
        return f"https://github.com/{self.session.repo}/actions"

    def _run_url(self, run_id: int) -> str:
        return f"https://github.com/{self.session.repo}/actions/runs/{run_id}"


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
