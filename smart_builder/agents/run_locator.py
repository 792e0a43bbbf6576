"""
Run Locator
===========
Finds the workflow run created by our repository_dispatch among the
repository's most recent runs.

Matching:
    1. RECENCY — only runs created after (dispatched_at - recency_window)
    2. IDENTITY — first run whose name contains a known marker, whose path
       contains the workflow file, or which is a still-running
       repository_dispatch run

Retry Policy:
    - No match          → retry up to locator_max_retries, locator_retry_delay apart
    - API / network err → retry up to locator_error_retries, locator_error_delay apart
    - Exhausted         → None ("not found"); the caller falls back to basic monitoring

Retries are cancellable: the pause callable returns False once the owning
session has stopped, and no further request is made after that.
"""
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional

from smart_builder.core.config import MonitorSettings
from smart_builder.models.workflow_run import WorkflowRun
from smart_builder.services.github_client import GitHubAPIError, GitHubClient
from smart_builder.state.monitor_session import MonitorSession

logger = logging.getLogger(__name__)

Pause = Callable[[float], Awaitable[bool]]


class RunLocator:
    """Resolves a dispatch to a concrete workflow run id."""

    def __init__(self, client: GitHubClient, settings: MonitorSettings) -> None:
        self.client = client
        self.settings = settings

    def matches(self, run: WorkflowRun) -> bool:
        """True if the run looks like our smart-build workflow."""
        if any(marker in run.name for marker in self.settings.run_name_markers):
            return True
        if self.settings.workflow_file and self.settings.workflow_file in run.path:
            return True
        return run.event == self.settings.dispatch_event and run.status != "completed"

    def select_run(self, runs: List[WorkflowRun], dispatched_at: datetime) -> Optional[WorkflowRun]:
        """Pick the first recent, matching run (runs arrive newest first)."""
        cutoff = dispatched_at - timedelta(seconds=self.settings.recency_window)
        for run in runs:
            if run.created_at > cutoff and self.matches(run):
                return run
        return None

    async def locate(
        self,
        session: MonitorSession,
        dispatched_at: datetime,
        pause: Pause,
    ) -> Optional[WorkflowRun]:
        """
        Poll recent runs until ours shows up or the retry budget runs out.

        Parameters
        ----------
        session : MonitorSession
            Owning session; progress notes are emitted through it.
        dispatched_at : datetime
            UTC time the dispatch was sent.
        pause : Pause
            Cancellable sleep; returns False when the session has stopped.

        Returns
        -------
        WorkflowRun | None
            The matching run, or None when not found / cancelled.
        """
        misses = 0
        errors = 0

        while session.is_active:
            try:
                runs = await self.client.list_recent_runs(session.repo, self.settings.page_size)
            except GitHubAPIError as e:
                errors += 1
                logger.warning(
                    "Run lookup failed for %s (%d/%d): %s",
                    session.repo, errors, self.settings.locator_error_retries, e,
                )
                if errors > self.settings.locator_error_retries:
                    session.log("error", f"Could not query GitHub Actions runs: {e}")
                    return None
                if not await pause(self.settings.locator_error_delay):
                    return None
                continue

            if not session.is_active:
                return None

            run = self.select_run(runs, dispatched_at)
            if run is not None:
                logger.info("Matched run %s (#%s) for %s", run.id, run.run_number, session.build_id)
                return run

            misses += 1
            if misses > self.settings.locator_max_retries:
                return None

            session.log("info", f"Looking for the build run (attempt {misses})...")
            if not await pause(self.settings.locator_retry_delay):
                return None

        return None
