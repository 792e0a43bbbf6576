"""
Configuration
=============
Loads environment variables from .env file using python-dotenv.

Environment Variables:
    GITHUB_TOKEN                  — Default access token (ghp_* / github_pat_*)
    GITHUB_REPO                   — owner/repo hosting the smart-build workflow
    DISPATCH_EVENT_TYPE           — repository_dispatch event type (default: web_build)
    WORKFLOW_FILE                 — Workflow file used to recognise our runs
    POLL_INTERVAL_SECONDS         — Foreground tick cadence (default: 60)
    BACKGROUND_POLL_INTERVAL_SECONDS — Background tick cadence (default: 120)
    MAX_TICKS                     — Monitoring budget in ticks (default: 150, ~2.5h)
    HISTORY_PATH                  — JSON file holding build history
    PHASES_PATH                   — YAML file holding phase-duration tables

Retry Philosophy:
    Run discovery retries a bounded number of times and then gives up;
    the monitor degrades to basic (simulated) progress rather than failing.
    Nothing is retried indefinitely — GitHub rate limits are real.
"""
import os
from dataclasses import dataclass
from typing import Tuple

from dotenv import load_dotenv

load_dotenv()

GITHUB_TOKEN = os.getenv("GITHUB_TOKEN")
GITHUB_REPO = os.getenv("GITHUB_REPO", "")
GITHUB_API_URL = os.getenv("GITHUB_API_URL", "https://api.github.com")
DISPATCH_EVENT_TYPE = os.getenv("DISPATCH_EVENT_TYPE", "web_build")
WORKFLOW_FILE = os.getenv("WORKFLOW_FILE", "smart-build.yml")

# Tick cadence
POLL_INTERVAL_SECONDS = float(os.getenv("POLL_INTERVAL_SECONDS", 60))
BACKGROUND_POLL_INTERVAL_SECONDS = float(os.getenv("BACKGROUND_POLL_INTERVAL_SECONDS", 120))
MAX_TICKS = int(os.getenv("MAX_TICKS", 150))
DISPATCH_SETTLE_SECONDS = float(os.getenv("DISPATCH_SETTLE_SECONDS", 10))

# Run discovery
RUNS_PAGE_SIZE = int(os.getenv("RUNS_PAGE_SIZE", 10))
RECENCY_WINDOW_SECONDS = float(os.getenv("RECENCY_WINDOW_SECONDS", 300))
LOCATOR_MAX_RETRIES = int(os.getenv("LOCATOR_MAX_RETRIES", 5))
LOCATOR_RETRY_DELAY = float(os.getenv("LOCATOR_RETRY_DELAY", 15))
LOCATOR_ERROR_RETRIES = int(os.getenv("LOCATOR_ERROR_RETRIES", 3))
LOCATOR_ERROR_DELAY = float(os.getenv("LOCATOR_ERROR_DELAY", 20))

# Consecutive run-fetch failures before switching to basic monitoring
FAILURE_SWITCH_THRESHOLD = int(os.getenv("FAILURE_SWITCH_THRESHOLD", 3))

# HTTP
GITHUB_TIMEOUT_SECONDS = float(os.getenv("GITHUB_TIMEOUT_SECONDS", 20))

# Persistence
HISTORY_PATH = os.getenv("HISTORY_PATH", "build_history.json")
HISTORY_LIMIT = int(os.getenv("HISTORY_LIMIT", 50))
PHASES_PATH = os.getenv(
    "PHASES_PATH",
    os.path.join(os.path.dirname(__file__), "..", "..", "config", "phases.yaml"),
)

# Logging
LOG_DIR = os.getenv("LOG_DIR", "logs")


@dataclass(frozen=True)
class MonitorSettings:
    """Tunable knobs for one monitoring session."""
    poll_interval: float = POLL_INTERVAL_SECONDS
    background_poll_interval: float = BACKGROUND_POLL_INTERVAL_SECONDS
    max_ticks: int = MAX_TICKS
    settle_delay: float = DISPATCH_SETTLE_SECONDS
    page_size: int = RUNS_PAGE_SIZE
    recency_window: float = RECENCY_WINDOW_SECONDS
    locator_max_retries: int = LOCATOR_MAX_RETRIES
    locator_retry_delay: float = LOCATOR_RETRY_DELAY
    locator_error_retries: int = LOCATOR_ERROR_RETRIES
    locator_error_delay: float = LOCATOR_ERROR_DELAY
    failure_switch_threshold: int = FAILURE_SWITCH_THRESHOLD
    workflow_file: str = WORKFLOW_FILE
    run_name_markers: Tuple[str, ...] = ("Smart Build", "智能编译")
    dispatch_event: str = "repository_dispatch"
    heartbeat_every: int = 3
    reminder_every: int = 5

    @classmethod
    def from_env(cls) -> "MonitorSettings":
        """Read the knobs from the environment now, falling back to the import-time defaults."""
        return cls(
            poll_interval=float(os.getenv("POLL_INTERVAL_SECONDS", POLL_INTERVAL_SECONDS)),
            background_poll_interval=float(
                os.getenv("BACKGROUND_POLL_INTERVAL_SECONDS", BACKGROUND_POLL_INTERVAL_SECONDS)
            ),
            max_ticks=int(os.getenv("MAX_TICKS", MAX_TICKS)),
            settle_delay=float(os.getenv("DISPATCH_SETTLE_SECONDS", DISPATCH_SETTLE_SECONDS)),
            page_size=int(os.getenv("RUNS_PAGE_SIZE", RUNS_PAGE_SIZE)),
            recency_window=float(os.getenv("RECENCY_WINDOW_SECONDS", RECENCY_WINDOW_SECONDS)),
            locator_max_retries=int(os.getenv("LOCATOR_MAX_RETRIES", LOCATOR_MAX_RETRIES)),
            locator_retry_delay=float(os.getenv("LOCATOR_RETRY_DELAY", LOCATOR_RETRY_DELAY)),
            locator_error_retries=int(os.getenv("LOCATOR_ERROR_RETRIES", LOCATOR_ERROR_RETRIES)),
            locator_error_delay=float(os.getenv("LOCATOR_ERROR_DELAY", LOCATOR_ERROR_DELAY)),
            failure_switch_threshold=int(os.getenv("FAILURE_SWITCH_THRESHOLD", FAILURE_SWITCH_THRESHOLD)),
            workflow_file=os.getenv("WORKFLOW_FILE", WORKFLOW_FILE),
        )
