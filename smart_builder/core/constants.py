"""
Constants
Centralised storage for GitHub API headers, progress bounds and event levels.
"""
USER_AGENT = "OpenWrt-Smart-Builder"
GITHUB_ACCEPT = "application/vnd.github.v3+json"

TOKEN_PREFIXES = ("ghp_", "github_pat_")

QUEUED_PROGRESS = 5.0
IN_PROGRESS_CEILING = 90.0
COMPLETED_PROGRESS = 100.0

BASIC_START_PROGRESS = 10.0
BASIC_PROGRESS_CAP = 95.0
BASIC_STEP_MIN = 1.0
BASIC_STEP_MAX = 5.0
BASIC_PHASE_SPAN = 15.0

