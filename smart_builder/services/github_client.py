"""
GitHub Client
=============
Asynchronous wrapper around the handful of GitHub REST endpoints the
build monitor needs.

Endpoints:
    POST /repos/{repo}/dispatches                 — trigger the smart-build workflow
    GET  /repos/{repo}/actions/runs?per_page=N    — recent workflow runs
    GET  /repos/{repo}/actions/runs/{id}          — one run snapshot
    GET  /repos/{repo}/actions/runs/{id}/jobs     — jobs and steps of a run

Error Handling:
    Every failure — non-2xx response, timeout, connection error, bad JSON —
    is raised as GitHubAPIError. status_code is None when the request never
    got an HTTP response (network unreachable, CORS-style failures).
    Callers decide whether to retry; this client never retries by itself.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from smart_builder.core.config import GITHUB_API_URL, GITHUB_TIMEOUT_SECONDS
from smart_builder.core.constants import GITHUB_ACCEPT, USER_AGENT
from smart_builder.models.build_request import DispatchResult
from smart_builder.models.workflow_run import WorkflowJob, WorkflowRun

logger = logging.getLogger(__name__)


class GitHubAPIError(Exception):
    """A GitHub request failed (HTTP error or transport failure)."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_network_error(self) -> bool:
        return self.status_code is None


class GitHubClient:
    """
    Async client for the GitHub Actions REST API.

    Usage:
        client = GitHubClient(token="ghp_...")
        runs = await client.list_recent_runs("owner/repo", 10)
        await client.close()
    """

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: str = GITHUB_API_URL,
        timeout: float = GITHUB_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self.headers = {
            "Accept": GITHUB_ACCEPT,
            "User-Agent": USER_AGENT,
        }
        if token:
            self.headers["Authorization"] = f"token {token}"
        self._http: Optional[httpx.AsyncClient] = None

    async def _get_http(self) -> httpx.AsyncClient:
        """Lazy-initialise the HTTP client."""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self.headers,
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._http

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http and not self._http.is_closed:
            await self._http.aclose()
            self._http = None

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        http = await self._get_http()
        try:
            response = await http.request(method, path, **kwargs)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            message = _error_message(e.response)
            logger.warning("GitHub %s %s failed — HTTP %d: %s", method, path, status_code, message)
            raise GitHubAPIError(f"HTTP {status_code}: {message}", status_code) from e
        except httpx.HTTPError as e:
            logger.warning("GitHub %s %s failed — %s", method, path, e)
            raise GitHubAPIError(f"Network error: {e}") from e

    async def _get_json(self, path: str, **kwargs: Any) -> Dict[str, Any]:
        response = await self._request("GET", path, **kwargs)
        try:
            data = response.json()
        except ValueError as e:
            raise GitHubAPIError(f"Invalid JSON from {path}", response.status_code) from e
        if not isinstance(data, dict):
            raise GitHubAPIError(f"Unexpected payload from {path}", response.status_code)
        return data

    # -----------------------------------------------------------------------
    # Dispatch
    # -----------------------------------------------------------------------
    async def dispatch(self, repo: str, event_type: str, payload: Dict[str, Any]) -> DispatchResult:
        """
        Send a repository_dispatch event.

        GitHub answers 204 with no body and does not return a run id — the
        run has to be located afterwards.
        """
        body = {"event_type": event_type, "client_payload": payload}
        response = await self._request("POST", f"/repos/{repo}/dispatches", json=body)
        logger.info("Dispatched %s to %s (HTTP %d)", event_type, repo, response.status_code)
        return DispatchResult(
            accepted=True,
            status_code=response.status_code,
            message="Build request submitted to GitHub Actions",
        )

    # -----------------------------------------------------------------------
    # Run queries
    # -----------------------------------------------------------------------
    async def list_recent_runs(self, repo: str, page_size: int = 10) -> List[WorkflowRun]:
        data = await self._get_json(f"/repos/{repo}/actions/runs", params={"per_page": page_size})
        return _parse_list(data.get("workflow_runs", []), WorkflowRun)

    async def get_run(self, repo: str, run_id: int) -> WorkflowRun:
        data = await self._get_json(f"/repos/{repo}/actions/runs/{run_id}")
        try:
            return WorkflowRun.model_validate(data)
        except ValidationError as e:
            raise GitHubAPIError(f"Malformed run {run_id}: {e.error_count()} invalid fields") from e

    async def list_jobs(self, repo: str, run_id: int) -> List[WorkflowJob]:
        data = await self._get_json(f"/repos/{repo}/actions/runs/{run_id}/jobs")
        return _parse_list(data.get("jobs", []), WorkflowJob)


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.reason_phrase or "request failed"
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return response.reason_phrase or "request failed"


def _parse_list(items: Any, model: Any) -> list:
    """Validate each item, skipping entries GitHub returned in an unexpected shape."""
    parsed = []
    for item in items if isinstance(items, list) else []:
        try:
            parsed.append(model.model_validate(item))
        except ValidationError as e:
            logger.debug("Skipping malformed %s entry: %s", model.__name__, e)
    return parsed
