"""
Builds API
==========
POST   /builds                       — validate, dispatch and start monitoring
GET    /builds/{build_id}            — mode, latest progress and events
POST   /builds/{build_id}/visibility — foreground/background polling cadence
DELETE /builds/{build_id}            — stop monitoring

The token comes from the "Authorization: token <x>" header, falling back
to GITHUB_TOKEN from the environment. It is never echoed back.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel

from smart_builder.agents.orchestrator import BuildOrchestrator, BuildRejected, PluginConflictError
from smart_builder.api.dependencies import get_orchestrator
from smart_builder.models.build_request import BuildRequest
from smart_builder.models.events import LogEvent, MonitorEvent, ProgressEvent, TerminalEvent
from smart_builder.state.build_registry import BuildHandle
from smart_builder.utils.token_utils import token_from_header

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/builds", tags=["Builds"])


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------
class BuildStarted(BaseModel):
    build_id: str
    mode: str
    simulated: bool
    message: str


class BuildStatus(BaseModel):
    build_id: str
    mode: str
    active: bool
    simulated: bool
    run_id: Optional[int] = None
    run_number: Optional[int] = None
    tick_count: int
    stop_reason: Optional[str] = None
    progress: Optional[ProgressEvent] = None
    terminal: Optional[TerminalEvent] = None
    logs: List[LogEvent] = []
    event_count: int = 0


class VisibilityUpdate(BaseModel):
    background: bool


def _status_of(handle: BuildHandle, since: int = 0) -> BuildStatus:
    session = handle.session
    events: List[MonitorEvent] = handle.sink.events[since:]
    return BuildStatus(
        build_id=handle.build_id,
        mode=session.mode.value,
        active=session.is_active,
        simulated=handle.simulated,
        run_id=session.run_id,
        run_number=session.run_number,
        tick_count=session.tick_count,
        stop_reason=session.stop_reason,
        progress=handle.sink.latest_progress(),
        terminal=handle.sink.terminal(),
        logs=[e for e in events if isinstance(e, LogEvent)],
        event_count=len(handle.sink.events),
    )


def _handle_or_404(orchestrator: BuildOrchestrator, build_id: str) -> BuildHandle:
    handle = orchestrator.registry.get(build_id)
    if handle is None:
        raise HTTPException(status_code=404, detail=f"Unknown build: {build_id}")
    return handle


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------
@router.post("", response_model=BuildStarted, status_code=202)
async def start_build(
    request: BuildRequest,
    force: bool = False,
    authorization: Optional[str] = Header(default=None),
    orchestrator: BuildOrchestrator = Depends(get_orchestrator),
):
    """Dispatch the smart-build workflow and start monitoring it."""
    try:
        handle = await orchestrator.start_build(
            request, token=token_from_header(authorization), force=force,
        )
    except PluginConflictError as e:
        raise HTTPException(status_code=409, detail={
            "message": e.message,
            "conflicts": [list(c.plugins) for c in e.conflicts],
        })
    except BuildRejected as e:
        logger.warning("Build rejected (%d): %s", e.status_code, e.message)
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return BuildStarted(
        build_id=handle.build_id,
        mode=handle.session.mode.value,
        simulated=handle.simulated,
        message="Build started in simulated mode" if handle.simulated else "Build submitted to GitHub Actions",
    )


@router.get("/{build_id}", response_model=BuildStatus)
async def get_build(
    build_id: str,
    since: int = 0,
    orchestrator: BuildOrchestrator = Depends(get_orchestrator),
):
    return _status_of(_handle_or_404(orchestrator, build_id), max(0, since))


@router.post("/{build_id}/visibility", response_model=BuildStatus)
async def set_visibility(
    build_id: str,
    update: VisibilityUpdate,
    orchestrator: BuildOrchestrator = Depends(get_orchestrator),
):
    handle = _handle_or_404(orchestrator, build_id)
    handle.monitor.set_background(update.background)
    return _status_of(handle)


@router.delete("/{build_id}", response_model=BuildStatus)
async def stop_build(
    build_id: str,
    orchestrator: BuildOrchestrator = Depends(get_orchestrator),
):
    handle = _handle_or_404(orchestrator, build_id)
    handle.monitor.stop("stopped")
    return _status_of(handle)
