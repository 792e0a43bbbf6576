"""
Workflow Run Model
==================
Pydantic models for the read-only GitHub Actions snapshots fetched each poll.

Fields (WorkflowRun):
    id           — opaque run identifier, stable for the run's lifetime
    run_number   — monotonically increasing, display-only
    name / path / event — used to recognise "our" dispatched run
    status       — queued / in_progress / completed (unknown values tolerated)
    conclusion   — success / failure / cancelled / ... (only when completed)
    created_at / updated_at — UTC timestamps for elapsed time and duration
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class WorkflowRun(BaseModel):
    id: int
    run_number: int = 0
    name: str = ""
    path: str = ""
    event: str = ""
    status: str = ""
    conclusion: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    html_url: str = ""

    @property
    def duration_seconds(self) -> float:
        """Wall time between creation and the last update (0 if unknown)."""
        if self.updated_at is None:
            return 0.0
        return max(0.0, (self.updated_at - self.created_at).total_seconds())


class JobStep(BaseModel):
    name: str = ""
    status: str = ""
    conclusion: Optional[str] = None
    number: int = 0


class WorkflowJob(BaseModel):
    id: int
    name: str = ""
    status: str = ""
    conclusion: Optional[str] = None
    steps: List[JobStep] = []
