"""
Build Record Model
Pydantic model for one entry in the local build history.
"""
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BuildRecord(BaseModel):
    id: str
    status: str = "running"         # running / success / failed / cancelled / unknown / stopped
    source_branch: str = ""
    target_device: str = ""
    plugins: List[str] = []
    run_id: Optional[int] = None
    run_number: Optional[int] = None
    url: str = ""
    simulated: bool = False
    timestamp: datetime = Field(default_factory=_utcnow)
    updated_at: Optional[datetime] = None
