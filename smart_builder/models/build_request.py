"""
Build Request Model
===================
Pydantic models for a wizard build request and the repository_dispatch
payload derived from it.

Validation:
    source_branch and target_device must exist in the catalog; every plugin
    must be a known package name. Conflicts are NOT rejected here — the
    orchestrator decides whether a conflicting selection may proceed.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List

from pydantic import BaseModel, field_validator

from smart_builder.core.catalog import DEVICES, PLUGINS, SOURCE_BRANCHES


class BuildRequest(BaseModel):
    source_branch: str
    target_device: str
    plugins: List[str] = []
    custom_sources: List[str] = []
    description: str = "Triggered from the smart build web interface"

    @field_validator("source_branch")
    @classmethod
    def validate_source_branch(cls, v: str) -> str:
        if v not in SOURCE_BRANCHES:
            raise ValueError(f"Unknown source branch: {v}")
        return v

    @field_validator("target_device")
    @classmethod
    def validate_target_device(cls, v: str) -> str:
        if v not in DEVICES:
            raise ValueError(f"Unknown target device: {v}")
        return v

    @field_validator("plugins")
    @classmethod
    def validate_plugins(cls, v: List[str]) -> List[str]:
        unknown = [p for p in v if p not in PLUGINS]
        if unknown:
            raise ValueError(f"Unknown plugins: {', '.join(unknown)}")
        # Preserve order, drop duplicates
        return list(dict.fromkeys(v))

    def to_client_payload(self, build_id: str) -> Dict[str, Any]:
        """Build the client_payload sent with the web_build dispatch."""
        return {
            "source_branch": self.source_branch,
            "target_device": self.target_device,
            "plugins": ",".join(self.plugins),
            "custom_sources": self.custom_sources,
            "description": self.description,
            "trigger_method": "web_interface",
            "workflow_preference": "smart_build_only",
            "disable_universal_build": True,
            "build_id": build_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


class DispatchResult(BaseModel):
    accepted: bool
    status_code: int = 0
    message: str = ""
