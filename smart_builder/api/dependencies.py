"""
API Dependencies
Shared objects handed to route handlers through FastAPI's Depends().
Tests replace them with app.dependency_overrides.
"""
from functools import lru_cache

from smart_builder.agents.orchestrator import BuildOrchestrator
from smart_builder.services.history_store import HistoryStore


@lru_cache(maxsize=1)
def get_orchestrator() -> BuildOrchestrator:
    return BuildOrchestrator()


def get_history() -> HistoryStore:
    return get_orchestrator().history
