"""
GET    /history        — build records, newest first
GET    /history/stats  — totals and success rate
DELETE /history        — clear the local history
"""
from typing import Dict, List

from fastapi import APIRouter, Depends

from smart_builder.api.dependencies import get_history
from smart_builder.models.build_record import BuildRecord
from smart_builder.services.history_store import HistoryStore

router = APIRouter(prefix="/history", tags=["History"])


@router.get("", response_model=List[BuildRecord])
async def list_history(history: HistoryStore = Depends(get_history)):
    return history.list()


@router.get("/stats")
async def history_stats(history: HistoryStore = Depends(get_history)) -> Dict[str, int]:
    return history.stats()


@router.delete("", status_code=204)
async def clear_history(history: HistoryStore = Depends(get_history)):
    history.clear()
