"""Administrative routes for Knowledge Hub."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from knowledge_hub.api.dependencies import get_current_user, get_database
from knowledge_hub.core.metrics import metrics_response
from knowledge_hub.db.sqlite import SQLiteDatabase

router = APIRouter()


@router.get("/metrics", summary="Prometheus metrics")
async def get_metrics():
    return metrics_response()


@router.get("/stats", summary="Caller's file counts by processing status")
async def processing_stats(
    user_id: str = Depends(get_current_user),
    db: SQLiteDatabase = Depends(get_database),
) -> dict[str, int]:
    counts = {"pending": 0, "processing": 0, "completed": 0, "failed": 0}
    rows = db.query(
        "SELECT processing_status, COUNT(*) AS count FROM knowledge_files WHERE user_id = ? GROUP BY processing_status",
        [user_id],
    )
    for row in rows:
        counts[row["processing_status"]] = int(row["count"])
    return counts


__all__ = ["router"]
