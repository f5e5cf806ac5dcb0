"""
Telemetry Routes - recent batch metrics and aggregate stats.
"""

from fastapi import APIRouter, Depends, Query

from workers.extraction.telemetry import TelemetryStore, get_telemetry_store, metrics_to_dict

router = APIRouter(tags=["Telemetry"])


@router.get("/telemetry")
def get_telemetry(
    limit: int = Query(20, ge=0, le=100),
    store: TelemetryStore = Depends(get_telemetry_store),
):
    """Aggregate stats plus the most recent batch metrics."""
    return {
        "stats": store.get_stats(),
        "recent": [metrics_to_dict(m) for m in store.get_recent(limit)],
    }
