"""Health, probe and metrics endpoints."""

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ValidationError

from api.routes.reconciliation import get_config
from core.observability.metrics import get_metrics
from reconciliation.config import ReconciliationConfig, load_config


API_VERSION = "1.0.0"

router = APIRouter()


class HealthResponse(BaseModel):
    """Service status plus what the engine has done since startup."""
    status: str
    timestamp: str
    version: str
    default_strategy: str
    runs_completed: int
    runs_failed: int
    last_run_at: Optional[str] = None


@router.get("/health", response_model=HealthResponse)
async def health_check(
    config: ReconciliationConfig = Depends(get_config),
) -> HealthResponse:
    runs = get_metrics().get_summary()["runs"]
    # Degraded once failures outnumber successful runs
    degraded = runs["failed"] > runs["completed"]
    return HealthResponse(
        status="degraded" if degraded else "healthy",
        timestamp=datetime.utcnow().isoformat(),
        version=API_VERSION,
        default_strategy=config.resolution_strategy,
        runs_completed=runs["completed"],
        runs_failed=runs["failed"],
        last_run_at=runs["last_completed_at"],
    )


@router.get("/ready")
async def readiness_check() -> Dict[str, str]:
    """Ready when the RECON_* environment parses into a valid config."""
    try:
        load_config()
    except ValidationError as e:
        raise HTTPException(status_code=503, detail=f"Invalid configuration: {e.error_count()} error(s)")
    return {"status": "ready"}


@router.get("/live")
async def liveness_check() -> Dict[str, str]:
    return {"status": "alive"}


@router.get("/metrics")
async def metrics_summary() -> Dict[str, Any]:
    """Recompute runs, stage timings and anomaly counts since startup."""
    return get_metrics().get_summary()
