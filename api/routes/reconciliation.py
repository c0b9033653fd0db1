"""Reconciliation endpoints.

Stateless: every request carries the full transaction and payment sets and
the pipeline is recomputed from them.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, ValidationError

from core.observability.logging import get_logger
from models.records import Payment
from models.summaries import AnomalyReport, PlannedChange, ReconciliationResult, Statement
from profile_resolver.models import ResolutionStrategyName
from reconciliation.anomalies import count_categories, detect_anomalies, filter_entries, plan_fixes
from reconciliation.config import ReconciliationConfig, load_config
from reconciliation.engine import load_payments, recompute
from reconciliation.statement import build_statement


router = APIRouter()
logger = get_logger(__name__)

_config: Optional[ReconciliationConfig] = None


def get_config() -> ReconciliationConfig:
    """Config loaded once from the environment."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


class ReconcileRequest(BaseModel):
    """Raw records in the capture layer's shape (camelCase accepted)."""
    transactions: List[Dict[str, Any]] = Field(default_factory=list)
    payments: List[Dict[str, Any]] = Field(default_factory=list)
    strategy: Optional[ResolutionStrategyName] = Field(None, description="strict or fuzzy")


class AnomalyRequest(ReconcileRequest):
    search: str = Field("", description="Filter by supplier name or SR No")


class FixPlanRequest(AnomalyRequest):
    cap_allocations_to_payment_total: bool = False


class StatementRequest(ReconcileRequest):
    profile_key: str = Field(..., description="Key from the /reconcile summaries map")
    chunk_size: Optional[int] = Field(None, ge=1)


def _run(request: ReconcileRequest, config: ReconciliationConfig):
    """Recompute; ReconciliationError is turned into a 422 by the app handler."""
    try:
        payments = load_payments(request.payments)
        result = recompute(request.transactions, payments, request.strategy, config)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False))
    return result, payments


def _anomalies(
    result: ReconciliationResult,
    payments: List[Payment],
    config: ReconciliationConfig,
    search: str,
) -> AnomalyReport:
    report = detect_anomalies(result.summaries, payments, config)
    if search:
        entries = filter_entries(report.entries, search)
        report = AnomalyReport(entries=entries, counts=count_categories(entries))
    return report


@router.post("/reconcile", response_model=ReconciliationResult)
async def reconcile(
    request: ReconcileRequest,
    config: ReconciliationConfig = Depends(get_config),
) -> ReconciliationResult:
    """Resolve profiles, allocate payments and return every summary."""
    result, _ = _run(request, config)
    return result


@router.post("/anomalies", response_model=AnomalyReport)
async def anomalies(
    request: AnomalyRequest,
    config: ReconciliationConfig = Depends(get_config),
) -> AnomalyReport:
    """Entries with materially negative outstanding and their reasons."""
    result, payments = _run(request, config)
    return _anomalies(result, payments, config, request.search)


@router.post("/anomalies/plan", response_model=List[PlannedChange])
async def anomaly_fix_plan(
    request: FixPlanRequest,
    config: ReconciliationConfig = Depends(get_config),
) -> List[PlannedChange]:
    """Dry-run paid_for trims that would clear the reported excess."""
    result, payments = _run(request, config)
    report = _anomalies(result, payments, config, request.search)
    return plan_fixes(report.entries, payments, request.cap_allocations_to_payment_total)


@router.post("/statement", response_model=Statement)
async def statement(
    request: StatementRequest,
    config: ReconciliationConfig = Depends(get_config),
) -> Statement:
    """Chronological ledger for one profile."""
    result, _ = _run(request, config)

    summary = result.summaries.get(request.profile_key)
    if summary is None:
        raise HTTPException(status_code=404, detail="Profile not found")

    return await build_statement(
        summary,
        chunk_size=request.chunk_size or config.statement_chunk_size,
        window_days=config.date_window_days,
    )
