"""Reconciliation engine for supplier ledgers.

Exposes high-level functions:
- recompute(transactions, payments, strategy) -> ReconciliationResult
- save_result(result, directory) -> ReconciliationRunRefs

recompute is a pure function of its inputs: every call resolves, allocates and
aggregates from scratch and nothing is cached between calls.
"""

import time
import uuid
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

from pydantic import ValidationError

from core.observability.logging import get_logger, with_correlation
from core.observability.metrics import get_metrics
from models.records import Payment, Transaction
from models.refs import ReconciliationRunRefs
from models.summaries import (
    AnomalyReport,
    PaymentAllocation,
    ReconciliationResult,
    Statement,
    SupplierSummary,
)
from profile_resolver.models import (
    DEFAULT_MATCHING_CONFIG,
    MatchingConfig,
    ResolutionStrategyName,
)
from profile_resolver.resolver import (
    ProfileResolutionStrategy,
    ProfileResolver,
    get_strategy,
    grouping_stats,
)
from reconciliation.aggregator import MILL_OVERVIEW_KEY, aggregate_profile, build_mill_overview
from reconciliation.allocation import allocate_transaction, index_payments_by_serial
from reconciliation.anomalies import export_anomalies
from reconciliation.config import DEFAULT_CONFIG, ReconciliationConfig
from reconciliation.errors import ReconciliationError
from storage.artifacts import (
    ANOMALIES_FILE,
    RESULT_FILE,
    put_json,
    run_directory,
    statement_path,
)


logger = get_logger(__name__)

TransactionInput = Union[Transaction, dict]
PaymentInput = Union[Payment, dict]
StrategyInput = Union[str, ResolutionStrategyName, ProfileResolutionStrategy, None]


# =============================================================================
# Input Loading
# =============================================================================

def load_transactions(raw: Iterable[TransactionInput]) -> List[Transaction]:
    """Validate raw transaction dicts (camelCase or snake_case)."""
    return [t if isinstance(t, Transaction) else Transaction.model_validate(t) for t in raw]


def load_payments(raw: Iterable[PaymentInput]) -> List[Payment]:
    """Validate raw payment dicts (camelCase or snake_case)."""
    return [p if isinstance(p, Payment) else Payment.model_validate(p) for p in raw]


def _resolve_strategy(
    strategy: StrategyInput,
    config: ReconciliationConfig,
    matching_config: MatchingConfig,
) -> ProfileResolutionStrategy:
    if strategy is None:
        return get_strategy(config.resolution_strategy, matching_config)
    if isinstance(strategy, (str, ResolutionStrategyName)):
        return get_strategy(strategy, matching_config)
    return strategy


# =============================================================================
# Main Reconciliation Engine
# =============================================================================

def recompute(
    transactions: Sequence[TransactionInput],
    payments: Sequence[PaymentInput],
    strategy: StrategyInput = None,
    config: ReconciliationConfig = DEFAULT_CONFIG,
    matching_config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
    run_id: Optional[str] = None,
) -> ReconciliationResult:
    """Resolve profiles, allocate payments and aggregate summaries.

    Args:
        transactions: All purchase entries
        payments: All payments
        strategy: "strict", "fuzzy" or a strategy object; defaults to
            config.resolution_strategy
        config: Tolerances and thresholds
        matching_config: Fuzzy thresholds (fuzzy strategy only)
        run_id: Correlation id for logs; generated if omitted

    Returns:
        ReconciliationResult whose summaries map also holds the mill overview

    Raises:
        MissingIdentifierError: If a record has no identifying key
    """
    run_id = run_id or uuid.uuid4().hex[:12]
    resolution_strategy = _resolve_strategy(strategy, config, matching_config)
    strategy_name = resolution_strategy.name.value
    metrics = get_metrics()

    with with_correlation(run_id=run_id, strategy=strategy_name):
        started = time.monotonic()
        metrics.record_run_started(strategy_name)

        try:
            txns = load_transactions(transactions)
            pays = load_payments(payments)

            # =================================================================
            # Resolve
            # =================================================================
            stage_start = time.monotonic()
            with with_correlation(stage="resolve"):
                resolution = ProfileResolver(resolution_strategy).resolve(txns, pays)
            metrics.record_processing_time("resolve", (time.monotonic() - stage_start) * 1000)

            # =================================================================
            # Allocate
            # =================================================================
            stage_start = time.monotonic()
            by_serial = index_payments_by_serial(pays)
            allocations: Dict[str, PaymentAllocation] = {}
            enriched: Dict[str, List[Transaction]] = {}
            with with_correlation(stage="allocate"):
                for key, profile in resolution.profiles.items():
                    enriched[key] = []
                    for txn in profile.transactions:
                        new_txn, allocation = allocate_transaction(
                            txn, by_serial.get(txn.sr_no, []), config.noise_tolerance
                        )
                        enriched[key].append(new_txn)
                        allocations[txn.sr_no] = allocation
            metrics.record_processing_time("allocate", (time.monotonic() - stage_start) * 1000)

            # =================================================================
            # Aggregate
            # =================================================================
            stage_start = time.monotonic()
            include_rate_range = resolution_strategy.name == ResolutionStrategyName.STRICT
            summaries: Dict[str, SupplierSummary] = {}
            with with_correlation(stage="aggregate"):
                for key, profile in resolution.profiles.items():
                    summaries[key] = aggregate_profile(
                        profile, enriched[key], include_rate_range, config
                    )
                summaries[MILL_OVERVIEW_KEY] = build_mill_overview(summaries, config)
            metrics.record_processing_time("aggregate", (time.monotonic() - stage_start) * 1000)

        except (ReconciliationError, ValidationError) as e:
            metrics.record_run_failed(strategy_name, str(e))
            logger.error(f"Recompute failed: {e}")
            raise

        duration_ms = (time.monotonic() - started) * 1000
        metrics.record_run_completed(
            strategy_name,
            duration_ms,
            transactions=len(txns),
            payments=len(pays),
            profiles=len(resolution.profiles),
            unlinked_payments=len(resolution.unlinked_payments),
        )

        mill = summaries[MILL_OVERVIEW_KEY]
        logger.info(
            f"Recompute finished: {len(resolution.profiles)} profiles, "
            f"outstanding {mill.total_outstanding}",
            extra_fields={"duration_ms": round(duration_ms, 2)},
        )

    return ReconciliationResult(
        run_id=run_id,
        strategy=strategy_name,
        summaries=summaries,
        allocations=allocations,
        unlinked_payments=resolution.unlinked_payments,
        grouping=grouping_stats(resolution),
    )


# =============================================================================
# Persistence
# =============================================================================

def save_result(
    result: ReconciliationResult,
    directory: Path,
    anomalies: Optional[AnomalyReport] = None,
) -> ReconciliationRunRefs:
    """Write the result (and optionally its anomaly export) as JSON artifacts.

    Files land in ``directory/<run_id>/``.
    """
    run_dir = run_directory(directory, result.run_id)
    refs = ReconciliationRunRefs(
        run_id=result.run_id,
        strategy=result.strategy,
        summaries_ref=put_json(result, run_dir / RESULT_FILE),
        metadata={
            "profiles": len(result.profiles),
            "unlinked_payments": len(result.unlinked_payments),
        },
    )
    if anomalies is not None:
        refs.anomalies_ref = put_json(export_anomalies(anomalies.entries), run_dir / ANOMALIES_FILE)
        refs.metadata["anomalies"] = len(anomalies.entries)

    logger.info(f"Saved run {result.run_id} to {run_dir}")
    return refs


def save_statement(
    statement: Statement,
    directory: Path,
    refs: ReconciliationRunRefs,
) -> ReconciliationRunRefs:
    """Add one profile's statement to a saved run."""
    path = statement_path(directory, refs.run_id, statement.profile_key)
    refs.statement_refs[statement.profile_key] = put_json(statement, path)
    return refs
