"""Profile Aggregator.

Rolls allocated transactions up into one SupplierSummary per profile, plus a
mill-wide overview across every profile. All figures are plain sums of the
per-transaction values; in particular total_outstanding is the sum of
net_amount and is never re-derived from the other totals.
"""

from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from models.records import Payment, Transaction
from models.summaries import MILL_OVERVIEW_KEY, SupplierSummary
from profile_resolver.models import ResolvedProfile
from profile_resolver.normalize import to_title_case
from reconciliation.allocation import CASH, RTGS
from reconciliation.amounts import ZERO, dsum, round2, safe_divide
from reconciliation.config import DEFAULT_CONFIG, ReconciliationConfig


MILL_OVERVIEW_NAME = "Mill (Total Overview)"


def signed_brokerage(txn: Transaction) -> Decimal:
    """Brokerage with its sign applied.

    Falls back to brokerage_rate x net_weight when no amount was recorded.
    """
    amount = txn.brokerage_amount or ZERO
    if not amount and txn.brokerage_rate and txn.net_weight:
        amount = round2(txn.brokerage_rate * txn.net_weight)
    return amount if txn.brokerage_add_subtract else -amount


def unique_payments(payments: Iterable[Payment]) -> List[Payment]:
    """Drop repeated payments (same identifier, date and amount), keep first."""
    seen = set()
    unique = []
    for payment in payments:
        key = payment.dedup_key
        if key in seen:
            continue
        seen.add(key)
        unique.append(payment)
    return unique


def credited_amount(payment: Payment) -> Decimal:
    """What a payment credits: its allocations, or its amount if it has none."""
    if payment.has_allocations:
        return payment.allocated_total
    return payment.amount


def _summarize(
    key: str,
    transactions: Sequence[Transaction],
    payments: Sequence[Payment],
    include_rate_range: bool,
    settled_threshold: Decimal,
    **identity,
) -> SupplierSummary:
    txns = list(transactions)
    linked = list(payments)
    payments = unique_payments(linked)

    total_amount = dsum(t.amount for t in txns)
    total_original = dsum(t.original_net_amount for t in txns)
    total_final_weight = dsum(t.weight for t in txns)
    total_net_weight = dsum(t.net_weight for t in txns)

    rated = [t for t in txns if t.rate > ZERO]
    rates = [t.rate for t in rated]

    variety_counts: Dict[str, int] = {}
    for txn in txns:
        variety = to_title_case(txn.variety)
        variety_counts[variety] = variety_counts.get(variety, 0) + 1

    outstanding = [t for t in txns if t.net_amount >= settled_threshold]

    return SupplierSummary(
        key=key,
        transactions=txns,
        payments=linked,

        total_gross_weight=dsum(t.gross_weight for t in txns),
        total_teir_weight=dsum(t.teir_weight for t in txns),
        total_final_weight=total_final_weight,
        total_karta_weight=dsum(t.karta_weight for t in txns),
        total_net_weight=total_net_weight,

        total_amount=total_amount,
        total_original_amount=total_original,
        total_karta_amount=dsum(t.karta_amount for t in txns),
        total_laboury_amount=dsum(t.laboury_amount for t in txns),
        total_kanta=dsum(t.kanta for t in txns),
        total_other_charges=dsum(t.other_charges for t in txns),
        total_brokerage=dsum(signed_brokerage(t) for t in txns),

        total_paid=dsum(t.total_paid for t in txns),
        total_paid_by_payments=dsum(p.amount for p in payments),
        total_cash_paid=dsum(credited_amount(p) for p in payments if p.kind == CASH),
        total_rtgs_paid=dsum(credited_amount(p) for p in payments if p.kind == RTGS),
        total_cd=dsum(t.total_cd for t in txns),
        total_outstanding=dsum(t.net_amount for t in txns),

        average_rate=safe_divide(total_amount, total_final_weight),
        weighted_average_rate=safe_divide(
            dsum(t.rate * t.net_weight for t in txns), total_net_weight
        ),
        average_original_price=safe_divide(total_original, total_net_weight),
        average_karta_percentage=(
            dsum(t.karta_percentage for t in rated) / len(rated) if rated else ZERO
        ),
        average_laboury_rate=(
            dsum(t.laboury_rate for t in rated) / len(rated) if rated else ZERO
        ),
        min_rate=min(rates) if include_rate_range and rates else None,
        max_rate=max(rates) if include_rate_range and rates else None,

        total_transactions=len(txns),
        outstanding_transactions=len(outstanding),
        outstanding_entry_ids=[t.sr_no for t in outstanding],
        transactions_by_variety=variety_counts,
        **identity,
    )


def aggregate_profile(
    profile: ResolvedProfile,
    transactions: Optional[Sequence[Transaction]] = None,
    include_rate_range: bool = False,
    config: ReconciliationConfig = DEFAULT_CONFIG,
) -> SupplierSummary:
    """Summarize one resolved profile.

    Args:
        profile: Output of the resolver
        transactions: Allocated copies of profile.transactions (defaults to
            the profile's own records)
        include_rate_range: Fill min_rate / max_rate (strict view only)
        config: Settled threshold for the outstanding counts
    """
    return _summarize(
        profile.key,
        profile.transactions if transactions is None else transactions,
        profile.payments,
        include_rate_range,
        config.settled_threshold,
        name=profile.identity.name,
        father_name=profile.identity.father_name,
        address=profile.identity.address,
        contacts=list(profile.contacts),
        is_outsider=profile.is_outsider,
    )


def build_mill_overview(
    summaries: Mapping[str, SupplierSummary],
    config: ReconciliationConfig = DEFAULT_CONFIG,
) -> SupplierSummary:
    """One summary across every profile (any existing overview is skipped)."""
    profiles = [s for key, s in summaries.items() if key != MILL_OVERVIEW_KEY]
    return _summarize(
        MILL_OVERVIEW_KEY,
        [t for s in profiles for t in s.transactions],
        [p for s in profiles for p in s.payments],
        True,
        config.settled_threshold,
        name=MILL_OVERVIEW_NAME,
    )
