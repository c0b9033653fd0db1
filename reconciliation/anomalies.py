"""Anomaly Detector.

Looks at every transaction whose outstanding is materially negative and
explains it. Finding categories:

- overpaid: the excess is above the tolerance
- allocation: a linked payment allocates more than its amount
- rtgs: an RTGS payment whose rtgs_amount disagrees with its amount
- duplicate: a payment identifier used more than once within the profile
- stale: a paid_for line naming a serial that no longer exists

An entry whose only finding is "overpaid" and whose excess is covered by its
cash discount is the CD adjustment showing through, not an error, and is left
out of the report.

The module also holds a dry-run fix planner. It proposes paid_for rewrites
and never writes anything.
"""

import json
from datetime import date
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Sequence

from core.observability.logging import get_logger, with_correlation
from core.observability.metrics import get_metrics
from models.records import PaidFor, Payment
from models.summaries import (
    AnomalyEntry,
    AnomalyPayment,
    AnomalyReport,
    PlannedChange,
    SupplierSummary,
)
from profile_resolver.normalize import to_title_case
from reconciliation.aggregator import MILL_OVERVIEW_KEY
from reconciliation.amounts import ZERO, dsum, round2, round_whole
from reconciliation.config import DEFAULT_CONFIG, ReconciliationConfig
from reconciliation.dates import parse_ledger_date


logger = get_logger(__name__)

OVERPAID = "overpaid"
ALLOCATION = "allocation"
RTGS_MISMATCH = "rtgs"
DUPLICATE = "duplicate"
STALE = "stale"

CATEGORY_PREFIXES = {
    OVERPAID: "Overpaid by",
    ALLOCATION: "Allocation exceeds payment total",
    RTGS_MISMATCH: "RTGS amount",
    DUPLICATE: "Duplicate paymentId",
    STALE: "Stale paidFor reference",
}

STALE_REASON = "Stale paidFor reference (missing SR No)"


def _fmt(value: Decimal) -> str:
    return f"{round2(value):.2f}"


def _profile_summaries(summaries: Mapping[str, SupplierSummary]) -> List[SupplierSummary]:
    return [s for key, s in summaries.items() if key != MILL_OVERVIEW_KEY]


def _profile_payments(
    summary: SupplierSummary,
    payments: Optional[Sequence[Payment]],
) -> List[Payment]:
    """The profile's own payments plus any payment crediting one of its entries."""
    result = list(summary.payments)
    if payments is None:
        return result

    serials = {t.sr_no for t in summary.transactions}
    attached = {id(p) for p in result}
    for payment in payments:
        if id(payment) in attached:
            continue
        if any(line.sr_no in serials for line in payment.paid_for or []):
            result.append(payment)
            attached.add(id(payment))
    return result


def _latest(payments: Sequence[Payment]) -> Optional[Payment]:
    """Most recent payment by parsed date; undated payments count as oldest."""
    latest = None
    latest_date = None
    for payment in payments:
        parsed = parse_ledger_date(payment.date) or date.min
        if latest is None or parsed > latest_date:
            latest, latest_date = payment, parsed
    return latest


def _payment_detail(payment: Payment, sr_no: str) -> AnomalyPayment:
    line = payment.allocation_for(sr_no)
    return AnomalyPayment(
        id=payment.id,
        payment_id=payment.payment_id,
        date=payment.date,
        receipt_type=payment.receipt_type,
        amount=payment.amount,
        rtgs_amount=payment.rtgs_amount,
        cd_amount=payment.cd_amount,
        paid_for_amount_for_this_sr_no=line.amount if line else ZERO,
        total_allocated=payment.allocated_total,
    )


def reason_category(reason: str) -> Optional[str]:
    for category, prefix in CATEGORY_PREFIXES.items():
        if reason.startswith(prefix):
            return category
    return None


def count_categories(entries: Sequence[AnomalyEntry]) -> Dict[str, int]:
    """Entries per finding category (an entry counts once per category)."""
    counts = {category: 0 for category in CATEGORY_PREFIXES}
    for entry in entries:
        found = {reason_category(r) for r in entry.reasons}
        for category in found:
            if category is not None:
                counts[category] += 1
    return counts


def detect_anomalies(
    summaries: Mapping[str, SupplierSummary],
    payments: Optional[Sequence[Payment]] = None,
    config: ReconciliationConfig = DEFAULT_CONFIG,
) -> AnomalyReport:
    """Find and classify materially negative outstanding balances.

    Args:
        summaries: Aggregated profiles (a mill overview entry is ignored)
        payments: Every payment in the dataset; when given, a payment that
            credits an entry is considered even if it was attached elsewhere
        config: Tolerances

    Returns:
        AnomalyReport sorted by outstanding, most negative first
    """
    tolerance = config.anomaly_tolerance
    profiles = _profile_summaries(summaries)

    all_serials = {t.sr_no for s in profiles for t in s.transactions}
    entries: List[AnomalyEntry] = []

    for summary in profiles:
        profile_payments = _profile_payments(summary, payments)

        id_counts: Dict[str, int] = {}
        for payment in profile_payments:
            pid = payment.identifier
            if pid:
                id_counts[pid] = id_counts.get(pid, 0) + 1

        for txn in summary.transactions:
            net = txn.net_amount
            if net >= -config.noise_tolerance:
                continue

            with with_correlation(profile_key=summary.key, sr_no=txn.sr_no):
                linked = [p for p in profile_payments if p.allocation_for(txn.sr_no)]
                excess = abs(net)

                reasons: List[str] = []
                if excess > tolerance:
                    reasons.append(f"Overpaid by {_fmt(excess)}")

                has_other_issue = False
                for payment in linked:
                    pid = payment.identifier
                    if payment.allocated_total > payment.amount + tolerance:
                        reasons.append(f"Allocation exceeds payment total in {pid}")
                        has_other_issue = True
                    if (
                        payment.receipt_type.upper() == "RTGS"
                        and payment.rtgs_amount
                        and payment.amount
                        and abs(payment.rtgs_amount - payment.amount) > tolerance
                    ):
                        reasons.append(
                            f"RTGS amount ({_fmt(payment.rtgs_amount)}) ≠ "
                            f"amount ({_fmt(payment.amount)}) in {pid}"
                        )
                        has_other_issue = True
                    if pid and id_counts.get(pid, 0) > 1:
                        reasons.append(f"Duplicate paymentId {pid}")
                        has_other_issue = True
                    if any(line.sr_no not in all_serials for line in payment.paid_for or []):
                        reasons.append(STALE_REASON)
                        has_other_issue = True

                if not has_other_issue and excess <= txn.total_cd + tolerance:
                    logger.debug(f"{txn.sr_no}: overpayment covered by CD, not reported")
                    continue

                last = _latest(linked)
                entries.append(AnomalyEntry(
                    sr_no=txn.sr_no,
                    profile_key=summary.key,
                    name=to_title_case(summary.name),
                    father_name=to_title_case(summary.father_name),
                    original_net_amount=txn.original_net_amount,
                    total_paid=txn.total_paid,
                    total_cd=txn.total_cd,
                    outstanding=net,
                    excess=excess,
                    reasons=list(dict.fromkeys(reasons)),
                    last_payment_date=last.date if last else None,
                    last_payment_amount=last.effective_amount if last else None,
                    payments=[_payment_detail(p, txn.sr_no) for p in linked],
                ))

    entries.sort(key=lambda e: e.outstanding)
    counts = count_categories(entries)

    logger.info(
        f"Anomaly scan found {len(entries)} entries",
        extra_fields={"counts": counts},
    )
    get_metrics().record_anomaly_report(counts, len(entries))

    return AnomalyReport(entries=entries, counts=counts)


def filter_entries(entries: Sequence[AnomalyEntry], search: str = "") -> List[AnomalyEntry]:
    """Case-insensitive substring match on supplier name or serial."""
    term = (search or "").strip().lower()
    if not term:
        return list(entries)
    return [
        e for e in entries
        if term in e.name.lower() or term in (e.sr_no or "").lower()
    ]


def export_anomalies(entries: Sequence[AnomalyEntry]) -> List[dict]:
    """JSON-ready rows (Decimals as strings)."""
    return [entry.model_dump(mode="json") for entry in entries]


def export_anomalies_json(entries: Sequence[AnomalyEntry], indent: int = 2) -> str:
    return json.dumps(export_anomalies(entries), indent=indent, ensure_ascii=False)


# =============================================================================
# Fix planner (dry run)
# =============================================================================

def _payment_doc_id(payment: Payment) -> str:
    return payment.id or payment.identifier


def _scale_down(lines: List[PaidFor], target: Decimal) -> List[PaidFor]:
    """Scale whole-unit allocations down to target, fixing residue on the largest."""
    current = dsum(line.amount for line in lines)
    if current <= target or current == ZERO:
        return lines

    ratio = target / current
    scaled = [
        line.model_copy(update={"amount": max(ZERO, round_whole(line.amount * ratio))})
        for line in lines
    ]

    diff = round_whole(target) - dsum(line.amount for line in scaled)
    order = sorted(range(len(scaled)), key=lambda i: scaled[i].amount, reverse=True)
    for i in order:
        if diff == ZERO:
            break
        step = Decimal("1") if diff > ZERO else Decimal("-1")
        new_amount = scaled[i].amount + step
        if new_amount < ZERO:
            continue
        scaled[i] = scaled[i].model_copy(update={"amount": new_amount})
        diff -= step

    return [line for line in scaled if line.amount > ZERO]


def plan_fixes(
    entries: Sequence[AnomalyEntry],
    payments: Sequence[Payment],
    cap_allocations_to_payment_total: bool = False,
) -> List[PlannedChange]:
    """Propose paid_for trims that remove each entry's excess.

    For each entry the rounded excess is taken off its allocations, latest
    payment first. With cap_allocations_to_payment_total the trimmed
    allocations are also scaled down to the payment's effective amount.
    Several trims of the same payment build on each other and come back as
    one change.

    Args:
        entries: Anomaly rows (usually AnomalyReport.entries)
        payments: Current payment records, looked up by document id

    Returns:
        One PlannedChange per touched payment, in first-touched order
    """
    by_doc_id: Dict[str, Payment] = {}
    for payment in payments:
        by_doc_id.setdefault(_payment_doc_id(payment), payment)

    working: Dict[str, List[PaidFor]] = {}
    plans: Dict[str, PlannedChange] = {}

    def add_plan(doc_id, payment_id, before, after, notes):
        existing = plans.get(doc_id)
        if existing is None:
            plans[doc_id] = PlannedChange(
                payment_doc_id=doc_id,
                payment_id=payment_id,
                before_paid_for=before,
                after_paid_for=after,
                notes=notes,
            )
        else:
            existing.after_paid_for = after
            existing.notes.extend(notes)

    for entry in entries:
        remaining = round_whole(entry.excess)
        if remaining <= ZERO:
            continue

        latest_first = sorted(
            entry.payments,
            key=lambda p: parse_ledger_date(p.date) or date.min,
            reverse=True,
        )

        for detail in latest_first:
            if remaining <= ZERO:
                break

            doc_id = detail.id or detail.payment_id or ""
            payment = by_doc_id.get(doc_id)
            if payment is None:
                add_plan(doc_id, detail.payment_id, [], [], ["Skip: payment doc not found"])
                continue

            original = [line.model_copy() for line in payment.paid_for or []]
            current = working.get(doc_id, original)

            target = next((i for i, line in enumerate(current) if line.sr_no == entry.sr_no), None)
            if target is None:
                add_plan(doc_id, payment.payment_id, original, current,
                         [f"Skip: no paidFor for {entry.sr_no}"])
                continue

            allocated = current[target].amount
            if allocated <= ZERO:
                add_plan(doc_id, payment.payment_id, original, current,
                         [f"Skip: allocation already zero for {entry.sr_no}"])
                continue

            reduction = min(allocated, remaining)
            after = [
                line.model_copy(update={"amount": max(ZERO, round_whole(line.amount - reduction))})
                if i == target else line
                for i, line in enumerate(current)
            ]
            after = [line for line in after if line.amount > ZERO]
            notes = [f"Trim {entry.sr_no} by {reduction}"]

            if cap_allocations_to_payment_total:
                used = payment.effective_amount
                total_after = dsum(line.amount for line in after)
                if total_after > used:
                    notes.append(
                        f"Cap allocation: -{total_after - used} (total {total_after} -> {used})"
                    )
                    after = _scale_down(after, used)

            working[doc_id] = after
            add_plan(doc_id, payment.payment_id, original, after, notes)
            remaining -= reduction

    logger.info(f"Planned {len(plans)} payment changes (dry run)")
    return list(plans.values())
