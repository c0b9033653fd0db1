"""Statement Builder.

Produces the chronological ledger for one profile: a debit line per purchase,
a credit line per payment, sorted by date with a running balance.

Large profiles are processed in chunks with a yield to the event loop
between them, so a host serving other requests is not starved. Chunking only
affects when the loop gets control back; the output is the same for every
chunk size.
"""

import asyncio
import time
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Sequence

from core.observability.logging import get_logger, with_correlation
from core.observability.metrics import get_metrics
from models.records import Payment, Transaction
from models.summaries import Statement, StatementLine, StatementTotals, SupplierSummary
from reconciliation.aggregator import credited_amount, unique_payments
from reconciliation.allocation import CASH, RTGS, cd_for_entry
from reconciliation.amounts import ZERO, dsum, round2, round_whole
from reconciliation.dates import (
    DEFAULT_WINDOW_DAYS,
    DISPLAY_FORMAT,
    date_sort_key,
    format_display_date,
    parse_ledger_date,
)
from reconciliation.paid_tracker import PaidHistory, build_paid_history


logger = get_logger(__name__)

ProgressCallback = Callable[[int], None]

PURCHASE = "purchase"
PAYMENT = "payment"

SEPARATOR_ROW = "------|--------|--------|--------|--------"


def pick_chunk_size(total_items: int) -> int:
    """Chunk size by dataset size: 50 up to 1000 items, then 100, 150, 200."""
    if total_items > 10000:
        return 200
    if total_items > 5000:
        return 150
    if total_items > 1000:
        return 100
    return 50


def _num(value: Decimal) -> str:
    return f"{round2(value):.2f}"


def _whole(value: Decimal) -> str:
    return str(round_whole(value))


def _purchase_line(txn: Transaction) -> StatementLine:
    quantity = txn.net_weight or txn.weight
    particulars = (
        f"PRCH {txn.sr_no:<6}\n"
        f"{'Qty:' + _num(quantity):<10}|{'Rate:' + str(txn.rate):<10}|"
        f"{'Lab:' + str(txn.laboury_amount):<10}|{'Karta:' + str(txn.karta_amount):<10}|"
        f"{'Kanta:' + str(txn.kanta):<10}"
    )
    parsed = parse_ledger_date(txn.date)
    return StatementLine(
        kind=PURCHASE,
        ref=txn.sr_no,
        date=txn.date,
        date_value=parsed,
        display_date=parsed.strftime(DISPLAY_FORMAT) if parsed else "",
        particulars=particulars,
        debit=txn.original_net_amount,
    )


def _payment_line(
    payment: Payment,
    by_serial: Dict[str, Transaction],
    history: PaidHistory,
    window_days: int,
) -> StatementLine:
    reference = None
    for line in payment.paid_for or []:
        txn = by_serial.get(line.sr_no)
        reference = parse_ledger_date(txn.date) if txn is not None else None
        if reference is not None:
            break

    parsed = parse_ledger_date(payment.date, reference, window_days)
    payment_id = payment.identifier

    header = f"{'SR No':<6}|{'Original':<8}|{'Previous':<8}|{'Current':<8}|{'Balance':<8}"
    rows = []
    for line in payment.paid_for or []:
        txn = by_serial.get(line.sr_no)
        original = txn.original_net_amount if txn is not None else ZERO
        line_cd = cd_for_entry(payment, line)
        current = line.amount - line_cd
        previous = history.previous(line.sr_no, payment_id)
        balance = original - previous - current - line_cd
        rows.append(
            f"{line.sr_no:<6}|{_num(original):>8}|{_whole(previous):>8}|"
            f"{_whole(current):>8}|{_whole(balance):>8}"
        )

    kind = payment.receipt_type or payment.type
    particulars = "\n".join([f"PAY: {kind}", header, SEPARATOR_ROW] + rows)

    credit_paid = credited_amount(payment)
    credit_cd = payment.cd_amount or ZERO
    return StatementLine(
        kind=PAYMENT,
        ref=payment_id,
        date=payment.date,
        date_value=parsed,
        reference_date=reference,
        display_date=(
            parsed.strftime(DISPLAY_FORMAT) if parsed
            else format_display_date(payment.date, reference)
        ),
        particulars=particulars,
        credit_paid=credit_paid,
        credit_cd=credit_cd,
        credit=credit_paid + credit_cd,
    )


def _sort_key(line: StatementLine):
    reference = line.reference_date or line.date_value
    return (date_sort_key(line.date_value), date_sort_key(reference))


def calculate_totals(
    lines: Sequence[StatementLine],
    summary: SupplierSummary,
) -> StatementTotals:
    """Statement totals; outstanding never goes below zero."""
    payment_lines = [line for line in lines if line.kind == PAYMENT]
    total_paid = dsum(line.credit_paid for line in payment_lines)
    total_cd = dsum(line.credit_cd for line in payment_lines)

    payments = unique_payments(summary.payments)
    cash = dsum(credited_amount(p) for p in payments if p.kind == CASH)
    rtgs = dsum(credited_amount(p) for p in payments if p.kind == RTGS)

    outstanding = max(ZERO, round2(summary.total_original_amount - total_paid - total_cd))
    return StatementTotals(
        total_paid=total_paid,
        total_cash_paid=cash,
        total_rtgs_paid=rtgs,
        total_cd=total_cd,
        outstanding=outstanding,
    )


async def build_statement(
    summary: SupplierSummary,
    chunk_size: Optional[int] = None,
    on_progress: Optional[ProgressCallback] = None,
    window_days: int = DEFAULT_WINDOW_DAYS,
) -> Statement:
    """Build the ledger statement for one profile.

    Args:
        summary: Aggregated profile (its transactions should be allocated)
        chunk_size: Items per chunk; picked from the dataset size if None
        on_progress: Called with a percentage (0-100) as work proceeds
        window_days: Date window for resolving ambiguous payment dates

    Returns:
        Statement with lines in ledger order and totals
    """
    started = time.monotonic()

    def progress(pct: int):
        if on_progress is not None:
            on_progress(pct)

    transactions = list(summary.transactions)
    payments = unique_payments(summary.payments)
    total_items = len(transactions) + len(payments)
    size = chunk_size or pick_chunk_size(total_items)

    with with_correlation(profile_key=summary.key, stage="statement"):
        progress(10)
        await asyncio.sleep(0)

        by_serial = {t.sr_no: t for t in transactions if t.sr_no}
        history = build_paid_history(payments, set(by_serial))
        progress(30)
        await asyncio.sleep(0)

        lines: List[StatementLine] = []
        for start in range(0, len(transactions), size):
            lines.extend(_purchase_line(t) for t in transactions[start:start + size])
            progress(30 + (start * 20) // len(transactions))
            if start + size < len(transactions):
                await asyncio.sleep(0)
        progress(50)

        for start in range(0, len(payments), size):
            lines.extend(
                _payment_line(p, by_serial, history, window_days)
                for p in payments[start:start + size]
            )
            progress(50 + (start * 25) // len(payments))
            if start + size < len(payments):
                await asyncio.sleep(0)
        progress(75)
        await asyncio.sleep(0)

        lines.sort(key=_sort_key)

        balance = ZERO
        for line in lines:
            balance += line.debit - line.credit
            line.balance = balance

        totals = calculate_totals(lines, summary)
        progress(100)

        duration_ms = (time.monotonic() - started) * 1000
        logger.info(
            f"Statement built: {len(lines)} lines in chunks of {size}",
            extra_fields={"duration_ms": round(duration_ms, 2)},
        )
        get_metrics().record_statement_built(duration_ms)

    return Statement(profile_key=summary.key, lines=lines, totals=totals)


def build_statement_sync(
    summary: SupplierSummary,
    chunk_size: Optional[int] = None,
    on_progress: Optional[ProgressCallback] = None,
    window_days: int = DEFAULT_WINDOW_DAYS,
) -> Statement:
    """Run build_statement to completion outside an event loop."""
    return asyncio.run(build_statement(summary, chunk_size, on_progress, window_days))
