"""Chronological Paid-Tracker.

For every (serial, payment) pair, how much had already been paid towards the
serial before that payment landed. One forward pass over the payments in date
order replaces a nested scan per pair.

The tracker sorts by itself, so the input order of payments never changes the
result except for payments sharing a date, which keep their input order.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import AbstractSet, Dict, List, Sequence, Tuple

from models.records import Payment
from reconciliation.allocation import cd_for_entry
from reconciliation.amounts import ZERO
from reconciliation.dates import date_sort_key, parse_ledger_date


@dataclass
class PaidHistory:
    """Output of a tracker pass."""

    # (sr_no, payment identifier) -> cumulative paid before that payment
    previously_paid: Dict[Tuple[str, str], Decimal] = field(default_factory=dict)

    # sr_no -> cumulative paid after the last payment
    cumulative_paid: Dict[str, Decimal] = field(default_factory=dict)

    # Payment identifiers in the order they were applied
    order: List[str] = field(default_factory=list)

    def previous(self, sr_no: str, payment_id: str) -> Decimal:
        return self.previously_paid.get((sr_no, payment_id), ZERO)


def chronological_payments(payments: Sequence[Payment]) -> List[Payment]:
    """Stable sort by parsed date, unparseable dates last."""
    return sorted(payments, key=lambda p: date_sort_key(parse_ledger_date(p.date)))


def build_paid_history(
    payments: Sequence[Payment],
    known_serials: AbstractSet[str],
) -> PaidHistory:
    """Walk the payments in date order accumulating CD-adjusted contributions.

    Args:
        payments: Payments for one profile (already deduplicated if needed)
        known_serials: Serials of the profile's transactions; lines naming any
            other serial are skipped

    Returns:
        PaidHistory with the "previously paid" value of every pair
    """
    history = PaidHistory()

    for payment in chronological_payments(payments):
        if not payment.paid_for:
            continue

        payment_id = payment.identifier
        history.order.append(payment_id)

        for line in payment.paid_for:
            if not line.sr_no or line.sr_no not in known_serials:
                continue

            current = history.cumulative_paid.get(line.sr_no, ZERO)
            history.previously_paid[(line.sr_no, payment_id)] = current

            contribution = line.amount - cd_for_entry(payment, line)
            history.cumulative_paid[line.sr_no] = current + contribution

    return history
