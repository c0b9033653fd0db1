"""Allocation Engine.

Works out, for every transaction, which payments settle it and by how much.
A payment's ``paid_for`` lines are the only link used here; identity-based
linkage is the resolver's business and never moves money onto an entry.

Per (transaction, payment) pair:

- paid  = the paid_for line amount for the transaction's serial
- CD    = the line's own cd_amount when recorded, otherwise the payment's
          cd_amount split in proportion to the line amounts, rounded to 2 dp

total_paid and total_cd are the rounded sums; net_amount is
original_net_amount - total_paid - total_cd with noise in (-0.01, 0) read as 0.
"""

from decimal import Decimal
from typing import Dict, List, Sequence, Tuple

from core.observability.logging import get_logger
from models.records import PaidFor, Payment, Transaction
from models.summaries import PaymentAllocation, PaymentContribution
from reconciliation.amounts import NOISE_TOLERANCE, ZERO, round2, settle_outstanding


logger = get_logger(__name__)

CASH = "cash"
RTGS = "rtgs"


def cd_for_entry(payment: Payment, line: PaidFor) -> Decimal:
    """Cash discount one paid_for line carries.

    An explicit per-line cd_amount always wins, even when it is 0. Otherwise
    the payment-level CD is shared out pro rata over the allocated total.
    """
    if line.cd_amount is not None:
        return line.cd_amount

    if not payment.cd_amount or not payment.paid_for:
        return ZERO

    allocated = payment.allocated_total
    if allocated <= ZERO:
        return ZERO

    return round2(payment.cd_amount * line.amount / allocated)


def index_payments_by_serial(payments: Sequence[Payment]) -> Dict[str, List[Payment]]:
    """Map each referenced serial to the payments that reference it.

    A payment appears once per serial even if it carries two lines for it;
    order follows the input.
    """
    index: Dict[str, List[Payment]] = {}
    for payment in payments:
        seen = set()
        for line in payment.paid_for or []:
            if not line.sr_no or line.sr_no in seen:
                continue
            seen.add(line.sr_no)
            index.setdefault(line.sr_no, []).append(payment)
    return index


def allocate_transaction(
    transaction: Transaction,
    payments: Sequence[Payment],
    tolerance: Decimal = NOISE_TOLERANCE,
) -> Tuple[Transaction, PaymentAllocation]:
    """Apply the payments referencing one transaction.

    Args:
        transaction: The raw entry (not modified)
        payments: Payments whose paid_for names this entry's serial
        tolerance: Negative outstanding inside (-tolerance, 0) becomes 0

    Returns:
        (enriched copy of the transaction, its allocation trail)
    """
    contributions: List[PaymentContribution] = []
    paid = ZERO
    cd = ZERO
    cash_paid = ZERO
    rtgs_paid = ZERO

    for payment in payments:
        line = payment.allocation_for(transaction.sr_no)
        if line is None:
            continue

        line_cd = cd_for_entry(payment, line)
        paid += line.amount
        cd += line_cd

        # The breakdown uses the allocated amount, never rtgs_amount
        kind = payment.kind
        if kind == CASH:
            cash_paid += line.amount
        elif kind == RTGS:
            rtgs_paid += line.amount

        contributions.append(PaymentContribution(
            payment_id=payment.identifier,
            amount=line.amount,
            cd_amount=line_cd,
            receipt_type=payment.receipt_type or payment.type,
            date=payment.date,
        ))

    total_paid = round2(paid)
    total_cd = round2(cd)
    net_amount = settle_outstanding(
        transaction.original_net_amount - total_paid - total_cd, tolerance
    )

    enriched = transaction.model_copy(update={
        "total_paid": total_paid,
        "total_cd": total_cd,
        "total_cash_paid": round2(cash_paid),
        "total_rtgs_paid": round2(rtgs_paid),
        "net_amount": net_amount,
    })

    allocation = PaymentAllocation(
        sr_no=transaction.sr_no,
        contributions=contributions,
        total_paid=total_paid,
        total_cd=total_cd,
    )
    return enriched, allocation


def allocate(
    transactions: Sequence[Transaction],
    payments: Sequence[Payment],
    tolerance: Decimal = NOISE_TOLERANCE,
) -> Tuple[List[Transaction], Dict[str, PaymentAllocation]]:
    """Allocate every payment across every transaction it references.

    Payments are looked up globally, not per profile, so an entry is credited
    even when the payment itself was attached to a different profile.

    Returns:
        (enriched transactions in input order, allocation trails by serial)
    """
    by_serial = index_payments_by_serial(payments)

    enriched: List[Transaction] = []
    allocations: Dict[str, PaymentAllocation] = {}
    for txn in transactions:
        new_txn, allocation = allocate_transaction(
            txn, by_serial.get(txn.sr_no, []), tolerance
        )
        enriched.append(new_txn)
        allocations[txn.sr_no] = allocation

        if new_txn.net_amount < ZERO:
            logger.debug(
                f"{txn.sr_no} is overpaid: net {new_txn.net_amount}",
                extra_fields={"sr_no": txn.sr_no},
            )

    return enriched, allocations
