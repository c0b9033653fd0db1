"""Reconciled output models.

These are produced by the reconciliation pipeline and handed to reporting
code. They are plain Pydantic models so every one of them can be exported
with ``model_dump(mode="json")`` (Decimals serialise as strings).
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from models.records import PaidFor, Payment, Transaction


class SummaryBase(BaseModel):
    """Base model for reconciled outputs."""
    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# Allocation
# =============================================================================

class PaymentContribution(SummaryBase):
    """One payment's contribution to one transaction."""
    payment_id: str
    amount: Decimal = Decimal("0")
    cd_amount: Decimal = Decimal("0")
    receipt_type: str = ""
    date: Optional[str] = None


class PaymentAllocation(SummaryBase):
    """Audit trail behind a transaction's total_paid / total_cd."""
    sr_no: str
    contributions: List[PaymentContribution] = Field(default_factory=list)
    total_paid: Decimal = Decimal("0")
    total_cd: Decimal = Decimal("0")


# =============================================================================
# Supplier Summary
# =============================================================================

class SupplierSummary(SummaryBase):
    """Aggregated view of one resolved supplier profile.

    Attributes:
        key: Profile key from the resolution strategy
        total_paid: Sum of transaction.total_paid (allocation view)
        payments: Linked payments as given, repeats included (totals use
            the deduplicated set)
        total_paid_by_payments: Sum of payment.amount over the profile's payments
        total_outstanding: Sum of transaction.net_amount (authoritative)
        average_rate: total_amount / total_final_weight
        weighted_average_rate: sum(rate * net_weight) / total_net_weight
        outstanding_transactions: Entries with net_amount >= settled threshold
    """
    key: str
    name: str = ""
    father_name: str = ""
    address: str = ""
    contacts: List[str] = Field(default_factory=list)
    is_outsider: bool = False

    transactions: List[Transaction] = Field(default_factory=list)
    payments: List[Payment] = Field(default_factory=list)

    # Weights
    total_gross_weight: Decimal = Decimal("0")
    total_teir_weight: Decimal = Decimal("0")
    total_final_weight: Decimal = Decimal("0")
    total_karta_weight: Decimal = Decimal("0")
    total_net_weight: Decimal = Decimal("0")

    # Amounts
    total_amount: Decimal = Decimal("0")
    total_original_amount: Decimal = Decimal("0")
    total_karta_amount: Decimal = Decimal("0")
    total_laboury_amount: Decimal = Decimal("0")
    total_kanta: Decimal = Decimal("0")
    total_other_charges: Decimal = Decimal("0")
    total_brokerage: Decimal = Decimal("0")

    # Payments
    total_paid: Decimal = Decimal("0")
    total_paid_by_payments: Decimal = Decimal("0")
    total_cash_paid: Decimal = Decimal("0")
    total_rtgs_paid: Decimal = Decimal("0")
    total_cd: Decimal = Decimal("0")
    total_outstanding: Decimal = Decimal("0")

    # Rates
    average_rate: Decimal = Decimal("0")
    weighted_average_rate: Decimal = Decimal("0")
    average_original_price: Decimal = Decimal("0")
    average_karta_percentage: Decimal = Decimal("0")
    average_laboury_rate: Decimal = Decimal("0")
    min_rate: Optional[Decimal] = None
    max_rate: Optional[Decimal] = None

    # Counts
    total_transactions: int = 0
    outstanding_transactions: int = 0
    outstanding_entry_ids: List[str] = Field(default_factory=list)
    transactions_by_variety: Dict[str, int] = Field(default_factory=dict)


class GroupingStats(SummaryBase):
    """How much merging a resolution strategy did."""
    total_groups: int = 0
    merged_groups: int = 0
    single_groups: int = 0
    total_grouped_records: int = 0
    grouping_efficiency: float = 0.0


# =============================================================================
# Anomalies
# =============================================================================

class AnomalyPayment(SummaryBase):
    """Payment detail carried in the anomaly export."""
    id: Optional[str] = None
    payment_id: Optional[str] = None
    date: Optional[str] = None
    receipt_type: str = ""
    amount: Decimal = Decimal("0")
    rtgs_amount: Optional[Decimal] = None
    cd_amount: Optional[Decimal] = None
    paid_for_amount_for_this_sr_no: Decimal = Decimal("0")
    total_allocated: Decimal = Decimal("0")


class AnomalyEntry(SummaryBase):
    """A transaction with materially negative outstanding and why."""
    sr_no: str
    profile_key: str = ""
    name: str = ""
    father_name: str = ""
    original_net_amount: Decimal = Decimal("0")
    total_paid: Decimal = Decimal("0")
    total_cd: Decimal = Decimal("0")
    outstanding: Decimal = Decimal("0")
    excess: Decimal = Decimal("0")
    reasons: List[str] = Field(default_factory=list)
    last_payment_date: Optional[str] = None
    last_payment_amount: Optional[Decimal] = None
    payments: List[AnomalyPayment] = Field(default_factory=list)


class AnomalyReport(SummaryBase):
    """All anomaly rows plus per-category counts."""
    entries: List[AnomalyEntry] = Field(default_factory=list)
    counts: Dict[str, int] = Field(default_factory=dict)


class PlannedChange(SummaryBase):
    """A proposed paid_for rewrite for one payment (dry run only)."""
    payment_doc_id: str
    payment_id: Optional[str] = None
    before_paid_for: List[PaidFor] = Field(default_factory=list)
    after_paid_for: List[PaidFor] = Field(default_factory=list)
    notes: List[str] = Field(default_factory=list)


# =============================================================================
# Statement
# =============================================================================

class StatementLine(SummaryBase):
    """One ledger line: a purchase (debit) or a payment (credit)."""
    kind: str
    ref: str = ""
    date: Optional[str] = None
    date_value: Optional[dt.date] = None
    reference_date: Optional[dt.date] = None
    display_date: str = ""
    particulars: str = ""
    debit: Decimal = Decimal("0")
    credit_paid: Decimal = Decimal("0")
    credit_cd: Decimal = Decimal("0")
    credit: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")


class StatementTotals(SummaryBase):
    total_paid: Decimal = Decimal("0")
    total_cash_paid: Decimal = Decimal("0")
    total_rtgs_paid: Decimal = Decimal("0")
    total_cd: Decimal = Decimal("0")
    outstanding: Decimal = Decimal("0")


class Statement(SummaryBase):
    """Chronological ledger for one profile."""
    profile_key: str = ""
    lines: List[StatementLine] = Field(default_factory=list)
    totals: StatementTotals = Field(default_factory=StatementTotals)


# =============================================================================
# Pipeline Result
# =============================================================================

MILL_OVERVIEW_KEY = "mill-overview"


class ReconciliationResult(SummaryBase):
    """Everything one recompute pass produced.

    Attributes:
        summaries: Profile key -> SupplierSummary, plus the mill overview
        allocations: Serial -> allocation trail
        unlinked_payments: Payments that matched no profile
    """
    run_id: str
    strategy: str
    summaries: Dict[str, SupplierSummary] = Field(default_factory=dict)
    allocations: Dict[str, PaymentAllocation] = Field(default_factory=dict)
    unlinked_payments: List[Payment] = Field(default_factory=list)
    grouping: GroupingStats = Field(default_factory=GroupingStats)

    @property
    def mill_overview(self) -> Optional[SupplierSummary]:
        return self.summaries.get(MILL_OVERVIEW_KEY)

    @property
    def profiles(self) -> Dict[str, SupplierSummary]:
        """Summaries without the mill overview."""
        return {k: v for k, v in self.summaries.items() if k != MILL_OVERVIEW_KEY}
