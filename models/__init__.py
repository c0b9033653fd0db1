"""Models Package.

Data models for the ledger reconciliation system including:
- Raw ledger records (transactions, payments)
- Reconciled outputs (summaries, allocations, anomalies, statements)
- Data reference models for artifact storage
"""

from models.records import (
    Transaction,
    Payment,
    PaidFor,
    OUTSIDER_CUSTOMER_ID,
)

from models.summaries import (
    PaymentContribution,
    PaymentAllocation,
    SupplierSummary,
    GroupingStats,
    AnomalyPayment,
    AnomalyEntry,
    AnomalyReport,
    PlannedChange,
    StatementLine,
    StatementTotals,
    Statement,
    ReconciliationResult,
    MILL_OVERVIEW_KEY,
)

from models.refs import (
    DataReference,
    ReconciliationRunRefs,
)

__all__ = [
    # Records
    "Transaction",
    "Payment",
    "PaidFor",
    "OUTSIDER_CUSTOMER_ID",
    # Summaries
    "PaymentContribution",
    "PaymentAllocation",
    "SupplierSummary",
    "GroupingStats",
    "AnomalyPayment",
    "AnomalyEntry",
    "AnomalyReport",
    "PlannedChange",
    "StatementLine",
    "StatementTotals",
    "Statement",
    "ReconciliationResult",
    "MILL_OVERVIEW_KEY",
    # References
    "DataReference",
    "ReconciliationRunRefs",
]
