"""Exceptions raised by the reconciliation pipeline.

Only structural problems are exceptions. Business-rule violations
(over-allocation, duplicate ids, stale references) are reported by the
anomaly detector instead.
"""

from typing import Optional


class ReconciliationError(Exception):
    """Base exception for reconciliation failures."""
    def __init__(self, message: str, record_type: str = "", index: Optional[int] = None):
        super().__init__(message)
        self.record_type = record_type
        self.index = index


class MissingIdentifierError(ReconciliationError):
    """A transaction has no serial number or a payment has no id."""
    pass
