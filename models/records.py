"""Raw ledger records - purchase transactions and payments.

These models describe the records exactly as the capture layer stores them
(camelCase keys, numbers that may arrive as strings, optional fields that are
simply absent on older documents). Parsing is lenient: a numeric field that is
missing or malformed becomes 0 so a single bad entry never stops a
reconciliation pass.

Derived fields on Transaction (total_paid, total_cd, net_amount and the
cash/RTGS breakdown) are only ever written by the allocation engine, which
returns new records instead of mutating these.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated


OUTSIDER_CUSTOMER_ID = "OUTSIDER"


# =============================================================================
# Value Parsers
# =============================================================================

def _parse_money(value) -> Decimal:
    """Parse an amount, defaulting to 0 for anything missing or malformed."""
    if value is None or isinstance(value, bool):
        return Decimal("0")
    if isinstance(value, Decimal):
        return value if value.is_finite() else Decimal("0")
    if isinstance(value, (int, float)):
        try:
            parsed = Decimal(str(value))
        except InvalidOperation:
            return Decimal("0")
        return parsed if parsed.is_finite() else Decimal("0")
    if isinstance(value, str):
        s = value.strip().replace(",", "").replace("₹", "").replace("$", "")
        if s == "":
            return Decimal("0")
        if s.startswith("(") and s.endswith(")"):
            s = "-" + s[1:-1]
        try:
            parsed = Decimal(s)
        except InvalidOperation:
            return Decimal("0")
        return parsed if parsed.is_finite() else Decimal("0")
    return Decimal("0")


def _parse_optional_money(value) -> Optional[Decimal]:
    """Like _parse_money but keeps 'not recorded' distinct from 0."""
    if value is None:
        return None
    if isinstance(value, str) and value.strip() == "":
        return None
    return _parse_money(value)


def _parse_text(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _parse_raw_date(value) -> Optional[str]:
    """Keep dates as the raw string; interpretation needs a reference date."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    s = str(value).strip()
    return s or None


Money = Annotated[Decimal, BeforeValidator(_parse_money)]
OptionalMoney = Annotated[Optional[Decimal], BeforeValidator(_parse_optional_money)]
Text = Annotated[str, BeforeValidator(_parse_text)]
RawDate = Annotated[Optional[str], BeforeValidator(_parse_raw_date)]


# =============================================================================
# Base Model
# =============================================================================

class RecordBase(BaseModel):
    """Base model for raw ledger records (camelCase on the wire)."""
    model_config = ConfigDict(
        populate_by_name=True,
        alias_generator=to_camel,
        extra="ignore",
    )


# =============================================================================
# Transaction
# =============================================================================

class Transaction(RecordBase):
    """A single purchase entry (one weighbridge slip / parchi).

    Attributes:
        sr_no: Serial number, ``S`` followed by 5 zero-padded digits
        original_net_amount: Amount owed before any payment
        total_paid: Sum of paid_for amounts allocated to this entry (derived)
        total_cd: Cash discount allocated to this entry (derived)
        net_amount: Outstanding balance (derived)
    """
    id: Optional[str] = None
    sr_no: Text = ""
    date: RawDate = None

    # Supplier identity
    name: Text = ""
    father_name: Text = ""
    address: Text = ""
    contact: Text = ""
    customer_id: Optional[str] = None

    variety: Text = ""

    # Weights
    gross_weight: Money = Decimal("0")
    teir_weight: Money = Decimal("0")
    weight: Money = Decimal("0")
    karta_percentage: Money = Decimal("0")
    karta_weight: Money = Decimal("0")
    net_weight: Money = Decimal("0")

    # Rates and deductions
    rate: Money = Decimal("0")
    laboury_rate: Money = Decimal("0")
    karta_amount: Money = Decimal("0")
    laboury_amount: Money = Decimal("0")
    kanta: Money = Decimal("0")
    other_charges: Money = Decimal("0")
    brokerage_amount: OptionalMoney = None
    brokerage_rate: OptionalMoney = None
    brokerage_add_subtract: bool = True

    amount: Money = Decimal("0")
    original_net_amount: Money = Decimal("0")

    # Derived by the allocation engine
    total_paid: Money = Decimal("0")
    total_cd: Money = Decimal("0")
    total_cash_paid: Money = Decimal("0")
    total_rtgs_paid: Money = Decimal("0")
    net_amount: Money = Decimal("0")

    @model_validator(mode="before")
    @classmethod
    def _legacy_father_field(cls, data):
        # Older entries store the father/guardian name under "so".
        if isinstance(data, dict) and not data.get("fatherName") and not data.get("father_name"):
            if data.get("so"):
                data = dict(data)
                data["fatherName"] = data["so"]
        if isinstance(data, dict) and data.get("brokerageAddSubtract") is None:
            data = dict(data)
            data.pop("brokerageAddSubtract", None)
        return data


# =============================================================================
# Payment
# =============================================================================

class PaidFor(RecordBase):
    """One allocation line of a payment: how much of it settles one entry."""
    sr_no: Text = ""
    amount: Money = Decimal("0")
    cd_amount: OptionalMoney = None


class Payment(RecordBase):
    """A payment made to a supplier.

    Fallback precedence for the loosely-typed fields lives here and nowhere
    else:

    - identifier: payment_id, then id
    - effective_amount: rtgs_amount when recorded and non-zero, then amount
    - allocated_total: sum of paid_for amounts
    - is_outsider: explicit flag, or the OUTSIDER customer id
    """
    id: Optional[str] = None
    payment_id: Optional[str] = None
    customer_id: Optional[str] = None
    date: RawDate = None
    type: Text = ""
    receipt_type: Text = ""
    amount: Money = Decimal("0")
    rtgs_amount: OptionalMoney = None
    cd_amount: OptionalMoney = None
    cd_applied: bool = False
    paid_for: Optional[List[PaidFor]] = None
    notes: Text = ""

    # Identity fields used for outsider / unlinked payments
    supplier_name: Text = ""
    supplier_father_name: Text = ""
    supplier_address: Text = ""
    outsider: bool = False

    @property
    def identifier(self) -> str:
        return self.payment_id or self.id or ""

    @property
    def effective_amount(self) -> Decimal:
        if self.rtgs_amount:
            return self.rtgs_amount
        return self.amount

    @property
    def allocated_total(self) -> Decimal:
        return sum((pf.amount for pf in self.paid_for or []), Decimal("0"))

    @property
    def has_allocations(self) -> bool:
        return bool(self.paid_for)

    @property
    def is_outsider(self) -> bool:
        return self.outsider or self.customer_id == OUTSIDER_CUSTOMER_ID

    @property
    def kind(self) -> str:
        """Lowercased receipt type ('cash', 'rtgs', ...), falling back to type."""
        return (self.receipt_type or self.type).lower()

    @property
    def dedup_key(self) -> str:
        return f"{self.identifier}_{self.date}_{self.amount}"

    def allocation_for(self, sr_no: str) -> Optional[PaidFor]:
        """First paid_for line for the given serial, if any."""
        for pf in self.paid_for or []:
            if pf.sr_no == sr_no:
                return pf
        return None
