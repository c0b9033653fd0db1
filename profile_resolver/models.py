"""Profile Resolver Data Models.

This module defines the Pydantic models for supplier profile resolution:
- SupplierIdentity: The identity fields compared between records
- FuzzyMatchResult: Outcome of comparing two identities
- ResolvedProfile: A group of transactions/payments for one supplier
- ProfileResolution: Everything a resolution pass produced
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from models.records import Payment, Transaction


class MatchType(str, Enum):
    """How two identities compare."""
    EXACT = "exact"        # All three fields identical after normalisation
    SIMILAR = "similar"    # Within thresholds, merged but flagged
    REJECTED = "rejected"  # Different suppliers


class ResolutionStrategyName(str, Enum):
    """Named identity-resolution strategies."""
    STRICT = "strict"  # Exact composite key (name, father, address)
    FUZZY = "fuzzy"    # Levenshtein single-linkage against group seed


class SupplierIdentity(BaseModel):
    """The fields that identify a real-world supplier.

    Attributes:
        name: Supplier name as entered
        father_name: Father/guardian (or husband) name
        address: Village / address line
        contact: Phone number, not used for matching
        sr_no: Serial of the record this identity came from (for display)
    """
    name: str = ""
    father_name: str = ""
    address: str = ""
    contact: str = ""
    sr_no: str = ""

    @classmethod
    def from_transaction(cls, txn: Transaction) -> "SupplierIdentity":
        return cls(
            name=txn.name,
            father_name=txn.father_name,
            address=txn.address,
            contact=txn.contact,
            sr_no=txn.sr_no,
        )

    @classmethod
    def from_payment(cls, payment: Payment) -> "SupplierIdentity":
        return cls(
            name=payment.supplier_name,
            father_name=payment.supplier_father_name,
            address=payment.supplier_address,
        )


class FieldDifferences(BaseModel):
    """Per-field edit distances."""
    name: int = 0
    father_name: int = 0
    address: int = 0


class FuzzyMatchResult(BaseModel):
    """Result of comparing two supplier identities."""
    is_match: bool
    match_type: MatchType
    total_difference: int = 0
    field_differences: FieldDifferences = Field(default_factory=FieldDifferences)
    reason: Optional[str] = None


class ResolvedProfile(BaseModel):
    """One supplier as resolved from the raw records."""
    key: str
    identity: SupplierIdentity
    contacts: List[str] = Field(default_factory=list)
    transactions: List[Transaction] = Field(default_factory=list)
    payments: List[Payment] = Field(default_factory=list)
    is_outsider: bool = False

    # Similar (non-exact) members absorbed into this group, by serial
    similar_matches: Dict[str, FuzzyMatchResult] = Field(default_factory=dict)


class ProfileResolution(BaseModel):
    """Output of a resolution pass."""
    strategy: ResolutionStrategyName
    profiles: Dict[str, ResolvedProfile] = Field(default_factory=dict)
    unlinked_payments: List[Payment] = Field(default_factory=list)


# =============================================================================
# Matching Configuration
# =============================================================================

class MatchingConfig(BaseModel):
    """Thresholds for the fuzzy identity rules.

    A pair is rejected when any single field differs by more than
    max_field_difference characters or the three fields together differ by
    more than max_total_difference.
    """
    max_field_difference: int = Field(default=2, description="Max edits in any one field")
    max_total_difference: int = Field(default=4, description="Max edits across all fields")

    # Bucket by first letter of the name before pairwise comparison
    use_blocking: bool = Field(default=False, description="Compare only within first-letter buckets")


# Default matching config
DEFAULT_MATCHING_CONFIG = MatchingConfig()
