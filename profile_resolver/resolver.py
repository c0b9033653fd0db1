"""Profile Resolver Algorithm.

This module groups raw transactions into supplier profiles and attaches
payments to them. Two strategies exist because different views need
different behaviour:

- strict: exact normalized (name, father, address) key, no fuzzy merging.
  Used for the supplier-payments reconciliation view.
- fuzzy: Levenshtein single-linkage against each group's seed record.
  Used for the supplier-profile view where spelling variants should merge.

Payment linkage:
1. A payment with paid_for lines goes to the profile owning the first
   referenced serial that exists (a payment is attached once per pass).
2. Otherwise it is matched on normalized identity fields.
3. An unmatched outsider payment gets a standalone profile of its own.
"""

from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from core.observability.logging import get_logger
from models.records import Payment, Transaction
from models.summaries import GroupingStats
from profile_resolver.models import (
    MatchType,
    MatchingConfig,
    ProfileResolution,
    ResolutionStrategyName,
    ResolvedProfile,
    SupplierIdentity,
    DEFAULT_MATCHING_CONFIG,
)
from profile_resolver.normalize import (
    composite_key,
    fuzzy_match_profiles,
    group_by_fuzzy_match,
    identity_key,
    normalize_identity_field,
)
from reconciliation.errors import MissingIdentifierError, ReconciliationError


logger = get_logger(__name__)

OUTSIDER_KEY_PREFIX = "outsider:"


class ProfileResolutionStrategy(Protocol):
    """Protocol for grouping transactions into supplier profiles."""

    name: ResolutionStrategyName

    def group(self, transactions: Sequence[Transaction]) -> List[ResolvedProfile]:
        """Group transactions into profiles (payments not yet attached).

        Profiles are returned in order of their first transaction.
        """
        ...


def _unique_contacts(transactions: Sequence[Transaction]) -> List[str]:
    contacts: List[str] = []
    for txn in transactions:
        if txn.contact and txn.contact not in contacts:
            contacts.append(txn.contact)
    return contacts


class StrictCompositeKeyStrategy:
    """Group by the exact normalized (name, father, address) tuple."""

    name = ResolutionStrategyName.STRICT

    def group(self, transactions: Sequence[Transaction]) -> List[ResolvedProfile]:
        grouped: Dict[str, List[Transaction]] = {}
        for txn in transactions:
            key = composite_key(txn.name, txn.father_name, txn.address)
            grouped.setdefault(key, []).append(txn)

        return [
            ResolvedProfile(
                key=key,
                identity=SupplierIdentity.from_transaction(members[0]),
                contacts=_unique_contacts(members),
                transactions=members,
            )
            for key, members in grouped.items()
        ]


class FuzzyPairwiseStrategy:
    """Levenshtein single-linkage clustering against the group seed.

    O(n^2) in the worst case; fine for a few thousand records. Set
    ``MatchingConfig.use_blocking`` to compare only names sharing a first
    letter.
    """

    name = ResolutionStrategyName.FUZZY

    def __init__(self, config: MatchingConfig = DEFAULT_MATCHING_CONFIG):
        self.config = config

    def group(self, transactions: Sequence[Transaction]) -> List[ResolvedProfile]:
        identities = [SupplierIdentity.from_transaction(t) for t in transactions]
        index_groups = group_by_fuzzy_match(identities, self.config)

        profiles = []
        used_keys = set()
        for indexes in index_groups:
            seed = identities[indexes[0]]
            key = identity_key(seed)
            # Keys collapse whitespace runs that the edit distance still counts
            if key in used_keys:
                key = f"{key}#{transactions[indexes[0]].sr_no}"
            used_keys.add(key)
            members = [transactions[i] for i in indexes]

            similar = {}
            for i in indexes[1:]:
                result = fuzzy_match_profiles(seed, identities[i], self.config)
                if result.match_type == MatchType.SIMILAR:
                    similar[transactions[i].sr_no] = result

            profiles.append(ResolvedProfile(
                key=key,
                identity=seed,
                contacts=_unique_contacts(members),
                transactions=members,
                similar_matches=similar,
            ))

        return profiles


def get_strategy(
    name,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> ProfileResolutionStrategy:
    """Look up a strategy by name ('strict' or 'fuzzy')."""
    strategy_name = ResolutionStrategyName(name)
    if strategy_name == ResolutionStrategyName.FUZZY:
        return FuzzyPairwiseStrategy(config)
    return StrictCompositeKeyStrategy()


def validate_identifiers(
    transactions: Sequence[Transaction],
    payments: Sequence[Payment],
) -> None:
    """Raise MissingIdentifierError for records without an identifying key."""
    for idx, txn in enumerate(transactions):
        if not txn.sr_no:
            raise MissingIdentifierError(
                f"Transaction at index {idx} has no serial number",
                record_type="transaction",
                index=idx,
            )
    for idx, payment in enumerate(payments):
        if not payment.identifier:
            raise MissingIdentifierError(
                f"Payment at index {idx} has neither id nor paymentId",
                record_type="payment",
                index=idx,
            )


class ProfileResolver:
    """Resolves raw transactions and payments into supplier profiles.

    Example:
        resolver = ProfileResolver(FuzzyPairwiseStrategy())
        resolution = resolver.resolve(transactions, payments)

        for key, profile in resolution.profiles.items():
            print(key, len(profile.transactions), len(profile.payments))
    """

    def __init__(self, strategy: Optional[ProfileResolutionStrategy] = None):
        self.strategy = strategy or StrictCompositeKeyStrategy()

    def resolve(
        self,
        transactions: Sequence[Transaction],
        payments: Sequence[Payment],
    ) -> ProfileResolution:
        """Group transactions and attach payments.

        Raises:
            MissingIdentifierError: If a record has no identifying key
        """
        validate_identifiers(transactions, payments)

        profiles: Dict[str, ResolvedProfile] = {}
        for profile in self.strategy.group(transactions):
            if profile.key in profiles:
                raise ReconciliationError(
                    f"Strategy {self.strategy.name.value} produced profile key "
                    f"{profile.key!r} twice",
                    record_type="transaction",
                )
            profiles[profile.key] = profile

        owner_by_sr_no: Dict[str, str] = {}
        identity_index: Dict[Tuple[str, ...], str] = {}
        for key, profile in profiles.items():
            for txn in profile.transactions:
                owner_by_sr_no.setdefault(txn.sr_no, key)
                self._index_identity(
                    identity_index, key, txn.name, txn.father_name, txn.address
                )

        unlinked: List[Payment] = []
        for payment in payments:
            key = self._link_payment(payment, owner_by_sr_no, identity_index)

            if key is None and payment.is_outsider:
                key = self._add_outsider_profile(payment, profiles, identity_index)

            if key is None:
                logger.debug(f"Payment {payment.identifier} matched no profile")
                unlinked.append(payment)
                continue

            profiles[key].payments.append(payment)

        logger.info(
            f"Resolved {len(transactions)} transactions into {len(profiles)} profiles "
            f"({self.strategy.name.value}), {len(unlinked)} unlinked payments",
            extra_fields={"strategy": self.strategy.name.value},
        )

        return ProfileResolution(
            strategy=self.strategy.name,
            profiles=profiles,
            unlinked_payments=unlinked,
        )

    @staticmethod
    def _index_identity(
        index: Dict[Tuple[str, ...], str],
        key: str,
        name: str,
        father_name: str,
        address: str,
    ) -> None:
        name_n = normalize_identity_field(name)
        father_n = normalize_identity_field(father_name)
        index.setdefault((name_n, father_n), key)
        index.setdefault((name_n, father_n, normalize_identity_field(address)), key)

    @staticmethod
    def _link_payment(
        payment: Payment,
        owner_by_sr_no: Dict[str, str],
        identity_index: Dict[Tuple[str, ...], str],
    ) -> Optional[str]:
        for pf in payment.paid_for or []:
            owner = owner_by_sr_no.get(pf.sr_no)
            if owner is not None:
                return owner

        name_n = normalize_identity_field(payment.supplier_name)
        if not name_n:
            return None
        father_n = normalize_identity_field(payment.supplier_father_name)
        address_n = normalize_identity_field(payment.supplier_address)

        if address_n:
            return identity_index.get((name_n, father_n, address_n))
        return identity_index.get((name_n, father_n))

    def _add_outsider_profile(
        self,
        payment: Payment,
        profiles: Dict[str, ResolvedProfile],
        identity_index: Dict[Tuple[str, ...], str],
    ) -> str:
        identity = SupplierIdentity.from_payment(payment)
        if normalize_identity_field(identity.name):
            key = OUTSIDER_KEY_PREFIX + identity_key(identity)
        else:
            key = OUTSIDER_KEY_PREFIX + payment.identifier

        if key not in profiles:
            profiles[key] = ResolvedProfile(
                key=key,
                identity=identity,
                is_outsider=True,
            )
            self._index_identity(
                identity_index, key, identity.name, identity.father_name, identity.address
            )
            logger.debug(f"Synthesized outsider profile {key}")

        return key


def grouping_stats(resolution: ProfileResolution) -> GroupingStats:
    """Summarize how many profiles merged more than one transaction."""
    sizes = [len(p.transactions) for p in resolution.profiles.values() if not p.is_outsider]
    total_records = sum(sizes)
    merged = [s for s in sizes if s > 1]
    grouped_records = sum(merged)

    return GroupingStats(
        total_groups=len(sizes),
        merged_groups=len(merged),
        single_groups=sum(1 for s in sizes if s == 1),
        total_grouped_records=grouped_records,
        grouping_efficiency=(grouped_records / total_records * 100) if total_records else 0.0,
    )
