"""Identity Normalization and Fuzzy Matching.

This module normalizes supplier identity fields and decides whether two
identities describe the same supplier. The rules are character based:

1. Each of name, father name and address is trimmed and lowercased.
2. The Levenshtein distance is taken per field (missing vs missing is 0,
   missing vs present is the length of the present value).
3. All three distances 0          → exact match
   any distance > 2 or total > 4  → different suppliers
   otherwise                      → similar, merge but keep the distances

Examples:
    ("Ram Kumar", "Shyam Lal", "Rampur") vs ("Ram Kumar", "Shyam Lal", "Rampur")
        → exact
    ("Ram Kumar", "Shyam Lal", "Rampur") vs ("Ram Kumr", "Shyam Lal", "Rampur")
        → similar (name differs by 1)
    ("Ram Kumar", "Shyam Lal", "Rampur") vs ("Mohan Das", "Shyam Lal", "Rampur")
        → rejected
"""

import re
from typing import Dict, List, Optional, Sequence, Tuple

from rapidfuzz.distance import Levenshtein

from profile_resolver.models import (
    FieldDifferences,
    FuzzyMatchResult,
    MatchType,
    MatchingConfig,
    SupplierIdentity,
    DEFAULT_MATCHING_CONFIG,
)


def normalize_identity_field(value: Optional[str]) -> str:
    """Lowercase, trim and collapse internal whitespace.

    Examples:
        >>> normalize_identity_field("  Ram   KUMAR ")
        'ram kumar'
    """
    if not value:
        return ""
    return re.sub(r"\s+", " ", value.lower().strip())


def composite_key(name: str, father_name: str, address: str) -> str:
    """Strict grouping key: normalized name|father|address."""
    return "|".join(
        normalize_identity_field(part) for part in (name, father_name, address)
    )


def identity_key(identity: SupplierIdentity) -> str:
    return composite_key(identity.name, identity.father_name, identity.address)


def blocking_key(identity: SupplierIdentity) -> str:
    """First letter of the normalized name, used to bucket fuzzy comparisons."""
    name = normalize_identity_field(identity.name)
    return name[:1]


def character_difference(value1: Optional[str], value2: Optional[str]) -> int:
    """Levenshtein distance between two identity fields.

    Both sides are trimmed and lowercased first. A missing field compared to a
    present one costs the full length of the present one.
    """
    s1 = (value1 or "").lower().strip()
    s2 = (value2 or "").lower().strip()

    if not s1 and not s2:
        return 0
    if not s1 or not s2:
        return max(len(s1), len(s2))

    return Levenshtein.distance(s1, s2)


def fuzzy_match_profiles(
    profile_a: SupplierIdentity,
    profile_b: SupplierIdentity,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> FuzzyMatchResult:
    """Apply the exact / rejected / similar rules to two identities.

    The function is pure and symmetric: swapping the arguments never changes
    the result.
    """
    name_diff = character_difference(profile_a.name, profile_b.name)
    father_diff = character_difference(profile_a.father_name, profile_b.father_name)
    address_diff = character_difference(profile_a.address, profile_b.address)

    total = name_diff + father_diff + address_diff
    differences = FieldDifferences(
        name=name_diff,
        father_name=father_diff,
        address=address_diff,
    )

    # Primary rule: identical on all three fields
    if total == 0:
        return FuzzyMatchResult(
            is_match=True,
            match_type=MatchType.EXACT,
            total_difference=0,
            field_differences=differences,
            reason="Exact match on all fields",
        )

    limit = config.max_field_difference
    if name_diff > limit or father_diff > limit or address_diff > limit:
        return FuzzyMatchResult(
            is_match=False,
            match_type=MatchType.REJECTED,
            total_difference=total,
            field_differences=differences,
            reason=(
                f"Field difference exceeds {limit} characters: "
                f"Name({name_diff}), Father({father_diff}), Address({address_diff})"
            ),
        )

    if total > config.max_total_difference:
        return FuzzyMatchResult(
            is_match=False,
            match_type=MatchType.REJECTED,
            total_difference=total,
            field_differences=differences,
            reason=f"Total difference exceeds {config.max_total_difference} characters: {total}",
        )

    return FuzzyMatchResult(
        is_match=True,
        match_type=MatchType.SIMILAR,
        total_difference=total,
        field_differences=differences,
        reason=f"Similar profile (total difference {total})",
    )


def group_by_fuzzy_match(
    identities: Sequence[SupplierIdentity],
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> List[List[int]]:
    """Single-linkage grouping against each group's seed record.

    Records are visited in input order. An unprocessed record starts a new
    group and absorbs every later unprocessed record that matches it (the
    seed), not records that only match another member. O(n^2) comparisons;
    with config.use_blocking only records sharing the first letter of the
    name are compared.

    Returns:
        Groups as lists of input indexes, in seed order
    """
    groups: List[List[int]] = []
    processed = set()

    candidates_by_block: Dict[str, List[int]] = {}
    if config.use_blocking:
        for idx, identity in enumerate(identities):
            candidates_by_block.setdefault(blocking_key(identity), []).append(idx)

    for i, seed in enumerate(identities):
        if i in processed:
            continue

        group = [i]
        processed.add(i)

        if config.use_blocking:
            later = [j for j in candidates_by_block[blocking_key(seed)] if j > i]
        else:
            later = range(i + 1, len(identities))

        for j in later:
            if j in processed:
                continue
            if fuzzy_match_profiles(seed, identities[j], config).is_match:
                group.append(j)
                processed.add(j)

        groups.append(group)

    return groups


def find_similar_profiles(
    target: SupplierIdentity,
    candidates: Sequence[SupplierIdentity],
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> Tuple[List[SupplierIdentity], List[Tuple[SupplierIdentity, FuzzyMatchResult]], List[SupplierIdentity]]:
    """Split candidates into exact, similar and different relative to target.

    The target object itself is skipped if it appears among the candidates.
    """
    exact: List[SupplierIdentity] = []
    similar: List[Tuple[SupplierIdentity, FuzzyMatchResult]] = []
    different: List[SupplierIdentity] = []

    for candidate in candidates:
        if candidate is target:
            continue
        result = fuzzy_match_profiles(target, candidate, config)
        if result.match_type == MatchType.EXACT:
            exact.append(candidate)
        elif result.is_match:
            similar.append((candidate, result))
        else:
            different.append(candidate)

    return exact, similar, different


# =============================================================================
# Serial numbers
# =============================================================================

def format_serial_number(sr_no) -> str:
    """Format a serial number as S + 5 zero-padded digits.

    Examples:
        >>> format_serial_number(42)
        'S00042'
        >>> format_serial_number("s-123")
        'S00123'
    """
    digits = re.sub(r"[^0-9]", "", str(sr_no))
    return f"S{digits.zfill(5)}"


def to_title_case(value: Optional[str]) -> str:
    """Title-case a display value ('ram kumar' -> 'Ram Kumar')."""
    if not value:
        return ""
    return " ".join(word[:1].upper() + word[1:].lower() for word in value.split())
