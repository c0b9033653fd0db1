"""Profile Resolver - grouping ledger records into supplier profiles.

This package decides which purchase entries and payments belong to the same
real-world supplier, given names typed by different clerks:

- Character-level fuzzy matching of name, father name and address
- Strict composite-key grouping for the payments reconciliation view
- Fuzzy single-linkage grouping for the supplier profile view
- Payment linkage through paid_for serials, then identity fields

Usage:
    from profile_resolver import ProfileResolver, get_strategy

    resolver = ProfileResolver(get_strategy("fuzzy"))
    resolution = resolver.resolve(transactions, payments)

    for key, profile in resolution.profiles.items():
        print(key, len(profile.transactions))
        for sr_no, match in profile.similar_matches.items():
            print("  merged", sr_no, match.total_difference)
"""

from profile_resolver.models import (
    SupplierIdentity,
    FuzzyMatchResult,
    ResolvedProfile,
    ProfileResolution,
    MatchType,
    MatchingConfig,
    ResolutionStrategyName,
)
from profile_resolver.resolver import (
    ProfileResolver,
    ProfileResolutionStrategy,
    StrictCompositeKeyStrategy,
    FuzzyPairwiseStrategy,
    get_strategy,
    grouping_stats,
)
from profile_resolver.normalize import (
    normalize_identity_field,
    character_difference,
    fuzzy_match_profiles,
    find_similar_profiles,
    format_serial_number,
)

__all__ = [
    # Models
    "SupplierIdentity",
    "FuzzyMatchResult",
    "ResolvedProfile",
    "ProfileResolution",
    "MatchType",
    "MatchingConfig",
    "ResolutionStrategyName",
    # Resolver
    "ProfileResolver",
    "ProfileResolutionStrategy",
    "StrictCompositeKeyStrategy",
    "FuzzyPairwiseStrategy",
    "get_strategy",
    "grouping_stats",
    # Matching
    "normalize_identity_field",
    "character_difference",
    "fuzzy_match_profiles",
    "find_similar_profiles",
    "format_serial_number",
]
