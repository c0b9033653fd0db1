"""
Profile Resolver Tests

1. Strict strategy groups by exact normalized name/father/address
2. Fuzzy strategy merges spelling variants against the group seed
3. Payments link through paid_for serials, then identity, then as outsiders
4. Records without an identifier raise MissingIdentifierError
"""

import pytest

from models.records import Payment, Transaction
from profile_resolver import (
    FuzzyPairwiseStrategy,
    MatchType,
    MatchingConfig,
    ProfileResolver,
    ResolutionStrategyName,
    StrictCompositeKeyStrategy,
    get_strategy,
    grouping_stats,
)
from reconciliation.errors import MissingIdentifierError, ReconciliationError


def txn(sr_no, name="Ram Kumar", father="Shyam Lal", address="Rampur", **kwargs):
    return Transaction(sr_no=sr_no, name=name, father_name=father, address=address, **kwargs)


def payment(pid, paid_for=None, **kwargs):
    return Payment.model_validate({"paymentId": pid, "paidFor": paid_for, **kwargs})


@pytest.fixture
def transactions():
    return [
        txn("S00001", contact="9800000001"),
        txn("S00002", name="RAM KUMAR", contact="9800000002"),
        txn("S00003", name="Ram Kumr"),
        txn("S00004", name="Mohan Das", father="Hari Das", address="Sitapur"),
    ]


class TestStrictStrategy:

    def test_groups_by_exact_key(self, transactions):
        profiles = StrictCompositeKeyStrategy().group(transactions)

        assert [p.key for p in profiles] == [
            "ram kumar|shyam lal|rampur",
            "ram kumr|shyam lal|rampur",
            "mohan das|hari das|sitapur",
        ]
        assert [t.sr_no for t in profiles[0].transactions] == ["S00001", "S00002"]
        assert profiles[0].contacts == ["9800000001", "9800000002"]


class TestFuzzyStrategy:

    def test_merges_spelling_variants(self, transactions):
        profiles = FuzzyPairwiseStrategy().group(transactions)

        assert len(profiles) == 2
        merged = profiles[0]
        assert [t.sr_no for t in merged.transactions] == ["S00001", "S00002", "S00003"]
        assert merged.key == "ram kumar|shyam lal|rampur"
        assert set(merged.similar_matches) == {"S00003"}
        assert merged.similar_matches["S00003"].match_type == MatchType.SIMILAR

    def test_matches_against_seed_only(self):
        # B is within reach of A and C within reach of B, but C is too far from A
        records = [
            txn("S00001", name="Ram Kumar"),
            txn("S00002", name="Ram Kumxx"),
            txn("S00003", name="Ram Kuxxxx"),
        ]
        profiles = FuzzyPairwiseStrategy().group(records)
        assert [[t.sr_no for t in p.transactions] for p in profiles] == [
            ["S00001", "S00002"],
            ["S00003"],
        ]

    def test_blocking_keeps_results_for_same_initial(self, transactions):
        config = MatchingConfig(use_blocking=True)
        profiles = FuzzyPairwiseStrategy(config).group(transactions)
        assert len(profiles) == 2

    def test_whitespace_variants_keep_separate_keys(self):
        # Address differs only in runs of spaces: too far apart to merge,
        # but both normalize to the same identity key
        records = [
            txn("S00001", address="Near Temple Road Rampur"),
            txn("S00002", address="Near  Temple   Road  Rampur"),
        ]
        profiles = FuzzyPairwiseStrategy().group(records)

        assert [p.key for p in profiles] == [
            "ram kumar|shyam lal|near temple road rampur",
            "ram kumar|shyam lal|near temple road rampur#S00002",
        ]

        resolution = ProfileResolver(FuzzyPairwiseStrategy()).resolve(records, [])
        serials = sorted(t.sr_no for p in resolution.profiles.values() for t in p.transactions)
        assert serials == ["S00001", "S00002"]

    def test_get_strategy(self):
        assert get_strategy("fuzzy").name == ResolutionStrategyName.FUZZY
        assert get_strategy("strict").name == ResolutionStrategyName.STRICT
        with pytest.raises(ValueError):
            get_strategy("nearest")


class TestPaymentLinkage:

    def test_links_through_paid_for(self, transactions):
        p = payment("P-1", [{"srNo": "S00004", "amount": 100}])
        resolution = ProfileResolver().resolve(transactions, [p])

        owner = resolution.profiles["mohan das|hari das|sitapur"]
        assert owner.payments == [p]
        assert resolution.unlinked_payments == []

    def test_first_known_serial_wins(self, transactions):
        p = payment("P-1", [
            {"srNo": "S99999", "amount": 50},
            {"srNo": "S00001", "amount": 50},
        ])
        resolution = ProfileResolver().resolve(transactions, [p])
        assert resolution.profiles["ram kumar|shyam lal|rampur"].payments == [p]

    def test_links_by_identity_without_paid_for(self, transactions):
        p = payment("P-2", supplierName="mohan das", supplierFatherName="HARI DAS")
        resolution = ProfileResolver().resolve(transactions, [p])
        assert resolution.profiles["mohan das|hari das|sitapur"].payments == [p]

    def test_outsider_gets_own_profile(self, transactions):
        p = payment("P-3", supplierName="Gopal", supplierAddress="Nagla", customerId="OUTSIDER")
        resolution = ProfileResolver().resolve(transactions, [p])

        outsider = resolution.profiles["outsider:gopal||nagla"]
        assert outsider.is_outsider
        assert outsider.payments == [p]
        assert outsider.transactions == []

    def test_unmatched_payment_is_unlinked(self, transactions):
        p = payment("P-4", supplierName="Nobody")
        resolution = ProfileResolver().resolve(transactions, [p])
        assert resolution.unlinked_payments == [p]

    def test_grouping_stats_exclude_outsiders(self, transactions):
        p = payment("P-3", supplierName="Gopal", outsider=True)
        resolution = ProfileResolver(FuzzyPairwiseStrategy()).resolve(transactions, [p])

        stats = grouping_stats(resolution)
        assert stats.total_groups == 2
        assert stats.merged_groups == 1
        assert stats.single_groups == 1
        assert stats.total_grouped_records == 3
        assert stats.grouping_efficiency == pytest.approx(75.0)


class TestDuplicateProfileKeys:

    def test_resolver_rejects_repeated_key(self):
        class RepeatingStrategy:
            name = ResolutionStrategyName.STRICT

            def group(self, transactions):
                return StrictCompositeKeyStrategy().group(transactions) * 2

        with pytest.raises(ReconciliationError, match="twice"):
            ProfileResolver(RepeatingStrategy()).resolve([txn("S00001")], [])


class TestMissingIdentifiers:

    def test_transaction_without_serial(self):
        with pytest.raises(MissingIdentifierError) as exc:
            ProfileResolver().resolve([txn("S00001"), txn("")], [])
        assert exc.value.record_type == "transaction"
        assert exc.value.index == 1

    def test_payment_without_id(self):
        with pytest.raises(MissingIdentifierError) as exc:
            ProfileResolver().resolve([txn("S00001")], [Payment(amount=10)])
        assert exc.value.record_type == "payment"
        assert exc.value.index == 0
