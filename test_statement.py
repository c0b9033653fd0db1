"""
Statement Builder Tests

1. Lines are in date order with a running balance
2. Ambiguous payment dates resolve against the purchase they settle
3. Chunk size never changes the output
4. Progress is reported up to 100%
"""

import asyncio
import random
from decimal import Decimal

import pytest

from reconciliation.engine import recompute
from reconciliation.statement import (
    PAYMENT,
    PURCHASE,
    build_statement,
    build_statement_sync,
    pick_chunk_size,
)


PROFILE_KEY = "ram kumar|shyam lal|rampur"


def D(value):
    return Decimal(str(value))


def txn(sr_no, date, original):
    return {
        "srNo": sr_no,
        "date": date,
        "name": "Ram Kumar",
        "fatherName": "Shyam Lal",
        "address": "Rampur",
        "originalNetAmount": original,
        "netWeight": 10,
        "rate": 25,
    }


def pay(pid, date, paid_for=None, **kwargs):
    data = {"paymentId": pid, "date": date, "paidFor": paid_for, "receiptType": "Cash"}
    data.update(kwargs)
    return data


def summary_for(transactions, payments):
    return recompute(transactions, payments, "strict").summaries[PROFILE_KEY]


@pytest.fixture
def summary():
    return summary_for(
        [txn("S00001", "2024-01-05", 1000), txn("S00002", "2024-05-01", 500)],
        [
            pay("P-1", "2024-01-20", [{"srNo": "S00001", "amount": 400}], amount=400),
            # Day-first would be 5 March; the purchase is on 1 May
            pay("P-2", "05/03/2024", [{"srNo": "S00002", "amount": 300}],
                amount=300, cdAmount=10, receiptType="RTGS"),
        ],
    )


class TestStatementLines:

    def test_order_and_running_balance(self, summary):
        statement = build_statement_sync(summary)

        assert [(line.kind, line.ref) for line in statement.lines] == [
            (PURCHASE, "S00001"),
            (PAYMENT, "P-1"),
            (PURCHASE, "S00002"),
            (PAYMENT, "P-2"),
        ]
        assert [line.balance for line in statement.lines] == [D(1000), D(600), D(1100), D(790)]
        assert statement.profile_key == PROFILE_KEY

    def test_ambiguous_date_uses_purchase_reference(self, summary):
        statement = build_statement_sync(summary)
        p2 = statement.lines[3]
        assert p2.display_date == "03-05-2024"
        assert str(p2.reference_date) == "2024-05-01"

    def test_payment_credit_includes_cd(self, summary):
        p2 = build_statement_sync(summary).lines[3]
        assert p2.credit_paid == D(300)
        assert p2.credit_cd == D(10)
        assert p2.credit == D(310)

    def test_particulars(self, summary):
        lines = build_statement_sync(summary).lines

        assert lines[0].particulars.startswith("PRCH S00001")
        assert "Rate:25" in lines[0].particulars

        rows = lines[3].particulars.splitlines()
        assert rows[0] == "PAY: RTGS"
        # Original | Previous | Current (net of CD) | Balance
        cells = [cell.strip() for cell in rows[3].split("|")]
        assert cells == ["S00002", "500.00", "0", "290", "200"]

    def test_previous_paid_column(self):
        summary = summary_for(
            [txn("S00001", "2024-01-05", 1000)],
            [
                pay("P-2", "2024-02-01", [{"srNo": "S00001", "amount": 300}], amount=300),
                pay("P-1", "2024-01-10", [{"srNo": "S00001", "amount": 200}], amount=200),
            ],
        )
        lines = build_statement_sync(summary).lines
        assert [line.ref for line in lines] == ["S00001", "P-1", "P-2"]
        cells = [cell.strip() for cell in lines[2].particulars.splitlines()[3].split("|")]
        assert cells == ["S00001", "1000.00", "200", "300", "500"]

    def test_undated_lines_sort_last(self):
        summary = summary_for(
            [txn("S00001", "2024-01-05", 1000)],
            [pay("P-1", "someday", [{"srNo": "S00001", "amount": 100}], amount=100)],
        )
        lines = build_statement_sync(summary).lines
        assert [line.ref for line in lines] == ["S00001", "P-1"]
        assert lines[1].display_date == ""

    def test_payment_without_allocations_credits_full_amount(self):
        summary = summary_for(
            [txn("S00001", "2024-01-05", 1000)],
            [pay("P-1", "2024-01-09", None, amount=250,
                 supplierName="Ram Kumar", supplierFatherName="Shyam Lal")],
        )
        statement = build_statement_sync(summary)
        assert statement.lines[1].credit == D(250)
        assert statement.totals.outstanding == D(750)


class TestStatementTotals:

    def test_totals(self, summary):
        totals = build_statement_sync(summary).totals
        assert totals.total_paid == D(700)
        assert totals.total_cd == D(10)
        assert totals.total_cash_paid == D(400)
        assert totals.total_rtgs_paid == D(300)
        assert totals.outstanding == D(790)

    def test_outstanding_never_negative(self):
        summary = summary_for(
            [txn("S00001", "2024-01-05", 100)],
            [pay("P-1", "2024-01-09", [{"srNo": "S00001", "amount": 150}], amount=150)],
        )
        assert build_statement_sync(summary).totals.outstanding == D(0)


class TestChunking:

    @pytest.fixture
    def large_summary(self):
        rng = random.Random(11)
        transactions = [
            txn(f"S{i:05d}", f"{rng.randint(1, 28):02d}/{rng.randint(1, 12):02d}/2024",
                rng.randint(500, 5000))
            for i in range(1, 181)
        ]
        payments = []
        for i in range(1, 141):
            serials = rng.sample(range(1, 181), rng.randint(1, 3))
            paid_for = [{"srNo": f"S{s:05d}", "amount": rng.randint(50, 800)} for s in serials]
            payments.append(pay(
                f"P-{i}",
                f"{rng.randint(1, 28):02d}/{rng.randint(1, 12):02d}/24",
                paid_for,
                amount=sum(line["amount"] for line in paid_for),
                cdAmount=rng.choice([None, 0, 15, 40]),
                receiptType=rng.choice(["Cash", "RTGS"]),
            ))
        return summary_for(transactions, payments)

    def test_chunk_size_does_not_change_output(self, large_summary):
        """Chunk size 50 and 5000 give identical lines and totals."""
        small = build_statement_sync(large_summary, chunk_size=50)
        big = build_statement_sync(large_summary, chunk_size=5000)
        auto = build_statement_sync(large_summary)

        assert small.model_dump() == big.model_dump()
        assert auto.model_dump() == big.model_dump()
        assert len(small.lines) == 180 + 140

    def test_progress_reported(self, large_summary):
        seen = []
        asyncio.run(build_statement(large_summary, chunk_size=50, on_progress=seen.append))

        assert seen[0] == 10
        assert seen[-1] == 100
        assert seen == sorted(seen)

    @pytest.mark.parametrize("items,expected", [
        (0, 50),
        (1000, 50),
        (1001, 100),
        (5001, 150),
        (10001, 200),
    ])
    def test_pick_chunk_size(self, items, expected):
        assert pick_chunk_size(items) == expected
