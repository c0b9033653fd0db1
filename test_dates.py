"""Ledger date parsing tests."""

from datetime import date, datetime

import pytest

from reconciliation.dates import date_sort_key, format_display_date, parse_ledger_date


class TestParseLedgerDate:

    @pytest.mark.parametrize("raw,expected", [
        ("2024-03-12", date(2024, 3, 12)),
        ("25/03/2024", date(2024, 3, 25)),
        ("03/25/2024", date(2024, 3, 25)),
        ("12-Mar-24", date(2024, 3, 12)),
        ("2024-03-12T10:30:00Z", date(2024, 3, 12)),
        ("05/03/24", date(2024, 3, 5)),
    ])
    def test_formats(self, raw, expected):
        assert parse_ledger_date(raw) == expected

    def test_day_first_without_reference(self):
        assert parse_ledger_date("05/03/2024") == date(2024, 3, 5)

    def test_reference_picks_reading_in_window(self):
        assert parse_ledger_date("05/03/2024", reference=date(2024, 5, 2)) == date(2024, 5, 3)
        assert parse_ledger_date("05/03/2024", reference="2024-03-01") == date(2024, 3, 5)

    def test_neither_in_window_falls_back_to_day_first(self):
        assert parse_ledger_date("05/03/2024", reference=date(2023, 1, 1)) == date(2024, 3, 5)

    def test_window_size(self):
        ref = date(2024, 5, 12)
        assert parse_ledger_date("05/03/2024", ref, window_days=5) == date(2024, 3, 5)
        assert parse_ledger_date("05/03/2024", ref, window_days=10) == date(2024, 5, 3)

    def test_date_objects_pass_through(self):
        assert parse_ledger_date(date(2024, 1, 2)) == date(2024, 1, 2)
        assert parse_ledger_date(datetime(2024, 1, 2, 15, 0)) == date(2024, 1, 2)

    @pytest.mark.parametrize("raw", [None, "", "   ", "not a date", "31/31/2024"])
    def test_unparseable(self, raw):
        assert parse_ledger_date(raw) is None


class TestDisplayAndSort:

    def test_display_format(self):
        assert format_display_date("2024-03-12") == "12-03-2024"
        assert format_display_date("garbage") == ""

    def test_missing_dates_sort_last(self):
        values = [None, date(2024, 2, 1), date(2024, 1, 1)]
        assert sorted(values, key=date_sort_key) == [date(2024, 1, 1), date(2024, 2, 1), None]
