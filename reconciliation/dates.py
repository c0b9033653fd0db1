"""Date parsing for hand-entered ledger dates.

Clerks enter dates as ``12/03/24``, ``2024-03-12``, ``12-Mar-24`` and so on.
Two-number short dates are ambiguous (12 March or 3 December), which matters
because statement order depends on it. The rule:

1. If only one reading is a valid calendar date (a part above 12), use it.
2. Otherwise, with a reference date (e.g. the purchase a payment settles),
   prefer the reading within ``window_days`` of the reference when exactly
   one of them is.
3. Otherwise day-first.

Anything that is not a short date is tried against a prioritised list of
formats. Unparseable input yields None, and None sorts after every date.
"""

import re
from datetime import date, datetime, timedelta
from typing import Optional, Tuple, Union


DateInput = Union[str, date, datetime, None]

DISPLAY_FORMAT = "%d-%m-%Y"
DEFAULT_WINDOW_DAYS = 5

_SHORT_DATE = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{2,4})$")

# Order matters: the first format that parses wins.
DATE_FORMATS = (
    "%Y-%m-%d",
    "%d-%m-%Y",
    "%d/%m/%Y",
    "%m/%d/%Y",
    "%m-%d-%Y",
    "%d/%m/%y",
    "%m/%d/%y",
    "%d-%b-%y",
    "%d-%b-%Y",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y/%m/%d %H:%M:%S",
    "%m/%d/%Y %H:%M:%S",
)


def _build_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _expand_year(year: int) -> int:
    if year < 100:
        return year + (1900 if year >= 70 else 2000)
    return year


def _parse_short_date(
    match: "re.Match[str]",
    reference: Optional[date],
    window_days: int,
) -> Optional[date]:
    part1, part2 = int(match.group(1)), int(match.group(2))
    year = _expand_year(int(match.group(3)))

    if part1 > 12 and part2 <= 12:
        return _build_date(year, part2, part1)
    if part2 > 12 and part1 <= 12:
        return _build_date(year, part1, part2)

    day_first = _build_date(year, part2, part1)
    month_first = _build_date(year, part1, part2)

    def within_window(candidate: Optional[date]) -> bool:
        if candidate is None:
            return False
        if reference is None:
            return True
        return abs(candidate - reference) <= timedelta(days=window_days)

    if within_window(day_first):
        return day_first
    if within_window(month_first):
        return month_first
    return day_first or month_first


def parse_ledger_date(
    value: DateInput,
    reference: DateInput = None,
    window_days: int = DEFAULT_WINDOW_DAYS,
) -> Optional[date]:
    """Parse a ledger date, resolving D/M ambiguity against a reference.

    Args:
        value: Raw date (string, date or datetime)
        reference: Date the value is expected to be close to
        window_days: How close counts as "close"

    Returns:
        The parsed date, or None if nothing matched

    Examples:
        >>> parse_ledger_date("05/03/2024")
        datetime.date(2024, 3, 5)
        >>> parse_ledger_date("05/03/2024", reference=date(2024, 5, 2))
        datetime.date(2024, 5, 3)
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    raw = str(value).strip()
    if not raw:
        return None

    ref_date = parse_ledger_date(reference) if reference is not None else None

    match = _SHORT_DATE.match(raw)
    if match:
        parsed = _parse_short_date(match, ref_date, window_days)
        if parsed is not None:
            return parsed

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(raw, fmt).date()
        except ValueError:
            continue

    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def format_display_date(value: DateInput, reference: DateInput = None) -> str:
    """dd-mm-YYYY, or an empty string when the date cannot be parsed."""
    parsed = parse_ledger_date(value, reference)
    if parsed is None:
        return ""
    return parsed.strftime(DISPLAY_FORMAT)


def date_sort_key(value: Optional[date]) -> Tuple[int, int]:
    """Ascending by date with missing dates last."""
    if value is None:
        return (1, 0)
    return (0, value.toordinal())
