"""Parsing and period arithmetic for report queries.

Everything here validates raw query strings up front, so a bad parameter is
rejected with ``InvalidInput`` before any query is built.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, List, Optional, Tuple

from bookstore.errors import InvalidInput
from bookstore.identifiers import Identifier, resolve_identifier

GROUP_BY_CHOICES = ("day", "week", "month", "year")
SORT_BY_CHOICES = ("quantity", "name", "lastSold")
FORMAT_CHOICES = ("json", "csv")

MIN_REPORT_YEAR = 1900
MAX_REPORT_YEAR = 9998

# ten years of daily points
MAX_SERIES_PERIODS = 3660

# period -> (days back from now, default grouping)
TREND_PERIODS = {
    "last7days": (7, "day"),
    "last30days": (30, "day"),
    "last3months": (90, "week"),
    "last6months": (180, "week"),
    "lastyear": (365, "month"),
}


@dataclass(frozen=True)
class DateRange:
    """Half-open ``[start, end)`` window on ``created_at``."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @property
    def is_bounded(self) -> bool:
        return self.start is not None or self.end is not None

    def clauses(self, column) -> List[Any]:
        result = []
        if self.start is not None:
            result.append(column >= self.start)
        if self.end is not None:
            result.append(column < self.end)
        return result


@dataclass(frozen=True)
class ReportFilter:
    date_range: DateRange = field(default_factory=DateRange)
    category: Optional[Identifier] = None
    author: Optional[Identifier] = None
    book: Optional[Identifier] = None

    @property
    def filters_books(self) -> bool:
        return self.category is not None or self.author is not None or self.book is not None


def parse_date(value: Optional[str], name: str) -> Optional[date]:
    if value is None or value == "":
        return None
    try:
        day = datetime.strptime(value, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise InvalidInput(
            f"{name} must be a date in YYYY-MM-DD format", {"field": name, "value": value}
        )
    # the day after, and the period after, must still be representable
    if not MIN_REPORT_YEAR <= day.year <= MAX_REPORT_YEAR:
        raise InvalidInput(
            f"{name} must be between {MIN_REPORT_YEAR} and {MAX_REPORT_YEAR}",
            {"field": name, "value": value},
        )
    return day


def _start_of(day: date) -> datetime:
    return datetime(day.year, day.month, day.day)


def parse_date_range(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    single_date: Optional[str] = None,
) -> DateRange:
    day = parse_date(single_date, "date")
    if day is not None:
        start = _start_of(day)
        return DateRange(start, start + timedelta(days=1))

    start_day = parse_date(start_date, "startDate")
    end_day = parse_date(end_date, "endDate")
    if start_day and end_day and start_day > end_day:
        raise InvalidInput(
            "startDate must not be after endDate",
            {"field": "startDate", "startDate": start_date, "endDate": end_date},
        )
    return DateRange(
        _start_of(start_day) if start_day else None,
        _start_of(end_day) + timedelta(days=1) if end_day else None,
    )


def parse_choice(value: Optional[str], name: str, choices, default=None):
    if value is None or value == "":
        return default
    if value not in choices:
        raise InvalidInput(
            f"{name} must be one of: {', '.join(choices)}",
            {"field": name, "value": value},
        )
    return value


def parse_group_by(value: Optional[str]) -> Optional[str]:
    return parse_choice(value, "groupBy", GROUP_BY_CHOICES)


def parse_positive_int(value: Optional[str], name: str, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{name} must be a positive integer", {"field": name, "value": value})
    if number <= 0:
        raise InvalidInput(f"{name} must be a positive integer", {"field": name, "value": value})
    return number


def parse_identifier(value: Optional[str], name: str) -> Optional[Identifier]:
    if value is None or value == "":
        return None
    return resolve_identifier(value, field=name)


def build_filter(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    single_date: Optional[str] = None,
    category_id: Optional[str] = None,
    author_id: Optional[str] = None,
    book_id: Optional[str] = None,
) -> ReportFilter:
    return ReportFilter(
        date_range=parse_date_range(start_date, end_date, single_date),
        category=parse_identifier(category_id, "categoryId"),
        author=parse_identifier(author_id, "authorId"),
        book=parse_identifier(book_id, "bookId"),
    )


# Periods

def period_start(moment: datetime, group_by: str) -> date:
    day = moment.date() if isinstance(moment, datetime) else moment
    if group_by == "week":
        # weeks start on Sunday
        return day - timedelta(days=(day.weekday() + 1) % 7)
    if group_by == "month":
        return day.replace(day=1)
    if group_by == "year":
        return day.replace(month=1, day=1)
    return day


def next_period(start: date, group_by: str) -> date:
    if group_by == "week":
        return start + timedelta(days=7)
    if group_by == "month":
        if start.month == 12:
            return start.replace(year=start.year + 1, month=1)
        return start.replace(month=start.month + 1)
    if group_by == "year":
        return start.replace(year=start.year + 1)
    return start + timedelta(days=1)


def period_key(start: date, group_by: str) -> str:
    if group_by == "month":
        return start.strftime("%Y-%m")
    if group_by == "year":
        return str(start.year)
    return start.isoformat()


def period_label(start: date, group_by: str) -> str:
    if group_by == "week":
        return f"Week of {start.month}/{start.day}/{start.year}"
    if group_by == "month":
        return start.strftime("%B %Y")
    if group_by == "year":
        return str(start.year)
    return f"{start.month}/{start.day}/{start.year}"


def period_count(first: datetime, last: datetime, group_by: str) -> int:
    """Number of periods ``iter_periods`` would return, without building them."""
    start = period_start(first, group_by)
    final = period_start(last, group_by)
    if final < start:
        return 0
    if group_by == "month":
        return (final.year - start.year) * 12 + final.month - start.month + 1
    if group_by == "year":
        return final.year - start.year + 1
    days = (final - start).days
    if group_by == "week":
        return days // 7 + 1
    return days + 1


def check_series_span(first: datetime, last: datetime, group_by: str) -> None:
    count = period_count(first, last, group_by)
    if count > MAX_SERIES_PERIODS:
        raise InvalidInput(
            f"Date range too large for groupBy={group_by}: {count} periods "
            f"(at most {MAX_SERIES_PERIODS}). Narrow the range or use a coarser groupBy.",
            {"field": "groupBy", "periods": count, "maxPeriods": MAX_SERIES_PERIODS},
        )


def check_range_for_series(date_range: DateRange, group_by: Optional[str]) -> None:
    """Reject a bounded range whose series would be too long, before querying."""
    if group_by and date_range.start is not None and date_range.end is not None:
        check_series_span(
            date_range.start, date_range.end - timedelta(microseconds=1), group_by
        )


def iter_periods(first: datetime, last: datetime, group_by: str) -> List[Tuple[date, str, str]]:
    """Every period from the one containing ``first`` to the one containing ``last``."""
    check_series_span(first, last, group_by)
    periods = []
    current = period_start(first, group_by)
    final = period_start(last, group_by)
    while current <= final:
        periods.append((current, period_key(current, group_by), period_label(current, group_by)))
        current = next_period(current, group_by)
    return periods
