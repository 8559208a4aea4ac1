"""
Expiry chart bucketing and the dashboard's action-table filter.

build_chart_data() turns the flat certification list into daily or weekly
buckets for the "Upcoming Certificate Expiries" bar chart.
compute_action_rows() and toggle_filter() keep the action table in step
with the bar the user clicked.

Everything here is pure: callers pass records in and get new values back.
Dates are datetime.date values (immutable), and ISO strings at the edges.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from certifications import CertificationRecord, parse_iso_date

DEFAULT_RANGE_DAYS = 30
# Ranges longer than this many days are charted by week
WEEKLY_THRESHOLD_DAYS = 90
WEEK_DAYS = 7


class InvalidRangeError(ValueError):
    """Raised when a chart range starts after it ends."""

    def __init__(self, start_date: date, end_date: date):
        self.start_date = start_date
        self.end_date = end_date
        super().__init__(
            f'Start date {start_date.isoformat()} is after end date {end_date.isoformat()}'
        )


def week_start(d: date) -> date:
    """Sunday on or before d."""
    return d - timedelta(days=(d.weekday() + 1) % 7)


def format_bucket_label(start: date, is_weekly: bool) -> str:
    """'Week of 9 Jun - 15 Jun' for weeks, 'Mon 10 Jun' for days."""
    if is_weekly:
        end = start + timedelta(days=WEEK_DAYS - 1)
        return f"Week of {start.day} {start.strftime('%b')} - {end.day} {end.strftime('%b')}"
    return f"{start.strftime('%a')} {start.day} {start.strftime('%b')}"


@dataclass(frozen=True)
class DateRange:
    start_date: date
    end_date: date

    @classmethod
    def default(cls, today: Optional[date] = None) -> 'DateRange':
        if today is None:
            today = datetime.now().date()
        return cls(today, today + timedelta(days=DEFAULT_RANGE_DAYS))

    @classmethod
    def parse(cls, start_raw: Optional[str], end_raw: Optional[str],
              today: Optional[date] = None) -> 'DateRange':
        """Build a range from query-string values; blanks fall back to the defaults.

        Raises ValueError for a value that isn't YYYY-MM-DD. Ordering is not
        checked here; build_chart_data() rejects start > end.
        """
        default = cls.default(today)
        start = default.start_date
        end = default.end_date
        if start_raw and start_raw.strip():
            try:
                start = date.fromisoformat(start_raw.strip())
            except ValueError:
                raise ValueError('Start date must be a valid date (YYYY-MM-DD).')
        if end_raw and end_raw.strip():
            try:
                end = date.fromisoformat(end_raw.strip())
            except ValueError:
                raise ValueError('End date must be a valid date (YYYY-MM-DD).')
        return cls(start, end)

    @property
    def days_difference(self) -> int:
        return (self.end_date - self.start_date).days

    @property
    def is_weekly(self) -> bool:
        return self.days_difference > WEEKLY_THRESHOLD_DAYS


@dataclass(frozen=True)
class ChartFilters:
    staff_id: Optional[str] = None
    template_id: Optional[str] = None
    status: Optional[str] = None

    @staticmethod
    def _active(value) -> bool:
        if value is None:
            return False
        s = str(value).strip()
        return s != '' and s.lower() != 'all'

    def matches(self, record: CertificationRecord) -> bool:
        if self._active(self.staff_id) and record.staff_id != self.staff_id:
            return False
        # ids can arrive as int from one side and str from the other
        if self._active(self.template_id) and str(record.template_id) != str(self.template_id):
            return False
        if self._active(self.status) and record.status != self.status:
            return False
        return True


@dataclass(frozen=True)
class CertDetail:
    staff_name: str
    template_name: str
    status: Optional[str]

    def to_dict(self) -> dict:
        return {
            'staff_name': self.staff_name,
            'template_name': self.template_name,
            'status': self.status,
        }


@dataclass(frozen=True)
class Bucket:
    date: date
    count: int = 0
    cert_details: tuple = field(default_factory=tuple)
    is_weekly: bool = False

    @property
    def end_date(self) -> date:
        if self.is_weekly:
            return self.date + timedelta(days=WEEK_DAYS - 1)
        return self.date

    @property
    def label(self) -> str:
        return format_bucket_label(self.date, self.is_weekly)

    def to_dict(self) -> dict:
        """Shape consumed by the chart front-end."""
        return {
            'date': self.date.isoformat(),
            'count': self.count,
            'certDetails': [d.to_dict() for d in self.cert_details],
            'isWeekly': self.is_weekly,
        }


def apply_filters(records: Iterable[CertificationRecord],
                  filters: Optional[ChartFilters] = None) -> list:
    if filters is None:
        return list(records)
    return [r for r in records if filters.matches(r)]


def _group_by_expiry(records: Iterable[CertificationRecord]) -> dict:
    """Map expiry date -> [CertDetail], in record order. Undated or unreadable rows are skipped."""
    grouped = {}
    for r in records:
        expiry = parse_iso_date(r.expiry_date)
        if expiry is None:
            continue
        grouped.setdefault(expiry, []).append(
            CertDetail(r.staff_name, r.template_name, r.status)
        )
    return grouped


def build_chart_data(records: Iterable[CertificationRecord],
                     filters: Optional[ChartFilters] = None,
                     date_range: Optional[DateRange] = None,
                     today: Optional[date] = None) -> list:
    """
    Bucket certification expiries for the bar chart.

    Args:
        records: every CertificationRecord loaded for the account
        filters: optional staff/template/status restriction
        date_range: inclusive range; defaults to today .. today + 30 days
        today: override for "today" (tests)

    Returns:
        list[Bucket] covering the whole range, one per day, or one per
        Sunday-started week when the range spans more than 90 days. Empty
        periods are present with a zero count.

    Raises:
        InvalidRangeError: start_date is after end_date
    """
    if date_range is None:
        date_range = DateRange.default(today)
    start, end = date_range.start_date, date_range.end_date
    if start > end:
        raise InvalidRangeError(start, end)

    by_day = _group_by_expiry(apply_filters(records, filters))

    if date_range.is_weekly:
        by_week = {}
        for day, details in by_day.items():
            by_week.setdefault(week_start(day), []).extend(details)
        buckets = []
        cur = week_start(start)
        while cur <= end:
            details = by_week.get(cur, [])
            buckets.append(Bucket(cur, len(details), tuple(details), True))
            cur += timedelta(days=WEEK_DAYS)
        return buckets

    buckets = []
    cur = start
    while cur <= end:
        details = by_day.get(cur, [])
        buckets.append(Bucket(cur, len(details), tuple(details), False))
        cur += timedelta(days=1)
    return buckets


@dataclass(frozen=True)
class DateRangeFilter:
    start_date: date
    end_date: date
    is_weekly: bool = False

    @classmethod
    def from_bucket(cls, bucket: Bucket) -> 'DateRangeFilter':
        return cls(bucket.date, bucket.end_date, bucket.is_weekly)

    @classmethod
    def from_dict(cls, data) -> Optional['DateRangeFilter']:
        """Rebuild a filter kept in the session; anything unreadable counts as no filter."""
        if not isinstance(data, dict):
            return None
        start = parse_iso_date(data.get('start_date'))
        end = parse_iso_date(data.get('end_date'))
        if start is None or end is None or start > end:
            return None
        return cls(start, end, bool(data.get('is_weekly')))

    def to_dict(self) -> dict:
        return {
            'start_date': self.start_date.isoformat(),
            'end_date': self.end_date.isoformat(),
            'is_weekly': self.is_weekly,
        }

    def same_range(self, other: Optional['DateRangeFilter']) -> bool:
        return (other is not None
                and self.start_date == other.start_date
                and self.end_date == other.end_date)

    def contains(self, expiry_date: Optional[str]) -> bool:
        # ISO YYYY-MM-DD strings order the same way the dates do
        if not expiry_date:
            return False
        return self.start_date.isoformat() <= expiry_date <= self.end_date.isoformat()

    @property
    def label(self) -> str:
        return format_bucket_label(self.start_date, self.is_weekly)


def compute_action_rows(records: Iterable[CertificationRecord],
                        active_filter: Optional[DateRangeFilter] = None) -> list:
    """Expiring Soon / Expired records, optionally limited to the selected bar's dates.

    Input order is kept; the dashboard sorts for display.
    """
    base = [r for r in records if r.needs_action]
    if active_filter is None:
        return base
    return [r for r in base if active_filter.contains(r.expiry_date)]


def toggle_filter(active_filter: Optional[DateRangeFilter],
                  bucket: Bucket) -> Optional[DateRangeFilter]:
    """Result of clicking a chart bar.

    Clicking the bar that produced the active filter clears it; any other
    bar replaces the filter.
    """
    selected = DateRangeFilter.from_bucket(bucket)
    if selected.same_range(active_filter):
        return None
    return selected
