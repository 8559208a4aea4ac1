"""Certification rows as read from the v_certifications_with_status view."""
import csv
import io
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Optional

STATUS_UP_TO_DATE = 'Up-to-Date'
STATUS_EXPIRING_SOON = 'Expiring Soon'
STATUS_EXPIRED = 'Expired'

# Statuses that put a certification in the dashboard's action table
ACTION_STATUSES = frozenset({STATUS_EXPIRING_SOON, STATUS_EXPIRED})

EXPORT_COLUMNS = [
    'Staff Name', 'Job Title', 'Certification', 'Issue Date',
    'Expiry Date', 'Status', 'Document URL'
]


def parse_iso_date(value) -> Optional[date]:
    """Return a date for an ISO string/date/datetime, or None when it can't be read."""
    if value in (None, ''):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value).strip()).date()
    except ValueError:
        return None


def _text(value) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


@dataclass(frozen=True)
class CertificationRecord:
    id: str
    staff_id: Optional[str]
    staff_name: str
    template_id: Optional[str]
    template_name: str
    status: Optional[str]
    expiry_date: Optional[str] = None
    staff_job_title: Optional[str] = None
    issue_date: Optional[str] = None
    document_url: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> 'CertificationRecord':
        """Narrow a raw view row.

        expiry_date becomes a bare YYYY-MM-DD string whenever it can be read,
        so chart bucketing and the action-table range compare the same value.
        Unreadable values are kept as-is and never match a bar.
        """
        expiry = row.get('expiry_date')
        parsed = parse_iso_date(expiry)
        if parsed is not None:
            expiry = parsed.isoformat()
        return cls(
            id=str(row.get('id')),
            staff_id=_text(row.get('staff_id')),
            staff_name=_text(row.get('staff_name')) or '',
            template_id=_text(row.get('template_id')),
            template_name=_text(row.get('template_name')) or '',
            status=_text(row.get('status')),
            expiry_date=_text(expiry),
            staff_job_title=_text(row.get('staff_job_title')),
            issue_date=_text(row.get('issue_date')),
            document_url=_text(row.get('document_url')),
        )

    @property
    def needs_action(self) -> bool:
        return self.status in ACTION_STATUSES

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'staff_id': self.staff_id,
            'staff_name': self.staff_name,
            'template_id': self.template_id,
            'template_name': self.template_name,
            'status': self.status,
            'expiry_date': self.expiry_date,
            'staff_job_title': self.staff_job_title,
            'issue_date': self.issue_date,
            'document_url': self.document_url,
        }


def records_from_rows(rows: Iterable[dict]) -> list:
    """Convert view rows, dropping anything that isn't a mapping."""
    records = []
    for row in rows or []:
        if not isinstance(row, dict):
            continue
        records.append(CertificationRecord.from_row(row))
    return records


def summarize_statuses(records: Iterable[CertificationRecord]) -> dict:
    """Dashboard metric cards: green/amber/red counts."""
    metrics = {'green': 0, 'amber': 0, 'red': 0}
    for r in records:
        if r.status == STATUS_UP_TO_DATE:
            metrics['green'] += 1
        elif r.status == STATUS_EXPIRING_SOON:
            metrics['amber'] += 1
        elif r.status == STATUS_EXPIRED:
            metrics['red'] += 1
    return metrics


def sort_by_expiry(records: Iterable[CertificationRecord]) -> list:
    return sorted(records, key=lambda r: r.expiry_date or '9999-99-99')


def staff_options(records: Iterable[CertificationRecord]) -> list:
    """Distinct (staff_id, staff_name) pairs ordered by name, for the chart's staff dropdown."""
    seen = {}
    for r in records:
        if r.staff_id and r.staff_id not in seen:
            seen[r.staff_id] = r.staff_name
    return sorted(seen.items(), key=lambda item: item[1].lower())


def template_options(records: Iterable[CertificationRecord]) -> list:
    seen = {}
    for r in records:
        if r.template_id and r.template_id not in seen:
            seen[r.template_id] = r.template_name
    return sorted(seen.items(), key=lambda item: item[1].lower())


def export_csv(records: Iterable[CertificationRecord]) -> str:
    """Render the compliance export. Every value is quoted; a missing document URL is written as N/A."""
    sio = io.StringIO()
    sio.write(','.join(EXPORT_COLUMNS) + '\n')
    writer = csv.writer(sio, quoting=csv.QUOTE_ALL, lineterminator='\n')
    for r in records:
        writer.writerow([
            r.staff_name or '',
            r.staff_job_title or '',
            r.template_name or '',
            r.issue_date or '',
            r.expiry_date or '',
            r.status or '',
            r.document_url or 'N/A',
        ])
    return sio.getvalue()


def export_filename(today: Optional[date] = None) -> str:
    if today is None:
        today = datetime.now().date()
    return f'compliance_export_{today.isoformat()}.csv'
