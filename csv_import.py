"""
Bulk import of staff certifications from CSV.

The upload is checked in three passes before anything is written: file
(name/size), structure (required columns) and rows (field formats). Only a
file that passes all three is handed to import_rows(), which upserts staff
and certificate templates and inserts the certifications in batches.
"""
import csv
import io
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

REQUIRED_COLUMNS = [
    'staff_full_name', 'staff_email', 'certification_name', 'certification_expiry_date'
]
OPTIONAL_COLUMNS = [
    'staff_job_title', 'certification_issue_date', 'certification_notes',
    'certification_document_url', 'validity_period_months'
]

MAX_ROWS = 1000
MAX_FILE_BYTES = 10 * 1024 * 1024
BATCH_SIZE = 50
DEFAULT_VALIDITY_MONTHS = 12

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')


@dataclass
class RowError:
    row: Optional[int]
    messages: list
    data: dict = field(default_factory=dict)


@dataclass
class ImportResults:
    success: int = 0
    errors: list = field(default_factory=list)
    staff_created: int = 0
    templates_created: int = 0
    certifications_created: int = 0

    def add_error(self, row_num, row, message):
        self.errors.append({'row': row_num, 'data': row, 'error': message})

    def to_dict(self) -> dict:
        return {
            'success': self.success,
            'errors': self.errors,
            'staffCreated': self.staff_created,
            'templatesCreated': self.templates_created,
            'certificationsCreated': self.certifications_created,
        }


def read_csv_upload(file_storage):
    """Return (headers, rows) with trimmed header names and blank lines dropped."""
    if not file_storage:
        raise ValueError('No file provided')
    content = file_storage.read()
    try:
        text = content.decode('utf-8-sig')
    except UnicodeDecodeError:
        text = content.decode('utf-8', errors='ignore')
    reader = csv.reader(io.StringIO(text))
    try:
        headers = [h.strip() for h in next(reader)]
    except StopIteration:
        return [], []
    rows = []
    for values in reader:
        if not any((v or '').strip() for v in values):
            continue
        padded = list(values) + [''] * (len(headers) - len(values))
        rows.append(dict(zip(headers, padded)))
    return headers, rows


def check_upload(filename: Optional[str], size: Optional[int]) -> Optional[str]:
    if not filename or not filename.lower().endswith('.csv'):
        return 'Please upload a CSV file'
    if size is not None and size > MAX_FILE_BYTES:
        return 'File size must be less than 10MB'
    return None


def validate_structure(headers) -> list:
    missing = [c for c in REQUIRED_COLUMNS if c not in headers]
    if missing:
        return [f"Missing required columns: {', '.join(missing)}"]
    return []


def _field(row, key) -> str:
    return (row.get(key) or '').strip()


def _is_calendar_date(value: str) -> bool:
    try:
        date.fromisoformat(value)
        return True
    except ValueError:
        return False


def validate_row(row: dict) -> list:
    errors = []
    if not _field(row, 'staff_full_name'):
        errors.append('Staff name is required')
    email = _field(row, 'staff_email')
    if not email:
        errors.append('Staff email is required')
    elif not EMAIL_PATTERN.match(email):
        errors.append('Invalid email format')
    if not _field(row, 'certification_name'):
        errors.append('Certification name is required')
    expiry = _field(row, 'certification_expiry_date')
    if not expiry:
        errors.append('Certification expiry date is required')
    elif not DATE_PATTERN.match(expiry):
        errors.append('Expiry date must be in YYYY-MM-DD format')
    elif not _is_calendar_date(expiry):
        errors.append('Expiry date is not a valid calendar date')
    issue = _field(row, 'certification_issue_date')
    if issue and (not DATE_PATTERN.match(issue) or not _is_calendar_date(issue)):
        errors.append('Issue date must be in YYYY-MM-DD format')
    validity = _field(row, 'validity_period_months')
    if validity:
        try:
            months = int(validity)
        except ValueError:
            months = 0
        if months <= 0:
            errors.append('Validity period must be a positive number')
    return errors


def validate_rows(rows) -> list:
    """Per-row errors; row numbers count the header as line 1."""
    errors = []
    for index, row in enumerate(rows):
        messages = validate_row(row)
        if messages:
            errors.append(RowError(row=index + 2, messages=messages, data=row))
    return errors


def validate_upload(headers, rows) -> list:
    """Every problem that blocks the import, as RowError entries (row=None for file-level ones)."""
    structure = validate_structure(headers)
    if structure:
        return [RowError(row=None, messages=structure)]
    row_errors = validate_rows(rows)
    if row_errors:
        return row_errors
    if not rows:
        return [RowError(row=None, messages=['CSV file is empty'])]
    if len(rows) > MAX_ROWS:
        return [RowError(row=None, messages=[f'Maximum {MAX_ROWS} rows allowed per import'])]
    return []


def unique_staff_emails(rows) -> set:
    return {_field(r, 'staff_email').lower() for r in rows if _field(r, 'staff_email')}


def check_staff_limit(limits, rows) -> Optional[str]:
    """Refuse the import when the file would take the account past its plan's staff allowance."""
    remaining = limits.remaining()
    if remaining is None:
        return None
    new_count = len(unique_staff_emails(rows))
    if new_count > remaining:
        return (f"Staff limit exceeded. Your {limits.plan_name} plan allows {limits.staff_limit} "
                f"staff members. You currently have {limits.current_staff_count} and are trying "
                f"to add {new_count} more.")
    return None


def error_report_csv(errors) -> str:
    """Downloadable CSV of failed import rows."""
    sio = io.StringIO()
    writer = csv.writer(sio, lineterminator='\n')
    writer.writerow(['Row', 'Error', 'Staff Name', 'Staff Email', 'Certification'])
    for err in errors:
        data = err.get('data') or {}
        writer.writerow([
            err.get('row', ''),
            err.get('error', ''),
            data.get('staff_full_name', ''),
            data.get('staff_email', ''),
            data.get('certification_name', ''),
        ])
    return sio.getvalue()


def error_report_filename(today: Optional[date] = None) -> str:
    if today is None:
        today = date.today()
    return f'import-errors-{today.isoformat()}.csv'


def _first(res):
    return res.data[0] if res and res.data else None


def _import_row(client, user_id, row, results: ImportResults, row_num):
    email = _field(row, 'staff_email').lower()
    name = _field(row, 'certification_name')

    existing_staff = _first(client.table('staff').select('id')
                            .eq('user_id', user_id).eq('email', email)
                            .limit(1).execute())
    try:
        staff = _first(client.table('staff').upsert({
            'user_id': user_id,
            'email': email,
            'full_name': _field(row, 'staff_full_name'),
            'job_title': _field(row, 'staff_job_title') or None,
        }, on_conflict='user_id,email').execute())
    except Exception as e:
        results.add_error(row_num, row, f'Failed to create/update staff: {e}')
        return
    if not staff:
        results.add_error(row_num, row, 'Failed to create/update staff: no row returned')
        return
    if not existing_staff:
        results.staff_created += 1

    validity = _field(row, 'validity_period_months')
    validity_months = int(validity) if validity else DEFAULT_VALIDITY_MONTHS
    existing_template = _first(client.table('certification_templates').select('id')
                               .eq('user_id', user_id).eq('name', name)
                               .limit(1).execute())
    try:
        template = _first(client.table('certification_templates').upsert({
            'user_id': user_id,
            'name': name,
            'validity_period_months': validity_months,
        }, on_conflict='user_id,name').execute())
    except Exception as e:
        results.add_error(row_num, row, f'Failed to create certification template: {e}')
        return
    if not template:
        results.add_error(row_num, row, 'Failed to create certification template: no row returned')
        return
    if not existing_template:
        results.templates_created += 1

    issue_date = _field(row, 'certification_issue_date') or None
    query = (client.table('staff_certifications').select('id')
             .eq('user_id', user_id)
             .eq('staff_id', staff['id'])
             .eq('template_id', template['id']))
    if issue_date:
        query = query.eq('issue_date', issue_date)
    else:
        query = query.is_('issue_date', 'null')
    existing_cert = _first(query.limit(1).execute())

    if not existing_cert:
        try:
            client.table('staff_certifications').insert({
                'user_id': user_id,
                'staff_id': staff['id'],
                'template_id': template['id'],
                'issue_date': issue_date,
                'expiry_date': _field(row, 'certification_expiry_date'),
                'notes': _field(row, 'certification_notes') or None,
                'document_url': _field(row, 'certification_document_url') or None,
            }).execute()
        except Exception as e:
            results.add_error(row_num, row, f'Failed to create certification: {e}')
            return
        results.certifications_created += 1

    results.success += 1


def import_rows(client, user_id, rows, batch_size: int = BATCH_SIZE) -> ImportResults:
    """
    Write validated CSV rows for one account.

    A row that fails is recorded in results.errors and the import moves on;
    rows already imported stay imported.
    """
    results = ImportResults()
    for i in range(0, len(rows), batch_size):
        batch = rows[i:i + batch_size]
        for offset, row in enumerate(batch):
            row_num = i + offset + 2
            messages = validate_row(row)
            if messages:
                results.add_error(row_num, row, '; '.join(messages))
                continue
            try:
                _import_row(client, user_id, row, results, row_num)
            except Exception as e:
                results.add_error(row_num, row, f'Unexpected error: {e}')
    return results
