from flask import Flask, render_template, request, redirect, url_for, flash, jsonify, session, Response
from werkzeug.utils import secure_filename
from flask_cors import CORS
from flask_wtf.csrf import CSRFProtect
from supabase import create_client
from datetime import datetime, date
import hmac
import os
import jwt
from functools import wraps
from dotenv import load_dotenv

from certifications import (
    export_csv,
    export_filename,
    records_from_rows,
    sort_by_expiry,
    staff_options,
    summarize_statuses,
    template_options,
    STATUS_EXPIRED,
    STATUS_EXPIRING_SOON,
    STATUS_UP_TO_DATE,
)
from csv_import import (
    OPTIONAL_COLUMNS,
    REQUIRED_COLUMNS,
    check_staff_limit,
    check_upload,
    error_report_csv,
    error_report_filename,
    import_rows,
    read_csv_upload,
    validate_upload,
)
from expiry_chart import (
    Bucket,
    ChartFilters,
    DateRange,
    DateRangeFilter,
    InvalidRangeError,
    build_chart_data,
    compute_action_rows,
    format_bucket_label,
    toggle_filter,
)
from reminders import send_expiry_reminders
from trial_status import FeatureAccess, fetch_staff_limits, fetch_trial_status

# Load environment variables
load_dotenv()

app = Flask(__name__)

# Load configuration based on environment
env = os.getenv('FLASK_ENV', 'development')
from config import config as config_by_env
app.config.from_object(config_by_env.get(env, config_by_env['default']))

# Verify secret key is set
if not app.config.get('SECRET_KEY'):
    raise ValueError("FLASK_SECRET_KEY must be set in environment variables for security")

# CSRF Protection
csrf = CSRFProtect(app)

# CORS for the JSON API only. In production, set FRONTEND_URL to the dashboard's origin
allowed_origins = []
if env == 'production':
    frontend_url = app.config.get('FRONTEND_URL')
    if frontend_url:
        allowed_origins = [frontend_url]
else:
    allowed_origins = [
        'http://localhost:5000',
        'http://127.0.0.1:5000',
        'http://localhost:5173',  # Vite dev server
    ]

CORS(app, resources={
    r"/api/*": {
        "origins": allowed_origins if allowed_origins else False,
        "methods": ["GET"],
        "allow_headers": ["Content-Type", "Authorization"],
        "supports_credentials": False
    }
})

# Supabase configuration
SUPABASE_URL = app.config.get('SUPABASE_URL')
SUPABASE_KEY = app.config.get('SUPABASE_KEY')

if not SUPABASE_URL or not SUPABASE_KEY:
    raise ValueError("Please set SUPABASE_URL and SUPABASE_ANON_KEY (or SUPABASE_SERVICE_ROLE_KEY) environment variables")

supabase = create_client(SUPABASE_URL, SUPABASE_KEY)

STATUS_CHOICES = [STATUS_UP_TO_DATE, STATUS_EXPIRING_SOON, STATUS_EXPIRED]

# Query/form parameters that describe the chart view and survive redirects
CHART_PARAMS = ('staff', 'template', 'status', 'start', 'end')


def auth_client():
    """Fresh client for password sign-in, so the shared data client never holds a user session."""
    return create_client(SUPABASE_URL, app.config.get('SUPABASE_ANON_KEY') or SUPABASE_KEY)


def _chart_args(source):
    args = {}
    for key in CHART_PARAMS:
        value = (source.get(key) or '').strip()
        if value:
            args[key] = value
    return args


def _chart_filters(args):
    return ChartFilters(
        staff_id=args.get('staff'),
        template_id=args.get('template'),
        status=args.get('status'),
    )


def _load_certifications(user_id):
    res = (supabase.table('v_certifications_with_status')
           .select('*')
           .eq('user_id', user_id)
           .execute())
    return records_from_rows(res.data or [])


def _feature_access(user_id):
    return FeatureAccess(fetch_trial_status(supabase, user_id))


def _active_filter():
    return DateRangeFilter.from_dict(session.get('action_filter'))


def reminder_fallbacks():
    """Reminder settings used when the app_settings table has no value."""
    return {
        'admin_email': app.config.get('ADMIN_EMAIL'),
        'app_base_url': app.config.get('APP_URL'),
    }


# Jinja filter: expiry dates as Today / N days ago / YYYY-MM-DD
@app.template_filter('expiry_label')
def expiry_label(value):
    """Format an ISO date string or date/datetime as a friendly expiry label.
    - Today => "Today"
    - Past => "N days ago"
    - Future => YYYY-MM-DD
    """
    try:
        if value in (None, ''):
            return '-'
        if isinstance(value, datetime):
            d = value.date()
        elif isinstance(value, date):
            d = value
        else:
            d = datetime.fromisoformat(str(value)).date()
        today = datetime.now().date()
        diff = (today - d).days
        if diff == 0:
            return 'Today'
        if diff == 1:
            return '1 day ago'
        if diff > 0:
            return f"{diff} days ago"
        return d.isoformat()
    except ValueError:
        return str(value)


# Jinja filter: chart axis tick, day/month
@app.template_filter('bucket_tick')
def bucket_tick(value):
    return f"{value.day}/{value.month}"


@app.template_filter('bucket_label')
def bucket_label(bucket):
    return format_bucket_label(bucket.date, bucket.is_weekly)


# JWT token decorator for the JSON API (Supabase access tokens)
def token_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        token = request.headers.get('Authorization')
        if not token:
            return jsonify({'error': 'Token is missing'}), 401

        secret = app.config.get('SUPABASE_JWT_SECRET')
        if not secret:
            return jsonify({'error': 'Token verification is not configured'}), 500

        try:
            if token.startswith('Bearer '):
                token = token[7:]
            data = jwt.decode(token, secret, algorithms=['HS256'], audience='authenticated')
            current_user_id = data['sub']
        except jwt.ExpiredSignatureError:
            return jsonify({'error': 'Token has expired'}), 401
        except (jwt.InvalidTokenError, KeyError):
            return jsonify({'error': 'Token is invalid'}), 401

        return f(current_user_id, *args, **kwargs)
    return decorated


def feature_required(action, label):
    """Session login plus a trial/subscription check for one gated action."""
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            if 'user_id' not in session:
                return redirect(url_for('login'))
            access = _feature_access(session['user_id'])
            if not access.allows(action):
                flash(f"{access.button_text(label)}: your trial has ended or your subscription is inactive.")
                return redirect(url_for('dashboard'))
            return f(*args, **kwargs)
        return decorated
    return decorator


# --- Minimal routes (root + health) ---
@app.route('/')
def index():
    """Landing: if logged in, go to dashboard; else show the sign-in page."""
    if 'user_id' in session:
        return redirect(url_for('dashboard'))
    return redirect(url_for('login'))


@app.route('/healthz')
def healthz():
    return jsonify({'ok': True, 'time': datetime.utcnow().isoformat() + 'Z'}), 200


# -------------------------
# Auth routes
# -------------------------
@app.route('/login', methods=['GET', 'POST'])
def login():
    if request.method == 'POST':
        email = (request.form.get('email') or '').strip()
        password = request.form.get('password') or ''
        if not email or not password:
            flash('Email and password are required')
            return render_template('login.html', email=email)
        try:
            res = auth_client().auth.sign_in_with_password({'email': email, 'password': password})
            if res.user:
                session.clear()
                session.permanent = True  # Enable session lifetime
                session['user_id'] = res.user.id
                session['email'] = res.user.email
                return redirect(url_for('dashboard'))
            flash('Invalid email or password!')
        except Exception as e:
            flash(f'Login error: {e}')
    return render_template('login.html', email='')


@app.route('/logout')
def logout():
    session.clear()
    return redirect(url_for('login'))


# -------------------------
# Dashboard
# -------------------------
@app.route('/dashboard')
def dashboard():
    if 'user_id' not in session:
        return redirect(url_for('login'))
    user_id = session['user_id']
    chart_args = _chart_args(request.args)
    access = _feature_access(user_id)
    active_filter = _active_filter()

    try:
        records = _load_certifications(user_id)
    except Exception as e:
        flash(f'Error loading dashboard: {e}')
        records = []

    try:
        date_range = DateRange.parse(chart_args.get('start'), chart_args.get('end'))
    except ValueError as e:
        flash(str(e))
        date_range = DateRange.default()
        chart_args.pop('start', None)
        chart_args.pop('end', None)

    chart = []
    chart_error = None
    try:
        chart = build_chart_data(records, _chart_filters(chart_args), date_range)
    except InvalidRangeError as e:
        chart_error = f"Couldn't compute chart: {e}"
    except Exception as e:
        print(f"Error computing chart: {e}")
        chart_error = "Couldn't compute chart"

    action_rows = sort_by_expiry(compute_action_rows(records, active_filter))

    return render_template('dashboard.html',
                           metrics=summarize_statuses(records),
                           chart=chart,
                           chart_error=chart_error,
                           chart_is_weekly=date_range.is_weekly,
                           max_count=max((b.count for b in chart), default=0),
                           date_range=date_range,
                           chart_args=chart_args,
                           staff_choices=staff_options(records),
                           template_choices=template_options(records),
                           status_choices=STATUS_CHOICES,
                           action_rows=action_rows,
                           active_filter=active_filter,
                           highlight_cert=request.args.get('cert'),
                           access=access)


@app.route('/dashboard/chart-filter', methods=['POST'])
def toggle_chart_filter():
    """Bar click: select that bar's dates for the action table, or clear them if it was already selected."""
    if 'user_id' not in session:
        return redirect(url_for('login'))
    chart_args = _chart_args(request.form)
    raw_date = (request.form.get('date') or '').strip()
    is_weekly = (request.form.get('weekly') or '').strip().lower() in ('1', 'true', 'on', 'yes')
    try:
        bar_date = date.fromisoformat(raw_date)
    except ValueError:
        flash('Invalid chart selection.')
        return redirect(url_for('dashboard', **chart_args))

    selected = toggle_filter(_active_filter(), Bucket(bar_date, is_weekly=is_weekly))
    if selected is None:
        session.pop('action_filter', None)
    else:
        session['action_filter'] = selected.to_dict()
    return redirect(url_for('dashboard', **chart_args))


@app.route('/dashboard/chart-filter/clear', methods=['POST'])
def clear_chart_filter():
    if 'user_id' not in session:
        return redirect(url_for('login'))
    session.pop('action_filter', None)
    return redirect(url_for('dashboard', **_chart_args(request.form)))


@app.route('/certifications/<cert_id>/delete', methods=['POST'])
@feature_required('delete', 'Delete')
def delete_certification(cert_id):
    user_id = session['user_id']
    chart_args = _chart_args(request.form)
    try:
        # Ensure certification belongs to user
        owned = (supabase.table('staff_certifications')
                 .select('id')
                 .eq('id', cert_id)
                 .eq('user_id', user_id)
                 .execute())
        if not owned.data:
            flash('Certification not found')
            return redirect(url_for('dashboard', **chart_args))
        supabase.table('staff_certifications').delete().eq('id', cert_id).eq('user_id', user_id).execute()
        flash('Certification deleted')
    except Exception as e:
        flash(f'Error deleting certification: {e}')
    return redirect(url_for('dashboard', **chart_args))


# -------------------------
# CSV export / import
# -------------------------
@app.route('/export')
@feature_required('export', 'Export')
def export_certifications():
    try:
        records = _load_certifications(session['user_id'])
    except Exception as e:
        flash(f'Failed to fetch data for export: {e}')
        return redirect(url_for('dashboard'))
    return Response(
        export_csv(records),
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename={export_filename()}'}
    )


@app.route('/import', methods=['GET', 'POST'])
@feature_required('create', 'Import')
def import_data():
    page = dict(required_columns=REQUIRED_COLUMNS, optional_columns=OPTIONAL_COLUMNS,
                validation_errors=[], results=None, filename=None,
                error_report=None, error_report_name=None)
    if request.method == 'GET':
        return render_template('import.html', **page)

    user_id = session['user_id']
    file = request.files.get('file')
    if not file or file.filename == '':
        flash('Please choose a CSV file.')
        return redirect(url_for('import_data'))
    filename = secure_filename(file.filename)
    page['filename'] = filename

    file.stream.seek(0, os.SEEK_END)
    size = file.stream.tell()
    file.stream.seek(0)
    problem = check_upload(filename, size)
    if problem:
        flash(problem)
        return redirect(url_for('import_data'))

    try:
        headers, rows = read_csv_upload(file)
    except Exception as e:
        flash(f'Error reading CSV file: {e}')
        return redirect(url_for('import_data'))

    errors = validate_upload(headers, rows)
    if errors:
        page['validation_errors'] = errors
        return render_template('import.html', **page), 400

    limit_error = check_staff_limit(fetch_staff_limits(supabase, user_id), rows)
    if limit_error:
        flash(limit_error)
        return render_template('import.html', **page), 400

    results = import_rows(supabase, user_id, rows)
    print(f"Import of {filename}: {results.success} rows ok, {len(results.errors)} failed")
    if results.errors:
        flash(f'Import completed with {len(results.errors)} errors')
        page['error_report'] = error_report_csv(results.errors)
        page['error_report_name'] = error_report_filename()
    else:
        flash(f'Import completed: {results.staff_created} staff, '
              f'{results.certifications_created} certifications')
    page['results'] = results
    return render_template('import.html', **page)


@app.route('/import/template.csv')
def import_template():
    if 'user_id' not in session:
        return redirect(url_for('login'))
    header = ','.join(REQUIRED_COLUMNS + OPTIONAL_COLUMNS)
    example = 'Jane Smith,jane.smith@example.com,First Aid,2025-12-31,Care Assistant,2024-12-31,,,12'
    return Response(
        f'{header}\n{example}\n',
        mimetype='text/csv',
        headers={'Content-Disposition': 'attachment; filename=teamcertify_import_template.csv'}
    )


# -------------------------
# JSON API
# -------------------------
@app.route('/api/chart-data')
@token_required
def api_chart_data(current_user_id):
    chart_args = _chart_args(request.args)
    try:
        date_range = DateRange.parse(chart_args.get('start'), chart_args.get('end'))
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    try:
        records = _load_certifications(current_user_id)
    except Exception as e:
        return jsonify({'error': str(e)}), 500
    try:
        buckets = build_chart_data(records, _chart_filters(chart_args), date_range)
    except InvalidRangeError as e:
        return jsonify({'error': str(e)}), 400
    return jsonify({
        'buckets': [b.to_dict() for b in buckets],
        'isWeekly': date_range.is_weekly,
    })


@app.route('/api/action-rows')
@token_required
def api_action_rows(current_user_id):
    raw_start = (request.args.get('filter_start') or '').strip()
    raw_end = (request.args.get('filter_end') or '').strip()
    active_filter = None
    if raw_start or raw_end:
        try:
            start = date.fromisoformat(raw_start)
            end = date.fromisoformat(raw_end or raw_start)
        except ValueError:
            return jsonify({'error': 'Filter dates must be valid dates (YYYY-MM-DD).'}), 400
        if start > end:
            return jsonify({'error': str(InvalidRangeError(start, end))}), 400
        is_weekly = (request.args.get('filter_weekly') or '').lower() in ('1', 'true', 'yes')
        active_filter = DateRangeFilter(start, end, is_weekly)
    try:
        records = _load_certifications(current_user_id)
    except Exception as e:
        return jsonify({'error': str(e)}), 500
    rows = compute_action_rows(records, active_filter)
    return jsonify({
        'rows': [r.to_dict() for r in rows],
        'filter': active_filter.to_dict() if active_filter else None,
    })


# -------------------------
# Expiry reminders
# -------------------------
@app.route('/admin/send_reminders', methods=['POST'])
@csrf.exempt
def admin_send_reminders():
    """Trigger for the daily expiry reminders (scheduler hook, shared-secret header)."""
    expected = app.config.get('FUNCTION_AUTH_TOKEN')
    provided = request.headers.get('X-Function-Auth-Token')
    if not expected or not provided or not hmac.compare_digest(provided, expected):
        print("Unauthorized access attempt to send_reminders - custom token invalid.")
        return jsonify({'error': 'Unauthorized: Invalid or missing custom token'}), 401
    try:
        summary = send_expiry_reminders(supabase, reminder_fallbacks())
    except Exception as e:
        print(f"Error in send_reminders: {e}")
        return jsonify({'error': 'Internal server error', 'success': False}), 500
    return jsonify({
        'success': True,
        'message': 'Certification expiry reminders processed',
        **summary
    })


# Error handlers
@app.errorhandler(404)
def page_not_found(e):
    return render_template('404.html'), 404

@app.errorhandler(500)
def internal_server_error(e):
    return render_template('500.html'), 500

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    app.run(host='0.0.0.0', port=port, debug=app.config.get('DEBUG', False))
