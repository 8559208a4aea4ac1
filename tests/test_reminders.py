import pytest

import mailer
from conftest import FakeSupabase
from email_templates import admin_expiry_alert, staff_expiry_email
from reminders import certification_links, load_settings, send_expiry_reminders

FALLBACKS = {'admin_email': 'admin@teamcertify.com', 'app_base_url': 'http://localhost:5000'}


@pytest.fixture
def sent(monkeypatch):
    outbox = []

    def fake_send(to_email, subject, html, text=None):
        outbox.append({'to': to_email, 'subject': subject, 'html': html, 'text': text})
    monkeypatch.setattr(mailer, 'send_email', fake_send)
    return outbox


def _db(*certs, settings=None):
    db = FakeSupabase()
    db.tables['app_settings'] = settings if settings is not None else [
        {'key': 'admin_email', 'value': 'boss@care.example.com'},
        {'key': 'app_base_url', 'value': 'https://app.teamcertify.com/'},
    ]
    db.rpc_results['get_expiring_certifications'] = list(certs)
    return db


def _cert(email='jane@example.com', **overrides):
    cert = {
        'certification_id': 'c1',
        'staff_id': 's1',
        'staff_full_name': 'Jane Smith',
        'staff_email': email,
        'certification_name': 'First Aid',
    }
    cert.update(overrides)
    return cert


def test_sends_staff_and_admin_email_per_certification(sent):
    summary = send_expiry_reminders(_db(_cert()), FALLBACKS, delay=0)

    assert summary == {'total_certifications': 1, 'emails_sent': 2, 'emails_failed': 0, 'failures': []}
    assert [m['to'] for m in sent] == ['jane@example.com', 'boss@care.example.com']
    assert sent[0]['subject'] == 'Your Qualification "First Aid" is Expiring Today'
    assert sent[1]['subject'] == 'Certification Expiry Alert: Jane Smith - First Aid'
    assert 'https://app.teamcertify.com/dashboard?staff=s1&cert=c1' in sent[0]['text']


def test_nothing_expiring(sent):
    summary = send_expiry_reminders(_db(), FALLBACKS, delay=0)

    assert summary['total_certifications'] == 0
    assert sent == []


def test_invalid_address_counts_both_emails_as_failed(sent):
    summary = send_expiry_reminders(_db(_cert(email='not-an-email')), FALLBACKS, delay=0)

    assert summary['emails_failed'] == 2
    assert summary['failures'] == ['Invalid email addresses for Jane Smith']
    assert sent == []


def test_send_failure_is_reported_with_masked_address(monkeypatch):
    def boom(to_email, subject, html, text=None):
        raise RuntimeError('smtp down')
    monkeypatch.setattr(mailer, 'send_email', boom)

    summary = send_expiry_reminders(_db(_cert()), FALLBACKS, delay=0)

    assert summary['emails_sent'] == 0
    assert summary['emails_failed'] == 2
    assert summary['failures'][0] == 'Staff email to ja**@example.com'
    assert all('jane@' not in f for f in summary['failures'])


def test_rpc_failure_raises(sent):
    db = _db()
    db.failing.add('get_expiring_certifications')

    with pytest.raises(RuntimeError, match='expiring certifications'):
        send_expiry_reminders(db, FALLBACKS, delay=0)


def test_settings_fall_back_to_configured_values():
    fallbacks = {'admin_email': 'ops@example.com', 'app_base_url': 'https://example.com'}

    settings = load_settings(_db(settings=[{'key': 'admin_email', 'value': ''}]), fallbacks)

    assert settings == {'admin_email': 'ops@example.com', 'app_base_url': 'https://example.com'}


def test_certification_links():
    cert_url, staff_url = certification_links('https://app.example.com/', 's 1', 'c1')

    assert staff_url == 'https://app.example.com/dashboard?staff=s+1'
    assert cert_url == 'https://app.example.com/dashboard?staff=s+1&cert=c1'


def test_templates_escape_names():
    html, text = staff_expiry_email('<Jane>', 'First Aid', 'https://x.example.com')
    assert '&lt;Jane&gt;' in html
    assert 'Dear <Jane>,' in text

    html, _ = admin_expiry_alert('Jane', 'A & B', 'https://x.example.com/c', 'https://x.example.com/s')
    assert 'A &amp; B' in html


def test_mask_and_validate_email():
    assert mailer.mask_email('jane@example.com') == 'ja**@example.com'
    assert mailer.mask_email(None) == '***'
    assert mailer.is_valid_email('a@b.co')
    assert not mailer.is_valid_email('a' * 250 + '@b.co')


def test_send_email_requires_smtp_config(monkeypatch):
    monkeypatch.setattr(mailer, 'SMTP_USER', None)

    with pytest.raises(RuntimeError, match='SMTP configuration missing'):
        mailer.send_email('a@b.co', 'Hi', '<p>Hi</p>')


def test_send_email_rejects_malformed_recipient(monkeypatch):
    monkeypatch.setattr(mailer, 'SMTP_USER', 'user')
    monkeypatch.setattr(mailer, 'SMTP_PASS', 'pass')

    with pytest.raises(ValueError, match='Invalid recipient'):
        mailer.send_email('not-an-address', 'Hi', '<p>Hi</p>')
