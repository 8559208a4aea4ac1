"""
Expiry reminder emails.

For every certification that expires today (RPC get_expiring_certifications)
the staff member gets a reminder and the account admin gets an alert.
Run daily, from cron via send_notifications.py or through the
/admin/send_reminders hook.
"""
import time
from urllib.parse import urlencode

import mailer
from email_templates import admin_expiry_alert, admin_subject, staff_expiry_email, staff_subject

SEND_DELAY_SECONDS = 0.1


def load_settings(client, fallbacks: dict) -> dict:
    """admin_email / app_base_url from app_settings; missing or empty values keep the fallbacks."""
    settings = {
        'admin_email': fallbacks.get('admin_email'),
        'app_base_url': fallbacks.get('app_base_url'),
    }
    res = (client.table('app_settings')
           .select('key, value')
           .in_('key', ['admin_email', 'app_base_url'])
           .execute())
    for row in res.data or []:
        if row.get('key') in settings and row.get('value'):
            settings[row['key']] = row['value']
    return settings


def certification_links(base_url: str, staff_id, certification_id) -> tuple[str, str]:
    """Dashboard deep links: the staff member's chart view, and the same view focused on one cert."""
    base = base_url.rstrip('/')
    staff_url = f"{base}/dashboard?{urlencode({'staff': staff_id})}"
    cert_url = f"{base}/dashboard?{urlencode({'staff': staff_id, 'cert': certification_id})}"
    return cert_url, staff_url


def send_expiry_reminders(client, fallbacks: dict, delay: float = SEND_DELAY_SECONDS) -> dict:
    """
    Send today's expiry emails.

    fallbacks supplies admin_email and app_base_url when app_settings has none.

    Returns:
        {'total_certifications', 'emails_sent', 'emails_failed', 'failures'}
        where failures only ever name masked addresses.

    Raises:
        RuntimeError: settings or the expiring certifications couldn't be read
    """
    try:
        settings = load_settings(client, fallbacks)
    except Exception as e:
        print(f"Error fetching app settings: {e}")
        raise RuntimeError('Failed to fetch app settings') from e
    admin_email = settings['admin_email']
    base_url = settings['app_base_url']

    try:
        res = client.rpc('get_expiring_certifications').execute()
    except Exception as e:
        print(f"Error fetching expiring certifications: {e}")
        raise RuntimeError('Failed to fetch expiring certifications') from e
    certifications = res.data or []

    summary = {
        'total_certifications': len(certifications),
        'emails_sent': 0,
        'emails_failed': 0,
        'failures': [],
    }
    if not certifications:
        print("No certifications expiring today")
        return summary

    print(f"Found {len(certifications)} expiring certifications")
    for cert in certifications:
        staff_name = cert.get('staff_full_name') or 'there'
        staff_email = cert.get('staff_email')
        cert_name = cert.get('certification_name') or 'Certification'

        if not mailer.is_valid_email(staff_email) or not mailer.is_valid_email(admin_email):
            summary['emails_failed'] += 2
            summary['failures'].append(f"Invalid email addresses for {staff_name}")
            continue

        cert_url, staff_url = certification_links(
            base_url, cert.get('staff_id'), cert.get('certification_id')
        )

        try:
            html, text = staff_expiry_email(staff_name, cert_name, cert_url)
            mailer.send_email(staff_email, staff_subject(cert_name), html, text)
            summary['emails_sent'] += 1
            print(f"Sent staff reminder for {cert_name} to {mailer.mask_email(staff_email)}")
        except Exception as e:
            summary['emails_failed'] += 1
            summary['failures'].append(f"Staff email to {mailer.mask_email(staff_email)}")
            print(f"Failed to send staff reminder to {mailer.mask_email(staff_email)}: {e}")

        try:
            html, text = admin_expiry_alert(staff_name, cert_name, cert_url, staff_url)
            mailer.send_email(admin_email, admin_subject(staff_name, cert_name), html, text)
            summary['emails_sent'] += 1
            print(f"Sent admin alert for {staff_name}'s {cert_name}")
        except Exception as e:
            summary['emails_failed'] += 1
            summary['failures'].append(f"Admin email to {mailer.mask_email(admin_email)}")
            print(f"Failed to send admin alert to {mailer.mask_email(admin_email)}: {e}")

        if delay:
            time.sleep(delay)

    print(f"Expiry reminders complete: {summary['emails_sent']} sent, {summary['emails_failed']} failed")
    return summary
