import os
import re
import smtplib
from email.message import EmailMessage
from typing import Optional

SMTP_HOST = os.getenv("SMTP_HOST", "smtp-relay.brevo.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASS = os.getenv("SMTP_PASS")
FROM_EMAIL = os.getenv("FROM_EMAIL", "notifications@teamcertify.com")
FROM_NAME = os.getenv("FROM_NAME", "TeamCertify Notifications")

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MAX_EMAIL_LENGTH = 254


def is_valid_email(email: Optional[str]) -> bool:
    if not email:
        return False
    return bool(EMAIL_PATTERN.match(email)) and len(email) <= MAX_EMAIL_LENGTH


def mask_email(email: Optional[str]) -> str:
    """jane@example.com -> ja**@example.com, for log lines."""
    if not email or "@" not in email:
        return "***"
    local, domain = email.split("@", 1)
    return f"{local[:2]}{'*' * max(0, len(local) - 2)}@{domain}"


def send_email(to_email: str, subject: str, html: str, text: Optional[str] = None) -> None:
    """
    Send one reminder or alert email over SMTP.

    Raises RuntimeError when SMTP_USER, SMTP_PASS or FROM_EMAIL is unset,
    and ValueError for a malformed recipient. SMTP errors propagate.
    """
    if not (SMTP_USER and SMTP_PASS and FROM_EMAIL):
        raise RuntimeError("SMTP configuration missing (SMTP_USER/SMTP_PASS/FROM_EMAIL)")
    if not is_valid_email(to_email):
        raise ValueError(f"Invalid recipient address: {mask_email(to_email)}")

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = f"{FROM_NAME} <{FROM_EMAIL}>" if FROM_NAME else FROM_EMAIL
    msg["To"] = to_email

    if text:
        msg.set_content(text)
    else:
        msg.set_content("This email requires an HTML-capable client.")

    msg.add_alternative(html, subtype="html")

    with smtplib.SMTP(SMTP_HOST, SMTP_PORT) as server:
        if SMTP_PORT in (587, 25, 2525):
            server.starttls()
        server.login(SMTP_USER, SMTP_PASS)
        server.send_message(msg)
