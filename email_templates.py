"""Email templates for TeamCertify expiry notifications."""
from html import escape

FOOTER_TEXT = "This is an automated message from TeamCertify. Please do not reply to this email."

BASE_STYLE = """
        body {{
            font-family: Arial, sans-serif;
            line-height: 1.6;
            color: #333333;
            max-width: 600px;
            margin: 0 auto;
            padding: 20px;
        }}
        .panel {{
            background-color: #f8f9fa;
            padding: 30px;
            border-radius: 10px;
            border-left: 5px solid {accent};
        }}
        .box {{
            background-color: #ffffff;
            padding: 20px;
            border-radius: 5px;
            margin: 20px 0;
            border: 1px solid #dee2e6;
        }}
        .btn {{
            display: inline-block;
            color: #ffffff;
            padding: 12px 24px;
            text-decoration: none;
            border-radius: 5px;
            font-weight: bold;
            margin-right: 10px;
        }}
        .btn-primary {{ background-color: #007bff; }}
        .btn-secondary {{ background-color: #28a745; }}
        .footer {{
            margin-top: 30px;
            padding-top: 12px;
            border-top: 1px solid #dee2e6;
            font-size: 12px;
            color: #6c757d;
        }}
"""


def staff_expiry_email(staff_name: str, certification_name: str,
                       certification_url: str) -> tuple[str, str]:
    """
    Reminder sent to the staff member whose certification expires today.

    Returns:
        (html_content, text_content)
    """
    text = (f"Dear {staff_name},\n\n"
            f"Your qualification \"{certification_name}\" is expiring today. "
            f"Please take action to renew it.\n\n"
            f"View details: {certification_url}\n\n"
            f"{FOOTER_TEXT}")

    html = f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Certification Expiry Reminder</title>
    <style>{BASE_STYLE.format(accent='#dc3545')}
    </style>
</head>
<body>
    <div class="panel">
        <h2 style="color: #dc3545; margin-top: 0;">Certification Expiry Notice</h2>
        <p>Dear {escape(staff_name)},</p>
        <p>This is an important reminder that your qualification <strong>"{escape(certification_name)}"</strong> is expiring today.</p>
        <div class="box">
            <h3 style="margin-top: 0; color: #495057;">Action Required</h3>
            <p>Please take immediate action to renew this certification to maintain your compliance status.</p>
        </div>
        <p><a href="{escape(certification_url)}" class="btn btn-primary">View Certification Details</a></p>
        <p>If you have any questions, please contact your administrator.</p>
        <div class="footer">{FOOTER_TEXT}</div>
    </div>
</body>
</html>
"""
    return html, text


def admin_expiry_alert(staff_name: str, certification_name: str,
                       certification_url: str, staff_url: str) -> tuple[str, str]:
    """
    Alert sent to the account administrator for one expiring certification.

    Returns:
        (html_content, text_content)
    """
    text = (f"Certification Expiry Alert: {staff_name}'s qualification "
            f"\"{certification_name}\" is expiring today.\n\n"
            f"View certification: {certification_url}\n"
            f"View staff profile: {staff_url}\n\n"
            "Please follow up with the staff member to ensure compliance is maintained.")

    html = f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Certification Expiry Alert</title>
    <style>{BASE_STYLE.format(accent='#ffc107')}
    </style>
</head>
<body>
    <div class="panel">
        <h2 style="color: #856404; margin-top: 0;">Certification Expiry Alert</h2>
        <p>Dear Administrator,</p>
        <p>A staff member's certification is expiring today and requires attention:</p>
        <div class="box">
            <h3 style="margin-top: 0; color: #495057;">Expiry Details</h3>
            <p><strong>Staff Member:</strong> {escape(staff_name)}</p>
            <p><strong>Certification:</strong> {escape(certification_name)}</p>
            <p><strong>Expiry Date:</strong> Today</p>
        </div>
        <p>
            <a href="{escape(certification_url)}" class="btn btn-primary">View Certification</a>
            <a href="{escape(staff_url)}" class="btn btn-secondary">View Staff Profile</a>
        </p>
        <p>Please follow up with the staff member to ensure compliance is maintained.</p>
        <div class="footer">This is an automated message from TeamCertify.</div>
    </div>
</body>
</html>
"""
    return html, text


def staff_subject(certification_name: str) -> str:
    return f'Your Qualification "{certification_name}" is Expiring Today'


def admin_subject(staff_name: str, certification_name: str) -> str:
    return f"Certification Expiry Alert: {staff_name} - {certification_name}"
