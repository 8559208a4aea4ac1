#!/usr/bin/env python3
"""
Standalone script to send today's certification expiry reminders.
Run this via cron or a scheduler once a day.

Example cron entry (every day at 7am):
0 7 * * * cd /path/to/teamcertify && /path/to/venv/bin/python send_notifications.py
"""

import os
import sys
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Add current directory to path so we can import from app
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from app import reminder_fallbacks, supabase
from reminders import send_expiry_reminders

if __name__ == '__main__':
    print("Starting certification expiry reminder job...")
    try:
        summary = send_expiry_reminders(supabase, reminder_fallbacks())
    except RuntimeError as e:
        print(f"Job failed: {e}")
        sys.exit(1)
    print(f"Job complete. {summary['total_certifications']} expiring certification(s), "
          f"{summary['emails_sent']} email(s) sent, {summary['emails_failed']} failed.")
    sys.exit(1 if summary['emails_failed'] else 0)
