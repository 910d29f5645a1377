# core/email_utils.py

from datetime import datetime
from typing import Optional

from core.config import settings
from core.notifications import send_email
from core.logging_config import logger


def send_invitation_email(email: str, url: str, expires_at: datetime, name: Optional[str] = None):
    """
    Sends the invitation link using the main SMTP sender.
    """

    subject = f"{settings.PROJECT_NAME} – You have been invited"
    body = f"""
Hello {name or email},

You have been invited to the document control system.

Open the link below to set your password and activate your account:

{url}

This link expires on {expires_at.strftime('%Y-%m-%d %H:%M UTC')}.
"""

    send_email(subject=subject, body=body, to=email)

    logger.info(f"Invitation email sent to {email}")

    return True
