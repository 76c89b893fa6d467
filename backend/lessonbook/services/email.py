"""
Email delivery.

``console`` logs the message (development, tests); ``resend`` sends through
the Resend API.
"""

import logging
import re
from typing import Any, Dict, Optional

import resend

from ..core.config import settings
from ..core.exceptions import ServiceException


class EmailService:
    def __init__(self, provider: Optional[str] = None):
        self.provider = provider or settings.email_provider
        self.from_email = settings.from_email
        self.logger = logging.getLogger(self.__class__.__name__)
        if self.provider == "resend":
            if not settings.resend_api_key:
                raise ServiceException("Resend API key not configured")
            resend.api_key = settings.resend_api_key

    def send_email(self, to_email: str, subject: str, html_content: str) -> Dict[str, Any]:
        """
        Send one email.

        Raises:
            ServiceException: If the provider rejects or fails the send
        """
        if self.provider == "console":
            self.logger.info(f"[console email] to={to_email} subject={subject}")
            return {"id": None, "provider": "console"}

        email_data = {
            "from": self.from_email,
            "to": to_email,
            "subject": subject,
            "html": html_content,
            "text": self._html_to_text(html_content),
        }
        try:
            response = resend.Emails.send(email_data)
        except Exception as e:
            self.logger.error(f"Failed to send email to {to_email}: {type(e).__name__}: {e}")
            raise ServiceException(f"Failed to send email: {e}") from e
        self.logger.info(f"Email sent successfully to {to_email} - Subject: {subject}")
        return dict(response) if response else {}

    @staticmethod
    def _html_to_text(html: str) -> str:
        text = re.sub(r"<(br|/p|/div|/h\d|/li)\s*/?>", "\n", html, flags=re.IGNORECASE)
        text = re.sub(r"<[^>]+>", "", text)
        return re.sub(r"\n\s*\n+", "\n\n", text).strip()
