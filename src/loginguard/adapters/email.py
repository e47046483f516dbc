"""ABOUTME: Email adapter implementations for sending verification codes
ABOUTME: Supports SMTP and console logging backends"""

import logging
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage
from email.utils import formataddr

logger = logging.getLogger(__name__)


class EmailAdapter(ABC):
    """Abstract base class for email sending adapters."""

    @abstractmethod
    def send_email(self, to: str, subject: str, text_body: str) -> bool:
        """Send a plain text email to a single recipient.

        Returns:
            True if email sent successfully, False otherwise
        """
        pass


class ConsoleEmailAdapter(EmailAdapter):
    """Email adapter that logs emails to console instead of sending them.

    Useful for development and testing environments.
    """

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []

    def send_email(self, to: str, subject: str, text_body: str) -> bool:
        self.sent.append((to, subject, text_body))
        logger.info(f"EMAIL (Console):\n  To: {to}\n  Subject: {subject}\n  Body: {text_body}")
        return True


class SMTPEmailAdapter(EmailAdapter):
    """Email adapter that sends emails via SMTP."""

    def __init__(
        self,
        host: str,
        port: int,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        default_from_email: str = "",
        default_from_name: str = "",
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.default_from_email = default_from_email
        self.default_from_name = default_from_name

    def _build_message(self, to: str, subject: str, text_body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = formataddr((self.default_from_name, self.default_from_email))
        msg["To"] = to
        msg.set_content(text_body)
        return msg

    def send_email(self, to: str, subject: str, text_body: str) -> bool:
        msg = self._build_message(to, subject, text_body)
        try:
            with smtplib.SMTP(self.host, self.port) as server:
                if self.use_tls:
                    server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(msg)
        except smtplib.SMTPException as e:
            logger.error(f"SMTP error sending email: {e}")
            return False
        except OSError as e:
            logger.error(f"Could not connect to SMTP server {self.host}:{self.port}: {e}")
            return False

        logger.info("Email sent successfully")
        return True
