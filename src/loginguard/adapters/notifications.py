"""ABOUTME: Notification channels that deliver one-time codes by SMS or email
ABOUTME: Failed deliveries are raised as DeliveryFailure so the caller can retry or switch channel"""

from abc import ABC, abstractmethod

import structlog

from loginguard.adapters.email import EmailAdapter
from loginguard.domain.one_time_codes import VALIDITY
from loginguard.domain.value_objects import OtpChannel
from loginguard.service_layer.exceptions import DeliveryFailure

log = structlog.get_logger(__name__)


def render_code_message(channel: OtpChannel, code: str, issuer: str = "LoginGuard") -> str:
    minutes = int(VALIDITY[channel].total_seconds() // 60)
    return (
        f"Your {issuer} verification code is: {code}\n"
        f"This code will expire in {minutes} minutes. "
        "If you didn't request it, you can ignore this message."
    )


class NotificationChannel(ABC):
    """Delivers a one-time code to a phone number or email address."""

    @abstractmethod
    def send(self, channel: OtpChannel, target: str, code: str) -> None:
        """Deliver `code` to `target`.

        Raises:
            DeliveryFailure: if the message could not be handed over for delivery
        """
        pass


class SmsSender(ABC):
    @abstractmethod
    def send_sms(self, phone_number: str, body: str) -> bool:
        pass


class ConsoleSmsSender(SmsSender):
    """Logs text messages instead of sending them. For development."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    def send_sms(self, phone_number: str, body: str) -> bool:
        self.sent.append((phone_number, body))
        log.info("SMS (Console)", to=phone_number, body=body)
        return True


class UnconfiguredSmsSender(SmsSender):
    """Refuses every text message. Used outside development when no SMS gateway is configured."""

    def send_sms(self, phone_number: str, body: str) -> bool:
        log.warning("no SMS gateway configured, text message not sent", to=phone_number)
        return False


class ConsoleNotificationChannel(NotificationChannel):
    """Logs codes to the console and remembers them, for development and tests."""

    def __init__(self) -> None:
        self.sent: list[tuple[OtpChannel, str, str]] = []

    def send(self, channel: OtpChannel, target: str, code: str) -> None:
        self.sent.append((channel, target, code))
        log.info("code delivered (console)", channel=channel.value, target=target, code=code)

    def last_code_for(self, target: str) -> str | None:
        for _channel, sent_target, code in reversed(self.sent):
            if sent_target == target:
                return code
        return None


class MessagingNotificationChannel(NotificationChannel):
    """Routes email codes through an EmailAdapter and SMS codes through an SmsSender."""

    def __init__(self, email_adapter: EmailAdapter, sms_sender: SmsSender, issuer: str = "LoginGuard"):
        self.email_adapter = email_adapter
        self.sms_sender = sms_sender
        self.issuer = issuer

    def send(self, channel: OtpChannel, target: str, code: str) -> None:
        body = render_code_message(channel, code, self.issuer)
        if channel == OtpChannel.EMAIL:
            delivered = self.email_adapter.send_email(
                to=target, subject=f"{self.issuer} verification code", text_body=body
            )
        else:
            delivered = self.sms_sender.send_sms(target, body)

        if not delivered:
            log.warning("code delivery failed", channel=channel.value)
            raise DeliveryFailure(channel=channel.value)
        log.info("code delivered", channel=channel.value)
