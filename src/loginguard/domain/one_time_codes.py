"""ABOUTME: One-time code domain model for SMS and email verification codes
ABOUTME: Tracks issuance time, single use, failed submissions and recent issues for throttling"""

import secrets
from datetime import UTC, datetime, timedelta

from .value_objects import OtpChannel

VALIDITY = {
    OtpChannel.SMS: timedelta(minutes=5),
    OtpChannel.EMAIL: timedelta(minutes=10),
}
MAX_FAILED_ATTEMPTS = 5
RECENT_ISSUES_KEPT = 10


def generate_otp_code(length: int = 6) -> str:
    """Generate a random numeric code using a cryptographically secure source."""
    return "".join(secrets.choice("0123456789") for _ in range(length))


class OneTimeCode:
    """The most recently issued code for a (channel, target) pair."""

    def __init__(
        self,
        channel: OtpChannel,
        target: str,
        code: str,
        issued_at: datetime | None = None,
        used: bool = False,
        failed_attempts: int = 0,
        recent_issues: list[str] | None = None,
    ):
        self.channel = channel
        self.target = target
        self.code = code
        self.issued_at = issued_at or datetime.now(UTC)
        self.used = used
        self.failed_attempts = failed_attempts
        # ISO timestamps so the list can live in a JSON column
        self.recent_issues = list(recent_issues or [])

    @classmethod
    def issue(cls, channel: OtpChannel, target: str, previous: "OneTimeCode | None" = None) -> "OneTimeCode":
        """Create a fresh code, carrying the issue history of the code it replaces."""
        now = datetime.now(UTC)
        history = previous.recent_issues if previous else []
        return cls(
            channel=channel,
            target=target,
            code=generate_otp_code(),
            issued_at=now,
            recent_issues=[*history, now.isoformat()][-RECENT_ISSUES_KEPT:],
        )

    @property
    def validity(self) -> timedelta:
        return VALIDITY[self.channel]

    @property
    def expires_at(self) -> datetime:
        return self.issued_at + self.validity

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(UTC)
        return now - self.issued_at >= self.validity

    def is_exhausted(self) -> bool:
        """Too many wrong submissions, the code can no longer be used."""
        return self.failed_attempts >= MAX_FAILED_ATTEMPTS

    def issues_since(self, since: datetime) -> list[datetime]:
        return [issued for issued in map(datetime.fromisoformat, self.recent_issues) if issued > since]

    def record_failure(self) -> None:
        self.failed_attempts += 1

    def mark_as_used(self) -> None:
        if self.used:
            raise ValueError("One-time code has already been used")
        self.used = True

    def release(self) -> None:
        """Undo mark_as_used() for a code whose login did not complete."""
        if not self.used:
            raise ValueError("One-time code has not been used")
        self.used = False

    def time_until_expiry(self, now: datetime | None = None) -> timedelta:
        now = now or datetime.now(UTC)
        return max(self.expires_at - now, timedelta(0))

    def __repr__(self) -> str:
        return f"<OneTimeCode {self.channel.value}:{self.target} issued {self.issued_at.isoformat()} used={self.used}>"
