"""ABOUTME: Two-factor configuration, pending enrollment and enrollment request variants
ABOUTME: Contains the per-account second-factor state as plain Python objects"""

from dataclasses import dataclass, field
from datetime import UTC, datetime

from .value_objects import TwoFactorMethod


@dataclass(frozen=True, slots=True)
class TotpEnrollment:
    """Enroll with an authenticator app."""

    @property
    def method(self) -> TwoFactorMethod:
        return TwoFactorMethod.TOTP


@dataclass(frozen=True, slots=True)
class SmsEnrollment:
    """Enroll with codes sent by text message."""

    phone_number: str

    def __post_init__(self) -> None:
        if not self.phone_number.strip():
            raise ValueError("A phone number is required for SMS two-factor authentication")

    @property
    def method(self) -> TwoFactorMethod:
        return TwoFactorMethod.SMS


@dataclass(frozen=True, slots=True)
class EmailEnrollment:
    """Enroll with codes sent to a backup email address."""

    backup_email: str

    def __post_init__(self) -> None:
        if "@" not in self.backup_email:
            raise ValueError("A valid backup email address is required for email two-factor authentication")

    @property
    def method(self) -> TwoFactorMethod:
        return TwoFactorMethod.EMAIL


EnrollmentRequest = TotpEnrollment | SmsEnrollment | EmailEnrollment


@dataclass(slots=True, kw_only=True)
class EnrollmentSetup:
    """What the user needs to finish enrolling.

    For TOTP this carries the secret, the provisioning URI and a QR code, along
    with the recovery codes to show once. For SMS/email a code has been sent to
    `target` and the recovery codes are handed out on confirmation.
    """

    method: TwoFactorMethod
    target: str = ""
    secret: str = ""
    provisioning_uri: str = ""
    qr_code_data_url: str = ""
    recovery_codes: list[str] = field(default_factory=list)


@dataclass(slots=True)
class EnrollmentResult:
    enabled: bool
    recovery_codes: list[str]


class PendingEnrollment:
    """A started but not yet confirmed enrollment (the `enrolling` state)."""

    def __init__(
        self,
        email: str,
        method: TwoFactorMethod,
        secret_encrypted: str | None = None,
        phone_number: str | None = None,
        backup_email: str | None = None,
        recovery_codes_encrypted: str | None = None,
        created_at: datetime | None = None,
    ):
        self.email = email
        self.method = method
        self.secret_encrypted = secret_encrypted
        self.phone_number = phone_number
        self.backup_email = backup_email
        self.recovery_codes_encrypted = recovery_codes_encrypted
        self.created_at = created_at or datetime.now(UTC)

    @property
    def target(self) -> str:
        """The contact point out-of-band codes are delivered to."""
        if self.method == TwoFactorMethod.SMS:
            return self.phone_number or ""
        if self.method == TwoFactorMethod.EMAIL:
            return self.backup_email or ""
        return ""


class TwoFactorConfig:
    """Second-factor configuration for an account. At most one per account."""

    def __init__(
        self,
        email: str,
        method: TwoFactorMethod,
        recovery_code_hashes: list[str],
        secret_encrypted: str | None = None,
        phone_number: str | None = None,
        backup_email: str | None = None,
        used_recovery_code_hashes: list[str] | None = None,
        enabled: bool = True,
        enabled_at: datetime | None = None,
    ):
        if method == TwoFactorMethod.TOTP and not secret_encrypted:
            raise ValueError("TOTP configuration requires a secret")
        if method == TwoFactorMethod.SMS and not phone_number:
            raise ValueError("SMS configuration requires a phone number")
        if method == TwoFactorMethod.EMAIL and not backup_email:
            raise ValueError("Email configuration requires a backup email")

        self.email = email
        self.method = method
        self.secret_encrypted = secret_encrypted
        self.phone_number = phone_number
        self.backup_email = backup_email
        self.recovery_code_hashes = list(recovery_code_hashes)
        self.used_recovery_code_hashes = list(used_recovery_code_hashes or [])
        self.enabled = enabled
        self.enabled_at = enabled_at or datetime.now(UTC)

    @property
    def target(self) -> str:
        if self.method == TwoFactorMethod.SMS:
            return self.phone_number or ""
        if self.method == TwoFactorMethod.EMAIL:
            return self.backup_email or ""
        return ""

    def unused_recovery_code_hashes(self) -> list[str]:
        used = set(self.used_recovery_code_hashes)
        return [code_hash for code_hash in self.recovery_code_hashes if code_hash not in used]

    def recovery_codes_remaining(self) -> int:
        return len(self.unused_recovery_code_hashes())

    def use_recovery_code(self, code_hash: str) -> None:
        """Move a recovery code into the used set. A code can only be used once."""
        if code_hash not in self.recovery_code_hashes:
            raise ValueError("Unknown recovery code")
        if code_hash in self.used_recovery_code_hashes:
            raise ValueError("Recovery code has already been used")
        # reassign rather than append so JSON column changes are picked up
        self.used_recovery_code_hashes = [*self.used_recovery_code_hashes, code_hash]

    def release_recovery_code(self, code_hash: str) -> None:
        """Make a used recovery code usable again, when the login it was spent on did not complete."""
        if code_hash not in self.used_recovery_code_hashes:
            raise ValueError("Recovery code has not been used")
        self.used_recovery_code_hashes = [h for h in self.used_recovery_code_hashes if h != code_hash]

    def replace_recovery_codes(self, recovery_code_hashes: list[str]) -> None:
        self.recovery_code_hashes = list(recovery_code_hashes)
        self.used_recovery_code_hashes = []

    def __repr__(self) -> str:
        state = "enabled" if self.enabled else "disabled"
        return f"<TwoFactorConfig {self.email} {self.method.value} {state}>"
