"""ABOUTME: Value objects and enums for LoginGuard domain models
ABOUTME: Defines second-factor methods, OTP channels, login states and normalisation helpers"""

from enum import Enum


class TwoFactorMethod(Enum):
    """Second-factor method an account can be enrolled with."""

    TOTP = "totp"
    SMS = "sms"
    EMAIL = "email"


class VerificationMethod(Enum):
    """Method a user may submit a second-factor code with at login."""

    TOTP = "totp"
    SMS = "sms"
    EMAIL = "email"
    RECOVERY = "recovery"


class OtpChannel(Enum):
    SMS = "sms"
    EMAIL = "email"


class LoginState(Enum):
    COLLECTING_CREDENTIALS = "collecting-credentials"
    AWAITING_SECOND_FACTOR = "awaiting-second-factor"
    AWAITING_ADDITIONAL_VERIFICATION = "awaiting-additional-verification"
    AUTHENTICATED = "authenticated"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (LoginState.AUTHENTICATED, LoginState.CANCELLED)


UNKNOWN_LOCATION = "Unknown Location"


def validate_email(email: str) -> None:
    """Basic email validation."""
    if not email or "@" not in email:
        raise ValueError("Invalid email address")


def normalise_email(email: str) -> str:
    return email.strip().lower()


def normalise_recovery_code(code: str) -> str:
    """Normalise a recovery code so 'abcd-1234 ' and 'ABCD1234' compare equal."""
    return code.strip().replace("-", "").replace(" ", "").upper()


def channel_for_method(method: TwoFactorMethod) -> OtpChannel:
    """Map an out-of-band second-factor method to the channel its codes travel on."""
    if method == TwoFactorMethod.SMS:
        return OtpChannel.SMS
    if method == TwoFactorMethod.EMAIL:
        return OtpChannel.EMAIL
    raise ValueError(f"{method.value} codes are not delivered out of band")
