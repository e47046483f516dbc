"""ABOUTME: Configuration management for LoginGuard
ABOUTME: Loads environment variables and provides configuration objects for different environments"""

import base64
import binascii
import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


class InvalidConfig(Exception):
    """Error for when the config is not valid"""


SQLITE_DB_URI = "sqlite:///:memory:"
DEFAULT_DB_URI = "sqlite:///loginguard.db"
# 32 zero bytes, only good enough for development
DEV_TOTP_ENCRYPTION_KEY = base64.b64encode(bytes(32)).decode("ascii")


def to_bool(value: str | None, context_str: str = "") -> bool:
    """
    Convert string to boolean. Valid options (after stripping whitespace and making lower-case)
    - False: "false", "no", "off", "0", None, ""
    - True: "true", "yes", "on", "1"

    The `context_str` is there for the error message, to help find the issue.
    """
    if value is None:
        return False
    value = value.lower().strip()
    if value in ("false", "no", "off", "0", ""):
        return False
    if value in ("true", "yes", "on", "1"):
        return True
    raise ValueError(
        f"Cannot convert '{context_str}{value}' to boolean. Valid values are: true/false, 1/0, yes/no, on/off (case-insensitive)"
    )


def bool_environ_get(key: str, default: str = "") -> bool:
    return to_bool(os.environ.get(key, default), context_str=f"{key}=")


def get_env() -> str:
    return os.environ.get("LOGINGUARD_ENV", "development").lower().strip()


def is_development() -> bool:
    return get_env() == "development"


def get_db_uri() -> str:
    return os.environ.get("DB_URI", DEFAULT_DB_URI)


def get_log_level() -> int:
    level_name = os.environ.get("LOG_LEVEL", "INFO").upper().strip()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        raise InvalidConfig(f"Unknown LOG_LEVEL: {level_name}")
    return level


def get_totp_encryption_key() -> bytes:
    """Return the master key used to encrypt TOTP secrets at rest.

    The key is 32 random bytes, base64 encoded, in TOTP_ENCRYPTION_KEY.
    """
    raw_key = os.environ.get("TOTP_ENCRYPTION_KEY", "")
    if not raw_key:
        if is_development():
            raw_key = DEV_TOTP_ENCRYPTION_KEY
        else:
            raise ValueError("TOTP_ENCRYPTION_KEY environment variable must be set")
    try:
        key = base64.b64decode(raw_key, validate=True)
    except binascii.Error as e:
        raise ValueError("TOTP_ENCRYPTION_KEY must be base64 encoded") from e
    if len(key) != 32:
        raise ValueError("TOTP_ENCRYPTION_KEY must decode to 32 bytes")
    return key


def get_totp_issuer() -> str:
    return os.environ.get("TOTP_ISSUER", "LoginGuard")


def get_recovery_code_hash_method() -> str:
    """werkzeug hash method for recovery codes. Tests use a cheap pbkdf2 round count."""
    return os.environ.get("RECOVERY_CODE_HASH_METHOD", "scrypt")


def get_default_home_region() -> str:
    """Home region marker used for accounts that have none of their own."""
    return os.environ.get("DEFAULT_HOME_REGION", "").strip()


def parse_location_map(value: str) -> dict[str, str]:
    """Parse "10.0.0.0/8=Houston, TX, US;192.168.0.0/16=Austin, TX, US" into a mapping."""
    mapping: dict[str, str] = {}
    for entry in value.split(";"):
        if not entry.strip():
            continue
        network, sep, label = entry.partition("=")
        if not sep or not network.strip() or not label.strip():
            raise InvalidConfig(f"Invalid LOCATION_MAP entry: '{entry}' (expected CIDR=label)")
        mapping[network.strip()] = label.strip()
    return mapping


@dataclass(slots=True, kw_only=True)
class SmtpCfg:
    host: str
    port: int
    username: str
    password: str
    use_tls: bool
    from_email: str
    from_name: str

    @classmethod
    def from_env(cls) -> "SmtpCfg":
        return SmtpCfg(
            host=os.environ.get("SMTP_HOST", "localhost"),
            port=int(os.environ.get("SMTP_PORT", "1025")),
            username=os.environ.get("SMTP_USERNAME", ""),
            password=os.environ.get("SMTP_PASSWORD", ""),
            use_tls=bool_environ_get("SMTP_USE_TLS", "true"),
            from_email=os.environ.get("SMTP_FROM_EMAIL", "noreply@loginguard.local"),
            from_name=os.environ.get("SMTP_FROM_NAME", "LoginGuard"),
        )


@dataclass(slots=True, kw_only=True)
class LoginGuardConfig:
    """Settings for wiring up the login flow and its adapters."""

    env: str = "development"
    db_uri: str = field(default_factory=get_db_uri)
    totp_issuer: str = field(default_factory=get_totp_issuer)
    default_home_region: str = field(default_factory=get_default_home_region)
    notification_backend: str = field(default_factory=lambda: os.environ.get("NOTIFICATION_BACKEND", "console"))
    location_map: dict[str, str] = field(default_factory=lambda: parse_location_map(os.environ.get("LOCATION_MAP", "")))
    log_level: int = field(default_factory=get_log_level)

    def __post_init__(self) -> None:
        if self.notification_backend not in ("console", "smtp"):
            raise InvalidConfig(f"Unknown NOTIFICATION_BACKEND: {self.notification_backend}")

    def smtp(self) -> SmtpCfg:
        return SmtpCfg.from_env()


class TestingConfig(LoginGuardConfig):
    """Configuration for the test suite: in-memory database, console delivery."""

    def __init__(self) -> None:
        super().__init__(env="testing", db_uri=SQLITE_DB_URI, notification_backend="console")


class ProductionConfig(LoginGuardConfig):
    """Production configuration with stricter defaults."""

    def __init__(self) -> None:
        super().__init__(env="production")
        # Ensure production has a real encryption key
        if os.environ.get("TOTP_ENCRYPTION_KEY", DEV_TOTP_ENCRYPTION_KEY) == DEV_TOTP_ENCRYPTION_KEY:
            raise InvalidConfig("TOTP_ENCRYPTION_KEY must be set in production")
        # the console backend writes codes to the log
        if self.notification_backend != "smtp":
            raise InvalidConfig("NOTIFICATION_BACKEND must be smtp in production")


def get_config(config_name: str = "") -> LoginGuardConfig:
    """Return the appropriate configuration based on LOGINGUARD_ENV or config_name."""
    env = config_name.strip().lower() or get_env()

    if env == "testing":
        return TestingConfig()
    if env == "production":
        return ProductionConfig()
    # Fall back to development if unknown config
    return LoginGuardConfig(env="development")
