"""ABOUTME: SQLAlchemy table definitions and imperative mapping for LoginGuard
ABOUTME: Defines database schema for the attempt ledger, second-factor state, accounts and sessions"""

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, TIMESTAMP, Boolean, Column, Index, Integer, String, Table, Text, TypeDecorator
from sqlalchemy.dialects.postgresql import UUID as PostgresUUID
from sqlalchemy.engine.interfaces import Dialect
from sqlalchemy.orm import registry
from sqlalchemy.sql.sqltypes import String as SQLString

from loginguard.domain.value_objects import OtpChannel, TwoFactorMethod


def aware_utcnow() -> datetime:  # pragma: no cover
    return datetime.now(UTC)


class EnumAsString(TypeDecorator):
    """Custom type for storing Python Enums as strings."""

    impl = String
    cache_ok = True

    def __init__(self, enum_class: type[Enum], *args: Any, **kwargs: Any) -> None:
        self.enum_class = enum_class
        super().__init__(*args, **kwargs)

    def process_bind_param(self, value: Any, dialect: Dialect) -> str | None:
        if value is None:  # pragma: no cover
            return value
        return value.value if hasattr(value, "value") else str(value)

    def process_result_value(self, value: Any, dialect: Dialect) -> Any:
        if value is None:  # pragma: no cover
            return value
        return self.enum_class(value)


class TZAwareDatetime(TypeDecorator):
    """Custom type for timezone-aware datetime objects."""

    impl = TIMESTAMP
    cache_ok = True

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        # Ensure timezone=True for PostgreSQL
        kwargs.setdefault("timezone", True)
        super().__init__(*args, **kwargs)

    def process_result_value(self, value: Any, dialect: Dialect) -> datetime | None:
        if value is None:
            return value

        # If the datetime is naive, assume it's UTC and make it aware
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=UTC)

        return value


class CrossDatabaseUUID(TypeDecorator):
    """Cross-database UUID type that works with both PostgreSQL and SQLite."""

    impl = SQLString
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect) -> Any:
        """Choose the appropriate UUID implementation based on the dialect."""
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PostgresUUID(as_uuid=True))
        # For SQLite and other databases, use CHAR(36) to store UUID as string
        return dialect.type_descriptor(SQLString(36))

    def process_bind_param(self, value: Any, dialect: Dialect) -> Any:
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value
        return str(value)

    def process_result_value(self, value: Any, dialect: Dialect) -> uuid.UUID | None:
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            # Already a UUID (PostgreSQL case)
            return value
        return uuid.UUID(str(value))


# Create a registry for imperative mapping
mapper_registry = registry()
metadata = mapper_registry.metadata

# Attempt ledger, bounded per account by the service layer
login_attempts = Table(
    "login_attempts",
    metadata,
    # insertion order, breaks ties between attempts with the same timestamp
    Column("seq", Integer, primary_key=True, autoincrement=True),
    Column("id", CrossDatabaseUUID(), nullable=False, unique=True, default=uuid.uuid4),
    Column("email", String(255), nullable=False),
    Column("timestamp", TZAwareDatetime(), nullable=False, default=aware_utcnow),
    Column("ip_address", String(45), nullable=False),
    Column("user_agent", Text, nullable=False, default=""),
    Column("success", Boolean, nullable=False),
    Column("location", String(255), nullable=False),
    Column("device_fingerprint", String(64), nullable=False),
    Index("ix_login_attempts_email_timestamp", "email", "timestamp"),
    sqlite_autoincrement=True,
)

two_factor_configs = Table(
    "two_factor_configs",
    metadata,
    Column("email", String(255), primary_key=True),
    Column("method", EnumAsString(TwoFactorMethod, 20), nullable=False),
    Column("enabled", Boolean, nullable=False, default=True),
    Column("secret_encrypted", Text, nullable=True),
    Column("phone_number", String(32), nullable=True),
    Column("backup_email", String(255), nullable=True),
    Column("recovery_code_hashes", JSON, nullable=False, default=list),
    Column("used_recovery_code_hashes", JSON, nullable=False, default=list),
    Column("enabled_at", TZAwareDatetime(), nullable=False, default=aware_utcnow),
)

pending_enrollments = Table(
    "pending_enrollments",
    metadata,
    Column("email", String(255), primary_key=True),
    Column("method", EnumAsString(TwoFactorMethod, 20), nullable=False),
    Column("secret_encrypted", Text, nullable=True),
    Column("phone_number", String(32), nullable=True),
    Column("backup_email", String(255), nullable=True),
    Column("recovery_codes_encrypted", Text, nullable=True),
    Column("created_at", TZAwareDatetime(), nullable=False, default=aware_utcnow),
)

# Most recent code per channel and target
one_time_codes = Table(
    "one_time_codes",
    metadata,
    Column("channel", EnumAsString(OtpChannel, 10), primary_key=True),
    Column("target", String(255), primary_key=True),
    Column("code", String(12), nullable=False),
    Column("issued_at", TZAwareDatetime(), nullable=False, default=aware_utcnow),
    Column("used", Boolean, nullable=False, default=False),
    Column("failed_attempts", Integer, nullable=False, default=0),
    Column("recent_issues", JSON, nullable=False, default=list),
)

accounts = Table(
    "accounts",
    metadata,
    Column("id", CrossDatabaseUUID(), primary_key=True, default=uuid.uuid4),
    Column("email", String(255), nullable=False, unique=True, index=True),
    Column("password_hash", String(255), nullable=False),
    Column("home_region", String(100), nullable=True),
    Column("created_at", TZAwareDatetime(), nullable=False, default=aware_utcnow),
)

sessions = Table(
    "sessions",
    metadata,
    Column("id", CrossDatabaseUUID(), primary_key=True, default=uuid.uuid4),
    Column("email", String(255), nullable=False, index=True),
    Column("token", String(64), nullable=False, unique=True),
    Column("created_at", TZAwareDatetime(), nullable=False, default=aware_utcnow),
)
