"""ABOUTME: Account and session domain models
ABOUTME: Accounts come from the external credential store; sessions are issued after login"""

import secrets
import uuid
from datetime import UTC, datetime

from .value_objects import normalise_email, validate_email


def generate_session_token(length: int = 32) -> str:
    return secrets.token_urlsafe(length)


class Account:
    """An account as returned by the credential store.

    `home_region` is the account's established region marker (e.g. "TX"); a
    login location containing it counts as a usual location.
    """

    def __init__(
        self,
        email: str,
        password_hash: str = "",
        home_region: str | None = None,
        account_id: uuid.UUID | None = None,
        created_at: datetime | None = None,
    ):
        validate_email(email)
        self.id = account_id or uuid.uuid4()
        self.email = normalise_email(email)
        self.password_hash = password_hash
        self.home_region = home_region
        self.created_at = created_at or datetime.now(UTC)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Account):  # pragma: no cover
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def create_detached_copy(self) -> "Account":
        """Create a detached copy of this account for use outside SQLAlchemy sessions"""
        return Account(
            email=self.email,
            password_hash=self.password_hash,
            home_region=self.home_region,
            account_id=self.id,
            created_at=self.created_at,
        )


class Session:
    """An authenticated session handed to the caller at the end of a login."""

    def __init__(
        self,
        email: str,
        token: str | None = None,
        created_at: datetime | None = None,
        session_id: uuid.UUID | None = None,
    ):
        self.id = session_id or uuid.uuid4()
        self.email = email
        self.token = token or generate_session_token()
        self.created_at = created_at or datetime.now(UTC)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Session):  # pragma: no cover
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)
