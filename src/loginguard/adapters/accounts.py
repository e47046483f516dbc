"""ABOUTME: Credential store interface and a SQLAlchemy-backed implementation
ABOUTME: Verifies email and password pairs and returns the matching account"""

from abc import ABC, abstractmethod

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from werkzeug.security import check_password_hash, generate_password_hash

from loginguard.adapters import orm
from loginguard.domain.accounts import Account
from loginguard.domain.value_objects import normalise_email
from loginguard.service_layer.exceptions import StorageFailure

log = structlog.get_logger(__name__)

# checked against when the email is unknown, so both paths cost the same
_DUMMY_HASH = generate_password_hash("not-a-real-password")


def hash_password(password: str) -> str:
    """Hash a password using werkzeug's secure method."""
    return generate_password_hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash."""
    return check_password_hash(password_hash, password)


class AccountAlreadyExists(Exception):
    pass


class AccountStore(ABC):
    """Primary credential verification, owned outside the login core."""

    @abstractmethod
    def verify(self, email: str, password: str) -> Account | None:
        """Return the account if the credentials match, otherwise None."""
        pass


class SqlAlchemyAccountStore(AccountStore):
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def verify(self, email: str, password: str) -> Account | None:
        try:
            with self.session_factory() as session:
                account = (
                    session.query(Account).filter(orm.accounts.c.email == normalise_email(email)).first()
                )
                detached = account.create_detached_copy() if account else None
        except SQLAlchemyError as e:
            raise StorageFailure(f"Storage error: {e.__class__.__name__}") from e

        if detached is None:
            verify_password(password, _DUMMY_HASH)
            return None
        if not verify_password(password, detached.password_hash):
            return None
        return detached

    def add_account(self, email: str, password: str, home_region: str | None = None) -> Account:
        account = Account(email=email, password_hash=hash_password(password), home_region=home_region)
        try:
            with self.session_factory() as session:
                session.add(account)
                session.commit()
                detached = account.create_detached_copy()
        except IntegrityError as e:
            raise AccountAlreadyExists(f"Account with email '{account.email}' already exists") from e
        except SQLAlchemyError as e:
            raise StorageFailure(f"Storage error: {e.__class__.__name__}") from e
        log.info("account created", email=detached.email)
        return detached
