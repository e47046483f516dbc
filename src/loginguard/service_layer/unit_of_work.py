"""ABOUTME: Unit of Work pattern implementation for transaction management
ABOUTME: Coordinates repository operations within database transactions"""

from __future__ import annotations

import abc
from types import TracebackType

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from loginguard.adapters.database import create_session_factory
from loginguard.adapters.sql_repository import (
    SqlAlchemyLoginAttemptRepository,
    SqlAlchemyOneTimeCodeRepository,
    SqlAlchemyPendingEnrollmentRepository,
    SqlAlchemyTwoFactorConfigRepository,
)
from loginguard.service_layer.exceptions import StorageFailure
from loginguard.service_layer.repositories import (
    LoginAttemptRepository,
    OneTimeCodeRepository,
    PendingEnrollmentRepository,
    TwoFactorConfigRepository,
)

log = structlog.get_logger(__name__)


class AbstractUnitOfWork(abc.ABC):
    """Abstract Unit of Work interface."""

    login_attempts: LoginAttemptRepository
    two_factor_configs: TwoFactorConfigRepository
    pending_enrollments: PendingEnrollmentRepository
    one_time_codes: OneTimeCodeRepository

    def __enter__(self) -> AbstractUnitOfWork:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            self.rollback()
        else:
            self.commit()

    @abc.abstractmethod
    def commit(self) -> None:
        """Commit the current transaction."""
        raise NotImplementedError

    @abc.abstractmethod
    def rollback(self) -> None:
        """Rollback the current transaction."""
        raise NotImplementedError


class SqlAlchemyUnitOfWork(AbstractUnitOfWork):
    """SQLAlchemy implementation of Unit of Work pattern.

    Any SQLAlchemy error inside the block is rolled back and re-raised as
    StorageFailure, so callers only ever see the service layer taxonomy.
    """

    def __init__(self, session_factory: sessionmaker | None = None) -> None:
        self.session_factory = session_factory or create_session_factory()
        self._session: Session | None = None

    @property
    def session(self) -> Session:
        if self._session is None:
            self._session = self.session_factory()
        assert isinstance(self._session, Session)
        return self._session

    def __enter__(self) -> SqlAlchemyUnitOfWork:
        # Initialize repositories with the session
        self.login_attempts = SqlAlchemyLoginAttemptRepository(self.session)
        self.two_factor_configs = SqlAlchemyTwoFactorConfigRepository(self.session)
        self.pending_enrollments = SqlAlchemyPendingEnrollmentRepository(self.session)
        self.one_time_codes = SqlAlchemyOneTimeCodeRepository(self.session)

        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        try:
            if exc_type is not None:
                self.rollback()
            else:
                self.commit()
        finally:
            self.session.close()
            self._session = None

        if isinstance(exc_val, SQLAlchemyError):
            log.error("storage error, transaction rolled back", error=str(exc_val))
            raise StorageFailure(f"Storage error: {exc_val.__class__.__name__}") from exc_val

    def commit(self) -> None:
        """Commit the current transaction."""
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            log.error("commit failed, transaction rolled back", error=str(e))
            raise StorageFailure(f"Storage error: {e.__class__.__name__}") from e

    def rollback(self) -> None:
        """Rollback the current transaction."""
        self.session.rollback()
