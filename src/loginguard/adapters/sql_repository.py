"""ABOUTME: SQLAlchemy implementations of repository interfaces
ABOUTME: Provides concrete database operations using SQLAlchemy sessions"""

from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from loginguard.adapters import orm
from loginguard.domain.login_attempts import LoginAttempt
from loginguard.domain.one_time_codes import OneTimeCode
from loginguard.domain.two_factor import PendingEnrollment, TwoFactorConfig
from loginguard.domain.value_objects import OtpChannel
from loginguard.service_layer.repositories import (
    LoginAttemptRepository,
    OneTimeCodeRepository,
    PendingEnrollmentRepository,
    TwoFactorConfigRepository,
)


class SqlAlchemyRepository:
    """Base SQLAlchemy repository with common functionality."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def _replace(self, existing: object | None, item: object) -> None:
        """Swap a persistent row for a new instance with the same primary key."""
        if existing is not None and existing is not item:
            self.session.delete(existing)
            self.session.flush()
        self.session.add(item)


class SqlAlchemyLoginAttemptRepository(SqlAlchemyRepository, LoginAttemptRepository):
    """SQLAlchemy implementation of LoginAttemptRepository."""

    def add(self, item: LoginAttempt) -> None:
        self.session.add(item)

    def history(self, email: str) -> list[LoginAttempt]:
        return list(
            self.session.query(LoginAttempt)
            .filter(orm.login_attempts.c.email == email)
            .order_by(orm.login_attempts.c.timestamp.asc(), orm.login_attempts.c.seq.asc())
            .all()
        )

    def prune(self, email: str, keep: int) -> int:
        # make sure just-added attempts take part in the ordering
        self.session.flush()
        stale_ids = self.session.scalars(
            select(orm.login_attempts.c.id)
            .where(orm.login_attempts.c.email == email)
            .order_by(orm.login_attempts.c.timestamp.desc(), orm.login_attempts.c.seq.desc())
            .offset(keep)
        ).all()
        if not stale_ids:
            return 0
        self.session.execute(
            delete(orm.login_attempts).where(orm.login_attempts.c.id.in_(stale_ids)),
            execution_options={"synchronize_session": False},
        )
        # drop any stale instances still held in the identity map
        for attempt in list(self.session.identity_map.values()):
            if isinstance(attempt, LoginAttempt) and attempt.id in stale_ids:
                self.session.expunge(attempt)
        return len(stale_ids)


class SqlAlchemyTwoFactorConfigRepository(SqlAlchemyRepository, TwoFactorConfigRepository):
    """SQLAlchemy implementation of TwoFactorConfigRepository."""

    def add(self, item: TwoFactorConfig) -> None:
        self._replace(self.get(item.email), item)

    def get(self, email: str) -> TwoFactorConfig | None:
        return self.session.query(TwoFactorConfig).filter(orm.two_factor_configs.c.email == email).first()

    def get_for_update(self, email: str) -> TwoFactorConfig | None:
        return (
            self.session.query(TwoFactorConfig)
            .filter(orm.two_factor_configs.c.email == email)
            .with_for_update()
            .first()
        )

    def delete(self, email: str) -> bool:
        config = self.get(email)
        if config is None:
            return False
        self.session.delete(config)
        return True


class SqlAlchemyPendingEnrollmentRepository(SqlAlchemyRepository, PendingEnrollmentRepository):
    """SQLAlchemy implementation of PendingEnrollmentRepository."""

    def add(self, item: PendingEnrollment) -> None:
        self._replace(self.get(item.email), item)

    def get(self, email: str) -> PendingEnrollment | None:
        return self.session.query(PendingEnrollment).filter(orm.pending_enrollments.c.email == email).first()

    def delete(self, email: str) -> bool:
        pending = self.get(email)
        if pending is None:
            return False
        self.session.delete(pending)
        return True


class SqlAlchemyOneTimeCodeRepository(SqlAlchemyRepository, OneTimeCodeRepository):
    """SQLAlchemy implementation of OneTimeCodeRepository."""

    def add(self, item: OneTimeCode) -> None:
        self._replace(self.get(item.channel, item.target), item)

    def get(self, channel: OtpChannel, target: str) -> OneTimeCode | None:
        return (
            self.session.query(OneTimeCode)
            .filter(orm.one_time_codes.c.channel == channel, orm.one_time_codes.c.target == target)
            .first()
        )

    def get_for_update(self, channel: OtpChannel, target: str) -> OneTimeCode | None:
        return (
            self.session.query(OneTimeCode)
            .filter(orm.one_time_codes.c.channel == channel, orm.one_time_codes.c.target == target)
            .with_for_update()
            .first()
        )

    def delete(self, channel: OtpChannel, target: str) -> bool:
        code = self.get(channel, target)
        if code is None:
            return False
        self.session.delete(code)
        return True
