"""ABOUTME: Session store interface and a SQLAlchemy-backed implementation
ABOUTME: Persists the session issued at the end of a successful login"""

from abc import ABC, abstractmethod

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from loginguard.adapters import orm
from loginguard.domain.accounts import Account, Session
from loginguard.service_layer.exceptions import StorageFailure


class SessionStore(ABC):
    @abstractmethod
    def save(self, account: Account) -> Session:
        """Create and persist a session for the account."""
        pass


class SqlAlchemySessionStore(SessionStore):
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def save(self, account: Account) -> Session:
        session = Session(email=account.email)
        try:
            with self.session_factory() as db_session:
                db_session.add(session)
                db_session.commit()
        except SQLAlchemyError as e:
            raise StorageFailure(f"Storage error: {e.__class__.__name__}") from e
        return session

    def get_by_token(self, token: str) -> Session | None:
        try:
            with self.session_factory() as db_session:
                return db_session.query(Session).filter(orm.sessions.c.token == token).first()
        except SQLAlchemyError as e:
            raise StorageFailure(f"Storage error: {e.__class__.__name__}") from e
