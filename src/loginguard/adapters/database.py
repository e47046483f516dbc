"""ABOUTME: Database connection setup and imperative mapping for LoginGuard
ABOUTME: Configures SQLAlchemy sessions and maps domain objects to tables"""

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from loginguard.adapters import orm
from loginguard.config import bool_environ_get, get_db_uri
from loginguard.domain import accounts, login_attempts, one_time_codes, two_factor


class DatabaseError(Exception):
    """Base exception for database-related errors."""

    pass


def create_db_engine(database_url: str = "", echo: bool = False) -> Engine:
    database_url = database_url or get_db_uri()
    echo = bool_environ_get("DB_ECHO") or echo
    extra_args: dict = {}
    if database_url.startswith("postgresql://"):
        extra_args = {
            "pool_pre_ping": True,  # Verify connections before use
            "pool_recycle": 3600,  # Recycle connections after 1 hour
            "pool_size": 10,  # Connection pool size
            "max_overflow": 20,  # Additional connections beyond pool_size
        }
    elif database_url == "sqlite:///:memory:":
        # one shared connection, otherwise every session sees its own empty database
        extra_args = {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    return create_engine(database_url, echo=echo, **extra_args)


def create_session_factory(database_url: str = "", echo: bool = False) -> sessionmaker:
    """Create a SQLAlchemy session factory with proper configuration."""
    engine = create_db_engine(database_url, echo=echo)
    return sessionmaker(bind=engine, expire_on_commit=False)


def create_tables(engine: Engine) -> None:
    orm.metadata.create_all(engine)


def drop_tables(engine: Engine) -> None:
    orm.metadata.drop_all(engine)


# Track if mappers have been started
_mappers_started = False


def start_mappers() -> None:
    """Start imperative mapping between domain objects and database tables.

    This function must be called before using any domain objects with SQLAlchemy.
    The mapping is done imperatively to keep domain objects independent of SQLAlchemy.
    """
    global _mappers_started

    if _mappers_started:
        return

    try:
        orm.mapper_registry.map_imperatively(login_attempts.LoginAttempt, orm.login_attempts)
        orm.mapper_registry.map_imperatively(two_factor.TwoFactorConfig, orm.two_factor_configs)
        orm.mapper_registry.map_imperatively(two_factor.PendingEnrollment, orm.pending_enrollments)
        orm.mapper_registry.map_imperatively(one_time_codes.OneTimeCode, orm.one_time_codes)
        orm.mapper_registry.map_imperatively(accounts.Account, orm.accounts)
        orm.mapper_registry.map_imperatively(accounts.Session, orm.sessions)

        _mappers_started = True

    except Exception as e:  # pragma: no cover
        raise DatabaseError(f"Failed to start mappers: {e}") from e
