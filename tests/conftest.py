"""ABOUTME: Pytest configuration and fixtures for LoginGuard tests
ABOUTME: Provides environment, fake collaborator and SQLite database fixtures"""

import base64
import os

# must be set before loginguard modules read them
os.environ["LOGINGUARD_ENV"] = "testing"
os.environ["RECOVERY_CODE_HASH_METHOD"] = "pbkdf2:sha256:1000"
os.environ.setdefault("TOTP_ENCRYPTION_KEY", base64.b64encode(b"k" * 32).decode("ascii"))

import pytest  # noqa: E402

from loginguard.adapters import database  # noqa: E402
from loginguard.config import SQLITE_DB_URI  # noqa: E402
from loginguard.domain.login_attempts import ClientContext  # noqa: E402
from tests.fakes import (  # noqa: E402
    FakeAccountStore,
    FakeLocationResolver,
    FakeNotificationChannel,
    FakeSessionStore,
    FakeUnitOfWork,
)


@pytest.fixture
def clear_env_vars():
    """Fixture to temporarily remove environment variables for testing."""
    original_vars = {}

    def _clear_env_vars(*args):
        for key in args:
            original_vars[key] = os.environ.get(key)
            os.environ.pop(key, None)

    yield _clear_env_vars

    # Restore original environment variables
    for key, value in original_vars.items():
        if value is not None:
            os.environ[key] = value


@pytest.fixture
def temp_env_vars():
    """Fixture to temporarily set environment variables for testing."""
    original_vars = {}

    def _set_env_vars(**kwargs):
        for key, value in kwargs.items():
            if key not in original_vars:
                original_vars[key] = os.environ.get(key)
            os.environ[key] = value

    yield _set_env_vars

    # Restore original environment variables
    for key, value in original_vars.items():
        if value is not None:
            os.environ[key] = value
        else:
            os.environ.pop(key, None)


@pytest.fixture
def uow() -> FakeUnitOfWork:
    return FakeUnitOfWork()


@pytest.fixture
def notifier() -> FakeNotificationChannel:
    return FakeNotificationChannel()


@pytest.fixture
def resolver() -> FakeLocationResolver:
    return FakeLocationResolver({
        "203.0.113.10": "Houston, TX, US",
        "203.0.113.20": "Austin, TX, US",
        "198.51.100.7": "Lagos, LA, NG",
    })


@pytest.fixture
def account_store() -> FakeAccountStore:
    return FakeAccountStore()


@pytest.fixture
def session_store() -> FakeSessionStore:
    return FakeSessionStore()


@pytest.fixture
def client() -> ClientContext:
    return ClientContext(
        ip_address="203.0.113.10",
        user_agent="Mozilla/5.0 (X11; Linux x86_64) Firefox/128.0",
        language="en-US",
        platform="Linux x86_64",
        screen="1920x1080x24",
        timezone_offset=360,
    )


@pytest.fixture
def sqlite_session_factory():
    """A session factory bound to a fresh in-memory SQLite database."""
    database.start_mappers()
    session_factory = database.create_session_factory(SQLITE_DB_URI)
    engine = session_factory.kw["bind"]
    database.create_tables(engine)
    yield session_factory
    database.drop_tables(engine)
    engine.dispose()
