"""ABOUTME: Fake repository and collaborator implementations for testing
ABOUTME: In-memory repositories and stores that implement the same interfaces as real ones"""

from typing import Any

from loginguard.adapters.accounts import AccountStore, hash_password, verify_password
from loginguard.adapters.location import LocationResolver
from loginguard.adapters.notifications import NotificationChannel
from loginguard.adapters.sessions import SessionStore
from loginguard.domain.accounts import Account, Session
from loginguard.domain.login_attempts import LoginAttempt
from loginguard.domain.one_time_codes import OneTimeCode
from loginguard.domain.two_factor import PendingEnrollment, TwoFactorConfig
from loginguard.domain.value_objects import UNKNOWN_LOCATION, OtpChannel, normalise_email
from loginguard.service_layer.exceptions import DeliveryFailure, StorageFailure
from loginguard.service_layer.repositories import (
    LoginAttemptRepository,
    OneTimeCodeRepository,
    PendingEnrollmentRepository,
    TwoFactorConfigRepository,
)
from loginguard.service_layer.unit_of_work import AbstractUnitOfWork


class FakeLoginAttemptRepository(LoginAttemptRepository):
    """Fake implementation of LoginAttemptRepository."""

    def __init__(self, items: list[LoginAttempt] | None = None):
        self._items = list(items) if items else []

    def add(self, item: LoginAttempt) -> None:
        self._items.append(item)

    def history(self, email: str) -> list[LoginAttempt]:
        return sorted((a for a in self._items if a.email == email), key=lambda a: a.timestamp)

    def prune(self, email: str, keep: int) -> int:
        # oldest first, insertion order breaking timestamp ties like the seq column
        mine = self.history(email)
        stale = mine[: max(len(mine) - keep, 0)]
        self._items = [a for a in self._items if a not in stale]
        return len(stale)


class FakeTwoFactorConfigRepository(TwoFactorConfigRepository):
    """Fake implementation of TwoFactorConfigRepository."""

    def __init__(self) -> None:
        self._items: dict[str, TwoFactorConfig] = {}

    def add(self, item: TwoFactorConfig) -> None:
        self._items[item.email] = item

    def get(self, email: str) -> TwoFactorConfig | None:
        return self._items.get(email)

    def get_for_update(self, email: str) -> TwoFactorConfig | None:
        return self._items.get(email)

    def delete(self, email: str) -> bool:
        return self._items.pop(email, None) is not None


class FakePendingEnrollmentRepository(PendingEnrollmentRepository):
    """Fake implementation of PendingEnrollmentRepository."""

    def __init__(self) -> None:
        self._items: dict[str, PendingEnrollment] = {}

    def add(self, item: PendingEnrollment) -> None:
        self._items[item.email] = item

    def get(self, email: str) -> PendingEnrollment | None:
        return self._items.get(email)

    def delete(self, email: str) -> bool:
        return self._items.pop(email, None) is not None


class FakeOneTimeCodeRepository(OneTimeCodeRepository):
    """Fake implementation of OneTimeCodeRepository."""

    def __init__(self) -> None:
        self._items: dict[tuple[OtpChannel, str], OneTimeCode] = {}

    def add(self, item: OneTimeCode) -> None:
        self._items[(item.channel, item.target)] = item

    def get(self, channel: OtpChannel, target: str) -> OneTimeCode | None:
        return self._items.get((channel, target))

    def get_for_update(self, channel: OtpChannel, target: str) -> OneTimeCode | None:
        return self._items.get((channel, target))

    def delete(self, channel: OtpChannel, target: str) -> bool:
        return self._items.pop((channel, target), None) is not None


class FakeUnitOfWork(AbstractUnitOfWork):
    """Fake Unit of Work implementation for testing.

    Set `fail_commits` to make every commit raise StorageFailure.
    """

    def __init__(self) -> None:
        self.login_attempts = self.fake_login_attempts = FakeLoginAttemptRepository()
        self.two_factor_configs = self.fake_two_factor_configs = FakeTwoFactorConfigRepository()
        self.pending_enrollments = self.fake_pending_enrollments = FakePendingEnrollmentRepository()
        self.one_time_codes = self.fake_one_time_codes = FakeOneTimeCodeRepository()
        self.committed = False
        self.commits = 0
        self.fail_commits = False

    def __enter__(self) -> AbstractUnitOfWork:
        return self

    def __exit__(self, *args: Any) -> None:
        pass

    def commit(self) -> None:
        """Mark as committed."""
        if self.fail_commits:
            raise StorageFailure("database is unreachable")
        self.committed = True
        self.commits += 1

    def rollback(self) -> None:
        self.committed = False


class FakeAccountStore(AccountStore):
    def __init__(self) -> None:
        self._accounts: dict[str, Account] = {}

    def add(self, email: str, password: str, home_region: str | None = None) -> Account:
        account = Account(email=email, password_hash=hash_password(password), home_region=home_region)
        self._accounts[account.email] = account
        return account

    def verify(self, email: str, password: str) -> Account | None:
        account = self._accounts.get(normalise_email(email))
        if account is None or not verify_password(password, account.password_hash):
            return None
        return account


class FakeSessionStore(SessionStore):
    def __init__(self) -> None:
        self.saved: list[Session] = []

    def save(self, account: Account) -> Session:
        session = Session(email=account.email)
        self.saved.append(session)
        return session


class FailingSessionStore(SessionStore):
    def save(self, account: Account) -> Session:
        raise StorageFailure("session store is unreachable")


class FakeLocationResolver(LocationResolver):
    """Resolve from a plain dict of ip -> label."""

    def __init__(self, locations: dict[str, str] | None = None):
        self.locations = dict(locations or {})
        self.lookups: list[str] = []

    def resolve(self, ip_address: str) -> str:
        self.lookups.append(ip_address)
        return self.locations.get(ip_address, UNKNOWN_LOCATION)


class FailingLocationResolver(LocationResolver):
    def resolve(self, ip_address: str) -> str:
        raise ConnectionError("geo lookup service timed out")


class FakeNotificationChannel(NotificationChannel):
    """Remembers every code it was asked to deliver. Set `fail` to refuse delivery."""

    def __init__(self) -> None:
        self.sent: list[tuple[OtpChannel, str, str]] = []
        self.fail = False

    def send(self, channel: OtpChannel, target: str, code: str) -> None:
        if self.fail:
            raise DeliveryFailure(channel=channel.value, reason="gateway unavailable")
        self.sent.append((channel, target, code))

    def last_code(self) -> str:
        return self.sent[-1][2]
