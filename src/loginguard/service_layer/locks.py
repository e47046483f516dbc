"""ABOUTME: Per-key locks for check-then-mark-used sequences on one-time and recovery codes
ABOUTME: Two concurrent submissions of the same code must not both succeed"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

from loginguard.domain.value_objects import OtpChannel


@dataclass(slots=True)
class _KeyedLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    # holders plus waiters
    users: int = 0


class KeyedLocks:
    """Hand out one lock per key.

    A key's lock exists only while some thread holds or waits for it, so the
    table does not grow with every email address or phone number ever seen.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, _KeyedLock] = {}

    def _check_out(self, key: str) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _KeyedLock()
            entry.users += 1
            return entry.lock

    def _check_in(self, key: str) -> None:
        with self._guard:
            entry = self._locks[key]
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        lock = self._check_out(key)
        try:
            with lock:
                yield
        finally:
            self._check_in(key)


def two_factor_key(email: str) -> str:
    return f"2fa:{email}"


def otp_key(channel: OtpChannel, target: str) -> str:
    return f"otp:{channel.value}:{target}"


account_locks = KeyedLocks()
