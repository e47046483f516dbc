"""ABOUTME: Abstract repository interfaces for domain objects
ABOUTME: Defines repository contracts to abstract storage operations from business logic"""

from __future__ import annotations

import abc
from typing import Any

from loginguard.domain.login_attempts import LoginAttempt
from loginguard.domain.one_time_codes import OneTimeCode
from loginguard.domain.two_factor import PendingEnrollment, TwoFactorConfig
from loginguard.domain.value_objects import OtpChannel


class AbstractRepository(abc.ABC):
    """Base repository interface providing common operations."""

    @abc.abstractmethod
    def add(self, item: Any) -> None:
        """Add an item to the repository."""
        raise NotImplementedError


class LoginAttemptRepository(AbstractRepository):
    """Repository interface for the per-account attempt ledger."""

    @abc.abstractmethod
    def history(self, email: str) -> list[LoginAttempt]:
        """Get all attempts for an account, oldest first."""
        raise NotImplementedError

    @abc.abstractmethod
    def prune(self, email: str, keep: int) -> int:
        """Delete all but the `keep` most recent attempts for an account. Returns the number deleted."""
        raise NotImplementedError


class TwoFactorConfigRepository(AbstractRepository):
    """Repository interface for TwoFactorConfig domain objects."""

    @abc.abstractmethod
    def get(self, email: str) -> TwoFactorConfig | None:
        """Get the second-factor configuration for an account."""
        raise NotImplementedError

    @abc.abstractmethod
    def get_for_update(self, email: str) -> TwoFactorConfig | None:
        """Get the configuration, locking it against concurrent writers where the store supports it."""
        raise NotImplementedError

    @abc.abstractmethod
    def delete(self, email: str) -> bool:
        """Remove the configuration. Returns True if there was one."""
        raise NotImplementedError


class PendingEnrollmentRepository(AbstractRepository):
    """Repository interface for enrollments that have been started but not confirmed."""

    @abc.abstractmethod
    def get(self, email: str) -> PendingEnrollment | None:
        raise NotImplementedError

    @abc.abstractmethod
    def delete(self, email: str) -> bool:
        raise NotImplementedError


class OneTimeCodeRepository(AbstractRepository):
    """Repository interface for the most recent one-time code per channel and target.

    `add` replaces any existing code for the same channel and target.
    """

    @abc.abstractmethod
    def get(self, channel: OtpChannel, target: str) -> OneTimeCode | None:
        raise NotImplementedError

    @abc.abstractmethod
    def get_for_update(self, channel: OtpChannel, target: str) -> OneTimeCode | None:
        raise NotImplementedError

    @abc.abstractmethod
    def delete(self, channel: OtpChannel, target: str) -> bool:
        raise NotImplementedError
