"""ABOUTME: One-time code lifecycle for SMS and email second factors
ABOUTME: Issue, deliver, throttle and single-use verification of out-of-band codes"""

import math
import secrets
from datetime import UTC, datetime, timedelta

import structlog

from loginguard.adapters.notifications import NotificationChannel
from loginguard.domain.one_time_codes import OneTimeCode
from loginguard.domain.value_objects import OtpChannel
from loginguard.service_layer.exceptions import (
    CodeAlreadyUsed,
    CodeExpired,
    DeliveryFailure,
    InvalidCode,
    RateLimitExceeded,
)
from loginguard.service_layer.locks import account_locks, otp_key
from loginguard.service_layer.unit_of_work import AbstractUnitOfWork

log = structlog.get_logger(__name__)

MAX_ISSUES_PER_HOUR = 3
RESEND_COOLDOWN = timedelta(seconds=60)


def _retry_after(moment: datetime, now: datetime) -> int:
    return max(1, math.ceil((moment - now).total_seconds()))


def check_issue_rate_limit(previous: OneTimeCode | None, now: datetime) -> None:
    """Refuse to issue a new code too soon after the last one, or too often in an hour.

    Raises:
        RateLimitExceeded: with the number of seconds until a new code may be issued
    """
    if previous is None:
        return
    recent = sorted(previous.issues_since(now - timedelta(hours=1)))
    if len(recent) >= MAX_ISSUES_PER_HOUR:
        raise RateLimitExceeded("verification codes", _retry_after(recent[0] + timedelta(hours=1), now))
    if recent and now - recent[-1] < RESEND_COOLDOWN:
        raise RateLimitExceeded("verification codes", _retry_after(recent[-1] + RESEND_COOLDOWN, now))


def _deliver(notifier: NotificationChannel, otp: OneTimeCode) -> None:
    try:
        notifier.send(otp.channel, otp.target, otp.code)
    except DeliveryFailure:
        raise
    except Exception as e:
        log.error("notification channel error", channel=otp.channel.value, error=str(e))
        raise DeliveryFailure(channel=otp.channel.value, reason=str(e)) from e


def issue_in_uow(
    uow: AbstractUnitOfWork, notifier: NotificationChannel, channel: OtpChannel, target: str
) -> OneTimeCode:
    """Issue and deliver a code inside an already open unit of work.

    The new code only replaces the previous one once delivery succeeded; the
    caller commits. Caller must hold the otp lock for (channel, target).
    """
    previous = uow.one_time_codes.get_for_update(channel, target)
    check_issue_rate_limit(previous, datetime.now(UTC))

    otp = OneTimeCode.issue(channel, target, previous)
    _deliver(notifier, otp)
    uow.one_time_codes.add(otp)
    log.info("one-time code issued", channel=channel.value, target=target)
    return otp


def issue_otp(uow: AbstractUnitOfWork, notifier: NotificationChannel, channel: OtpChannel, target: str) -> OneTimeCode:
    """Generate a fresh 6-digit code for (channel, target), send it and store it.

    Any previously issued code for the same target stops working.

    Raises:
        RateLimitExceeded: if codes are being requested too often
        DeliveryFailure: if the code could not be sent; nothing is stored
        StorageFailure: if the code could not be stored
    """
    with account_locks.hold(otp_key(channel, target)):
        with uow:
            otp = issue_in_uow(uow, notifier, channel, target)
            uow.commit()
    return otp


def consume_in_uow(uow: AbstractUnitOfWork, channel: OtpChannel, target: str, code: str) -> None:
    """Check a submitted code and mark it used, inside an open unit of work.

    Caller must hold the otp lock for (channel, target).
    """
    otp = uow.one_time_codes.get_for_update(channel, target)
    submitted = code.strip()
    if otp is None:
        raise InvalidCode("No code has been sent. Please request a new code")

    matches = secrets.compare_digest(otp.code.encode("utf-8"), submitted.encode("utf-8"))
    if otp.used:
        raise CodeAlreadyUsed() if matches else InvalidCode()
    if otp.is_expired():
        raise CodeExpired()
    if otp.is_exhausted():
        raise InvalidCode("Too many invalid attempts. Please request a new code")
    if not matches:
        otp.record_failure()
        uow.commit()
        log.info("one-time code rejected", channel=channel.value, target=target, failed_attempts=otp.failed_attempts)
        raise InvalidCode()

    otp.mark_as_used()
    uow.commit()
    log.info("one-time code accepted", channel=channel.value, target=target)


def check_otp(uow: AbstractUnitOfWork, channel: OtpChannel, target: str, code: str) -> None:
    """Verify a submitted code against the most recent one issued for (channel, target).

    Succeeds at most once per issued code; the check and the mark-used happen
    under the same lock.

    Raises:
        InvalidCode: no code issued, wrong code, or too many wrong submissions
        CodeExpired: the code is past its validity window
        CodeAlreadyUsed: the code was already accepted once
    """
    with account_locks.hold(otp_key(channel, target)):
        with uow:
            consume_in_uow(uow, channel, target, code)


def verify_otp(uow: AbstractUnitOfWork, channel: OtpChannel, target: str, code: str) -> bool:
    try:
        check_otp(uow, channel, target, code)
    except (InvalidCode, CodeExpired, CodeAlreadyUsed):
        return False
    return True


def release_otp(uow: AbstractUnitOfWork, channel: OtpChannel, target: str, code: str) -> bool:
    """Make an accepted code usable again after the login it was accepted for failed.

    Only the code that was accepted is released. If a newer code has been issued
    since, nothing changes and False is returned.
    """
    with account_locks.hold(otp_key(channel, target)):
        with uow:
            otp = uow.one_time_codes.get_for_update(channel, target)
            if otp is None or not otp.used:
                return False
            if not secrets.compare_digest(otp.code.encode("utf-8"), code.strip().encode("utf-8")):
                return False
            otp.release()
            uow.commit()
    log.info("one-time code released", channel=channel.value, target=target)
    return True
