"""ABOUTME: Risk engine computing anomaly flags for a login from the attempt ledger
ABOUTME: Evaluation is a pure function of the history snapshot, the client and the current time"""

from collections.abc import Iterable
from datetime import UTC, datetime, timedelta

import structlog

from loginguard.domain.anomalies import AnomalyFlags, requires_additional_verification
from loginguard.domain.login_attempts import ClientContext, LoginAttempt
from loginguard.service_layer.attempt_ledger import get_history
from loginguard.service_layer.unit_of_work import AbstractUnitOfWork

log = structlog.get_logger(__name__)

FAILED_ATTEMPTS_WINDOW = timedelta(hours=1)
FAILED_ATTEMPTS_THRESHOLD = 3
LOCATION_WINDOW = timedelta(hours=24)
RAPID_ATTEMPTS_WINDOW = timedelta(minutes=5)
RAPID_ATTEMPTS_THRESHOLD = 5

__all__ = ["assess", "evaluate", "requires_additional_verification"]


def evaluate(
    history: Iterable[LoginAttempt],
    current_ip: str,
    current_fingerprint: str,
    home_region: str | None = None,
    now: datetime | None = None,
    exclude: LoginAttempt | None = None,
) -> AnomalyFlags:
    """Compute anomaly flags for a login from the account's attempt history.

    Args:
        history: attempts for the account, any order
        current_ip: IP address of the login being evaluated
        current_fingerprint: device fingerprint of the login being evaluated
        home_region: the account's home region marker, e.g. "TX". Without one
            the location check never fires.
        now: evaluation time, defaults to the current time
        exclude: the attempt recorded for this very login, which must not be
            part of its own baseline
    """
    now = now or datetime.now(UTC)
    attempts = [a for a in history if exclude is None or a.id != exclude.id]

    known_devices = {a.device_fingerprint for a in attempts}
    new_device = current_fingerprint not in known_devices

    known_ips = {a.ip_address for a in attempts if a.success}
    suspicious_ip = bool(known_ips) and current_ip not in known_ips

    recent_failures = [a for a in attempts if not a.success and a.timestamp > now - FAILED_ATTEMPTS_WINDOW]
    multiple_failed_attempts = len(recent_failures) >= FAILED_ATTEMPTS_THRESHOLD

    recent_locations = {a.location for a in attempts if a.success and a.timestamp > now - LOCATION_WINDOW}
    unusual_location = (
        bool(home_region)
        and bool(recent_locations)
        and not any(home_region in location for location in recent_locations if location)
    )

    rapid_attempts = len([a for a in attempts if a.timestamp > now - RAPID_ATTEMPTS_WINDOW]) > RAPID_ATTEMPTS_THRESHOLD

    return AnomalyFlags(
        new_device=new_device,
        suspicious_ip=suspicious_ip,
        multiple_failed_attempts=multiple_failed_attempts,
        unusual_location=bool(unusual_location),
        rapid_attempts=rapid_attempts,
    )


def assess(
    uow: AbstractUnitOfWork,
    email: str,
    client: ClientContext,
    home_region: str | None = None,
    exclude: LoginAttempt | None = None,
) -> AnomalyFlags:
    """Load the account's ledger and evaluate the current client against it."""
    history = get_history(uow, email)
    flags = evaluate(
        history,
        current_ip=client.ip_address,
        current_fingerprint=client.device_fingerprint(),
        home_region=home_region,
        exclude=exclude,
    )
    if flags.any():
        log.info("login anomalies detected", email=email, flags=flags.active())
    return flags
