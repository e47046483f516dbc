"""ABOUTME: Attempt ledger service recording every credential-check outcome per account
ABOUTME: Keeps a bounded, chronological history that the risk engine evaluates"""

import structlog

from loginguard.adapters.location import LocationResolver
from loginguard.domain.login_attempts import ClientContext, LoginAttempt
from loginguard.domain.value_objects import normalise_email
from loginguard.service_layer.exceptions import LocationLookupFailure
from loginguard.service_layer.unit_of_work import AbstractUnitOfWork

log = structlog.get_logger(__name__)

HISTORY_LIMIT = 50


def resolve_location(resolver: LocationResolver, ip_address: str) -> str:
    try:
        return resolver.resolve(ip_address)
    except Exception as e:
        log.error("location lookup failed", ip_address=ip_address, error=str(e))
        raise LocationLookupFailure(ip_address) from e


def record_attempt(
    uow: AbstractUnitOfWork,
    resolver: LocationResolver,
    email: str,
    success: bool,
    client: ClientContext,
) -> LoginAttempt:
    """Append a login attempt to the account's ledger and trim it to HISTORY_LIMIT.

    The location is resolved before anything is written, so a failed lookup
    leaves the ledger untouched.

    Raises:
        LocationLookupFailure: if the resolver fails
        StorageFailure: if the ledger cannot be written
    """
    email = normalise_email(email)
    location = resolve_location(resolver, client.ip_address)
    attempt = LoginAttempt.from_client(email, success, client, location)

    with uow:
        uow.login_attempts.add(attempt)
        pruned = uow.login_attempts.prune(email, keep=HISTORY_LIMIT)
        uow.commit()

    log.info(
        "login attempt recorded",
        email=email,
        success=success,
        ip_address=client.ip_address,
        location=location,
        pruned=pruned,
    )
    return attempt


def get_history(uow: AbstractUnitOfWork, email: str) -> list[LoginAttempt]:
    """All recorded attempts for an account, oldest first. Empty if it never tried to log in."""
    with uow:
        return list(uow.login_attempts.history(normalise_email(email)))
