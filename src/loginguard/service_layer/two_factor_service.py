"""ABOUTME: Two-factor authentication orchestration service
ABOUTME: High-level functions for 2FA enrollment, management and verification flows"""

from dataclasses import dataclass
from typing import Any

import structlog

from loginguard.adapters.notifications import NotificationChannel
from loginguard.domain.two_factor import (
    EnrollmentRequest,
    EnrollmentResult,
    EnrollmentSetup,
    PendingEnrollment,
    TwoFactorConfig,
)
from loginguard.domain.value_objects import (
    OtpChannel,
    TwoFactorMethod,
    VerificationMethod,
    channel_for_method,
    normalise_email,
)
from loginguard.service_layer import otp_service, totp_service
from loginguard.service_layer.exceptions import (
    CodeAlreadyUsed,
    CodeExpired,
    InvalidCode,
    TwoFactorSetupError,
    UnknownTwoFactorMethod,
)
from loginguard.service_layer.locks import account_locks, otp_key, two_factor_key
from loginguard.service_layer.unit_of_work import AbstractUnitOfWork

log = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class AcceptedFactor:
    """What a successful second-factor check consumed."""

    method: VerificationMethod
    recovery_code_hash: str | None = None
    channel: OtpChannel | None = None
    target: str = ""
    code: str = ""


def _enabled_config(uow: AbstractUnitOfWork, email: str, for_update: bool = False) -> TwoFactorConfig | None:
    if for_update:
        config = uow.two_factor_configs.get_for_update(email)
    else:
        config = uow.two_factor_configs.get(email)
    if config is None or not config.enabled:
        return None
    return config


def get_two_factor_config(uow: AbstractUnitOfWork, email: str) -> TwoFactorConfig | None:
    """The account's enabled second-factor configuration, or None when 2FA is off."""
    with uow:
        return _enabled_config(uow, normalise_email(email))


def begin_enrollment(
    uow: AbstractUnitOfWork,
    notifier: NotificationChannel,
    email: str,
    request: EnrollmentRequest,
) -> EnrollmentSetup:
    """Start enrolling an account in two-factor authentication.

    Nothing is enabled yet: the account moves to the enrolling state and must
    prove it can produce a valid code with confirm_enrollment(). Starting again
    replaces any earlier pending enrollment.

    Args:
        uow: Unit of Work for database access
        notifier: delivers the confirmation code for sms/email enrollments
        email: the account's email
        request: TotpEnrollment(), SmsEnrollment(phone_number) or EmailEnrollment(backup_email)

    Returns:
        EnrollmentSetup. For TOTP it carries the secret, provisioning URI, QR code
        and recovery codes; for sms/email the target the code was sent to.

    Raises:
        TwoFactorSetupError: if 2FA is already enabled for the account
        DeliveryFailure: if the confirmation code could not be sent
        RateLimitExceeded: if confirmation codes are requested too often
    """
    email = normalise_email(email)
    method = request.method

    if method == TwoFactorMethod.TOTP:
        secret = totp_service.generate_totp_secret()
        uri = totp_service.provisioning_uri(secret, email)
        recovery_codes = totp_service.generate_recovery_codes()
        pending = PendingEnrollment(
            email=email,
            method=method,
            secret_encrypted=totp_service.encrypt_secret(secret, email),
            recovery_codes_encrypted=totp_service.encrypt_recovery_codes(recovery_codes, email),
        )
        with account_locks.hold(two_factor_key(email)), uow:
            if _enabled_config(uow, email) is not None:
                raise TwoFactorSetupError("2FA is already enabled for this account")
            uow.pending_enrollments.add(pending)
            uow.commit()
        log.info("two-factor enrollment started", email=email, method=method.value)
        return EnrollmentSetup(
            method=method,
            secret=secret,
            provisioning_uri=uri,
            qr_code_data_url=totp_service.generate_qr_code_data_url(uri),
            recovery_codes=recovery_codes,
        )

    pending = PendingEnrollment(
        email=email,
        method=method,
        phone_number=getattr(request, "phone_number", None),
        backup_email=getattr(request, "backup_email", None),
    )
    channel = channel_for_method(method)
    with account_locks.hold(two_factor_key(email)), account_locks.hold(otp_key(channel, pending.target)), uow:
        if _enabled_config(uow, email) is not None:
            raise TwoFactorSetupError("2FA is already enabled for this account")
        otp_service.issue_in_uow(uow, notifier, channel, pending.target)
        uow.pending_enrollments.add(pending)
        uow.commit()
    log.info("two-factor enrollment started", email=email, method=method.value, target=pending.target)
    return EnrollmentSetup(method=method, target=pending.target)


def confirm_enrollment(uow: AbstractUnitOfWork, email: str, code: str) -> EnrollmentResult:
    """Complete enrollment by checking a code produced with the pending method.

    On success the account's 2FA is enabled with a fresh set of recovery codes,
    returned here in plaintext to be shown once.

    Raises:
        TwoFactorSetupError: if no enrollment is pending
        InvalidCode, CodeExpired, CodeAlreadyUsed: the code was not accepted;
            the enrollment stays pending
    """
    email = normalise_email(email)
    with account_locks.hold(two_factor_key(email)):
        with uow:
            pending = uow.pending_enrollments.get(email)
            if pending is None:
                raise TwoFactorSetupError("No two-factor enrollment is pending for this account")
            method = pending.method
            target = pending.target

        if method == TwoFactorMethod.TOTP:
            return _confirm_totp(uow, email, code)
        return _confirm_out_of_band(uow, email, method, target, code)


def _confirm_totp(uow: AbstractUnitOfWork, email: str, code: str) -> EnrollmentResult:
    with uow:
        pending = uow.pending_enrollments.get(email)
        if pending is None or not pending.secret_encrypted:
            raise TwoFactorSetupError("No two-factor enrollment is pending for this account")

        secret = totp_service.decrypt_secret(pending.secret_encrypted, email)
        if not totp_service.verify_totp_code(secret, code):
            raise InvalidCode()

        recovery_codes = (
            totp_service.decrypt_recovery_codes(pending.recovery_codes_encrypted, email)
            if pending.recovery_codes_encrypted
            else totp_service.generate_recovery_codes()
        )
        config = TwoFactorConfig(
            email=email,
            method=TwoFactorMethod.TOTP,
            secret_encrypted=pending.secret_encrypted,
            recovery_code_hashes=[totp_service.hash_recovery_code(c) for c in recovery_codes],
        )
        uow.two_factor_configs.add(config)
        uow.pending_enrollments.delete(email)
        uow.commit()

    log.info("two-factor enabled", email=email, method="totp")
    return EnrollmentResult(enabled=True, recovery_codes=recovery_codes)


def _confirm_out_of_band(
    uow: AbstractUnitOfWork, email: str, method: TwoFactorMethod, target: str, code: str
) -> EnrollmentResult:
    channel = channel_for_method(method)
    with account_locks.hold(otp_key(channel, target)), uow:
        pending = uow.pending_enrollments.get(email)
        if pending is None:
            raise TwoFactorSetupError("No two-factor enrollment is pending for this account")

        otp_service.consume_in_uow(uow, channel, target, code)

        recovery_codes = totp_service.generate_recovery_codes()
        config = TwoFactorConfig(
            email=email,
            method=method,
            phone_number=pending.phone_number,
            backup_email=pending.backup_email,
            recovery_code_hashes=[totp_service.hash_recovery_code(c) for c in recovery_codes],
        )
        uow.two_factor_configs.add(config)
        uow.pending_enrollments.delete(email)
        uow.commit()

    log.info("two-factor enabled", email=email, method=method.value, target=target)
    return EnrollmentResult(enabled=True, recovery_codes=recovery_codes)


def check_second_factor(
    uow: AbstractUnitOfWork, email: str, method: VerificationMethod, code: str
) -> AcceptedFactor:
    """Check a second-factor code for an account, raising on failure.

    Recovery codes and one-time codes are marked used as part of a successful
    check, so each succeeds at most once. The returned AcceptedFactor can be
    handed to release_second_factor() if the login then fails.

    Raises:
        UnknownTwoFactorMethod: 2FA is not enabled, or `method` is not the account's method
        InvalidCode: wrong code
        CodeExpired: one-time code past its window
        CodeAlreadyUsed: one-time or recovery code replayed
    """
    email = normalise_email(email)
    if method == VerificationMethod.RECOVERY:
        code_hash = _use_recovery_code(uow, email, code)
        return AcceptedFactor(method=method, recovery_code_hash=code_hash)

    with uow:
        config = _enabled_config(uow, email)
        if config is None:
            raise UnknownTwoFactorMethod()
        if config.method.value != method.value:
            raise UnknownTwoFactorMethod(method.value)
        configured = config.method
        secret_encrypted = config.secret_encrypted
        target = config.target

    if configured == TwoFactorMethod.TOTP:
        if not secret_encrypted or not totp_service.verify_totp_code(
            totp_service.decrypt_secret(secret_encrypted, email), code
        ):
            log.info("totp code rejected", email=email)
            raise InvalidCode()
        return AcceptedFactor(method=method)

    channel = channel_for_method(configured)
    otp_service.check_otp(uow, channel, target, code)
    return AcceptedFactor(method=method, channel=channel, target=target, code=code)


def release_second_factor(uow: AbstractUnitOfWork, email: str, accepted: AcceptedFactor) -> None:
    """Give back a recovery or one-time code consumed by a login that did not complete.

    TOTP codes are not tracked, so there is nothing to release for them.
    """
    email = normalise_email(email)
    if accepted.recovery_code_hash is not None:
        with account_locks.hold(two_factor_key(email)), uow:
            config = _enabled_config(uow, email, for_update=True)
            if config is None or accepted.recovery_code_hash not in config.used_recovery_code_hashes:
                return
            config.release_recovery_code(accepted.recovery_code_hash)
            uow.commit()
        log.info("recovery code released", email=email)
    elif accepted.channel is not None:
        otp_service.release_otp(uow, accepted.channel, accepted.target, accepted.code)


def _use_recovery_code(uow: AbstractUnitOfWork, email: str, code: str) -> str:
    with account_locks.hold(two_factor_key(email)), uow:
        config = _enabled_config(uow, email, for_update=True)
        if config is None or not config.recovery_code_hashes:
            raise UnknownTwoFactorMethod(VerificationMethod.RECOVERY.value)

        matched = totp_service.find_recovery_code_hash(config.recovery_code_hashes, code)
        if matched is None:
            log.info("recovery code rejected", email=email)
            raise InvalidCode("Invalid recovery code")
        if matched in config.used_recovery_code_hashes:
            log.warning("recovery code replayed", email=email)
            raise CodeAlreadyUsed("This recovery code has already been used")

        config.use_recovery_code(matched)
        uow.commit()
        remaining = config.recovery_codes_remaining()

    log.info("recovery code used", email=email, remaining=remaining)
    return matched


def verify(uow: AbstractUnitOfWork, email: str, method: VerificationMethod, code: str) -> bool:
    """Boolean form of check_second_factor(); user-input failures give False."""
    try:
        check_second_factor(uow, email, method, code)
    except (InvalidCode, CodeExpired, CodeAlreadyUsed):
        return False
    return True


def send_login_code(uow: AbstractUnitOfWork, notifier: NotificationChannel, email: str) -> str:
    """Send a login code to the configured phone or backup email.

    Returns:
        The target the code was sent to

    Raises:
        UnknownTwoFactorMethod: the account has no sms/email second factor
        DeliveryFailure, RateLimitExceeded: from issuing the code
    """
    email = normalise_email(email)
    with uow:
        config = _enabled_config(uow, email)
        if config is None:
            raise UnknownTwoFactorMethod()
        if config.method == TwoFactorMethod.TOTP:
            raise UnknownTwoFactorMethod("sms/email")
        method = config.method
        target = config.target

    otp_service.issue_otp(uow, notifier, channel_for_method(method), target)
    return target


def disable(uow: AbstractUnitOfWork, email: str) -> bool:
    """Turn two-factor authentication off for an account.

    Removes the configuration, its recovery codes and any pending enrollment.

    Returns:
        True if 2FA was enabled or pending, False if there was nothing to remove
    """
    email = normalise_email(email)
    with account_locks.hold(two_factor_key(email)), uow:
        removed_config = uow.two_factor_configs.delete(email)
        removed_pending = uow.pending_enrollments.delete(email)
        uow.commit()

    if removed_config or removed_pending:
        log.info("two-factor disabled", email=email)
    return removed_config or removed_pending


def regenerate_recovery_codes(uow: AbstractUnitOfWork, email: str) -> list[str]:
    """Replace all recovery codes, used or not, with a fresh set.

    Returns:
        List of new plaintext recovery codes

    Raises:
        TwoFactorSetupError: if 2FA is not enabled
    """
    email = normalise_email(email)
    recovery_codes = totp_service.generate_recovery_codes()
    with account_locks.hold(two_factor_key(email)), uow:
        config = _enabled_config(uow, email, for_update=True)
        if config is None:
            raise TwoFactorSetupError("2FA is not enabled for this account")
        config.replace_recovery_codes([totp_service.hash_recovery_code(c) for c in recovery_codes])
        uow.commit()

    log.info("recovery codes regenerated", email=email)
    return recovery_codes


def get_2fa_status(uow: AbstractUnitOfWork, email: str) -> dict[str, Any]:
    """Get 2FA status for an account.

    Returns:
        Dictionary with 2FA status information:
        - enabled: bool
        - enrolling: bool
        - method: str | None
        - target: str | None
        - recovery_codes_remaining: int
    """
    email = normalise_email(email)
    with uow:
        config = _enabled_config(uow, email)
        pending = uow.pending_enrollments.get(email)
        if config is None:
            return {
                "enabled": False,
                "enrolling": pending is not None,
                "method": pending.method.value if pending else None,
                "target": None,
                "recovery_codes_remaining": 0,
            }
        return {
            "enabled": True,
            "enrolling": False,
            "method": config.method.value,
            "target": config.target or None,
            "recovery_codes_remaining": config.recovery_codes_remaining(),
        }
