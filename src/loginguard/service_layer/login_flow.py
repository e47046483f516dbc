"""ABOUTME: Login orchestrator state machine sequencing credentials, second factor and risk checks
ABOUTME: Issues exactly one session per successful login, after any required verification"""

from dataclasses import dataclass

import structlog

from loginguard.adapters.accounts import AccountStore
from loginguard.adapters.location import LocationResolver
from loginguard.adapters.notifications import NotificationChannel
from loginguard.adapters.sessions import SessionStore
from loginguard.domain.accounts import Account, Session
from loginguard.domain.anomalies import AnomalyFlags, requires_additional_verification
from loginguard.domain.login_attempts import ClientContext, LoginAttempt
from loginguard.domain.two_factor import EnrollmentRequest, EnrollmentResult, EnrollmentSetup, TwoFactorConfig
from loginguard.domain.value_objects import LoginState, TwoFactorMethod, VerificationMethod, normalise_email
from loginguard.service_layer import attempt_ledger, risk_engine, two_factor_service
from loginguard.service_layer.exceptions import (
    InvalidCredentials,
    InvalidTransition,
    ServiceLayerError,
    UnknownTwoFactorMethod,
)
from loginguard.service_layer.unit_of_work import AbstractUnitOfWork

log = structlog.get_logger(__name__)


@dataclass(slots=True)
class LoginStep:
    """Where the login stands after an input was accepted."""

    state: LoginState
    flags: AnomalyFlags | None = None
    session: Session | None = None
    method: TwoFactorMethod | None = None


class LoginFlow:
    """One login traversal for one client.

    Create a new LoginFlow per login. Inputs that the current state does not
    accept raise InvalidTransition. Any other exception leaves the state as it
    was, so the same input can be retried.
    """

    def __init__(
        self,
        uow: AbstractUnitOfWork,
        accounts: AccountStore,
        resolver: LocationResolver,
        notifier: NotificationChannel,
        sessions: SessionStore,
        client: ClientContext,
        default_home_region: str = "",
    ):
        self.uow = uow
        self.accounts = accounts
        self.resolver = resolver
        self.notifier = notifier
        self.sessions = sessions
        self.client = client
        self.default_home_region = default_home_region

        self.state = LoginState.COLLECTING_CREDENTIALS
        self.account: Account | None = None
        self.two_factor: TwoFactorConfig | None = None
        self.attempt: LoginAttempt | None = None
        self.flags: AnomalyFlags | None = None
        self.session: Session | None = None

    def _require(self, action: str, *states: LoginState) -> None:
        if self.state not in states:
            raise InvalidTransition(self.state.value, action)

    def _home_region(self) -> str | None:
        assert self.account is not None
        return self.account.home_region or self.default_home_region or None

    def login(self, email: str, password: str) -> LoginStep:
        """Check the primary credentials and move to the next step.

        Raises:
            InvalidCredentials: unknown email or wrong password; the failure is recorded
            LocationLookupFailure, StorageFailure: nothing was recorded, state unchanged
        """
        self._require("submit credentials", LoginState.COLLECTING_CREDENTIALS)

        account = self.accounts.verify(email, password)
        if account is None:
            attempt_ledger.record_attempt(self.uow, self.resolver, email, False, self.client)
            log.info("login failed", email=normalise_email(email), ip_address=self.client.ip_address)
            raise InvalidCredentials()

        attempt = attempt_ledger.record_attempt(self.uow, self.resolver, account.email, True, self.client)
        config = two_factor_service.get_two_factor_config(self.uow, account.email)

        self.account = account
        self.attempt = attempt
        if config is not None:
            self.two_factor = config
            self.state = LoginState.AWAITING_SECOND_FACTOR
            log.info("awaiting second factor", email=account.email, method=config.method.value)
            return LoginStep(state=self.state, method=config.method)

        return self._evaluate_risk(self.client)

    def send_second_factor_code(self) -> str:
        """Send a login code for accounts using SMS or email codes.

        Returns:
            The phone number or email address the code was sent to

        Raises:
            UnknownTwoFactorMethod: the account uses an authenticator app
            DeliveryFailure, RateLimitExceeded: nothing changed, may be retried
        """
        self._require("send a code", LoginState.AWAITING_SECOND_FACTOR)
        assert self.account is not None and self.two_factor is not None
        if self.two_factor.method == TwoFactorMethod.TOTP:
            raise UnknownTwoFactorMethod("sms/email")
        return two_factor_service.send_login_code(self.uow, self.notifier, self.account.email)

    def submit_second_factor(
        self, method: VerificationMethod, code: str, client: ClientContext | None = None
    ) -> LoginStep:
        """Check a second-factor code, then evaluate risk for the (possibly refreshed) client.

        Raises:
            InvalidCode, CodeExpired, CodeAlreadyUsed: stay in AWAITING_SECOND_FACTOR
            UnknownTwoFactorMethod: `method` is not configured for the account
            LocationLookupFailure, StorageFailure: the code is released and may be
                submitted again; state unchanged
        """
        self._require("submit a second factor", LoginState.AWAITING_SECOND_FACTOR)
        assert self.account is not None

        accepted = two_factor_service.check_second_factor(self.uow, self.account.email, method, code)
        log.info("second factor accepted", email=self.account.email, method=method.value)

        try:
            step = self._evaluate_risk(client if client is not None else self.client)
        except ServiceLayerError:
            self._release_second_factor(accepted)
            raise
        if client is not None:
            self.client = client
        return step

    def _release_second_factor(self, accepted: two_factor_service.AcceptedFactor) -> None:
        assert self.account is not None
        try:
            two_factor_service.release_second_factor(self.uow, self.account.email, accepted)
        except ServiceLayerError:
            # the caller re-raises the error that stopped the login
            log.error("could not release second factor", email=self.account.email, exc_info=True)

    def resolve_additional_verification(self, confirm: bool) -> LoginStep:
        """Finish a login that the risk engine flagged: confirm to sign in, or cancel."""
        self._require("resolve additional verification", LoginState.AWAITING_ADDITIONAL_VERIFICATION)
        if not confirm:
            return self.cancel()
        assert self.flags is not None
        return self._authenticate(self.flags)

    def cancel(self) -> LoginStep:
        """Abandon the login before a session was issued."""
        self._require(
            "cancel",
            LoginState.AWAITING_SECOND_FACTOR,
            LoginState.AWAITING_ADDITIONAL_VERIFICATION,
        )
        email = self.account.email if self.account else None
        self.account = None
        self.two_factor = None
        self.flags = None
        self.state = LoginState.CANCELLED
        log.info("login cancelled", email=email)
        return LoginStep(state=self.state)

    def _evaluate_risk(self, client: ClientContext) -> LoginStep:
        assert self.account is not None
        flags = risk_engine.assess(
            self.uow,
            self.account.email,
            client,
            home_region=self._home_region(),
            exclude=self.attempt,
        )
        if requires_additional_verification(flags):
            self.flags = flags
            self.state = LoginState.AWAITING_ADDITIONAL_VERIFICATION
            log.warning("additional verification required", email=self.account.email, flags=flags.active())
            return LoginStep(state=self.state, flags=flags)
        return self._authenticate(flags)

    def _authenticate(self, flags: AnomalyFlags) -> LoginStep:
        assert self.account is not None
        session = self.sessions.save(self.account)
        self.session = session
        self.flags = flags
        self.state = LoginState.AUTHENTICATED
        log.info("session issued", email=self.account.email)
        return LoginStep(state=self.state, flags=flags, session=session)


def begin_two_factor_enrollment(
    uow: AbstractUnitOfWork, notifier: NotificationChannel, email: str, request: EnrollmentRequest
) -> EnrollmentSetup:
    return two_factor_service.begin_enrollment(uow, notifier, email, request)


def confirm_two_factor_enrollment(uow: AbstractUnitOfWork, email: str, code: str) -> EnrollmentResult:
    return two_factor_service.confirm_enrollment(uow, email, code)
