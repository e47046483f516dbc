"""ABOUTME: End-to-end login tests through bootstrap() with a real SQLite database
ABOUTME: Covers plain, second-factor, risk-escalated and cancelled logins"""

from datetime import UTC, datetime, timedelta

import pyotp
import pytest

from loginguard import config as loginguard_config
from loginguard.bootstrap import bootstrap
from loginguard.domain.accounts import Session
from loginguard.domain.login_attempts import ClientContext
from loginguard.domain.two_factor import SmsEnrollment, TotpEnrollment
from loginguard.domain.value_objects import LoginState, VerificationMethod
from loginguard.service_layer import attempt_ledger, two_factor_service
from loginguard.service_layer.exceptions import CodeAlreadyUsed, InvalidCredentials
from loginguard.service_layer.login_flow import begin_two_factor_enrollment, confirm_two_factor_enrollment
from tests.fakes import FakeNotificationChannel

pytestmark = pytest.mark.integration

EMAIL = "alice@example.com"
PASSWORD = "correct horse battery"  # pragma: allowlist secret
START = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)

HOUSTON = ClientContext(ip_address="203.0.113.10", user_agent="Mozilla/5.0 Firefox/128.0", language="en-US")
LAGOS = ClientContext(ip_address="198.51.100.7", user_agent="Mozilla/5.0 Firefox/128.0", language="en-US")


@pytest.fixture
def services(sqlite_session_factory, resolver, time_machine):
    time_machine.move_to(START, tick=False)
    services = bootstrap(
        loginguard_config.TestingConfig(),
        session_factory=sqlite_session_factory,
        resolver=resolver,
        notifier=FakeNotificationChannel(),
    )
    services.accounts.add_account(EMAIL, PASSWORD, home_region="TX")
    return services


def _session_count(services) -> int:
    with services.session_factory() as db_session:
        return db_session.query(Session).count()


class TestPlainLogin:
    def test_first_login_is_authenticated(self, services):
        step = services.login_flow(HOUSTON).login(EMAIL, PASSWORD)

        assert step.state == LoginState.AUTHENTICATED
        assert step.flags.new_device
        assert services.sessions.get_by_token(step.session.token).email == EMAIL
        assert [a.success for a in attempt_ledger.get_history(services.uow, EMAIL)] == [True]

    def test_wrong_password_is_recorded(self, services):
        with pytest.raises(InvalidCredentials):
            services.login_flow(HOUSTON).login(EMAIL, "wrong")

        history = attempt_ledger.get_history(services.uow, EMAIL)
        assert [a.success for a in history] == [False]
        assert _session_count(services) == 0


class TestSecondFactorLogin:
    def test_sms_code_login(self, services, time_machine):
        notifier = services.notifier
        begin_two_factor_enrollment(services.uow, notifier, EMAIL, SmsEnrollment(phone_number="+15550100"))
        confirm_two_factor_enrollment(services.uow, EMAIL, notifier.last_code())
        time_machine.shift(timedelta(minutes=2))

        flow = services.login_flow(HOUSTON)
        step = flow.login(EMAIL, PASSWORD)
        assert step.state == LoginState.AWAITING_SECOND_FACTOR

        assert flow.send_second_factor_code() == "+15550100"
        code = notifier.last_code()
        step = flow.submit_second_factor(VerificationMethod.SMS, code)

        assert step.state == LoginState.AUTHENTICATED
        assert _session_count(services) == 1

        # the same code cannot open a second login
        time_machine.shift(timedelta(minutes=1))
        second = services.login_flow(HOUSTON)
        second.login(EMAIL, PASSWORD)
        with pytest.raises(CodeAlreadyUsed):
            second.submit_second_factor(VerificationMethod.SMS, code)
        assert second.state == LoginState.AWAITING_SECOND_FACTOR

    def test_totp_login_then_recovery_code(self, services):
        setup = begin_two_factor_enrollment(services.uow, services.notifier, EMAIL, TotpEnrollment())
        result = confirm_two_factor_enrollment(services.uow, EMAIL, pyotp.TOTP(setup.secret).now())

        flow = services.login_flow(HOUSTON)
        flow.login(EMAIL, PASSWORD)
        step = flow.submit_second_factor(VerificationMethod.TOTP, pyotp.TOTP(setup.secret).now())
        assert step.state == LoginState.AUTHENTICATED

        flow = services.login_flow(HOUSTON)
        flow.login(EMAIL, PASSWORD)
        step = flow.submit_second_factor(VerificationMethod.RECOVERY, result.recovery_codes[0])
        assert step.state == LoginState.AUTHENTICATED
        assert two_factor_service.get_2fa_status(services.uow, EMAIL)["recovery_codes_remaining"] == 9


class TestRiskEscalation:
    def test_failed_attempts_require_confirmation(self, services, time_machine):
        services.login_flow(HOUSTON).login(EMAIL, PASSWORD)
        time_machine.shift(timedelta(hours=2))
        for _ in range(3):
            with pytest.raises(InvalidCredentials):
                services.login_flow(HOUSTON).login(EMAIL, "wrong")
            time_machine.shift(timedelta(minutes=2))

        flow = services.login_flow(HOUSTON)
        step = flow.login(EMAIL, PASSWORD)

        assert step.state == LoginState.AWAITING_ADDITIONAL_VERIFICATION
        assert step.flags.multiple_failed_attempts
        assert _session_count(services) == 1

        step = flow.resolve_additional_verification(True)

        assert step.state == LoginState.AUTHENTICATED
        assert _session_count(services) == 2

    def test_unusual_location_declined(self, services, time_machine):
        services.login_flow(LAGOS).login(EMAIL, PASSWORD)
        time_machine.shift(timedelta(hours=1))

        flow = services.login_flow(LAGOS)
        step = flow.login(EMAIL, PASSWORD)

        assert step.state == LoginState.AWAITING_ADDITIONAL_VERIFICATION
        assert step.flags.unusual_location
        assert not step.flags.suspicious_ip

        step = flow.resolve_additional_verification(False)

        assert step.state == LoginState.CANCELLED
        assert _session_count(services) == 1
