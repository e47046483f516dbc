"""ABOUTME: Unit tests for CLI commands
ABOUTME: Runs commands against in-memory SQLite services, or mocked services for error handling"""

import re
from unittest.mock import Mock, patch

import pyotp
import pytest
from click.testing import CliRunner

from loginguard import config as loginguard_config
from loginguard.bootstrap import bootstrap
from loginguard.domain.two_factor import TotpEnrollment
from loginguard.domain.value_objects import OtpChannel
from loginguard.entrypoints.cli import cli
from loginguard.service_layer import two_factor_service
from loginguard.service_layer.exceptions import StorageFailure
from tests.fakes import FakeLocationResolver, FakeNotificationChannel

EMAIL = "alice@example.com"
PASSWORD = "correct horse battery"  # pragma: allowlist secret


@pytest.fixture
def services(sqlite_session_factory):
    return bootstrap(
        loginguard_config.TestingConfig(),
        session_factory=sqlite_session_factory,
        resolver=FakeLocationResolver({
            "203.0.113.10": "Houston, TX, US",
            "198.51.100.7": "Lagos, LA, NG",
        }),
        notifier=FakeNotificationChannel(),
    )


@pytest.fixture
def invoke(services):
    runner = CliRunner()

    def _invoke(args, input=None):
        return runner.invoke(
            cli, args, input=input, obj={"config": loginguard_config.TestingConfig(), "services": services}
        )

    return _invoke


def _enable_totp(services) -> tuple[str, list[str]]:
    setup = two_factor_service.begin_enrollment(services.uow, services.notifier, EMAIL, TotpEnrollment())
    result = two_factor_service.confirm_enrollment(services.uow, EMAIL, pyotp.TOTP(setup.secret).now())
    return setup.secret, result.recovery_codes


class TestCliVersion:
    def test_version(self):
        result = CliRunner().invoke(cli, ["version"], obj={"config": loginguard_config.TestingConfig()})

        assert result.exit_code == 0
        assert "LoginGuard 0.1.0" in result.output


class TestCliAccounts:
    def test_add_account(self, invoke):
        result = invoke(["accounts", "add", "--email", EMAIL, "--password", PASSWORD, "--home-region", "TX"])

        assert result.exit_code == 0
        assert "✓ Account created successfully:" in result.output
        assert EMAIL in result.output
        assert "Home region: TX" in result.output

    def test_add_account_prompts_for_password(self, invoke):
        result = invoke(["accounts", "add", "--email", EMAIL], input=f"{PASSWORD}\n{PASSWORD}\n")

        assert result.exit_code == 0
        assert "✓ Account created successfully:" in result.output

    def test_duplicate_account(self, invoke):
        invoke(["accounts", "add", "--email", EMAIL, "--password", PASSWORD])

        result = invoke(["accounts", "add", "--email", EMAIL, "--password", PASSWORD])

        assert result.exit_code == 1
        assert "✗ Error:" in result.output
        assert "already exists" in result.output


class TestCliTwoFactor:
    def test_status_when_not_enabled(self, invoke):
        result = invoke(["two-factor", "status", EMAIL])

        assert result.exit_code == 0
        assert "Enabled: no" in result.output

    def test_enroll_totp_then_confirm(self, invoke, services):
        result = invoke(["two-factor", "enroll", EMAIL, "--no-confirm"])

        assert result.exit_code == 0
        secret = re.search(r"Secret: (\S+)", result.output).group(1)
        assert "otpauth://totp/" in result.output
        assert "Run `loginguard two-factor confirm`" in result.output

        pending = invoke(["two-factor", "status", EMAIL])
        assert "pending confirmation" in pending.output

        confirmed = invoke(["two-factor", "confirm", EMAIL, pyotp.TOTP(secret).now()])

        assert confirmed.exit_code == 0
        assert "✓ Two-factor authentication enabled." in confirmed.output
        assert confirmed.output.count("-") >= 10
        assert two_factor_service.get_2fa_status(services.uow, EMAIL)["recovery_codes_remaining"] == 10

    def test_enroll_sms_prompts_for_code(self, invoke, services):
        # the prompt input cannot know the random code, so a wrong one exercises the rejection path
        result = invoke(["two-factor", "enroll", EMAIL, "--method", "sms", "--phone", "+15550100"], input="000000\n")

        assert "A verification code has been sent to +15550100" in result.output
        assert services.notifier.sent[0][0] == OtpChannel.SMS
        if services.notifier.last_code() == "000000":
            assert result.exit_code == 0
        else:
            assert result.exit_code == 1
            assert "✗" in result.output

    def test_enroll_email_then_confirm(self, invoke, services):
        invoke(
            ["two-factor", "enroll", EMAIL, "--method", "email"]
            + ["--backup-email", "alice@backup.example", "--no-confirm"]
        )

        result = invoke(["two-factor", "confirm", EMAIL, services.notifier.last_code()])

        assert result.exit_code == 0
        status = invoke(["two-factor", "status", EMAIL])
        assert "Enabled: yes (email)" in status.output
        assert "Codes sent to: alice@backup.example" in status.output

    def test_enroll_rejects_bad_backup_email(self, invoke):
        result = invoke(["two-factor", "enroll", EMAIL, "--method", "email", "--backup-email", "not-an-email"])

        assert result.exit_code == 1
        assert "✗ Error:" in result.output

    def test_confirm_without_pending_enrollment(self, invoke):
        result = invoke(["two-factor", "confirm", EMAIL, "123456"])

        assert result.exit_code == 1
        assert "No two-factor enrollment is pending" in result.output

    def test_disable_with_confirm_flag(self, invoke, services):
        _enable_totp(services)

        result = invoke(["two-factor", "disable", EMAIL, "--confirm"])

        assert result.exit_code == 0
        assert "✓ Two-factor authentication disabled" in result.output
        assert two_factor_service.get_two_factor_config(services.uow, EMAIL) is None

    def test_disable_cancelled_at_prompt(self, invoke, services):
        _enable_totp(services)

        result = invoke(["two-factor", "disable", EMAIL], input="n\n")

        assert "Operation cancelled." in result.output
        assert two_factor_service.get_two_factor_config(services.uow, EMAIL) is not None

    def test_disable_when_not_enabled(self, invoke):
        result = invoke(["two-factor", "disable", EMAIL, "--confirm"])

        assert result.exit_code == 0
        assert "was not enabled" in result.output

    def test_regenerate_recovery_codes(self, invoke, services):
        _secret, old_codes = _enable_totp(services)

        result = invoke(["two-factor", "regenerate-recovery-codes", EMAIL])

        assert result.exit_code == 0
        assert "✓ Recovery codes regenerated." in result.output
        for old_code in old_codes:
            assert old_code not in result.output

    @patch("loginguard.entrypoints.cli.two_factor.two_factor_service")
    def test_storage_failure_reported(self, mock_service):
        mock_service.get_2fa_status.side_effect = StorageFailure("database is unreachable")

        result = CliRunner().invoke(
            cli,
            ["two-factor", "status", EMAIL],
            obj={"config": loginguard_config.TestingConfig(), "services": Mock()},
        )

        assert result.exit_code == 1
        assert "✗ Error: database is unreachable" in result.output


class TestCliLogin:
    def _add_account(self, services, home_region=None):
        services.accounts.add_account(EMAIL, PASSWORD, home_region=home_region)

    def test_login_without_two_factor(self, invoke, services):
        self._add_account(services)

        result = invoke(["login", "--email", EMAIL, "--password", PASSWORD, "--ip", "203.0.113.10"])

        assert result.exit_code == 0
        assert "✓ Signed in." in result.output
        token = re.search(r"Session token: (\S+)", result.output).group(1)
        assert services.sessions.get_by_token(token).email == EMAIL

    def test_wrong_password(self, invoke, services):
        self._add_account(services)

        result = invoke(["login", "--email", EMAIL, "--password", "nope"])

        assert result.exit_code == 1
        assert "Invalid email or password" in result.output

    def test_login_with_totp(self, invoke, services):
        self._add_account(services)
        secret, _codes = _enable_totp(services)

        result = invoke(
            ["login", "--email", EMAIL, "--password", PASSWORD, "--ip", "203.0.113.10"],
            input=f"{pyotp.TOTP(secret).now()}\n",
        )

        assert result.exit_code == 0
        assert "Enter your totp code" in result.output
        assert "✓ Signed in." in result.output

    def test_login_with_recovery_code(self, invoke, services):
        self._add_account(services)
        _secret, recovery_codes = _enable_totp(services)

        result = invoke(
            ["login", "--email", EMAIL, "--password", PASSWORD, "--ip", "203.0.113.10"],
            input=f"recovery\n{recovery_codes[0]}\n",
        )

        assert result.exit_code == 0
        assert "✓ Signed in." in result.output
        assert two_factor_service.get_2fa_status(services.uow, EMAIL)["recovery_codes_remaining"] == 9

    def test_too_many_wrong_codes_cancels(self, invoke, services):
        self._add_account(services)
        _enable_totp(services)

        result = invoke(
            ["login", "--email", EMAIL, "--password", PASSWORD],
            input="abcdef\nabcdef\nabcdef\n",
        )

        assert result.exit_code == 1
        assert "Too many invalid codes." in result.output
        assert "Login cancelled." in result.output

    def test_unusual_login_asks_for_confirmation(self, invoke, services):
        self._add_account(services)
        invoke(["login", "--email", EMAIL, "--password", PASSWORD, "--ip", "203.0.113.10"])

        result = invoke(
            [
                "login",
                "--email",
                EMAIL,
                "--password",
                PASSWORD,
                "--ip",
                "198.51.100.7",
                "--user-agent",
                "curl/8.5",
            ],
            input="y\n",
        )

        assert result.exit_code == 0
        assert "This sign-in looks unusual:" in result.output
        assert "suspicious ip" in result.output
        assert "✓ Signed in." in result.output

    def test_unusual_login_declined(self, invoke, services):
        self._add_account(services)
        invoke(["login", "--email", EMAIL, "--password", PASSWORD, "--ip", "203.0.113.10"])

        result = invoke(
            ["login", "--email", EMAIL, "--password", PASSWORD, "--ip", "198.51.100.7", "--user-agent", "curl/8.5"],
            input="n\n",
        )

        assert result.exit_code == 1
        assert "Login cancelled." in result.output


class TestCliDatabase:
    def test_init(self, invoke):
        result = invoke(["database", "init"])

        assert result.exit_code == 0
        assert "✓ Database tables created." in result.output

    def test_drop_refused_without_env(self, invoke, clear_env_vars):
        clear_env_vars("ALLOW_RESET_DB")

        result = invoke(["database", "drop"])

        assert result.exit_code == 0
        assert "dangerous operation" in result.output

    def test_drop_needs_typed_confirmation(self, invoke, temp_env_vars):
        temp_env_vars(ALLOW_RESET_DB="DANGEROUS")

        result = invoke(["database", "drop"], input="yes\n")

        assert "Operation cancelled." in result.output

    def test_drop(self, invoke, temp_env_vars):
        temp_env_vars(ALLOW_RESET_DB="DANGEROUS")

        result = invoke(["database", "drop"], input="delete everything\n")

        assert result.exit_code == 0
        assert "✓ Database tables dropped." in result.output
