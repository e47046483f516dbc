"""Unit tests for TOTP service functions."""

import base64
import secrets
from datetime import UTC, datetime, timedelta

import pyotp
import pytest
from cryptography.fernet import InvalidToken

from loginguard.service_layer import totp_service


def _setup_test_encryption_key(temp_env_vars):
    """Helper to set up a test encryption key in the environment."""
    raw_key = secrets.token_bytes(32)
    test_key = base64.b64encode(raw_key).decode()
    temp_env_vars(TOTP_ENCRYPTION_KEY=test_key)
    return test_key


class TestGenerateTotpSecret:
    def test_generates_valid_base32_secret(self):
        secret = totp_service.generate_totp_secret()

        assert isinstance(secret, str)
        assert len(secret) == 32
        # Base32 alphabet: A-Z and 2-7
        assert all(c in "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567" for c in secret)  # pragma: allowlist secret

    def test_generates_unique_secrets(self):
        assert totp_service.generate_totp_secret() != totp_service.generate_totp_secret()


class TestEncryptDecryptSecret:
    def test_decrypt_returns_original_secret(self, temp_env_vars):
        _setup_test_encryption_key(temp_env_vars)
        secret = "JBSWY3DPEHPK3PXP"  # pragma: allowlist secret

        encrypted = totp_service.encrypt_secret(secret, "alice@example.com")

        assert encrypted != secret
        assert totp_service.decrypt_secret(encrypted, "alice@example.com") == secret

    def test_different_accounts_produce_different_ciphertexts(self, temp_env_vars):
        _setup_test_encryption_key(temp_env_vars)
        secret = "JBSWY3DPEHPK3PXP"  # pragma: allowlist secret

        assert totp_service.encrypt_secret(secret, "alice@example.com") != totp_service.encrypt_secret(
            secret, "bob@example.com"
        )

    def test_cannot_decrypt_with_another_accounts_key(self, temp_env_vars):
        _setup_test_encryption_key(temp_env_vars)
        encrypted = totp_service.encrypt_secret("JBSWY3DPEHPK3PXP", "alice@example.com")  # pragma: allowlist secret

        with pytest.raises(InvalidToken):
            totp_service.decrypt_secret(encrypted, "bob@example.com")

    def test_cannot_decrypt_after_master_key_change(self, temp_env_vars):
        _setup_test_encryption_key(temp_env_vars)
        encrypted = totp_service.encrypt_secret("JBSWY3DPEHPK3PXP", "alice@example.com")  # pragma: allowlist secret
        _setup_test_encryption_key(temp_env_vars)

        with pytest.raises(InvalidToken):
            totp_service.decrypt_secret(encrypted, "alice@example.com")

    def test_derived_key_is_deterministic(self):
        master = secrets.token_bytes(32)

        assert totp_service.derive_account_encryption_key(
            master, "alice@example.com"
        ) == totp_service.derive_account_encryption_key(master, "alice@example.com")


class TestProvisioning:
    def test_provisioning_uri(self, temp_env_vars):
        temp_env_vars(TOTP_ISSUER="Acme Shop")
        uri = totp_service.provisioning_uri("JBSWY3DPEHPK3PXP", "alice@example.com")  # pragma: allowlist secret

        assert uri.startswith("otpauth://totp/")
        assert "secret=JBSWY3DPEHPK3PXP" in uri  # pragma: allowlist secret
        assert "issuer=Acme%20Shop" in uri

    def test_qr_code_is_png_data_url(self):
        data_url = totp_service.generate_qr_code_data_url("otpauth://totp/test?secret=JBSWY3DPEHPK3PXP")

        assert data_url.startswith("data:image/png;base64,")
        png = base64.b64decode(data_url.split(",", 1)[1])
        assert png.startswith(b"\x89PNG")


class TestVerifyTotpCode:
    secret = "JBSWY3DPEHPK3PXP"  # pragma: allowlist secret

    def _code_at(self, moment: datetime) -> str:
        return pyotp.TOTP(self.secret).at(moment)

    def test_current_code(self):
        assert totp_service.verify_totp_code(self.secret, pyotp.TOTP(self.secret).now())

    @pytest.mark.parametrize("steps", [-2, -1, 1, 2])
    def test_codes_within_two_steps_accepted(self, steps, time_machine):
        now = datetime(2026, 3, 1, 12, 0, 15, tzinfo=UTC)
        time_machine.move_to(now, tick=False)

        assert totp_service.verify_totp_code(self.secret, self._code_at(now + timedelta(seconds=30 * steps)))

    @pytest.mark.parametrize("steps", [-4, -3, 3, 4])
    def test_codes_beyond_two_steps_rejected(self, steps, time_machine):
        now = datetime(2026, 3, 1, 12, 0, 15, tzinfo=UTC)
        time_machine.move_to(now, tick=False)
        code = self._code_at(now + timedelta(seconds=30 * steps))
        # codes can collide across steps; only meaningful when this one differs from the window
        window = {self._code_at(now + timedelta(seconds=30 * s)) for s in range(-2, 3)}
        if code in window:
            pytest.skip("code collides with one inside the window")

        assert not totp_service.verify_totp_code(self.secret, code)

    @pytest.mark.parametrize("code", ["", "abcdef", "12 34", "12345a"])
    def test_malformed_codes_rejected(self, code):
        assert not totp_service.verify_totp_code(self.secret, code)

    def test_whitespace_around_code_ignored(self):
        assert totp_service.verify_totp_code(self.secret, f"  {pyotp.TOTP(self.secret).now()} ")


class TestRecoveryCodes:
    def test_generates_ten_distinct_codes(self):
        codes = totp_service.generate_recovery_codes()

        assert len(codes) == 10
        assert len(set(codes)) == 10

    def test_code_format(self):
        for code in totp_service.generate_recovery_codes():
            assert len(code) == 9
            assert code[4] == "-"
            assert all(c in "0123456789ABCDEF" for c in code.replace("-", ""))

    def test_hash_matches_normalised_forms(self):
        code_hash = totp_service.hash_recovery_code("ABCD-1234")

        assert code_hash != "ABCD-1234"
        for submitted in ["ABCD-1234", "abcd1234", " ABCD1234 "]:
            assert totp_service.find_recovery_code_hash([code_hash], submitted) == code_hash

    def test_find_returns_none_for_unknown_code(self):
        hashes = [totp_service.hash_recovery_code(c) for c in ["ABCD-1234", "EEEE-FFFF"]]

        assert totp_service.find_recovery_code_hash(hashes, "1111-2222") is None
        assert totp_service.find_recovery_code_hash(hashes, "") is None

    def test_hash_uses_configured_method(self, temp_env_vars):
        temp_env_vars(RECOVERY_CODE_HASH_METHOD="pbkdf2:sha256:1000")

        assert totp_service.hash_recovery_code("ABCD-1234").startswith("pbkdf2:sha256:1000$")

    def test_encrypted_recovery_codes_round_trip(self):
        codes = totp_service.generate_recovery_codes()

        encrypted = totp_service.encrypt_recovery_codes(codes, "alice@example.com")

        assert codes[0] not in encrypted
        assert totp_service.decrypt_recovery_codes(encrypted, "alice@example.com") == codes
