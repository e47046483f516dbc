"""ABOUTME: TOTP service for two-factor authentication core functions
ABOUTME: Handles TOTP secret generation, encryption, QR codes, code verification and recovery codes"""

import base64
import io
import secrets

import pyotp
import qrcode
from cryptography.fernet import Fernet
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from werkzeug.security import check_password_hash, generate_password_hash

from loginguard.config import get_recovery_code_hash_method, get_totp_encryption_key, get_totp_issuer
from loginguard.domain.value_objects import normalise_recovery_code

# 30-second steps, accept 2 steps either side (about a minute of clock skew)
TOTP_VALID_WINDOW = 2
RECOVERY_CODE_COUNT = 10


def derive_account_encryption_key(master_key: bytes, email: str) -> bytes:
    """Derive an account-specific encryption key from the master key using HKDF.

    This ensures each account has a different encryption key even with the same master key.
    """
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=b"loginguard-totp-encryption",  # Fixed salt for deterministic derivation
        info=email.encode("utf-8"),  # Account email as context info
    )
    return hkdf.derive(master_key)


def _fernet_for(email: str) -> Fernet:
    account_key = derive_account_encryption_key(get_totp_encryption_key(), email)
    # Fernet requires a base64-encoded 32-byte key
    return Fernet(base64.urlsafe_b64encode(account_key))


def generate_totp_secret() -> str:
    """Generate a new random TOTP secret (base32 encoded)."""
    return pyotp.random_base32()


def encrypt_secret(secret: str, email: str) -> str:
    """Encrypt a secret for storage using Fernet symmetric encryption.

    Args:
        secret: The plaintext secret
        email: The account email, used for key derivation

    Returns:
        Base64-encoded encrypted secret
    """
    return _fernet_for(email).encrypt(secret.encode("utf-8")).decode("ascii")


def decrypt_secret(encrypted_secret: str, email: str) -> str:
    """Decrypt a secret from storage.

    Raises:
        cryptography.fernet.InvalidToken: if the ciphertext was not made with this account's key
    """
    return _fernet_for(email).decrypt(encrypted_secret.encode("ascii")).decode("utf-8")


def provisioning_uri(secret: str, email: str, issuer: str = "") -> str:
    """otpauth:// URI that authenticator apps understand."""
    return pyotp.TOTP(secret).provisioning_uri(name=email, issuer_name=issuer or get_totp_issuer())


def generate_qr_code_data_url(uri: str) -> str:
    """Generate a QR code for a provisioning URI as a data URL (data:image/png;base64,...)."""
    qr = qrcode.QRCode(version=1, box_size=10, border=4)
    qr.add_data(uri)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer)
    img_base64 = base64.b64encode(buffer.getvalue()).decode("ascii")

    return f"data:image/png;base64,{img_base64}"


def verify_totp_code(secret: str, code: str) -> bool:
    """Verify a TOTP code against a secret.

    Accepts the code for the current 30-second step and for the two steps
    either side of it. Does not prevent replay within that window.
    """
    code = code.strip().replace(" ", "")
    if not code.isdigit():
        return False
    return pyotp.TOTP(secret).verify(code, valid_window=TOTP_VALID_WINDOW)


def generate_recovery_codes(count: int = RECOVERY_CODE_COUNT) -> list[str]:
    """Generate pairwise-distinct random recovery codes.

    Returns:
        List of recovery codes in format: XXXX-XXXX
    """
    codes: set[str] = set()
    while len(codes) < count:
        # 8 random hex characters
        code_hex = secrets.token_bytes(4).hex().upper()
        codes.add(f"{code_hex[:4]}-{code_hex[4:]}")
    return sorted(codes)


def hash_recovery_code(code: str) -> str:
    """Hash a recovery code for storage, after normalising it."""
    return generate_password_hash(normalise_recovery_code(code), method=get_recovery_code_hash_method())


def find_recovery_code_hash(code_hashes: list[str], code: str) -> str | None:
    """Return the stored hash that matches `code`, if any."""
    normalised = normalise_recovery_code(code)
    if not normalised:
        return None
    for code_hash in code_hashes:
        if check_password_hash(code_hash, normalised):
            return code_hash
    return None


def encrypt_recovery_codes(codes: list[str], email: str) -> str:
    """Encrypt plaintext recovery codes while an enrollment is pending confirmation."""
    return encrypt_secret("\n".join(codes), email)


def decrypt_recovery_codes(encrypted_codes: str, email: str) -> list[str]:
    decrypted = decrypt_secret(encrypted_codes, email)
    return decrypted.split("\n") if decrypted else []
