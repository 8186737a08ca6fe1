"""TOTP multi-factor authentication (RFC 6238).

Secrets are random bytes shared with the user's authenticator app as
unpadded base32. Codes use HMAC-SHA1, a 30 second step and 6 digits,
which is what common authenticator apps expect.
"""

import base64
import binascii
import time
from typing import Optional
from urllib.parse import quote

from cryptography.hazmat.primitives.hashes import SHA1
from cryptography.hazmat.primitives.twofactor import InvalidToken
from cryptography.hazmat.primitives.twofactor.totp import TOTP

from ..crypto.key_material import random_bytes
from ..exceptions import ValidationError

DIGITS = 6
STEP_SECONDS = 30
VALID_WINDOW = 1
SECRET_BYTES = 20  # 160 bits, the RFC 4226 recommendation
DEFAULT_ISSUER = "SecureVault"


def generate_secret(num_bytes: int = SECRET_BYTES) -> str:
    """Generate a new shared secret as unpadded base32."""
    return base64.b32encode(random_bytes(num_bytes)).decode("ascii").rstrip("=")


def _secret_bytes(secret: str) -> bytes:
    """Decode a base32 secret as typed or pasted by a user."""
    cleaned = secret.replace(" ", "").upper()
    if not cleaned:
        raise ValidationError("MFA secret is empty")
    cleaned += "=" * (-len(cleaned) % 8)
    try:
        return base64.b32decode(cleaned)
    except (binascii.Error, ValueError):
        raise ValidationError("MFA secret is not valid base32")


def normalize_secret(secret: str) -> str:
    """Return the canonical unpadded uppercase form of a secret."""
    return base64.b32encode(_secret_bytes(secret)).decode("ascii").rstrip("=")


def _totp(secret: str, digits: int, step_seconds: int) -> TOTP:
    return TOTP(
        _secret_bytes(secret),
        digits,
        SHA1(),
        step_seconds,
        enforce_key_length=False,
    )


def generate_code(
    secret: str,
    at: Optional[float] = None,
    digits: int = DIGITS,
    step_seconds: int = STEP_SECONDS,
) -> str:
    """
    Compute the code for a secret at a point in time.

    Args:
        secret: Base32 shared secret
        at: Unix timestamp (default: now)
        digits: Code length
        step_seconds: Time step

    Returns:
        Zero-padded numeric code
    """
    at = time.time() if at is None else at
    return _totp(secret, digits, step_seconds).generate(int(at)).decode("ascii")


def verify_code(
    secret: str,
    code: str,
    at: Optional[float] = None,
    digits: int = DIGITS,
    step_seconds: int = STEP_SECONDS,
    valid_window: int = VALID_WINDOW,
) -> bool:
    """
    Verify a code, accepting valid_window steps of clock skew either side.

    Args:
        secret: Base32 shared secret
        code: Code entered by the user (spaces are ignored)
        at: Unix timestamp (default: now)
        digits: Code length
        step_seconds: Time step
        valid_window: Number of adjacent steps to accept

    Returns:
        True if the code is valid
    """
    if code is None:
        return False
    code = code.replace(" ", "")
    if len(code) != digits or not (code.isascii() and code.isdigit()):
        return False

    try:
        totp = _totp(secret, digits, step_seconds)
    except ValidationError:
        return False

    at = time.time() if at is None else at
    token = code.encode("ascii")

    for offset in range(-valid_window, valid_window + 1):
        try:
            totp.verify(token, int(at) + offset * step_seconds)
            return True
        except InvalidToken:
            continue

    return False


def provisioning_uri(
    secret: str,
    account: str,
    issuer: str = DEFAULT_ISSUER,
    digits: int = DIGITS,
    step_seconds: int = STEP_SECONDS,
) -> str:
    """
    Build the otpauth:// URI an authenticator app scans.

    Format:
        otpauth://totp/<issuer>:<account>?secret=<b32>&issuer=<issuer>
            &algorithm=SHA1&digits=6&period=30
    """
    issuer_q = quote(issuer, safe="")
    account_q = quote(account, safe="@")
    return (
        f"otpauth://totp/{issuer_q}:{account_q}"
        f"?secret={normalize_secret(secret)}"
        f"&issuer={issuer_q}"
        f"&algorithm=SHA1&digits={digits}&period={step_seconds}"
    )
