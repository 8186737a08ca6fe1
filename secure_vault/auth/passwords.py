"""Password hashing for account credentials.

Uses PBKDF2-HMAC-SHA256 from the cryptography library with a per-password
random salt. Stored hashes are self-describing so the iteration count can be
raised later without invalidating existing accounts:

    pbkdf2_sha256$<iterations>$<base64 salt>$<base64 hash>
"""

import base64
import binascii
import re

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..crypto.key_material import random_bytes

# Key derivation parameters (OWASP 2023 recommendations)
PBKDF2_ITERATIONS = 480_000
SALT_SIZE = 32  # 256 bits
HASH_SIZE = 32

SCHEME = "pbkdf2_sha256"


class PasswordHasher:
    """Derives and verifies password hashes using PBKDF2."""

    def __init__(self, iterations: int = PBKDF2_ITERATIONS, salt_size: int = SALT_SIZE):
        """
        Initialize the hasher.

        Args:
            iterations: PBKDF2 iteration count for new hashes
            salt_size: Salt length in bytes for new hashes
        """
        if iterations < 1:
            raise ValueError("iterations must be positive")
        self.iterations = iterations
        self.salt_size = salt_size

    @staticmethod
    def _kdf(salt: bytes, iterations: int) -> PBKDF2HMAC:
        return PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=HASH_SIZE,
            salt=salt,
            iterations=iterations,
        )

    def hash(self, password: str) -> str:
        """
        Hash a password with a fresh salt.

        Args:
            password: Plaintext password

        Returns:
            Encoded hash string
        """
        salt = random_bytes(self.salt_size)
        derived = self._kdf(salt, self.iterations).derive(password.encode("utf-8"))
        salt_b64 = base64.b64encode(salt).decode("ascii")
        hash_b64 = base64.b64encode(derived).decode("ascii")
        return f"{SCHEME}${self.iterations}${salt_b64}${hash_b64}"

    def verify(self, password: str, encoded: str) -> bool:
        """
        Verify a password against an encoded hash in constant time.

        Args:
            password: Password to check
            encoded: Hash produced by hash()

        Returns:
            True if the password matches
        """
        try:
            scheme, iterations, salt_b64, hash_b64 = encoded.split("$")
            if scheme != SCHEME:
                return False
            salt = base64.b64decode(salt_b64, validate=True)
            expected = base64.b64decode(hash_b64, validate=True)
            kdf = self._kdf(salt, int(iterations))
        except (ValueError, binascii.Error):
            return False

        try:
            kdf.verify(password.encode("utf-8"), expected)
            return True
        except InvalidKey:
            return False

    def needs_rehash(self, encoded: str) -> bool:
        """Check whether a stored hash uses fewer iterations than configured."""
        try:
            scheme, iterations, _, _ = encoded.split("$")
            return scheme != SCHEME or int(iterations) < self.iterations
        except ValueError:
            return True


def password_strength(password: str) -> int:
    """
    Score password strength from 0 to 6.

    One point each for: length >= 8, length >= 12, an uppercase letter,
    a lowercase letter, a digit, a symbol.
    """
    score = 0

    if len(password) >= 8:
        score += 1
    if len(password) >= 12:
        score += 1

    if re.search(r"[A-Z]", password):
        score += 1
    if re.search(r"[a-z]", password):
        score += 1
    if re.search(r"[0-9]", password):
        score += 1
    if re.search(r"[^A-Za-z0-9]", password):
        score += 1

    return min(score, 6)
