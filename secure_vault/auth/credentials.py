"""Account records and credential storage.

Accounts are kept as a single "accounts" table in the persistence backend,
keyed by account id. Email lookups compare exactly: "User@x.com" and
"user@x.com" are different accounts.
"""

import secrets
import threading
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from ..exceptions import AccountNotFoundError, DuplicateAccountError
from ..storage import PersistenceBackend
from ..utils.logging import get_logger
from .passwords import PasswordHasher

logger = get_logger(__name__)

ACCOUNTS_KEY = "accounts"


@dataclass(frozen=True)
class Account:
    """A registered user.

    Attributes:
        id: Unique identifier (UUID4 string)
        email: Login email, unique and case-sensitive
        password_hash: Encoded PBKDF2 hash
        mfa_enabled: Whether login requires a TOTP code
        mfa_secret: Base32 TOTP secret when MFA is enabled
        created_at: Registration time
        last_login: Time of the last completed login
    """

    id: str
    email: str
    password_hash: str
    mfa_enabled: bool = False
    mfa_secret: Optional[str] = None
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage."""
        return {
            "id": self.id,
            "email": self.email,
            "password_hash": self.password_hash,
            "mfa_enabled": self.mfa_enabled,
            "mfa_secret": self.mfa_secret,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "last_login": self.last_login.isoformat() if self.last_login else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Account":
        """Create from dictionary."""
        created_at = data.get("created_at")
        last_login = data.get("last_login")
        return cls(
            id=data["id"],
            email=data["email"],
            password_hash=data["password_hash"],
            mfa_enabled=bool(data.get("mfa_enabled", False)),
            mfa_secret=data.get("mfa_secret"),
            created_at=datetime.fromisoformat(created_at) if created_at else None,
            last_login=datetime.fromisoformat(last_login) if last_login else None,
        )

    def __repr__(self) -> str:
        return f"Account(id={self.id!r}, email={self.email!r}, mfa_enabled={self.mfa_enabled})"


class CredentialStore:
    """
    Persists accounts and checks passwords.

    Accounts are immutable values; every change returns the updated
    Account and writes it through to the backend.
    """

    def __init__(
        self,
        backend: PersistenceBackend,
        hasher: Optional[PasswordHasher] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the store.

        Args:
            backend: Persistence backend holding the accounts table
            hasher: Password hasher (default PBKDF2 settings if not provided)
            clock: Returns the current time (injectable for tests)
        """
        self.backend = backend
        self.hasher = hasher or PasswordHasher()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.RLock()
        self._dummy_hash: Optional[str] = None

    def _load_table(self) -> dict[str, dict[str, Any]]:
        return self.backend.load(ACCOUNTS_KEY, {})

    def _save(self, account: Account) -> Account:
        with self._lock:
            table = self._load_table()
            table[account.id] = account.to_dict()
            self.backend.save(ACCOUNTS_KEY, table)
        return account

    def hash_password(self, password: str) -> str:
        """Hash a password for storage."""
        return self.hasher.hash(password)

    def verify_password(self, account: Account, password: str) -> bool:
        """Check a password against an account's stored hash."""
        return self.hasher.verify(password, account.password_hash)

    def verify_against_dummy(self, password: str) -> bool:
        """
        Verify a password against a throwaway hash and return False.

        Used when no account matches so a failed lookup costs as much as a
        wrong password.
        """
        with self._lock:
            if self._dummy_hash is None:
                self._dummy_hash = self.hasher.hash(secrets.token_urlsafe(16))
            dummy_hash = self._dummy_hash
        self.hasher.verify(password, dummy_hash)
        return False

    def register(self, email: str, password: str) -> Account:
        """
        Create a new account.

        Args:
            email: Login email
            password: Plaintext password (hashed before storage)

        Returns:
            The new Account

        Raises:
            DuplicateAccountError: If the email is already registered
        """
        password_hash = self.hash_password(password)

        with self._lock:
            if self.get_by_email(email) is not None:
                raise DuplicateAccountError()

            account = Account(
                id=str(uuid.uuid4()),
                email=email,
                password_hash=password_hash,
                created_at=self._clock(),
            )
            self._save(account)

        logger.info("Registered account %s", account.id)
        return account

    def get_by_id(self, account_id: str) -> Optional[Account]:
        """Look up an account by id."""
        data = self._load_table().get(account_id)
        return Account.from_dict(data) if data else None

    def get_by_email(self, email: str) -> Optional[Account]:
        """Look up an account by exact email."""
        for data in self._load_table().values():
            if data["email"] == email:
                return Account.from_dict(data)
        return None

    def require(self, account_id: str) -> Account:
        """Look up an account by id or raise AccountNotFoundError."""
        account = self.get_by_id(account_id)
        if account is None:
            raise AccountNotFoundError()
        return account

    def all_accounts(self) -> list[Account]:
        """Return every account."""
        return [Account.from_dict(data) for data in self._load_table().values()]

    def set_mfa(self, account: Account, secret: str) -> Account:
        """
        Enable MFA with a new secret, replacing any previous one.

        Codes generated from the old secret stop working immediately.
        """
        with self._lock:
            current = self.require(account.id)
            return self._save(replace(current, mfa_enabled=True, mfa_secret=secret))

    def disable_mfa(self, account: Account) -> Account:
        """Turn off MFA and discard the secret."""
        with self._lock:
            current = self.require(account.id)
            return self._save(replace(current, mfa_enabled=False, mfa_secret=None))

    def update_password(self, account: Account, new_password_hash: str) -> Account:
        """Replace an account's password hash. Existing sessions are not affected."""
        with self._lock:
            current = self.require(account.id)
            return self._save(replace(current, password_hash=new_password_hash))

    def record_login(self, account: Account, when: Optional[datetime] = None) -> Account:
        """Set the last login time."""
        with self._lock:
            current = self.require(account.id)
            return self._save(replace(current, last_login=when or self._clock()))
