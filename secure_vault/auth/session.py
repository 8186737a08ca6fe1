"""Session management and login flows.

A SessionManager owns the single active session for one client context and
drives the login state machine:

    Anonymous --login (no MFA)--------------------------> Authenticated
    Anonymous --login (MFA)--> PendingMFA --complete_mfa--> Authenticated
    Authenticated --logout | expiry | inactivity--------> Anonymous

Expiry is sliding: touch() pushes expires_at forward by the session
lifetime. Expired and inactive sessions are removed lazily, when
current_session() next looks at them.
"""

import re
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from ..config import Settings, get_settings
from ..exceptions import (
    AuthenticationRequiredError,
    InvalidCredentialsError,
    InvalidMFACodeError,
    SessionExpiredError,
    ValidationError,
)
from ..storage import PersistenceBackend, create_backend
from ..utils.logging import get_logger
from . import mfa
from .audit import AuditLog, LogCategory
from .credentials import Account, CredentialStore
from .passwords import PasswordHasher, password_strength

logger = get_logger(__name__)

SESSION_KEY = "session"

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Session:
    """The authenticated session for one client context."""

    user_id: str
    email: str
    expires_at: datetime
    last_activity: datetime

    def is_expired(self, now: datetime) -> bool:
        """Check if the sliding lifetime has run out."""
        return now > self.expires_at

    def is_inactive(self, now: datetime, timeout: timedelta) -> bool:
        """Check if there has been no activity for longer than timeout."""
        if timeout <= timedelta(0):  # No inactivity check
            return False
        return now - self.last_activity > timeout

    def time_remaining(self, now: datetime) -> timedelta:
        """Get time remaining before the session expires."""
        return max(self.expires_at - now, timedelta(0))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage."""
        return {
            "user_id": self.user_id,
            "email": self.email,
            "expires_at": self.expires_at.isoformat(),
            "last_activity": self.last_activity.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        """Create from dictionary."""
        return cls(
            user_id=data["user_id"],
            email=data["email"],
            expires_at=datetime.fromisoformat(data["expires_at"]),
            last_activity=datetime.fromisoformat(data["last_activity"]),
        )


@dataclass
class LoginResult:
    """Outcome of a successful first-factor check."""

    success: bool
    require_mfa: bool = False
    pending_user_id: Optional[str] = None
    message: str = ""
    session: Optional[Session] = None


@dataclass
class MFAEnrollment:
    """Secret and URI shown to the user while setting up MFA."""

    secret: str
    provisioning_uri: str

    def __repr__(self) -> str:
        return "MFAEnrollment(secret=<redacted>)"


class SessionManager:
    """
    Thread-safe owner of the active session and the login flows.

    Usage:
        manager = SessionManager(store)
        result = manager.login(email, password)
        if result.require_mfa:
            manager.complete_mfa(result.pending_user_id, code)

        # On every page load / interaction
        if manager.current_session() is None:
            ...  # redirect to login
        manager.touch()
    """

    def __init__(
        self,
        store: CredentialStore,
        backend: Optional[PersistenceBackend] = None,
        settings: Optional[Settings] = None,
        audit: Optional[AuditLog] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the manager and restore any persisted session.

        Args:
            store: Credential store for account lookups
            backend: Where the session record lives (default: the store's backend)
            settings: Timing and MFA settings (uses global settings if not provided)
            audit: Audit trail for security events (optional)
            clock: Returns the current aware datetime (injectable for tests)
        """
        self.store = store
        self.backend = backend or store.backend
        self.settings = settings or get_settings()
        self.audit = audit
        self._clock = clock or utcnow

        self._session: Optional[Session] = None
        self._pending_mfa: dict[str, datetime] = {}  # user_id -> pending expiry
        self._last_persist: Optional[datetime] = None
        self._lock = threading.RLock()

        self._restore()

    # Configuration shortcuts

    @property
    def lifetime(self) -> timedelta:
        return timedelta(minutes=self.settings.session.session_lifetime_minutes)

    @property
    def inactivity_timeout(self) -> timedelta:
        return timedelta(minutes=self.settings.session.inactivity_timeout_minutes)

    @property
    def pending_mfa_timeout(self) -> timedelta:
        return timedelta(minutes=self.settings.session.pending_mfa_timeout_minutes)

    # Persistence

    def _restore(self) -> None:
        data = self.backend.load(SESSION_KEY)
        if not data:
            return
        try:
            self._session = Session.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Discarding unreadable session record: %s", e)
            self.backend.delete(SESSION_KEY)

    def _persist(self, now: datetime) -> None:
        if self._session is None:
            self.backend.delete(SESSION_KEY)
        else:
            self.backend.save(SESSION_KEY, self._session.to_dict())
        self._last_persist = now

    def _audit(self, level: str, message: str, user: Optional[str] = None, **details) -> None:
        """Report an event to the audit trail without letting it fail the caller."""
        if self.audit is None:
            return
        try:
            getattr(self.audit, level)(LogCategory.AUTH, message, user=user, details=details)
        except Exception as e:
            logger.warning("Audit logging failed: %s", e)

    # Registration and login

    def validate_registration(self, email: str, password: str) -> None:
        """
        Check registration input.

        Raises:
            ValidationError: If a field is empty, the email is malformed,
                or the password is too short
        """
        if not email or not email.strip() or not password:
            raise ValidationError("Email and password are required")
        if not EMAIL_PATTERN.match(email):
            raise ValidationError("Please enter a valid email address")
        min_length = self.settings.session.min_password_length
        if len(password) < min_length:
            raise ValidationError(f"Password must be at least {min_length} characters")

    def register(self, email: str, password: str) -> Account:
        """
        Register a new account.

        Returns:
            The new Account

        Raises:
            ValidationError: If input is invalid
            DuplicateAccountError: If the email is already registered
        """
        self.validate_registration(email, password)
        account = self.store.register(email, password)
        self._audit("info", "Account registered", user=email, user_id=account.id)
        return account

    def login(self, email: str, password: str) -> LoginResult:
        """
        Check email and password.

        Accounts without MFA get a session immediately. Accounts with MFA get
        a pending-MFA result and no session until complete_mfa() succeeds.

        Raises:
            ValidationError: If a field is empty
            InvalidCredentialsError: If the email is unknown or the password is wrong
        """
        if not email or not password:
            raise ValidationError("Email and password are required")

        account = self.store.get_by_email(email)
        if account is None:
            self.store.verify_against_dummy(password)
            self._audit("security", "Failed login: unknown email", user=email)
            raise InvalidCredentialsError()

        if not self.store.verify_password(account, password):
            self._audit("security", "Failed login: wrong password", user=email, user_id=account.id)
            raise InvalidCredentialsError()

        if account.mfa_enabled:
            with self._lock:
                self._pending_mfa[account.id] = self._clock() + self.pending_mfa_timeout
            self._audit("info", "Password accepted, MFA required", user=email)
            return LoginResult(
                success=True,
                require_mfa=True,
                pending_user_id=account.id,
                message="Please enter your MFA code",
            )

        session = self._start_session(account)
        self._audit("info", "Login successful", user=email)
        return LoginResult(success=True, message="Login successful", session=session)

    def complete_mfa(self, pending_user_id: str, code: str) -> Session:
        """
        Finish a login that is waiting for a TOTP code.

        A wrong code leaves the attempt pending so the user can retry until
        the pending window closes.

        Raises:
            InvalidMFACodeError: If there is no pending login for this user,
                the pending login has expired, or the code is wrong
        """
        with self._lock:
            now = self._clock()
            deadline = self._pending_mfa.get(pending_user_id)
            if deadline is None or now > deadline:
                self._pending_mfa.pop(pending_user_id, None)
                self._audit("security", "MFA attempt without pending login", user_id=pending_user_id)
                raise InvalidMFACodeError()

            account = self.store.get_by_id(pending_user_id)
            if account is None or not account.mfa_enabled or not account.mfa_secret:
                self._pending_mfa.pop(pending_user_id, None)
                raise InvalidMFACodeError()

            if not self._verify_code(account.mfa_secret, code, now):
                self._audit("security", "MFA verification failed", user=account.email)
                raise InvalidMFACodeError()

            del self._pending_mfa[pending_user_id]
            session = self._start_session(account)

        self._audit("info", "Login successful (MFA)", user=account.email)
        return session

    def _verify_code(self, secret: str, code: str, now: datetime) -> bool:
        config = self.settings.mfa
        return mfa.verify_code(
            secret,
            code,
            at=now.timestamp(),
            digits=config.digits,
            step_seconds=config.step_seconds,
            valid_window=config.valid_window,
        )

    def _start_session(self, account: Account) -> Session:
        with self._lock:
            now = self._clock()
            self._session = Session(
                user_id=account.id,
                email=account.email,
                expires_at=now + self.lifetime,
                last_activity=now,
            )
            self._persist(now)
            session = replace(self._session)
        self.store.record_login(account, now)
        return session

    # Session lifecycle

    def _check(self, now: datetime) -> tuple[Optional[Session], Optional[str]]:
        """Return the live session, or None and why it was removed."""
        session = self._session
        if session is None:
            return None, None

        if session.is_expired(now):
            reason = "expired"
        elif session.is_inactive(now, self.inactivity_timeout):
            reason = "inactivity"
        else:
            return session, None

        self._session = None
        self._persist(now)
        logger.info("Session for %s ended (%s)", session.user_id, reason)
        self._audit("info", f"Session ended due to {reason}", user=session.email)
        return None, reason

    def current_session(self) -> Optional[Session]:
        """
        Get the active session, checking expiry and inactivity.

        Returns:
            A copy of the Session, or None if there is none or it just expired
        """
        with self._lock:
            session, _ = self._check(self._clock())
            return replace(session) if session else None

    def require_session(self) -> Session:
        """
        Get the active session or raise.

        Raises:
            SessionExpiredError: If the session timed out on this check
            AuthenticationRequiredError: If nobody is logged in
        """
        with self._lock:
            session, reason = self._check(self._clock())
            if session is None:
                if reason is not None:
                    raise SessionExpiredError()
                raise AuthenticationRequiredError()
            return replace(session)

    def is_authenticated(self) -> bool:
        """Check if there is an active session."""
        return self.current_session() is not None

    def touch(self) -> bool:
        """
        Record user activity and slide the expiry forward.

        Safe to call at high frequency; the session record is written to the
        backend at most once per touch_persist_interval_seconds.

        Returns:
            True if a live session was extended
        """
        with self._lock:
            now = self._clock()
            session, _ = self._check(now)
            if session is None:
                return False

            session.last_activity = now
            session.expires_at = now + self.lifetime

            interval = timedelta(seconds=self.settings.session.touch_persist_interval_seconds)
            if self._last_persist is None or now - self._last_persist >= interval:
                self._persist(now)
            return True

    def logout(self) -> None:
        """End the session. Calling it with no session is a no-op."""
        with self._lock:
            session = self._session
            self._session = None
            self._persist(self._clock())
        if session is not None:
            self._audit("info", "Logged out", user=session.email)

    def current_account(self) -> Optional[Account]:
        """Get the account behind the active session."""
        session = self.current_session()
        if session is None:
            return None
        return self.store.get_by_id(session.user_id)

    # Credential operations

    def verify_credentials(self, email: str, password: str) -> bool:
        """Re-check a password before a sensitive operation."""
        account = self.store.get_by_email(email)
        if account is None:
            return self.store.verify_against_dummy(password)
        return self.store.verify_password(account, password)

    def change_password(self, user_id: str, current_password: str, new_password: str) -> Account:
        """
        Change an account's password.

        Existing sessions stay valid.

        Raises:
            InvalidCredentialsError: If the account does not exist or
                current_password is wrong
            ValidationError: If new_password is empty or too short
        """
        account = self.store.get_by_id(user_id)
        if account is None:
            self.store.verify_against_dummy(current_password)
            self._audit("security", "Password change rejected: unknown account", user_id=user_id)
            raise InvalidCredentialsError("Current password is incorrect")

        if not self.store.verify_password(account, current_password):
            self._audit("security", "Password change rejected: wrong current password", user=account.email)
            raise InvalidCredentialsError("Current password is incorrect")

        min_length = self.settings.session.min_password_length
        if not new_password or len(new_password) < min_length:
            raise ValidationError(f"Password must be at least {min_length} characters")

        account = self.store.update_password(account, self.store.hash_password(new_password))
        self._audit("security", "Password changed", user=account.email, user_id=account.id)
        return account

    # MFA enrollment

    def setup_mfa(self, user_id: str) -> MFAEnrollment:
        """
        Start MFA enrollment by generating a secret.

        MFA is not enabled until confirm_mfa() sees a valid code.
        """
        account = self.store.require(user_id)
        config = self.settings.mfa
        secret = mfa.generate_secret(config.secret_bytes)
        uri = mfa.provisioning_uri(
            secret,
            account.email,
            issuer=config.issuer,
            digits=config.digits,
            step_seconds=config.step_seconds,
        )
        return MFAEnrollment(secret=secret, provisioning_uri=uri)

    def confirm_mfa(self, user_id: str, secret: str, code: str) -> Account:
        """
        Enable MFA once the user proves their app has the secret.

        Raises:
            InvalidMFACodeError: If the code does not match the secret
        """
        account = self.store.require(user_id)
        if not self._verify_code(secret, code, self._clock()):
            self._audit("security", "MFA setup failed: invalid code", user=account.email)
            raise InvalidMFACodeError()
        return self.enable_mfa(user_id, secret)

    def enable_mfa(self, user_id: str, secret: str) -> Account:
        """Enable MFA with a secret, replacing any previous one."""
        account = self.store.require(user_id)
        account = self.store.set_mfa(account, mfa.normalize_secret(secret))
        self._audit("security", "MFA enabled", user=account.email)
        return account

    def disable_mfa(self, user_id: str, password: str) -> Account:
        """
        Disable MFA after re-checking the password.

        Raises:
            InvalidCredentialsError: If the password is wrong
        """
        account = self.store.require(user_id)
        if not self.store.verify_password(account, password):
            raise InvalidCredentialsError()
        account = self.store.disable_mfa(account)
        self._audit("security", "MFA disabled", user=account.email)
        return account

    @staticmethod
    def password_strength(password: str) -> int:
        """Score a password from 0 (weak) to 6 (strong)."""
        return password_strength(password)


def create_session_manager(
    settings: Optional[Settings] = None,
    backend: Optional[PersistenceBackend] = None,
) -> SessionManager:
    """
    Wire up a SessionManager with its store and audit trail.

    Args:
        settings: Settings to use (uses global settings if not provided)
        backend: Persistence backend (created from settings if not provided)

    Returns:
        A ready SessionManager
    """
    settings = settings or get_settings()
    backend = backend or create_backend(settings)
    hasher = PasswordHasher(
        iterations=settings.crypto.pbkdf2_iterations,
        salt_size=settings.crypto.salt_size,
    )
    store = CredentialStore(backend, hasher=hasher)
    audit = AuditLog(backend, max_entries=settings.storage.audit_max_entries)
    return SessionManager(store, backend=backend, settings=settings, audit=audit)
