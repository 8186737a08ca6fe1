"""Unit tests for SessionManager login flows and session lifecycle."""

from datetime import timedelta

import pytest

from secure_vault.auth import mfa
from secure_vault.auth.session import SESSION_KEY, Session, SessionManager, create_session_manager
from secure_vault.exceptions import (
    AuthenticationRequiredError,
    DuplicateAccountError,
    InvalidCredentialsError,
    InvalidMFACodeError,
    SessionExpiredError,
    ValidationError,
)
from secure_vault.storage import MemoryBackend

from conftest import DEMO_EMAIL, DEMO_PASSWORD


def code_at(secret, clock, **offset):
    """TOTP code for the fake clock's time, shifted by offset."""
    return mfa.generate_code(secret, at=(clock() + timedelta(**offset)).timestamp())


@pytest.fixture
def mfa_account(manager, demo_account):
    """Demo account with MFA enabled; returns the secret."""
    secret = mfa.generate_secret()
    manager.enable_mfa(demo_account.id, secret)
    return secret


class TestRegistration:
    """Tests for account registration."""

    def test_register(self, manager):
        account = manager.register(DEMO_EMAIL, DEMO_PASSWORD)

        assert account.email == DEMO_EMAIL
        assert manager.store.get_by_email(DEMO_EMAIL) == account

    @pytest.mark.parametrize(
        "email,password",
        [
            ("", DEMO_PASSWORD),
            (DEMO_EMAIL, ""),
            ("not-an-email", DEMO_PASSWORD),
            ("a b@example.com", DEMO_PASSWORD),
            (DEMO_EMAIL, "short"),
        ],
    )
    def test_invalid_input(self, manager, email, password):
        with pytest.raises(ValidationError):
            manager.register(email, password)

    def test_duplicate(self, manager, demo_account):
        with pytest.raises(DuplicateAccountError):
            manager.register(DEMO_EMAIL, "AnotherPass1!")


class TestLogin:
    """Tests for password login."""

    def test_login_without_mfa(self, manager, demo_account):
        """Correct password creates a session immediately."""
        result = manager.login(DEMO_EMAIL, DEMO_PASSWORD)

        assert result.success
        assert not result.require_mfa
        assert result.message == "Login successful"
        assert result.session.user_id == demo_account.id

        session = manager.current_session()
        assert session.email == DEMO_EMAIL
        assert manager.is_authenticated()

    def test_login_records_last_login(self, manager, demo_account, clock):
        manager.login(DEMO_EMAIL, DEMO_PASSWORD)
        assert manager.store.get_by_id(demo_account.id).last_login == clock()

    def test_wrong_password(self, manager, demo_account):
        """Wrong password gives a generic error and no session."""
        with pytest.raises(InvalidCredentialsError) as exc_info:
            manager.login(DEMO_EMAIL, "wrongpass")

        assert str(exc_info.value) == "Invalid email or password"
        assert manager.current_session() is None

    def test_unknown_email(self, manager, demo_account):
        """Unknown email gives the same message as a wrong password."""
        with pytest.raises(InvalidCredentialsError) as exc_info:
            manager.login("nobody@example.com", DEMO_PASSWORD)

        assert str(exc_info.value) == "Invalid email or password"

    def test_unknown_email_still_checks_a_hash(self, manager, demo_account, monkeypatch):
        """An unknown email costs a password verification like a real account."""
        hasher = manager.store.hasher
        calls = []
        real_verify = hasher.verify

        def counting_verify(password, encoded):
            calls.append(password)
            return real_verify(password, encoded)

        monkeypatch.setattr(hasher, "verify", counting_verify)

        with pytest.raises(InvalidCredentialsError):
            manager.login("nobody@example.com", DEMO_PASSWORD)
        assert calls == [DEMO_PASSWORD]

        assert not manager.verify_credentials("nobody@example.com", DEMO_PASSWORD)
        assert calls == [DEMO_PASSWORD, DEMO_PASSWORD]

    def test_empty_fields(self, manager):
        with pytest.raises(ValidationError):
            manager.login("", "")

    def test_failed_logins_are_audited(self, manager, demo_account, audit):
        with pytest.raises(InvalidCredentialsError):
            manager.login(DEMO_EMAIL, "wrongpass")

        messages = [e.message for e in audit.entries()]
        assert "Failed login: wrong password" in messages


class TestMFALogin:
    """Tests for the two-step MFA login."""

    def test_login_requires_mfa(self, manager, demo_account, mfa_account):
        """Password alone yields a pending result and no session."""
        result = manager.login(DEMO_EMAIL, DEMO_PASSWORD)

        assert result.success
        assert result.require_mfa
        assert result.pending_user_id == demo_account.id
        assert result.message == "Please enter your MFA code"
        assert result.session is None
        assert manager.current_session() is None

    def test_complete_mfa(self, manager, demo_account, mfa_account, clock):
        """A current code completes the login."""
        result = manager.login(DEMO_EMAIL, DEMO_PASSWORD)

        session = manager.complete_mfa(result.pending_user_id, code_at(mfa_account, clock))

        assert session.user_id == demo_account.id
        assert manager.current_session().user_id == demo_account.id

    def test_wrong_code_stays_pending(self, manager, mfa_account, clock):
        """A wrong code can be retried."""
        result = manager.login(DEMO_EMAIL, DEMO_PASSWORD)
        good = code_at(mfa_account, clock)
        bad = "000000" if good != "000000" else "111111"

        with pytest.raises(InvalidMFACodeError):
            manager.complete_mfa(result.pending_user_id, bad)

        assert manager.current_session() is None
        manager.complete_mfa(result.pending_user_id, good)
        assert manager.is_authenticated()

    @pytest.mark.parametrize("minutes", [-10, 10])
    def test_distant_codes_rejected(self, manager, mfa_account, clock, minutes):
        """Codes from 10 minutes ago or ahead are rejected."""
        result = manager.login(DEMO_EMAIL, DEMO_PASSWORD)

        with pytest.raises(InvalidMFACodeError):
            manager.complete_mfa(result.pending_user_id, code_at(mfa_account, clock, minutes=minutes))

    @pytest.mark.parametrize("code", ["١٢٣٤٥٦", "12345²", "１２３４５６"])
    def test_non_ascii_digits_rejected(self, manager, mfa_account, clock, code):
        """Unicode digits are a bad code, not a crash, and the login stays pending."""
        result = manager.login(DEMO_EMAIL, DEMO_PASSWORD)

        with pytest.raises(InvalidMFACodeError):
            manager.complete_mfa(result.pending_user_id, code)

        assert manager.current_session() is None
        manager.complete_mfa(result.pending_user_id, code_at(mfa_account, clock))
        assert manager.is_authenticated()

    def test_code_without_pending_login(self, manager, demo_account, mfa_account, clock):
        """A valid code alone does not log anyone in."""
        with pytest.raises(InvalidMFACodeError):
            manager.complete_mfa(demo_account.id, code_at(mfa_account, clock))

        assert manager.current_session() is None

    def test_pending_login_expires(self, manager, mfa_account, clock):
        """The pending window closes after five minutes."""
        result = manager.login(DEMO_EMAIL, DEMO_PASSWORD)
        clock.advance(minutes=6)

        with pytest.raises(InvalidMFACodeError):
            manager.complete_mfa(result.pending_user_id, code_at(mfa_account, clock))

    def test_pending_is_consumed(self, manager, mfa_account, clock):
        """A pending login completes only once."""
        result = manager.login(DEMO_EMAIL, DEMO_PASSWORD)
        manager.complete_mfa(result.pending_user_id, code_at(mfa_account, clock))
        manager.logout()

        with pytest.raises(InvalidMFACodeError):
            manager.complete_mfa(result.pending_user_id, code_at(mfa_account, clock))


class TestMFAEnrollment:
    """Tests for enabling and disabling MFA."""

    def test_setup_and_confirm(self, manager, demo_account, clock):
        enrollment = manager.setup_mfa(demo_account.id)

        assert enrollment.provisioning_uri.startswith("otpauth://totp/SecureVault:")
        assert not manager.store.get_by_id(demo_account.id).mfa_enabled

        account = manager.confirm_mfa(demo_account.id, enrollment.secret, code_at(enrollment.secret, clock))

        assert account.mfa_enabled
        assert account.mfa_secret == enrollment.secret

    def test_confirm_with_wrong_code(self, manager, demo_account, clock):
        enrollment = manager.setup_mfa(demo_account.id)
        other = mfa.generate_secret()

        with pytest.raises(InvalidMFACodeError):
            manager.confirm_mfa(demo_account.id, enrollment.secret, code_at(other, clock, minutes=-20))

        assert not manager.store.get_by_id(demo_account.id).mfa_enabled

    def test_confirm_with_non_ascii_code(self, manager, demo_account):
        enrollment = manager.setup_mfa(demo_account.id)

        with pytest.raises(InvalidMFACodeError):
            manager.confirm_mfa(demo_account.id, enrollment.secret, "١٢٣٤٥٦")

        assert not manager.store.get_by_id(demo_account.id).mfa_enabled

    def test_reenrolling_replaces_secret(self, manager, demo_account, mfa_account, clock):
        """Codes from the old secret stop working."""
        new_secret = mfa.generate_secret()
        manager.enable_mfa(demo_account.id, new_secret)

        result = manager.login(DEMO_EMAIL, DEMO_PASSWORD)
        old_code = code_at(mfa_account, clock)
        if old_code != code_at(new_secret, clock):
            with pytest.raises(InvalidMFACodeError):
                manager.complete_mfa(result.pending_user_id, old_code)
        manager.complete_mfa(result.pending_user_id, code_at(new_secret, clock))

    def test_disable_mfa(self, manager, demo_account, mfa_account):
        with pytest.raises(InvalidCredentialsError):
            manager.disable_mfa(demo_account.id, "wrongpass")

        account = manager.disable_mfa(demo_account.id, DEMO_PASSWORD)
        assert not account.mfa_enabled

        result = manager.login(DEMO_EMAIL, DEMO_PASSWORD)
        assert not result.require_mfa


class TestSessionLifecycle:
    """Tests for expiry, inactivity and logout."""

    def test_sliding_expiry(self, logged_in, clock):
        """Touching pushes the expiry forward."""
        logged_in.settings.session.inactivity_timeout_minutes = 0

        clock.advance(minutes=25)
        assert logged_in.touch()
        clock.advance(minutes=25)

        assert logged_in.current_session() is not None

    def test_expires_without_activity(self, logged_in, clock):
        """Without touches the session ends after its lifetime."""
        logged_in.settings.session.inactivity_timeout_minutes = 0

        clock.advance(minutes=31)

        assert logged_in.current_session() is None

    def test_inactivity_timeout(self, logged_in, clock):
        """Ten idle minutes end the session even before expiry."""
        clock.advance(minutes=11)

        assert logged_in.current_session() is None

    def test_activity_prevents_inactivity(self, logged_in, clock):
        for _ in range(5):
            clock.advance(minutes=8)
            assert logged_in.touch()

        assert logged_in.is_authenticated()

    def test_require_session_reports_expiry(self, logged_in, clock):
        """The first check after expiry says so; later checks say not logged in."""
        clock.advance(minutes=31)

        with pytest.raises(SessionExpiredError):
            logged_in.require_session()
        with pytest.raises(AuthenticationRequiredError):
            logged_in.require_session()

    def test_require_session_anonymous(self, manager):
        with pytest.raises(AuthenticationRequiredError):
            manager.require_session()

    def test_touch_without_session(self, manager):
        assert manager.touch() is False

    def test_logout(self, logged_in, backend):
        logged_in.logout()

        assert logged_in.current_session() is None
        assert backend.load(SESSION_KEY) is None

    def test_logout_twice(self, logged_in):
        """Logging out with no session is a no-op."""
        logged_in.logout()
        logged_in.logout()

        assert not logged_in.is_authenticated()

    def test_current_session_is_copy(self, logged_in):
        """Mutating a returned session doesn't change the live one."""
        session = logged_in.current_session()
        session.email = "attacker@example.com"

        assert logged_in.current_session().email == DEMO_EMAIL

    def test_current_account(self, logged_in, demo_account):
        assert logged_in.current_account().id == demo_account.id

    def test_time_remaining(self, logged_in, clock):
        session = logged_in.current_session()
        assert session.time_remaining(clock()).total_seconds() == 30 * 60


class TestSessionPersistence:
    """Tests for persisting and restoring the session record."""

    def test_session_restored(self, logged_in, store, backend, settings, clock):
        """A new manager on the same backend picks up the session."""
        restored = SessionManager(store, backend=backend, settings=settings, clock=clock)

        assert restored.current_session().email == DEMO_EMAIL

    def test_expired_session_not_restored(self, logged_in, store, backend, settings, clock):
        clock.advance(minutes=31)
        restored = SessionManager(store, backend=backend, settings=settings, clock=clock)

        assert restored.current_session() is None
        assert backend.load(SESSION_KEY) is None

    def test_touch_persistence_throttled(self, logged_in, backend, clock):
        """Rapid touches write the session at most once per interval."""
        stored = backend.load(SESSION_KEY)

        clock.advance(seconds=10)
        logged_in.touch()
        assert backend.load(SESSION_KEY) == stored

        clock.advance(seconds=25)
        logged_in.touch()
        assert backend.load(SESSION_KEY) != stored
        assert Session.from_dict(backend.load(SESSION_KEY)).last_activity == clock()

    def test_unreadable_session_discarded(self, store, backend, settings, clock):
        backend.save(SESSION_KEY, {"user_id": "x"})

        manager = SessionManager(store, backend=backend, settings=settings, clock=clock)

        assert manager.current_session() is None
        assert backend.load(SESSION_KEY) is None


class TestPasswordChange:
    """Tests for changing passwords."""

    def test_change_password(self, logged_in, demo_account):
        """New password works, old one doesn't, session survives."""
        logged_in.change_password(demo_account.id, DEMO_PASSWORD, "NewPassword456!")

        assert logged_in.is_authenticated()
        assert logged_in.verify_credentials(DEMO_EMAIL, "NewPassword456!")
        assert not logged_in.verify_credentials(DEMO_EMAIL, DEMO_PASSWORD)

    def test_wrong_current_password(self, logged_in, demo_account):
        with pytest.raises(InvalidCredentialsError) as exc_info:
            logged_in.change_password(demo_account.id, "wrongpass", "NewPassword456!")

        assert str(exc_info.value) == "Current password is incorrect"

    def test_new_password_too_short(self, logged_in, demo_account):
        with pytest.raises(ValidationError):
            logged_in.change_password(demo_account.id, DEMO_PASSWORD, "short")

    def test_unknown_user(self, logged_in):
        """An unknown account id gets the same error as a wrong password."""
        with pytest.raises(InvalidCredentialsError) as exc_info:
            logged_in.change_password("no-such-id", DEMO_PASSWORD, "NewPassword456!")

        assert str(exc_info.value) == "Current password is incorrect"


class TestDemoScenario:
    """End-to-end walk through register, MFA enrollment and login."""

    def test_full_flow(self, manager, clock):
        account = manager.register(DEMO_EMAIL, DEMO_PASSWORD)
        assert manager.password_strength(DEMO_PASSWORD) == 6

        result = manager.login(DEMO_EMAIL, DEMO_PASSWORD)
        assert not result.require_mfa

        enrollment = manager.setup_mfa(account.id)
        manager.confirm_mfa(account.id, enrollment.secret, code_at(enrollment.secret, clock))
        manager.logout()

        result = manager.login(DEMO_EMAIL, DEMO_PASSWORD)
        assert result.require_mfa
        manager.complete_mfa(result.pending_user_id, code_at(enrollment.secret, clock, seconds=30))

        assert manager.current_session().email == DEMO_EMAIL


def test_create_session_manager(settings):
    """The factory wires a store, audit log and backend from settings."""
    manager = create_session_manager(settings)

    assert isinstance(manager.backend, MemoryBackend)
    assert manager.store.backend is manager.backend
    assert manager.audit is not None
    assert manager.store.hasher.iterations == settings.crypto.pbkdf2_iterations
