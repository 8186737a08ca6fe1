"""Shared pytest fixtures for SecureVault tests."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from secure_vault.auth.audit import AuditLog
from secure_vault.auth.credentials import CredentialStore
from secure_vault.auth.passwords import PasswordHasher
from secure_vault.auth.session import SessionManager
from secure_vault.config import Settings
from secure_vault.storage import MemoryBackend

# Fewer iterations for faster tests
TEST_ITERATIONS = 1_000

DEMO_EMAIL = "demo@example.com"
DEMO_PASSWORD = "Password123!"


class FakeClock:
    """Controllable clock returning aware UTC datetimes."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    """Clock fixed at 2025-01-15 10:00 UTC."""
    return FakeClock(datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings tuned for tests: in-memory storage, cheap hashing."""
    settings = Settings()
    settings.crypto.pbkdf2_iterations = TEST_ITERATIONS
    settings.storage.backend = "memory"
    settings.storage.data_dir = tmp_path / "vault_data"
    return settings


@pytest.fixture
def backend() -> MemoryBackend:
    """Fresh in-memory backend."""
    return MemoryBackend()


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(iterations=TEST_ITERATIONS)


@pytest.fixture
def store(backend, hasher, clock) -> CredentialStore:
    """Credential store on the in-memory backend."""
    return CredentialStore(backend, hasher=hasher, clock=clock)


@pytest.fixture
def audit(backend, clock) -> AuditLog:
    return AuditLog(backend, clock=clock)


@pytest.fixture
def manager(store, backend, settings, audit, clock) -> SessionManager:
    """Session manager wired to the fake clock and in-memory backend."""
    return SessionManager(store, backend=backend, settings=settings, audit=audit, clock=clock)


@pytest.fixture
def demo_account(manager):
    """The demo account, registered without MFA."""
    return manager.register(DEMO_EMAIL, DEMO_PASSWORD)


@pytest.fixture
def logged_in(manager, demo_account) -> SessionManager:
    """Session manager with the demo account logged in."""
    manager.login(DEMO_EMAIL, DEMO_PASSWORD)
    return manager


@pytest.fixture
def vault(logged_in, clock):
    """File facade backed by a logged-in session."""
    from secure_vault.files import VaultFacade

    return VaultFacade(logged_in, clock=clock)
