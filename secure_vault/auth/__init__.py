"""Accounts, sessions and MFA for SecureVault.

Usage:
    from secure_vault.auth import create_session_manager

    manager = create_session_manager()
    manager.register("demo@example.com", "Password123!")

    result = manager.login("demo@example.com", "Password123!")
    if result.require_mfa:
        manager.complete_mfa(result.pending_user_id, code)
"""

from .audit import (
    AuditEntry,
    AuditLog,
    LogCategory,
    LogLevel,
)
from .credentials import (
    Account,
    CredentialStore,
)
from .mfa import (
    generate_code,
    generate_secret,
    provisioning_uri,
    verify_code,
)
from .passwords import (
    PasswordHasher,
    password_strength,
)
from .session import (
    LoginResult,
    MFAEnrollment,
    Session,
    SessionManager,
    create_session_manager,
)

__all__ = [
    # Audit
    "AuditEntry",
    "AuditLog",
    "LogCategory",
    "LogLevel",
    # Credentials
    "Account",
    "CredentialStore",
    "PasswordHasher",
    "password_strength",
    # MFA
    "generate_secret",
    "generate_code",
    "verify_code",
    "provisioning_uri",
    # Sessions
    "Session",
    "LoginResult",
    "MFAEnrollment",
    "SessionManager",
    "create_session_manager",
]
