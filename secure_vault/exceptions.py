"""Exceptions for the SecureVault core.

Every error carries a safe default message that can be shown to the user
as-is. Callers should not add detail to cryptographic or credential errors.
"""


class VaultError(Exception):
    """Base exception for vault operations."""

    pass


class ValidationError(VaultError):
    """Raised when user input is malformed (empty fields, bad email)."""

    def __init__(self, message: str = "Invalid input."):
        super().__init__(message)


class DuplicateAccountError(VaultError):
    """Raised when registering an email that already has an account."""

    def __init__(self, message: str = "User with this email already exists"):
        super().__init__(message)


class AccountNotFoundError(VaultError):
    """Raised when an account id does not resolve to a user."""

    def __init__(self, message: str = "User not found"):
        super().__init__(message)


class InvalidCredentialsError(VaultError):
    """Raised when email/password verification fails.

    The message is the same whether the email was unknown or the password
    was wrong.
    """

    def __init__(self, message: str = "Invalid email or password"):
        super().__init__(message)


class InvalidMFACodeError(VaultError):
    """Raised when a one-time code does not verify."""

    def __init__(self, message: str = "Invalid verification code"):
        super().__init__(message)


class MalformedKeyError(VaultError):
    """Raised when a key-material string cannot be parsed."""

    def __init__(self, message: str = "Malformed encryption key."):
        super().__init__(message)


class DecryptionError(VaultError):
    """Raised when the cipher rejects the ciphertext."""

    def __init__(self, message: str = "Invalid key or corrupted file."):
        super().__init__(message)


class EncryptionError(VaultError):
    """Raised when encryption fails."""

    def __init__(self, message: str = "Failed to encrypt file."):
        super().__init__(message)


class EntropySourceError(VaultError):
    """Raised when the platform cannot supply secure randomness."""

    def __init__(self, message: str = "Secure random source unavailable."):
        super().__init__(message)


class OperationCancelledError(VaultError):
    """Raised when a file operation is cancelled before completion."""

    def __init__(self, message: str = "Operation cancelled."):
        super().__init__(message)


class SessionExpiredError(VaultError):
    """Raised when the session has timed out."""

    def __init__(self, message: str = "Session has expired. Please log in again."):
        super().__init__(message)


class AuthenticationRequiredError(VaultError):
    """Raised when an operation needs a session and none is active."""

    def __init__(self, message: str = "Please log in to continue."):
        super().__init__(message)


class FileNotFoundInVaultError(VaultError):
    """Raised when a file id is not in the vault."""

    def __init__(self, file_id: str = ""):
        message = f"File not found: {file_id}" if file_id else "File not found."
        super().__init__(message)


class StorageError(VaultError):
    """Raised when the persistence backend cannot read or write a record."""

    def __init__(self, message: str = "Storage operation failed."):
        super().__init__(message)
