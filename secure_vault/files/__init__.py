"""File metadata and the session-gated file facade."""

from .facade import (
    DecryptionResult,
    UploadResult,
    VaultFacade,
)
from .models import (
    EncryptionInfo,
    FileCategory,
    FileMetadata,
    SortField,
    format_file_size,
    generate_file_id,
)

__all__ = [
    "VaultFacade",
    "UploadResult",
    "DecryptionResult",
    "FileMetadata",
    "EncryptionInfo",
    "FileCategory",
    "SortField",
    "format_file_size",
    "generate_file_id",
]
