"""drivevault - searchable local mirror of Google Drive folders."""

from drivevault.exceptions import (
    AuthError,
    ConfigurationError,
    DriveVaultError,
    NotFoundError,
    PersistenceError,
    TransportError,
    ValidationError,
)
from drivevault.services.file_store import FileStore, SyncResult
from drivevault.services.vault import DriveVault

__version__ = "0.3.0"

__all__ = [
    "DriveVault",
    "FileStore",
    "SyncResult",
    # Errors
    "DriveVaultError",
    "TransportError",
    "ValidationError",
    "PersistenceError",
    "NotFoundError",
    "AuthError",
    "ConfigurationError",
]
