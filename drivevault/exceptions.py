"""Exceptions raised by drivevault."""

from __future__ import annotations


class DriveVaultError(Exception):
    """Base exception for drivevault errors."""

    def __init__(self, message: str, code: str = "DRIVEVAULT_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class TransportError(DriveVaultError):
    """Raised when a Drive API call or a page of a listing fails."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message, "TRANSPORT_ERROR")


class ValidationError(DriveVaultError):
    """Raised for malformed input such as a link without a file ID."""

    def __init__(self, message: str):
        super().__init__(message, "VALIDATION_ERROR")


class PersistenceError(DriveVaultError):
    """Raised when the local store cannot be opened, read or written."""

    def __init__(self, message: str):
        super().__init__(message, "PERSISTENCE_ERROR")


class NotFoundError(DriveVaultError):
    """Raised when a file or folder is not known."""

    def __init__(self, message: str):
        super().__init__(message, "NOT_FOUND")


class AuthError(DriveVaultError):
    """Raised when OAuth credentials cannot be loaded, refreshed or obtained."""

    def __init__(self, message: str):
        super().__init__(message, "AUTH_ERROR")


class ConfigurationError(DriveVaultError):
    """Raised when required settings are missing."""

    def __init__(self, message: str):
        super().__init__(message, "NOT_CONFIGURED")
