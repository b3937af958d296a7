"""
Custom exceptions for the CNAB import service.

Per-line validation problems are not exceptions: they are returned as
CnabValidationError data inside the import summary. Everything here is an
infrastructure failure that aborts the import call.
"""
from typing import Any, Dict, Optional


class CnabImportException(Exception):
    """Base exception for all CNAB import errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize exception.

        Args:
            message: Error message
            details: Additional error details
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(CnabImportException):
    """Raised when configuration is invalid."""
    pass


class PersistenceError(CnabImportException):
    """Raised when a storage operation fails."""
    pass


class StoreConflictError(PersistenceError):
    """Raised when a store with the same canonical identifier already exists."""
    pass


class TransactionConflictError(PersistenceError):
    """Raised when a transaction with the same content hash already exists."""
    pass


class ImportProcessingError(CnabImportException):
    """Raised when an import fails for a reason not covered by other errors."""
    pass
