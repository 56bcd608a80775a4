"""
Import Errors Module
Run-level failures raised by the catalog import engine.
"""

from typing import Optional


class CatalogImportError(Exception):
    """Base class for failures that abort a whole import run."""

    def __init__(self, message: str, phase: Optional[str] = None):
        """
        Initialize the error.

        Args:
            message: Human readable description
            phase: Engine phase the failure happened in (open, header, rows,
                products, resolve, variants)
        """
        super().__init__(message)
        self.phase = phase

    def __str__(self) -> str:
        message = super().__str__()
        if self.phase:
            return f"[{self.phase}] {message}"
        return message


class SourceNotFoundError(CatalogImportError, FileNotFoundError):
    """The catalog file does not exist."""


class SourceUnreadableError(CatalogImportError):
    """The catalog file exists but cannot be opened or decoded."""


class InvalidHeaderError(CatalogImportError):
    """The header row is missing or has the wrong column count."""


class NoProductsResolvedError(CatalogImportError):
    """No product identifiers could be resolved after the product phase."""


class StorageWriteFailedError(CatalogImportError):
    """The database rejected a statement issued by the engine."""


class MalformedBatchRecordError(CatalogImportError):
    """A record could not be projected onto the target table's columns."""
