"""
Reconciliation error taxonomy.

Store and spreadsheet failures are raised as ReconError subclasses so the
API layer can map them to actionable responses. Row-level validation skips
are plain records, not exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass


class ReconError(Exception):
    """Base exception for reconciliation failures."""


class MissingIndexError(ReconError):
    """The database has no index for the field a query orders or filters by.

    Args:
        field: Storage name of the field, e.g. ``"Material Number"``.
        path: Collection path the index rule belongs to.
    """

    def __init__(self, field: str, path: str = ""):
        self.field = field
        self.path = path
        location = f' for path "/{path}"' if path else ""
        super().__init__(
            f'Missing database index on field "{field}". '
            f'Add ".indexOn": ["{field}"]{location} to the database rules.'
        )


class RetrievalError(ReconError):
    """Any other failure while reading a page from the store."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(f"Failed to retrieve orders: {message}")


class ParseError(ReconError):
    """The uploaded file could not be read as a spreadsheet."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Could not read spreadsheet: {reason}")


class WriteError(ReconError):
    """The batched upsert was rejected by the store."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(f"Failed to write orders: {message}")


@dataclass(frozen=True)
class ValidationSkipped:
    """A spreadsheet row excluded before the write (non-fatal)."""
    row_index: int  # 1-based data row, header excluded
    reason: str
