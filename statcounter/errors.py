"""
Error taxonomy for report persistence and queries.

The in-memory aggregate never raises; everything here originates at the
repository boundary or in request validation.
"""

from __future__ import annotations


class StatError(Exception):
    """Base exception for report, user and query failures."""


class DuplicateSubmissionError(StatError):
    """Raised when a report already exists for (region, submitter, date)."""


class NotFoundError(StatError):
    """Raised when a referenced report or user does not exist."""


class StorageError(StatError):
    """Raised when the underlying database operation fails."""


class BadRequestError(StatError):
    """Raised when request parameters fail validation."""


class DuplicateUserError(StatError):
    """Raised when a username is already taken."""
