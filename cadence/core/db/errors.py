"""
Error kinds raised by the catalog store.

Query modules raise `NotFound` and `ConstraintViolation` directly when they can
tell up front. Everything SQLite raises is funnelled through
`translate_sqlite_error()` at the transaction boundary in `CatalogDb`, so
callers only ever see the `CatalogError` hierarchy.
"""

from __future__ import annotations

import sqlite3


class CatalogError(RuntimeError):
    """Base error for catalog store operations."""


class CatalogNotOpenError(CatalogError):
    """Raised when an operation is attempted before `CatalogDb.open()`."""


class NotFound(CatalogError):
    """A referenced id does not exist."""

    def __init__(self, kind: str, entity_id: str) -> None:
        super().__init__(f"{kind} {entity_id!r} not found")
        self.kind = kind
        self.entity_id = entity_id


class ConstraintViolation(CatalogError):
    """Uniqueness, required-field or CHECK violation."""


class ReferentialIntegrityViolation(ConstraintViolation):
    """A foreign key target is absent at write time."""


class TransactionAborted(CatalogError):
    """The unit of work was rolled back; nothing from it was persisted.

    `retryable` is True for lock/busy conflicts, where running the same
    operation again is expected to succeed.
    """

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


def is_lock_error(exc: BaseException) -> bool:
    """Check whether an exception is a transient SQLite lock/busy error."""
    if not isinstance(exc, sqlite3.OperationalError):
        return False
    msg = str(exc).lower()
    return "locked" in msg or "busy" in msg


def translate_sqlite_error(exc: sqlite3.Error) -> CatalogError:
    """Map a raw sqlite3 exception onto the catalog error hierarchy."""
    msg = str(exc)
    if isinstance(exc, sqlite3.IntegrityError):
        if "FOREIGN KEY" in msg:
            return ReferentialIntegrityViolation(msg)
        return ConstraintViolation(msg)
    return TransactionAborted(msg, retryable=is_lock_error(exc))
