"""Error taxonomy for journey-ledger.

Invalid input to the XP ledger is not an error (the grant is simply not
awarded) and a missing stats aggregate is created lazily, so neither has an
exception here. What remains are the failures a caller can act on:

- ``InvalidInput``: a helper was called with a value it cannot store.
- ``TransactionConflict``: a concurrent writer touched a document an optimistic
  transaction read. Retried transparently by ``Database.run_transaction``.
- ``TransactionRetriesExhausted``: the retry budget ran out. Transient; the
  whole operation is idempotent so the caller may retry it.
- ``FieldOwnershipError``: a writer tried to merge a stats field it does not own.
"""

from __future__ import annotations

from typing import Any


class LedgerError(Exception):
    """Base class for all journey-ledger errors."""

    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        is_retryable: bool | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.is_retryable = self.DEFAULT_RETRYABLE if is_retryable is None else is_retryable

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logs and CLI/MCP output."""
        return {
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
            "is_retryable": self.is_retryable,
        }


class InvalidInput(LedgerError):
    """A value was rejected before anything was written."""


class TransactionConflict(LedgerError):
    """A document read inside a transaction changed before commit."""

    DEFAULT_RETRYABLE = True

    def __init__(self, path: str, expected_version: int, actual_version: int) -> None:
        super().__init__(
            f"Concurrent modification of {path}",
            {"path": path, "expected_version": expected_version, "actual_version": actual_version},
        )
        self.path = path


class TransactionRetriesExhausted(LedgerError):
    """Every attempt of an optimistic transaction hit a conflict."""

    DEFAULT_RETRYABLE = True

    def __init__(self, attempts: int, last_conflict: TransactionConflict | None = None) -> None:
        details: dict[str, Any] = {"attempts": attempts}
        if last_conflict is not None:
            details["path"] = last_conflict.path
        super().__init__(f"Transaction failed after {attempts} attempts", details)


class FieldOwnershipError(LedgerError):
    """A writer attempted to merge stats fields owned by another writer."""

    def __init__(self, fields: set[str], owner: str) -> None:
        super().__init__(
            f"{owner} may not write {', '.join(sorted(fields))}",
            {"fields": sorted(fields), "owner": owner},
        )


def is_transient_error(exc: BaseException) -> bool:
    """Return True if retrying the failed operation can succeed."""
    return isinstance(exc, LedgerError) and exc.is_retryable
