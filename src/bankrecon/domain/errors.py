"""Shared domain error messages and error types."""

from typing import Optional


class DomainError(ValueError):
    """Base class for domain-level errors.

    Subclasses provide semantic categories while preserving ValueError
    compatibility for existing error handling.
    """


class ValidationError(DomainError):
    """Invalid input or failed validation in domain logic."""


class NotFoundError(DomainError):
    """Requested domain entity does not exist."""


class ConflictError(DomainError):
    """Domain conflict, such as uniqueness violations."""


class FileFormatError(ValidationError):
    """Statement file cannot be imported at all.

    Raised for unreadable files, files with no rows after cleaning, and
    column mappings missing a date or amount column.
    """


class RowParseError(ValidationError):
    """A single statement row could not be mapped to a transaction."""


class PersistenceError(DomainError):
    """Storage failure while inserting a chunk of imported transactions.

    Chunks inserted before the failure stay committed; ``inserted_count``
    reports how many made it so the caller can decide to roll back.
    """

    def __init__(self, message: str, inserted_count: int = 0, batch_id: Optional[int] = None):
        super().__init__(message)
        self.inserted_count = inserted_count
        self.batch_id = batch_id


class BatchNotFoundError(NotFoundError):
    """Import batch does not exist."""


class CheckpointNotFoundError(NotFoundError):
    """Balance checkpoint does not exist."""


class AlreadyRolledBackError(ConflictError):
    """Import batch was already rolled back."""


def account_not_found(account_id: int) -> str:
    """Return message for missing account."""
    return f"Account {account_id} not found"


def transaction_not_found(transaction_id: int) -> str:
    """Return message for missing transaction."""
    return f"Transaction {transaction_id} not found"


def batch_not_found(batch_id: int) -> str:
    """Return message for missing import batch."""
    return f"Import batch {batch_id} not found"


def batch_already_rolled_back(batch_id: int) -> str:
    """Return message for a batch that was already rolled back."""
    return f"Import batch {batch_id} has already been rolled back"


def checkpoint_not_found(checkpoint_id: int) -> str:
    """Return message for missing checkpoint."""
    return f"Checkpoint {checkpoint_id} not found"


def checkpoint_not_imported(checkpoint_id: int) -> str:
    """Return message for a manual checkpoint passed to an import rollback."""
    return f"Checkpoint {checkpoint_id} was not created by an import and cannot be rolled back"


def adjustment_not_editable(transaction_id: int) -> str:
    """Return message when a balance adjustment is edited directly."""
    return (
        f"Transaction {transaction_id} is a balance adjustment. "
        "Update or delete its checkpoint instead."
    )


def missing_mapped_columns(columns: list[str]) -> str:
    """Return message for mapped columns absent from the file."""
    return f"File is missing mapped columns: {', '.join(columns)}"
