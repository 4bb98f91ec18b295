"""Abstract database interface."""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Optional, Any
from datetime import date
from decimal import Decimal

# Import entities directly to avoid circular import through domain/__init__.py
from bankrecon.domain.entities import (
    Account,
    Transaction,
    MappedTransaction,
    ImportBatch,
    Checkpoint,
)


class Database(ABC):
    """Abstract database interface for bankrecon.

    Every write commits immediately unless it runs inside ``atomic()``, in
    which case it is only flushed and the whole block commits or rolls back
    together.
    """

    @abstractmethod
    def connect(self) -> None:
        """Connect to the database."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the database."""
        pass

    @abstractmethod
    def initialize_schema(self) -> None:
        """Initialize database schema (create tables)."""
        pass

    @abstractmethod
    def atomic(self) -> AbstractContextManager[None]:
        """Run the enclosed writes as one unit of work. Nested blocks join the outer one."""
        pass

    # Account operations
    @abstractmethod
    def create_account(self, name: str, bank_name: str, currency: str = "VND") -> int:
        """Create a new account. Returns account ID."""
        pass

    @abstractmethod
    def get_account(self, account_id: int) -> Optional[Account]:
        """Get account by ID."""
        pass

    @abstractmethod
    def get_account_by_name(self, name: str) -> Optional[Account]:
        """Get account by name."""
        pass

    @abstractmethod
    def list_accounts(self) -> list[Account]:
        """List all accounts."""
        pass

    @abstractmethod
    def save_import_config(self, account_id: int, config: dict[str, Any]) -> None:
        """Store the last used import configuration on an account."""
        pass

    # Transaction operations
    @abstractmethod
    def insert_transactions(self, transactions: list[MappedTransaction]) -> int:
        """Insert mapped transactions in one write. Returns number inserted."""
        pass

    @abstractmethod
    def create_transaction(
        self,
        unique_id: str,
        account_id: int,
        date: date,
        debit_amount: Optional[Decimal],
        credit_amount: Optional[Decimal],
        description: Optional[str] = None,
        balance: Optional[Decimal] = None,
        bank_reference: Optional[str] = None,
        branch: Optional[str] = None,
        sequence: int = 0,
        batch_id: Optional[int] = None,
        source_file_name: Optional[str] = None,
        is_balance_adjustment: bool = False,
        checkpoint_id: Optional[int] = None,
    ) -> int:
        """Create a transaction. Returns transaction ID."""
        pass

    @abstractmethod
    def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        """Get transaction by ID."""
        pass

    @abstractmethod
    def update_transaction(
        self,
        transaction_id: int,
        date: Optional[date] = None,
        description: Optional[str] = None,
        debit_amount: Optional[Decimal] = None,
        credit_amount: Optional[Decimal] = None,
        bank_reference: Optional[str] = None,
        branch: Optional[str] = None,
        update_amounts: bool = False,
    ) -> None:
        """Update transaction fields.

        Args:
            update_amounts: If True, write both debit_amount and credit_amount
                even when one of them is None (to clear it)
        """
        pass

    @abstractmethod
    def delete_transaction(self, transaction_id: int) -> None:
        """Delete a transaction."""
        pass

    @abstractmethod
    def list_transactions(
        self,
        account_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        batch_id: Optional[int] = None,
        include_adjustments: bool = True,
    ) -> list[Transaction]:
        """List an account's transactions ordered by date, then sequence.

        Args:
            account_id: Account to list
            start_date: Optional inclusive start date
            end_date: Optional inclusive end date
            batch_id: Optional import batch filter
            include_adjustments: If False, skip balance adjustment transactions
        """
        pass

    @abstractmethod
    def delete_batch_transactions(self, batch_id: int) -> int:
        """Delete every transaction tagged with a batch. Returns number deleted."""
        pass

    @abstractmethod
    def get_max_sequence(self, account_id: int) -> int:
        """Highest sequence number in use for an account, 0 when empty."""
        pass

    @abstractmethod
    def update_sequences(self, account_id: int, sequences: dict[int, int]) -> None:
        """Assign new sequence numbers, keyed by transaction ID."""
        pass

    @abstractmethod
    def get_adjustment_transaction(self, checkpoint_id: int) -> Optional[Transaction]:
        """Get the balance adjustment transaction owned by a checkpoint."""
        pass

    # Import batch operations
    @abstractmethod
    def create_import_batch(self, account_id: int, file_name: str, total_rows: int) -> int:
        """Create an import batch in processing state. Returns batch ID."""
        pass

    @abstractmethod
    def get_import_batch(self, batch_id: int) -> Optional[ImportBatch]:
        """Get import batch by ID."""
        pass

    @abstractmethod
    def update_import_batch(
        self,
        batch_id: int,
        successful_count: Optional[int] = None,
        failed_count: Optional[int] = None,
        duplicate_count: Optional[int] = None,
        status: Optional[str] = None,
        error_log: Optional[dict[str, Any]] = None,
    ) -> None:
        """Update import batch counters, status or error log."""
        pass

    @abstractmethod
    def list_import_batches(self, account_id: Optional[int] = None) -> list[ImportBatch]:
        """List import batches, newest first, optionally filtered by account."""
        pass

    # Checkpoint operations
    @abstractmethod
    def create_checkpoint(
        self,
        account_id: int,
        checkpoint_date: date,
        declared_balance: Decimal,
        calculated_balance: Decimal,
        adjustment_amount: Decimal,
        is_reconciled: bool,
        batch_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> int:
        """Create a balance checkpoint. Returns checkpoint ID."""
        pass

    @abstractmethod
    def get_checkpoint(self, checkpoint_id: int) -> Optional[Checkpoint]:
        """Get checkpoint by ID."""
        pass

    @abstractmethod
    def get_checkpoint_by_date(self, account_id: int, checkpoint_date: date) -> Optional[Checkpoint]:
        """Get an account's checkpoint on a given date."""
        pass

    @abstractmethod
    def get_previous_checkpoint(
        self, account_id: int, before: date, reconciled_only: bool = False
    ) -> Optional[Checkpoint]:
        """Get the latest checkpoint dated strictly before a date, optionally only reconciled ones."""
        pass

    @abstractmethod
    def update_checkpoint(
        self,
        checkpoint_id: int,
        declared_balance: Optional[Decimal] = None,
        calculated_balance: Optional[Decimal] = None,
        adjustment_amount: Optional[Decimal] = None,
        is_reconciled: Optional[bool] = None,
        batch_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> None:
        """Update checkpoint fields."""
        pass

    @abstractmethod
    def delete_checkpoint(self, checkpoint_id: int) -> None:
        """Delete a checkpoint."""
        pass

    @abstractmethod
    def list_checkpoints(self, account_id: int, start_date: Optional[date] = None) -> list[Checkpoint]:
        """List an account's checkpoints in ascending date order.

        Args:
            account_id: Account to list
            start_date: Optional inclusive lower bound on checkpoint date
        """
        pass

    @abstractmethod
    def list_batch_checkpoints(self, batch_id: int) -> list[Checkpoint]:
        """List checkpoints created by an import batch."""
        pass
