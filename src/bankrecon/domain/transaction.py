"""Transaction domain service."""

import time
from typing import Optional
from datetime import date
from decimal import Decimal
from bankrecon.database.base import Database
from bankrecon.domain.checkpoint import CheckpointService
from bankrecon.domain.entities import Transaction as TransactionEntity
from bankrecon.domain.errors import (
    NotFoundError,
    ValidationError,
    account_not_found,
    adjustment_not_editable,
    transaction_not_found,
)
from bankrecon.domain.locks import account_lock
from bankrecon.domain.sequencing import SequenceService


def validate_amounts(debit_amount: Optional[Decimal], credit_amount: Optional[Decimal]) -> None:
    """Require exactly one positive amount.

    Raises:
        ValidationError: If both or neither amount is set, or the set one is not positive
    """
    if (debit_amount is None) == (credit_amount is None):
        raise ValidationError("Exactly one of debit amount and credit amount must be given")
    amount = debit_amount if debit_amount is not None else credit_amount
    if amount <= 0:
        raise ValidationError(f"Amount must be positive, got {amount}")


class TransactionService:
    """Service for manual transaction entry.

    Every change runs the checkpoint cascade from the earliest affected
    date and then renumbers the account's sequences.
    """

    def __init__(self, db: Database):
        """Initialize transaction service.

        Args:
            db: Database instance
        """
        self.db = db
        self.checkpoints = CheckpointService(db)
        self.sequences = SequenceService(db)

    def create_transaction(
        self,
        account_id: int,
        date: date,
        debit_amount: Optional[Decimal] = None,
        credit_amount: Optional[Decimal] = None,
        description: Optional[str] = None,
        bank_reference: Optional[str] = None,
        branch: Optional[str] = None,
    ) -> int:
        """Create a manual transaction.

        Args:
            account_id: Account ID
            date: Transaction date
            debit_amount: Money out (positive), or None
            credit_amount: Money in (positive), or None
            description: Optional description
            bank_reference: Optional bank reference
            branch: Optional branch

        Returns:
            Transaction ID

        Raises:
            NotFoundError: If account doesn't exist
            ValidationError: If the amounts are invalid
        """
        if self.db.get_account(account_id) is None:
            raise NotFoundError(account_not_found(account_id))
        validate_amounts(debit_amount, credit_amount)

        with account_lock(account_id):
            with self.db.atomic():
                transaction_id = self.db.create_transaction(
                    unique_id=f"MANUAL-{account_id}-{time.time_ns()}",
                    account_id=account_id,
                    date=date,
                    debit_amount=debit_amount,
                    credit_amount=credit_amount,
                    description=description,
                    bank_reference=bank_reference,
                    branch=branch,
                    sequence=self.sequences.next_sequence(account_id),
                )
                self.checkpoints.recalculate_from(account_id, date)
            self.sequences.renumber(account_id)
        return transaction_id

    def get_transaction(self, transaction_id: int) -> Optional[TransactionEntity]:
        """Get transaction by ID.

        Args:
            transaction_id: Transaction ID

        Returns:
            Transaction entity or None if not found
        """
        return self.db.get_transaction(transaction_id)

    def _editable_transaction(self, transaction_id: int) -> TransactionEntity:
        txn = self.db.get_transaction(transaction_id)
        if txn is None:
            raise NotFoundError(transaction_not_found(transaction_id))
        if txn.is_balance_adjustment:
            raise ValidationError(adjustment_not_editable(transaction_id))
        return txn

    def update_transaction(
        self,
        transaction_id: int,
        date: Optional[date] = None,
        description: Optional[str] = None,
        debit_amount: Optional[Decimal] = None,
        credit_amount: Optional[Decimal] = None,
        bank_reference: Optional[str] = None,
        branch: Optional[str] = None,
    ) -> None:
        """Update transaction fields.

        Giving either amount replaces both sides: the other side is cleared.

        Raises:
            NotFoundError: If transaction doesn't exist
            ValidationError: If it is a balance adjustment or the amounts are invalid
        """
        txn = self._editable_transaction(transaction_id)

        update_amounts = debit_amount is not None or credit_amount is not None
        if update_amounts:
            validate_amounts(debit_amount, credit_amount)

        with account_lock(txn.account_id):
            with self.db.atomic():
                self.db.update_transaction(
                    transaction_id,
                    date=date,
                    description=description,
                    debit_amount=debit_amount,
                    credit_amount=credit_amount,
                    bank_reference=bank_reference,
                    branch=branch,
                    update_amounts=update_amounts,
                )
                earliest = min(txn.date, date) if date is not None else txn.date
                self.checkpoints.recalculate_from(txn.account_id, earliest)
            self.sequences.renumber(txn.account_id)

    def delete_transaction(self, transaction_id: int) -> None:
        """Delete a transaction.

        Raises:
            NotFoundError: If transaction doesn't exist
            ValidationError: If it is a balance adjustment
        """
        txn = self._editable_transaction(transaction_id)

        with account_lock(txn.account_id):
            with self.db.atomic():
                self.db.delete_transaction(transaction_id)
                self.checkpoints.recalculate_from(txn.account_id, txn.date)
            self.sequences.renumber(txn.account_id)

    def list_transactions(
        self,
        account_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        batch_id: Optional[int] = None,
        include_adjustments: bool = True,
    ) -> list[TransactionEntity]:
        """List an account's transactions in date, then sequence order."""
        return self.db.list_transactions(
            account_id,
            start_date=start_date,
            end_date=end_date,
            batch_id=batch_id,
            include_adjustments=include_adjustments,
        )

    def running_balance(
        self,
        account_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[tuple[TransactionEntity, Decimal]]:
        """Pair each transaction with the account balance after it.

        Regular transactions are replayed from the first one. A balance
        adjustment restates the unexplained difference at its checkpoint
        instead of adding to the one before, and the difference carried
        from earlier checkpoints is dropped on each checkpoint's day. The
        balance after a checkpoint's last row therefore matches its
        declaration. Only transactions inside the optional date range are
        returned.
        """
        pending = self.db.list_checkpoints(account_id)
        replayed = Decimal("0")
        difference = Decimal("0")
        result = []
        for txn in self.db.list_transactions(account_id, end_date=end_date):
            while pending and pending[0].checkpoint_date <= txn.date:
                pending.pop(0)
                difference = Decimal("0")
            if txn.is_balance_adjustment:
                difference = txn.signed_amount
            else:
                replayed += txn.signed_amount
            if start_date is None or txn.date >= start_date:
                result.append((txn, replayed + difference))
        return result
