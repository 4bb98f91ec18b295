"""Balance checkpoint reconciliation.

A checkpoint declares what the bank says the balance was at the end of a
day. The calculated balance replays the account's transactions up to that
day, starting from zero or from the calculated balance of the nearest
earlier reconciled checkpoint. Adjustments never take part in the replay.
Any difference is booked as a single balance adjustment transaction owned
by the checkpoint; it restates the whole unexplained difference at that
date rather than adding to earlier ones. Mismatch is a state, never an
error.

Every mutation of an account's history calls ``recalculate_from`` with the
earliest affected date; checkpoints are always recalculated in ascending
date order because a checkpoint that becomes reconciled moves the opening
balance of the ones after it.
"""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from bankrecon.database.base import Database
from bankrecon.domain.entities import (
    Checkpoint,
    CheckpointRecalculation,
    CheckpointResult,
    CheckpointSummary,
    RecalculationSummary,
    Transaction,
)
from bankrecon.domain.errors import (
    CheckpointNotFoundError,
    NotFoundError,
    account_not_found,
    checkpoint_not_found,
)

logger = logging.getLogger(__name__)

RECONCILIATION_THRESHOLD = Decimal("0.01")
ADJUSTMENT_DESCRIPTION = "Balance Adjustment (Checkpoint)"
CENTS = Decimal("0.01")


def adjustment_unique_id(checkpoint_id: int) -> str:
    """Unique ID of the adjustment transaction owned by a checkpoint."""
    return f"BAL-ADJ-{checkpoint_id}"


def is_reconciled(adjustment: Decimal) -> bool:
    return abs(adjustment) < RECONCILIATION_THRESHOLD


def _summary(results: list[CheckpointRecalculation]) -> RecalculationSummary:
    if not results:
        return RecalculationSummary(checkpoints_recalculated=0, message="No checkpoints to recalculate")
    return RecalculationSummary(
        checkpoints_recalculated=len(results),
        message=f"Recalculated {len(results)} checkpoint{'s' if len(results) != 1 else ''}",
        results=results,
    )


class CheckpointService:
    """Service for balance checkpoints and their adjustment transactions."""

    def __init__(self, db: Database):
        """Initialize checkpoint service.

        Args:
            db: Database instance
        """
        self.db = db

    def calculate_balance(self, account_id: int, checkpoint_date: date) -> Decimal:
        """Replay the account's balance up to the end of a day.

        Opens from the calculated balance of the nearest earlier reconciled
        checkpoint (0 when there is none) and adds every non-adjustment
        transaction dated after it, in date then sequence order.
        """
        previous = self.db.get_previous_checkpoint(account_id, checkpoint_date, reconciled_only=True)
        if previous is None:
            balance = Decimal("0")
            start_date = None
        else:
            balance = previous.calculated_balance
            start_date = previous.checkpoint_date + timedelta(days=1)

        transactions = self.db.list_transactions(
            account_id,
            start_date=start_date,
            end_date=checkpoint_date,
            include_adjustments=False,
        )
        for txn in transactions:
            balance += txn.signed_amount
        return balance.quantize(CENTS)

    def create_or_update_checkpoint(
        self,
        account_id: int,
        checkpoint_date: date,
        declared_balance: Decimal,
        notes: Optional[str] = None,
        batch_id: Optional[int] = None,
    ) -> CheckpointResult:
        """Declare the balance at the end of a day.

        A checkpoint already on that date is updated rather than duplicated.
        The checkpoint is reconciled against the replayed balance, its
        adjustment transaction is created, updated or removed, and every
        later checkpoint is recalculated.

        Args:
            account_id: Account ID
            checkpoint_date: Day the balance applies to (end of day)
            declared_balance: Balance stated by the bank
            notes: Optional free-text note
            batch_id: Import batch that produced this checkpoint, if any

        Returns:
            CheckpointResult with the stored checkpoint and the cascade summary

        Raises:
            NotFoundError: If account doesn't exist
        """
        if self.db.get_account(account_id) is None:
            raise NotFoundError(account_not_found(account_id))
        declared_balance = Decimal(declared_balance).quantize(CENTS)

        with self.db.atomic():
            existing = self.db.get_checkpoint_by_date(account_id, checkpoint_date)
            if existing is not None:
                checkpoint_id = existing.id
                # The batch that first declared this date keeps ownership
                self.db.update_checkpoint(
                    checkpoint_id,
                    declared_balance=declared_balance,
                    batch_id=batch_id if existing.batch_id is None else None,
                    notes=notes,
                )
            else:
                checkpoint_id = self.db.create_checkpoint(
                    account_id=account_id,
                    checkpoint_date=checkpoint_date,
                    declared_balance=declared_balance,
                    calculated_balance=Decimal("0"),
                    adjustment_amount=Decimal("0"),
                    is_reconciled=False,
                    batch_id=batch_id,
                    notes=notes,
                )

            self._recalculate_checkpoint(checkpoint_id)
            recalculation = self.recalculate_from(account_id, checkpoint_date + timedelta(days=1))

        checkpoint = self.db.get_checkpoint(checkpoint_id)
        logger.info(
            "Checkpoint %s on %s: declared %s, calculated %s, adjustment %s",
            checkpoint_id,
            checkpoint_date,
            checkpoint.declared_balance,
            checkpoint.calculated_balance,
            checkpoint.adjustment_amount,
        )
        return CheckpointResult(checkpoint=checkpoint, recalculation=recalculation)

    def delete_checkpoint(self, checkpoint_id: int, recalculate: bool = True) -> RecalculationSummary:
        """Delete a checkpoint together with its adjustment transaction.

        Args:
            checkpoint_id: Checkpoint ID
            recalculate: If False, skip the cascade (caller recalculates later)

        Raises:
            CheckpointNotFoundError: If checkpoint doesn't exist
        """
        checkpoint = self.db.get_checkpoint(checkpoint_id)
        if checkpoint is None:
            raise CheckpointNotFoundError(checkpoint_not_found(checkpoint_id))

        with self.db.atomic():
            adjustment = self.db.get_adjustment_transaction(checkpoint_id)
            if adjustment is not None:
                self.db.delete_transaction(adjustment.id)
            self.db.delete_checkpoint(checkpoint_id)
            if not recalculate:
                return _summary([])
            return self.recalculate_from(
                checkpoint.account_id, checkpoint.checkpoint_date + timedelta(days=1)
            )

    def recalculate_from(self, account_id: int, from_date: date) -> RecalculationSummary:
        """Recalculate every checkpoint dated on or after a date, oldest first."""
        results = [
            self._recalculate_checkpoint(checkpoint.id)
            for checkpoint in self.db.list_checkpoints(account_id, start_date=from_date)
        ]
        if results:
            logger.debug("Recalculated %d checkpoints from %s for account %d", len(results), from_date, account_id)
        return _summary(results)

    def _recalculate_checkpoint(self, checkpoint_id: int) -> CheckpointRecalculation:
        checkpoint = self.db.get_checkpoint(checkpoint_id)
        if checkpoint is None:
            raise CheckpointNotFoundError(checkpoint_not_found(checkpoint_id))

        calculated = self.calculate_balance(checkpoint.account_id, checkpoint.checkpoint_date)
        adjustment = checkpoint.declared_balance - calculated
        reconciled = is_reconciled(adjustment)
        self.db.update_checkpoint(
            checkpoint_id,
            calculated_balance=calculated,
            adjustment_amount=adjustment,
            is_reconciled=reconciled,
        )
        self._sync_adjustment(checkpoint, adjustment, reconciled)

        return CheckpointRecalculation(
            checkpoint_id=checkpoint_id,
            checkpoint_date=checkpoint.checkpoint_date,
            old_calculated_balance=checkpoint.calculated_balance,
            new_calculated_balance=calculated,
            old_adjustment_amount=checkpoint.adjustment_amount,
            new_adjustment_amount=adjustment,
            old_is_reconciled=checkpoint.is_reconciled,
            new_is_reconciled=reconciled,
        )

    def _sync_adjustment(self, checkpoint: Checkpoint, adjustment: Decimal, reconciled: bool) -> None:
        """Make the adjustment transaction match the checkpoint's adjustment."""
        existing = self.db.get_adjustment_transaction(checkpoint.id)
        if reconciled:
            if existing is not None:
                self.db.delete_transaction(existing.id)
            return

        # Positive adjustment adds money (credit), negative removes it (debit)
        debit = -adjustment if adjustment < 0 else None
        credit = adjustment if adjustment > 0 else None
        if existing is not None:
            self.db.update_transaction(
                existing.id,
                date=checkpoint.checkpoint_date,
                debit_amount=debit,
                credit_amount=credit,
                update_amounts=True,
            )
            return

        self.db.create_transaction(
            unique_id=adjustment_unique_id(checkpoint.id),
            account_id=checkpoint.account_id,
            date=checkpoint.checkpoint_date,
            debit_amount=debit,
            credit_amount=credit,
            description=ADJUSTMENT_DESCRIPTION,
            sequence=self.db.get_max_sequence(checkpoint.account_id) + 1,
            is_balance_adjustment=True,
            checkpoint_id=checkpoint.id,
        )

    def get_checkpoint(self, checkpoint_id: int) -> Optional[Checkpoint]:
        """Get checkpoint by ID."""
        return self.db.get_checkpoint(checkpoint_id)

    def list_checkpoints(self, account_id: int) -> list[Checkpoint]:
        """List an account's checkpoints, oldest first."""
        return self.db.list_checkpoints(account_id)

    def list_adjustments(self, account_id: int) -> list[Transaction]:
        """List the account's balance adjustment transactions."""
        return [txn for txn in self.db.list_transactions(account_id) if txn.is_balance_adjustment]

    def get_summary(self, account_id: int) -> CheckpointSummary:
        """Summarize reconciliation state for an account.

        Raises:
            NotFoundError: If account doesn't exist
        """
        if self.db.get_account(account_id) is None:
            raise NotFoundError(account_not_found(account_id))

        checkpoints = self.db.list_checkpoints(account_id)
        reconciled = [cp for cp in checkpoints if cp.is_reconciled]
        unreconciled = [cp for cp in checkpoints if not cp.is_reconciled]
        return CheckpointSummary(
            account_id=account_id,
            total_checkpoints=len(checkpoints),
            reconciled_count=len(reconciled),
            unreconciled_count=len(unreconciled),
            total_adjustment=sum((cp.adjustment_amount for cp in unreconciled), Decimal("0")),
            earliest_date=checkpoints[0].checkpoint_date if checkpoints else None,
            latest_date=checkpoints[-1].checkpoint_date if checkpoints else None,
            latest_declared_balance=checkpoints[-1].declared_balance if checkpoints else None,
        )
