"""Import batch rollback."""

import logging
from datetime import datetime, UTC

from bankrecon.database.base import Database
from bankrecon.domain.checkpoint import CheckpointService
from bankrecon.domain.entities import BATCH_ROLLED_BACK, RecalculationSummary, RollbackResult
from bankrecon.domain.errors import (
    AlreadyRolledBackError,
    BatchNotFoundError,
    CheckpointNotFoundError,
    ValidationError,
    batch_already_rolled_back,
    batch_not_found,
    checkpoint_not_found,
    checkpoint_not_imported,
)
from bankrecon.domain.locks import account_lock
from bankrecon.domain.sequencing import SequenceService

logger = logging.getLogger(__name__)

DEFAULT_ROLLBACK_REASON = "User-initiated rollback"


class RollbackService:
    """Service for undoing an import batch."""

    def __init__(self, db: Database):
        """Initialize rollback service.

        Args:
            db: Database instance
        """
        self.db = db
        self.checkpoints = CheckpointService(db)
        self.sequences = SequenceService(db)

    def rollback_batch(self, batch_id: int, reason: str = DEFAULT_ROLLBACK_REASON) -> RollbackResult:
        """Remove everything an import batch added.

        Deletes the checkpoints the batch declared (with their adjustments)
        and the transactions it inserted, marks the batch rolled back with an
        audit entry, and recalculates checkpoints from the earliest affected
        date. All of it commits or fails as one unit; sequences are
        renumbered afterwards.

        Args:
            batch_id: Import batch ID
            reason: Reason recorded in the audit entry

        Returns:
            RollbackResult with deletion counts and the cascade summary

        Raises:
            BatchNotFoundError: If batch doesn't exist
            AlreadyRolledBackError: If batch was already rolled back
        """
        batch = self.db.get_import_batch(batch_id)
        if batch is None:
            raise BatchNotFoundError(batch_not_found(batch_id))

        with account_lock(batch.account_id):
            # Re-read under the lock so two rollbacks cannot both pass the check
            batch = self.db.get_import_batch(batch_id)
            if batch.status == BATCH_ROLLED_BACK:
                raise AlreadyRolledBackError(batch_already_rolled_back(batch_id))

            with self.db.atomic():
                transactions = self.db.list_transactions(batch.account_id, batch_id=batch_id)
                checkpoints = self.db.list_batch_checkpoints(batch_id)
                affected_dates = [t.date for t in transactions] + [c.checkpoint_date for c in checkpoints]

                for checkpoint in checkpoints:
                    self.checkpoints.delete_checkpoint(checkpoint.id, recalculate=False)
                deleted = self.db.delete_batch_transactions(batch_id)

                error_log = dict(batch.error_log or {})
                error_log["rollback"] = {
                    "rolled_back_at": datetime.now(UTC).isoformat(),
                    "transactions_deleted": deleted,
                    "checkpoints_deleted": len(checkpoints),
                    "reason": reason,
                }
                self.db.update_import_batch(batch_id, status=BATCH_ROLLED_BACK, error_log=error_log)

                if affected_dates:
                    recalculation = self.checkpoints.recalculate_from(batch.account_id, min(affected_dates))
                else:
                    recalculation = RecalculationSummary(
                        checkpoints_recalculated=0, message="No checkpoints to recalculate"
                    )

            self.sequences.renumber(batch.account_id)

        logger.info(
            "Rolled back batch %d: %d transactions and %d checkpoints deleted",
            batch_id,
            deleted,
            len(checkpoints),
        )
        return RollbackResult(
            batch_id=batch_id,
            account_id=batch.account_id,
            transactions_deleted=deleted,
            checkpoints_deleted=len(checkpoints),
            recalculation=recalculation,
        )

    def rollback_checkpoint(self, checkpoint_id: int, reason: str = DEFAULT_ROLLBACK_REASON) -> RollbackResult:
        """Roll back the import batch that declared a checkpoint.

        Raises:
            CheckpointNotFoundError: If checkpoint doesn't exist
            ValidationError: If the checkpoint was declared manually
            AlreadyRolledBackError: If its batch was already rolled back
        """
        checkpoint = self.db.get_checkpoint(checkpoint_id)
        if checkpoint is None:
            raise CheckpointNotFoundError(checkpoint_not_found(checkpoint_id))
        if checkpoint.batch_id is None:
            raise ValidationError(checkpoint_not_imported(checkpoint_id))
        return self.rollback_batch(checkpoint.batch_id, reason=reason)
