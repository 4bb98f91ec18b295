"""Per-account transaction ordering."""

import logging

from bankrecon.database.base import Database
from bankrecon.domain.entities import Transaction

logger = logging.getLogger(__name__)

# Imports inserting more rows than this skip the account-wide renumber
RENUMBER_CUTOFF = 200


def ordering_key(txn: Transaction) -> tuple:
    """Sort key for an account's transactions.

    Within a day: imported rows by batch, then manual entries, then the
    balance adjustment; ties keep the previous sequence.
    """
    return (
        txn.date,
        txn.is_balance_adjustment,
        txn.batch_id is None,
        txn.batch_id or 0,
        txn.sequence,
        txn.created_at,
        txn.id,
    )


class SequenceService:
    """Service keeping ``sequence`` a dense 1..n ordering per account."""

    def __init__(self, db: Database):
        """Initialize sequence service.

        Args:
            db: Database instance
        """
        self.db = db

    def next_sequence(self, account_id: int) -> int:
        """Sequence number after the account's current maximum."""
        return self.db.get_max_sequence(account_id) + 1

    def renumber(self, account_id: int) -> int:
        """Reassign sequences 1..n in chronological order.

        Returns:
            Number of transactions whose sequence changed
        """
        transactions = sorted(self.db.list_transactions(account_id), key=ordering_key)
        sequences = {txn.id: position for position, txn in enumerate(transactions, start=1)}
        changed = sum(1 for txn in transactions if txn.sequence != sequences[txn.id])
        if changed:
            self.db.update_sequences(account_id, sequences)
        logger.debug("Renumbered %d of %d transactions for account %d", changed, len(transactions), account_id)
        return changed
