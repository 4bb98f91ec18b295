"""Statement import domain service.

Drives one bank statement file through the pipeline: normalize, map rows,
resolve order and duplicates, insert in chunks, reconcile the ending
balance and renumber. Every import is recorded as an ImportBatch so it
can be audited and rolled back later.
"""

import dataclasses
import logging
from datetime import date, datetime, UTC
from decimal import Decimal
from typing import Any, Optional

from bankrecon.database.base import Database
from bankrecon.domain.account import AccountService
from bankrecon.domain.checkpoint import RECONCILIATION_THRESHOLD, CheckpointService
from bankrecon.domain.classifier import (
    classify_columns,
    detect_date_format,
    detect_statement_metadata,
    suggest_mappings,
)
from bankrecon.domain.entities import (
    BATCH_COMPLETED,
    BATCH_FAILED,
    ColumnMapping,
    CheckpointResult,
    ImportOptions,
    ImportPreview,
    ImportResult,
    MappedTransaction,
    ROLE_BALANCE,
    ROLE_DATE,
)
from bankrecon.domain.errors import PersistenceError
from bankrecon.domain.locks import account_lock
from bankrecon.domain.normalizer import normalize_file
from bankrecon.domain.resolver import duplicate_window, resolve_order_and_duplicates
from bankrecon.domain.row_mapper import map_rows, validate_mappings
from bankrecon.domain.sequencing import RENUMBER_CUTOFF, SequenceService

logger = logging.getLogger(__name__)

INSERT_CHUNK_SIZE = 50


def build_import_config(mappings: list[ColumnMapping], options: ImportOptions) -> dict[str, Any]:
    """Serializable configuration remembered on the account after an import."""
    return {
        "column_mappings": [m.to_dict() for m in mappings],
        "date_format": options.date_format,
        "has_negative_debits": options.has_negative_debits,
        "last_import_date": datetime.now(UTC).isoformat(),
    }


def statement_balance_on(rows: list[MappedTransaction], day: date) -> Optional[Decimal]:
    """Balance column of the chronologically last statement row on a day."""
    candidates = [row for row in rows if row.date == day and row.balance is not None]
    if not candidates:
        return None
    return max(candidates, key=lambda row: row.sequence).balance


class StatementImportService:
    """Service for importing bank statement files."""

    def __init__(self, db: Database):
        """Initialize statement import service.

        Args:
            db: Database instance
        """
        self.db = db
        self.accounts = AccountService(db)
        self.checkpoints = CheckpointService(db)
        self.sequences = SequenceService(db)

    def preview(self, data: bytes, kind: str) -> ImportPreview:
        """Normalize a file and suggest how to map it, without importing.

        Raises:
            FileFormatError: If the file cannot be read
        """
        table = normalize_file(data, kind)
        detections = classify_columns(table.headers, table.rows)

        date_column = next((d for d in detections if d.suggested_role == ROLE_DATE), None)
        if date_column is not None:
            date_format = detect_date_format([row.get(date_column.column_name) for row in table.rows[:10]])
        else:
            date_format = detect_date_format([])

        metadata = detect_statement_metadata(table.headers, table.rows, detections)
        mappings = suggest_mappings(detections, date_format=date_format.format)
        return ImportPreview(
            table=table,
            detections=detections,
            date_format=date_format,
            metadata=metadata,
            suggested_mappings=mappings,
        )

    def import_statement(
        self,
        account_id: int,
        data: bytes,
        file_name: str,
        kind: str,
        mappings: list[ColumnMapping],
        options: Optional[ImportOptions] = None,
        statement_start_date: Optional[date] = None,
        statement_end_date: Optional[date] = None,
        ending_balance: Optional[Decimal] = None,
    ) -> ImportResult:
        """Import a statement file into an account.

        Args:
            account_id: Account ID
            data: Raw file bytes
            file_name: Original file name, kept on the batch and transactions
            kind: "csv" or "xlsx"
            mappings: Confirmed column mappings
            options: Global import options
            statement_start_date: Optional inclusive period start; rows before it are skipped
            statement_end_date: Optional inclusive period end; rows after it are skipped
                and a checkpoint is declared on it when a balance is known
            ending_balance: Optional balance stated by the bank at the period end

        Returns:
            ImportResult with the final batch and everything that was skipped

        Raises:
            NotFoundError: If account doesn't exist
            FileFormatError: If the file is unreadable or the mapping is unusable
            PersistenceError: If a chunk insert fails; earlier chunks stay
                committed unless options.atomic is set
        """
        options = options or ImportOptions()
        self.accounts.require_account(account_id)
        validate_mappings(mappings)
        table = normalize_file(data, kind)
        validate_mappings(mappings, table.headers)

        with account_lock(account_id):
            return self._import_table(
                account_id,
                table.rows,
                table.row_numbers,
                file_name,
                mappings,
                options,
                statement_start_date,
                statement_end_date,
                ending_balance,
            )

    def _import_table(
        self,
        account_id: int,
        rows: list[dict],
        row_numbers: list[int],
        file_name: str,
        mappings: list[ColumnMapping],
        options: ImportOptions,
        statement_start_date: Optional[date],
        statement_end_date: Optional[date],
        ending_balance: Optional[Decimal],
    ) -> ImportResult:
        total_rows = len(rows)
        batch_id = self.db.create_import_batch(account_id, file_name, total_rows)
        logger.info("Importing %d rows from %s into account %d (batch %d)", total_rows, file_name, account_id, batch_id)

        mapped, row_errors = map_rows(
            rows, row_numbers, mappings, options, account_id, batch_id, source_file_name=file_name
        )
        if row_errors:
            logger.warning("%d of %d rows could not be mapped", len(row_errors), total_rows)

        window = duplicate_window([txn.date for txn in mapped])
        existing = []
        if window is not None:
            existing = self.db.list_transactions(
                account_id, start_date=window[0], end_date=window[1], include_adjustments=False
            )
        resolution = resolve_order_and_duplicates(
            mapped, existing, start_date=statement_start_date, end_date=statement_end_date
        )

        errors = row_errors + resolution.errors
        error_log: dict[str, Any] = {
            "errors": [e.to_dict() for e in sorted(errors, key=lambda e: e.row_number)],
            "duplicates": len(resolution.duplicate_warnings),
            "duplicate_details": [w.to_dict() for w in resolution.duplicate_warnings],
            "out_of_range": resolution.out_of_range_count,
            "is_descending": resolution.is_descending,
        }

        offset = self.db.get_max_sequence(account_id)
        to_insert = [dataclasses.replace(txn, sequence=offset + txn.sequence) for txn in resolution.insert_set]

        try:
            if options.atomic:
                with self.db.atomic():
                    inserted = self._insert_chunks(to_insert, options.chunk_size, batch_id)
            else:
                inserted = self._insert_chunks(to_insert, options.chunk_size, batch_id)
        except PersistenceError as e:
            inserted = 0 if options.atomic else e.inserted_count
            error_log["persistence_error"] = str(e)
            self.db.update_import_batch(
                batch_id,
                successful_count=inserted,
                failed_count=len(errors) + len(to_insert) - inserted,
                duplicate_count=len(resolution.duplicate_warnings),
                status=BATCH_FAILED,
                error_log=error_log,
            )
            logger.error("Import batch %d failed after %d inserted rows: %s", batch_id, inserted, e)
            if inserted > 0:
                # Committed chunks stay in the ledger and must move later checkpoints
                self.checkpoints.recalculate_from(account_id, min(txn.date for txn in to_insert[:inserted]))
                if inserted <= RENUMBER_CUTOFF:
                    self.sequences.renumber(account_id)
            raise PersistenceError(str(e), inserted_count=inserted, batch_id=batch_id) from e

        status = BATCH_FAILED if total_rows > 0 and len(errors) == total_rows else BATCH_COMPLETED
        self.db.update_import_batch(
            batch_id,
            successful_count=inserted,
            failed_count=len(errors),
            duplicate_count=len(resolution.duplicate_warnings),
            status=status,
            error_log=error_log,
        )

        if to_insert:
            self.checkpoints.recalculate_from(account_id, min(txn.date for txn in to_insert))

        checkpoint_result = None
        if status == BATCH_COMPLETED and statement_end_date is not None:
            declared = self._declared_balance(
                mappings, resolution.statement_rows, statement_end_date, ending_balance
            )
            if declared is not None:
                checkpoint_result = self._declare_checkpoint(
                    account_id, statement_end_date, declared, file_name, batch_id
                )

        renumbered = inserted <= RENUMBER_CUTOFF
        if renumbered:
            self.sequences.renumber(account_id)
        else:
            logger.info("Skipping sequence renumber for large import (%d transactions)", inserted)

        if status == BATCH_COMPLETED and inserted > 0:
            self.accounts.save_import_config(account_id, build_import_config(mappings, options))

        logger.info(
            "Batch %d %s: %d inserted, %d errors, %d duplicates",
            batch_id,
            status,
            inserted,
            len(errors),
            len(resolution.duplicate_warnings),
        )
        return ImportResult(
            batch=self.db.get_import_batch(batch_id),
            total_rows=total_rows,
            successful_count=inserted,
            errors=errors,
            duplicate_warnings=resolution.duplicate_warnings,
            is_descending=resolution.is_descending,
            out_of_range_count=resolution.out_of_range_count,
            sequences_renumbered=renumbered,
            checkpoint=checkpoint_result,
        )

    def _insert_chunks(self, transactions: list[MappedTransaction], chunk_size: int, batch_id: int) -> int:
        """Insert sequentially in chunks; a failing chunk aborts the rest."""
        inserted = 0
        total_chunks = (len(transactions) + chunk_size - 1) // chunk_size
        for number, start in enumerate(range(0, len(transactions), chunk_size), start=1):
            chunk = transactions[start:start + chunk_size]
            try:
                inserted += self.db.insert_transactions(chunk)
            except PersistenceError as e:
                raise PersistenceError(
                    f"Failed to insert chunk {number}/{total_chunks}: {e}",
                    inserted_count=inserted,
                    batch_id=batch_id,
                ) from e
            logger.debug("Inserted chunk %d/%d (%d rows so far)", number, total_chunks, inserted)
        return inserted

    def _declared_balance(
        self,
        mappings: list[ColumnMapping],
        statement_rows: list[MappedTransaction],
        end_date: date,
        ending_balance: Optional[Decimal],
    ) -> Optional[Decimal]:
        """Balance to declare at the statement end.

        When a balance column is mapped, the statement's own balance on the
        end date wins over the given ending balance.
        """
        if not any(m.role == ROLE_BALANCE for m in mappings):
            return ending_balance

        statement_balance = statement_balance_on(statement_rows, end_date)
        if statement_balance is None:
            return ending_balance
        if ending_balance is not None and abs(statement_balance - ending_balance) > RECONCILIATION_THRESHOLD:
            logger.warning(
                "Ending balance %s differs from the statement balance %s on %s; using the statement balance",
                ending_balance,
                statement_balance,
                end_date,
            )
        return statement_balance

    def _declare_checkpoint(
        self,
        account_id: int,
        checkpoint_date: date,
        declared: Decimal,
        file_name: str,
        batch_id: int,
    ) -> CheckpointResult:
        result = self.checkpoints.create_or_update_checkpoint(
            account_id,
            checkpoint_date,
            declared,
            notes=f"Imported from {file_name}",
            batch_id=batch_id,
        )
        if not result.checkpoint.is_reconciled:
            logger.warning(
                "Statement %s does not reconcile on %s: adjustment of %s booked",
                file_name,
                checkpoint_date,
                result.checkpoint.adjustment_amount,
            )
        return result
