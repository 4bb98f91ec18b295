"""Statement order correction and duplicate suppression."""

import dataclasses
import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from bankrecon.domain.entities import (
    DuplicateWarning,
    MappedTransaction,
    ResolutionResult,
    RowError,
    Transaction,
)

logger = logging.getLogger(__name__)

DUPLICATE_WINDOW_DAYS = 7
DESCRIPTION_KEY_LENGTH = 50
IN_BATCH_DUPLICATE_MESSAGE = "duplicate transaction (skipped)"


def duplicate_window(dates: list[date]) -> Optional[tuple[date, date]]:
    """Date range of existing transactions to compare an import against."""
    if not dates:
        return None
    padding = timedelta(days=DUPLICATE_WINDOW_DAYS)
    return min(dates) - padding, max(dates) + padding


def _description_key(description: Optional[str]) -> str:
    return (description or "").strip().lower()[:DESCRIPTION_KEY_LENGTH]


def _amount_key(amount: Optional[Decimal]) -> Decimal:
    return amount if amount is not None else Decimal("0")


def _is_duplicate(new: MappedTransaction, existing: Transaction) -> bool:
    """Same date and amounts, and the same description or the same reference."""
    if new.date != existing.date:
        return False
    if _amount_key(new.debit_amount) != _amount_key(existing.debit_amount):
        return False
    if _amount_key(new.credit_amount) != _amount_key(existing.credit_amount):
        return False
    same_description = (new.description or "").strip().lower() == (existing.description or "").strip().lower()
    same_reference = bool(new.bank_reference) and new.bank_reference == existing.bank_reference
    return same_description or same_reference


def resolve_order_and_duplicates(
    transactions: list[MappedTransaction],
    existing_window: list[Transaction],
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> ResolutionResult:
    """Correct statement order and drop duplicates before insertion.

    Steps, in order:
    1. drop rows outside [start_date, end_date] when a bound is given
    2. report exact repeats inside the file as row errors
    3. reverse provisional sequences when the file runs newest-first
    4. compare against existing transactions of the account
    5. re-number the surviving rows 1..k

    Args:
        transactions: Mapped rows in file order
        existing_window: The account's non-adjustment transactions around
            the import's dates (see duplicate_window)
        start_date: Optional inclusive statement start
        end_date: Optional inclusive statement end

    Returns:
        ResolutionResult with the insert set and everything that was dropped
    """
    in_range = []
    out_of_range = 0
    for txn in transactions:
        if (start_date is not None and txn.date < start_date) or (end_date is not None and txn.date > end_date):
            out_of_range += 1
            continue
        in_range.append(txn)
    if out_of_range:
        logger.info("Filtered out %d transactions outside the statement period", out_of_range)

    errors: list[RowError] = []
    seen: set[tuple] = set()
    unique_rows = []
    for txn in in_range:
        key = (txn.date, txn.description, txn.debit_amount, txn.credit_amount, txn.bank_reference)
        if key in seen:
            errors.append(RowError(row_number=txn.row_number, message=IN_BATCH_DUPLICATE_MESSAGE))
            continue
        seen.add(key)
        unique_rows.append(txn)

    is_descending = len(unique_rows) >= 2 and unique_rows[0].date > unique_rows[-1].date
    if is_descending:
        logger.info(
            "Detected descending statement order (first: %s, last: %s); reversing sequences",
            unique_rows[0].date,
            unique_rows[-1].date,
        )
        total = max(txn.sequence for txn in unique_rows)
        unique_rows = [dataclasses.replace(txn, sequence=total - txn.sequence + 1) for txn in unique_rows]
    statement_rows = sorted(unique_rows, key=lambda t: t.sequence)

    by_description: dict[tuple, list[Transaction]] = {}
    by_reference: dict[tuple, list[Transaction]] = {}
    for existing in existing_window:
        base = (existing.date, _amount_key(existing.debit_amount), _amount_key(existing.credit_amount))
        by_description.setdefault(base + (_description_key(existing.description),), []).append(existing)
        if existing.bank_reference:
            by_reference.setdefault(base + (existing.bank_reference,), []).append(existing)

    duplicate_warnings: list[DuplicateWarning] = []
    survivors: list[MappedTransaction] = []
    for txn in statement_rows:
        base = (txn.date, _amount_key(txn.debit_amount), _amount_key(txn.credit_amount))
        candidates = list(by_description.get(base + (_description_key(txn.description),), []))
        if txn.bank_reference:
            candidates.extend(by_reference.get(base + (txn.bank_reference,), []))
        match = next((existing for existing in candidates if _is_duplicate(txn, existing)), None)
        if match is not None:
            duplicate_warnings.append(DuplicateWarning(imported=txn, existing=match))
            continue
        survivors.append(txn)

    if duplicate_warnings:
        logger.info("Skipping %d transactions already present in the account", len(duplicate_warnings))

    insert_set = [
        dataclasses.replace(txn, sequence=position)
        for position, txn in enumerate(survivors, start=1)
    ]
    return ResolutionResult(
        insert_set=insert_set,
        duplicate_warnings=duplicate_warnings,
        errors=errors,
        is_descending=is_descending,
        out_of_range_count=out_of_range,
        statement_rows=statement_rows,
    )
