"""Mapping of normalized statement rows to canonical transactions."""

import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

from bankrecon.domain.entities import (
    AMOUNT_ROLES,
    COLUMN_ROLES,
    ColumnMapping,
    ImportOptions,
    MappedTransaction,
    RawRow,
    RowError,
    ROLE_BALANCE,
    ROLE_BRANCH,
    ROLE_CREDIT,
    ROLE_DATE,
    ROLE_DEBIT,
    ROLE_DESCRIPTION,
    ROLE_IGNORE,
    ROLE_REFERENCE,
    ROLE_SIGNED_AMOUNT,
)
from bankrecon.domain.errors import FileFormatError, RowParseError, missing_mapped_columns
from bankrecon.utils.amount_parser import parse_amount
from bankrecon.utils.date_parser import parse_statement_date

DESCRIPTION_MAX_LENGTH = 500
REFERENCE_MAX_LENGTH = 100


@dataclass(frozen=True)
class RowContext:
    """Where a row comes from: account, batch, and its position in the file."""

    account_id: int
    batch_id: Optional[int]
    row_index: int
    row_number: int
    source_file_name: Optional[str] = None


def validate_mappings(mappings: list[ColumnMapping], headers: Optional[list[str]] = None) -> None:
    """Check a mapping can drive an import.

    Raises:
        FileFormatError: If a role is unknown, there is not exactly one date
            column, no amount column, or a mapped column is absent from the file
    """
    for mapping in mappings:
        if mapping.role not in COLUMN_ROLES:
            raise FileFormatError(f"Unknown column role '{mapping.role}' for column '{mapping.source_column}'")

    date_columns = [m for m in mappings if m.role == ROLE_DATE]
    if len(date_columns) != 1:
        raise FileFormatError(
            f"Exactly one column must be mapped to date (found {len(date_columns)})"
        )
    if not any(m.role in AMOUNT_ROLES for m in mappings):
        raise FileFormatError("At least one column must be mapped to debit, credit, or signed_amount")

    if headers is not None:
        missing = [
            m.source_column for m in mappings
            if m.role != ROLE_IGNORE and m.source_column not in headers
        ]
        if missing:
            raise FileFormatError(missing_mapped_columns(missing))


def _text(value: Any, max_length: int) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = " ".join(str(value).split())
    return text[:max_length] or None


def _amount(value: Any, label: str) -> Optional[Decimal]:
    try:
        return parse_amount(value)
    except ValueError:
        raise RowParseError(f"invalid {label} amount '{value}'")


def _magnitude(amount: Optional[Decimal]) -> Optional[Decimal]:
    """Absolute value, with zero treated as absent."""
    if amount is None or amount == 0:
        return None
    return abs(amount)


def map_row(
    row: RawRow,
    mappings: list[ColumnMapping],
    options: ImportOptions,
    context: RowContext,
) -> MappedTransaction:
    """Map one statement row to a transaction.

    Roles are applied in a fixed order (date, description, debit, credit,
    signed amount, balance, reference, branch); ignored columns and empty
    cells are skipped.

    Raises:
        RowParseError: If the row has no parseable date, no amount, or
            both a debit and a credit amount
    """
    ordered = sorted(
        (m for m in mappings if m.role != ROLE_IGNORE),
        key=lambda m: COLUMN_ROLES.index(m.role),
    )

    txn_date = None
    description = None
    debit = None
    credit = None
    balance = None
    reference = None
    branch = None
    raw_date = None

    for mapping in ordered:
        value = row.get(mapping.source_column)
        if value is None or (isinstance(value, str) and not value.strip()):
            continue

        if mapping.role == ROLE_DATE:
            raw_date = value
            txn_date = parse_statement_date(value, mapping.date_format or options.date_format)
        elif mapping.role == ROLE_DESCRIPTION:
            description = _text(value, DESCRIPTION_MAX_LENGTH)
        elif mapping.role == ROLE_DEBIT:
            debit = _magnitude(_amount(value, "debit"))
        elif mapping.role == ROLE_CREDIT:
            credit = _magnitude(_amount(value, "credit"))
        elif mapping.role == ROLE_SIGNED_AMOUNT:
            amount = _amount(value, "signed")
            if amount is None or amount == 0 or debit is not None or credit is not None:
                continue
            negative_is_debit = (
                mapping.is_negative_debit
                if mapping.is_negative_debit is not None
                else options.has_negative_debits
            )
            if (amount < 0) == negative_is_debit:
                debit = abs(amount)
            else:
                credit = abs(amount)
        elif mapping.role == ROLE_BALANCE:
            balance = _amount(value, "balance")
        elif mapping.role == ROLE_REFERENCE:
            reference = _text(value, REFERENCE_MAX_LENGTH)
        elif mapping.role == ROLE_BRANCH:
            branch = _text(value, REFERENCE_MAX_LENGTH)

    if txn_date is None:
        if raw_date is None:
            raise RowParseError("missing date")
        raise RowParseError(f"invalid date '{raw_date}'")
    if debit is None and credit is None:
        raise RowParseError("no debit or credit amount")
    if debit is not None and credit is not None:
        raise RowParseError("row has both a debit and a credit amount")

    return MappedTransaction(
        unique_id=f"IMPORT-{context.batch_id}-{context.row_index}-{time.time_ns()}",
        account_id=context.account_id,
        batch_id=context.batch_id,
        row_number=context.row_number,
        date=txn_date,
        description=description,
        debit_amount=debit,
        credit_amount=credit,
        balance=balance,
        bank_reference=reference,
        branch=branch,
        sequence=context.row_index + 1,
        source_file_name=context.source_file_name,
    )


def map_rows(
    rows: list[RawRow],
    row_numbers: list[int],
    mappings: list[ColumnMapping],
    options: ImportOptions,
    account_id: int,
    batch_id: Optional[int],
    source_file_name: Optional[str] = None,
) -> tuple[list[MappedTransaction], list[RowError]]:
    """Map every row, collecting per-row failures instead of raising.

    Returns:
        Tuple of (mapped transactions in file order, row errors)
    """
    mapped: list[MappedTransaction] = []
    errors: list[RowError] = []
    for index, (row, row_number) in enumerate(zip(rows, row_numbers)):
        context = RowContext(
            account_id=account_id,
            batch_id=batch_id,
            row_index=index,
            row_number=row_number,
            source_file_name=source_file_name,
        )
        try:
            mapped.append(map_row(row, mappings, options, context))
        except RowParseError as e:
            errors.append(RowError(row_number=row_number, message=str(e)))
    return mapped, errors
