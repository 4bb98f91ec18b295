"""Domain model entities for bankrecon.

These are pure data classes representing business concepts, independent of
database schema. Persisted entities (accounts, transactions, import batches,
checkpoints) are returned by the database layer; the remaining classes are
value objects passed between the stages of the statement import pipeline.
"""

from dataclasses import dataclass, field
from datetime import datetime, date
from decimal import Decimal
from typing import Any, Optional

# Column roles a statement column can be mapped to
ROLE_DATE = "date"
ROLE_DESCRIPTION = "description"
ROLE_DEBIT = "debit"
ROLE_CREDIT = "credit"
ROLE_SIGNED_AMOUNT = "signed_amount"
ROLE_BALANCE = "balance"
ROLE_REFERENCE = "reference"
ROLE_BRANCH = "branch"
ROLE_IGNORE = "ignore"

# Fixed evaluation order used by the row mapper
COLUMN_ROLES = (
    ROLE_DATE,
    ROLE_DESCRIPTION,
    ROLE_DEBIT,
    ROLE_CREDIT,
    ROLE_SIGNED_AMOUNT,
    ROLE_BALANCE,
    ROLE_REFERENCE,
    ROLE_BRANCH,
    ROLE_IGNORE,
)
AMOUNT_ROLES = frozenset({ROLE_DEBIT, ROLE_CREDIT, ROLE_SIGNED_AMOUNT})

# Import batch lifecycle
BATCH_PROCESSING = "processing"
BATCH_COMPLETED = "completed"
BATCH_FAILED = "failed"
BATCH_ROLLED_BACK = "rolled_back"

# Cell values produced by the normalizer: text, numbers, or ISO date strings
RawRow = dict[str, Any]


@dataclass(frozen=True)
class Account:
    """Bank account domain entity."""

    id: int
    name: str
    bank_name: str
    currency: str
    created_at: datetime
    last_import_config: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class Transaction:
    """Persisted transaction domain entity.

    Exactly one of ``debit_amount`` and ``credit_amount`` is set and
    positive. ``sequence`` orders transactions within the account.
    """

    id: int
    unique_id: str
    account_id: int
    date: date
    description: Optional[str]
    debit_amount: Optional[Decimal]
    credit_amount: Optional[Decimal]
    balance: Optional[Decimal]
    bank_reference: Optional[str]
    branch: Optional[str]
    sequence: int
    batch_id: Optional[int]
    source_file_name: Optional[str]
    is_balance_adjustment: bool
    checkpoint_id: Optional[int]
    created_at: datetime

    @property
    def signed_amount(self) -> Decimal:
        """Credit minus debit."""
        return (self.credit_amount or Decimal("0")) - (self.debit_amount or Decimal("0"))


@dataclass(frozen=True)
class ImportBatch:
    """One statement import, the unit of rollback."""

    id: int
    account_id: int
    file_name: str
    total_rows: int
    successful_count: int
    failed_count: int
    duplicate_count: int
    status: str
    error_log: Optional[dict[str, Any]]
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class Checkpoint:
    """Declared balance snapshot at the end of a calendar day."""

    id: int
    account_id: int
    checkpoint_date: date
    declared_balance: Decimal
    calculated_balance: Decimal
    adjustment_amount: Decimal
    is_reconciled: bool
    batch_id: Optional[int]
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime

    @property
    def closing_balance(self) -> Decimal:
        """Balance after this checkpoint's adjustment transaction, if any."""
        if self.is_reconciled:
            return self.calculated_balance
        return self.calculated_balance + self.adjustment_amount


@dataclass(frozen=True)
class ColumnMapping:
    """Mapping of one source column to a transaction role."""

    source_column: str
    role: str
    date_format: Optional[str] = None
    is_negative_debit: Optional[bool] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_column": self.source_column,
            "role": self.role,
            "date_format": self.date_format,
            "is_negative_debit": self.is_negative_debit,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ColumnMapping":
        return cls(
            source_column=data["source_column"],
            role=data["role"],
            date_format=data.get("date_format"),
            is_negative_debit=data.get("is_negative_debit"),
        )


@dataclass(frozen=True)
class NormalizedTable:
    """Uniform grid produced from a CSV or spreadsheet file.

    ``row_numbers`` holds the 1-based source row of each entry in ``rows``.
    """

    headers: list[str]
    rows: list[RawRow]
    row_numbers: list[int]
    header_row_index: int


@dataclass(frozen=True)
class DateFormatDetection:
    """Outcome of date format detection; ``format`` is None when unknown."""

    format: Optional[str]
    confidence: float
    sample_values: list[str]
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ColumnDetection:
    """Suggested role for one column."""

    column_name: str
    suggested_role: str
    confidence: float
    sample_values: list[Any]
    reasoning: str
    date_format: Optional[str] = None


@dataclass(frozen=True)
class StatementMetadata:
    """Statement period and ending balance detected from the rows."""

    start_date: Optional[date]
    end_date: Optional[date]
    ending_balance: Optional[Decimal]


@dataclass(frozen=True)
class ImportOptions:
    """Global options applied to every row of an import."""

    date_format: Optional[str] = None
    has_negative_debits: bool = True
    chunk_size: int = 50
    atomic: bool = False


@dataclass(frozen=True)
class MappedTransaction:
    """Canonical transaction built from a statement row, not yet persisted."""

    unique_id: str
    account_id: int
    batch_id: Optional[int]
    row_number: int
    date: date
    description: Optional[str]
    debit_amount: Optional[Decimal]
    credit_amount: Optional[Decimal]
    balance: Optional[Decimal]
    bank_reference: Optional[str]
    branch: Optional[str]
    sequence: int
    source_file_name: Optional[str] = None

    @property
    def signed_amount(self) -> Decimal:
        """Credit minus debit."""
        return (self.credit_amount or Decimal("0")) - (self.debit_amount or Decimal("0"))

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly summary used in the batch error log."""
        return {
            "row_number": self.row_number,
            "date": self.date.isoformat(),
            "description": self.description,
            "debit_amount": str(self.debit_amount) if self.debit_amount is not None else None,
            "credit_amount": str(self.credit_amount) if self.credit_amount is not None else None,
            "balance": str(self.balance) if self.balance is not None else None,
            "bank_reference": self.bank_reference,
        }


@dataclass(frozen=True)
class RowError:
    """Row excluded from an import, with the reason."""

    row_number: int
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"row_number": self.row_number, "error": self.message}


@dataclass(frozen=True)
class DuplicateWarning:
    """Imported row rejected because it matches an existing transaction."""

    imported: MappedTransaction
    existing: Transaction

    def to_dict(self) -> dict[str, Any]:
        return {
            "imported": self.imported.to_dict(),
            "existing": {
                "transaction_id": self.existing.id,
                "unique_id": self.existing.unique_id,
                "date": self.existing.date.isoformat(),
                "description": self.existing.description,
                "amount": str(self.existing.debit_amount or self.existing.credit_amount),
            },
        }


@dataclass(frozen=True)
class ResolutionResult:
    """Output of order and duplicate resolution for one batch.

    ``statement_rows`` are the order-corrected, in-range rows before
    duplicate suppression; ``insert_set`` is what gets persisted.
    """

    insert_set: list[MappedTransaction]
    duplicate_warnings: list[DuplicateWarning]
    errors: list[RowError]
    is_descending: bool
    out_of_range_count: int
    statement_rows: list[MappedTransaction]


@dataclass(frozen=True)
class CheckpointRecalculation:
    """Before/after values for one recalculated checkpoint."""

    checkpoint_id: int
    checkpoint_date: date
    old_calculated_balance: Decimal
    new_calculated_balance: Decimal
    old_adjustment_amount: Decimal
    new_adjustment_amount: Decimal
    old_is_reconciled: bool
    new_is_reconciled: bool


@dataclass(frozen=True)
class RecalculationSummary:
    """Checkpoints recalculated as a side effect of a mutation."""

    checkpoints_recalculated: int
    message: str
    results: list[CheckpointRecalculation] = field(default_factory=list)


@dataclass(frozen=True)
class CheckpointResult:
    """Checkpoint after create/update, plus the cascade it triggered."""

    checkpoint: Checkpoint
    recalculation: RecalculationSummary


@dataclass(frozen=True)
class ImportResult:
    """Summary returned to the caller after a statement import."""

    batch: ImportBatch
    total_rows: int
    successful_count: int
    errors: list[RowError]
    duplicate_warnings: list[DuplicateWarning]
    is_descending: bool
    out_of_range_count: int
    sequences_renumbered: bool
    checkpoint: Optional[CheckpointResult] = None


@dataclass(frozen=True)
class RollbackResult:
    """Outcome of rolling back an import batch."""

    batch_id: int
    account_id: int
    transactions_deleted: int
    checkpoints_deleted: int
    recalculation: RecalculationSummary


@dataclass(frozen=True)
class CheckpointSummary:
    """Reconciliation overview for one account."""

    account_id: int
    total_checkpoints: int
    reconciled_count: int
    unreconciled_count: int
    total_adjustment: Decimal
    earliest_date: Optional[date]
    latest_date: Optional[date]
    latest_declared_balance: Optional[Decimal]


@dataclass(frozen=True)
class ImportPreview:
    """Everything the caller needs to confirm a column mapping."""

    table: NormalizedTable
    detections: list[ColumnDetection]
    date_format: DateFormatDetection
    metadata: StatementMetadata
    suggested_mappings: list[ColumnMapping]
