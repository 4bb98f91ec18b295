"""Tests for the statement import pipeline."""

import pytest
from datetime import date
from decimal import Decimal

from bankrecon.domain.entities import (
    BATCH_COMPLETED,
    BATCH_FAILED,
    ColumnMapping,
    ImportOptions,
)
from bankrecon.domain.errors import FileFormatError, NotFoundError, PersistenceError
from bankrecon.domain.statement_import import build_import_config
from conftest import csv_bytes, xlsx_bytes


def _import(service, account_id, data, file_name="statement.csv", kind="csv", options=None, **kwargs):
    """Import with the suggested mapping."""
    mappings = service.preview(data, kind).suggested_mappings
    return service.import_statement(account_id, data, file_name, kind, mappings, options, **kwargs)


@pytest.fixture
def january(fixtures_dir):
    return (fixtures_dir / "statement_january.csv").read_bytes()


@pytest.fixture
def descending(fixtures_dir):
    return (fixtures_dir / "statement_descending.csv").read_bytes()


def test_preview(import_service, january):
    """Test the preview of a debit/credit statement."""
    preview = import_service.preview(january, "csv")
    assert preview.table.headers == ["Date", "Description", "Debit", "Credit", "Balance", "Reference"]
    assert preview.date_format.format == "dd/mm/yyyy"
    assert preview.metadata.end_date == date(2024, 1, 15)
    assert [m.role for m in preview.suggested_mappings] == [
        "date", "description", "debit", "credit", "balance", "reference",
    ]


def test_import_creates_transactions_and_checkpoint(import_service, temp_db, sample_account, january):
    """Test a clean import that reconciles against its balance column."""
    result = _import(import_service, sample_account.id, january, statement_end_date=date(2024, 1, 15))

    assert result.batch.status == BATCH_COMPLETED
    assert result.total_rows == 4
    assert result.successful_count == 4
    assert result.errors == []
    assert not result.is_descending
    assert result.sequences_renumbered

    transactions = temp_db.list_transactions(sample_account.id)
    assert [t.sequence for t in transactions] == [1, 2, 3, 4]
    assert transactions[1].debit_amount == Decimal("200000")
    assert transactions[1].bank_reference == "FT24005001"
    assert all(t.batch_id == result.batch.id for t in transactions)
    assert all(t.source_file_name == "statement.csv" for t in transactions)

    checkpoint = result.checkpoint.checkpoint
    assert checkpoint.checkpoint_date == date(2024, 1, 15)
    assert checkpoint.declared_balance == Decimal("3650000")
    assert checkpoint.is_reconciled
    assert checkpoint.batch_id == result.batch.id
    assert checkpoint.notes == "Imported from statement.csv"


def test_reimport_is_idempotent(import_service, checkpoint_service, temp_db, sample_account, january):
    """Test that importing the same statement twice adds nothing."""
    first = _import(import_service, sample_account.id, january, statement_end_date=date(2024, 1, 15))
    second = _import(import_service, sample_account.id, january, statement_end_date=date(2024, 1, 15))

    assert second.batch.status == BATCH_COMPLETED
    assert second.successful_count == 0
    assert len(second.duplicate_warnings) == 4
    assert second.batch.duplicate_count == 4
    assert second.batch.error_log["duplicates"] == 4
    assert len(temp_db.list_transactions(sample_account.id)) == 4

    checkpoints = checkpoint_service.list_checkpoints(sample_account.id)
    assert len(checkpoints) == 1
    assert checkpoints[0].is_reconciled
    # The first batch keeps ownership of the checkpoint
    assert checkpoints[0].batch_id == first.batch.id


def test_descending_statement(import_service, checkpoint_service, temp_db, sample_account, descending):
    """Test a newest-first statement with a signed amount column."""
    result = _import(import_service, sample_account.id, descending, statement_end_date=date(2024, 2, 20))

    assert result.is_descending
    assert result.batch.error_log["is_descending"] is True
    transactions = temp_db.list_transactions(sample_account.id, include_adjustments=False)
    assert [(t.date, t.description) for t in transactions] == [
        (date(2024, 2, 12), "Top up"),
        (date(2024, 2, 20), "Coffee"),
    ]
    assert transactions[0].credit_amount == Decimal("500000")
    assert transactions[1].debit_amount == Decimal("45000")

    # The statement opens at 500,000 which the account has never seen
    checkpoint = result.checkpoint.checkpoint
    assert checkpoint.declared_balance == Decimal("955000")
    assert checkpoint.calculated_balance == Decimal("455000")
    assert checkpoint.adjustment_amount == Decimal("500000")
    assert len(checkpoint_service.list_adjustments(sample_account.id)) == 1


def test_row_errors_do_not_stop_import(import_service, temp_db, sample_account):
    """Test that bad rows are reported and the rest imported."""
    data = csv_bytes(
        [
            "Date,Description,Amount",
            "15/01/2024,Coffee,-45000",
            "not a date,Broken,-1",
            "16/01/2024,Salary,3000000",
            "16/01/2024,Salary,3000000",
        ]
    )
    mappings = [
        ColumnMapping("Date", "date", date_format="dd/mm/yyyy"),
        ColumnMapping("Description", "description"),
        ColumnMapping("Amount", "signed_amount"),
    ]
    result = import_service.import_statement(sample_account.id, data, "s.csv", "csv", mappings)

    assert result.batch.status == BATCH_COMPLETED
    assert result.successful_count == 2
    assert [(e.row_number, e.message) for e in result.errors] == [
        (3, "invalid date 'not a date'"),
        (5, "duplicate transaction (skipped)"),
    ]
    assert result.batch.failed_count == 2
    assert result.batch.error_log["errors"][0] == {"row_number": 3, "error": "invalid date 'not a date'"}


def test_all_rows_failing_marks_batch_failed(import_service, checkpoint_service, sample_account):
    """Test that a batch with only bad rows fails without a checkpoint."""
    data = csv_bytes(["Date,Amount", "bad,1", "worse,2"])
    mappings = [ColumnMapping("Date", "date"), ColumnMapping("Amount", "signed_amount")]
    result = import_service.import_statement(
        sample_account.id,
        data,
        "s.csv",
        "csv",
        mappings,
        statement_end_date=date(2024, 1, 31),
        ending_balance=Decimal("100"),
    )

    assert result.batch.status == BATCH_FAILED
    assert result.successful_count == 0
    assert result.checkpoint is None
    assert checkpoint_service.list_checkpoints(sample_account.id) == []


def test_statement_period_filter(import_service, temp_db, sample_account, january):
    """Test that rows outside the statement period are skipped."""
    result = _import(
        import_service,
        sample_account.id,
        january,
        statement_start_date=date(2024, 1, 5),
        statement_end_date=date(2024, 1, 10),
    )

    assert result.out_of_range_count == 2
    assert result.successful_count == 2
    assert result.batch.error_log["out_of_range"] == 2
    # Balance column on the end date: 3,800,000 against 2,800,000 imported
    assert result.checkpoint.checkpoint.declared_balance == Decimal("3800000")
    assert result.checkpoint.checkpoint.adjustment_amount == Decimal("1000000")


def test_ending_balance_without_balance_column(import_service, sample_account):
    """Test declaring the given ending balance when no balance column is mapped."""
    data = csv_bytes(["Date,Amount", "15/01/2024,-45000", "16/01/2024,100000"])
    mappings = [ColumnMapping("Date", "date"), ColumnMapping("Amount", "signed_amount")]
    result = import_service.import_statement(
        sample_account.id,
        data,
        "s.csv",
        "csv",
        mappings,
        statement_end_date=date(2024, 1, 16),
        ending_balance=Decimal("55000"),
    )

    assert result.checkpoint.checkpoint.declared_balance == Decimal("55000")
    assert result.checkpoint.checkpoint.is_reconciled


def test_balance_column_wins_over_ending_balance(import_service, sample_account, january):
    """Test that the statement's own balance is declared when both are known."""
    result = _import(
        import_service,
        sample_account.id,
        january,
        statement_end_date=date(2024, 1, 15),
        ending_balance=Decimal("1"),
    )
    assert result.checkpoint.checkpoint.declared_balance == Decimal("3650000")


def test_no_checkpoint_without_end_date(import_service, checkpoint_service, sample_account, january):
    """Test that no checkpoint is declared unless a period end is given."""
    result = _import(import_service, sample_account.id, january)
    assert result.checkpoint is None
    assert checkpoint_service.list_checkpoints(sample_account.id) == []


def test_import_recalculates_existing_checkpoints(import_service, checkpoint_service, sample_account, january):
    """Test that a later import cascades into checkpoints it precedes."""
    checkpoint_service.create_or_update_checkpoint(sample_account.id, date(2024, 1, 31), Decimal("3650000"))
    assert not checkpoint_service.list_checkpoints(sample_account.id)[0].is_reconciled

    _import(import_service, sample_account.id, january)
    assert checkpoint_service.list_checkpoints(sample_account.id)[0].is_reconciled


def test_import_config_is_saved(import_service, account_service, sample_account, january):
    """Test that a completed import remembers its mapping."""
    options = ImportOptions(date_format="dd/mm/yyyy", has_negative_debits=False)
    _import(import_service, sample_account.id, january, options=options)

    config = account_service.get_import_config(sample_account.id)
    assert config["date_format"] == "dd/mm/yyyy"
    assert config["has_negative_debits"] is False
    assert config["column_mappings"][0]["source_column"] == "Date"
    assert "last_import_date" in config


def test_import_config_needs_an_inserted_row(import_service, account_service, sample_account, january):
    """Test that an import which stores nothing leaves the saved mapping alone."""
    result = _import(import_service, sample_account.id, january, statement_start_date=date(2025, 1, 1))

    assert result.batch.status == BATCH_COMPLETED
    assert result.successful_count == 0
    assert result.out_of_range_count == 4
    assert account_service.get_import_config(sample_account.id) is None


def test_build_import_config():
    """Test the saved configuration layout."""
    config = build_import_config([ColumnMapping("Date", "date")], ImportOptions())
    assert config["column_mappings"] == [
        {"source_column": "Date", "role": "date", "date_format": None, "is_negative_debit": None}
    ]
    assert config["has_negative_debits"] is True


def test_xlsx_import(import_service, temp_db, sample_account):
    """Test importing a spreadsheet with a title row."""
    data = xlsx_bytes(
        [
            ["Sao kê tài khoản", None, None, None],
            ["Ngày", "Nội dung", "Ghi nợ", "Ghi có"],
            ["01/03/2024", "Chuyển khoản", None, 500000],
            ["02/03/2024", "Siêu thị", 120000, None],
        ],
        merges=["A1:D1"],
    )
    result = _import(import_service, sample_account.id, data, file_name="sao_ke.xlsx", kind="xlsx")

    assert result.successful_count == 2
    transactions = temp_db.list_transactions(sample_account.id)
    assert transactions[0].credit_amount == Decimal("500000")
    assert transactions[1].debit_amount == Decimal("120000")


def test_unknown_account(import_service, january):
    """Test importing into an account that does not exist."""
    with pytest.raises(NotFoundError):
        _import(import_service, 999, january)


def test_mapping_without_amount_is_rejected(import_service, temp_db, sample_account, january):
    """Test that an unusable mapping fails before a batch is created."""
    with pytest.raises(FileFormatError):
        import_service.import_statement(
            sample_account.id, january, "s.csv", "csv", [ColumnMapping("Date", "date")]
        )
    assert temp_db.list_import_batches(sample_account.id) == []


def test_mapping_with_missing_column_is_rejected(import_service, sample_account, january):
    """Test that mapped columns must exist in the file."""
    mappings = [ColumnMapping("Date", "date"), ColumnMapping("Amount", "signed_amount")]
    with pytest.raises(FileFormatError, match="Amount"):
        import_service.import_statement(sample_account.id, january, "s.csv", "csv", mappings)


def _fail_on_call(monkeypatch, db, failing_call):
    """Make the n-th insert_transactions call fail."""
    original = db.insert_transactions
    calls = {"count": 0}

    def insert(transactions):
        calls["count"] += 1
        if calls["count"] == failing_call:
            raise PersistenceError("disk I/O error")
        return original(transactions)

    monkeypatch.setattr(db, "insert_transactions", insert)


def test_chunk_failure_keeps_earlier_chunks(
    import_service, checkpoint_service, temp_db, sample_account, january, monkeypatch
):
    """Test that a failing chunk marks the batch failed with an accurate count."""
    checkpoint_service.create_or_update_checkpoint(sample_account.id, date(2024, 1, 31), Decimal("0"))
    _fail_on_call(monkeypatch, temp_db, 2)

    with pytest.raises(PersistenceError) as exc_info:
        _import(import_service, sample_account.id, january, options=ImportOptions(chunk_size=2))

    error = exc_info.value
    assert error.inserted_count == 2
    assert "chunk 2/2" in str(error)

    batch = temp_db.get_import_batch(error.batch_id)
    assert batch.status == BATCH_FAILED
    assert batch.successful_count == 2
    assert batch.failed_count == 2
    assert "disk I/O error" in batch.error_log["persistence_error"]
    assert len(temp_db.list_transactions(sample_account.id)) == 3

    # The committed chunk moves the later checkpoint: 1,000,000 - 200,000
    checkpoint = checkpoint_service.list_checkpoints(sample_account.id)[0]
    assert checkpoint.calculated_balance == Decimal("800000.00")
    assert checkpoint.adjustment_amount == Decimal("-800000.00")
    stored = [t for t in temp_db.list_transactions(sample_account.id) if not t.is_balance_adjustment]
    assert [t.sequence for t in stored] == [1, 2]


def test_atomic_chunk_failure_inserts_nothing(import_service, temp_db, sample_account, january, monkeypatch):
    """Test that atomic mode rolls back every chunk."""
    _fail_on_call(monkeypatch, temp_db, 2)

    with pytest.raises(PersistenceError) as exc_info:
        _import(import_service, sample_account.id, january, options=ImportOptions(chunk_size=2, atomic=True))

    assert exc_info.value.inserted_count == 0
    batch = temp_db.get_import_batch(exc_info.value.batch_id)
    assert batch.status == BATCH_FAILED
    assert batch.successful_count == 0
    assert temp_db.list_transactions(sample_account.id) == []


def test_atomic_import_succeeds(import_service, temp_db, sample_account, january):
    """Test that atomic mode imports normally when nothing fails."""
    result = _import(import_service, sample_account.id, january, options=ImportOptions(chunk_size=1, atomic=True))
    assert result.successful_count == 4
    assert len(temp_db.list_transactions(sample_account.id)) == 4
