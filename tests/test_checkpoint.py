"""Tests for balance checkpoints and the recalculation cascade."""

import pytest
from datetime import date
from decimal import Decimal

from bankrecon.cli.main import cli
from bankrecon.domain.checkpoint import ADJUSTMENT_DESCRIPTION, adjustment_unique_id, is_reconciled
from bankrecon.domain.errors import CheckpointNotFoundError, NotFoundError, ValidationError


@pytest.fixture
def funded_account(sample_account, transaction_service):
    """Account with a 1,000,000 deposit on Jan 1 and a 200,000 debit on Jan 5."""
    transaction_service.create_transaction(
        sample_account.id, date(2024, 1, 1), credit_amount=Decimal("1000000"), description="Deposit"
    )
    transaction_service.create_transaction(
        sample_account.id, date(2024, 1, 5), debit_amount=Decimal("200000"), description="ATM"
    )
    return sample_account


def test_is_reconciled_threshold():
    """Test the one-cent reconciliation threshold."""
    assert is_reconciled(Decimal("0"))
    assert is_reconciled(Decimal("0.009"))
    assert not is_reconciled(Decimal("0.01"))
    assert not is_reconciled(Decimal("-0.01"))


def test_calculate_balance(checkpoint_service, funded_account):
    """Test replaying transactions up to the end of a day."""
    assert checkpoint_service.calculate_balance(funded_account.id, date(2024, 1, 4)) == Decimal("1000000")
    assert checkpoint_service.calculate_balance(funded_account.id, date(2024, 1, 5)) == Decimal("800000")


def test_matching_checkpoint_is_reconciled(checkpoint_service, funded_account):
    """Test a declaration equal to the calculated balance."""
    result = checkpoint_service.create_or_update_checkpoint(funded_account.id, date(2024, 1, 10), Decimal("800000"))
    cp = result.checkpoint
    assert cp.is_reconciled
    assert cp.calculated_balance == Decimal("800000")
    assert cp.adjustment_amount == Decimal("0")
    assert checkpoint_service.list_adjustments(funded_account.id) == []


def test_mismatch_books_adjustment(checkpoint_service, transaction_service, funded_account):
    """Test that a higher declared balance books a credit adjustment."""
    result = checkpoint_service.create_or_update_checkpoint(funded_account.id, date(2024, 1, 10), Decimal("850000"))
    cp = result.checkpoint
    assert not cp.is_reconciled
    assert cp.adjustment_amount == Decimal("50000")
    assert cp.closing_balance == Decimal("850000")

    adjustments = checkpoint_service.list_adjustments(funded_account.id)
    assert len(adjustments) == 1
    adjustment = adjustments[0]
    assert adjustment.credit_amount == Decimal("50000")
    assert adjustment.debit_amount is None
    assert adjustment.date == date(2024, 1, 10)
    assert adjustment.description == ADJUSTMENT_DESCRIPTION
    assert adjustment.unique_id == adjustment_unique_id(cp.id)
    assert adjustment.checkpoint_id == cp.id

    # The running balance agrees with the declaration
    rows = transaction_service.running_balance(funded_account.id)
    assert rows[-1][1] == Decimal("850000")


def test_lower_declared_balance_books_debit(checkpoint_service, funded_account):
    """Test that a lower declared balance books a debit adjustment."""
    checkpoint_service.create_or_update_checkpoint(funded_account.id, date(2024, 1, 10), Decimal("790000"))
    adjustment = checkpoint_service.list_adjustments(funded_account.id)[0]
    assert adjustment.debit_amount == Decimal("10000")
    assert adjustment.credit_amount is None


def test_same_date_updates_checkpoint(checkpoint_service, funded_account):
    """Test that redeclaring a date updates the checkpoint and its adjustment."""
    first = checkpoint_service.create_or_update_checkpoint(funded_account.id, date(2024, 1, 10), Decimal("850000"))
    second = checkpoint_service.create_or_update_checkpoint(funded_account.id, date(2024, 1, 10), Decimal("870000"))
    assert second.checkpoint.id == first.checkpoint.id
    assert len(checkpoint_service.list_checkpoints(funded_account.id)) == 1
    adjustments = checkpoint_service.list_adjustments(funded_account.id)
    assert len(adjustments) == 1
    assert adjustments[0].credit_amount == Decimal("70000")

    third = checkpoint_service.create_or_update_checkpoint(funded_account.id, date(2024, 1, 10), Decimal("800000"))
    assert third.checkpoint.is_reconciled
    assert checkpoint_service.list_adjustments(funded_account.id) == []


def test_checkpoint_opens_from_previous_reconciled_checkpoint(checkpoint_service, transaction_service, funded_account):
    """Test that a later checkpoint starts from the last reconciled one's calculated balance."""
    checkpoint_service.create_or_update_checkpoint(funded_account.id, date(2024, 1, 10), Decimal("800000"))
    transaction_service.create_transaction(
        funded_account.id, date(2024, 1, 15), debit_amount=Decimal("100000"), description="Rent"
    )
    result = checkpoint_service.create_or_update_checkpoint(funded_account.id, date(2024, 1, 20), Decimal("700000"))
    assert result.checkpoint.calculated_balance == Decimal("700000")
    assert result.checkpoint.is_reconciled


def test_unreconciled_checkpoint_does_not_open_later_ones(checkpoint_service, sample_account):
    """Test that an adjusted checkpoint is skipped when replaying the next one."""
    first = checkpoint_service.create_or_update_checkpoint(sample_account.id, date(2024, 1, 1), Decimal("100"))
    assert first.checkpoint.adjustment_amount == Decimal("100")

    second = checkpoint_service.create_or_update_checkpoint(sample_account.id, date(2024, 1, 10), Decimal("100"))
    assert second.checkpoint.calculated_balance == Decimal("0")
    assert second.checkpoint.adjustment_amount == Decimal("100")
    assert not second.checkpoint.is_reconciled
    assert len(checkpoint_service.list_adjustments(sample_account.id)) == 2


def test_running_balance_across_adjusted_checkpoints(checkpoint_service, transaction_service, funded_account):
    """Test that each adjustment restates the difference instead of stacking."""
    checkpoint_service.create_or_update_checkpoint(funded_account.id, date(2024, 1, 10), Decimal("850000"))
    transaction_service.create_transaction(
        funded_account.id, date(2024, 1, 15), debit_amount=Decimal("100000"), description="Rent"
    )
    result = checkpoint_service.create_or_update_checkpoint(funded_account.id, date(2024, 1, 20), Decimal("760000"))
    assert result.checkpoint.calculated_balance == Decimal("700000")
    assert result.checkpoint.adjustment_amount == Decimal("60000")

    balances = [balance for _, balance in transaction_service.running_balance(funded_account.id)]
    assert balances == [
        Decimal("1000000"),
        Decimal("800000"),
        Decimal("850000"),
        Decimal("750000"),
        Decimal("760000"),
    ]


def test_transaction_between_checkpoints_moves_only_the_later_one(
    checkpoint_service, transaction_service, funded_account
):
    """Test that a transaction after the first checkpoint shifts the second by its amount."""
    cp1 = checkpoint_service.create_or_update_checkpoint(
        funded_account.id, date(2024, 1, 10), Decimal("800000")
    ).checkpoint
    cp2 = checkpoint_service.create_or_update_checkpoint(
        funded_account.id, date(2024, 1, 20), Decimal("800000")
    ).checkpoint
    assert cp2.is_reconciled

    transaction_service.create_transaction(
        funded_account.id, date(2024, 1, 15), debit_amount=Decimal("75000.50"), description="Rent"
    )

    after1 = checkpoint_service.get_checkpoint(cp1.id)
    after2 = checkpoint_service.get_checkpoint(cp2.id)
    assert after1.calculated_balance == cp1.calculated_balance
    assert after1.is_reconciled
    assert after2.calculated_balance - cp2.calculated_balance == Decimal("-75000.50")
    assert after2.adjustment_amount == Decimal("75000.50")
    assert not after2.is_reconciled


def test_cascade_after_backdated_transaction(checkpoint_service, transaction_service, funded_account):
    """Test that a transaction before a checkpoint recalculates it and every later one."""
    cp1 = checkpoint_service.create_or_update_checkpoint(
        funded_account.id, date(2024, 1, 10), Decimal("850000")
    ).checkpoint
    transaction_service.create_transaction(
        funded_account.id, date(2024, 1, 15), debit_amount=Decimal("100000"), description="Rent"
    )
    cp2 = checkpoint_service.create_or_update_checkpoint(
        funded_account.id, date(2024, 1, 20), Decimal("750000")
    ).checkpoint
    assert cp2.adjustment_amount == Decimal("50000")

    # The missing deposit shows up
    txn_id = transaction_service.create_transaction(
        funded_account.id, date(2024, 1, 3), credit_amount=Decimal("50000"), description="Refund"
    )
    cp1 = checkpoint_service.get_checkpoint(cp1.id)
    cp2 = checkpoint_service.get_checkpoint(cp2.id)
    assert cp1.is_reconciled
    assert cp1.calculated_balance == Decimal("850000")
    assert cp2.is_reconciled
    assert checkpoint_service.list_adjustments(funded_account.id) == []

    # And disappears again
    transaction_service.delete_transaction(txn_id)
    cp1 = checkpoint_service.get_checkpoint(cp1.id)
    cp2 = checkpoint_service.get_checkpoint(cp2.id)
    assert cp1.adjustment_amount == Decimal("50000")
    assert cp2.adjustment_amount == Decimal("50000")
    assert len(checkpoint_service.list_adjustments(funded_account.id)) == 2


def test_reconciling_earlier_checkpoint_recalculates_later_ones(checkpoint_service, funded_account):
    """Test that inserting a checkpoint cascades to the ones after it."""
    later = checkpoint_service.create_or_update_checkpoint(
        funded_account.id, date(2024, 1, 20), Decimal("800000")
    ).checkpoint
    assert later.is_reconciled

    result = checkpoint_service.create_or_update_checkpoint(funded_account.id, date(2024, 1, 10), Decimal("900000"))
    assert result.recalculation.checkpoints_recalculated == 1
    later = checkpoint_service.get_checkpoint(later.id)
    # The adjusted earlier checkpoint is not an opening balance
    assert later.calculated_balance == Decimal("800000")
    assert later.is_reconciled

    # Once it reconciles, the later one opens from it
    result = checkpoint_service.create_or_update_checkpoint(funded_account.id, date(2024, 1, 10), Decimal("800000"))
    assert result.checkpoint.is_reconciled
    assert result.recalculation.results[0].checkpoint_id == later.id
    assert result.recalculation.results[0].new_calculated_balance == Decimal("800000")
    assert checkpoint_service.list_adjustments(funded_account.id) == []


def test_delete_checkpoint_removes_adjustment(checkpoint_service, funded_account):
    """Test deleting a checkpoint and its adjustment."""
    cp = checkpoint_service.create_or_update_checkpoint(
        funded_account.id, date(2024, 1, 10), Decimal("850000")
    ).checkpoint
    summary = checkpoint_service.delete_checkpoint(cp.id)
    assert summary.checkpoints_recalculated == 0
    assert checkpoint_service.get_checkpoint(cp.id) is None
    assert checkpoint_service.list_adjustments(funded_account.id) == []


def test_delete_missing_checkpoint(checkpoint_service):
    """Test deleting a checkpoint that does not exist."""
    with pytest.raises(CheckpointNotFoundError):
        checkpoint_service.delete_checkpoint(999)


def test_checkpoint_for_missing_account(checkpoint_service):
    """Test declaring a balance on an unknown account."""
    with pytest.raises(NotFoundError):
        checkpoint_service.create_or_update_checkpoint(999, date(2024, 1, 10), Decimal("1"))


def test_adjustment_is_not_editable(checkpoint_service, transaction_service, funded_account):
    """Test that adjustments can only change through their checkpoint."""
    checkpoint_service.create_or_update_checkpoint(funded_account.id, date(2024, 1, 10), Decimal("850000"))
    adjustment = checkpoint_service.list_adjustments(funded_account.id)[0]
    with pytest.raises(ValidationError):
        transaction_service.delete_transaction(adjustment.id)
    with pytest.raises(ValidationError):
        transaction_service.update_transaction(adjustment.id, description="Changed")


def test_summary(checkpoint_service, funded_account):
    """Test the reconciliation summary."""
    checkpoint_service.create_or_update_checkpoint(funded_account.id, date(2024, 1, 5), Decimal("800000"))
    checkpoint_service.create_or_update_checkpoint(funded_account.id, date(2024, 1, 10), Decimal("850000"))
    summary = checkpoint_service.get_summary(funded_account.id)
    assert summary.total_checkpoints == 2
    assert summary.reconciled_count == 1
    assert summary.unreconciled_count == 1
    assert summary.total_adjustment == Decimal("50000")
    assert summary.earliest_date == date(2024, 1, 5)
    assert summary.latest_date == date(2024, 1, 10)
    assert summary.latest_declared_balance == Decimal("850000")


def test_summary_without_checkpoints(checkpoint_service, sample_account):
    """Test the summary of an account with no checkpoints."""
    summary = checkpoint_service.get_summary(sample_account.id)
    assert summary.total_checkpoints == 0
    assert summary.earliest_date is None


def test_checkpoint_cli(cli_runner, temp_db, funded_account):
    """Test creating, listing, summarizing and deleting checkpoints from the CLI."""
    db_args = ["--db-path", temp_db.database_path]

    result = cli_runner.invoke(
        cli,
        db_args + ["checkpoint", "create", "--account", "Test Account", "--date", "2024-01-10", "--balance", "850000"],
    )
    assert result.exit_code == 0, result.output
    assert "Declared:   850000.00" in result.output
    assert "Calculated: 800000.00" in result.output
    assert "Adjustment: +50000.00" in result.output

    result = cli_runner.invoke(cli, db_args + ["checkpoint", "list", "--account", "Test Account"])
    assert result.exit_code == 0
    assert "2024-01-10" in result.output
    assert "+50000.00" in result.output

    result = cli_runner.invoke(cli, db_args + ["checkpoint", "summary", "--account", "Test Account"])
    assert result.exit_code == 0
    assert "Checkpoints: 1" in result.output
    assert "Unreconciled: 1" in result.output

    checkpoint_id = temp_db.list_checkpoints(funded_account.id)[0].id
    result = cli_runner.invoke(cli, db_args + ["checkpoint", "delete", str(checkpoint_id)])
    assert result.exit_code == 0
    assert f"Deleted checkpoint {checkpoint_id}" in result.output


def test_checkpoint_cli_invalid_balance(cli_runner, temp_db, sample_account):
    """Test that an unparseable balance is rejected."""
    result = cli_runner.invoke(
        cli,
        [
            "--db-path",
            temp_db.database_path,
            "checkpoint",
            "create",
            "--account",
            "Test Account",
            "--date",
            "2024-01-10",
            "--balance",
            "lots",
        ],
    )
    assert result.exit_code == 1
    assert "Invalid balance" in result.output


def test_checkpoint_cli_delete_unknown(cli_runner, temp_db):
    """Test deleting a checkpoint that does not exist."""
    result = cli_runner.invoke(cli, ["--db-path", temp_db.database_path, "checkpoint", "delete", "99"])
    assert result.exit_code == 1
    assert "Checkpoint 99 not found" in result.output
