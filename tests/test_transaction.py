"""Tests for manual transactions and transaction commands."""

import pytest
from contextlib import contextmanager
from datetime import date
from decimal import Decimal

from bankrecon.cli.main import cli
from bankrecon.domain.errors import NotFoundError, ValidationError
from bankrecon.domain.locks import account_lock
from bankrecon.domain.transaction import validate_amounts


class TestValidateAmounts:
    """Tests for the one-sided amount rule."""

    def test_debit_only(self):
        validate_amounts(Decimal("1"), None)

    def test_credit_only(self):
        validate_amounts(None, Decimal("1"))

    @pytest.mark.parametrize(
        "debit, credit",
        [(None, None), (Decimal("1"), Decimal("1")), (Decimal("0"), None), (None, Decimal("-5"))],
    )
    def test_invalid(self, debit, credit):
        with pytest.raises(ValidationError):
            validate_amounts(debit, credit)


class TestTransactionService:
    """Tests for TransactionService."""

    def test_create_transaction(self, transaction_service, sample_account):
        """Test creating a manual transaction."""
        txn_id = transaction_service.create_transaction(
            sample_account.id,
            date(2024, 1, 15),
            debit_amount=Decimal("50000"),
            description="Coffee",
            bank_reference="R1",
            branch="Hanoi",
        )
        txn = transaction_service.get_transaction(txn_id)
        assert txn.debit_amount == Decimal("50000")
        assert txn.credit_amount is None
        assert txn.signed_amount == Decimal("-50000")
        assert txn.unique_id.startswith(f"MANUAL-{sample_account.id}-")
        assert txn.batch_id is None
        assert txn.sequence == 1
        assert not txn.is_balance_adjustment

    def test_create_for_missing_account(self, transaction_service):
        """Test creating a transaction on an unknown account."""
        with pytest.raises(NotFoundError):
            transaction_service.create_transaction(999, date(2024, 1, 15), debit_amount=Decimal("1"))

    def test_create_rejects_two_sided_amount(self, transaction_service, sample_account):
        """Test that a transaction cannot be both debit and credit."""
        with pytest.raises(ValidationError):
            transaction_service.create_transaction(
                sample_account.id, date(2024, 1, 15), debit_amount=Decimal("1"), credit_amount=Decimal("1")
            )

    def test_sequences_follow_dates(self, transaction_service, sample_account):
        """Test that sequences are renumbered chronologically after each change."""
        later = transaction_service.create_transaction(
            sample_account.id, date(2024, 1, 20), debit_amount=Decimal("1")
        )
        earlier = transaction_service.create_transaction(
            sample_account.id, date(2024, 1, 10), debit_amount=Decimal("2")
        )
        assert transaction_service.get_transaction(earlier).sequence == 1
        assert transaction_service.get_transaction(later).sequence == 2

    def test_update_transaction(self, transaction_service, sample_account):
        """Test updating fields and switching sides."""
        txn_id = transaction_service.create_transaction(
            sample_account.id, date(2024, 1, 15), debit_amount=Decimal("50000"), description="Coffee"
        )
        transaction_service.update_transaction(
            txn_id, date=date(2024, 1, 16), credit_amount=Decimal("70000"), description="Refund"
        )
        txn = transaction_service.get_transaction(txn_id)
        assert txn.date == date(2024, 1, 16)
        assert txn.description == "Refund"
        assert txn.debit_amount is None
        assert txn.credit_amount == Decimal("70000")

    def test_update_keeps_amounts_when_not_given(self, transaction_service, sample_account):
        """Test that omitted amounts stay unchanged."""
        txn_id = transaction_service.create_transaction(
            sample_account.id, date(2024, 1, 15), debit_amount=Decimal("50000")
        )
        transaction_service.update_transaction(txn_id, description="Coffee")
        assert transaction_service.get_transaction(txn_id).debit_amount == Decimal("50000")

    def test_update_missing_transaction(self, transaction_service):
        """Test updating a transaction that does not exist."""
        with pytest.raises(NotFoundError):
            transaction_service.update_transaction(999, description="x")

    def test_delete_transaction(self, transaction_service, sample_account):
        """Test deleting a transaction."""
        txn_id = transaction_service.create_transaction(
            sample_account.id, date(2024, 1, 15), debit_amount=Decimal("1")
        )
        transaction_service.delete_transaction(txn_id)
        assert transaction_service.get_transaction(txn_id) is None

    def test_running_balance(self, transaction_service, sample_account):
        """Test balances after each transaction and date filtering."""
        transaction_service.create_transaction(sample_account.id, date(2024, 1, 1), credit_amount=Decimal("100"))
        transaction_service.create_transaction(sample_account.id, date(2024, 1, 2), debit_amount=Decimal("30"))
        transaction_service.create_transaction(sample_account.id, date(2024, 1, 3), debit_amount=Decimal("20"))

        rows = transaction_service.running_balance(sample_account.id)
        assert [balance for _, balance in rows] == [Decimal("100"), Decimal("70"), Decimal("50")]

        rows = transaction_service.running_balance(sample_account.id, start_date=date(2024, 1, 2))
        assert [balance for _, balance in rows] == [Decimal("70"), Decimal("50")]

        rows = transaction_service.running_balance(sample_account.id, end_date=date(2024, 1, 2))
        assert [balance for _, balance in rows] == [Decimal("100"), Decimal("70")]

    def test_changes_hold_the_account_lock(self, transaction_service, sample_account, monkeypatch):
        """Test that manual changes take the same per-account lock as imports."""
        held = []

        @contextmanager
        def recording_lock(account_id):
            held.append(account_id)
            with account_lock(account_id):
                yield

        monkeypatch.setattr("bankrecon.domain.transaction.account_lock", recording_lock)
        txn_id = transaction_service.create_transaction(
            sample_account.id, date(2024, 1, 15), debit_amount=Decimal("10")
        )
        transaction_service.update_transaction(txn_id, description="Lunch")
        transaction_service.delete_transaction(txn_id)

        assert held == [sample_account.id] * 3
        assert not account_lock(sample_account.id).locked()


def test_add_transaction_command(cli_runner, temp_db, sample_account):
    """Test adding a transaction from the command line."""
    result = cli_runner.invoke(
        cli,
        [
            "--db-path",
            temp_db.database_path,
            "transaction",
            "add",
            "--account",
            "Test Account",
            "--date",
            "2024-01-15",
            "--amount=-50000",
            "--description",
            "Coffee",
        ],
    )

    assert result.exit_code == 0
    assert "Created transaction" in result.output


def test_add_transaction_invalid_amount(cli_runner, temp_db, sample_account):
    """Test that an unparseable amount is reported."""
    result = cli_runner.invoke(
        cli,
        [
            "--db-path",
            temp_db.database_path,
            "transaction",
            "add",
            "--account",
            str(sample_account.id),
            "--date",
            "2024-01-15",
            "--amount",
            "lots",
        ],
    )

    assert result.exit_code == 1
    assert "Invalid amount" in result.output


def test_add_transaction_unknown_account(cli_runner, temp_db):
    """Test that an unknown account is reported."""
    result = cli_runner.invoke(
        cli,
        [
            "--db-path",
            temp_db.database_path,
            "transaction",
            "add",
            "--account",
            "Nope",
            "--date",
            "2024-01-15",
            "--amount",
            "100",
        ],
    )

    assert result.exit_code == 1
    assert "not found" in result.output


def test_list_transactions_command(cli_runner, temp_db, sample_account, transaction_service):
    """Test listing transactions with running balances."""
    transaction_service.create_transaction(
        sample_account.id, date(2024, 1, 1), credit_amount=Decimal("1000000"), description="Deposit"
    )
    transaction_service.create_transaction(
        sample_account.id, date(2024, 1, 2), debit_amount=Decimal("250000"), description="Groceries"
    )

    result = cli_runner.invoke(
        cli,
        ["--db-path", temp_db.database_path, "transaction", "list", "--account", "Test Account"],
    )

    assert result.exit_code == 0
    assert "Found 2 transaction(s)" in result.output
    assert "Groceries" in result.output
    assert "750,000" in result.output


def test_delete_transaction_command(cli_runner, temp_db, sample_account, transaction_service):
    """Test deleting a transaction with confirmation skipped."""
    txn_id = transaction_service.create_transaction(
        sample_account.id, date(2024, 1, 1), credit_amount=Decimal("10")
    )

    result = cli_runner.invoke(
        cli,
        ["--db-path", temp_db.database_path, "transaction", "delete", str(txn_id), "--yes"],
    )

    assert result.exit_code == 0
    assert f"Deleted transaction {txn_id}" in result.output
