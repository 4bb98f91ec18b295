"""Shared pytest fixtures for bankrecon tests."""

import tempfile
import os
from io import BytesIO
from pathlib import Path
import pytest
from openpyxl import Workbook

from bankrecon.database.factories import create_sqlite_database
from bankrecon.domain.account import AccountService
from bankrecon.domain.checkpoint import CheckpointService
from bankrecon.domain.rollback import RollbackService
from bankrecon.domain.statement_import import StatementImportService
from bankrecon.domain.transaction import TransactionService


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    # Create a temporary file for the database
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    # Create database
    db = create_sqlite_database(database_path=db_path)
    # Store the path for tests that need it
    db.database_path = db_path
    db.connect()
    db.initialize_schema()

    yield db

    # Cleanup
    db.disconnect()
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def account_service(temp_db):
    """Create an AccountService with a temporary database."""
    return AccountService(temp_db)


@pytest.fixture
def transaction_service(temp_db):
    """Create a TransactionService with a temporary database."""
    return TransactionService(temp_db)


@pytest.fixture
def checkpoint_service(temp_db):
    """Create a CheckpointService with a temporary database."""
    return CheckpointService(temp_db)


@pytest.fixture
def import_service(temp_db):
    """Create a StatementImportService with a temporary database."""
    return StatementImportService(temp_db)


@pytest.fixture
def rollback_service(temp_db):
    """Create a RollbackService with a temporary database."""
    return RollbackService(temp_db)


@pytest.fixture
def sample_account(account_service):
    """Create a sample account for testing."""
    account_id = account_service.create_account(name="Test Account", bank_name="Test Bank")
    return account_service.get_account(account_id)


def csv_bytes(lines: list[str]) -> bytes:
    """Encode CSV lines as a UTF-8 file body."""
    return ("\n".join(lines) + "\n").encode("utf-8")


def xlsx_bytes(rows: list[list], merges: list[str] = ()) -> bytes:
    """Build an in-memory workbook with one sheet holding the given rows."""
    workbook = Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(row)
    for cell_range in merges:
        sheet.merge_cells(cell_range)
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()


@pytest.fixture
def fixtures_dir():
    """Return the path to the test fixtures directory."""
    return Path(__file__).parent / "fixtures"
