"""Mapper functions to convert between domain models and SQLAlchemy models.

This layer isolates the conversion logic, so the services never see ORM
instances and the schema can change without touching domain code.
"""

from decimal import Decimal

from bankrecon.domain import entities as domain
from bankrecon.database.models import (
    Account as ORMAccount,
    Transaction as ORMTransaction,
    ImportBatch as ORMImportBatch,
    BalanceCheckpoint as ORMBalanceCheckpoint,
)


def account_to_domain(orm_account: ORMAccount) -> domain.Account:
    """Convert SQLAlchemy Account model to domain Account entity."""
    return domain.Account(
        id=orm_account.id,
        name=orm_account.name,
        bank_name=orm_account.bank_name,
        currency=orm_account.currency,
        created_at=orm_account.created_at,
        last_import_config=orm_account.last_import_config,
    )


def transaction_to_domain(orm_transaction: ORMTransaction) -> domain.Transaction:
    """Convert SQLAlchemy Transaction model to domain Transaction entity."""
    return domain.Transaction(
        id=orm_transaction.id,
        unique_id=orm_transaction.unique_id,
        account_id=orm_transaction.account_id,
        date=orm_transaction.date,
        description=orm_transaction.description,
        debit_amount=orm_transaction.debit_amount,
        credit_amount=orm_transaction.credit_amount,
        balance=orm_transaction.balance,
        bank_reference=orm_transaction.bank_reference,
        branch=orm_transaction.branch,
        sequence=orm_transaction.sequence,
        batch_id=orm_transaction.batch_id,
        source_file_name=orm_transaction.source_file_name,
        is_balance_adjustment=orm_transaction.is_balance_adjustment,
        checkpoint_id=orm_transaction.checkpoint_id,
        created_at=orm_transaction.created_at,
    )


def mapped_transaction_to_orm(mapped: domain.MappedTransaction) -> ORMTransaction:
    """Build a SQLAlchemy Transaction from a mapped statement row."""
    return ORMTransaction(
        unique_id=mapped.unique_id,
        account_id=mapped.account_id,
        date=mapped.date,
        description=mapped.description,
        debit_amount=mapped.debit_amount,
        credit_amount=mapped.credit_amount,
        balance=mapped.balance,
        bank_reference=mapped.bank_reference,
        branch=mapped.branch,
        sequence=mapped.sequence,
        batch_id=mapped.batch_id,
        source_file_name=mapped.source_file_name,
        is_balance_adjustment=False,
    )


def import_batch_to_domain(orm_batch: ORMImportBatch) -> domain.ImportBatch:
    """Convert SQLAlchemy ImportBatch model to domain ImportBatch entity."""
    return domain.ImportBatch(
        id=orm_batch.id,
        account_id=orm_batch.account_id,
        file_name=orm_batch.file_name,
        total_rows=orm_batch.total_rows,
        successful_count=orm_batch.successful_count,
        failed_count=orm_batch.failed_count,
        duplicate_count=orm_batch.duplicate_count,
        status=orm_batch.status,
        error_log=orm_batch.error_log,
        created_at=orm_batch.created_at,
        updated_at=orm_batch.updated_at,
    )


def checkpoint_to_domain(orm_checkpoint: ORMBalanceCheckpoint) -> domain.Checkpoint:
    """Convert SQLAlchemy BalanceCheckpoint model to domain Checkpoint entity."""
    return domain.Checkpoint(
        id=orm_checkpoint.id,
        account_id=orm_checkpoint.account_id,
        checkpoint_date=orm_checkpoint.checkpoint_date,
        declared_balance=orm_checkpoint.declared_balance,
        calculated_balance=orm_checkpoint.calculated_balance or Decimal("0"),
        adjustment_amount=orm_checkpoint.adjustment_amount or Decimal("0"),
        is_reconciled=orm_checkpoint.is_reconciled,
        batch_id=orm_checkpoint.batch_id,
        notes=orm_checkpoint.notes,
        created_at=orm_checkpoint.created_at,
        updated_at=orm_checkpoint.updated_at,
    )
