"""Import batch commands."""

import click
from bankrecon.cli.account_resolution import resolve_optional_account
from bankrecon.cli.error_handling import handle_domain_error
from bankrecon.database.base import Database
from bankrecon.domain.account import AccountService
from bankrecon.domain.errors import DomainError, batch_not_found
from bankrecon.domain.rollback import DEFAULT_ROLLBACK_REASON, RollbackService


@click.group()
def batch_group():
    """Review and roll back import batches."""
    pass


@batch_group.command("list")
@click.option("--account", help="Account name or ID")
@click.pass_context
def list_batches(ctx, account: str | None):
    """List import batches, newest first."""
    db: Database = ctx.obj["db"]
    account_id = resolve_optional_account(ctx, AccountService(db), account)

    batches = db.list_import_batches(account_id)
    if not batches:
        click.echo("No import batches found.")
        return

    click.echo(f"\n{'ID':>4} | {'Account':>7} | {'Status':11} | {'Rows':>5} | {'OK':>5} | {'Fail':>5} | {'Dup':>5} | File")
    click.echo("-" * 80)
    for b in batches:
        click.echo(
            f"{b.id:4d} | {b.account_id:7d} | {b.status:11} | {b.total_rows:5d} | "
            f"{b.successful_count:5d} | {b.failed_count:5d} | {b.duplicate_count:5d} | {b.file_name}"
        )


@batch_group.command("show")
@click.argument("batch_id", type=int)
@click.pass_context
def show_batch(ctx, batch_id: int):
    """Show a batch with its error log."""
    db: Database = ctx.obj["db"]
    batch = db.get_import_batch(batch_id)
    if batch is None:
        click.echo(f"Error: {batch_not_found(batch_id)}", err=True)
        ctx.exit(1)

    click.echo(f"Batch {batch.id}: {batch.file_name}")
    click.echo(f"  Account: {batch.account_id}")
    click.echo(f"  Status: {batch.status}")
    click.echo(f"  Created: {batch.created_at:%Y-%m-%d %H:%M:%S}")
    click.echo(
        f"  Rows: {batch.total_rows} (imported {batch.successful_count}, "
        f"failed {batch.failed_count}, duplicates {batch.duplicate_count})"
    )

    log = batch.error_log or {}
    if log.get("is_descending"):
        click.echo("  Statement was newest-first")
    if log.get("out_of_range"):
        click.echo(f"  Outside statement period: {log['out_of_range']}")
    if log.get("persistence_error"):
        click.echo(f"  Insert failure: {log['persistence_error']}")
    for error in log.get("errors", []):
        click.echo(f"  Row {error['row_number']}: {error['error']}")
    for duplicate in log.get("duplicate_details", []):
        imported = duplicate["imported"]
        click.echo(
            f"  Duplicate row {imported['row_number']}: {imported['date']} "
            f"{imported.get('description') or ''} matches transaction {duplicate['existing']['transaction_id']}"
        )
    rollback = log.get("rollback")
    if rollback:
        click.echo(f"  Rolled back at {rollback['rolled_back_at']}: {rollback['reason']}")


@batch_group.command("rollback")
@click.argument("batch_id", type=int)
@click.option("--reason", default=DEFAULT_ROLLBACK_REASON, show_default=True, help="Reason for the audit log")
@click.confirmation_option(prompt="Delete every transaction and checkpoint this batch imported?")
@click.pass_context
def rollback_batch(ctx, batch_id: int, reason: str):
    """Undo an import batch."""
    db = ctx.obj["db"]
    service = RollbackService(db)

    try:
        result = service.rollback_batch(batch_id, reason=reason)
    except DomainError as e:
        handle_domain_error(ctx, e)

    click.echo(f"Rolled back batch {result.batch_id}")
    click.echo(f"  Transactions deleted: {result.transactions_deleted}")
    click.echo(f"  Checkpoints deleted: {result.checkpoints_deleted}")
    click.echo(f"  {result.recalculation.message}")


def register_commands(cli):
    """Register batch commands with main CLI."""
    cli.add_command(batch_group, name="batch")
