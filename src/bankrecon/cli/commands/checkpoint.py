"""Balance checkpoint commands."""

import click
from bankrecon.cli.account_resolution import resolve_account_or_exit
from bankrecon.cli.error_handling import handle_domain_error, parse_option
from bankrecon.domain.account import AccountService
from bankrecon.domain.checkpoint import CheckpointService
from bankrecon.domain.entities import RecalculationSummary
from bankrecon.domain.errors import DomainError
from bankrecon.domain.rollback import DEFAULT_ROLLBACK_REASON, RollbackService
from bankrecon.utils.amount_parser import parse_amount
from bankrecon.utils.date_parser import parse_date


@click.group()
def checkpoint_group():
    """Declare and review balance checkpoints."""
    pass


def _echo_recalculation(summary: RecalculationSummary) -> None:
    if summary.checkpoints_recalculated:
        click.echo(summary.message)
        for result in summary.results:
            if result.old_adjustment_amount != result.new_adjustment_amount:
                click.echo(
                    f"  {result.checkpoint_date}: adjustment "
                    f"{result.old_adjustment_amount} -> {result.new_adjustment_amount}"
                )


@checkpoint_group.command("create")
@click.option("--account", required=True, help="Account name or ID")
@click.option("--date", "checkpoint_date", required=True, help="Checkpoint date (end of day)")
@click.option("--balance", required=True, help="Balance reported by the bank")
@click.option("--notes", help="Notes")
@click.pass_context
def create_checkpoint(ctx, account: str, checkpoint_date: str, balance: str, notes: str | None):
    """Declare the balance at the end of a day.

    A checkpoint on the same date is updated instead of duplicated. Any
    difference from the calculated balance is booked as a balance adjustment.

    Examples:
        bankrecon checkpoint create --account "Vietcombank" --date 2024-01-31 --balance 1500000
    """
    db = ctx.obj["db"]
    service = CheckpointService(db)
    account_id = resolve_account_or_exit(ctx, AccountService(db), account)

    day = parse_option(ctx, parse_date, checkpoint_date, "date")
    declared = parse_option(ctx, parse_amount, balance, "balance")
    if declared is None:
        click.echo("Error: Balance is required", err=True)
        ctx.exit(1)

    try:
        result = service.create_or_update_checkpoint(account_id, day, declared, notes=notes)
    except DomainError as e:
        handle_domain_error(ctx, e)

    cp = result.checkpoint
    click.echo(f"Checkpoint {cp.id} on {cp.checkpoint_date}")
    click.echo(f"  Declared:   {cp.declared_balance}")
    click.echo(f"  Calculated: {cp.calculated_balance}")
    if cp.is_reconciled:
        click.echo("  Reconciled")
    else:
        click.echo(f"  Adjustment: {cp.adjustment_amount:+}")
    _echo_recalculation(result.recalculation)


@checkpoint_group.command("list")
@click.option("--account", required=True, help="Account name or ID")
@click.pass_context
def list_checkpoints(ctx, account: str):
    """List an account's checkpoints, oldest first."""
    db = ctx.obj["db"]
    service = CheckpointService(db)
    account_id = resolve_account_or_exit(ctx, AccountService(db), account)

    checkpoints = service.list_checkpoints(account_id)
    if not checkpoints:
        click.echo("No checkpoints found.")
        return

    click.echo(f"\n{'ID':>4} | {'Date':10} | {'Declared':>16} | {'Calculated':>16} | {'Adjustment':>14} | Batch")
    click.echo("-" * 84)
    for cp in checkpoints:
        adjustment = "ok" if cp.is_reconciled else f"{cp.adjustment_amount:+}"
        batch = str(cp.batch_id) if cp.batch_id is not None else "-"
        click.echo(
            f"{cp.id:4d} | {cp.checkpoint_date} | {cp.declared_balance:>16} | "
            f"{cp.calculated_balance:>16} | {adjustment:>14} | {batch}"
        )


@checkpoint_group.command("delete")
@click.argument("checkpoint_id", type=int)
@click.pass_context
def delete_checkpoint(ctx, checkpoint_id: int):
    """Delete a checkpoint and its balance adjustment."""
    db = ctx.obj["db"]
    service = CheckpointService(db)

    try:
        summary = service.delete_checkpoint(checkpoint_id)
    except DomainError as e:
        handle_domain_error(ctx, e)

    click.echo(f"Deleted checkpoint {checkpoint_id}")
    _echo_recalculation(summary)


@checkpoint_group.command("rollback")
@click.argument("checkpoint_id", type=int)
@click.option("--reason", default=DEFAULT_ROLLBACK_REASON, show_default=True, help="Reason for the audit log")
@click.confirmation_option(prompt="Roll back the import that declared this checkpoint?")
@click.pass_context
def rollback_checkpoint(ctx, checkpoint_id: int, reason: str):
    """Undo the import batch that declared a checkpoint."""
    db = ctx.obj["db"]
    service = RollbackService(db)

    try:
        result = service.rollback_checkpoint(checkpoint_id, reason=reason)
    except DomainError as e:
        handle_domain_error(ctx, e)

    click.echo(f"Rolled back batch {result.batch_id}")
    click.echo(f"  Transactions deleted: {result.transactions_deleted}")
    click.echo(f"  Checkpoints deleted: {result.checkpoints_deleted}")
    _echo_recalculation(result.recalculation)


@checkpoint_group.command("summary")
@click.option("--account", required=True, help="Account name or ID")
@click.pass_context
def checkpoint_summary(ctx, account: str):
    """Show the reconciliation state of an account."""
    db = ctx.obj["db"]
    service = CheckpointService(db)
    account_id = resolve_account_or_exit(ctx, AccountService(db), account)

    try:
        summary = service.get_summary(account_id)
    except DomainError as e:
        handle_domain_error(ctx, e)

    click.echo(f"Checkpoints: {summary.total_checkpoints}")
    if not summary.total_checkpoints:
        return
    click.echo(f"  Reconciled:   {summary.reconciled_count}")
    click.echo(f"  Unreconciled: {summary.unreconciled_count}")
    click.echo(f"  Total adjustment: {summary.total_adjustment}")
    click.echo(f"  Period: {summary.earliest_date} to {summary.latest_date}")
    click.echo(f"  Latest declared balance: {summary.latest_declared_balance}")


def register_commands(cli):
    """Register checkpoint commands with main CLI."""
    cli.add_command(checkpoint_group, name="checkpoint")
