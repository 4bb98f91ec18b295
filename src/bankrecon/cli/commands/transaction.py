"""Transaction management commands."""

import click
from bankrecon.cli.account_resolution import resolve_account_or_exit
from bankrecon.cli.error_handling import handle_domain_error, parse_option
from bankrecon.domain.account import AccountService
from bankrecon.domain.errors import DomainError
from bankrecon.domain.transaction import TransactionService
from bankrecon.utils.amount_parser import parse_amount
from bankrecon.utils.date_parser import parse_date


@click.group()
def transaction_group():
    """Manage transactions."""
    pass


def _split_amount(ctx: click.Context, amount: str | None):
    """Turn a signed amount into (debit, credit); negative is money out."""
    value = parse_option(ctx, parse_amount, amount, "amount")
    if value is None:
        return None, None
    if value < 0:
        return -value, None
    return None, value


@transaction_group.command("add")
@click.option("--account", required=True, help="Account name or ID")
@click.option("--date", "txn_date", required=True, help="Transaction date (YYYY-MM-DD or 'today', 'yesterday')")
@click.option("--amount", required=True, help="Amount, negative for money out (e.g. -150000)")
@click.option("--description", help="Transaction description")
@click.option("--reference", help="Bank reference")
@click.option("--branch", help="Branch")
@click.pass_context
def add_transaction(
    ctx,
    account: str,
    txn_date: str,
    amount: str,
    description: str | None,
    reference: str | None,
    branch: str | None,
) -> None:
    """Add a manual transaction.

    Checkpoints on or after the transaction date are recalculated.

    Examples:
        bankrecon transaction add --account "Vietcombank" --date 2024-01-15 --amount -50000 --description "ATM"
        bankrecon transaction add --account 1 --date today --amount 2000000 --description "Salary"
    """
    db = ctx.obj["db"]
    service = TransactionService(db)
    account_id = resolve_account_or_exit(ctx, AccountService(db), account)

    day = parse_option(ctx, parse_date, txn_date, "date")
    debit, credit = _split_amount(ctx, amount)

    try:
        transaction_id = service.create_transaction(
            account_id=account_id,
            date=day,
            debit_amount=debit,
            credit_amount=credit,
            description=description,
            bank_reference=reference,
            branch=branch,
        )
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Created transaction {transaction_id}")


@transaction_group.command("update")
@click.argument("transaction_id", type=int)
@click.option("--date", "txn_date", help="Transaction date")
@click.option("--amount", help="Amount, negative for money out")
@click.option("--description", help="Transaction description")
@click.option("--reference", help="Bank reference")
@click.option("--branch", help="Branch")
@click.pass_context
def update_transaction(
    ctx,
    transaction_id: int,
    txn_date: str | None,
    amount: str | None,
    description: str | None,
    reference: str | None,
    branch: str | None,
) -> None:
    """Update a transaction.

    Updates only the fields that are provided. Balance adjustments cannot
    be edited; change the checkpoint instead.

    Examples:
        bankrecon transaction update 12 --amount -75000
        bankrecon transaction update 12 --date 2024-01-16
    """
    db = ctx.obj["db"]
    service = TransactionService(db)

    day = parse_option(ctx, parse_date, txn_date, "date")
    debit, credit = _split_amount(ctx, amount)

    try:
        service.update_transaction(
            transaction_id,
            date=day,
            description=description,
            debit_amount=debit,
            credit_amount=credit,
            bank_reference=reference,
            branch=branch,
        )
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Updated transaction {transaction_id}")


@transaction_group.command("list")
@click.option("--account", required=True, help="Account name or ID")
@click.option("--start-date", help="Start date (YYYY-MM-DD or relative like 'last month')")
@click.option("--end-date", help="End date (YYYY-MM-DD or relative like 'today')")
@click.option("--verbose", "-v", is_flag=True, help="Show reference, branch, batch and unique_id")
@click.pass_context
def list_transactions(ctx, account: str, start_date: str | None, end_date: str | None, verbose: bool):
    """List transactions with the running balance.

    Balance adjustments are included and marked with '*', so the running
    balance matches every declared checkpoint.
    """
    db = ctx.obj["db"]
    service = TransactionService(db)
    account_id = resolve_account_or_exit(ctx, AccountService(db), account)

    start = parse_option(ctx, parse_date, start_date, "start date")
    end = parse_option(ctx, parse_date, end_date, "end date")

    rows = service.running_balance(account_id, start_date=start, end_date=end)
    if not rows:
        click.echo("No transactions found.")
        return

    click.echo(f"\nFound {len(rows)} transaction(s):")
    click.echo("-" * 100)
    click.echo(f"{'ID':<6} {'Date':<12} {'Debit':>14} {'Credit':>14} {'Balance':>16}  {'Description':<30}")
    click.echo("-" * 100)
    for txn, balance in rows:
        debit = f"{txn.debit_amount:,}" if txn.debit_amount is not None else ""
        credit = f"{txn.credit_amount:,}" if txn.credit_amount is not None else ""
        marker = "*" if txn.is_balance_adjustment else " "
        description = (txn.description or "")[:30]
        click.echo(
            f"{txn.id:<6} {str(txn.date):<12} {debit:>14} {credit:>14} {balance:>16,}{marker} {description:<30}"
        )
        if verbose:
            click.echo(
                f"{'':<6} ref={txn.bank_reference or '-'} branch={txn.branch or '-'} "
                f"batch={txn.batch_id or '-'} seq={txn.sequence} uid={txn.unique_id}"
            )

    total_debit = sum(txn.debit_amount for txn, _ in rows if txn.debit_amount is not None)
    total_credit = sum(txn.credit_amount for txn, _ in rows if txn.credit_amount is not None)
    click.echo("-" * 100)
    click.echo(f"{'TOTAL':<6} {'':<12} {total_debit:>14,} {total_credit:>14,} | Count: {len(rows)}")


@transaction_group.command("delete")
@click.argument("transaction_id", type=int)
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def delete_transaction(ctx, transaction_id: int, yes: bool) -> None:
    """Delete a transaction.

    Examples:
        bankrecon transaction delete 1
    """
    db = ctx.obj["db"]
    transaction_service = TransactionService(db)

    # Get transaction info for display
    txn = transaction_service.get_transaction(transaction_id)
    if txn is None:
        click.echo(f"Error: Transaction {transaction_id} not found", err=True)
        ctx.exit(1)

    # Confirm deletion
    if not yes and not click.confirm(f"Are you sure you want to delete transaction {transaction_id}?"):
        click.echo("Deletion cancelled.")
        return

    try:
        transaction_service.delete_transaction(transaction_id)
        click.echo(f"Deleted transaction {transaction_id}")
    except DomainError as e:
        handle_domain_error(ctx, e)


def register_commands(cli: click.Group) -> None:
    """Register transaction commands with main CLI."""
    cli.add_command(transaction_group, name="transaction")
