"""Account management commands."""

import click
from bankrecon.cli.account_resolution import resolve_account_or_exit
from bankrecon.cli.error_handling import handle_domain_error
from bankrecon.domain.account import AccountService
from bankrecon.domain.errors import DomainError


@click.group()
def account_group():
    """Manage accounts."""
    pass


@account_group.command("create")
@click.argument("name", metavar="ACCOUNT_NAME")
@click.option("--bank", help="Bank name (defaults to account name if not provided)")
@click.option("--currency", default="VND", show_default=True, help="ISO currency code")
@click.pass_context
def create_account(ctx, name: str, bank: str | None, currency: str):
    """Create a new account.

    If --bank is not provided, the bank name will be set to the account name.

    Examples:
        bankrecon account create "Vietcombank"
        bankrecon account create "Payroll" --bank "Techcombank"
        bankrecon account create "Travel" --bank "HSBC" --currency USD
    """
    db = ctx.obj["db"]
    service = AccountService(db)

    # If bank not provided, use account name as bank name
    bank_name = bank if bank is not None else name

    try:
        account_id = service.create_account(name=name, bank_name=bank_name, currency=currency)
        click.echo(f"Created account '{name}' (ID: {account_id})")
        if bank is None:
            click.echo(f"Bank name set to '{bank_name}'")
    except DomainError as e:
        handle_domain_error(ctx, e)


@account_group.command("list")
@click.pass_context
def list_accounts(ctx):
    """List all accounts."""
    db = ctx.obj["db"]
    service = AccountService(db)

    accounts = service.list_accounts()
    if not accounts:
        click.echo("No accounts found.")
        return

    click.echo("\nAccounts:")
    click.echo("-" * 60)
    for acc in accounts:
        click.echo(f"ID: {acc.id:3d} | {acc.name:20s} | Bank: {acc.bank_name} | {acc.currency}")


@account_group.command("show")
@click.argument("account", metavar="ACCOUNT")
@click.pass_context
def show_account(ctx, account: str) -> None:
    """Show an account and its remembered import mapping.

    ACCOUNT can be an account name or ID.
    """
    db = ctx.obj["db"]
    service = AccountService(db)
    account_id = resolve_account_or_exit(ctx, service, account)
    acc = service.get_account(account_id)

    click.echo(f"Account {acc.id}: {acc.name}")
    click.echo(f"  Bank: {acc.bank_name}")
    click.echo(f"  Currency: {acc.currency}")
    config = acc.last_import_config
    if not config:
        click.echo("  No saved import configuration")
        return

    click.echo(f"  Last import: {config.get('last_import_date')}")
    click.echo(f"  Date format: {config.get('date_format') or 'auto'}")
    click.echo(f"  Negative debits: {'yes' if config.get('has_negative_debits') else 'no'}")
    for mapping in config.get("column_mappings", []):
        click.echo(f"    {mapping['source_column']} -> {mapping['role']}")


def register_commands(cli):
    """Register account commands with main CLI."""
    cli.add_command(account_group, name="account")
