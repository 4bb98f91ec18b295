"""Main CLI entry point."""

import logging

import click
from bankrecon.database.factories import create_sqlite_database

# Import and register all commands at module level
from bankrecon.cli.commands import (
    account,
    import_cmd,
    checkpoint,
    batch,
    transaction,
)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


@click.group()
@click.option(
    "--db-path",
    type=click.Path(),
    help="Path to database file (overrides BANKRECON_DB_PATH environment variable)",
    envvar="BANKRECON_DB_PATH",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    envvar="BANKRECON_LOG_LEVEL",
    help="Logging verbosity",
)
@click.pass_context
def cli(ctx, db_path: str | None, log_level: str):
    """Bankrecon - Bank statement import and reconciliation.

    Import CSV and Excel bank statements, declare the balances the bank
    reports, and keep every account reconciled with balance adjustments.
    """
    ctx.ensure_object(dict)
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Initialize database connection only when actually running a command
    # (not when showing help)
    if ctx.invoked_subcommand is not None:
        db = create_sqlite_database(database_path=db_path)
        db.connect()
        db.initialize_schema()
        ctx.obj["db"] = db


# Register all commands
account.register_commands(cli)
import_cmd.register_commands(cli)
checkpoint.register_commands(cli)
batch.register_commands(cli)
transaction.register_commands(cli)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
