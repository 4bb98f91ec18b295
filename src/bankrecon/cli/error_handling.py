"""CLI error handling helpers."""

import click

from bankrecon.domain.errors import DomainError, PersistenceError


def handle_domain_error(ctx: click.Context, error: DomainError | ValueError) -> None:
    """Render a domain error and exit with failure."""
    click.echo(f"Error: {error}", err=True)
    if isinstance(error, PersistenceError) and error.batch_id is not None:
        click.echo(
            f"Batch {error.batch_id} marked failed after {error.inserted_count} inserted transactions",
            err=True,
        )
    ctx.exit(1)


def parse_option(ctx: click.Context, parser, value: str | None, label: str):
    """Parse an optional CLI value, exiting with an error if it is invalid."""
    if value is None:
        return None
    try:
        return parser(value)
    except ValueError as e:
        click.echo(f"Error: Invalid {label}: {e}", err=True)
        ctx.exit(1)
