"""CLI helpers for resolving the --account option."""

from __future__ import annotations

import click
from bankrecon.cli.error_handling import handle_domain_error
from bankrecon.domain.account import AccountService
from bankrecon.domain.errors import DomainError
from bankrecon.utils.account_resolver import resolve_account


def resolve_account_or_exit(
    ctx: click.Context, account_service: AccountService, account: str | int
) -> int:
    """Resolve an account name or ID, or exit with a CLI error."""
    try:
        return resolve_account(account_service, account)
    except DomainError as exc:
        handle_domain_error(ctx, exc)


def resolve_optional_account(
    ctx: click.Context, account_service: AccountService, account: str | int | None
) -> int | None:
    """Like resolve_account_or_exit, but an omitted --account means all accounts."""
    if account is None:
        return None
    return resolve_account_or_exit(ctx, account_service, account)
