"""Utility functions for bankrecon."""

from bankrecon.utils.date_parser import parse_date, parse_statement_date
from bankrecon.utils.amount_parser import parse_amount
from bankrecon.utils.account_resolver import resolve_account

__all__ = ["parse_date", "parse_statement_date", "parse_amount", "resolve_account"]
