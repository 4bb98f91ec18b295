"""Statement detection and import commands."""

from pathlib import Path

import click
from bankrecon.cli.account_resolution import resolve_account_or_exit
from bankrecon.cli.error_handling import handle_domain_error, parse_option
from bankrecon.domain.account import AccountService
from bankrecon.domain.entities import COLUMN_ROLES, ROLE_IGNORE, ColumnMapping, ImportOptions, ImportResult
from bankrecon.domain.errors import DomainError
from bankrecon.domain.normalizer import detect_kind
from bankrecon.domain.statement_import import INSERT_CHUNK_SIZE, StatementImportService
from bankrecon.utils.amount_parser import parse_amount
from bankrecon.utils.date_parser import parse_date

MAX_LISTED_ERRORS = 20


def parse_mapping(value: str) -> ColumnMapping:
    """Parse a ``COLUMN=ROLE`` option value.

    Raises:
        click.BadParameter: If the value has no '=' or names an unknown role
    """
    column, sep, role = value.rpartition("=")
    column = column.strip()
    role = role.strip().lower()
    if not sep or not column:
        raise click.BadParameter(f"Expected COLUMN=ROLE, got '{value}'")
    if role not in COLUMN_ROLES:
        raise click.BadParameter(f"Unknown role '{role}'. Valid roles: {', '.join(COLUMN_ROLES)}")
    return ColumnMapping(source_column=column, role=role)


def _read_file(ctx: click.Context, file_path: str) -> tuple[bytes, str]:
    try:
        kind = detect_kind(file_path)
    except DomainError as e:
        handle_domain_error(ctx, e)
    return Path(file_path).read_bytes(), kind


@click.command("detect")
@click.argument("statement_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def detect_statement(ctx, statement_file: str):
    """Inspect a statement file and suggest a column mapping.

    Nothing is imported. The suggested mapping is printed as --map options
    that can be passed to the import command.

    Examples:
        bankrecon detect statement.xlsx
        bankrecon detect export.csv
    """
    db = ctx.obj["db"]
    service = StatementImportService(db)
    data, kind = _read_file(ctx, statement_file)

    try:
        preview = service.preview(data, kind)
    except DomainError as e:
        handle_domain_error(ctx, e)

    table = preview.table
    click.echo(f"\nHeader row: {table.header_row_index + 1}")
    click.echo(f"Data rows: {len(table.rows)}")

    click.echo("\nColumns:")
    click.echo("-" * 80)
    for det in preview.detections:
        samples = ", ".join(str(v) for v in det.sample_values[:3])
        click.echo(f"{det.column_name:25s} | {det.suggested_role:14s} | {det.confidence:4.2f} | {samples}")
        click.echo(f"{'':25s}   {det.reasoning}")

    date_format = preview.date_format
    if date_format.format:
        click.echo(f"\nDate format: {date_format.format} (confidence {date_format.confidence:.2f})")
    else:
        click.echo("\nDate format: not detected")
    for warning in date_format.warnings:
        click.echo(f"  Warning: {warning}")

    metadata = preview.metadata
    if metadata.start_date is not None:
        click.echo(f"Statement period: {metadata.start_date} to {metadata.end_date}")
    if metadata.ending_balance is not None:
        click.echo(f"Ending balance: {metadata.ending_balance}")

    mapped = [m for m in preview.suggested_mappings if m.role != ROLE_IGNORE]
    if mapped:
        click.echo("\nSuggested mapping:")
        for mapping in mapped:
            click.echo(f'  --map "{mapping.source_column}={mapping.role}"')


@click.command("import")
@click.argument("statement_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--account", required=True, help="Account name or ID")
@click.option(
    "--map",
    "mapping_values",
    multiple=True,
    help="Column mapping as COLUMN=ROLE (repeatable). Roles: " + ", ".join(COLUMN_ROLES),
)
@click.option("--auto", is_flag=True, help="Use the detected column mapping")
@click.option("--use-saved", is_flag=True, help="Reuse the mapping saved by the account's last import")
@click.option("--date-format", help="Date format, e.g. dd/mm/yyyy or %d/%m/%Y")
@click.option(
    "--negative-debits/--positive-debits",
    "has_negative_debits",
    default=None,
    help="Sign of debits in a signed amount column (default: negative)",
)
@click.option("--start-date", help="Skip rows before this date")
@click.option("--end-date", help="Skip rows after this date and declare the ending balance on it")
@click.option("--ending-balance", help="Balance reported by the bank at the end date")
@click.option("--detect-period", is_flag=True, help="Take missing period and ending balance from the file")
@click.option("--atomic", is_flag=True, help="Insert everything or nothing")
@click.option("--chunk-size", type=click.IntRange(min=1), default=INSERT_CHUNK_SIZE, show_default=True)
@click.pass_context
def import_statement(
    ctx,
    statement_file: str,
    account: str,
    mapping_values: tuple[str, ...],
    auto: bool,
    use_saved: bool,
    date_format: str | None,
    has_negative_debits: bool | None,
    start_date: str | None,
    end_date: str | None,
    ending_balance: str | None,
    detect_period: bool,
    atomic: bool,
    chunk_size: int,
):
    """Import a CSV or Excel bank statement.

    Exactly one mapping source is used: --map options, --auto or --use-saved.

    Examples:
        bankrecon import statement.xlsx --account "Vietcombank" --auto --detect-period
        bankrecon import export.csv --account 1 --map "Date=date" --map "Amount=signed_amount"
        bankrecon import may.csv --account 1 --use-saved --end-date 2024-05-31 --ending-balance 1500000
    """
    db = ctx.obj["db"]
    service = StatementImportService(db)
    account_service = AccountService(db)
    account_id = resolve_account_or_exit(ctx, account_service, account)

    if sum([bool(mapping_values), auto, use_saved]) != 1:
        click.echo("Error: Give exactly one of --map, --auto or --use-saved", err=True)
        ctx.exit(1)

    start = parse_option(ctx, parse_date, start_date, "start date")
    end = parse_option(ctx, parse_date, end_date, "end date")
    balance = parse_option(ctx, parse_amount, ending_balance, "ending balance")
    data, kind = _read_file(ctx, statement_file)

    try:
        if mapping_values:
            mappings = [parse_mapping(value) for value in mapping_values]
        elif use_saved:
            config = account_service.get_import_config(account_id)
            if not config:
                click.echo("Error: Account has no saved import configuration", err=True)
                ctx.exit(1)
            mappings = [ColumnMapping.from_dict(m) for m in config["column_mappings"]]
            date_format = date_format or config.get("date_format")
            if has_negative_debits is None:
                has_negative_debits = config.get("has_negative_debits", True)
        else:
            mappings = service.preview(data, kind).suggested_mappings

        if detect_period:
            metadata = service.preview(data, kind).metadata
            start = start or metadata.start_date
            end = end or metadata.end_date
            if balance is None:
                balance = metadata.ending_balance

        options = ImportOptions(
            date_format=date_format,
            has_negative_debits=True if has_negative_debits is None else has_negative_debits,
            chunk_size=chunk_size,
            atomic=atomic,
        )
        result = service.import_statement(
            account_id,
            data,
            Path(statement_file).name,
            kind,
            mappings,
            options,
            statement_start_date=start,
            statement_end_date=end,
            ending_balance=balance,
        )
    except click.BadParameter as e:
        click.echo(f"Error: {e.message}", err=True)
        ctx.exit(1)
    except DomainError as e:
        handle_domain_error(ctx, e)

    _print_result(result)


def _print_result(result: ImportResult) -> None:
    click.echo(f"\nImport {result.batch.status} (batch {result.batch.id}):")
    click.echo(f"  Rows: {result.total_rows}")
    click.echo(f"  Imported: {result.successful_count} transactions")
    click.echo(f"  Skipped: {len(result.duplicate_warnings)} duplicates")
    if result.out_of_range_count:
        click.echo(f"  Outside statement period: {result.out_of_range_count}")
    if result.is_descending:
        click.echo("  Statement was newest-first; order reversed")

    if result.errors:
        click.echo(f"  Errors: {len(result.errors)}")
        for error in result.errors[:MAX_LISTED_ERRORS]:
            click.echo(f"    Row {error.row_number}: {error.message}", err=True)
        if len(result.errors) > MAX_LISTED_ERRORS:
            click.echo(f"    ... and {len(result.errors) - MAX_LISTED_ERRORS} more", err=True)

    if result.checkpoint is not None:
        cp = result.checkpoint.checkpoint
        state = "reconciled" if cp.is_reconciled else f"adjustment {cp.adjustment_amount:+}"
        click.echo(f"  Checkpoint {cp.checkpoint_date}: declared {cp.declared_balance}, {state}")


def register_commands(cli):
    """Register statement commands with main CLI."""
    cli.add_command(detect_statement)
    cli.add_command(import_statement)
