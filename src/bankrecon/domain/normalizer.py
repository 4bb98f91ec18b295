"""Tabular file normalization.

Turns CSV text or the first worksheet of an XLSX workbook into a uniform
grid of header-keyed rows. Bank exports routinely carry title and
metadata rows above the real header, merged cells, and blank spacer rows;
all of that is cleaned up here so later stages see one row per
transaction.
"""

import csv
import io
import logging
import zipfile
from datetime import date, datetime, time
from pathlib import Path
from typing import Any, Optional

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from bankrecon.domain.entities import NormalizedTable
from bankrecon.domain.errors import FileFormatError
from bankrecon.utils.amount_parser import looks_like_amount

logger = logging.getLogger(__name__)

SUPPORTED_KINDS = ("csv", "xlsx")
HEADER_SCAN_ROWS = 30
FORWARD_FILL_BLANK_RATIO = 0.2
CSV_ENCODINGS = ("utf-8-sig", "cp1258", "latin-1")

_KIND_BY_SUFFIX = {
    ".csv": "csv",
    ".txt": "csv",
    ".tsv": "csv",
    ".xlsx": "xlsx",
    ".xlsm": "xlsx",
}


def detect_kind(file_name: str) -> str:
    """Guess the file kind from its extension."""
    suffix = Path(file_name).suffix.lower()
    kind = _KIND_BY_SUFFIX.get(suffix)
    if kind is None:
        raise FileFormatError(
            f"Unsupported file type '{suffix or file_name}'. Supported: .csv, .xlsx"
        )
    return kind


def normalize_file(data: bytes, kind: str) -> NormalizedTable:
    """Normalize a statement file into headers and rows.

    Args:
        data: Raw file bytes
        kind: "csv" or "xlsx"

    Returns:
        NormalizedTable with cleaned headers, header-keyed rows and the
        1-based source row number of every row

    Raises:
        FileFormatError: If the file cannot be read or has no data rows
    """
    if kind == "csv":
        grid = _read_csv(data)
    elif kind == "xlsx":
        grid = _read_xlsx(data)
    else:
        raise FileFormatError(f"Unsupported file kind '{kind}'. Supported: {', '.join(SUPPORTED_KINDS)}")

    # Keep the source row number of every non-empty row
    numbered = [(index + 1, row) for index, row in enumerate(grid) if not _is_empty_row(row)]
    if not numbered:
        raise FileFormatError("File contains no data")

    header_pos = find_header_row([row for _, row in numbered])
    header_row_number, header_cells = numbered[header_pos]
    headers = clean_headers(header_cells)
    logger.debug("Header row detected at source row %d: %s", header_row_number, headers)

    data_rows = numbered[header_pos + 1:]
    if not data_rows:
        raise FileFormatError("File has a header row but no data rows")

    row_values = [_pad(row, len(headers)) for _, row in data_rows]
    if kind == "xlsx":
        _forward_fill(row_values)

    rows = [dict(zip(headers, values)) for values in row_values]
    return NormalizedTable(
        headers=headers,
        rows=rows,
        row_numbers=[number for number, _ in data_rows],
        header_row_index=header_row_number - 1,
    )


def _read_csv(data: bytes) -> list[list[Any]]:
    text = _decode(data)
    sample = text[:8192]
    try:
        dialect: Any = csv.Sniffer().sniff(sample, delimiters=",;\t|")
    except csv.Error:
        dialect = csv.excel
    try:
        reader = csv.reader(io.StringIO(text), dialect)
        return [[_clean_cell(cell) for cell in row] for row in reader]
    except csv.Error as e:
        raise FileFormatError(f"Could not read CSV file: {e}")


def _decode(data: bytes) -> str:
    for encoding in CSV_ENCODINGS:
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise FileFormatError("Could not decode CSV file")


def _read_xlsx(data: bytes) -> list[list[Any]]:
    try:
        workbook = openpyxl.load_workbook(io.BytesIO(data), data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError, OSError) as e:
        raise FileFormatError(f"Could not read Excel file: {e}")

    if not workbook.worksheets:
        raise FileFormatError("Excel file has no sheets")
    sheet = workbook.worksheets[0]

    grid = [[_clean_cell(cell) for cell in row] for row in sheet.iter_rows(values_only=True)]

    # Unmerge: every cell of a merged range takes the top-left value
    for merged in sheet.merged_cells.ranges:
        top_left = grid[merged.min_row - 1][merged.min_col - 1]
        for row_index in range(merged.min_row - 1, merged.max_row):
            for col_index in range(merged.min_col - 1, merged.max_col):
                grid[row_index][col_index] = top_left

    workbook.close()
    return grid


def _clean_cell(value: Any) -> Any:
    """Strip text, blank out empty strings and turn dates into ISO strings."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, time):
        return value.isoformat()
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def _is_empty_row(row: list[Any]) -> bool:
    return all(cell is None for cell in row)


def _is_numeric_cell(value: Any) -> bool:
    if isinstance(value, (int, float)):
        return True
    return looks_like_amount(value)


def _pad(row: list[Any], width: int) -> list[Any]:
    if len(row) >= width:
        return list(row[:width])
    return list(row) + [None] * (width - len(row))


def find_header_row(rows: list[list[Any]]) -> int:
    """Return the index of the most header-like row among the first rows.

    A row scores by its fraction of distinct non-empty, non-numeric cells
    (a merged title repeats one value) and only qualifies when the
    following rows (up to three) have a consistent number of filled cells.
    Ties go to the earliest row; the first row is the default.
    """
    width = max((len(row) for row in rows), default=0)
    if width == 0:
        return 0

    best_index = 0
    best_score = 0.0
    for index, row in enumerate(rows[:HEADER_SCAN_ROWS]):
        filled = [cell for cell in row if cell is not None]
        if len(filled) < 2:
            continue
        following = rows[index + 1:index + 4]
        if not following:
            continue
        required = max(2, len(filled) // 2)
        if any(_filled_count(next_row) < required for next_row in following):
            continue

        text_cells = len({str(cell) for cell in filled if not _is_numeric_cell(cell)})
        score = text_cells / width
        if score > best_score:
            best_score = score
            best_index = index
    return best_index


def _filled_count(row: list[Any]) -> int:
    return sum(1 for cell in row if cell is not None)


def clean_headers(header_row: list[Any]) -> list[str]:
    """Turn raw header cells into unique column names.

    Blank or repeated headers become ``Column N`` (1-based position).
    """
    headers: list[str] = []
    seen: set[str] = set()
    for index, cell in enumerate(header_row):
        name = " ".join(str(cell).split()) if cell is not None else ""
        if not name or name in seen:
            name = f"Column {index + 1}"
        candidate = name
        suffix = 2
        while candidate in seen:
            candidate = f"{name} ({suffix})"
            suffix += 1
        seen.add(candidate)
        headers.append(candidate)
    return headers


def _forward_fill(rows: list[list[Any]]) -> None:
    """Fill blanks downwards in sparse text columns, in place.

    Only columns with more than 20% blank cells whose filled cells are all
    non-numeric are filled; amount columns are never touched.
    """
    if not rows:
        return
    width = len(rows[0])
    for col in range(width):
        values = [row[col] for row in rows]
        blanks = sum(1 for value in values if value is None)
        if blanks == 0 or blanks / len(values) <= FORWARD_FILL_BLANK_RATIO:
            continue
        filled = [value for value in values if value is not None]
        if not filled or any(_is_numeric_cell(value) for value in filled):
            continue
        logger.debug("Forward-filling sparse column %d (%d blanks)", col + 1, blanks)
        previous: Optional[Any] = None
        for row in rows:
            if row[col] is None:
                row[col] = previous
            else:
                previous = row[col]
