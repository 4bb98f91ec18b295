"""Column role suggestions for statement files.

Everything here is advisory: the caller shows the suggestions and the user
confirms or edits them before an import runs. Nothing in this module
raises on ambiguous input; uncertainty is reported through confidence
scores and warnings.
"""

import re
from datetime import date
from decimal import Decimal
from typing import Any, Optional

from bankrecon.domain.entities import (
    ColumnDetection,
    ColumnMapping,
    DateFormatDetection,
    RawRow,
    StatementMetadata,
    ROLE_BALANCE,
    ROLE_BRANCH,
    ROLE_CREDIT,
    ROLE_DATE,
    ROLE_DEBIT,
    ROLE_DESCRIPTION,
    ROLE_IGNORE,
    ROLE_REFERENCE,
    ROLE_SIGNED_AMOUNT,
)
from bankrecon.utils.amount_parser import parse_amount
from bankrecon.utils.date_parser import (
    STATEMENT_DATE_FORMATS,
    parse_statement_date,
    parse_with_format,
    strip_time_component,
)

CLASSIFIER_SAMPLE_SIZE = 10
DATE_DETECTION_RATIO = 0.8

DATE_KEYWORDS = ("date", "ngày", "ngay", "ngày giao dịch", "posting", "value date", "hiệu lực")
DESCRIPTION_KEYWORDS = (
    "description", "memo", "details", "detail", "particulars", "narration", "narrative",
    "remarks", "chi tiết", "diễn giải", "dien giai", "mô tả", "nội dung", "noi dung",
)
BRANCH_KEYWORDS = (
    "branch", "location", "store", "chi nhánh", "chi nhanh", "chinhanh", "cửa hàng", "cua hang",
)
BALANCE_KEYWORDS = ("balance", "số dư", "so du", "sodu", "running balance")
DEBIT_KEYWORDS = (
    "debit", "withdrawal", "withdrawals", "out", "paid out", "spent", "payment", "payments",
    "nợ", "ghi nợ", "chi", "rút",
)
CREDIT_KEYWORDS = (
    "credit", "deposit", "deposits", "in", "paid in", "received", "income",
    "có", "ghi có", "thu", "nạp", "nhận", "nhan",
)
AMOUNT_KEYWORDS = ("amount", "số tiền", "so tien", "value")
REFERENCE_KEYWORDS = (
    "reference", "ref", "ref no", "id", "transaction id", "doc", "document", "cheque", "check no",
    "mã", "số chứng từ", "so chung tu", "số bút toán", "séc",
)

_REFERENCE_TOKEN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9\-_/.]{2,29}$")


def _normalize_header(header: str) -> str:
    return " ".join(re.findall(r"[^\W_]+", header.lower()))


def _has_keyword(normalized_header: str, keywords: tuple[str, ...]) -> bool:
    """Whole-word keyword match, so ``in`` never matches inside ``balance``."""
    for keyword in keywords:
        if re.search(rf"(?<!\w){re.escape(keyword)}(?!\w)", normalized_header):
            return True
    return False


def detect_date_format(sample_values: list[Any]) -> DateFormatDetection:
    """Detect the date format shared by a column's sample values.

    Picks the first supported format under which every sample parses. When
    several formats parse everything (e.g. ``03/04/2024``) the first one
    wins, dd/mm/yyyy before mm/dd/yyyy, and confidence drops with a
    warning. When no format parses everything the best partial match is
    returned with its success rate as confidence.
    """
    samples = [
        strip_time_component(str(v))
        for v in sample_values
        if v is not None and not isinstance(v, (int, float, Decimal)) and str(v).strip()
    ][:CLASSIFIER_SAMPLE_SIZE]

    if not samples:
        return DateFormatDetection(
            format=None, confidence=0.0, sample_values=[], warnings=["No valid date samples found"]
        )

    scores: list[tuple[str, int]] = []
    for name in STATEMENT_DATE_FORMATS:
        successes = sum(1 for sample in samples if parse_with_format(sample, name) is not None)
        scores.append((name, successes))

    complete = [name for name, successes in scores if successes == len(samples)]
    if complete:
        chosen = complete[0]
        if len(complete) == 1:
            return DateFormatDetection(format=chosen, confidence=1.0, sample_values=samples)
        alternatives = ", ".join(complete[1:])
        return DateFormatDetection(
            format=chosen,
            confidence=round(1.0 / len(complete), 2),
            sample_values=samples,
            warnings=[
                f"Date format is ambiguous: detected {chosen}, but samples also fit {alternatives}. "
                "Change it if incorrect."
            ],
        )

    best_name, best_successes = max(scores, key=lambda item: item[1])
    if best_successes == 0:
        return DateFormatDetection(
            format=None,
            confidence=0.0,
            sample_values=samples,
            warnings=["Could not detect date format from samples"],
        )
    return DateFormatDetection(
        format=best_name,
        confidence=round(best_successes / len(samples), 2),
        sample_values=samples,
        warnings=[f"Only {best_successes} of {len(samples)} samples match {best_name}"],
    )


def _date_ratio(values: list[Any]) -> float:
    candidates = [v for v in values if not isinstance(v, (int, float, Decimal))]
    if not values:
        return 0.0
    parsed = sum(1 for v in candidates if parse_statement_date(v) is not None)
    return parsed / len(values)


def _parsed_amounts(values: list[Any]) -> list[Decimal]:
    amounts = []
    for value in values:
        try:
            amount = parse_amount(value)
        except ValueError:
            continue
        if amount is not None:
            amounts.append(amount)
    return amounts


def _looks_like_references(values: list[Any]) -> bool:
    texts = [str(v) for v in values if isinstance(v, str)]
    if len(texts) < 3 or len(texts) != len(values):
        return False
    if len(set(texts)) != len(texts):
        return False
    return all(_REFERENCE_TOKEN.match(t) and any(c.isdigit() for c in t) for t in texts)


def _detect_column(column_name: str, sample_values: list[Any]) -> ColumnDetection:
    header = _normalize_header(column_name)
    values = [v for v in sample_values if v is not None]
    preview = sample_values[:5]

    def detection(role: str, confidence: float, reasoning: str, date_format: Optional[str] = None):
        return ColumnDetection(
            column_name=column_name,
            suggested_role=role,
            confidence=confidence,
            sample_values=preview,
            reasoning=reasoning,
            date_format=date_format,
        )

    # Dates: decided by the data, header keyword only lowers the bar
    ratio = _date_ratio(values)
    has_date_keyword = _has_keyword(header, DATE_KEYWORDS)
    if values and (ratio > DATE_DETECTION_RATIO or (has_date_keyword and ratio > 0.5)):
        date_detection = detect_date_format(values)
        return detection(
            ROLE_DATE,
            round(ratio, 2),
            f"{round(ratio * 100)}% of samples parse as dates",
            date_format=date_detection.format,
        )

    if _has_keyword(header, DESCRIPTION_KEYWORDS):
        return detection(ROLE_DESCRIPTION, 0.9, "Column name suggests transaction description")

    if _has_keyword(header, BRANCH_KEYWORDS):
        return detection(ROLE_BRANCH, 0.9, "Column name suggests branch or store location")

    amounts = _parsed_amounts(values)
    numeric = bool(values) and len(amounts) >= len(values) * 0.7
    has_negative = any(a < 0 for a in amounts)
    has_positive = any(a > 0 for a in amounts)

    if _has_keyword(header, BALANCE_KEYWORDS):
        return detection(ROLE_BALANCE, 0.9 if numeric else 0.7, "Column name suggests account balance")

    if _has_keyword(header, DEBIT_KEYWORDS):
        if numeric and not has_negative:
            return detection(ROLE_DEBIT, 0.85, "Column name suggests debit/withdrawal amounts")
        return detection(ROLE_DEBIT, 0.6, "Column name suggests debit amounts; samples are not all non-negative numbers")

    if _has_keyword(header, CREDIT_KEYWORDS):
        if numeric and not has_negative:
            return detection(ROLE_CREDIT, 0.85, "Column name suggests credit/deposit amounts")
        return detection(ROLE_CREDIT, 0.6, "Column name suggests credit amounts; samples are not all non-negative numbers")

    if _has_keyword(header, AMOUNT_KEYWORDS) and numeric:
        if has_negative and has_positive:
            return detection(
                ROLE_SIGNED_AMOUNT,
                0.85,
                "Column contains both positive and negative amounts (negative = debit, positive = credit)",
            )
        return detection(
            ROLE_SIGNED_AMOUNT,
            0.5,
            "Amount column with a single sign; check the negative-debits setting",
        )

    if _has_keyword(header, REFERENCE_KEYWORDS):
        return detection(ROLE_REFERENCE, 0.8, "Column name suggests reference number or transaction ID")

    if _looks_like_references(values):
        return detection(ROLE_REFERENCE, 0.6, "Distinct short alphanumeric codes, one per row")

    if numeric:
        return detection(
            ROLE_IGNORE,
            0.3,
            "Numeric column - please map manually to debit, credit, signed amount, or balance",
        )

    return detection(ROLE_IGNORE, 0.2, "Could not determine column type - set manually if needed")


def classify_columns(
    headers: list[str], rows: list[RawRow], sample_size: int = CLASSIFIER_SAMPLE_SIZE
) -> list[ColumnDetection]:
    """Suggest a role for every column from its header and first rows.

    Args:
        headers: Column names in file order
        rows: Header-keyed rows
        sample_size: Number of leading rows to sample

    Returns:
        One ColumnDetection per header, in header order
    """
    sample_rows = rows[:sample_size]
    return [_detect_column(header, [row.get(header) for row in sample_rows]) for header in headers]


def suggest_mappings(
    detections: list[ColumnDetection],
    date_format: Optional[str] = None,
    has_negative_debits: bool = True,
) -> list[ColumnMapping]:
    """Build an initial mapping from detections.

    Each role other than ``ignore`` is given to one column only, the most
    confident one (earliest on ties). A signed amount column is dropped
    when separate debit or credit columns exist.
    """
    winners: dict[str, ColumnDetection] = {}
    for det in detections:
        if det.suggested_role == ROLE_IGNORE:
            continue
        current = winners.get(det.suggested_role)
        if current is None or det.confidence > current.confidence:
            winners[det.suggested_role] = det

    if ROLE_SIGNED_AMOUNT in winners and (ROLE_DEBIT in winners or ROLE_CREDIT in winners):
        del winners[ROLE_SIGNED_AMOUNT]

    chosen = {det.column_name: role for role, det in winners.items()}
    mappings = []
    for det in detections:
        role = chosen.get(det.column_name, ROLE_IGNORE)
        mapping_format = None
        is_negative_debit = None
        if role == ROLE_DATE:
            mapping_format = det.date_format or date_format
        elif role == ROLE_SIGNED_AMOUNT:
            is_negative_debit = has_negative_debits
        mappings.append(
            ColumnMapping(
                source_column=det.column_name,
                role=role,
                date_format=mapping_format,
                is_negative_debit=is_negative_debit,
            )
        )
    return mappings


def detect_statement_metadata(
    headers: list[str],
    rows: list[RawRow],
    detections: Optional[list[ColumnDetection]] = None,
) -> StatementMetadata:
    """Detect the statement period and ending balance.

    The period spans the earliest and latest parseable dates of the date
    column. The ending balance is the balance cell of the chronologically
    last row: the last row on the latest date, read in statement order.
    """
    if not rows:
        return StatementMetadata(start_date=None, end_date=None, ending_balance=None)
    if detections is None:
        detections = classify_columns(headers, rows)

    date_columns = [d for d in detections if d.suggested_role == ROLE_DATE]
    if not date_columns:
        return StatementMetadata(start_date=None, end_date=None, ending_balance=None)
    effective = [d for d in date_columns if _has_keyword(_normalize_header(d.column_name), ("effective", "hiệu lực", "hieu luc"))]
    date_detection = (effective or date_columns)[0]

    dated: list[tuple[int, date]] = []
    for index, row in enumerate(rows):
        parsed = parse_statement_date(row.get(date_detection.column_name), date_detection.date_format)
        if parsed is not None:
            dated.append((index, parsed))
    if not dated:
        return StatementMetadata(start_date=None, end_date=None, ending_balance=None)

    start = min(d for _, d in dated)
    end = max(d for _, d in dated)

    ending_balance = None
    balance_columns = [d.column_name for d in detections if d.suggested_role == ROLE_BALANCE]
    if balance_columns:
        descending = dated[0][1] > dated[-1][1]
        last_day_rows = [index for index, d in dated if d == end]
        last_index = last_day_rows[0] if descending else last_day_rows[-1]
        try:
            ending_balance = parse_amount(rows[last_index].get(balance_columns[0]))
        except ValueError:
            ending_balance = None

    return StatementMetadata(start_date=start, end_date=end, ending_balance=ending_balance)
