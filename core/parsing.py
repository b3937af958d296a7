"""
CNAB 80 fixed-width line parsing.

Layout (0-indexed, half-open):

    [0:1]   transaction type
    [1:9]   date (yyyyMMdd)
    [9:19]  amount in cents
    [19:30] CPF
    [30:42] card
    [42:48] time (hhmmss)
    [48:62] store owner
    [62:80] store name

Invalid lines are reported as CnabValidationError values, never raised.
"""
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple, Union

from core.models import CnabRecord, TransactionType
from core.schema import (
    CNAB_EMPTY_LINE,
    CNAB_INVALID_AMOUNT,
    CNAB_INVALID_DATE,
    CNAB_INVALID_LENGTH,
    CNAB_INVALID_TIME,
    CNAB_INVALID_TYPE,
    CNAB_NEGATIVE_AMOUNT,
    CNAB_UNKNOWN_TYPE,
    CnabValidationError,
)

LINE_LENGTH = 80

TYPE_SLICE = slice(0, 1)
DATE_SLICE = slice(1, 9)
AMOUNT_SLICE = slice(9, 19)
CPF_SLICE = slice(19, 30)
CARD_SLICE = slice(30, 42)
TIME_SLICE = slice(42, 48)
OWNER_SLICE = slice(48, 62)
STORE_SLICE = slice(62, 80)

# Invariant-culture integer: optional ASCII whitespace and sign, ASCII digits only
_INTEGER_PATTERN = re.compile(r"[ \t\n\v\f\r]*([+-]?[0-9]+)[ \t\n\v\f\r]*")
_DIGITS_PATTERN = re.compile(r"[0-9]+")
_LINE_BREAK_PATTERN = re.compile(r"\r\n|\r|\n")
_CENT = Decimal("0.01")


@dataclass(frozen=True)
class ParseResult:
    """Either a parsed record or the validation errors for one line."""

    record: Optional[CnabRecord] = None
    errors: List[CnabValidationError] = field(default_factory=list)

    @property
    def is_success(self) -> bool:
        return self.record is not None

    @property
    def is_failure(self) -> bool:
        return self.record is None

    @classmethod
    def success(cls, record: CnabRecord) -> "ParseResult":
        return cls(record=record)

    @classmethod
    def failure(cls, code: str, message: str, line_number: int) -> "ParseResult":
        return cls(errors=[CnabValidationError(code=code, message=message, line_number=line_number)])


def _parse_integer(text: str) -> Optional[int]:
    match = _INTEGER_PATTERN.fullmatch(text)
    if not match:
        return None
    return int(match.group(1))


def _parse_date(text: str) -> Optional[date]:
    """Parse yyyyMMdd, returning None for malformed or impossible dates."""
    if not _DIGITS_PATTERN.fullmatch(text) or len(text) != 8:
        return None
    try:
        return date(int(text[0:4]), int(text[4:6]), int(text[6:8]))
    except ValueError:
        return None


def _parse_time(text: str) -> Optional[time]:
    """Parse hhmmss on a 24-hour clock."""
    if not _DIGITS_PATTERN.fullmatch(text) or len(text) != 6:
        return None
    try:
        return time(int(text[0:2]), int(text[2:4]), int(text[4:6]))
    except ValueError:
        return None


def parse_line(raw_line: Optional[str], line_number: int = 0) -> ParseResult:
    """
    Parse a single CNAB 80 line.

    Checks run in order and the first failing one is reported.

    Args:
        raw_line: Line as read from the file (without line terminator)
        line_number: 1-based position of the line in the file

    Returns:
        ParseResult with the record, or with exactly one validation error
    """
    if raw_line is None or not raw_line.strip():
        return ParseResult.failure(CNAB_EMPTY_LINE, f"Line {line_number}: Line is empty.", line_number)

    if len(raw_line) < LINE_LENGTH:
        return ParseResult.failure(
            CNAB_INVALID_LENGTH,
            f"Line {line_number}: Line length invalid ({len(raw_line)}), expected >= {LINE_LENGTH}.",
            line_number,
        )

    type_text = raw_line[TYPE_SLICE]
    date_text = raw_line[DATE_SLICE]
    amount_text = raw_line[AMOUNT_SLICE]
    cpf_text = raw_line[CPF_SLICE]
    card_text = raw_line[CARD_SLICE]
    time_text = raw_line[TIME_SLICE]
    owner_text = raw_line[OWNER_SLICE]
    store_text = raw_line[STORE_SLICE]

    type_number = _parse_integer(type_text)
    if type_number is None:
        return ParseResult.failure(
            CNAB_INVALID_TYPE,
            f"Line {line_number}: Invalid transaction type value '{type_text}'.",
            line_number,
        )

    try:
        transaction_type = TransactionType(type_number)
    except ValueError:
        return ParseResult.failure(
            CNAB_UNKNOWN_TYPE,
            f"Line {line_number}: Unknown transaction type {type_number}.",
            line_number,
        )

    occurred_on = _parse_date(date_text)
    if occurred_on is None:
        return ParseResult.failure(
            CNAB_INVALID_DATE,
            f"Line {line_number}: Invalid date '{date_text}'.",
            line_number,
        )

    time_of_day = _parse_time(time_text)
    if time_of_day is None:
        return ParseResult.failure(
            CNAB_INVALID_TIME,
            f"Line {line_number}: Invalid time '{time_text}'.",
            line_number,
        )

    occurred_at_local = datetime.combine(occurred_on, time_of_day)

    amount_cents = _parse_integer(amount_text)
    if amount_cents is None:
        return ParseResult.failure(
            CNAB_INVALID_AMOUNT,
            f"Line {line_number}: Invalid amount '{amount_text}'.",
            line_number,
        )

    amount = (Decimal(amount_cents) / Decimal(100)).quantize(_CENT)
    if amount < 0:
        return ParseResult.failure(
            CNAB_NEGATIVE_AMOUNT,
            f"Line {line_number}: Amount must be non-negative before applying sign.",
            line_number,
        )

    record = CnabRecord(
        type=transaction_type,
        occurred_at_local=occurred_at_local,
        amount=amount,
        cpf=cpf_text.strip(),
        card=card_text.strip(),
        store_owner=owner_text.strip(),
        store_name=store_text.strip(),
        raw_line=raw_line,
        line_number=line_number,
    )
    return ParseResult.success(record)


def parse_lines(
    lines: Iterable[Optional[str]],
    first_line_number: int = 1
) -> Tuple[List[CnabRecord], List[CnabValidationError]]:
    """
    Parse every line. Bad lines never stop the loop.

    Args:
        lines: Raw lines in file order
        first_line_number: Line number of the first element of `lines`

    Returns:
        Tuple of (valid records, validation errors)
    """
    records: List[CnabRecord] = []
    errors: List[CnabValidationError] = []

    for line_number, raw_line in enumerate(lines, start=first_line_number):
        result = parse_line(raw_line, line_number)
        if result.is_failure:
            errors.extend(result.errors)
            continue
        records.append(result.record)

    return records, errors


def split_lines(content: Union[bytes, str]) -> List[str]:
    """
    Split uploaded file content into lines.

    Bytes are decoded as UTF-8 (a leading BOM is dropped). A trailing line
    terminator does not produce an extra empty line.
    """
    if isinstance(content, bytes):
        content = content.decode("utf-8-sig")
    elif content.startswith("\ufeff"):
        content = content[1:]

    lines = _LINE_BREAK_PATTERN.split(content)
    if lines and lines[-1] == "":
        lines.pop()
    return lines
