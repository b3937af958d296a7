"""
Unit tests for CNAB 80 line parsing.
"""
from datetime import datetime
from decimal import Decimal

import pytest

from core.models import TransactionType
from core.parsing import parse_line, parse_lines, split_lines
from tests.helpers import build_line


def error_codes(result):
    return [error.code for error in result.errors]


def test_parse_valid_line_reads_every_field():
    """Test that every fixed-width field of a valid line is read."""
    line = (
        "1" + "20190301" + "0000012345" + "12345678901" + "123456789012" + "123000"
        + "JOSE DA SILVA".ljust(14) + "PADARIA DO ZE".ljust(18)
    )
    assert len(line) == 80

    result = parse_line(line, 3)

    assert result.is_success
    assert not result.is_failure
    assert result.errors == []
    record = result.record
    assert record.type == TransactionType.DEBIT
    assert record.occurred_at_local == datetime(2019, 3, 1, 12, 30, 0)
    assert record.occurred_at_local.tzinfo is None
    assert record.amount == Decimal("123.45")
    assert record.cpf == "12345678901"
    assert record.card == "123456789012"
    assert record.store_owner == "JOSE DA SILVA"
    assert record.store_name == "PADARIA DO ZE"
    assert record.raw_line == line
    assert record.line_number == 3


@pytest.mark.parametrize("line", [None, "", "   ", "\t"])
def test_parse_empty_line(line):
    """Test that missing or blank lines are reported as empty."""
    result = parse_line(line, 1)
    assert result.is_failure
    assert error_codes(result) == ["CNAB_EMPTY_LINE"]
    assert result.record is None


def test_empty_line_message_includes_line_number():
    """Test that the empty line message names its line."""
    result = parse_line("", 7)
    assert result.errors[0].message == "Line 7: Line is empty."
    assert result.errors[0].line_number == 7


def test_parse_short_line_reports_length():
    """Test that a 79 character line reports its length."""
    line = build_line()[:79]

    result = parse_line(line, 5)

    assert error_codes(result) == ["CNAB_INVALID_LENGTH"]
    message = result.errors[0].message
    assert "Line 5" in message
    assert "79" in message
    assert "80" in message
    assert result.errors[0].line_number == 5


def test_parse_short_line_with_bad_fields_only_reports_length():
    """Test that field checks do not run on a short line."""
    result = parse_line("X" * 40, 1)
    assert error_codes(result) == ["CNAB_INVALID_LENGTH"]


def test_parse_non_numeric_type():
    """Test non-numeric transaction type."""
    result = parse_line(build_line(type_code="X"), 1)
    assert error_codes(result) == ["CNAB_INVALID_TYPE"]


def test_parse_blank_type():
    """Test blank transaction type."""
    result = parse_line(build_line(type_code=" "), 1)
    assert error_codes(result) == ["CNAB_INVALID_TYPE"]


def test_parse_type_zero_is_unknown():
    """Test that a numeric type outside 1-9 is unknown."""
    result = parse_line(build_line(type_code="0"), 1)
    assert error_codes(result) == ["CNAB_UNKNOWN_TYPE"]


def test_parse_invalid_calendar_date():
    """Test that 30 February is rejected."""
    result = parse_line(build_line(date_text="20190230"), 1)
    assert error_codes(result) == ["CNAB_INVALID_DATE"]


@pytest.mark.parametrize("date_text", ["2019AB01", "20191301", "00000101", "2019 301"])
def test_parse_malformed_date(date_text):
    """Test malformed dates."""
    result = parse_line(build_line(date_text=date_text), 1)
    assert error_codes(result) == ["CNAB_INVALID_DATE"]


@pytest.mark.parametrize("time_text", ["246199", "240000", "126000", "120060", "12AB00"])
def test_parse_invalid_time(time_text):
    """Test times outside a 24-hour clock."""
    result = parse_line(build_line(time_text=time_text), 1)
    assert error_codes(result) == ["CNAB_INVALID_TIME"]


def test_parse_non_numeric_amount():
    """Test non-numeric amount."""
    result = parse_line(build_line(amount="00000ABCDE"), 1)
    assert error_codes(result) == ["CNAB_INVALID_AMOUNT"]


def test_parse_amount_with_ascii_padding():
    """Test that ASCII whitespace around the amount is accepted."""
    result = parse_line(build_line(amount="  00000100"), 1)
    assert result.record.amount == Decimal("1.00")


def test_parse_amount_with_non_ascii_whitespace():
    """Test that a non-breaking space in the amount is rejected."""
    result = parse_line(build_line(amount="\u00a0000000100"), 1)
    assert error_codes(result) == ["CNAB_INVALID_AMOUNT"]


def test_parse_negative_amount():
    """Test that a signed negative amount is rejected after parsing."""
    result = parse_line(build_line(amount="-000000010"), 1)
    assert error_codes(result) == ["CNAB_NEGATIVE_AMOUNT"]


def test_first_failing_check_wins():
    """Test that only the first failing check is reported."""
    line = build_line(type_code="0", date_text="20190230", time_text="999999", amount="ABCDEFGHIJ")
    result = parse_line(line, 1)
    assert error_codes(result) == ["CNAB_UNKNOWN_TYPE"]


@pytest.mark.parametrize("code", [str(n) for n in range(1, 10)])
def test_parse_all_transaction_types(code):
    """Test every known transaction type code."""
    result = parse_line(build_line(type_code=code), 1)
    assert result.record.type == TransactionType(int(code))


def test_parse_trims_text_fields():
    """Test that text fields are trimmed."""
    line = build_line(owner="  OWNER  ", store="  STORE  ", cpf=" 1234567890", card="12345678901 ")
    record = parse_line(line, 1).record
    assert record.store_owner == "OWNER"
    assert record.store_name == "STORE"
    assert record.cpf == "1234567890"
    assert record.card == "12345678901"


def test_parse_keeps_text_case():
    """Test that store text keeps its case."""
    record = parse_line(build_line(owner="Maria", store="Bar do Joao"), 1).record
    assert record.store_owner == "Maria"
    assert record.store_name == "Bar do Joao"


def test_parse_zero_amount():
    """Test zero amount."""
    assert parse_line(build_line(amount="0000000000"), 1).record.amount == Decimal("0")


def test_parse_amount_has_two_decimal_places():
    """Test that whole amounts keep cents precision."""
    amount = parse_line(build_line(amount="0000000100"), 1).record.amount
    assert str(amount) == "1.00"


def test_parse_large_amount():
    """Test the largest amount the field can hold."""
    assert parse_line(build_line(amount="9999999999"), 1).record.amount == Decimal("99999999.99")


def test_parse_line_longer_than_80_uses_first_80_characters():
    """Test that characters past column 80 are ignored."""
    line = build_line(store="STORE") + "EXTRA"

    result = parse_line(line, 1)

    assert result.is_success
    assert result.record.store_name == "STORE"
    assert result.record.raw_line == line


def test_error_messages_include_line_number():
    """Test that error messages start with the line number."""
    result = parse_line(build_line(date_text="20190230"), 42)
    assert result.errors[0].message.startswith("Line 42:")
    assert result.errors[0].line_number == 42


def test_parse_lines_continues_after_failures():
    """Test that bad lines do not stop parsing."""
    lines = [build_line(store="A"), "short", build_line(type_code="X"), build_line(store="B")]

    records, errors = parse_lines(lines)

    assert [record.store_name for record in records] == ["A", "B"]
    assert [record.line_number for record in records] == [1, 4]
    assert [(e.code, e.line_number) for e in errors] == [
        ("CNAB_INVALID_LENGTH", 2),
        ("CNAB_INVALID_TYPE", 3),
    ]


def test_parse_lines_numbers_from_given_start():
    """Test that a slice of a file keeps its file line numbers."""
    records, errors = parse_lines([build_line(), ""], first_line_number=11)

    assert [record.line_number for record in records] == [11]
    assert [e.line_number for e in errors] == [12]


def test_split_lines_handles_terminators_and_bom():
    """Test BOM removal and mixed line terminators."""
    content = "\ufeffline one\r\nline two\nline three\n".encode("utf-8")
    assert split_lines(content) == ["line one", "line two", "line three"]


def test_split_lines_keeps_inner_blank_lines():
    """Test that blank lines in the middle are kept."""
    assert split_lines("a\n\nb") == ["a", "", "b"]


def test_split_lines_empty_content():
    """Test empty content."""
    assert split_lines(b"") == []
