from datetime import date

import pytest

from receipt_ocr.common.schemas.extraction import ProviderKind
from receipt_ocr.parsers.ocr.base import ProviderInvocationFailed
from receipt_ocr.parsers.ocr.normalize import (
    build_extraction_result,
    major_to_minor_units,
    normalize_confidence,
    normalize_line_items,
    parse_issue_date,
    parse_json_payload,
    strip_code_fences,
    to_minor_units,
)


def test_strip_code_fences():
    wrapped = '```json\n{"total_amount_satang": 8560}\n```'

    assert strip_code_fences(wrapped) == '{"total_amount_satang": 8560}'


def test_parse_json_payload_accepts_fenced_object():
    payload = parse_json_payload('```\n{"vendor_name": "Tesco"}\n```', ProviderKind.CHEAP)

    assert payload == {"vendor_name": "Tesco"}


@pytest.mark.parametrize("text", ["not json", "", "[1, 2, 3]", "null"])
def test_parse_json_payload_rejects_non_objects(text):
    with pytest.raises(ProviderInvocationFailed) as excinfo:
        parse_json_payload(text, ProviderKind.PRECISE, correlation_id="rcpt-9")

    assert excinfo.value.provider is ProviderKind.PRECISE
    assert excinfo.value.correlation_id == "rcpt-9"


@pytest.mark.parametrize("value,expected", [
    (8560, 8560),
    ("8560", 8560),
    (85.6, 86),
    ("1,250", 1250),
    (None, None),
])
def test_to_minor_units(value, expected):
    assert to_minor_units(value) == expected


@pytest.mark.parametrize("value,expected", [
    (85.60, 8560),
    ("85.60", 8560),
    (0.1, 10),
    ("1,234.50", 123450),
    (350, 35000),
])
def test_major_to_minor_units_is_exact(value, expected):
    assert major_to_minor_units(value) == expected


@pytest.mark.parametrize("value", ["abc", True])
def test_amounts_must_be_numeric(value):
    with pytest.raises(ValueError):
        major_to_minor_units(value)


def test_buddhist_era_date_is_converted():
    assert parse_issue_date("2568-01-15") == date(2025, 1, 15)


def test_christian_era_date_is_kept():
    assert parse_issue_date("2025-01-15") == date(2025, 1, 15)


@pytest.mark.parametrize("value", [None, "", "15/01/2568", "2568-13-40"])
def test_unparseable_dates_are_dropped(value):
    assert parse_issue_date(value) is None


@pytest.mark.parametrize("value,expected", [
    (None, 0.7),
    ("high", 0.7),
    (0.91, 0.91),
    (1.4, 1.0),
    (-0.2, 0.0),
])
def test_normalize_confidence(value, expected):
    assert normalize_confidence(value, default=0.7) == expected


def test_line_items_compute_missing_totals_and_skip_bad_entries():
    items = normalize_line_items([
        {"description": "น้ำดื่ม", "quantity": 2, "unit_price_satang": 1000},
        {"description": "ขนมปัง", "total": 25.0},
        {"quantity": 1, "unit_price_satang": 500},
        {"description": "ไม่มีราคา"},
        "garbage",
    ])

    assert [(i.description, i.quantity, i.unit_price, i.total) for i in items] == [
        ("น้ำดื่ม", 2, 1000, 2000),
        ("ขนมปัง", 1, 2500, 2500),
    ]


def test_line_items_not_a_list():
    assert normalize_line_items({"description": "x"}) == []


def test_build_extraction_result_from_minor_units():
    payload = {
        "total_amount_satang": 8560,
        "vat_amount_satang": 560,
        "vendor_name": "7-Eleven",
        "issue_date": "2568-01-15",
        "confidence": 0.88,
    }

    result = build_extraction_result(payload, ProviderKind.CHEAP, raw_text="OCR TEXT")

    assert result.total_amount == 8560
    assert result.tax_amount == 560
    assert result.currency == "THB"
    assert result.vendor_name == "7-Eleven"
    assert result.issue_date == date(2025, 1, 15)
    assert result.raw_text == "OCR TEXT"
    assert result.confidence == 0.88
    assert result.line_items == []
    assert result.provider is None


def test_build_extraction_result_from_major_units_with_default_confidence():
    payload = {"total_amount": "350.00", "tax_amount": 22.9, "vendor_name": 123}

    result = build_extraction_result(
        payload, ProviderKind.PRECISE, currency="USD", default_confidence=0.95
    )

    assert result.total_amount == 35000
    assert result.tax_amount == 2290
    assert result.currency == "USD"
    assert result.vendor_name == "123"
    assert result.confidence == 0.95


@pytest.mark.parametrize("payload", [
    {"vendor_name": "No total"},
    {"total_amount_satang": -100},
    {"total_amount": "lots"},
])
def test_build_extraction_result_rejects_bad_totals(payload):
    with pytest.raises(ProviderInvocationFailed) as excinfo:
        build_extraction_result(payload, ProviderKind.CHEAP, correlation_id="rcpt-1")

    assert excinfo.value.provider is ProviderKind.CHEAP
    assert "malformed" in str(excinfo.value)


@pytest.mark.parametrize("value", [float("inf"), "Infinity", "-inf", "NaN", "1e999"])
def test_non_finite_amounts_are_rejected(value):
    with pytest.raises(ValueError):
        to_minor_units(value)
    with pytest.raises(ValueError):
        major_to_minor_units(value)


@pytest.mark.parametrize("text", [
    '{"total_amount": Infinity}',
    '{"total_amount_satang": 1e999}',
    '{"total_amount": "Infinity"}',
    '{"total_amount": NaN}',
])
def test_non_finite_total_is_provider_failure(text):
    payload = parse_json_payload(text, ProviderKind.CHEAP)

    with pytest.raises(ProviderInvocationFailed, match="malformed"):
        build_extraction_result(payload, ProviderKind.CHEAP, correlation_id="rcpt-inf")


def test_non_finite_line_item_is_skipped():
    items = normalize_line_items([
        {"description": "Infinite coffee", "quantity": 1, "unit_price": float("inf")},
        {"description": "Tea", "quantity": 1, "unit_price_satang": 3500},
    ])

    assert [item.description for item in items] == ["Tea"]
