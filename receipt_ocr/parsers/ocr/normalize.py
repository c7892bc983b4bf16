"""
Response normalization - LLM JSON to ExtractionResult

Both providers answer with a JSON object (sometimes wrapped in markdown
code fences). This module turns that payload into the canonical
ExtractionResult:
- Amounts become integers in the smallest currency unit
- Buddhist Era dates (BE = CE + 543) become Christian Era dates
- Confidence is clamped to 0-1, missing confidence gets a provider default
- Optional fields are null-coalesced
"""
import json
import re
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

import structlog
from pydantic import ValidationError

from receipt_ocr.common.schemas.extraction import ExtractionResult, LineItem, ProviderKind
from receipt_ocr.parsers.ocr.base import ProviderInvocationFailed

logger = structlog.get_logger()

BUDDHIST_ERA_OFFSET = 543
# Years above this are assumed to be Buddhist Era (2569 BE = 2026 CE)
BUDDHIST_ERA_MIN_YEAR = 2400

_CODE_FENCE = re.compile(r"```(?:json)?\s*")

# Accepted keys, minor units first
TOTAL_MINOR_KEYS = ("total_amount_satang", "total_amount_minor")
TOTAL_MAJOR_KEYS = ("total_amount",)
TAX_MINOR_KEYS = ("vat_amount_satang", "tax_amount_satang", "tax_amount_minor")
TAX_MAJOR_KEYS = ("vat_amount", "tax_amount")


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences the model may wrap JSON in"""
    return _CODE_FENCE.sub("", text).strip()


def parse_json_payload(
    text: str,
    provider: ProviderKind,
    correlation_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Parse model output into a JSON object.

    Raises:
        ProviderInvocationFailed: If the text is not a JSON object
    """
    json_text = strip_code_fences(text or "")

    try:
        parsed = json.loads(json_text)
    except json.JSONDecodeError as e:
        logger.error("provider_returned_invalid_json",
                    provider=provider.value,
                    correlation_id=correlation_id,
                    content=json_text[:200])
        raise ProviderInvocationFailed(
            f"{provider.value} provider returned invalid JSON",
            provider=provider,
            correlation_id=correlation_id,
        ) from e

    if not isinstance(parsed, dict):
        raise ProviderInvocationFailed(
            f"{provider.value} provider returned {type(parsed).__name__}, expected JSON object",
            provider=provider,
            correlation_id=correlation_id,
        )

    return parsed


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValueError(f"Amount must be numeric, got {value!r}")
    try:
        amount = Decimal(str(value).replace(",", ""))
    except InvalidOperation as e:
        raise ValueError(f"Amount must be numeric, got {value!r}") from e
    if not amount.is_finite():
        raise ValueError(f"Amount must be finite, got {value!r}")
    return amount


def _round_half_up(amount: Decimal) -> int:
    try:
        return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except InvalidOperation as e:
        raise ValueError(f"Amount out of range: {amount}") from e


def to_minor_units(value: Any) -> Optional[int]:
    """
    Coerce an amount already expressed in the smallest currency unit.

    85.6 satang rounds half-up to 86; strings are accepted.

    Raises:
        ValueError: If the value is not a finite number
    """
    if value is None:
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return _round_half_up(_to_decimal(value))


def major_to_minor_units(value: Any) -> Optional[int]:
    """
    Convert an amount in major units (Baht) to minor units (Satang).

    Uses Decimal so 85.60 becomes exactly 8560.
    """
    if value is None:
        return None
    return _round_half_up(_to_decimal(value) * 100)


def parse_issue_date(value: Any) -> Optional[date]:
    """
    Parse YYYY-MM-DD, converting Buddhist Era years to Christian Era.

    Unparseable dates are dropped (None) rather than failing the receipt.
    """
    if value is None or value == "":
        return None

    try:
        year, month, day = (int(part) for part in str(value).strip()[:10].split("-"))
        if year > BUDDHIST_ERA_MIN_YEAR:
            year -= BUDDHIST_ERA_OFFSET
        return date(year, month, day)
    except ValueError:
        logger.warning("issue_date_unparseable", value=str(value))
        return None


def normalize_confidence(value: Any, default: float) -> float:
    """Clamp confidence into 0-1; missing or non-numeric becomes the default"""
    if value is None:
        return default
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        logger.warning("confidence_not_numeric", value=str(value), default=default)
        return default

    if not 0.0 <= confidence <= 1.0:
        logger.warning("confidence_out_of_range", value=confidence)
        confidence = min(max(confidence, 0.0), 1.0)
    return confidence


def _first_present(payload: Dict[str, Any], keys) -> Any:
    for key in keys:
        if payload.get(key) is not None:
            return payload[key]
    return None


def _amount(payload: Dict[str, Any], minor_keys, major_keys) -> Optional[int]:
    minor = _first_present(payload, minor_keys)
    if minor is not None:
        return to_minor_units(minor)
    return major_to_minor_units(_first_present(payload, major_keys))


def normalize_line_items(raw_items: Any) -> List[LineItem]:
    """
    Coerce model line items; malformed entries are skipped.

    A missing line total is computed from quantity x unit price.
    """
    if not isinstance(raw_items, list):
        return []

    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict) or not raw.get("description"):
            logger.warning("line_item_skipped", index=index, reason="missing description")
            continue
        try:
            quantity = to_minor_units(raw.get("quantity"))
            quantity = 1 if quantity is None else quantity
            unit_price = _amount(raw, ("unit_price_satang", "unit_price_minor"), ("unit_price",))
            total = _amount(raw, ("total_satang", "total_minor"), ("total",))
            if unit_price is None and total is None:
                raise ValueError("line item has no price")
            if total is None:
                total = quantity * unit_price
            if unit_price is None:
                unit_price = total // quantity if quantity else total
            items.append(LineItem(
                description=str(raw["description"]),
                quantity=quantity,
                unit_price=unit_price,
                total=total,
            ))
        except (ValueError, ValidationError) as e:
            logger.warning("line_item_skipped", index=index, reason=str(e))

    return items


def build_extraction_result(
    payload: Dict[str, Any],
    provider: ProviderKind,
    currency: str = "THB",
    default_confidence: float = 0.0,
    raw_text: Optional[str] = None,
    correlation_id: Optional[str] = None,
) -> ExtractionResult:
    """
    Build an ExtractionResult from a provider's JSON payload.

    Raises:
        ProviderInvocationFailed: If the total is missing or invalid
    """
    try:
        total_amount = _amount(payload, TOTAL_MINOR_KEYS, TOTAL_MAJOR_KEYS)
        if total_amount is None:
            raise ValueError("response is missing the total amount")

        return ExtractionResult(
            total_amount=total_amount,
            currency=currency,
            tax_amount=_amount(payload, TAX_MINOR_KEYS, TAX_MAJOR_KEYS),
            vendor_name=str(payload["vendor_name"]) if payload.get("vendor_name") else None,
            issue_date=parse_issue_date(payload.get("issue_date")),
            raw_text=raw_text if raw_text is not None else payload.get("raw_text"),
            confidence=normalize_confidence(payload.get("confidence"), default_confidence),
            line_items=normalize_line_items(payload.get("line_items")),
        )
    except (ValueError, ValidationError) as e:
        logger.error("provider_response_malformed",
                    provider=provider.value,
                    correlation_id=correlation_id,
                    error=str(e))
        raise ProviderInvocationFailed(
            f"{provider.value} provider returned malformed receipt: {e}",
            provider=provider,
            correlation_id=correlation_id,
        ) from e
