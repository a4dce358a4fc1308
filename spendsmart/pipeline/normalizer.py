"""
Response normalizer.

The model's output format is best-effort: the receipt object may arrive
bare, wrapped in a one-element array, or echoed inside a JSON-schema
``properties`` envelope, and any field may be missing or of the wrong
type.  ``normalize`` detects the shape and decodes field by field into an
``ExtractionResult``.  It never raises on malformed input; it returns
``None`` only when there is no object to decode at all.
"""
from __future__ import annotations

import json
import logging
import math
import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from spendsmart.schemas import Category, ExtractedItem, ExtractionResult

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d"
UNKNOWN_ITEM_NAME = "Unknown Item"

_FENCE_RE = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.DOTALL | re.IGNORECASE)
_CATEGORIES = {c.value.lower(): c for c in Category}


class PayloadShape(str, Enum):
    ARRAY_WRAPPED = "array_wrapped"
    SCHEMA_WRAPPED = "schema_wrapped"
    DIRECT = "direct"


# ---------------------------------------------------------------------------
# Shape detection
# ---------------------------------------------------------------------------

def _strip_fence(text: str) -> str:
    match = _FENCE_RE.match(text)
    return match.group(1) if match else text


def parse_json(raw_text: Optional[str]) -> Any:
    """Return the parsed JSON value, or ``None`` when there is nothing usable."""
    if not raw_text or not raw_text.strip():
        return None
    try:
        return json.loads(_strip_fence(raw_text))
    except ValueError:
        logger.warning("AI response is not valid JSON")
        return None


def detect_shape(value: Any) -> tuple[Optional[PayloadShape], Optional[dict]]:
    """Classify the top-level value and return the object to decode."""
    if isinstance(value, list):
        if not value or not isinstance(value[0], dict):
            return None, None
        return PayloadShape.ARRAY_WRAPPED, value[0]
    if isinstance(value, dict):
        nested = value.get("properties")
        if isinstance(nested, dict):
            return PayloadShape.SCHEMA_WRAPPED, nested
        return PayloadShape.DIRECT, value
    return None, None


# ---------------------------------------------------------------------------
# Per-field decoders (wrong type == absent)
# ---------------------------------------------------------------------------

def _opt_str(obj: dict, key: str) -> Optional[str]:
    value = obj.get(key)
    return value if isinstance(value, str) else None


def _opt_bool(obj: dict, key: str) -> Optional[bool]:
    value = obj.get(key)
    return value if isinstance(value, bool) else None


def _opt_decimal(obj: dict, key: str) -> Optional[Decimal]:
    value = obj.get(key)
    # bool is an int subclass; never a number here
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def _opt_date(obj: dict, key: str) -> Optional[datetime]:
    value = _opt_str(obj, key)
    if value is None:
        return None
    try:
        parsed = datetime.strptime(value.strip(), DATE_FORMAT)
    except ValueError:
        logger.warning("Ignoring unparseable %s: %r", key, value)
        return None
    return parsed.replace(tzinfo=timezone.utc)


def _category(obj: dict) -> Category:
    value = _opt_str(obj, "category")
    if value is None:
        return Category.OTHER
    return _CATEGORIES.get(value.strip().lower(), Category.OTHER)


def decode_item(obj: dict) -> ExtractedItem:
    price = _opt_decimal(obj, "price")
    if price is None or price < 0:
        price = Decimal("0")
    # An empty name is kept so the reconciler can drop the line
    name = _opt_str(obj, "name")
    return ExtractedItem(
        name=UNKNOWN_ITEM_NAME if name is None else name,
        price=price,
        category=_category(obj),
        original_price=_opt_decimal(obj, "originalPrice"),
        discount_description=_opt_str(obj, "discountDescription"),
        is_discount=bool(_opt_bool(obj, "isDiscount")),
    )


def decode_items(obj: dict) -> list[ExtractedItem]:
    raw_items = obj.get("items")
    if not isinstance(raw_items, list):
        return []
    items: list[ExtractedItem] = []
    for idx, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            logger.warning("Skipping non-object item at index %d", idx)
            continue
        items.append(decode_item(raw))
    return items


def decode_result(obj: dict) -> ExtractionResult:
    return ExtractionResult(
        is_valid=_opt_bool(obj, "isValid"),
        message=_opt_str(obj, "message"),
        total_amount=_opt_decimal(obj, "total_amount"),
        total_tax=_opt_decimal(obj, "total_tax"),
        currency=_opt_str(obj, "currency"),
        payment_method=_opt_str(obj, "payment_method"),
        purchase_date=_opt_date(obj, "purchase_date"),
        store_name=_opt_str(obj, "store_name"),
        store_address=_opt_str(obj, "store_address"),
        receipt_name=_opt_str(obj, "receipt_name"),
        logo_search_term=_opt_str(obj, "logo_search_term"),
        items=decode_items(obj),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def normalize(raw_text: Optional[str]) -> Optional[ExtractionResult]:
    value = parse_json(raw_text)
    if value is None:
        return None
    shape, obj = detect_shape(value)
    if obj is None:
        logger.warning("AI response has no receipt object (type=%s)", type(value).__name__)
        return None
    logger.info("Decoding AI response (shape=%s)", shape.value)
    return decode_result(obj)
