"""
Receipt validator & reconciler.

Turns an ``ExtractionResult`` into a finished ``Receipt``:

1. an explicit ``isValid: false`` rejects the receipt (``None``);
2. unusable line items are filtered out;
3. the total is recomputed from the surviving items plus tax whenever the
   source total is missing, items were dropped, or the numbers disagree;
4. every remaining optional field gets a fixed default.

Everything except (1) is absorbed: a degraded record beats no record.
"""
from __future__ import annotations

import logging
import unicodedata
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Iterable, Optional

from spendsmart.schemas import ExtractedItem, ExtractionResult, Receipt, ReceiptItem

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
IdFactory = Callable[[], str]

DEFAULT_STORE_NAME = "Unknown Store"
DEFAULT_RECEIPT_NAME = "Receipt"
DEFAULT_CURRENCY = "USD"
DEFAULT_PAYMENT_METHOD = "Unknown"
FALLBACK_ITEM_NAME = "Unknown Item"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid.uuid4())


def _default(value, fallback):
    """Substitute *fallback* for a missing field only; empty strings are kept."""
    return fallback if value is None else value


# ---------------------------------------------------------------------------
# Item filtering
# ---------------------------------------------------------------------------

def _is_content_char(ch: str) -> bool:
    # P* punctuation, S* symbols
    return unicodedata.category(ch)[0] not in "PS"


def is_meaningful_name(name: str) -> bool:
    return len(name) > 1 and any(_is_content_char(ch) for ch in name)


def keep_item(item: ExtractedItem) -> bool:
    """Discount lines always survive; everything else needs a real name."""
    return item.is_discount or is_meaningful_name(item.name)


def filter_items(items: Iterable[ExtractedItem]) -> list[ExtractedItem]:
    return [item for item in items if keep_item(item)]


def items_total(items: Iterable[ExtractedItem]) -> Decimal:
    return sum((item.price for item in items), Decimal("0"))


# ---------------------------------------------------------------------------
# Reconciler
# ---------------------------------------------------------------------------

class ReceiptReconciler:
    """Finalizes extraction results; clock and id source are injectable."""

    def __init__(self, clock: Optional[Clock] = None, id_factory: Optional[IdFactory] = None):
        self._clock = clock or _utcnow
        self._new_id = id_factory or _uuid

    def reconcile_total(
        self,
        result: ExtractionResult,
        kept: list[ExtractedItem],
    ) -> Decimal:
        tax = result.total_tax or Decimal("0")
        recomputed = items_total(kept) + tax

        if result.total_amount is None:
            return recomputed
        if len(kept) < len(result.items):
            logger.info(
                "Dropped %d item(s); total recomputed %s -> %s",
                len(result.items) - len(kept), result.total_amount, recomputed,
            )
            return recomputed
        # Nothing to reconcile against
        if not kept:
            return result.total_amount
        if result.total_amount != recomputed:
            logger.warning(
                "Source total %s disagrees with items + tax %s; using recomputed",
                result.total_amount, recomputed,
            )
            return recomputed
        return result.total_amount

    def _build_item(self, item: ExtractedItem) -> ReceiptItem:
        return ReceiptItem(
            id=self._new_id(),
            name=item.name or FALLBACK_ITEM_NAME,
            price=item.price,
            category=item.category,
            original_price=item.original_price,
            discount_description=item.discount_description,
            is_discount=item.is_discount,
        )

    def finalize(self, result: ExtractionResult, owner_id: str) -> Optional[Receipt]:
        if result.is_valid is False:
            logger.info("Receipt rejected by model: %s", result.message or "no message")
            return None

        kept = filter_items(result.items)
        total = self.reconcile_total(result, kept)

        receipt = Receipt(
            id=self._new_id(),
            user_id=owner_id,
            image_urls=[],
            total_amount=total,
            items=[self._build_item(item) for item in kept],
            store_name=_default(result.store_name, DEFAULT_STORE_NAME),
            store_address=_default(result.store_address, ""),
            receipt_name=_default(result.receipt_name, DEFAULT_RECEIPT_NAME),
            purchase_date=result.purchase_date or self._clock(),
            currency=_default(result.currency, DEFAULT_CURRENCY),
            payment_method=_default(result.payment_method, DEFAULT_PAYMENT_METHOD),
            total_tax=_default(result.total_tax, Decimal("0")),
            logo_search_term=result.logo_search_term,
        )
        logger.info(
            "Receipt finalized: %s (%d items, total %s %s)",
            receipt.id, len(receipt.items), receipt.total_amount, receipt.currency,
        )
        return receipt


def finalize(result: ExtractionResult, owner_id: str) -> Optional[Receipt]:
    """Finalize with the wall clock and random UUIDs."""
    return ReceiptReconciler().finalize(result, owner_id)
