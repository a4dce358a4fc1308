"""
Remote receipt store for authenticated sessions.

One row per receipt in the ``receipts`` table.  Items and image references
are JSON columns; every query is scoped to the owning user.
"""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from spendsmart.errors import PersistenceError
from spendsmart.models.receipt import ReceiptModel
from spendsmart.schemas import Receipt, ReceiptItem

logger = logging.getLogger(__name__)


def to_row(receipt: Receipt) -> ReceiptModel:
    return ReceiptModel(
        id=receipt.id,
        user_id=receipt.user_id,
        image_urls=list(receipt.image_urls),
        total_amount=str(receipt.total_amount),
        total_tax=str(receipt.total_tax),
        items=[item.model_dump(mode="json") for item in receipt.items],
        store_name=receipt.store_name,
        store_address=receipt.store_address,
        receipt_name=receipt.receipt_name,
        purchase_date=receipt.purchase_date.isoformat(),
        currency=receipt.currency,
        payment_method=receipt.payment_method,
        logo_search_term=receipt.logo_search_term,
    )


def from_row(row: ReceiptModel) -> Receipt:
    return Receipt(
        id=row.id,
        user_id=row.user_id,
        image_urls=list(row.image_urls or []),
        total_amount=Decimal(row.total_amount),
        total_tax=Decimal(row.total_tax),
        items=[ReceiptItem.model_validate(item) for item in row.items or []],
        store_name=row.store_name,
        store_address=row.store_address,
        receipt_name=row.receipt_name,
        purchase_date=datetime.fromisoformat(row.purchase_date),
        currency=row.currency,
        payment_method=row.payment_method,
        logo_search_term=row.logo_search_term,
    )


class RemoteReceiptStore:
    def __init__(self, db: Session) -> None:
        self._db = db

    def _query(self, owner_id: str):
        return self._db.query(ReceiptModel).filter(ReceiptModel.user_id == owner_id)

    def insert(self, receipt: Receipt) -> Receipt:
        try:
            self._db.add(to_row(receipt))
            self._db.commit()
        except SQLAlchemyError as exc:
            self._db.rollback()
            logger.error("Remote insert failed for %s: %s", receipt.id, exc)
            raise PersistenceError(f"could not store receipt {receipt.id}") from exc

        stored = self.get(receipt.user_id, receipt.id)
        if stored is None:
            raise PersistenceError(f"receipt {receipt.id} missing after insert")
        logger.info("Stored receipt %s for user %s", receipt.id, receipt.user_id)
        return stored

    def list_for_owner(self, owner_id: str) -> list[Receipt]:
        rows = self._query(owner_id).order_by(ReceiptModel.purchase_date.desc()).all()
        logger.info("Found %d receipts for user %s", len(rows), owner_id)
        return [from_row(r) for r in rows]

    def get(self, owner_id: str, receipt_id: str) -> Optional[Receipt]:
        row = self._query(owner_id).filter(ReceiptModel.id == receipt_id).first()
        return from_row(row) if row else None

    def delete(self, owner_id: str, receipt_id: str) -> bool:
        row = self._query(owner_id).filter(ReceiptModel.id == receipt_id).first()
        if not row:
            return False
        try:
            self._db.delete(row)
            self._db.commit()
        except SQLAlchemyError as exc:
            self._db.rollback()
            raise PersistenceError(f"could not delete receipt {receipt_id}") from exc
        logger.info("Deleted receipt %s", receipt_id)
        return True
