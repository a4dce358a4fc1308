"""
SQLAlchemy model for the remote receipt store.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, JSON, String

from spendsmart.database import Base


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class ReceiptModel(Base):
    __tablename__ = "receipts"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    image_urls = Column(JSON, nullable=False, default=list)
    # Decimals and timestamps kept as strings so the round trip is exact
    total_amount = Column(String, nullable=False)
    total_tax = Column(String, nullable=False, default="0")
    items = Column(JSON, nullable=False, default=list)
    store_name = Column(String, nullable=False)
    store_address = Column(String, nullable=False, default="")
    receipt_name = Column(String, nullable=False)
    purchase_date = Column(String, nullable=False)
    currency = Column(String(8), nullable=False, default="USD")
    payment_method = Column(String, nullable=False, default="Unknown")
    logo_search_term = Column(String, nullable=True)
    created_at = Column(String, nullable=False, default=_utcnow)
