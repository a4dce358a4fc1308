"""
spendsmart-contracts — Canonical models for the receipt ingestion pipeline.

All pipeline stages produce and consume these Pydantic v2 models.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------

class Category(str, Enum):
    """Closed set of spending categories an item can belong to."""
    GROCERIES = "Groceries"
    DINING = "Dining"
    SHOPPING = "Shopping"
    HEALTH = "Health"
    TRANSPORT = "Transport"
    SERVICES = "Services"
    ENTERTAINMENT = "Entertainment"
    OTHER = "Other"


class SessionMode(str, Enum):
    GUEST = "guest"
    AUTHENTICATED = "authenticated"


class StorageSession(BaseModel):
    """Who is persisting, and where. Supplied by the caller on every call."""
    mode: SessionMode
    owner_id: str = Field(..., min_length=1)


# ---------------------------------------------------------------------------
# Intermediate extraction result (never leaves the normalizer/reconciler)
# ---------------------------------------------------------------------------

class ExtractedItem(BaseModel):
    name: str = "Unknown Item"
    price: Decimal = Decimal("0")
    category: Category = Category.OTHER
    original_price: Optional[Decimal] = None
    discount_description: Optional[str] = None
    is_discount: bool = False


class ExtractionResult(BaseModel):
    """Loosely-typed mirror of the model output; every field is optional."""
    is_valid: Optional[bool] = None
    message: Optional[str] = None
    total_amount: Optional[Decimal] = None
    total_tax: Optional[Decimal] = None
    currency: Optional[str] = None
    payment_method: Optional[str] = None
    purchase_date: Optional[datetime] = None
    store_name: Optional[str] = None
    store_address: Optional[str] = None
    receipt_name: Optional[str] = None
    logo_search_term: Optional[str] = None
    items: list[ExtractedItem] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Finalized receipt
# ---------------------------------------------------------------------------

class ReceiptItem(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = Field(..., min_length=1)
    price: Decimal = Field(..., ge=0)
    category: Category = Category.OTHER
    original_price: Optional[Decimal] = None
    discount_description: Optional[str] = None
    is_discount: bool = False


class Receipt(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    image_urls: list[str] = Field(default_factory=list)
    total_amount: Decimal
    items: list[ReceiptItem] = Field(default_factory=list)
    store_name: str = "Unknown Store"
    store_address: str = ""
    receipt_name: str = "Receipt"
    purchase_date: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    currency: str = "USD"
    payment_method: str = "Unknown"
    total_tax: Decimal = Decimal("0")
    logo_search_term: Optional[str] = None


# ---------------------------------------------------------------------------
# Upload outcome (tagged: remote URL xor local reference)
# ---------------------------------------------------------------------------

class RemoteUpload(BaseModel):
    kind: Literal["remote"] = "remote"
    url: str
    provider: str

    @property
    def reference(self) -> str:
        return self.url


class LocalUpload(BaseModel):
    kind: Literal["local"] = "local"
    location: str = Field(..., description="local://<filename>")

    @property
    def reference(self) -> str:
        return self.location


UploadOutcome = Annotated[Union[RemoteUpload, LocalUpload], Field(discriminator="kind")]


# ---------------------------------------------------------------------------
# AI gateway
# ---------------------------------------------------------------------------

class GenerationConfig(BaseModel):
    """Sampling / output options forwarded to the AI endpoint."""
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None
    max_output_tokens: Optional[int] = None
    response_format: Optional[str] = Field(
        default=None, description="e.g. 'application/json' for strict JSON output"
    )

    def to_wire(self) -> dict:
        wire = {
            "temperature": self.temperature,
            "topP": self.top_p,
            "topK": self.top_k,
            "maxOutputTokens": self.max_output_tokens,
            "responseFormat": self.response_format,
        }
        return {k: v for k, v in wire.items() if v is not None}


class ReceiptValidation(BaseModel):
    is_valid: bool = Field(..., alias="isValid")
    confidence: float = 0.0
    message: str = ""
    missing_elements: list[str] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


# ---------------------------------------------------------------------------
# API request / response envelopes
# ---------------------------------------------------------------------------

class ScanRequest(BaseModel):
    images: list[str] = Field(..., min_length=1, description="data URIs or bare base64")
    session_mode: SessionMode = SessionMode.GUEST
    user_id: str = Field(..., min_length=1)


class DeleteResponse(BaseModel):
    message: str
    receipt_id: str
