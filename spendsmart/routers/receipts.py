"""
Receipt API endpoints.

POST   /api/receipts/scan        — photo(s) → extracted, persisted receipt
POST   /api/receipts/validate    — does this photo look like a receipt?
GET    /api/receipts             — list the session owner's receipts
GET    /api/receipts/{id}        — get one receipt
DELETE /api/receipts/{id}        — delete one receipt
GET    /api/guest-id             — stable guest identifier for this install
"""
from __future__ import annotations

import logging
from pathlib import Path

from fastapi import APIRouter, Body, Depends, HTTPException, Query

from spendsmart.deps import get_data_dir, get_gateway, get_pipeline, get_storage
from spendsmart.errors import (
    BackendAPIError,
    InvalidReceiptError,
    PersistenceError,
    ReceiptRejectedError,
    user_message,
)
from spendsmart.pipeline import ReceiptPipeline
from spendsmart.pipeline.gateway import AIGateway
from spendsmart.pipeline.images import from_data_uri
from spendsmart.schemas import (
    DeleteResponse,
    Receipt,
    ReceiptValidation,
    ScanRequest,
    SessionMode,
    StorageSession,
)
from spendsmart.storage import StorageRouter, load_or_create_install_id

logger = logging.getLogger(__name__)
router = APIRouter()


def storage_session(
    user_id: str = Query(..., min_length=1),
    session_mode: SessionMode = Query(SessionMode.GUEST),
) -> StorageSession:
    return StorageSession(mode=session_mode, owner_id=user_id)


def _backend_http_error(exc: BackendAPIError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=user_message(exc))


# ── POST /api/receipts/scan ──────────────────────────────────────────────
@router.post("/receipts/scan", response_model=Receipt)
async def scan_receipt(
    req: ScanRequest,
    pipeline: ReceiptPipeline = Depends(get_pipeline),
):
    try:
        images = [from_data_uri(img) for img in req.images]
    except BackendAPIError as exc:
        raise _backend_http_error(exc)

    session = StorageSession(mode=req.session_mode, owner_id=req.user_id)
    logger.info("Scan: %d image(s), mode=%s", len(images), session.mode.value)

    try:
        return await pipeline.scan(images, session)
    except ReceiptRejectedError as exc:
        reason = "invalid_receipt" if isinstance(exc, InvalidReceiptError) else "unreadable"
        logger.info("Scan rejected (%s): %s", reason, exc.message)
        raise HTTPException(status_code=422, detail={"reason": reason, "message": exc.message})
    except BackendAPIError as exc:
        logger.warning("Scan failed: %r", exc)
        raise _backend_http_error(exc)
    except PersistenceError as exc:
        logger.error("Scan could not be stored: %s", exc)
        raise HTTPException(status_code=500, detail="Receipt could not be saved")


# ── POST /api/receipts/validate ──────────────────────────────────────────
@router.post("/receipts/validate", response_model=ReceiptValidation, response_model_by_alias=False)
async def validate_receipt(
    image: str = Body(..., embed=True),
    gateway: AIGateway = Depends(get_gateway),
):
    try:
        return await gateway.validate_receipt(from_data_uri(image))
    except BackendAPIError as exc:
        raise _backend_http_error(exc)


# ── GET /api/receipts ────────────────────────────────────────────────────
@router.get("/receipts", response_model=list[Receipt])
def list_receipts(
    session: StorageSession = Depends(storage_session),
    storage: StorageRouter = Depends(get_storage),
):
    return storage.list_receipts(session)


# ── GET /api/receipts/{receipt_id} ───────────────────────────────────────
@router.get("/receipts/{receipt_id}", response_model=Receipt)
def get_receipt(
    receipt_id: str,
    session: StorageSession = Depends(storage_session),
    storage: StorageRouter = Depends(get_storage),
):
    receipt = storage.get_receipt(receipt_id, session)
    if receipt is None:
        logger.warning("Receipt not found: %s", receipt_id)
        raise HTTPException(status_code=404, detail="Receipt not found")
    return receipt


# ── DELETE /api/receipts/{receipt_id} ────────────────────────────────────
@router.delete("/receipts/{receipt_id}", response_model=DeleteResponse)
def delete_receipt(
    receipt_id: str,
    session: StorageSession = Depends(storage_session),
    storage: StorageRouter = Depends(get_storage),
):
    try:
        deleted = storage.delete_receipt(receipt_id, session)
    except PersistenceError as exc:
        logger.error("Delete failed: %s", exc)
        raise HTTPException(status_code=500, detail="Receipt could not be deleted")
    if not deleted:
        raise HTTPException(status_code=404, detail="Receipt not found")
    return DeleteResponse(message="Receipt deleted successfully", receipt_id=receipt_id)


# ── GET /api/guest-id ────────────────────────────────────────────────────
@router.get("/guest-id")
def guest_id(data_dir: Path = Depends(get_data_dir)):
    return {"user_id": load_or_create_install_id(data_dir)}
