"""
FastAPI dependency providers.

Components take their collaborators as constructor arguments; this module
is the only place that reads ``settings`` to wire them together.  Tests
override ``get_backend_client``, ``get_data_dir`` and ``get_db``.
"""
from __future__ import annotations

from pathlib import Path

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from spendsmart.config import settings
from spendsmart.database import get_db
from spendsmart.pipeline import ReceiptPipeline
from spendsmart.pipeline.backend import BackendClient
from spendsmart.pipeline.gateway import AIGateway, receipt_generation_config
from spendsmart.pipeline.uploader import ImageUploader
from spendsmart.storage import LocalReceiptStore, RemoteReceiptStore, StorageRouter

IMAGES_SUBDIR = "images"


def get_data_dir() -> Path:
    return Path(settings.DATA_DIR)


def get_backend_client(request: Request) -> BackendClient:
    return BackendClient(
        request.app.state.http_client,
        auth_token=settings.BACKEND_AUTH_TOKEN,
        secret_key=settings.BACKEND_SECRET_KEY,
    )


def get_local_store(data_dir: Path = Depends(get_data_dir)) -> LocalReceiptStore:
    return LocalReceiptStore(data_dir, key=settings.LOCAL_STORE_KEY)


def get_storage(
    db: Session = Depends(get_db),
    local: LocalReceiptStore = Depends(get_local_store),
) -> StorageRouter:
    return StorageRouter(local=local, remote=RemoteReceiptStore(db))


def get_gateway(backend: BackendClient = Depends(get_backend_client)) -> AIGateway:
    config = receipt_generation_config(
        temperature=settings.AI_TEMPERATURE,
        top_p=settings.AI_TOP_P,
        top_k=settings.AI_TOP_K,
        max_output_tokens=settings.AI_MAX_OUTPUT_TOKENS,
    )
    return AIGateway(backend, receipt_config=config, jpeg_quality=settings.JPEG_QUALITY)


def get_uploader(
    backend: BackendClient = Depends(get_backend_client),
    data_dir: Path = Depends(get_data_dir),
) -> ImageUploader:
    return ImageUploader(
        backend,
        images_dir=data_dir / IMAGES_SUBDIR,
        max_dimension=settings.MAX_IMAGE_DIMENSION,
        jpeg_quality=settings.JPEG_QUALITY,
    )


def get_pipeline(
    gateway: AIGateway = Depends(get_gateway),
    uploader: ImageUploader = Depends(get_uploader),
    storage: StorageRouter = Depends(get_storage),
) -> ReceiptPipeline:
    return ReceiptPipeline(gateway=gateway, uploader=uploader, storage=storage)
