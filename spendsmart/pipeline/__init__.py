"""
SpendSmart receipt ingestion pipeline.

Orchestrates: AI extraction → normalize → validate & reconcile →
upload images → persist.
"""
import logging
from typing import Sequence

from spendsmart.errors import InvalidReceiptError, UnreadableResponseError
from spendsmart.pipeline.gateway import AIGateway
from spendsmart.pipeline.normalizer import normalize
from spendsmart.pipeline.reconciler import ReceiptReconciler
from spendsmart.pipeline.uploader import ImageUploader
from spendsmart.schemas import Receipt, StorageSession
from spendsmart.storage.router import StorageRouter

logger = logging.getLogger(__name__)


class ReceiptPipeline:
    def __init__(
        self,
        gateway: AIGateway,
        uploader: ImageUploader,
        storage: StorageRouter,
        reconciler: ReceiptReconciler | None = None,
    ) -> None:
        self.gateway = gateway
        self.uploader = uploader
        self.storage = storage
        self.reconciler = reconciler or ReceiptReconciler()

    async def extract(self, image: bytes, owner_id: str) -> Receipt:
        """Turn one receipt photo into a finalized (not yet persisted) receipt.

        Raises ``InvalidReceiptError`` when the model rejects the image and
        ``UnreadableResponseError`` when its answer cannot be decoded.
        """
        logger.info("Pipeline start — extract")
        raw_text = await self.gateway.extract_receipt(image)

        logger.info("Pipeline — normalize")
        result = normalize(raw_text)
        if result is None:
            raise UnreadableResponseError()

        logger.info("Pipeline — reconcile")
        receipt = self.reconciler.finalize(result, owner_id)
        if receipt is None:
            raise InvalidReceiptError(result.message)
        return receipt

    async def scan(self, images: Sequence[bytes], session: StorageSession) -> Receipt:
        """Run the full pipeline.

        Text is extracted from the first image only; every image is uploaded.
        Nothing is uploaded or stored unless extraction produced a receipt.
        """
        if not images:
            raise ValueError("at least one image is required")

        receipt = await self.extract(images[0], session.owner_id)

        logger.info("Pipeline — upload %d image(s)", len(images))
        references = await self.uploader.upload_many(images)
        receipt = receipt.model_copy(update={"image_urls": references})

        logger.info("Pipeline — persist")
        stored = self.storage.persist(receipt, session)
        logger.info("Receipt stored: %s", stored.id)
        return stored
