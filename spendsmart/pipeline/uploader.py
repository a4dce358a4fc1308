"""
Image upload pipeline.

Each receipt photo is downscaled, JPEG-encoded and sent to the image host
through the backend proxy.  Any failure along the way falls back to writing
the JPEG to on-device storage and returning a ``local://<filename>``
reference, so ``upload`` itself never fails because of the network.
"""
from __future__ import annotations

import asyncio
import logging
import os
import time
import uuid
from pathlib import Path
from typing import Callable, Iterable, Optional

from spendsmart.errors import (
    BackendAPIError,
    DecodingError,
    ImageProcessingError,
    PersistenceError,
)
from spendsmart.pipeline.backend import (
    UPLOAD_IMAGE_ENDPOINT,
    UPLOAD_IMAGES_ENDPOINT,
    BackendClient,
)
from spendsmart.pipeline.images import resize_jpeg, to_data_uri
from spendsmart.schemas import LocalUpload, RemoteUpload

logger = logging.getLogger(__name__)

LOCAL_PREFIX = "local://"


def is_local_reference(reference: str) -> bool:
    return reference.startswith(LOCAL_PREFIX)


def _random_suffix() -> str:
    return uuid.uuid4().hex[:8]


class ImageUploader:
    def __init__(
        self,
        backend: BackendClient,
        images_dir: str | os.PathLike,
        max_dimension: int = 1000,
        jpeg_quality: int = 80,
        clock: Optional[Callable[[], float]] = None,
        random_suffix: Optional[Callable[[], str]] = None,
    ) -> None:
        self._backend = backend
        self.images_dir = Path(images_dir)
        self._max_dimension = max_dimension
        self._jpeg_quality = jpeg_quality
        self._clock = clock or time.time
        self._random_suffix = random_suffix or _random_suffix

    # ── local fallback ───────────────────────────────────────────────────
    def save_local(self, data: bytes) -> LocalUpload:
        filename = f"receipt_{int(self._clock())}_{self._random_suffix()}.jpg"
        path = self.images_dir / filename
        try:
            self.images_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise PersistenceError(f"could not write {path}: {exc}") from exc
        logger.info("Image stored locally: %s (%d bytes)", filename, len(data))
        return LocalUpload(location=LOCAL_PREFIX + filename)

    def local_path(self, reference: str) -> Path:
        """Resolve a ``local://`` reference to its file under ``images_dir``."""
        if not is_local_reference(reference):
            raise ValueError(f"not a local reference: {reference}")
        filename = reference[len(LOCAL_PREFIX):]
        # References only ever name a file directly inside images_dir
        if not filename or Path(filename).name != filename:
            raise ValueError(f"invalid local reference: {reference}")
        return self.images_dir / filename

    # ── remote ───────────────────────────────────────────────────────────
    async def _upload_remote(self, jpeg: bytes) -> RemoteUpload:
        payload = await self._backend.post_json(
            UPLOAD_IMAGE_ENDPOINT,
            {"image": to_data_uri(jpeg)},
            requires_auth=True,
        )
        data = payload.get("data")
        if payload.get("success") is False or not isinstance(data, dict):
            raise DecodingError("upload response reported failure")
        url = data.get("url")
        if not isinstance(url, str) or not url:
            raise DecodingError("upload response has no url")
        return RemoteUpload(url=url, provider=str(data.get("provider") or "unknown"))

    async def upload_outcome(self, image: bytes) -> RemoteUpload | LocalUpload:
        try:
            jpeg = resize_jpeg(image, self._max_dimension, self._jpeg_quality)
        except ImageProcessingError as exc:
            logger.warning("Image could not be processed (%s); storing original bytes", exc)
            return self.save_local(image)

        try:
            outcome = await self._upload_remote(jpeg)
        except BackendAPIError as exc:
            logger.warning("Remote upload failed (%s); falling back to local storage", exc)
            return self.save_local(jpeg)
        logger.info("Image uploaded via %s", outcome.provider)
        return outcome

    async def upload(self, image: bytes) -> str:
        """Return a location reference for *image*: remote URL or ``local://`` token."""
        return (await self.upload_outcome(image)).reference

    async def upload_many(self, images: Iterable[bytes]) -> list[str]:
        """Upload independently and concurrently; order follows the input.

        An image that could neither be uploaded nor written locally is left
        out of the result instead of failing the whole batch.
        """
        results = await asyncio.gather(
            *(self.upload_outcome(img) for img in images), return_exceptions=True
        )
        outcomes = []
        for result in results:
            if isinstance(result, PersistenceError):
                logger.error("Image dropped: %s", result)
            elif isinstance(result, BaseException):
                raise result
            else:
                outcomes.append(result)
        local = sum(1 for o in outcomes if isinstance(o, LocalUpload))
        if local:
            logger.warning("%d of %d image(s) fell back to local storage", local, len(results))
        return [o.reference for o in outcomes]

    async def upload_batch_remote(self, images: Iterable[bytes]) -> list[str]:
        """Upload all images in one request to the multi-image endpoint.

        Unlike ``upload`` this has no fallback; classified errors propagate.
        """
        uris = [
            to_data_uri(resize_jpeg(img, self._max_dimension, self._jpeg_quality))
            for img in images
        ]
        payload = await self._backend.post_json(
            UPLOAD_IMAGES_ENDPOINT, {"images": uris}, requires_auth=True
        )
        data = payload.get("data")
        urls = data.get("urls") if isinstance(data, dict) else None
        if not isinstance(urls, list) or not all(isinstance(u, str) for u in urls):
            raise DecodingError("multi-upload response has no urls")
        if len(urls) != len(uris):
            raise DecodingError(f"expected {len(uris)} urls, got {len(urls)}")
        return urls

    # ── read back ────────────────────────────────────────────────────────
    async def load_image(self, reference: str) -> Optional[bytes]:
        """Return the bytes behind a reference, or ``None`` if unavailable."""
        if is_local_reference(reference):
            try:
                return self.local_path(reference).read_bytes()
            except (OSError, ValueError) as exc:
                logger.warning("Error loading local image %s: %s", reference, exc)
                return None
        try:
            return await self._backend.get_bytes(reference)
        except BackendAPIError as exc:
            logger.warning("Error loading remote image %s: %s", reference, exc)
            return None
