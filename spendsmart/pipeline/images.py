"""
Image helpers.

Receipt photos are normalised to JPEG before they leave the device: once at
full size for AI extraction, and once downscaled for hosting.  Pillow is the
imaging backend.
"""
from __future__ import annotations

import base64
import binascii
from io import BytesIO

from PIL import Image, ImageOps, UnidentifiedImageError

from spendsmart.errors import ImageProcessingError

DATA_URI_PREFIX = "data:image/jpeg;base64,"


def _open(image_data: bytes) -> Image.Image:
    try:
        img = Image.open(BytesIO(image_data))
        img.load()
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise ImageProcessingError(f"cannot decode image: {exc}") from exc
    # Phone cameras store rotation in EXIF
    return ImageOps.exif_transpose(img)


def _save_jpeg(img: Image.Image, quality: int) -> bytes:
    if img.mode != "RGB":
        img = img.convert("RGB")
    buf = BytesIO()
    try:
        img.save(buf, format="JPEG", quality=quality)
    except (OSError, ValueError) as exc:
        raise ImageProcessingError(f"cannot encode image: {exc}") from exc
    return buf.getvalue()


def encode_jpeg(image_data: bytes, quality: int = 80) -> bytes:
    """Re-encode arbitrary image bytes as JPEG."""
    return _save_jpeg(_open(image_data), quality)


def fit_within(size: tuple[int, int], max_dimension: int) -> tuple[int, int]:
    """Return *size* scaled so neither side exceeds *max_dimension*.

    Aspect ratio is preserved and images that already fit are left alone.
    """
    width, height = size
    longest = max(width, height)
    if longest <= max_dimension:
        return width, height
    # Integer arithmetic keeps the long side exactly at the bound
    return (
        max(1, width * max_dimension // longest),
        max(1, height * max_dimension // longest),
    )


def resize_jpeg(image_data: bytes, max_dimension: int = 1000, quality: int = 80) -> bytes:
    """Downscale to fit ``max_dimension`` and return JPEG bytes."""
    img = _open(image_data)
    target = fit_within(img.size, max_dimension)
    if target != img.size:
        img = img.resize(target, Image.Resampling.LANCZOS)
    return _save_jpeg(img, quality)


def to_data_uri(jpeg: bytes) -> str:
    return DATA_URI_PREFIX + base64.b64encode(jpeg).decode("ascii")


def from_data_uri(value: str) -> bytes:
    """Decode a ``data:`` URI or a bare base64 string into raw bytes."""
    payload = value.split(",", 1)[1] if value.startswith("data:") else value
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ImageProcessingError("image is not valid base64") from exc
