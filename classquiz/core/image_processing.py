"""Image normalization for question uploads.

Uploaded images are decoded with Qt's ``QImage``, fitted into a bounding box
and re-encoded as WebP so stored question images stay small and uniform.
``QImage`` works without a running ``QApplication``, which keeps this module
usable from the API server.
"""

from __future__ import annotations

import base64
from pathlib import PurePath
import time
from uuid import uuid4

from PySide6.QtCore import QBuffer, QByteArray, QIODevice, Qt
from PySide6.QtGui import QImage

from classquiz.constants import messages
from classquiz.constants.quiz_constants import (
    IMAGE_ALLOWED_TYPES,
    IMAGE_MAX_BYTES,
    IMAGE_MAX_HEIGHT,
    IMAGE_MAX_WIDTH,
    IMAGE_OUTPUT_CONTENT_TYPE,
    IMAGE_OUTPUT_EXTENSION,
    IMAGE_OUTPUT_FORMAT,
    IMAGE_QUALITY,
)
from classquiz.core.errors import DecodeError, EncodeError
from classquiz.core.models import ImageValidation, ProcessedImage

_SIZE_UNITS = ("Bytes", "KB", "MB", "GB")


def validate_image_file(content_type: str | None, size_bytes: int) -> ImageValidation:
    """Check the declared type and size of an upload before decoding it."""
    if (content_type or "").lower() not in IMAGE_ALLOWED_TYPES:
        return ImageValidation(valid=False, error=messages.IMAGE_INVALID_TYPE)
    if size_bytes > IMAGE_MAX_BYTES:
        return ImageValidation(valid=False, error=messages.IMAGE_TOO_LARGE)
    return ImageValidation(valid=True)


def fit_within(width: int, height: int, max_width: int, max_height: int) -> tuple[int, int]:
    """Return dimensions scaled down to fit the box, keeping the aspect ratio.

    Images already inside the box keep their size; nothing is ever upscaled.
    """
    if width <= max_width and height <= max_height:
        return width, height
    scale = min(max_width / width, max_height / height)
    return max(1, round(width * scale)), max(1, round(height * scale))


def process_image(
    data: bytes,
    filename: str,
    max_width: int = IMAGE_MAX_WIDTH,
    max_height: int = IMAGE_MAX_HEIGHT,
    quality: float = IMAGE_QUALITY,
) -> ProcessedImage:
    """Decode, resize and re-encode an uploaded image.

    Args:
        data: Raw bytes of the uploaded file.
        filename: Original file name; its stem names the output file.
        max_width: Bounding box width in pixels.
        max_height: Bounding box height in pixels.
        quality: Encoder quality between 0 and 1.

    Raises:
        DecodeError: ``data`` is not a decodable raster image.
        EncodeError: The encoder produced no output.
    """
    image = QImage.fromData(QByteArray(data))
    if image.isNull():
        raise DecodeError(messages.IMAGE_DECODE_FAILED)

    width, height = fit_within(image.width(), image.height(), max_width, max_height)
    if (width, height) != (image.width(), image.height()):
        image = image.scaled(
            width,
            height,
            Qt.AspectRatioMode.IgnoreAspectRatio,
            Qt.TransformationMode.SmoothTransformation,
        )

    encoded = _encode(image, quality)
    stem = PurePath(filename).name.split(".")[0] or "image"
    preview = base64.b64encode(encoded).decode("ascii")
    return ProcessedImage(
        filename=f"{stem}.{IMAGE_OUTPUT_EXTENSION}",
        content_type=IMAGE_OUTPUT_CONTENT_TYPE,
        data=encoded,
        width=width,
        height=height,
        preview_data_uri=f"data:{IMAGE_OUTPUT_CONTENT_TYPE};base64,{preview}",
        original_size=len(data),
        processed_size=len(encoded),
    )


def _encode(image: QImage, quality: float) -> bytes:
    qt_quality = max(0, min(100, round(quality * 100)))
    buffer = QBuffer()
    buffer.open(QIODevice.OpenModeFlag.WriteOnly)
    try:
        saved = image.save(buffer, IMAGE_OUTPUT_FORMAT, qt_quality)
        encoded = bytes(buffer.data())
    finally:
        buffer.close()
    if not saved or not encoded:
        raise EncodeError(messages.IMAGE_ENCODE_FAILED)
    return encoded


def format_file_size(size_bytes: int) -> str:
    """Render a byte count as ``Bytes``/``KB``/``MB``/``GB`` with two decimals."""
    if size_bytes <= 0:
        return "0 Bytes"
    # floor(log1024(n)), computed exactly from the bit length
    index = min((int(size_bytes).bit_length() - 1) // 10, len(_SIZE_UNITS) - 1)
    value = f"{size_bytes / 1024**index:.2f}".rstrip("0").rstrip(".")
    return f"{value} {_SIZE_UNITS[index]}"


def build_storage_path() -> str:
    """Object name for an upload: epoch milliseconds plus a random suffix."""
    return f"{int(time.time() * 1000)}-{uuid4().hex[:12]}.{IMAGE_OUTPUT_EXTENSION}"
