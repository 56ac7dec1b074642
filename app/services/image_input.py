"""Decode and validate uploaded product images."""
from __future__ import annotations

import base64
import binascii
import logging
import re
import uuid
import warnings
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import BinaryIO, Iterable, Optional

from PIL import Image, ImageFile, UnidentifiedImageError

from app.errors import InvalidRequest, ReadError, UnsupportedFormat
from app.models import SUPPORTED_MIME_TYPES, ImageAsset
from app.models.payloads import extension_for

logger = logging.getLogger(__name__)

# 允许 Pillow 读取部分截断的 JPEG/WebP
ImageFile.LOAD_TRUNCATED_IMAGES = True

# 超过该像素数的图片不解码
MAX_INPUT_PIXELS = 64_000_000

DATA_URL_RX = re.compile(r"^data:(?P<mime>[^;,]*)(?P<params>(?:;[^;,]*)*),", re.IGNORECASE)

_MIME_ALIASES = {"image/jpg": "image/jpeg", "image/pjpeg": "image/jpeg"}

_PIL_FORMATS = {
    "PNG": "image/png",
    "JPEG": "image/jpeg",
    "MPO": "image/jpeg",
    "WEBP": "image/webp",
    "GIF": "image/gif",
}


def _canonical_mime(value: str | None) -> str:
    mime = (value or "").strip().lower()
    return _MIME_ALIASES.get(mime, mime)


def _clean_filename(name: str | None) -> str:
    stem = re.sub(r"[^0-9A-Za-z._-]", "_", (name or "").strip())
    return stem or "upload"


def _match_prefix(data_url: str) -> tuple[re.Match[str], str]:
    match = DATA_URL_RX.match(data_url)
    if not match:
        raise UnsupportedFormat("Unsupported image format: expected a data:image/... URL.")
    mime = _canonical_mime(match.group("mime"))
    if mime not in SUPPORTED_MIME_TYPES:
        raise UnsupportedFormat(
            f"Unsupported image format: {mime or 'unknown'}.",
            detail={"mime_type": mime or None},
        )
    return match, mime


def decode_data_url(data_url: str, *, filename: str | None = None) -> ImageAsset:
    """Validate a data URL's prefix and decode its payload into an ImageAsset."""

    text = (data_url or "").strip()
    match, mime = _match_prefix(text)

    params = match.group("params").lower()
    if ";base64" not in params:
        raise ReadError("Only base64-encoded data URLs are supported.")

    encoded = text[match.end():]
    try:
        data = base64.b64decode(encoded, validate=False)
    except (binascii.Error, ValueError) as exc:
        raise ReadError("Failed to read the image file.") from exc
    if not data:
        raise ReadError("The uploaded image is empty.")

    name = _clean_filename(filename)
    if "." not in name:
        name = f"{name}{extension_for(mime)}"
    return ImageAsset(data=data, mime_type=mime, filename=name)


def decode_upload(data: bytes, claimed_mime: str | None, *, filename: str | None = None) -> ImageAsset:
    """Normalise a raw multipart upload.

    The claimed MIME type is turned into the same ``data:<mime>;base64,``
    prefix a browser would produce, so binary uploads and data URLs go
    through one validation path. The filename extension is never consulted.
    """

    mime = _canonical_mime(claimed_mime) or "application/octet-stream"
    encoded = base64.b64encode(data or b"").decode("ascii")
    return decode_data_url(f"data:{mime};base64,{encoded}", filename=filename)


def read_upload(handle: BinaryIO) -> bytes:
    try:
        return handle.read()
    except OSError as exc:
        raise ReadError("Failed to read the image file.") from exc


def ensure_within_limit(asset: ImageAsset, max_bytes: int) -> ImageAsset:
    if max_bytes and asset.size > max_bytes:
        raise InvalidRequest(
            f"Image exceeds the permitted size of {max_bytes} bytes.",
            suggestions=["Try a smaller or more compressed image."],
        )
    return asset


def _too_many_pixels() -> InvalidRequest:
    return InvalidRequest(
        "Image dimensions are too large to process.",
        suggestions=["Resize the image to at most 8000 pixels per side and try again."],
        detail={"max_pixels": MAX_INPUT_PIXELS},
    )


def preprocess(asset: ImageAsset, *, max_side: int = 1024) -> ImageAsset:
    """Verify the bytes decode as an image and downscale oversized uploads."""

    try:
        with warnings.catch_warnings():
            warnings.simplefilter("error", Image.DecompressionBombWarning)
            image = Image.open(BytesIO(asset.data))
    except (Image.DecompressionBombError, Image.DecompressionBombWarning) as exc:
        raise _too_many_pixels() from exc
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise ReadError("Failed to read the image file.") from exc

    if image.width * image.height > MAX_INPUT_PIXELS:
        raise _too_many_pixels()
    try:
        image.load()
    except (OSError, ValueError) as exc:
        raise ReadError("Failed to read the image file.") from exc

    detected = _PIL_FORMATS.get(image.format or "")
    if detected is None:
        raise UnsupportedFormat(
            f"Unsupported image format: {(image.format or 'unknown').lower()}.",
            detail={"mime_type": asset.mime_type},
        )
    if detected != asset.mime_type:
        logger.info(
            "[input] declared mime %s does not match content %s; using content type",
            asset.mime_type,
            detected,
        )

    width, height = image.size
    if max(width, height) <= max_side:
        if detected == asset.mime_type:
            return asset
        return ImageAsset(data=asset.data, mime_type=detected, filename=asset.filename)

    if image.mode not in ("RGB", "RGBA"):
        image = image.convert("RGBA")
    image.thumbnail((max_side, max_side))
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    stem = asset.filename.rsplit(".", 1)[0]
    logger.info(
        "[input] resized %sx%s -> %sx%s",
        width,
        height,
        image.size[0],
        image.size[1],
    )
    return ImageAsset(data=buffer.getvalue(), mime_type="image/png", filename=f"{stem}.png")


@dataclass(frozen=True)
class ImageInput:
    """An image as received: a data URL, or raw upload bytes with their claimed MIME type."""

    data_url: Optional[str] = None
    data: Optional[bytes] = None
    content_type: Optional[str] = None
    filename: Optional[str] = None

    def decode(self) -> ImageAsset:
        if self.data_url is not None:
            return decode_data_url(self.data_url, filename=self.filename)
        return decode_upload(self.data or b"", self.content_type, filename=self.filename)


def normalize(raw: ImageInput, *, max_bytes: int, max_side: int) -> ImageAsset:
    """Decode, size-check and preprocess one input image."""

    return preprocess(ensure_within_limit(raw.decode(), max_bytes), max_side=max_side)


class TempFiles:
    """Request-scoped temporary copies of input images.

    Every file written through :meth:`write` is removed by :meth:`cleanup`,
    which runs once no matter how many times it is called or whether the
    request succeeded.
    """

    def __init__(self, root: Path, request_id: str) -> None:
        self.root = Path(root)
        self.request_id = request_id
        self._paths: list[Path] = []
        self._closed = False

    @property
    def paths(self) -> tuple[Path, ...]:
        return tuple(self._paths)

    def write(self, asset: ImageAsset) -> ImageAsset:
        if self._closed:
            raise RuntimeError("temporary file scope already closed")
        self.root.mkdir(parents=True, exist_ok=True)
        path = self.root / f"{self.request_id}_{uuid.uuid4().hex}{extension_for(asset.mime_type)}"
        try:
            path.write_bytes(asset.data)
        except OSError as exc:
            raise ReadError("Failed to stage the image for processing.") from exc
        self._paths.append(path)
        return asset.with_path(path)

    def write_all(self, assets: Iterable[ImageAsset]) -> tuple[ImageAsset, ...]:
        return tuple(self.write(asset) for asset in assets)

    def cleanup(self) -> int:
        if self._closed:
            return 0
        self._closed = True
        removed = 0
        for path in self._paths:
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.warning("[input] failed to remove temp file %s: %s", path, exc)
        self._paths.clear()
        logger.debug("[input] rid=%s removed %s temp files", self.request_id, removed)
        return removed

    def __enter__(self) -> "TempFiles":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()


__all__ = [
    "DATA_URL_RX",
    "ImageInput",
    "TempFiles",
    "decode_data_url",
    "decode_upload",
    "ensure_within_limit",
    "normalize",
    "preprocess",
    "read_upload",
]
