"""Turn generated images into references the browser can display."""
from __future__ import annotations

import base64
import logging
import uuid
from pathlib import Path
from typing import Sequence

from app.config import StorageConfig
from app.errors import GenerationFailed
from app.models import GeneratedImage
from app.models.payloads import extension_for
from app.services import object_store

logger = logging.getLogger(__name__)


def to_data_url(image: GeneratedImage) -> str:
    if image.data is None:
        raise ValueError("image has no inline bytes")
    encoded = base64.b64encode(image.data).decode("ascii")
    return f"data:{image.mime_type};base64,{encoded}"


def save_local(image: GeneratedImage, storage: StorageConfig) -> str:
    """Write the image under ``result_dir`` and return its public path."""

    if image.data is None:
        raise ValueError("image has no inline bytes")
    root = Path(storage.result_dir)
    name = f"{uuid.uuid4().hex}{extension_for(image.mime_type)}"
    try:
        root.mkdir(parents=True, exist_ok=True)
        (root / name).write_bytes(image.data)
    except OSError as exc:
        logger.error("[packager] failed to write %s: %s", root / name, exc)
        raise GenerationFailed("Failed to save the generated image.") from exc
    return f"{storage.public_prefix.rstrip('/')}/{name}"


def save_object(image: GeneratedImage, storage: StorageConfig) -> str:
    if image.data is None:
        raise ValueError("image has no inline bytes")
    key = object_store.make_key(storage.s3_prefix, extension_for(image.mime_type))
    return object_store.put_bytes(storage.s3_bucket, key, image.data, content_type=image.mime_type)


def package_one(image: GeneratedImage, storage: StorageConfig, mode: str) -> str:
    if image.data is None:
        # provider-hosted URL
        return image.url or ""
    if mode == "local":
        return save_local(image, storage)
    if mode == "s3":
        return save_object(image, storage)
    return to_data_url(image)


def package_images(images: Sequence[GeneratedImage], storage: StorageConfig, mode: str) -> list[str]:
    """Return one reference per image, preserving order."""

    return [package_one(image, storage, mode) for image in images]


__all__ = ["package_images", "package_one", "save_local", "save_object", "to_data_url"]
