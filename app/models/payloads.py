"""Request-scoped values passed between the pipeline stages."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Literal, Mapping, Optional

SUPPORTED_MIME_TYPES = ("image/png", "image/jpeg", "image/webp", "image/gif")

_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/webp": ".webp",
    "image/gif": ".gif",
}

MAX_OUTPUTS = 4
MAX_REFERENCE_IMAGES = 2


def extension_for(mime_type: str) -> str:
    return _EXTENSIONS.get(mime_type, ".png")


@dataclass(frozen=True)
class ImageAsset:
    """Decoded image bytes tagged with a validated MIME type."""

    data: bytes
    mime_type: str
    filename: str = "image.png"
    path: Optional[Path] = None

    def __post_init__(self) -> None:
        if self.mime_type not in SUPPORTED_MIME_TYPES:
            raise ValueError(f"unsupported image MIME type: {self.mime_type}")

    @property
    def size(self) -> int:
        return len(self.data)

    def to_data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"

    def with_path(self, path: Path) -> "ImageAsset":
        return replace(self, path=path)


@dataclass(frozen=True)
class AnalysisResult:
    """Structured description of a product photo produced by a vision model.

    ``degraded`` marks results built from unparseable model output, where the
    raw text became the description and no attributes are known.
    """

    description: str
    attributes: Mapping[str, str] = field(default_factory=dict)
    degraded: bool = False

    def present_attributes(self) -> list[tuple[str, str]]:
        pairs: list[tuple[str, str]] = []
        for key, value in self.attributes.items():
            name = str(key).strip()
            text = str(value).strip() if value is not None else ""
            if name and text:
                pairs.append((name, text))
        return pairs

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"description": self.description}
        attributes = dict(self.present_attributes())
        if attributes:
            payload["attributes"] = attributes
        return payload


@dataclass(frozen=True)
class GenerationRequest:
    prompt: str
    reference_images: tuple[ImageAsset, ...] = ()
    output_count: int = 1
    response_format: Literal["b64", "url"] = "b64"

    def __post_init__(self) -> None:
        if not self.prompt or not self.prompt.strip():
            raise ValueError("generation prompt must not be empty")
        if not 1 <= self.output_count <= MAX_OUTPUTS:
            raise ValueError(f"output_count must be between 1 and {MAX_OUTPUTS}")
        if len(self.reference_images) > MAX_REFERENCE_IMAGES:
            raise ValueError(f"at most {MAX_REFERENCE_IMAGES} reference images are supported")

    def single(self) -> "GenerationRequest":
        return replace(self, output_count=1)


@dataclass(frozen=True)
class GeneratedImage:
    """One synthesised image, either inline bytes or a provider-hosted URL."""

    data: Optional[bytes] = None
    url: Optional[str] = None
    mime_type: str = "image/png"
    revised_prompt: Optional[str] = None

    def __post_init__(self) -> None:
        if self.data is None and not self.url:
            raise ValueError("generated image needs either bytes or a URL")


@dataclass(frozen=True)
class GenerationResult:
    images: tuple[GeneratedImage, ...]

    def __len__(self) -> int:
        return len(self.images)
