from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import List
from urllib.parse import urlparse

ROOT_DIR = Path(__file__).resolve().parents[1]

RESULT_MODES = {"inline", "local", "s3"}


def _as_int(value: str | None, default: int, *, minimum: int = 0) -> int:
    if value is None or not value.strip():
        return default
    try:
        return max(int(value), minimum)
    except (TypeError, ValueError):
        return default


def _as_float(value: str | None, default: float) -> float:
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_mode(value: str | None, default: str) -> str:
    mode = (value or "").strip().lower()
    return mode if mode in RESULT_MODES else default


@dataclass
class OpenAIConfig:
    api_key: str | None = None
    base_url: str | None = None
    proxy: str | None = None
    image_model: str = "gpt-image-1"
    text_image_model: str = "dall-e-3"
    vision_model: str = "gpt-4o"
    image_size: str = "1024x1024"
    timeout: float = 120.0
    analysis_max_tokens: int = 300

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)


@dataclass
class GenAIConfig:
    api_key: str | None = None
    image_model: str = "gemini-2.5-flash-image"
    text_image_model: str = "imagen-3.0-generate-002"
    vision_model: str = "gemini-2.0-flash"

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)


@dataclass
class StorageConfig:
    result_dir: Path
    public_prefix: str = "/uploads"
    studio_mode: str = "local"
    composition_mode: str = "inline"
    temp_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()) / "product-studio")
    s3_bucket: str | None = None
    s3_prefix: str = "studio"


@dataclass
class UploadConfig:
    max_bytes: int = 20_000_000
    max_side: int = 1024


@dataclass
class GuardConfig:
    max_body_bytes: int

    @classmethod
    def from_env(cls) -> "GuardConfig":
        return cls(max_body_bytes=_as_int(os.getenv("MAX_BODY_BYTES"), 30 * 1024 * 1024))


@dataclass
class Settings:
    environment: str
    allowed_origins: List[str]
    image_provider: str
    generation_concurrency: int
    openai: OpenAIConfig
    genai: GenAIConfig
    storage: StorageConfig
    upload: UploadConfig
    guard: GuardConfig


def _parse_allowed_origins(raw: str | None) -> List[str]:
    """Normalise comma-separated origins into values accepted by CORSMiddleware."""

    if not raw:
        return ["*"]

    cleaned: List[str] = []
    for origin in raw.split(","):
        value = origin.strip()
        if not value:
            continue
        if value == "*":
            return ["*"]

        parsed = urlparse(value)
        if parsed.scheme and parsed.netloc:
            normalised = f"{parsed.scheme}://{parsed.netloc}"
        else:
            normalised = value

        if normalised not in cleaned:
            cleaned.append(normalised)

    return cleaned or ["*"]


@lru_cache()
def get_settings() -> Settings:
    def _get(name: str, default: str | None = None) -> str | None:
        v = os.getenv(name)
        return v if v is not None else default

    def _first(*names: str) -> str | None:
        for name in names:
            value = os.getenv(name)
            if value and value.strip():
                return value.strip()
        return None

    openai_cfg = OpenAIConfig(
        api_key=_first("OPENAI_API_KEY"),
        base_url=_first("OPENAI_BASE_URL"),
        proxy=_first("OPENAI_PROXY"),
        image_model=_get("OPENAI_IMAGE_MODEL", "gpt-image-1") or "gpt-image-1",
        text_image_model=_get("OPENAI_TEXT_IMAGE_MODEL", "dall-e-3") or "dall-e-3",
        vision_model=_get("OPENAI_VISION_MODEL", "gpt-4o") or "gpt-4o",
        image_size=_get("OPENAI_IMAGE_SIZE", "1024x1024") or "1024x1024",
        timeout=_as_float(_get("OPENAI_TIMEOUT"), 120.0),
        analysis_max_tokens=_as_int(_get("OPENAI_ANALYSIS_MAX_TOKENS"), 300, minimum=1),
    )

    genai_cfg = GenAIConfig(
        api_key=_first("GOOGLE_API_KEY", "GEMINI_API_KEY"),
        image_model=_get("GENAI_IMAGE_MODEL", "gemini-2.5-flash-image") or "gemini-2.5-flash-image",
        text_image_model=_get("GENAI_TEXT_IMAGE_MODEL", "imagen-3.0-generate-002")
        or "imagen-3.0-generate-002",
        vision_model=_get("GENAI_VISION_MODEL", "gemini-2.0-flash") or "gemini-2.0-flash",
    )

    temp_root = _first("STUDIO_TEMP_DIR")
    storage = StorageConfig(
        result_dir=Path(_first("RESULT_STORAGE_DIR") or ROOT_DIR / "public" / "uploads"),
        public_prefix="/" + (_get("RESULT_PUBLIC_PREFIX", "/uploads") or "/uploads").strip("/"),
        studio_mode=_as_mode(_get("STUDIO_RESULT_MODE"), "local"),
        composition_mode=_as_mode(_get("COMPOSITION_RESULT_MODE"), "inline"),
        temp_dir=Path(temp_root) if temp_root else Path(tempfile.gettempdir()) / "product-studio",
        s3_bucket=_first("R2_BUCKET", "S3_BUCKET"),
        s3_prefix=(_get("RESULT_S3_PREFIX", "studio") or "studio").strip("/"),
    )

    upload = UploadConfig(
        max_bytes=_as_int(_get("UPLOAD_MAX_BYTES"), 20_000_000),
        max_side=_as_int(_get("UPLOAD_MAX_SIDE"), 1024, minimum=64),
    )

    return Settings(
        environment=_get("ENVIRONMENT", "development") or "development",
        allowed_origins=_parse_allowed_origins(_get("ALLOWED_ORIGINS", "*")),
        image_provider=(_get("IMAGE_PROVIDER", "openai") or "openai").strip().lower(),
        generation_concurrency=_as_int(_get("GENERATION_CONCURRENCY"), 1, minimum=1),
        openai=openai_cfg,
        genai=genai_cfg,
        storage=storage,
        upload=upload,
        guard=GuardConfig.from_env(),
    )
