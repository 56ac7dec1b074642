from __future__ import annotations

import base64
import struct
import threading
import zlib
from io import BytesIO
from typing import Callable, Optional

import pytest
from PIL import Image

from app.config import get_settings
from app.models import GeneratedImage, GenerationRequest, ImageAsset

_ENV_VARS = (
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "OPENAI_PROXY",
    "GOOGLE_API_KEY",
    "GEMINI_API_KEY",
    "IMAGE_PROVIDER",
    "STUDIO_RESULT_MODE",
    "COMPOSITION_RESULT_MODE",
    "GENERATION_CONCURRENCY",
    "UPLOAD_MAX_BYTES",
    "UPLOAD_MAX_SIDE",
    "MAX_BODY_BYTES",
    "RESULT_PUBLIC_PREFIX",
)


def encode_image(fmt: str = "PNG", size: tuple[int, int] = (32, 32), color=(200, 40, 40)) -> bytes:
    mode = "RGBA" if fmt == "PNG" else "RGB"
    image = Image.new(mode, size, color)
    buffer = BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


def _png_chunk(kind: bytes, body: bytes) -> bytes:
    return struct.pack(">I", len(body)) + kind + body + struct.pack(">I", zlib.crc32(kind + body))


def png_header(width: int, height: int) -> bytes:
    """A PNG declaring the given dimensions with no pixel data behind it."""

    ihdr = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return b"\x89PNG\r\n\x1a\n" + _png_chunk(b"IHDR", ihdr) + _png_chunk(b"IDAT", b"")


def data_url(mime: str, payload: bytes) -> str:
    return f"data:{mime};base64,{base64.b64encode(payload).decode('ascii')}"


@pytest.fixture()
def make_image() -> Callable[..., bytes]:
    return encode_image


@pytest.fixture()
def png_data_url() -> str:
    return data_url("image/png", encode_image("PNG"))


@pytest.fixture()
def png_asset() -> ImageAsset:
    return ImageAsset(data=encode_image("PNG"), mime_type="image/png", filename="product.png")


@pytest.fixture()
def studio_env(tmp_path, monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("RESULT_STORAGE_DIR", str(tmp_path / "results"))
    monkeypatch.setenv("STUDIO_TEMP_DIR", str(tmp_path / "tmp"))
    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()


class FakeProvider:
    """In-memory provider recording every call; never touches the network."""

    name = "fake"

    def __init__(
        self,
        *,
        analysis_text: str = '{"description": "A red ceramic mug", '
        '"attributes": {"color": "red", "material": "ceramic", "shape": "", "category": "mug"}}',
        analysis_error: Optional[Exception] = None,
        generate_errors: Optional[list[Exception]] = None,
        prompt_text: str = "A stylised photoshoot of the product",
        hosted_urls: bool = False,
    ) -> None:
        self.analysis_text = analysis_text
        self.analysis_error = analysis_error
        self.generate_errors = list(generate_errors or [])
        self.prompt_text = prompt_text
        self.hosted_urls = hosted_urls
        self.analyze_calls: list[ImageAsset] = []
        self.generate_calls: list[GenerationRequest] = []
        self.prompt_calls: list[tuple[ImageAsset, ImageAsset]] = []
        self.staged_paths: list = []
        self.closed = 0
        self._lock = threading.Lock()

    def analyze(self, asset: ImageAsset, *, request_id: Optional[str] = None) -> str:
        self.analyze_calls.append(asset)
        if self.analysis_error is not None:
            raise self.analysis_error
        return self.analysis_text

    def write_prompt(self, product: ImageAsset, reference: ImageAsset) -> str:
        self.prompt_calls.append((product, reference))
        return self.prompt_text

    def generate(self, request: GenerationRequest) -> list[GeneratedImage]:
        with self._lock:
            index = len(self.generate_calls)
            self.generate_calls.append(request)
            for asset in request.reference_images:
                self.staged_paths.append(asset.path)
                assert asset.path is not None and asset.path.exists()
            error = self.generate_errors.pop(0) if self.generate_errors else None
        if error is not None:
            raise error
        if self.hosted_urls:
            return [GeneratedImage(url=f"https://images.example.com/{index}.png")]
        return [GeneratedImage(data=f"image-{index}".encode(), mime_type="image/png")]

    def close(self) -> None:
        self.closed += 1


@pytest.fixture()
def fake_provider() -> FakeProvider:
    return FakeProvider()
