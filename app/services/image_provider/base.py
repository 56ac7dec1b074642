from __future__ import annotations

from typing import Optional, Protocol

from app.models import GeneratedImage, GenerationRequest, ImageAsset


class ImageGenerator(Protocol):
    name: str

    def generate(self, request: GenerationRequest) -> list[GeneratedImage]:
        """Synthesise ``request.output_count`` images from the prompt and references."""
        ...


class ImageAnalyzer(Protocol):
    def analyze(self, asset: ImageAsset, *, request_id: Optional[str] = None) -> str:
        """Return the vision model's raw reply describing ``asset``."""
        ...

    def write_prompt(self, product: ImageAsset, reference: ImageAsset) -> str:
        """Return a generation prompt for ``product`` styled after ``reference``."""
        ...


class StudioProvider(ImageGenerator, ImageAnalyzer, Protocol):
    def close(self) -> None:
        ...
