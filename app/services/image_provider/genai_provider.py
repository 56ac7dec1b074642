from __future__ import annotations

import logging
from typing import Any, Optional

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from app.config import GenAIConfig
from app.errors import (
    AnalysisFailed,
    ConfigurationError,
    GenerationFailed,
    StudioError,
    TransientGenerationError,
)
from app.models import GeneratedImage, GenerationRequest, ImageAsset
from app.services.analysis import (
    ANALYSIS_SYSTEM_PROMPT,
    ANALYSIS_USER_PROMPT,
    PROMPT_WRITER_SYSTEM_PROMPT,
    PROMPT_WRITER_USER_PROMPT,
)

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = frozenset({429, 502, 503, 504})


def translate_genai_error(exc: genai_errors.APIError) -> StudioError:
    code = getattr(exc, "code", None)
    message = getattr(exc, "message", None) or str(exc)
    if code in (400, 401, 403) and "api key" in message.lower():
        return ConfigurationError(
            "The image provider rejected the configured credentials.",
            detail={"status": code},
        )
    if code in TRANSIENT_STATUS_CODES:
        return TransientGenerationError(message, detail={"status": code})
    return GenerationFailed(message, detail={"status": code})


def _part(asset: ImageAsset) -> types.Part:
    return types.Part.from_bytes(data=asset.data, mime_type=asset.mime_type)


def _inline_images(response: Any) -> list[GeneratedImage]:
    out: list[GeneratedImage] = []
    for cand in getattr(response, "candidates", None) or []:
        content = getattr(cand, "content", None)
        for part in getattr(content, "parts", None) or []:
            inline = getattr(part, "inline_data", None)
            data = getattr(inline, "data", None) if inline else None
            if not data:
                continue
            mime = getattr(inline, "mime_type", None) or "image/png"
            if not mime.startswith("image/"):
                continue
            out.append(GeneratedImage(data=bytes(data), mime_type=mime))
    return out


class GenAIStudioProvider:
    """google-genai SDK based provider: Gemini vision plus Imagen / Gemini image models."""

    name = "genai"

    def __init__(self, config: GenAIConfig, *, client: Optional[genai.Client] = None) -> None:
        if client is None:
            if not config.api_key:
                raise ConfigurationError("GOOGLE_API_KEY is not configured.")
            client = genai.Client(api_key=config.api_key)
        self.config = config
        self.client = client

    def close(self) -> None:
        return None

    def _describe(self, system: str, contents: list[Any]) -> Optional[str]:
        response = self.client.models.generate_content(
            model=self.config.vision_model,
            contents=contents,
            config=types.GenerateContentConfig(system_instruction=system),
        )
        text = getattr(response, "text", None)
        return text if isinstance(text, str) and text.strip() else None

    def analyze(self, asset: ImageAsset, *, request_id: Optional[str] = None) -> str:
        try:
            text = self._describe(ANALYSIS_SYSTEM_PROMPT, [ANALYSIS_USER_PROMPT, _part(asset)])
        except genai_errors.APIError as exc:
            logger.warning("[genai] rid=%s analysis call failed: %s", request_id or "-", exc)
            raise AnalysisFailed(f"Image analysis failed: {exc}") from exc
        if text is None:
            raise AnalysisFailed("Image analysis returned an empty response.")
        return text

    def write_prompt(self, product: ImageAsset, reference: ImageAsset) -> str:
        try:
            text = self._describe(
                PROMPT_WRITER_SYSTEM_PROMPT,
                [PROMPT_WRITER_USER_PROMPT, _part(product), _part(reference)],
            )
        except genai_errors.APIError as exc:
            raise translate_genai_error(exc) from exc
        if text is None:
            raise GenerationFailed("The prompt writer returned an empty response.")
        return text.strip()

    def generate(self, request: GenerationRequest) -> list[GeneratedImage]:
        try:
            if request.reference_images:
                images = self._generate_with_references(request)
            else:
                images = self._generate_text_only(request)
        except genai_errors.APIError as exc:
            logger.warning("[genai] image call failed code=%s: %s", getattr(exc, "code", None), exc)
            raise translate_genai_error(exc) from exc

        if not images:
            raise GenerationFailed("The image provider returned no images.")
        return images

    def _generate_text_only(self, request: GenerationRequest) -> list[GeneratedImage]:
        model = self.config.text_image_model
        if not model.startswith("imagen-"):
            return self._generate_with_references(request, model=model)
        response = self.client.models.generate_images(
            model=model,
            prompt=request.prompt,
            config=types.GenerateImagesConfig(number_of_images=request.output_count),
        )
        out: list[GeneratedImage] = []
        for gi in getattr(response, "generated_images", None) or []:
            image = getattr(gi, "image", None)
            img_bytes = getattr(image, "image_bytes", None)
            if not img_bytes:
                continue
            mime = getattr(image, "mime_type", None) or "image/png"
            out.append(GeneratedImage(data=bytes(img_bytes), mime_type=mime))
        return out

    def _generate_with_references(
        self, request: GenerationRequest, *, model: Optional[str] = None
    ) -> list[GeneratedImage]:
        contents: list[Any] = [request.prompt]
        contents.extend(_part(asset) for asset in request.reference_images)
        out: list[GeneratedImage] = []
        # Gemini 图像模型每次调用只返回一张图
        for _ in range(request.output_count):
            response = self.client.models.generate_content(
                model=model or self.config.image_model,
                contents=contents,
                config=types.GenerateContentConfig(response_modalities=["IMAGE", "TEXT"]),
            )
            extracted = _inline_images(response)
            if not extracted:
                break
            out.extend(extracted[:1])
        return out


__all__ = ["GenAIStudioProvider", "translate_genai_error"]
