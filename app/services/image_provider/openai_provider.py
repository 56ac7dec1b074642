# -*- coding: utf-8 -*-
"""
OpenAI-backed studio provider.
- Vision analysis and prompt writing go through chat.completions with data-URL images.
- Text-to-image uses images.generate; reference compositions use images.edit.
- SDK exceptions are translated into the studio error taxonomy.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, Optional

import httpx
import openai
from openai import OpenAI

from app.config import OpenAIConfig
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

# 需求高峰 / 上游网关类错误，视为可重试
TRANSIENT_STATUS_CODES = frozenset({429, 502, 503, 504})

# 仅允许传给 OpenAI SDK 的关键字（防止混入 proxies 等不被支持的参数）
_ALLOWED_OPENAI_KWARGS = {"api_key", "base_url", "timeout", "max_retries", "http_client"}


def _sanitize_openai_kwargs(kw: dict[str, Any]) -> dict[str, Any]:
    cleaned = {k: v for k, v in kw.items() if k in _ALLOWED_OPENAI_KWARGS}
    for k in set(kw) - _ALLOWED_OPENAI_KWARGS:
        logger.debug("Removed unsupported OpenAI kwarg '%s' from client kwargs", k)
    return cleaned


def _build_openai_client(config: OpenAIConfig) -> tuple[OpenAI, Optional[httpx.Client]]:
    """
    构建 OpenAI 客户端：
      - 代理只放在 httpx.Client(proxy=...)，通过 http_client 注入 SDK
      - SDK 自身不做重试，重试由调用方重新发起请求
      - 返回 (client, http_client)，调用方负责关闭 http_client
    """
    if not config.api_key:
        raise ConfigurationError("OPENAI_API_KEY is not configured.")

    kw: dict[str, Any] = {"api_key": config.api_key, "timeout": config.timeout, "max_retries": 0}
    if config.base_url:
        kw["base_url"] = config.base_url

    http_client: httpx.Client | None = None
    if config.proxy:
        timeout = httpx.Timeout(config.timeout, connect=10.0)
        http_client = httpx.Client(proxy=config.proxy, timeout=timeout)
        kw["http_client"] = http_client

    kw = _sanitize_openai_kwargs(kw)
    return OpenAI(**kw), http_client


def _remote_message(exc: openai.APIStatusError) -> str:
    body = exc.body
    if isinstance(body, dict):
        error = body.get("error", body)
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return exc.message or str(exc)


def translate_openai_error(exc: Exception) -> StudioError:
    """Map an OpenAI SDK exception onto the studio error taxonomy."""

    if isinstance(exc, openai.AuthenticationError):
        return ConfigurationError(
            "The image provider rejected the configured credentials.",
            detail={"status": exc.status_code},
        )
    if isinstance(exc, (openai.APITimeoutError, openai.APIConnectionError)):
        return TransientGenerationError(
            "The image provider could not be reached. Please try again.",
        )
    if isinstance(exc, openai.APIStatusError):
        message = _remote_message(exc)
        if exc.status_code in TRANSIENT_STATUS_CODES:
            return TransientGenerationError(message, detail={"status": exc.status_code})
        return GenerationFailed(message, detail={"status": exc.status_code})
    return GenerationFailed(str(exc) or exc.__class__.__name__)


def _image_part(asset: ImageAsset) -> dict[str, Any]:
    return {"type": "image_url", "image_url": {"url": asset.to_data_url()}}


def _first_message_text(response: Any) -> Optional[str]:
    choices = getattr(response, "choices", None) or []
    if not choices:
        return None
    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None)
    return content if isinstance(content, str) and content.strip() else None


class OpenAIStudioProvider:
    """Chat vision plus image synthesis on one OpenAI client."""

    name = "openai"

    def __init__(self, config: OpenAIConfig, *, client: Optional[OpenAI] = None) -> None:
        self.config = config
        self._http_client: Optional[httpx.Client] = None
        if client is None:
            client, self._http_client = _build_openai_client(config)
        self.client = client

    def close(self) -> None:
        if self._http_client is not None:
            self._http_client.close()
            self._http_client = None

    # ------------------------------------------------------------------
    # vision
    # ------------------------------------------------------------------

    def analyze(self, asset: ImageAsset, *, request_id: Optional[str] = None) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.config.vision_model,
                messages=[
                    {"role": "system", "content": ANALYSIS_SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": [{"type": "text", "text": ANALYSIS_USER_PROMPT}, _image_part(asset)],
                    },
                ],
                max_tokens=self.config.analysis_max_tokens,
            )
        except openai.OpenAIError as exc:
            logger.warning("[openai] rid=%s analysis call failed: %s", request_id or "-", exc)
            raise AnalysisFailed(f"Image analysis failed: {exc}") from exc

        text = _first_message_text(response)
        if text is None:
            raise AnalysisFailed("Image analysis returned an empty response.")
        return text

    def write_prompt(self, product: ImageAsset, reference: ImageAsset) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.config.vision_model,
                messages=[
                    {"role": "system", "content": PROMPT_WRITER_SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": PROMPT_WRITER_USER_PROMPT},
                            _image_part(product),
                            _image_part(reference),
                        ],
                    },
                ],
                max_tokens=self.config.analysis_max_tokens,
            )
        except openai.OpenAIError as exc:
            raise translate_openai_error(exc) from exc

        text = _first_message_text(response)
        if text is None:
            raise GenerationFailed("The prompt writer returned an empty response.")
        return text.strip()

    # ------------------------------------------------------------------
    # synthesis
    # ------------------------------------------------------------------

    def _call_images(self, request: GenerationRequest) -> Any:
        cfg = self.config
        if request.reference_images:
            # 优先使用已落盘的临时文件，否则直接上传内存字节
            files = [
                asset.path if asset.path is not None else (asset.filename, asset.data, asset.mime_type)
                for asset in request.reference_images
            ]
            return self.client.images.edit(
                model=cfg.image_model,
                image=files,
                prompt=request.prompt,
                n=request.output_count,
                size=cfg.image_size,
            )

        model = cfg.text_image_model if request.response_format == "url" else cfg.image_model
        kwargs: dict[str, Any] = {
            "model": model,
            "prompt": request.prompt,
            "n": request.output_count,
            "size": cfg.image_size,
        }
        # gpt-image 系列固定返回 b64_json，不接受 response_format
        if model.startswith("dall-e"):
            kwargs["response_format"] = "url" if request.response_format == "url" else "b64_json"
        if model == "dall-e-3":
            kwargs["style"] = "vivid"
        return self.client.images.generate(**kwargs)

    def generate(self, request: GenerationRequest) -> list[GeneratedImage]:
        try:
            response = self._call_images(request)
        except openai.OpenAIError as exc:
            status = getattr(exc, "status_code", None)
            logger.warning(
                "[openai] images call failed status=%s refs=%d: %s",
                status,
                len(request.reference_images),
                exc,
            )
            raise translate_openai_error(exc) from exc

        images: list[GeneratedImage] = []
        for item in getattr(response, "data", None) or []:
            revised = getattr(item, "revised_prompt", None)
            b64 = getattr(item, "b64_json", None)
            if b64:
                try:
                    data = base64.b64decode(b64)
                except (binascii.Error, ValueError) as exc:
                    raise GenerationFailed("The image provider returned undecodable image data.") from exc
                images.append(GeneratedImage(data=data, revised_prompt=revised))
                continue
            url = getattr(item, "url", None)
            if url:
                images.append(GeneratedImage(url=url, revised_prompt=revised))

        if not images:
            raise GenerationFailed("The image provider returned no images.")
        return images


__all__ = ["OpenAIStudioProvider", "TRANSIENT_STATUS_CODES", "translate_openai_error"]
