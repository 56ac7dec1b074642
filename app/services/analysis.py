"""Vision analysis prompts and best-effort parsing of the model's reply."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from app.models import AnalysisResult

logger = logging.getLogger(__name__)

ANALYSIS_SYSTEM_PROMPT = (
    "You are a product photography expert. Describe the product in detail, focusing on "
    "its visual characteristics that would be important for creating a professional "
    "studio photo."
)

ANALYSIS_USER_PROMPT = (
    "Describe this product in detail for a photo studio. Include color, shape, material, "
    "key features, and type of product. Format your response as a JSON object with "
    "'description' (a concise paragraph) and 'attributes' (with keys for color, shape, "
    "material, category)."
)

PROMPT_WRITER_SYSTEM_PROMPT = (
    "You are a creative AI that writes prompts for AI image generation tools."
)

PROMPT_WRITER_USER_PROMPT = (
    "Use Image A as the product. Use Image B as the visual style reference. Write a "
    "detailed prompt for generating a stylized product photoshoot image."
)


def extract_json_object(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` span in ``text``.

    Braces inside JSON string literals (including escaped quotes) do not count
    towards the balance. Returns ``None`` when no complete span exists.
    """

    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            ch = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start : index + 1]
        start = text.find("{", start + 1)
    return None


def _attributes_from(raw: Any) -> dict[str, str]:
    if not isinstance(raw, dict):
        return {}
    attributes: dict[str, str] = {}
    for key, value in raw.items():
        if value is None or isinstance(value, (dict, list)):
            continue
        text = str(value).strip()
        if text:
            attributes[str(key).strip()] = text
    return attributes


def parse_analysis(text: Optional[str], *, request_id: Optional[str] = None) -> AnalysisResult:
    """Parse the model reply, degrading to the raw text when no JSON object can be read."""

    raw = (text or "").strip()
    candidate = extract_json_object(raw)
    payload: Any = None
    if candidate is not None:
        try:
            payload = json.loads(candidate)
        except json.JSONDecodeError:
            payload = None

    if isinstance(payload, dict):
        description = payload.get("description")
        return AnalysisResult(
            description=description.strip() if isinstance(description, str) else "",
            attributes=_attributes_from(payload.get("attributes")),
        )

    logger.warning(
        "[analysis] rid=%s no JSON object in response; using raw text as description",
        request_id or "-",
        extra={"raw_length": len(raw)},
    )
    return AnalysisResult(description=raw, attributes={}, degraded=True)


__all__ = [
    "ANALYSIS_SYSTEM_PROMPT",
    "ANALYSIS_USER_PROMPT",
    "PROMPT_WRITER_SYSTEM_PROMPT",
    "PROMPT_WRITER_USER_PROMPT",
    "extract_json_object",
    "parse_analysis",
]
