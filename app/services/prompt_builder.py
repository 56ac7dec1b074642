"""Compose the directive sent to the image model.

Sections are emitted in a fixed order: the static template directive, the ad
copy, the user's own request, the product description, the product attributes
and finally the closing constraints. Empty inputs produce no section at all.
"""

from __future__ import annotations

from typing import Iterable, Optional, Sequence, Union

from app.models import AnalysisResult

STUDIO_DIRECTIVE = "Create a professional product photo studio shot."

AD_DIRECTIVE = (
    "!!PROFESSIONAL AD PHOTOGRAPHY!!\n"
    "Transform the product in the first image using the exact layout and positioning "
    "from the wireframe in the second image."
)

TEMPLATE_DIRECTIVE = (
    "Restyle the product in the first image after the studio template in the second image."
)

STUDIO_CONSTRAINTS: tuple[str, ...] = (
    "High quality, professional lighting, clean background, detailed product features.",
)

PRODUCT_CONSTRAINTS: tuple[str, ...] = (
    "Maintain all product details, text and logos exactly as shown in the reference image.",
    "Do not modify the product's color, shape or size.",
    "Use professional studio lighting with realistic shadows and reflections.",
)

AD_CONSTRAINTS: tuple[str, ...] = (
    "Position the product exactly as shown in the wireframe.",
    "Maintain all spacing and composition from the wireframe.",
    "Keep clear space for text and integrate the ad copy naturally into the designated text areas.",
) + PRODUCT_CONSTRAINTS

StaticPrompt = Union[str, Sequence[str]]


def _clean(value: Optional[str]) -> str:
    return " ".join((value or "").split())


def _static_lines(static_prompt: StaticPrompt) -> list[str]:
    parts = [static_prompt] if isinstance(static_prompt, str) else list(static_prompt)
    return [part.strip() for part in parts if part and part.strip()]


def format_attributes(analysis: Optional[AnalysisResult]) -> str:
    """Return ``"key: value, ..."`` for every non-empty attribute, or ``""``."""

    if analysis is None:
        return ""
    return ", ".join(f"{key}: {_clean(value)}" for key, value in analysis.present_attributes())


def compose_prompt(
    static_prompt: StaticPrompt,
    *,
    ad_copy: Optional[str] = None,
    user_request: Optional[str] = None,
    analysis: Optional[AnalysisResult] = None,
    constraints: Iterable[str] = PRODUCT_CONSTRAINTS,
) -> str:
    sections = _static_lines(static_prompt)
    if not sections:
        raise ValueError("static prompt must not be empty")

    copy = _clean(ad_copy)
    if copy:
        sections.append(f'Ad Copy to incorporate: "{copy}"')

    request = _clean(user_request)
    if request:
        sections.append(f"User requests: {request}")

    if analysis is not None:
        description = _clean(analysis.description)
        if description:
            sections.append(f"Product description: {description}")
        attributes = format_attributes(analysis)
        if attributes:
            sections.append(f"Product attributes: {attributes}")

    closing = [line.strip() for line in constraints if line and line.strip()]
    if closing:
        sections.append("Important:\n" + "\n".join(f"- {line}" for line in closing))

    return "\n\n".join(sections)


def studio_prompt(
    user_request: Optional[str],
    analysis: Optional[AnalysisResult] = None,
    *,
    style_prompt: Optional[str] = None,
) -> str:
    static = [STUDIO_DIRECTIVE]
    if style_prompt:
        static.append(style_prompt)
    return compose_prompt(
        static,
        user_request=user_request,
        analysis=analysis,
        constraints=STUDIO_CONSTRAINTS,
    )


def ad_prompt(
    wireframe_prompt: Optional[str],
    *,
    ad_copy: Optional[str] = None,
    user_request: Optional[str] = None,
    analysis: Optional[AnalysisResult] = None,
) -> str:
    return compose_prompt(
        [AD_DIRECTIVE, wireframe_prompt or ""],
        ad_copy=ad_copy,
        user_request=user_request,
        analysis=analysis,
        constraints=AD_CONSTRAINTS,
    )


def template_prompt(
    style_prompt: Optional[str],
    *,
    user_request: Optional[str] = None,
    analysis: Optional[AnalysisResult] = None,
) -> str:
    return compose_prompt(
        [TEMPLATE_DIRECTIVE, style_prompt or ""],
        user_request=user_request,
        analysis=analysis,
        constraints=PRODUCT_CONSTRAINTS,
    )


__all__ = [
    "AD_CONSTRAINTS",
    "AD_DIRECTIVE",
    "PRODUCT_CONSTRAINTS",
    "STUDIO_CONSTRAINTS",
    "STUDIO_DIRECTIVE",
    "TEMPLATE_DIRECTIVE",
    "ad_prompt",
    "compose_prompt",
    "format_attributes",
    "studio_prompt",
    "template_prompt",
]
