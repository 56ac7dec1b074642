from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.payloads import MAX_OUTPUTS


class _ApiModel(BaseModel):
    """Base model accepting both camelCase aliases and snake_case names."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


def _strip_optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# ------------------------------------------------------------------------------
# 模板 / 线框目录
# ------------------------------------------------------------------------------


class TemplateSpec(_ApiModel):
    """Catalog entry pairing a reference image with a fixed prompt fragment."""

    id: str
    kind: Literal["template", "wireframe"]
    name: str
    description: str = ""
    prompt: str = Field(..., min_length=1, description="Static instructional prompt text.")
    asset: str = Field(..., description="Asset path relative to the templates directory.")


class TemplateSummary(_ApiModel):
    id: str
    name: str
    description: str = ""


class TemplateCollection(_ApiModel):
    items: list[TemplateSummary] = Field(default_factory=list)


# ------------------------------------------------------------------------------
# 生成请求
# ------------------------------------------------------------------------------


class _CompositionRequest(_ApiModel):
    product_image: Optional[str] = Field(
        None, alias="productImage", description="Product photo as a base64 data URL."
    )
    prompt: Optional[str] = Field(None, description="Extra free-text instructions.")
    num_outputs: int = Field(
        1,
        alias="numOutputs",
        ge=1,
        le=MAX_OUTPUTS,
        description="Number of variations to generate (1-4).",
    )
    skip_analysis: bool = Field(
        True,
        alias="skipAnalysis",
        description="Skip the vision analysis pass for the product image.",
    )

    @field_validator("product_image", "prompt", mode="before")
    @classmethod
    def _clean_text(cls, value: Any) -> Optional[str]:
        return _strip_optional_text(value)


class AdGenerationRequest(_CompositionRequest):
    """Product photo composed onto an ad wireframe with ad copy."""

    wireframe_id: Optional[str] = Field(None, alias="wireframeId")
    wireframe_image: Optional[str] = Field(
        None,
        alias="wireframeImage",
        description="Wireframe as a data URL, used when no catalog id is given.",
    )
    ad_copy: Optional[str] = Field(None, alias="adCopy")

    @field_validator("wireframe_id", "wireframe_image", "ad_copy", mode="before")
    @classmethod
    def _clean_fields(cls, value: Any) -> Optional[str]:
        return _strip_optional_text(value)


class TemplatePhotoRequest(_CompositionRequest):
    """Product photo restyled after one of the studio templates."""

    template_id: Optional[str] = Field(None, alias="templateId")
    template_image: Optional[str] = Field(None, alias="templateImage")

    @field_validator("template_id", "template_image", mode="before")
    @classmethod
    def _clean_fields(cls, value: Any) -> Optional[str]:
        return _strip_optional_text(value)


class SimpleImageRequest(_ApiModel):
    prompt: str = Field(..., min_length=1)
    num_outputs: int = Field(1, alias="numOutputs", ge=1, le=MAX_OUTPUTS)

    @field_validator("prompt", mode="before")
    @classmethod
    def _clean_prompt(cls, value: Any) -> str:
        return _strip_optional_text(value) or ""


class PromptSuggestionRequest(_ApiModel):
    product_image: Optional[str] = Field(None, alias="productImage")
    reference_image: Optional[str] = Field(None, alias="referenceImage")

    @field_validator("product_image", "reference_image", mode="before")
    @classmethod
    def _clean_images(cls, value: Any) -> Optional[str]:
        return _strip_optional_text(value)


# ------------------------------------------------------------------------------
# 响应
# ------------------------------------------------------------------------------


class AnalysisPayload(_ApiModel):
    description: str
    attributes: dict[str, str] = Field(default_factory=dict)


class GenerationResponse(_ApiModel):
    success: bool = True
    image_url: str = Field(..., alias="imageUrl", description="First generated image.")
    image_urls: list[str] = Field(
        default_factory=list,
        alias="imageUrls",
        description="All generated images, ordered by variation index.",
    )
    analysis: Optional[AnalysisPayload] = None
    analysis_degraded: Optional[bool] = Field(None, alias="analysisDegraded")
    prompt: Optional[str] = Field(None, description="Directive sent to the image model.")
    request_id: str = Field(..., alias="requestId")


class PromptSuggestionResponse(_ApiModel):
    success: bool = True
    prompt: str
    request_id: str = Field(..., alias="requestId")


class ErrorResponse(_ApiModel):
    success: bool = False
    error: str
    code: str
    category: Literal["input", "retry", "support"]
    type: str
    retryable: bool
    fatal: bool
    suggestions: list[str] = Field(default_factory=list)
    request_id: Optional[str] = Field(None, alias="requestId")


__all__ = [
    "AdGenerationRequest",
    "AnalysisPayload",
    "ErrorResponse",
    "GenerationResponse",
    "PromptSuggestionRequest",
    "PromptSuggestionResponse",
    "SimpleImageRequest",
    "TemplateCollection",
    "TemplatePhotoRequest",
    "TemplateSpec",
    "TemplateSummary",
]
