"""Error taxonomy shared by the pipeline stages and the HTTP layer."""
from __future__ import annotations

from typing import Any, Literal

Category = Literal["input", "retry", "support"]


class StudioError(Exception):
    """Base error carrying everything the HTTP boundary needs to render it.

    ``category`` tells the caller what to do about it: fix the input, try
    again, or contact support. ``kind`` mirrors the error types the web
    client already knows how to display.
    """

    code = "studio_error"
    status_code = 500
    category: Category = "support"
    kind = "generic"
    retryable = False
    fatal = False
    default_suggestions: tuple[str, ...] = (
        "Try again in a few moments.",
        "If the problem persists, please contact support.",
    )

    def __init__(
        self,
        message: str,
        *,
        suggestions: list[str] | None = None,
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.suggestions = list(suggestions) if suggestions else list(self.default_suggestions)
        self.detail = detail or {}

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": False,
            "error": self.message,
            "code": self.code,
            "category": self.category,
            "type": self.kind,
            "retryable": self.retryable,
            "fatal": self.fatal,
            "suggestions": self.suggestions,
        }
        if self.detail:
            payload["detail"] = self.detail
        return payload


class InvalidRequest(StudioError):
    code = "invalid_request"
    status_code = 400
    category: Category = "input"
    kind = "upload"
    default_suggestions = ("Check the submitted fields and try again.",)


class UnsupportedFormat(StudioError):
    code = "unsupported_format"
    status_code = 415
    category: Category = "input"
    kind = "upload"
    default_suggestions = (
        "Please use PNG, JPEG, WEBP, or GIF formats.",
        "Try converting your image to one of these formats.",
    )


class ReadError(StudioError):
    code = "read_error"
    status_code = 400
    category: Category = "input"
    kind = "upload"
    default_suggestions = (
        "Check if the file is corrupted.",
        "Try a different image.",
    )


class TemplateNotFound(StudioError):
    code = "template_not_found"
    status_code = 404
    category: Category = "input"
    kind = "template"
    default_suggestions = (
        "Try selecting a different template.",
        "Refresh the page and try again.",
    )


class AnalysisFailed(StudioError):
    """Vision analysis did not complete; the pipeline continues without it."""

    code = "analysis_failed"
    status_code = 502
    category: Category = "retry"
    kind = "generation"
    retryable = True


class ConfigurationError(StudioError):
    code = "configuration_error"
    status_code = 500
    category: Category = "support"
    kind = "configuration"
    fatal = True
    default_suggestions = ("Please contact support; the service is not configured correctly.",)


class TransientGenerationError(StudioError):
    code = "transient_generation_error"
    status_code = 503
    category: Category = "retry"
    kind = "network"
    retryable = True
    default_suggestions = (
        "Our image generation service might be experiencing high demand.",
        "Try again in a few moments.",
    )


class GenerationFailed(StudioError):
    code = "generation_failed"
    status_code = 502
    category: Category = "support"
    kind = "generation"


__all__ = [
    "AnalysisFailed",
    "ConfigurationError",
    "GenerationFailed",
    "InvalidRequest",
    "ReadError",
    "StudioError",
    "TemplateNotFound",
    "TransientGenerationError",
    "UnsupportedFormat",
]
