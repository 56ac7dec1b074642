"""Request-scoped models shared between the API layer and the pipeline stages."""

from .payloads import (  # noqa: F401
    AnalysisResult,
    GeneratedImage,
    GenerationRequest,
    GenerationResult,
    ImageAsset,
    SUPPORTED_MIME_TYPES,
)
from .state import RequestState, Stage  # noqa: F401

__all__ = [
    "AnalysisResult",
    "GeneratedImage",
    "GenerationRequest",
    "GenerationResult",
    "ImageAsset",
    "RequestState",
    "SUPPORTED_MIME_TYPES",
    "Stage",
]
