"""Select the studio provider named by IMAGE_PROVIDER."""
from __future__ import annotations

import logging
from typing import Callable, Dict

from app.config import Settings
from app.errors import ConfigurationError

from .base import StudioProvider
from .genai_provider import GenAIStudioProvider
from .openai_provider import OpenAIStudioProvider

logger = logging.getLogger(__name__)


def _openai(settings: Settings) -> StudioProvider:
    return OpenAIStudioProvider(settings.openai)


def _genai(settings: Settings) -> StudioProvider:
    return GenAIStudioProvider(settings.genai)


PROVIDERS: Dict[str, Callable[[Settings], StudioProvider]] = {
    "openai": _openai,
    "genai": _genai,
}


def get_provider(settings: Settings) -> StudioProvider:
    """Construct a provider for one request.

    Credentials are checked here, so a missing key fails before any network call.
    """

    builder = PROVIDERS.get(settings.image_provider)
    if builder is None:
        raise ConfigurationError(
            f"Unknown IMAGE_PROVIDER '{settings.image_provider}'.",
            detail={"supported": sorted(PROVIDERS)},
        )
    provider = builder(settings)
    logger.debug("[provider] using %s", provider.name)
    return provider
