from .base import ImageAnalyzer, ImageGenerator, StudioProvider
from .factory import PROVIDERS, get_provider

__all__ = ["ImageAnalyzer", "ImageGenerator", "PROVIDERS", "StudioProvider", "get_provider"]
