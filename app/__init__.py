"""Product studio backend: photo analysis, prompt composition and image generation."""
