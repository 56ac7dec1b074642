from pathlib import Path

from app.config import _parse_allowed_origins, get_settings


def test_parse_allowed_origins_with_paths() -> None:
    raw = "https://example.com/app, https://demo.com/sub"
    assert _parse_allowed_origins(raw) == [
        "https://example.com",
        "https://demo.com",
    ]


def test_parse_allowed_origins_with_wildcard() -> None:
    assert _parse_allowed_origins("*") == ["*"]


def test_parse_allowed_origins_deduplicates_and_handles_empty() -> None:
    raw = " https://example.com/ , https://example.com ,"
    assert _parse_allowed_origins(raw) == ["https://example.com"]


def test_parse_allowed_origins_defaults_to_wildcard() -> None:
    assert _parse_allowed_origins("") == ["*"]


def test_settings_defaults(studio_env) -> None:
    settings = get_settings()

    assert settings.image_provider == "openai"
    assert settings.generation_concurrency == 1
    assert not settings.openai.is_configured
    assert settings.openai.image_model == "gpt-image-1"
    assert settings.openai.text_image_model == "dall-e-3"
    assert settings.openai.vision_model == "gpt-4o"
    assert settings.openai.analysis_max_tokens == 300
    assert settings.storage.studio_mode == "local"
    assert settings.storage.composition_mode == "inline"
    assert settings.storage.public_prefix == "/uploads"
    assert settings.storage.result_dir == Path(studio_env / "results")
    assert settings.upload.max_bytes == 20_000_000
    assert settings.upload.max_side == 1024
    assert settings.guard.max_body_bytes == 30 * 1024 * 1024


def test_settings_read_environment(studio_env, monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", " sk-test ")
    monkeypatch.setenv("OPENAI_TIMEOUT", "45")
    monkeypatch.setenv("IMAGE_PROVIDER", "GenAI")
    monkeypatch.setenv("GEMINI_API_KEY", "gm-key")
    monkeypatch.setenv("GENERATION_CONCURRENCY", "4")
    monkeypatch.setenv("STUDIO_RESULT_MODE", "inline")
    monkeypatch.setenv("RESULT_PUBLIC_PREFIX", "results/")
    get_settings.cache_clear()

    settings = get_settings()

    assert settings.openai.api_key == "sk-test"
    assert settings.openai.timeout == 45.0
    assert settings.image_provider == "genai"
    assert settings.genai.api_key == "gm-key"
    assert settings.generation_concurrency == 4
    assert settings.storage.studio_mode == "inline"
    assert settings.storage.public_prefix == "/results"


def test_settings_ignore_invalid_values(studio_env, monkeypatch) -> None:
    monkeypatch.setenv("GENERATION_CONCURRENCY", "0")
    monkeypatch.setenv("COMPOSITION_RESULT_MODE", "ftp")
    monkeypatch.setenv("UPLOAD_MAX_BYTES", "lots")
    monkeypatch.setenv("OPENAI_TIMEOUT", "soon")
    get_settings.cache_clear()

    settings = get_settings()

    assert settings.generation_concurrency == 1
    assert settings.storage.composition_mode == "inline"
    assert settings.upload.max_bytes == 20_000_000
    assert settings.openai.timeout == 120.0


def test_google_api_key_takes_precedence(studio_env, monkeypatch) -> None:
    monkeypatch.setenv("GOOGLE_API_KEY", "google-key")
    monkeypatch.setenv("GEMINI_API_KEY", "gemini-key")
    get_settings.cache_clear()

    assert get_settings().genai.api_key == "google-key"
