from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from google.genai import errors as genai_errors

from app.config import GenAIConfig
from app.errors import AnalysisFailed, ConfigurationError, GenerationFailed, TransientGenerationError
from app.models import GenerationRequest, ImageAsset
from app.services.image_provider.genai_provider import GenAIStudioProvider, translate_genai_error


def _content_response(*parts):
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=list(parts)))])


def _inline_part(data: bytes, mime: str = "image/png"):
    return SimpleNamespace(inline_data=SimpleNamespace(data=data, mime_type=mime))


def _api_error(code: int, message: str) -> genai_errors.APIError:
    return genai_errors.APIError(code, {"error": {"code": code, "message": message, "status": "X"}})


@pytest.fixture()
def asset():
    return ImageAsset(data=b"\x89PNG\r\n\x1a\nfake", mime_type="image/png")


def test_missing_key_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        GenAIStudioProvider(GenAIConfig(api_key=None))


def test_text_only_uses_imagen(asset):
    client = MagicMock()
    client.models.generate_images.return_value = SimpleNamespace(
        generated_images=[SimpleNamespace(image=SimpleNamespace(image_bytes=b"imagen", mime_type="image/png"))]
    )
    provider = GenAIStudioProvider(GenAIConfig(api_key="k"), client=client)

    images = provider.generate(GenerationRequest(prompt="a vase"))

    assert images[0].data == b"imagen"
    kwargs = client.models.generate_images.call_args.kwargs
    assert kwargs["model"] == "imagen-3.0-generate-002"
    assert kwargs["prompt"] == "a vase"
    assert kwargs["config"].number_of_images == 1


def test_references_use_gemini_image_model(asset):
    client = MagicMock()
    client.models.generate_content.return_value = _content_response(
        SimpleNamespace(inline_data=None, text="here you go"),
        _inline_part(b"gemini", "image/jpeg"),
    )
    provider = GenAIStudioProvider(GenAIConfig(api_key="k"), client=client)

    images = provider.generate(GenerationRequest(prompt="compose", reference_images=(asset, asset)))

    assert [image.data for image in images] == [b"gemini"]
    assert images[0].mime_type == "image/jpeg"
    kwargs = client.models.generate_content.call_args.kwargs
    assert kwargs["model"] == "gemini-2.5-flash-image"
    assert kwargs["contents"][0] == "compose"
    assert len(kwargs["contents"]) == 3


def test_no_images_is_a_generation_failure(asset):
    client = MagicMock()
    client.models.generate_content.return_value = _content_response(SimpleNamespace(inline_data=None))
    provider = GenAIStudioProvider(GenAIConfig(api_key="k"), client=client)

    with pytest.raises(GenerationFailed):
        provider.generate(GenerationRequest(prompt="compose", reference_images=(asset,)))


def test_unavailable_is_transient(asset):
    client = MagicMock()
    client.models.generate_images.side_effect = _api_error(503, "The model is overloaded.")
    provider = GenAIStudioProvider(GenAIConfig(api_key="k"), client=client)

    with pytest.raises(TransientGenerationError):
        provider.generate(GenerationRequest(prompt="a vase"))


def test_error_translation():
    assert isinstance(translate_genai_error(_api_error(400, "API key not valid.")), ConfigurationError)
    assert isinstance(translate_genai_error(_api_error(403, "API key not valid.")), ConfigurationError)
    failed = translate_genai_error(_api_error(400, "Prompt blocked."))
    assert failed.message == "Prompt blocked."


def test_analysis_errors_become_analysis_failed(asset):
    client = MagicMock()
    client.models.generate_content.side_effect = _api_error(500, "internal")
    provider = GenAIStudioProvider(GenAIConfig(api_key="k"), client=client)

    with pytest.raises(AnalysisFailed):
        provider.analyze(asset)


def test_analysis_returns_text(asset):
    client = MagicMock()
    client.models.generate_content.return_value = SimpleNamespace(text='{"description": "vase"}')
    provider = GenAIStudioProvider(GenAIConfig(api_key="k"), client=client)

    assert provider.analyze(asset) == '{"description": "vase"}'
    assert client.models.generate_content.call_args.kwargs["model"] == "gemini-2.0-flash"
