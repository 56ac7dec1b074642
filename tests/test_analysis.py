import logging

from app.services.analysis import extract_json_object, parse_analysis
from app.services.prompt_builder import studio_prompt


def test_extracts_object_surrounded_by_prose():
    text = 'Sure! Here you go:\n```json\n{"description": "A mug", "attributes": {"color": "red"}}\n```\nEnjoy.'

    assert extract_json_object(text) == '{"description": "A mug", "attributes": {"color": "red"}}'


def test_braces_inside_strings_do_not_close_the_object():
    text = 'prefix {"description": "curly } brace and \\"quote\\" {", "attributes": {}} suffix {"other": 1}'

    span = extract_json_object(text)

    assert span == '{"description": "curly } brace and \\"quote\\" {", "attributes": {}}'


def test_unbalanced_text_has_no_object():
    assert extract_json_object("no json here") is None
    assert extract_json_object('{"description": "never closed"') is None


def test_parse_returns_structured_result():
    result = parse_analysis(
        '{"description": " A glass bottle ", "attributes": {"color": "green", "shape": "", "material": null, "tags": ["x"]}}'
    )

    assert result.description == "A glass bottle"
    assert dict(result.attributes) == {"color": "green"}
    assert result.degraded is False


def test_parse_failure_degrades_to_raw_text(caplog):
    raw = "This is a tall green glass bottle with a cork."

    with caplog.at_level(logging.WARNING, logger="app.services.analysis"):
        result = parse_analysis(raw, request_id="abc123")

    assert result.description == raw
    assert dict(result.attributes) == {}
    assert result.degraded is True
    assert "abc123" in caplog.text


def test_invalid_json_span_degrades():
    raw = "{description: 'single quotes are not JSON'}"

    result = parse_analysis(raw)

    assert result.degraded is True
    assert result.description == raw


def test_object_without_description_keeps_attributes():
    result = parse_analysis('{"description": "", "attributes": {"color": "red", "material": "steel"}}')

    assert result.degraded is False
    assert result.description == ""
    assert dict(result.attributes) == {"color": "red", "material": "steel"}

    prompt = studio_prompt(None, result)
    assert "Product description" not in prompt
    assert "Product attributes: color: red, material: steel" in prompt


def test_missing_description_key_is_not_degraded():
    result = parse_analysis('Here: {"attributes": {"category": "lamp"}}')

    assert result.degraded is False
    assert dict(result.attributes) == {"category": "lamp"}
