import pytest

from sitegen.errors import ExtractionFailed
from sitegen.llm_parsing import (
    PayloadShape,
    clean_text,
    extract_html,
    extract_json,
    sanitize,
    strip_fences,
    strip_reasoning,
)

PALETTE_TAIL = {"palette": {"primary": "220 70% 50%", "background": "0 0% 100%", "accent": "262 80% 50%"}}


def test_strip_reasoning_removes_every_think_block():
    raw = "<think>plan {not json}</think>A<think>\nmore\n</think>B"
    assert strip_reasoning(raw) == "AB"


def test_strip_reasoning_drops_unclosed_block():
    assert strip_reasoning('{"a": 1}<think>still thinking') == '{"a": 1}'


@pytest.mark.parametrize(
    "raw",
    [
        '```json\n{"a": 1}\n```',
        '```\n{"a": 1}\n```',
        'Sure! Here it is:\n```json\n{"a": 1}\n```\nEnjoy.',
        '```json\n{"a": 1}',
    ],
)
def test_strip_fences_variants(raw):
    assert strip_fences(raw) == '{"a": 1}'


def test_extract_json_greedy_object_with_prose():
    text = 'Here you go: {"summary": "A bakery {site}"} hope it helps'
    assert extract_json(text) == {"summary": "A bakery {site}"}


def test_extract_json_tolerates_trailing_commas_and_smart_quotes():
    text = "{“summary”: “ok”, \"tags\": [\"a\", \"b\",],}"
    assert extract_json(text) == {"summary": "ok", "tags": ["a", "b"]}


def test_extract_json_without_brace_fails():
    with pytest.raises(ExtractionFailed) as ei:
        extract_json("I cannot help with that.")
    assert "No JSON object" in str(ei.value)


def test_extract_json_repairs_truncated_content_field():
    text = '{"websiteContent": "<!DOCTYPE html><html><body><h1>Bak'
    data = extract_json(text, "websiteContent", PALETTE_TAIL)
    assert data["websiteContent"].endswith("<h1>Bak")
    assert data["palette"]["primary"] == "220 70% 50%"


def test_extract_json_unrepairable_fails():
    with pytest.raises(ExtractionFailed):
        extract_json('{"websiteContent": 12, "palette": ', "websiteContent", PALETTE_TAIL)


def test_extract_html_doctype_onward():
    text = "Here is your app:\n<!DOCTYPE html><html><body>x</body></html>"
    assert extract_html(text) == "<!DOCTYPE html><html><body>x</body></html>"


def test_extract_html_synthesizes_doctype():
    assert extract_html('<html lang="en"><body>x</body></html>').startswith('<!DOCTYPE html>\n<html lang="en">')


def test_extract_html_wraps_bare_fragments():
    out = extract_html("<div class='app'>hello</div>")
    assert out.startswith("<!DOCTYPE html>\n<html>\n<div")


def test_extract_html_reads_json_wrapper():
    text = '{"appContent": "<!DOCTYPE html><html><body>wrapped</body></html>", "palette": {}}'
    assert extract_html(text, "appContent") == "<!DOCTYPE html><html><body>wrapped</body></html>"


def test_extract_html_falls_back_to_text():
    assert extract_html("just words") == "just words"


def test_sanitize_html_from_reasoning_model():
    raw = "<think>The user wants a CRM.</think>\n```html\n<!DOCTYPE html>\n<html><body>CRM</body></html>\n```"
    assert sanitize(raw, PayloadShape.HTML) == "<!DOCTYPE html>\n<html><body>CRM</body></html>"


def test_sanitize_json_fenced():
    raw = '```json\n{"refinedCode": "<html></html>", "changesSummary": "done"}\n```'
    assert sanitize(raw, PayloadShape.JSON, "refinedCode") == {"refinedCode": "<html></html>", "changesSummary": "done"}


def test_clean_text_combines_both_steps():
    assert clean_text("<think>x</think>```json\n{}\n```") == "{}"


def test_extract_json_closes_missing_final_brace():
    text = '{"websiteContent": "<html><body>hi</body></html>", "palette": {"primary": "1 2% 3%", "background": "0 0% 100%", "accent": "4 5% 6%"}'
    data = extract_json(text, "websiteContent", PALETTE_TAIL)
    assert data["palette"]["primary"] == "1 2% 3%"
    assert data["websiteContent"] == "<html><body>hi</body></html>"
