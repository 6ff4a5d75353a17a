import json
from typing import Any, Dict, List

import pytest
import requests

from sitegen import providers
from sitegen.errors import FailureKind, ProviderError
from sitegen.models import ProviderCandidate
from sitegen.providers import GeminiClient, HuggingFaceClient

CANDIDATE = ProviderCandidate("huggingface", "Qwen/Qwen3-32B", 4000)


class _FakeResp:
    def __init__(self, status_code: int = 200, body: Any = None, text: str = None):
        self.status_code = status_code
        self._body = body
        self.text = text if text is not None else json.dumps(body)

    def json(self) -> Any:
        if self._body is None:
            raise ValueError("no json")
        return self._body


def _capture(monkeypatch, resp=None, exc=None) -> List[Dict[str, Any]]:
    calls: List[Dict[str, Any]] = []

    def fake_post(url, **kwargs):
        calls.append({"url": url, **kwargs})
        if exc is not None:
            raise exc
        return resp

    monkeypatch.setattr(providers.requests, "post", fake_post)
    return calls


def _hf() -> HuggingFaceClient:
    return HuggingFaceClient("hf-token", "https://router.example/v1/chat/completions", timeout=30)


def test_hf_invoke_sends_chat_completion(monkeypatch):
    body = {"choices": [{"message": {"role": "assistant", "content": "<html></html>"}}]}
    calls = _capture(monkeypatch, _FakeResp(200, body))

    assert _hf().invoke(CANDIDATE, "sys", "usr") == "<html></html>"

    sent = calls[0]
    assert sent["headers"]["Authorization"] == "Bearer hf-token"
    assert sent["json"]["model"] == "Qwen/Qwen3-32B"
    assert sent["json"]["max_tokens"] == 4000
    assert sent["json"]["temperature"] == 0.7
    assert sent["json"]["top_p"] == 0.9
    assert [m["role"] for m in sent["json"]["messages"]] == ["system", "user"]


@pytest.mark.parametrize(
    "status,kind",
    [
        (504, FailureKind.GATEWAY_TIMEOUT),
        (503, FailureKind.PROVIDER_UNAVAILABLE),
        (429, FailureKind.RATE_LIMITED),
        (401, FailureKind.AUTH_FAILURE),
        (400, FailureKind.UNKNOWN),
    ],
)
def test_hf_http_errors_are_classified(monkeypatch, status, kind):
    _capture(monkeypatch, _FakeResp(status, {"error": "upstream said no"}))
    with pytest.raises(ProviderError) as ei:
        _hf().invoke(CANDIDATE, "sys", "usr")
    assert ei.value.status == status
    assert ei.value.kind is kind
    assert "upstream said no" in str(ei.value)


def test_hf_read_timeout_is_gateway_timeout(monkeypatch):
    _capture(monkeypatch, exc=requests.ReadTimeout("read timed out"))
    with pytest.raises(ProviderError) as ei:
        _hf().invoke(CANDIDATE, "sys", "usr")
    assert ei.value.status is None
    assert ei.value.kind is FailureKind.GATEWAY_TIMEOUT


def test_hf_connection_error_is_unknown(monkeypatch):
    _capture(monkeypatch, exc=requests.ConnectionError("refused"))
    with pytest.raises(ProviderError) as ei:
        _hf().invoke(CANDIDATE, "sys", "usr")
    assert ei.value.kind is FailureKind.UNKNOWN


def test_hf_empty_choices_and_content(monkeypatch):
    _capture(monkeypatch, _FakeResp(200, {"choices": []}))
    with pytest.raises(ProviderError, match="No response from model"):
        _hf().invoke(CANDIDATE, "sys", "usr")

    _capture(monkeypatch, _FakeResp(200, {"choices": [{"message": {"content": "  "}}]}))
    with pytest.raises(ProviderError, match="No generated text in response"):
        _hf().invoke(CANDIDATE, "sys", "usr")


def test_hf_missing_key_is_auth_failure_without_call(monkeypatch):
    calls = _capture(monkeypatch, _FakeResp(200, {}))
    with pytest.raises(ProviderError) as ei:
        HuggingFaceClient("", "https://router.example").invoke(CANDIDATE, "sys", "usr")
    assert ei.value.kind is FailureKind.AUTH_FAILURE
    assert calls == []


def _gemini() -> GeminiClient:
    return GeminiClient("g-key", "https://generativelanguage.googleapis.com/v1beta/models/gemini-2.0-flash:generateContent")


def test_gemini_structured_call(monkeypatch):
    payload = {"summary": "A bakery"}
    body = {"candidates": [{"content": {"parts": [{"text": json.dumps(payload)}]}}]}
    calls = _capture(monkeypatch, _FakeResp(200, body))
    schema = {"type": "OBJECT", "properties": {"summary": {"type": "STRING"}}}

    assert _gemini().generate_structured("sys", "usr", schema) == payload

    sent = calls[0]
    assert sent["params"] == {"key": "g-key"}
    config = sent["json"]["generationConfig"]
    assert config["responseMimeType"] == "application/json"
    assert config["responseSchema"] == schema
    assert sent["json"]["systemInstruction"]["parts"][0]["text"] == "sys"


def test_gemini_http_error_names_provider(monkeypatch):
    body = {"error": {"code": 429, "message": "Resource has been exhausted", "status": "RESOURCE_EXHAUSTED"}}
    _capture(monkeypatch, _FakeResp(429, body))
    with pytest.raises(ProviderError) as ei:
        _gemini().generate_structured("sys", "usr", {})
    assert str(ei.value).startswith("Gemini HTTP 429: Resource has been exhausted")
    assert ei.value.status == 429


def test_gemini_blocked_prompt(monkeypatch):
    _capture(monkeypatch, _FakeResp(200, {"candidates": [], "promptFeedback": {"blockReason": "SAFETY"}}))
    with pytest.raises(ProviderError, match="blocked: SAFETY"):
        _gemini().generate_structured("sys", "usr", {})


def test_gemini_missing_key_message():
    with pytest.raises(ProviderError, match="GEMINI_API_KEY is not configured"):
        GeminiClient("", "https://x").generate_structured("sys", "usr", {})


@pytest.mark.parametrize(
    "body",
    [
        {"choices": ["oops"]},
        {"choices": [{"message": "plain string"}]},
        {"choices": [{"message": {"content": ["a", "b"]}}]},
        {"choices": {"0": {}}},
        ["not", "an", "object"],
    ],
)
def test_hf_wrong_shape_body_is_malformed_output(monkeypatch, body):
    _capture(monkeypatch, _FakeResp(200, body))
    with pytest.raises(ProviderError) as ei:
        _hf().invoke(CANDIDATE, "sys", "usr")
    assert ei.value.kind is FailureKind.MALFORMED_OUTPUT


@pytest.mark.parametrize(
    "body",
    [
        {"candidates": "oops"},
        {"candidates": [{"content": "text"}]},
        {"candidates": [{"content": {"parts": "text"}}]},
        {"candidates": [{"content": {"parts": [{"text": 7}]}}]},
    ],
)
def test_gemini_wrong_shape_body_is_empty_response(monkeypatch, body):
    _capture(monkeypatch, _FakeResp(200, body))
    with pytest.raises(ProviderError, match="Gemini returned an empty response"):
        _gemini().generate_structured("sys", "usr", {})
