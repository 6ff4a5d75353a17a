from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import requests

from sitegen.config import Settings
from sitegen.errors import ExtractionFailed, FailureKind, ProviderError
from sitegen.llm_parsing import clean_text, extract_json
from sitegen.models import ProviderCandidate

log = logging.getLogger(__name__)

HUGGING_FACE = "huggingface"
GEMINI = "gemini"


def _error_snippet(resp: Any) -> str:
    try:
        text = resp.text or ""
    except Exception:
        return ""
    try:
        body = json.loads(text)
    except ValueError:
        return text[:400]
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and isinstance(err.get("message"), str):
            status = err.get("status")
            return f"{err['message']} ({status})" if status else err["message"]
        if isinstance(err, str):
            return err[:400]
    return text[:400]


def _transport_error(provider: str, exc: requests.RequestException) -> ProviderError:
    if isinstance(exc, requests.Timeout):
        return ProviderError(f"{provider} request timed out: {exc}", kind=FailureKind.GATEWAY_TIMEOUT)
    return ProviderError(f"{provider} request error: {exc!r}", kind=FailureKind.UNKNOWN)


class HuggingFaceClient:
    """Chat-completions client for the Hugging Face inference router.

    One call, one model, no interpretation: any non-200 answer, transport
    error or empty completion is raised as ProviderError.
    """

    provider_id = HUGGING_FACE

    def __init__(self, api_key: str, endpoint: str, timeout: float = 120.0):
        self.api_key = api_key
        self.endpoint = endpoint
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "HuggingFaceClient":
        return cls(settings.hugging_face_api_key, settings.hf_endpoint, settings.llm_timeout_secs)

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def invoke(self, candidate: ProviderCandidate, system_prompt: str, user_prompt: str) -> str:
        if not self.api_key:
            raise ProviderError("HUGGING_FACE_API_KEY is not configured", kind=FailureKind.AUTH_FAILURE)
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        body = {
            "model": candidate.model_name,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "max_tokens": candidate.max_tokens,
            "temperature": candidate.temperature,
            "top_p": candidate.top_p,
        }
        try:
            resp = requests.post(self.endpoint, headers=headers, json=body, timeout=self.timeout)
        except requests.RequestException as exc:
            raise _transport_error("Hugging Face", exc) from exc

        if resp.status_code != 200:
            msg = _error_snippet(resp) or str(resp.status_code)
            raise ProviderError(f"HTTP {resp.status_code}: {msg}", status=resp.status_code)

        try:
            data = resp.json()
        except ValueError as exc:
            raise ProviderError("Hugging Face: non-JSON HTTP body") from exc

        choices = data.get("choices") if isinstance(data, dict) else None
        first = choices[0] if isinstance(choices, list) and choices else None
        message = first.get("message") if isinstance(first, dict) else None
        if not isinstance(message, dict):
            raise ProviderError("No response from model", kind=FailureKind.MALFORMED_OUTPUT)
        content = message.get("content")
        if not isinstance(content, str) or not content.strip():
            raise ProviderError("No generated text in response", kind=FailureKind.MALFORMED_OUTPUT)
        log.info("huggingface: response model=%s len=%d", candidate.model_name, len(content))
        return content


def _extract_gemini_text(payload: Dict[str, Any]) -> Optional[str]:
    candidates = payload.get("candidates")
    if not isinstance(candidates, list):
        return None
    for cand in candidates:
        if not isinstance(cand, dict):
            continue
        content = cand.get("content")
        parts = content.get("parts") if isinstance(content, dict) else None
        if not isinstance(parts, list):
            continue
        chunks = [p.get("text") for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)]
        text = "".join(chunks)
        if text.strip():
            return text
    return None


class GeminiClient:
    """Primary provider: Gemini generateContent with a JSON response schema."""

    provider_id = GEMINI

    def __init__(self, api_key: str, endpoint: str, timeout: float = 120.0, temperature: float = 1.0):
        self.api_key = api_key
        self.endpoint = endpoint
        self.timeout = timeout
        self.temperature = temperature

    @classmethod
    def from_settings(cls, settings: Settings) -> "GeminiClient":
        return cls(settings.gemini_api_key, settings.gemini_endpoint, settings.llm_timeout_secs)

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def generate_structured(self, system_prompt: str, user_prompt: str, schema: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise ProviderError("GEMINI_API_KEY is not configured")
        body = {
            "systemInstruction": {"parts": [{"text": system_prompt}]},
            "contents": [{"role": "user", "parts": [{"text": user_prompt}]}],
            "generationConfig": {
                "temperature": self.temperature,
                "responseMimeType": "application/json",
                "responseSchema": schema,
            },
        }
        try:
            resp = requests.post(
                self.endpoint,
                params={"key": self.api_key},
                json=body,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise ProviderError(f"Gemini request error: {exc!r}") from exc

        if resp.status_code != 200:
            msg = _error_snippet(resp) or str(resp.status_code)
            raise ProviderError(f"Gemini HTTP {resp.status_code}: {msg}", status=resp.status_code)

        try:
            data = resp.json()
        except ValueError as exc:
            raise ProviderError("Gemini: non-JSON HTTP body") from exc

        text = _extract_gemini_text(data if isinstance(data, dict) else {})
        if not text:
            reason = ""
            feedback = data.get("promptFeedback") if isinstance(data, dict) else None
            if isinstance(feedback, dict) and feedback.get("blockReason"):
                reason = f" (blocked: {feedback['blockReason']})"
            raise ProviderError(f"Gemini returned an empty response{reason}")
        try:
            return extract_json(clean_text(text))
        except ExtractionFailed as exc:
            raise ProviderError(f"Gemini returned unparsable JSON: {exc}") from exc
