from __future__ import annotations

import json
import logging
import re
from enum import Enum
from typing import Any, Dict, Optional, Union

from sitegen.errors import ExtractionFailed
from sitegen.repair import repair_json

log = logging.getLogger(__name__)


class PayloadShape(Enum):
    HTML = "html"
    JSON = "json"


_THINK_RE = re.compile(r"<think>[\s\S]*?</think>", re.IGNORECASE)
# A reasoning block the model never closed swallows the rest of the text
_OPEN_THINK_RE = re.compile(r"<think>[\s\S]*$", re.IGNORECASE)
_FENCED_RE = re.compile(r"```[A-Za-z]*[ \t]*\r?\n?([\s\S]*)```")
_LEADING_FENCE_RE = re.compile(r"^```[A-Za-z]*[ \t]*\r?\n?")
_TRAILING_FENCE_RE = re.compile(r"\r?\n?```\s*$")
_DOCTYPE_RE = re.compile(r"<!doctype\s+html[\s\S]*", re.IGNORECASE)
_HTML_OPEN_RE = re.compile(r"<html[\s>][\s\S]*", re.IGNORECASE)
_STRUCTURAL_TAG_RE = re.compile(r"<\s*(?:head|body|div|main|header|section|footer)\b", re.IGNORECASE)


def strip_reasoning(text: str) -> str:
    """Drop every ``<think>...</think>`` segment, whatever it contains."""
    t = _THINK_RE.sub("", text or "")
    return _OPEN_THINK_RE.sub("", t).strip()


def strip_fences(text: str) -> str:
    t = (text or "").strip()
    m = _FENCED_RE.search(t)
    if m:
        return m.group(1).strip()
    # Truncated output may open a fence that never closes
    t = _LEADING_FENCE_RE.sub("", t)
    t = _TRAILING_FENCE_RE.sub("", t)
    return t.strip()


def clean_text(text: str) -> str:
    return strip_fences(strip_reasoning(text))


def _outer_brace_slice(text: str) -> Optional[str]:
    start = text.find("{")
    if start == -1:
        return None
    end = text.rfind("}")
    if end < start:
        # Opened but never closed: hand the whole tail to repair
        return text[start:]
    return text[start : end + 1]


def _loads_object(candidate: str) -> Optional[Dict[str, Any]]:
    try:
        data = json.loads(candidate, strict=False)
    except ValueError:
        s = re.sub(r",\s*([}\]])", r"\1", candidate)
        s = s.replace("“", '"').replace("”", '"').replace("’", "'")
        try:
            data = json.loads(s, strict=False)
        except ValueError:
            return None
    return data if isinstance(data, dict) else None


def extract_json(
    text: str,
    content_field: Optional[str] = None,
    tail: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Pull a JSON object out of cleaned model text; raise ExtractionFailed.

    Strategy:
    - Take the first ``{`` through the last ``}`` and parse it.
    - Retry after dropping trailing commas and normalizing smart quotes.
    - Close an object cut right before its final ``}``.
    - Treat everything from the first ``{`` as a truncated ``content_field``
      string and repair it.
    """
    candidate = _outer_brace_slice(text or "")
    if candidate is None:
        raise ExtractionFailed("No JSON object found in response")
    data = _loads_object(candidate)
    if data is not None:
        return data
    # Repair sees everything from the first brace; a `}` inside the cut
    # string must not end the slice
    whole = text[text.find("{"):]
    data = _loads_object(whole.rstrip() + "}")
    if data is not None:
        log.info("llm_parsing: recovered JSON missing its final brace")
        return data
    if content_field:
        repaired = repair_json(whole, content_field, tail)
        if repaired != whole.strip():
            data = _loads_object(repaired)
            if data is not None:
                log.info("llm_parsing: recovered truncated JSON via repair field=%s", content_field)
                return data
    raise ExtractionFailed(f"Failed to parse JSON from response (len={len(candidate)})")


def extract_html(
    text: str,
    content_field: Optional[str] = None,
    tail: Optional[Dict[str, Any]] = None,
) -> str:
    """Locate the HTML document in cleaned model text.

    Tries, in order: a JSON wrapper holding ``content_field`` (when the text
    is a JSON object), the doctype onward, ``<html`` onward with a synthesized
    doctype, structural tags anywhere wrapped into a document, then the text
    itself.
    """
    t = (text or "").strip()
    if content_field and t.startswith("{"):
        try:
            data = extract_json(t, content_field, tail)
        except ExtractionFailed:
            data = None
        value = data.get(content_field) if isinstance(data, dict) else None
        if isinstance(value, str) and value.strip():
            return value
    m = _DOCTYPE_RE.search(t)
    if m:
        return m.group(0)
    m = _HTML_OPEN_RE.search(t)
    if m:
        return "<!DOCTYPE html>\n" + m.group(0)
    if _STRUCTURAL_TAG_RE.search(t):
        return "<!DOCTYPE html>\n<html>\n" + t
    return t


def sanitize(
    raw_text: str,
    shape: PayloadShape,
    content_field: Optional[str] = None,
    tail: Optional[Dict[str, Any]] = None,
) -> Union[str, Dict[str, Any]]:
    """Strip provider noise from ``raw_text`` and return the embedded payload.

    HTML shape returns the document string; JSON shape returns the parsed
    object. ``content_field``/``tail`` drive truncation repair for JSON.
    """
    cleaned = clean_text(raw_text)
    if shape is PayloadShape.HTML:
        return extract_html(cleaned, content_field, tail)
    return extract_json(cleaned, content_field, tail)
