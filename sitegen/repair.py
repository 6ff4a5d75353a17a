from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Optional

log = logging.getLogger(__name__)

_SCRIPT_OPEN_RE = re.compile(r"<script\b", re.IGNORECASE)
_SCRIPT_CLOSE_RE = re.compile(r"</script\s*>", re.IGNORECASE)
_STYLE_OPEN_RE = re.compile(r"<style\b", re.IGNORECASE)
_STYLE_CLOSE_RE = re.compile(r"</style\s*>", re.IGNORECASE)
_BODY_CLOSE_RE = re.compile(r"</body\s*>", re.IGNORECASE)
_HTML_END_RE = re.compile(r"</html\s*>\s*$", re.IGNORECASE)
# Script bodies that open an immediately-invoked function need `})();` to parse
_IIFE_OPEN_RE = re.compile(r"\(\s*(?:async\s+)?(?:function\b|\([^)]*\)\s*=>)")


def _last_match_start(pattern: re.Pattern[str], text: str) -> int:
    last = -1
    for m in pattern.finditer(text):
        last = m.start()
    return last


def is_complete_html(doc: str) -> bool:
    return bool(_HTML_END_RE.search(doc or ""))


def repair_html(doc: str) -> str:
    """Close whatever a truncated HTML document left open.

    A document already ending in ``</html>`` is returned untouched. Otherwise an
    open trailing ``<script>`` is closed (with ``})();`` when it opened an IIFE),
    unbalanced ``<style>`` blocks are closed, and ``</body></html>`` appended.
    """
    if not isinstance(doc, str) or is_complete_html(doc):
        return doc
    html = doc.rstrip()
    log.info("repair: closing truncated HTML (len=%d)", len(html))

    opens = len(_SCRIPT_OPEN_RE.findall(html))
    closes = len(_SCRIPT_CLOSE_RE.findall(html))
    if opens > closes:
        last_open = _last_match_start(_SCRIPT_OPEN_RE, html)
        last_close = _last_match_start(_SCRIPT_CLOSE_RE, html)
        if last_open > last_close:
            tag_end = html.find(">", last_open)
            if tag_end == -1:
                # Cut inside the opening tag itself
                html += ">"
                body = ""
            else:
                body = html[tag_end + 1:]
            if _IIFE_OPEN_RE.search(body):
                html += "\n})();\n</script>"
            else:
                html += "\n</script>"
        # Any earlier unclosed blocks get closed right away so counts balance
        missing = len(_SCRIPT_OPEN_RE.findall(html)) - len(_SCRIPT_CLOSE_RE.findall(html))
        if missing > 0:
            html += "\n</script>" * missing

    style_missing = len(_STYLE_OPEN_RE.findall(html)) - len(_STYLE_CLOSE_RE.findall(html))
    if style_missing > 0:
        html += "\n</style>" * style_missing

    if not _BODY_CLOSE_RE.search(html):
        html += "\n</body>"
    if not is_complete_html(html):
        html += "\n</html>"
    return html


def _closing_quote(text: str, start: int) -> int:
    """Index of the first unescaped quote after the opening quote at ``start``."""
    i = start + 1
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == '"':
            return i
        i += 1
    return -1


def _trim_partial_escape(text: str) -> str:
    m = re.search(r"\\u[0-9a-fA-F]{0,3}$", text)
    if m and _odd_backslashes_before(text, m.start() + 1):
        text = text[: m.start()]
    if _odd_backslashes_before(text, len(text)):
        text = text[:-1]
    return text


def _odd_backslashes_before(text: str, end: int) -> bool:
    count = 0
    j = end - 1
    while j >= 0 and text[j] == "\\":
        count += 1
        j -= 1
    return count % 2 == 1


def _value_start(text: str, content_field: str) -> int:
    """Index of the opening quote of ``content_field``'s string value, or -1."""
    m = re.search(r'"%s"\s*:\s*"' % re.escape(content_field), text)
    if not m:
        return -1
    return m.end() - 1


def repair_json(text: str, content_field: str, tail: Optional[Dict[str, Any]] = None) -> str:
    """Patch a JSON object whose big string field was cut off mid-string.

    Only handles that one truncation pattern: the text is cut back to the end
    of ``content_field``'s value (closing the string if the cut fell inside it)
    and ``tail``'s members not already present before the value are appended
    so the result parses. Text whose value is closed and which already ends
    in ``}`` comes back as-is.
    """
    t = (text or "").strip()
    start = _value_start(t, content_field)
    if start == -1:
        return t
    close = _closing_quote(t, start)
    if close != -1 and t.endswith("}"):
        return t
    before = t[:start]
    members = ""
    for key, value in (tail or {}).items():
        if json.dumps(key) in before:
            continue
        members += "," + json.dumps(key) + ":" + json.dumps(value, ensure_ascii=False)

    if close != -1:
        # Value finished; whatever followed it was cut and is replaced by the tail
        head = t[: close + 1]
    else:
        head = _trim_partial_escape(t) + '"'
    log.info("repair: patched truncated JSON field=%s kept=%d/%d chars", content_field, len(head), len(t))
    return head + members + "}"
