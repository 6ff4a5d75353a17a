from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional

import requests

from sitegen.config import Settings
from sitegen.errors import TemplateApiError

log = logging.getLogger(__name__)

NAMESPACE_MAX_LEN = 100
# Fields the backend record accepts; `code` never leaves this service
BACKEND_FIELDS = ("name", "namespace", "emailDesigner", "email", "hidden")

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def to_short_namespace(name: str, max_len: int = NAMESPACE_MAX_LEN) -> str:
    """Slug a template name into a backend namespace of at most ``max_len`` chars."""
    slug = _NON_ALNUM_RE.sub("-", (name or "").lower()).strip("-") or "template"
    return slug[:max_len]


def _error_detail(resp: Any, fallback: str) -> str:
    text = ""
    try:
        text = resp.text or ""
        body = json.loads(text)
    except ValueError:
        return text or f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        for key in ("detail", "error", "message"):
            value = body.get(key)
            if value:
                return value if isinstance(value, str) else json.dumps(value)
    return json.dumps(body) if body else fallback


def backend_payload(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: data[k] for k in BACKEND_FIELDS if k in data and data[k] is not None}


class TemplateApiClient:
    """Thin client for the template CRUD backend.

    Every call forwards the caller's ``Authorization`` header unchanged and
    turns non-2xx answers into TemplateApiError with the backend's status.
    """

    def __init__(self, base_url: str, auth_header: Optional[str] = None, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.auth_header = auth_header
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings, auth_header: Optional[str] = None) -> "TemplateApiClient":
        return cls(settings.template_api_base_url, auth_header, settings.template_api_timeout_secs)

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.auth_header:
            headers["Authorization"] = self.auth_header
        return headers

    def _request(self, method: str, path: str, what: str, body: Optional[Dict[str, Any]] = None) -> Any:
        try:
            resp = requests.request(
                method,
                self._url(path),
                headers=self._headers(),
                json=body,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            log.warning("templates: %s %s failed: %r", method, path, exc)
            raise TemplateApiError(f"{what}: template backend unreachable", status=502) from exc

        if not 200 <= resp.status_code < 300:
            detail = _error_detail(resp, what)
            log.warning("templates: %s %s -> %s %s", method, path, resp.status_code, detail[:200])
            raise TemplateApiError(detail, status=resp.status_code)

        if resp.status_code == 204 or not (resp.text or "").strip():
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise TemplateApiError(f"{what}: template backend returned a non-JSON body", status=502) from exc

    def check_credentials(self) -> bool:
        try:
            self._request("GET", "user/", "Error checking credentials")
        except TemplateApiError as exc:
            if exc.status in (401, 403):
                return False
            raise
        return True

    def list_templates(self) -> List[Dict[str, Any]]:
        data = self._request("GET", "template/", "Error fetching templates")
        if isinstance(data, dict) and isinstance(data.get("results"), list):
            data = data["results"]
        return list(data or [])

    def create_template(self, data: Dict[str, Any]) -> Dict[str, Any]:
        payload = backend_payload(data)
        payload.setdefault("hidden", False)
        log.info("templates: creating %r", payload.get("name"))
        return self._request("POST", "template/", "Error creating template", payload) or {}

    def update_template(self, template_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        payload = backend_payload(data)
        log.info("templates: updating id=%s", template_id)
        return self._request("PUT", f"template/{template_id}/", "Error updating template", payload) or {}

    def delete_template(self, template_id: int) -> None:
        log.info("templates: deleting id=%s", template_id)
        self._request("DELETE", f"template/{template_id}/", "Error deleting template")
