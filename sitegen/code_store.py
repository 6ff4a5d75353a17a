from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Optional, Protocol, Union

import redis

from sitegen.config import Settings

log = logging.getLogger(__name__)

KEY_PREFIX = "template_code_"

TemplateId = Union[int, str]


class TemplateCodeStore(Protocol):
    def get(self, template_id: TemplateId) -> str: ...

    def set(self, template_id: TemplateId, code: str) -> None: ...

    def delete(self, template_id: TemplateId) -> None: ...


def _key(template_id: TemplateId) -> str:
    tid = str(template_id).strip()
    if not tid or not tid.replace("-", "").isalnum():
        raise ValueError(f"invalid template id: {template_id!r}")
    return f"{KEY_PREFIX}{tid}"


class CodeStore:
    """HTML for each template, one file per template id.

    Writes go through a temp file and ``replace`` so readers never see a
    half-written document. A missing entry reads as "".
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def _path(self, template_id: TemplateId) -> Path:
        return self.root / f"{_key(template_id)}.html"

    def get(self, template_id: TemplateId) -> str:
        path = self._path(template_id)
        if not path.exists():
            return ""
        with path.open("r", encoding="utf-8") as f:
            return f.read()

    def set(self, template_id: TemplateId, code: str) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        path = self._path(template_id)
        tmp = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")
        with tmp.open("w", encoding="utf-8") as f:
            f.write(code)
        tmp.replace(path)
        log.info("code_store: saved template %s (%d chars)", template_id, len(code))

    def delete(self, template_id: TemplateId) -> None:
        try:
            self._path(template_id).unlink()
        except FileNotFoundError:
            return
        log.info("code_store: removed template %s", template_id)


class RedisCodeStore:
    def __init__(self, client: "redis.Redis"):
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCodeStore":
        return cls(redis.from_url(url, decode_responses=True))

    def get(self, template_id: TemplateId) -> str:
        raw = self._redis.get(_key(template_id))
        return raw or ""

    def set(self, template_id: TemplateId, code: str) -> None:
        self._redis.set(_key(template_id), code)
        log.info("code_store: saved template %s to redis (%d chars)", template_id, len(code))

    def delete(self, template_id: TemplateId) -> None:
        self._redis.delete(_key(template_id))


def build_code_store(settings: Settings, redis_client: Optional["redis.Redis"] = None) -> TemplateCodeStore:
    if redis_client is not None:
        return RedisCodeStore(redis_client)
    if settings.redis_url:
        log.info("code_store: using redis backend")
        return RedisCodeStore.from_url(settings.redis_url)
    return CodeStore(settings.code_store_dir)
