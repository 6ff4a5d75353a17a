from __future__ import annotations

import copy
from typing import Any, Dict, List

from jsonschema.validators import Draft202012Validator

_PALETTE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "description": "Color palette for the theme, HSL strings such as '210 40% 96.1%'.",
    "properties": {
        "primary": {"type": "string", "minLength": 1},
        "background": {"type": "string", "minLength": 1},
        "accent": {"type": "string", "minLength": 1},
    },
    "required": ["primary", "background", "accent"],
}

WEBSITE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "websiteContent": {
            "type": "string",
            "minLength": 1,
            "description": "The generated HTML content for the website, styled with Tailwind CSS.",
        },
        "palette": _PALETTE_SCHEMA,
    },
    "required": ["websiteContent", "palette"],
}

APP_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "appContent": {
            "type": "string",
            "minLength": 1,
            "description": "The generated HTML/CSS/JS content for the web application.",
        },
        "palette": _PALETTE_SCHEMA,
        "appMeta": {
            "type": "object",
            "properties": {
                "name": {"type": "string"},
                "description": {"type": "string"},
                "features": {"type": "array", "items": {"type": "string"}},
            },
            "required": ["name", "description", "features"],
        },
    },
    "required": ["appContent", "palette", "appMeta"],
}

REFINE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "refinedCode": {
            "type": "string",
            "minLength": 1,
            "description": "The refined HTML code with applied changes.",
        },
        "changesSummary": {"type": "string", "minLength": 1},
        "suggestions": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["refinedCode", "changesSummary"],
}

SUMMARY_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "summary": {
            "type": "string",
            "description": "A concise summary of the website's primary purpose and key functionalities.",
        },
    },
    "required": ["summary"],
}

for _schema in (WEBSITE_SCHEMA, APP_SCHEMA, REFINE_SCHEMA, SUMMARY_SCHEMA):
    Draft202012Validator.check_schema(_schema)

# Keys the Gemini responseSchema (OpenAPI subset) understands
_GEMINI_KEYS = {"type", "description", "properties", "required", "items", "enum", "nullable", "format"}


def to_gemini_schema(schema: Dict[str, Any]) -> Dict[str, Any]:
    """Translate a JSON Schema into Gemini's responseSchema dialect."""
    out: Dict[str, Any] = {}
    for key, value in schema.items():
        if key not in _GEMINI_KEYS:
            continue
        if key == "type" and isinstance(value, str):
            out["type"] = value.upper()
        elif key == "properties" and isinstance(value, dict):
            out["properties"] = {name: to_gemini_schema(sub) for name, sub in value.items()}
        elif key == "items" and isinstance(value, dict):
            out["items"] = to_gemini_schema(value)
        else:
            out[key] = copy.deepcopy(value)
    return out


def collect_errors(instance: Any, schema: Dict[str, Any]) -> List[Dict[str, str]]:
    """Return ``{"path", "message"}`` dicts for every schema violation."""
    validator = Draft202012Validator(schema)
    errors: List[Dict[str, str]] = []
    for err in sorted(validator.iter_errors(instance), key=lambda e: list(e.absolute_path)):
        path = ".".join(str(p) for p in err.absolute_path) or "(root)"
        errors.append({"path": path, "message": err.message})
    return errors
