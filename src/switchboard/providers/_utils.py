"""Shared utilities for translator implementations."""

from __future__ import annotations

from collections.abc import Mapping
from copy import deepcopy
import json
import logging
from typing import Any

from switchboard.content import (
    CountTokensRequest,
    CountTokensResponse,
    approximate_token_count,
    extract_text,
    normalize_contents,
)

log = logging.getLogger(__name__)

VALID_SCHEMA_TYPES: frozenset[str] = frozenset(
    {"string", "number", "integer", "boolean", "array", "object", "null"}
)
# Bare type names accepted where a sub-schema is expected ("properties": {"a": "string"}).
_SHORTHAND_TYPES = VALID_SCHEMA_TYPES - {"null"}
_UNSUPPORTED_KEYS = frozenset({"$schema", "$id", "definitions", "$defs"})
_NUMERIC_CONSTRAINTS = frozenset({"minItems", "maxItems", "minLength", "maxLength"})
_SUBSCHEMA_LISTS = frozenset({"anyOf", "oneOf", "allOf"})
_SUBSCHEMA_KEYS = frozenset({"additionalProperties", "not"})

_JSON_MODE_PREAMBLE = (
    "You must respond with valid JSON only. No additional text, explanations, "
    "or formatting. The response must conform to this schema: "
)


def sanitize_parameters(schema: Any) -> dict[str, Any]:
    """Normalize a tool parameter schema for strict function-calling APIs.

    - A non-object root is wrapped as the single required ``value`` property.
    - ``type`` values are lower-cased; unknown names (and nested
      ``{"type": {"type": ...}}`` objects without a usable inner name) become
      ``object``.
    - ``$schema``, ``$id``, ``definitions`` and ``$defs`` are dropped.
    - String ``minItems``/``maxItems``/``minLength``/``maxLength`` become numbers.

    The input is never mutated.
    """
    if isinstance(schema, str):
        schema = {"type": schema}
    if not isinstance(schema, Mapping) or not schema:
        return {"type": "object", "properties": {}}

    sanitized = _sanitize_node(schema)
    root_type = sanitized.get("type")
    if root_type is None:
        sanitized["type"] = "object"
    elif root_type != "object":
        sanitized = {
            "type": "object",
            "properties": {"value": sanitized},
            "required": ["value"],
        }
    if not isinstance(sanitized.get("properties"), Mapping):
        sanitized["properties"] = {}
    return sanitized


def _normalize_type(value: Any) -> Any:
    while isinstance(value, Mapping):
        value = value.get("type")
    if isinstance(value, str):
        name = value.lower()
        return name if name in VALID_SCHEMA_TYPES else "object"
    if isinstance(value, list):
        names = [
            v.lower()
            for v in value
            if isinstance(v, str) and v.lower() in VALID_SCHEMA_TYPES
        ]
        return names or "object"
    return "object"


def _coerce_number(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    try:
        number = float(value.strip())
    except ValueError:
        return None
    return int(number) if number.is_integer() else number


def _as_subschema(value: Any) -> Any:
    if isinstance(value, str) and value.lower() in _SHORTHAND_TYPES:
        return {"type": value.lower()}
    if isinstance(value, Mapping):
        return _sanitize_node(value)
    return deepcopy(value)


def _sanitize_node(node: Mapping[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in node.items():
        if key in _UNSUPPORTED_KEYS:
            continue
        if key == "type":
            out[key] = _normalize_type(value)
        elif key == "properties":
            out[key] = (
                {name: _as_subschema(sub) for name, sub in value.items()}
                if isinstance(value, Mapping)
                else {}
            )
        elif key == "items":
            out[key] = _as_subschema(value)
        elif key in _SUBSCHEMA_LISTS and isinstance(value, list):
            out[key] = [_as_subschema(item) for item in value]
        elif key in _SUBSCHEMA_KEYS and isinstance(value, Mapping):
            out[key] = _sanitize_node(value)
        elif key in _NUMERIC_CONSTRAINTS:
            number = _coerce_number(value)
            if number is not None:
                out[key] = number
        else:
            out[key] = deepcopy(value)

    if out.get("type") == "array" and "items" in out and not isinstance(
        out["items"], Mapping
    ):
        out["items"] = {"type": "object"}
    return out


def json_mode_instruction(schema: Any) -> str:
    """Return the instruction text that forces schema-conformant JSON output."""
    return _JSON_MODE_PREAMBLE + json.dumps(schema, separators=(",", ":"))


def parse_arguments(raw: Any, *, name: str = "") -> dict[str, Any]:
    """Best-effort parse of tool-call arguments; ``{}`` when unusable."""
    if isinstance(raw, Mapping):
        return dict(raw)
    if not isinstance(raw, str) or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError:
        log.debug("Malformed arguments for tool call %r; using empty args", name)
        return {}
    return parsed if isinstance(parsed, dict) else {}


def approximate_count(request: CountTokensRequest) -> CountTokensResponse:
    """Approximate tokens for the request's text parts (see ``approximate_token_count``)."""
    text = extract_text(normalize_contents(request.contents))
    return CountTokensResponse(total_tokens=approximate_token_count(text))


def response_text(value: Any) -> str:
    """Render a function response payload as text."""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)
