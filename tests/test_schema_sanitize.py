"""Tool parameter schema sanitization tests."""

from __future__ import annotations

import copy

from hypothesis import given
from hypothesis import strategies as st
import pytest

from switchboard.providers._utils import (
    json_mode_instruction,
    parse_arguments,
    sanitize_parameters,
)

pytestmark = pytest.mark.unit


def test_non_object_root_is_wrapped_as_required_value() -> None:
    assert sanitize_parameters({"type": "string"}) == {
        "type": "object",
        "properties": {"value": {"type": "string"}},
        "required": ["value"],
    }


def test_bare_string_root_is_wrapped_too() -> None:
    result = sanitize_parameters("string")

    assert result["properties"] == {"value": {"type": "string"}}
    assert result["required"] == ["value"]


def test_unsupported_keys_are_stripped_recursively() -> None:
    schema = {
        "$schema": "http://json-schema.org/draft-07/schema#",
        "$id": "x",
        "type": "object",
        "definitions": {"a": {}},
        "properties": {"p": {"type": "object", "$defs": {}, "properties": {}}},
    }

    result = sanitize_parameters(schema)

    assert set(result) == {"type", "properties"}
    assert result["properties"]["p"] == {"type": "object", "properties": {}}


def test_type_names_are_lowercased_and_validated() -> None:
    result = sanitize_parameters(
        {
            "type": "OBJECT",
            "properties": {
                "a": {"type": "String"},
                "b": {"type": "widget"},
                "c": {"type": {"type": "integer"}},
            },
        }
    )

    assert result["type"] == "object"
    assert result["properties"]["a"]["type"] == "string"
    assert result["properties"]["b"]["type"] == "object"
    assert result["properties"]["c"]["type"] == "integer"


def test_numeric_string_constraints_are_coerced() -> None:
    result = sanitize_parameters(
        {
            "type": "object",
            "properties": {
                "tags": {"type": "array", "items": "string", "minItems": "1", "maxItems": "3"},
                "name": {"type": "string", "maxLength": "abc"},
            },
        }
    )

    tags = result["properties"]["tags"]
    assert tags["minItems"] == 1
    assert tags["maxItems"] == 3
    assert tags["items"] == {"type": "string"}
    assert "maxLength" not in result["properties"]["name"]


def test_object_root_gets_properties() -> None:
    assert sanitize_parameters({"type": "object"}) == {"type": "object", "properties": {}}


def test_string_values_outside_schema_positions_are_kept() -> None:
    result = sanitize_parameters(
        {"type": "object", "properties": {"mode": {"type": "string", "default": "string"}}}
    )

    assert result["properties"]["mode"]["default"] == "string"


_schemas = st.recursive(
    st.sampled_from(["string", "integer", "boolean", "OBJECT", "bogus"]).map(
        lambda t: {"type": t}
    ),
    lambda children: st.fixed_dictionaries(
        {
            "type": st.sampled_from(["object", "Object", "array"]),
            "properties": st.dictionaries(st.text(min_size=1, max_size=5), children, max_size=3),
        },
        optional={"$schema": st.just("x"), "minItems": st.sampled_from(["2", "x", 4])},
    ),
    max_leaves=8,
)


@given(_schemas)
def test_sanitized_root_is_always_an_object_and_input_untouched(schema) -> None:
    original = copy.deepcopy(schema)

    result = sanitize_parameters(schema)

    assert schema == original
    assert result["type"] == "object"
    assert isinstance(result["properties"], dict)
    assert "$schema" not in result


def test_parse_arguments_falls_back_to_empty() -> None:
    assert parse_arguments('{"a": 1}') == {"a": 1}
    assert parse_arguments("{not json") == {}
    assert parse_arguments("[1, 2]") == {}
    assert parse_arguments(None) == {}


def test_json_mode_instruction_embeds_compact_schema() -> None:
    text = json_mode_instruction({"type": "object", "properties": {}})

    assert text.startswith("You must respond with valid JSON only.")
    assert text.endswith('{"type":"object","properties":{}}')
