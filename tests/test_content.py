"""Canonical conversation model tests."""

from __future__ import annotations

import math

from hypothesis import given
from hypothesis import strategies as st
import pytest

from switchboard.content import (
    Content,
    FunctionCallPart,
    FunctionResponsePart,
    GenerateResponse,
    GenerationConfig,
    TextPart,
    Tool,
    UsageMetadata,
    approximate_token_count,
    extract_text,
    normalize_contents,
    part_to_dict,
)

pytestmark = pytest.mark.unit


def test_bare_string_becomes_single_user_turn() -> None:
    assert normalize_contents("hello") == [Content(role="user", parts=[TextPart("hello")])]


def test_gemini_style_mappings_are_converted() -> None:
    contents = normalize_contents(
        [
            {"role": "user", "parts": [{"text": "read it"}]},
            {
                "role": "model",
                "parts": [{"functionCall": {"name": "read_file", "args": {"p": 1}, "id": "c1"}}],
            },
            {
                "role": "user",
                "parts": [{"function_response": {"name": "read_file", "response": "ok"}}],
            },
        ]
    )

    assert [c.role for c in contents] == ["user", "model", "user"]
    assert contents[1].parts == [FunctionCallPart(name="read_file", args={"p": 1}, id="c1")]
    assert contents[2].parts == [FunctionResponsePart(name="read_file", response="ok")]


def test_unrecognised_items_are_serialised_into_user_text() -> None:
    (content,) = normalize_contents([{"unexpected": True}])

    assert content.role == "user"
    assert content.parts == [TextPart('{"unexpected": true}')]


def test_turns_without_parts_list_are_dropped() -> None:
    contents = normalize_contents([{"role": "user", "parts": "nope"}, "kept"])

    assert contents == [Content(role="user", parts=[TextPart("kept")])]


def test_none_yields_no_turns() -> None:
    assert normalize_contents(None) == []


def test_extract_text_joins_text_parts_with_spaces() -> None:
    contents = [
        Content(role="user", parts=[TextPart("a"), FunctionCallPart(name="f"), TextPart("b")]),
        Content(role="model", parts=[TextPart("c")]),
    ]

    assert extract_text(contents) == "a  b c"


@given(st.text())
def test_token_approximation_is_ceil_of_quarter_length(text: str) -> None:
    assert approximate_token_count(text) == math.ceil(len(text) / 4)
    assert approximate_token_count(text) == approximate_token_count(text)


def test_usage_total_is_sum_of_counts() -> None:
    usage = UsageMetadata.from_counts(12, 30, total=999)

    assert usage.total_token_count == 42


def test_usage_never_negative() -> None:
    usage = UsageMetadata.from_counts(-3, None)

    assert usage.prompt_token_count == 0
    assert usage.total_token_count == 0


def test_usage_uses_bare_total_when_counts_absent() -> None:
    assert UsageMetadata.from_counts(total=7).total_token_count == 7


def test_json_mode_requires_mime_type_and_schema() -> None:
    assert GenerationConfig(
        response_mime_type="application/json", response_schema={"type": "object"}
    ).json_mode
    assert not GenerationConfig(response_mime_type="application/json").json_mode


def test_tool_from_mapping_distinguishes_declarations_and_directives() -> None:
    functions = Tool.from_mapping(
        {"functionDeclarations": [{"name": "f", "parametersJsonSchema": {"type": "object"}}]}
    )
    directive = Tool.from_mapping({"googleSearch": {}})

    assert functions.function_declarations[0].parameters_json_schema == {"type": "object"}
    assert functions.directive is None
    assert directive.directive == {"googleSearch": {}}
    assert directive.function_declarations == []


def test_part_to_dict_uses_camel_case_keys() -> None:
    assert part_to_dict(FunctionCallPart(name="f", args={"a": 1}, id="x")) == {
        "functionCall": {"name": "f", "args": {"a": 1}, "id": "x"}
    }


def test_response_to_content_keeps_text_and_calls() -> None:
    call = FunctionCallPart(name="f", id="1")
    content = GenerateResponse(text="hi", function_calls=[call]).to_content()

    assert content == Content(role="model", parts=[TextPart("hi"), call])
