"""Anthropic Messages API translator characterization tests."""

from __future__ import annotations

import pytest

from switchboard.content import (
    Content,
    CountTokensRequest,
    EmbedContentRequest,
    FinishReason,
    FunctionCallPart,
    FunctionResponsePart,
    GenerateRequest,
    GenerationConfig,
    TextPart,
    Tool,
    ToolDeclaration,
)
from switchboard.errors import APIError, UnsupportedOperationError
from switchboard.providers.anthropic import AnthropicGenerator, rewrite_tool_results

pytestmark = pytest.mark.contract

_MESSAGE_OK = {
    "content": [{"type": "text", "text": "ok"}],
    "stop_reason": "end_turn",
    "usage": {"input_tokens": 3, "output_tokens": 4},
}


def _generator(client, model: str = "claude-3-5-sonnet-20241022") -> AnthropicGenerator:
    return AnthropicGenerator(model=model, api_key="sk-ant", client=client)


# =============================================================================
# Request construction
# =============================================================================


@pytest.mark.asyncio
async def test_request_targets_messages_endpoint_with_version_header(http) -> None:
    gen = _generator(http.json_client(_MESSAGE_OK))

    await gen.generate_content(GenerateRequest(contents="hi"))

    request = http.last_request
    assert str(request.url) == "https://api.anthropic.com/v1/messages"
    assert request.headers["x-api-key"] == "sk-ant"
    assert request.headers["anthropic-version"] == "2023-06-01"
    body = http.last_json
    assert body["messages"] == [{"role": "user", "content": [{"type": "text", "text": "hi"}]}]
    assert body["max_tokens"] == 2048
    assert body["temperature"] == 0.7
    assert body["top_p"] == 1


def test_tool_results_are_rewritten_into_summary_text() -> None:
    contents = [
        Content(
            role="user",
            parts=[
                TextPart("Done?"),
                FunctionResponsePart(name="read", response={"a": 1}, id="c1"),
                FunctionResponsePart(name="note", response="plain"),
            ],
        )
    ]

    (rewritten,) = rewrite_tool_results(contents)

    assert rewritten.parts == [
        TextPart(
            "Done?\n\n"
            "## Tool Execution Completed\n\n"
            "The following tools have been executed successfully:\n\n"
            '### read\n```\n{\n  "a": 1\n}\n```\n\n'
            "### note\n```\nplain\n```\n\n"
            "**Task completed successfully.** "
            "Please provide a summary of these results and any insights."
        )
    ]


@pytest.mark.asyncio
async def test_tool_only_user_turn_becomes_single_text_block(http) -> None:
    gen = _generator(http.json_client(_MESSAGE_OK))

    await gen.generate_content(
        GenerateRequest(
            contents=[
                Content(role="user", parts=[TextPart("list files")]),
                Content(role="model", parts=[FunctionCallPart(name="ls", args={"p": "."}, id="t1")]),
                Content(role="user", parts=[FunctionResponsePart(name="ls", response=["a"])]),
            ]
        )
    )

    messages = http.last_json["messages"]
    assert messages[1] == {
        "role": "assistant",
        "content": [{"type": "tool_use", "id": "t1", "name": "ls", "input": {"p": "."}}],
    }
    (block,) = messages[2]["content"]
    assert block["type"] == "text"
    assert block["text"].startswith("## Tool Execution Completed")
    assert "functionResponse" not in str(messages)


@pytest.mark.asyncio
async def test_json_mode_prepends_instruction_to_first_user_turn(http) -> None:
    gen = _generator(http.json_client(_MESSAGE_OK))

    await gen.generate_content(
        GenerateRequest(
            contents=[
                Content(role="model", parts=[TextPart("earlier")]),
                Content(role="user", parts=[TextPart("give json")]),
            ],
            config=GenerationConfig(
                response_mime_type="application/json", response_schema={"type": "object"}
            ),
        )
    )

    body = http.last_json
    user_blocks = body["messages"][1]["content"]
    assert user_blocks[0]["text"].startswith("You must respond with valid JSON only.")
    assert user_blocks[1] == {"type": "text", "text": "give json"}
    assert "system" not in body


@pytest.mark.asyncio
async def test_system_turns_move_to_top_level_system(http) -> None:
    gen = _generator(http.json_client(_MESSAGE_OK))

    await gen.generate_content(
        GenerateRequest(
            contents=[
                Content(role="system", parts=[TextPart("be brief")]),
                Content(role="user", parts=[TextPart("hi")]),
            ]
        )
    )

    body = http.last_json
    assert body["system"] == "be brief"
    assert [m["role"] for m in body["messages"]] == ["user"]


@pytest.mark.asyncio
async def test_empty_turns_dropped_and_same_role_turns_merged(http) -> None:
    gen = _generator(http.json_client(_MESSAGE_OK))

    await gen.generate_content(
        GenerateRequest(
            contents=[
                Content(role="user", parts=[TextPart("one")]),
                Content(role="model", parts=[TextPart("")]),
                Content(role="user", parts=[TextPart("two")]),
            ]
        )
    )

    assert http.last_json["messages"] == [
        {
            "role": "user",
            "content": [{"type": "text", "text": "one"}, {"type": "text", "text": "two"}],
        }
    ]


@pytest.mark.asyncio
async def test_raw_tool_result_blocks_get_readable_lead_in(http) -> None:
    gen = _generator(http.json_client(_MESSAGE_OK))
    raw = {"type": "tool_result", "tool_use_id": "t1", "content": "42"}

    await gen.generate_content(
        GenerateRequest(contents=[Content(role="user", parts=[raw])])
    )

    assert http.last_json["messages"][0]["content"] == [
        {"type": "text", "text": "Here are the tool results:"},
        raw,
    ]


@pytest.mark.asyncio
async def test_leftover_function_response_renders_inline(http) -> None:
    gen = _generator(http.json_client(_MESSAGE_OK))

    await gen.generate_content(
        GenerateRequest(
            contents=[
                Content(role="user", parts=[TextPart("go")]),
                Content(role="model", parts=[FunctionResponsePart(name="f", response={"k": 1})]),
            ]
        )
    )

    assert http.last_json["messages"][1]["content"] == [
        {"type": "text", "text": 'Tool result from f: {"k": 1}'}
    ]


@pytest.mark.asyncio
async def test_tools_are_sent_with_input_schema(http) -> None:
    gen = _generator(http.json_client(_MESSAGE_OK))
    tool = Tool(function_declarations=[ToolDeclaration(name="ls"), ToolDeclaration(
        name="cat", description="Read", parameters={"type": "object", "properties": {"p": {"type": "string"}}}
    )])

    await gen.generate_content(GenerateRequest(contents="hi", config=GenerationConfig(tools=[tool])))

    assert http.last_json["tools"] == [
        {"name": "ls", "description": "", "input_schema": {"type": "object", "properties": {}}},
        {
            "name": "cat",
            "description": "Read",
            "input_schema": {"type": "object", "properties": {"p": {"type": "string"}}},
        },
    ]


# =============================================================================
# Response parsing
# =============================================================================


@pytest.mark.asyncio
async def test_response_blocks_map_to_text_and_calls(http) -> None:
    body = {
        "content": [
            {"type": "text", "text": "Let me "},
            {"type": "text", "text": "check."},
            {"type": "tool_use", "id": "toolu_1", "name": "ls", "input": {"p": "/"}},
        ],
        "stop_reason": "tool_use",
        "usage": {"input_tokens": 10, "output_tokens": 5},
    }
    gen = _generator(http.json_client(body))

    response = await gen.generate_content(GenerateRequest(contents="hi"))

    assert response.text == "Let me check."
    assert response.function_calls == [FunctionCallPart(id="toolu_1", name="ls", args={"p": "/"})]
    assert response.finish_reason == FinishReason.TOOL_CALLS
    assert response.usage.prompt_token_count == 10
    assert response.usage.total_token_count == 15


@pytest.mark.asyncio
async def test_other_stop_reasons_pass_through(http) -> None:
    gen = _generator(http.json_client({**_MESSAGE_OK, "stop_reason": "max_tokens"}))

    response = await gen.generate_content(GenerateRequest(contents="hi"))

    assert response.finish_reason == "max_tokens"


# =============================================================================
# Streaming
# =============================================================================


@pytest.mark.asyncio
async def test_stream_yields_text_then_accumulated_tool_call(http, sse) -> None:
    lines = [
        "event: message_start",
        sse({"type": "message_start", "message": {}}),
        sse({"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}}),
        sse({"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "Look"}}),
        sse({"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "ing"}}),
        sse({"type": "content_block_start", "index": 1, "content_block": {"type": "tool_use", "id": "toolu_9", "name": "grep"}}),
        sse({"type": "content_block_delta", "index": 1, "delta": {"type": "input_json_delta", "partial_json": '{"q": '}}),
        sse("{garbage"),
        sse({"type": "content_block_delta", "index": 1, "delta": {"type": "input_json_delta", "partial_json": '"x"}'}}),
        sse({"type": "message_stop"}),
    ]
    gen = _generator(http.sse_client(lines, chunk_size=16))

    responses = [r async for r in gen.generate_content_stream(GenerateRequest(contents="hi"))]

    assert [r.text for r in responses] == ["Look", "ing", ""]
    assert responses[-1].function_calls == [
        FunctionCallPart(id="toolu_9", name="grep", args={"q": "x"})
    ]
    assert responses[-1].finish_reason == FinishReason.TOOL_CALLS
    assert http.last_json["stream"] is True


@pytest.mark.asyncio
async def test_stream_error_event_raises(http, sse) -> None:
    lines = [sse({"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}})]
    gen = _generator(http.sse_client(lines))

    with pytest.raises(APIError, match="Overloaded"):
        async for _ in gen.generate_content_stream(GenerateRequest(contents="hi")):
            pass


# =============================================================================
# Unsupported and local operations
# =============================================================================


@pytest.mark.asyncio
async def test_embeddings_unsupported_without_network(http) -> None:
    gen = _generator(http.json_client({}))

    for _ in range(2):
        with pytest.raises(UnsupportedOperationError, match="not support embeddings"):
            await gen.embed_content(EmbedContentRequest(contents="x"))
    assert http.requests == []


@pytest.mark.asyncio
async def test_count_tokens_approximates(http) -> None:
    gen = _generator(http.json_client({}))

    result = await gen.count_tokens(CountTokensRequest(contents=["abcd", "e"]))

    assert result.total_tokens == 2
    assert http.requests == []


@pytest.mark.asyncio
async def test_call_without_id_gets_synthetic_tool_use_id(http) -> None:
    gen = _generator(http.json_client(_MESSAGE_OK))

    await gen.generate_content(
        GenerateRequest(
            contents=[
                Content(role="user", parts=[TextPart("go")]),
                Content(role="model", parts=[FunctionCallPart(name="f", args={})]),
            ]
        )
    )

    (block,) = http.last_json["messages"][1]["content"]
    assert block["type"] == "tool_use"
    assert isinstance(block["id"], str)
    assert block["id"].startswith("toolu_")
    assert len(block["id"]) > len("toolu_")


@pytest.mark.asyncio
async def test_empty_text_deltas_yield_nothing(http, sse) -> None:
    lines = [
        sse({"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": ""}}),
        sse({"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "hi"}}),
        sse({"type": "message_stop"}),
    ]
    gen = _generator(http.sse_client(lines))

    responses = [r async for r in gen.generate_content_stream(GenerateRequest(contents="hi"))]

    assert [r.text for r in responses] == ["hi"]
