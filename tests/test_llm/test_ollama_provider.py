import json

import httpx
import pytest

from agentloop.exceptions import LLMAPIError, LLMError
from agentloop.llm import (
    ChatRequest,
    Message,
    OllamaProvider,
    ParameterSchema,
    Property,
    ToolCall,
    ToolDefinition,
    create_provider,
)


def _provider(handler) -> OllamaProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OllamaProvider(
        model="llama3.2",
        base_url="http://ollama.test/",
        temperature=0.2,
        max_tokens=512,
        client=client,
    )


def test_convert_messages_maps_history():
    provider = OllamaProvider(client=httpx.AsyncClient())
    request = ChatRequest(
        system_prompt="be nice",
        messages=[
            Message(role="user", content="echo hi"),
            Message(
                role="assistant",
                content="",
                tool_calls=[ToolCall(id="c1", name="echo", arguments={"message": "hi"})],
            ),
            Message(role="user", content='{"echoed":"hi"}', tool_result_id="c1", tool_name="echo"),
        ],
    )

    converted = provider._convert_messages(request)

    assert converted[0] == {"role": "system", "content": "be nice"}
    assert converted[1] == {"role": "user", "content": "echo hi"}
    assert converted[2]["role"] == "assistant"
    assert converted[2]["tool_calls"] == [{"function": {"name": "echo", "arguments": {"message": "hi"}}}]
    assert converted[3] == {"role": "tool", "content": '{"echoed":"hi"}', "tool_name": "echo"}


def test_convert_messages_without_system_prompt():
    provider = OllamaProvider(client=httpx.AsyncClient())

    converted = provider._convert_messages(ChatRequest(messages=[Message(role="user", content="x")]))

    assert converted == [{"role": "user", "content": "x"}]


def test_build_body_includes_tools_and_options():
    provider = OllamaProvider(temperature=0.3, max_tokens=100, client=httpx.AsyncClient())
    tool = ToolDefinition(
        name="echo",
        description="Echo a message",
        parameters=ParameterSchema(
            properties={"message": Property(type="string", description="text")},
            required=["message"],
        ),
    )

    body = provider._build_body(ChatRequest(messages=[], tools=[tool], max_tokens=50))

    assert body["stream"] is False
    assert body["options"] == {"temperature": 0.3, "num_predict": 50}
    assert body["tools"][0]["type"] == "function"
    assert body["tools"][0]["function"]["name"] == "echo"
    assert body["tools"][0]["function"]["parameters"]["required"] == ["message"]


def test_build_body_omits_empty_tools():
    provider = OllamaProvider(client=httpx.AsyncClient())

    body = provider._build_body(ChatRequest())

    assert "tools" not in body
    assert body["options"]["num_predict"] == 4096


def test_parse_response_with_tool_calls():
    data = {
        "message": {
            "role": "assistant",
            "content": "",
            "tool_calls": [
                {"function": {"name": "echo", "arguments": {"message": "hi"}}},
                {"id": "abc", "function": {"name": "read_file", "arguments": '{"path": "/tmp/x"}'}},
            ],
        },
        "prompt_eval_count": 12,
        "eval_count": 4,
    }

    response = OllamaProvider._parse_response(data, "llama3.2")

    assert response.model == "llama3.2"
    assert response.tool_calls[0].id.startswith("ollama_call_")
    assert response.tool_calls[0].id.endswith("_0")
    assert response.tool_calls[1].id == "abc"
    assert response.tool_calls[0].arguments == {"message": "hi"}
    assert response.tool_calls[1].arguments == {"path": "/tmp/x"}
    assert response.usage.input_tokens == 12
    assert response.usage.output_tokens == 4
    assert response.usage.total_tokens == 16


def test_parse_response_missing_fields():
    response = OllamaProvider._parse_response({}, "m")

    assert response.content == ""
    assert response.tool_calls == []
    assert response.usage.total_tokens == 0


@pytest.mark.asyncio
async def test_chat_posts_to_api_chat():
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "message": {"role": "assistant", "content": "Hello!"},
            "prompt_eval_count": 3,
            "eval_count": 2,
        })

    provider = _provider(handler)
    response = await provider.chat(ChatRequest(messages=[Message(role="user", content="hi")]))
    await provider.close()

    assert seen["url"] == "http://ollama.test/api/chat"
    assert seen["body"]["model"] == "llama3.2"
    assert seen["body"]["messages"] == [{"role": "user", "content": "hi"}]
    assert response.content == "Hello!"
    assert response.usage.total_tokens == 5


@pytest.mark.asyncio
async def test_chat_raises_api_error_on_http_status():
    provider = _provider(lambda request: httpx.Response(500, text="model exploded"))

    with pytest.raises(LLMAPIError) as exc_info:
        await provider.chat(ChatRequest())

    assert exc_info.value.status_code == 500
    assert "model exploded" in str(exc_info.value)


@pytest.mark.asyncio
async def test_chat_wraps_transport_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    provider = _provider(handler)

    with pytest.raises(LLMAPIError, match="connection refused"):
        await provider.chat(ChatRequest())


@pytest.mark.asyncio
async def test_chat_rejects_invalid_json():
    provider = _provider(lambda request: httpx.Response(200, text="not json"))

    with pytest.raises(LLMError, match="decode error"):
        await provider.chat(ChatRequest())


def test_create_provider_ollama():
    provider = create_provider("Ollama", model="qwen2.5", base_url="http://host:1234")

    assert isinstance(provider, OllamaProvider)
    assert provider.model == "qwen2.5"
    assert provider.base_url == "http://host:1234"


def test_create_provider_unknown():
    with pytest.raises(ValueError, match="not supported"):
        create_provider("mystery", model="x")


def test_parse_response_fallback_ids_unique_across_responses():
    data = {"message": {"tool_calls": [{"function": {"name": "echo", "arguments": {}}}]}}

    first = OllamaProvider._parse_response(data, "m")
    second = OllamaProvider._parse_response(data, "m")

    assert first.tool_calls[0].id != second.tool_calls[0].id


@pytest.mark.parametrize("arguments", ["[1, 2]", '"x"', [1, 2], 7])
def test_parse_response_rejects_non_object_arguments(arguments):
    data = {"message": {"tool_calls": [{"function": {"name": "echo", "arguments": arguments}}]}}

    with pytest.raises(LLMError, match="must be an object"):
        OllamaProvider._parse_response(data, "m")


@pytest.mark.asyncio
async def test_chat_rejects_non_object_arguments_as_llm_error():
    provider = _provider(lambda request: httpx.Response(200, json={
        "message": {"tool_calls": [{"function": {"name": "echo", "arguments": "[1, 2]"}}]},
    }))

    with pytest.raises(LLMError, match="echo"):
        await provider.chat(ChatRequest())


@pytest.mark.asyncio
async def test_chat_stream_yields_content_chunks():
    seen: dict = {}
    lines = [
        {"message": {"content": "Hel"}, "done": False},
        {"message": {"content": "lo"}, "done": False},
        {"message": {"content": ""}, "done": True},
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        payload = "\n".join(json.dumps(line) for line in lines) + "\nnot json\n"
        return httpx.Response(200, text=payload)

    provider = _provider(handler)
    chunks = [chunk async for chunk in provider.chat_stream(ChatRequest(messages=[Message(role="user", content="hi")]))]

    assert chunks == ["Hel", "lo"]
    assert seen["body"]["stream"] is True


@pytest.mark.asyncio
async def test_chat_stream_raises_api_error_on_http_status():
    provider = _provider(lambda request: httpx.Response(503, text="loading model"))

    with pytest.raises(LLMAPIError) as exc_info:
        async for _ in provider.chat_stream(ChatRequest()):
            pass

    assert exc_info.value.status_code == 503
    assert "loading model" in str(exc_info.value)
