"""Model backend contract and the Ollama reference provider."""

import json
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

import httpx

from agentloop.exceptions import LLMAPIError, LLMError
from agentloop.logging import get_logger

log = get_logger(__name__)


OLLAMA_NATIVE_BASE_URL = "http://127.0.0.1:11434"


@dataclass(frozen=True)
class ToolCall:
    """A tool call from the LLM."""

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Message:
    """A message in the conversation.

    Assistant messages that invoked tools carry `tool_calls`; messages that hand
    a tool result back to the model carry `tool_result_id`, `tool_name` and
    `is_error`.
    """

    role: str  # "user", "assistant"
    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_result_id: str | None = None
    tool_name: str | None = None
    is_error: bool = False

    @property
    def is_tool_result(self) -> bool:
        return self.tool_result_id is not None


@dataclass
class TokenUsage:
    """Token consumption reported by a backend call."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


@dataclass
class Property:
    """A single parameter of a tool."""

    type: str
    description: str = ""
    items: "Property | None" = None  # element schema for array types

    def to_json_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {"type": self.type}
        if self.description:
            schema["description"] = self.description
        if self.items is not None:
            schema["items"] = self.items.to_json_schema()
        return schema


@dataclass
class ParameterSchema:
    """Parameter schema for a tool: named, typed, optionally-required parameters."""

    type: str = "object"
    properties: dict[str, Property] = field(default_factory=dict)
    required: list[str] = field(default_factory=list)

    def to_json_schema(self) -> dict[str, Any]:
        """Render as a JSON Schema object."""
        return {
            "type": self.type,
            "properties": {
                name: prop.to_json_schema() for name, prop in self.properties.items()
            },
            "required": list(self.required),
        }


@dataclass
class ToolDefinition:
    """Definition of a tool for the LLM."""

    name: str
    description: str
    parameters: ParameterSchema = field(default_factory=ParameterSchema)


@dataclass
class ChatRequest:
    """Request sent to a backend."""

    system_prompt: str = ""
    messages: list[Message] = field(default_factory=list)
    tools: list[ToolDefinition] = field(default_factory=list)
    max_tokens: int | None = None


@dataclass
class ChatResponse:
    """Response from a backend."""

    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)
    model: str = ""


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    async def chat(self, request: ChatRequest) -> ChatResponse:
        """Send a chat request and return the backend's response."""
        pass

    async def chat_stream(self, request: ChatRequest) -> AsyncIterator[str]:
        """Yield the answer text in chunks.

        Backends without native streaming yield the whole `chat()` answer once.
        Tool calls are not surfaced here; use `chat()` for tool turns.
        """
        response = await self.chat(request)
        if response.content:
            yield response.content

    async def close(self) -> None:
        """Release provider resources."""
        return None


class OllamaProvider(LLMProvider):
    """Direct Ollama API provider."""

    provider = "ollama"

    def __init__(
        self,
        model: str = "llama3.2",
        base_url: str = OLLAMA_NATIVE_BASE_URL,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize Ollama provider.

        Args:
            model: Ollama model name (e.g., 'llama3.2', 'qwen3:32b')
            base_url: Ollama API base URL
            temperature: Sampling temperature
            max_tokens: Default max tokens to generate
            api_key: Optional API key (Ollama usually doesn't need one locally)
            client: Optional preconfigured HTTP client
        """
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.api_key = api_key

        self.client = client or httpx.AsyncClient(
            timeout=120.0,
            follow_redirects=True,
        )

    def _convert_messages(self, request: ChatRequest) -> list[dict[str, Any]]:
        """Convert request history to Ollama format."""
        result: list[dict[str, Any]] = []
        if request.system_prompt:
            result.append({"role": "system", "content": request.system_prompt})

        for msg in request.messages:
            if msg.is_tool_result:
                entry: dict[str, Any] = {"role": "tool", "content": msg.content or ""}
                if msg.tool_name:
                    entry["tool_name"] = msg.tool_name
                result.append(entry)
            elif msg.role == "assistant":
                entry = {"role": "assistant", "content": msg.content or ""}
                if msg.tool_calls:
                    entry["tool_calls"] = [
                        {"function": {"name": tc.name, "arguments": dict(tc.arguments)}}
                        for tc in msg.tool_calls
                    ]
                result.append(entry)
            else:
                result.append({"role": msg.role, "content": msg.content or ""})

        return result

    def _convert_tools(self, tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        """Convert tools to Ollama format."""
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description or "",
                    "parameters": tool.parameters.to_json_schema(),
                },
            }
            for tool in tools
            if tool.name
        ]

    def _build_body(self, request: ChatRequest) -> dict[str, Any]:
        options: dict[str, Any] = {"temperature": self.temperature}
        max_tokens = request.max_tokens or self.max_tokens
        if max_tokens:
            options["num_predict"] = max_tokens

        body: dict[str, Any] = {
            "model": self.model,
            "messages": self._convert_messages(request),
            "stream": False,
            "options": options,
        }
        if request.tools:
            body["tools"] = self._convert_tools(request.tools)
        return body

    @staticmethod
    def _parse_response(data: dict[str, Any], model: str) -> ChatResponse:
        message = data.get("message") or {}
        tool_calls: list[ToolCall] = []
        # Ollama may omit ids; fallbacks must stay unique across turns.
        id_prefix = uuid.uuid4().hex[:8]
        for idx, tc in enumerate(message.get("tool_calls") or []):
            function = tc.get("function") or {}
            name = str(function.get("name", ""))
            arguments = function.get("arguments") or {}
            if isinstance(arguments, str):
                arguments = json.loads(arguments) if arguments.strip() else {}
            if not isinstance(arguments, dict):
                raise LLMError(
                    f"Ollama tool call arguments must be an object, got "
                    f"{type(arguments).__name__} for tool '{name}'"
                )
            tool_calls.append(ToolCall(
                id=str(tc.get("id") or f"ollama_call_{id_prefix}_{idx}"),
                name=name,
                arguments=arguments,
            ))

        prompt_tokens = int(data.get("prompt_eval_count", 0) or 0)
        completion_tokens = int(data.get("eval_count", 0) or 0)
        return ChatResponse(
            content=str(message.get("content", "") or ""),
            tool_calls=tool_calls,
            usage=TokenUsage(
                input_tokens=prompt_tokens,
                output_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
            model=model,
        )

    async def chat(self, request: ChatRequest) -> ChatResponse:
        """Generate a completion."""
        url = f"{self.base_url}/api/chat"
        body = self._build_body(request)

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            log.debug("Calling Ollama", model=self.model, url=url, msg_count=len(body["messages"]))

            response = await self.client.post(url, json=body, headers=headers)

            log.debug("Ollama response status", status=response.status_code)

            if not response.is_success:
                raise LLMAPIError(
                    f"Ollama API error {response.status_code}: {response.text}",
                    status_code=response.status_code,
                )

            return self._parse_response(response.json(), self.model)

        except LLMError:
            raise
        except httpx.HTTPError as e:
            raise LLMAPIError(f"Ollama HTTP error: {e}") from e
        except json.JSONDecodeError as e:
            raise LLMError(f"Ollama response decode error: {e}") from e

    async def chat_stream(self, request: ChatRequest) -> AsyncIterator[str]:
        """Stream answer text from `/api/chat` (NDJSON chunks)."""
        url = f"{self.base_url}/api/chat"
        body = self._build_body(request)
        body["stream"] = True

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            async with self.client.stream("POST", url, json=body, headers=headers) as response:
                if not response.is_success:
                    await response.aread()
                    raise LLMAPIError(
                        f"Ollama API error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )

                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        chunk = json.loads(line)
                    except json.JSONDecodeError:
                        log.debug("Skipping malformed stream chunk", line=line[:200])
                        continue
                    content = (chunk.get("message") or {}).get("content")
                    if content:
                        yield content
                    if chunk.get("done"):
                        break

        except LLMError:
            raise
        except httpx.HTTPError as e:
            raise LLMAPIError(f"Ollama streaming error: {e}") from e

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()


def create_provider(
    provider: str = "ollama",
    model: str = "llama3.2",
    api_key: str | None = None,
    base_url: str | None = None,
    temperature: float = 0.7,
    max_tokens: int = 4096,
) -> LLMProvider:
    """Create an LLM provider.

    Args:
        provider: Provider name
        model: Model name
        api_key: Optional API key
        base_url: Optional base URL
        temperature: Default temperature
        max_tokens: Default max tokens

    Returns:
        Configured LLMProvider instance
    """
    key = (provider or "").strip().lower()
    if key == "ollama":
        return OllamaProvider(
            model=model,
            base_url=base_url or OLLAMA_NATIVE_BASE_URL,
            temperature=temperature,
            max_tokens=max_tokens,
            api_key=api_key,
        )
    raise ValueError(f"Provider '{provider}' not supported. Use 'ollama' or configure manually.")
