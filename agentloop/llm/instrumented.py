"""Instrumentation decorator for LLM providers."""

import time
from dataclasses import dataclass
from typing import AsyncIterator

from agentloop.exceptions import LLMAPIError
from agentloop.llm import ChatRequest, ChatResponse, LLMProvider
from agentloop.logging import get_logger

log = get_logger(__name__)


@dataclass
class ProviderStats:
    """Snapshot of instrumentation counters."""

    total_calls: int = 0
    total_errors: int = 0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_tokens: int = 0


class InstrumentedProvider(LLMProvider):
    """Wrap a provider, logging every call and keeping usage counters.

    Errors from the wrapped provider are re-raised unchanged.
    """

    def __init__(self, provider: LLMProvider, provider_name: str = "", model: str = ""):
        self.wrapped = provider
        self.provider = provider_name or str(getattr(provider, "provider", "") or "")
        self.model = model or str(getattr(provider, "model", "") or "")
        self._total_calls = 0
        self._total_errors = 0
        self._total_input_tokens = 0
        self._total_output_tokens = 0
        self._total_tokens = 0

    async def chat(self, request: ChatRequest) -> ChatResponse:
        start = time.monotonic()
        self._total_calls += 1
        try:
            response = await self.wrapped.chat(request)
        except Exception as e:
            self._total_errors += 1
            duration_ms = int((time.monotonic() - start) * 1000)
            status_code = e.status_code if isinstance(e, LLMAPIError) else None
            log.error(
                "llm_error",
                error=str(e),
                provider=self.provider,
                model=self.model,
                api_error_code=status_code,
                duration_ms=duration_ms,
            )
            raise

        duration_ms = int((time.monotonic() - start) * 1000)
        self._total_input_tokens += response.usage.input_tokens
        self._total_output_tokens += response.usage.output_tokens
        self._total_tokens += response.usage.total_tokens
        log.info(
            "llm_call",
            provider=self.provider,
            model=self.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            tool_calls=len(response.tool_calls),
            duration_ms=duration_ms,
        )
        return response

    async def chat_stream(self, request: ChatRequest) -> AsyncIterator[str]:
        """Delegate streaming to the wrapped provider; counts one call per stream."""
        start = time.monotonic()
        self._total_calls += 1
        chunks = 0
        try:
            async for chunk in self.wrapped.chat_stream(request):
                chunks += 1
                yield chunk
        except Exception as e:
            self._total_errors += 1
            log.error(
                "llm_error",
                error=str(e),
                provider=self.provider,
                model=self.model,
                api_error_code=e.status_code if isinstance(e, LLMAPIError) else None,
                duration_ms=int((time.monotonic() - start) * 1000),
                stream=True,
            )
            raise

        log.info(
            "llm_stream",
            provider=self.provider,
            model=self.model,
            chunks=chunks,
            duration_ms=int((time.monotonic() - start) * 1000),
        )

    def get_stats(self) -> ProviderStats:
        """Return the current counters."""
        return ProviderStats(
            total_calls=self._total_calls,
            total_errors=self._total_errors,
            total_input_tokens=self._total_input_tokens,
            total_output_tokens=self._total_output_tokens,
            total_tokens=self._total_tokens,
        )

    async def close(self) -> None:
        await self.wrapped.close()
