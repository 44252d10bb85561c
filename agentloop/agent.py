"""Agent orchestration: the LLM -> tools -> LLM loop."""

import asyncio
import inspect
from typing import Awaitable, Callable, Mapping

from agentloop.config import Config, get_config
from agentloop.exceptions import (
    AllToolsFailedError,
    LLMCallError,
    MaxIterationsError,
    ModelSwitchError,
    ModelSwitchNotConfiguredError,
    RunCancelledError,
    ToolBatchError,
)
from agentloop.llm import (
    ChatRequest,
    ChatResponse,
    LLMProvider,
    Message,
    create_provider,
)
from agentloop.llm.instrumented import InstrumentedProvider
from agentloop.locks import ReadWriteLock
from agentloop.logging import get_logger
from agentloop.session import Session
from agentloop.tools.default import create_default_registry
from agentloop.tools.executor import ToolCallRequest, ToolExecutor
from agentloop.tools.registry import ToolRegistry

log = get_logger(__name__)

DEFAULT_MAX_ITERATIONS = 10

# (provider, model) -> backend, sync or async.
ProviderFactory = Callable[[str, str], LLMProvider | Awaitable[LLMProvider]]


def provider_factory_from_config(config: Config, instrument: bool = True) -> ProviderFactory:
    """Build a provider factory that takes defaults from `config.model`.

    A matching `model.allowed` entry supplies its own base_url.
    """

    def _factory(provider: str, model: str) -> LLMProvider:
        allowed = config.find_allowed_model(f"{provider}:{model}")
        base_url = (allowed.base_url if allowed else "") or config.model.base_url or None
        backend = create_provider(
            provider=provider,
            model=model,
            api_key=config.model.api_key or None,
            base_url=base_url,
            temperature=config.model.temperature,
            max_tokens=config.model.max_tokens,
        )
        if instrument:
            return InstrumentedProvider(backend, provider_name=provider, model=model)
        return backend

    return _factory


class Agent:
    """Runs the agentic loop against a swappable model backend.

    The backend slot and the model display name are guarded by a reader/writer
    lock: every backend call holds it shared, `switch_model` holds it
    exclusively. Everything else is fixed at construction.
    """

    def __init__(
        self,
        provider: LLMProvider,
        executor: ToolExecutor,
        registry: ToolRegistry,
        system_prompt: str = "",
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        provider_factory: ProviderFactory | None = None,
        current_model_name: str = "",
        max_tokens: int | None = None,
    ):
        """Initialize the agent.

        Args:
            provider: Initial model backend
            executor: Executor used for tool calls
            registry: Registry whose tools are offered to the model
            system_prompt: System prompt sent with every request
            max_iterations: Upper bound on backend calls per run
            provider_factory: Optional factory enabling `switch_model`
            current_model_name: Display name of the initial backend
            max_tokens: Optional max output tokens per request
        """
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")

        self._provider = provider
        self._current_model = current_model_name
        self._lock = ReadWriteLock()
        self._executor = executor
        self._registry = registry
        self._system_prompt = system_prompt
        self._max_iterations = max_iterations
        self._provider_factory = provider_factory
        self._max_tokens = max_tokens

    @classmethod
    def from_config(
        cls,
        config: Config | None = None,
        provider: LLMProvider | None = None,
        registry: ToolRegistry | None = None,
        instrument: bool = True,
    ) -> "Agent":
        """Build an agent, its backend, and its tool registry from config."""
        cfg = config or get_config()
        factory = provider_factory_from_config(cfg, instrument=instrument)
        registry = registry if registry is not None else create_default_registry(cfg)
        return cls(
            provider=provider or factory(cfg.model.provider, cfg.model.model),
            executor=ToolExecutor(registry),
            registry=registry,
            system_prompt=cfg.agent.system_prompt,
            max_iterations=cfg.agent.max_iterations,
            provider_factory=factory,
            current_model_name=f"{cfg.model.provider}/{cfg.model.model}",
            max_tokens=cfg.model.max_tokens,
        )

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    @property
    def max_iterations(self) -> int:
        return self._max_iterations

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def executor(self) -> ToolExecutor:
        return self._executor

    async def switch_model(self, provider: str, model: str, display_name: str) -> None:
        """Hot-swap the backend to `provider`/`model`.

        The new backend is built before the lock is taken; the swap itself waits
        for any in-flight backend call to finish.

        Raises:
            ModelSwitchNotConfiguredError if no provider factory was given
            ModelSwitchError if the factory failed; the current backend is kept
        """
        if self._provider_factory is None:
            raise ModelSwitchNotConfiguredError()

        try:
            new_provider = self._provider_factory(provider, model)
            if inspect.isawaitable(new_provider):
                new_provider = await new_provider
        except Exception as e:
            raise ModelSwitchError(f"Failed to create provider for {provider}/{model}: {e}") from e

        async with self._lock.write():
            previous = self._current_model
            self._provider = new_provider
            self._current_model = display_name

        log.info("model_switched", previous=previous, current=display_name, provider=provider, model=model)

    async def current_model_name(self) -> str:
        """Display name of the active backend."""
        async with self._lock.read():
            return self._current_model

    async def _chat(self, request: ChatRequest) -> ChatResponse:
        """Call the active backend while holding the lock shared."""
        async with self._lock.read():
            try:
                return await self._provider.chat(request)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log.error("LLM call failed", error=str(e))
                raise LLMCallError(str(e)) from e

    @staticmethod
    def _to_call_requests(response: ChatResponse) -> list[ToolCallRequest]:
        """Convert backend tool calls to executor requests.

        Raises:
            LLMCallError if the backend sent arguments that are not a mapping
        """
        calls: list[ToolCallRequest] = []
        for tc in response.tool_calls:
            if not isinstance(tc.arguments, Mapping):
                raise LLMCallError(
                    f"tool call '{tc.name}' has non-object arguments "
                    f"({type(tc.arguments).__name__})"
                )
            calls.append(ToolCallRequest(id=tc.id, name=tc.name, arguments=dict(tc.arguments)))
        return calls

    async def run(
        self,
        session: Session,
        user_text: str,
        abort_event: asyncio.Event | None = None,
    ) -> str:
        """Run the loop for one user message and return the final answer.

        `abort_event` is checked before each backend call; it does not interrupt
        a call or a tool already running. Tool failures are handed back to the
        model as messages instead of aborting the run.

        Raises:
            RunCancelledError if `abort_event` is set at the start of an iteration
            LLMCallError if the backend call failed
            ToolBatchError if the executor failed for a reason other than tool failures
            MaxIterationsError if no final answer arrived within `max_iterations`
        """
        session.reset_run_stats()
        session.add_message(Message(role="user", content=user_text))
        log.info("run_started", session_id=session.id, history=session.message_count)

        for iteration in range(1, self._max_iterations + 1):
            if abort_event is not None and abort_event.is_set():
                log.info("run_cancelled", session_id=session.id, iteration=iteration)
                raise RunCancelledError()

            request = ChatRequest(
                system_prompt=self._system_prompt,
                messages=list(session.messages),
                tools=self._registry.to_definitions(),
                max_tokens=self._max_tokens,
            )
            response = await self._chat(request)
            session.add_token_usage(response.usage)
            log.debug(
                "llm_call",
                session_id=session.id,
                iteration=iteration,
                tool_calls=len(response.tool_calls),
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
            )

            if not response.tool_calls:
                # An empty final answer is not recorded in history.
                if response.content:
                    session.add_message(Message(role="assistant", content=response.content))
                log.info(
                    "run_finished",
                    session_id=session.id,
                    iterations=iteration,
                    run_tokens=session.run_tokens,
                )
                return response.content

            # Checked before the assistant turn is recorded.
            calls = self._to_call_requests(response)

            # The model must see its own tool calls next turn to match the results.
            session.add_message(Message(
                role="assistant",
                content=response.content,
                tool_calls=list(response.tool_calls),
            ))

            try:
                results = await self._executor.execute_batch(calls, abort_event=abort_event)
            except AllToolsFailedError as e:
                log.warning("All tools in batch failed", session_id=session.id, failed=e.failed_count)
                results = e.results
            except asyncio.CancelledError:
                raise
            except Exception as e:
                raise ToolBatchError(str(e)) from e

            session.add_messages(self._executor.results_to_messages(results))
            log.info(
                "tool_batch_executed",
                session_id=session.id,
                iteration=iteration,
                calls=len(calls),
                failed=sum(1 for result in results if not result.success),
            )

        log.warning("run_exhausted", session_id=session.id, max_iterations=self._max_iterations)
        raise MaxIterationsError(self._max_iterations)
