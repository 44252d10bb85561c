"""Run tool calls requested by the model."""

import asyncio
import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from agentloop.exceptions import (
    AllToolsFailedError,
    ToolExecutionError,
    ToolNotFoundError,
)
from agentloop.llm import Message
from agentloop.logging import get_logger
from agentloop.tools.registry import ToolRegistry

log = get_logger(__name__)


class ToolCallRequest(BaseModel):
    """A request to execute one tool."""

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolCallResult(BaseModel):
    """Outcome of one tool call: a value or an error, never both."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    name: str = ""
    result: Any = None
    error: Exception | None = None

    @model_validator(mode="after")
    def _drop_value_on_error(self) -> "ToolCallResult":
        if self.error is not None:
            self.result = None
        return self

    @property
    def success(self) -> bool:
        return self.error is None


def _serialize_result(value: Any) -> str:
    """Compact JSON for the model; values JSON can't encode fall back to str()."""
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def result_to_message(result: ToolCallResult) -> Message:
    """Convert a single tool call result to a tool-result message."""
    if result.error is not None:
        content = f"tool failed: {result.error}"
    else:
        try:
            content = _serialize_result(result.result)
        except (TypeError, ValueError) as e:
            return Message(
                role="user",
                content=f"tool failed: could not serialize result: {e}",
                tool_result_id=result.id,
                tool_name=result.name or None,
                is_error=True,
            )

    return Message(
        role="user",
        content=content,
        tool_result_id=result.id,
        tool_name=result.name or None,
        is_error=result.error is not None,
    )


class ToolExecutor:
    """Executes tool calls against a registry, one at a time."""

    def __init__(self, registry: ToolRegistry):
        self.registry = registry

    async def execute(
        self,
        name: str,
        arguments: dict[str, Any],
        abort_event: asyncio.Event | None = None,
    ) -> Any:
        """Execute a tool by name.

        No timeout is applied; tools may watch `abort_event` themselves.

        Raises:
            ToolNotFoundError if tool not found
            ToolExecutionError if the tool raised
        """
        tool = self.registry.get(name)
        tool.validate_arguments(arguments)

        try:
            log.info("Executing tool", tool=name, args=arguments)
            result = await tool.execute(**arguments, _abort_event=abort_event)
        except asyncio.CancelledError:
            raise
        except ToolExecutionError:
            raise
        except Exception as e:
            log.warning("Tool execution failed", tool=name, error=str(e))
            raise ToolExecutionError(name, str(e)) from e

        log.info("Tool executed", tool=name)
        return result

    async def execute_batch(
        self,
        calls: list[ToolCallRequest],
        abort_event: asyncio.Event | None = None,
    ) -> list[ToolCallResult]:
        """Execute calls sequentially, in order, collecting one result per call.

        Individual failures are reported on the results only.

        Raises:
            AllToolsFailedError if every call of a non-empty batch failed;
                the results are attached to the error.
        """
        if not calls:
            return []

        results: list[ToolCallResult] = []
        error_count = 0
        for call in calls:
            try:
                value = await self.execute(call.name, call.arguments, abort_event=abort_event)
            except (ToolNotFoundError, ToolExecutionError) as e:
                error_count += 1
                results.append(ToolCallResult(id=call.id, name=call.name, error=e))
                continue
            results.append(ToolCallResult(id=call.id, name=call.name, result=value))

        log.debug("Tool batch executed", calls=len(calls), failed=error_count)
        if error_count == len(calls):
            raise AllToolsFailedError(error_count, results)
        return results

    def results_to_messages(self, results: list[ToolCallResult]) -> list[Message]:
        """Convert tool call results to conversation messages, preserving order."""
        return [result_to_message(result) for result in results]
