"""Tool registry and base tool class."""

from abc import ABC, abstractmethod
from typing import Any

from agentloop.exceptions import ToolExecutionError, ToolNotFoundError
from agentloop.llm import ParameterSchema, ToolDefinition
from agentloop.logging import get_logger

log = get_logger(__name__)


class Tool(ABC):
    """Base class for all tools."""

    name: str = ""
    description: str = ""
    parameters: ParameterSchema = ParameterSchema()

    @abstractmethod
    async def execute(self, **kwargs: Any) -> Any:
        """Execute the tool.

        Args:
            **kwargs: Tool-specific arguments. The executor also passes
                `_abort_event` (an `asyncio.Event` or None).

        Returns:
            Any JSON-friendly value describing the outcome

        Raises:
            Any exception on failure; the executor wraps it.
        """
        pass

    def get_definition(self) -> ToolDefinition:
        """Get the tool definition for the LLM."""
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
        )

    def validate_arguments(self, arguments: dict[str, Any]) -> None:
        """Validate tool arguments against schema.

        Raises:
            ToolExecutionError if a required argument is missing
        """
        for field_name in self.parameters.required:
            if field_name not in arguments:
                raise ToolExecutionError(
                    self.name,
                    f"Missing required argument: {field_name}",
                )


class ToolRegistry:
    """Registry for managing available tools.

    Populate it during setup; afterwards it is read-only.
    """

    def __init__(self):
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """Register a tool, replacing any tool with the same name."""
        if not tool.name:
            raise ValueError("Tool must have a name")

        if tool.name in self._tools:
            log.debug("Replacing registered tool", tool=tool.name)
        else:
            log.debug("Registering tool", tool=tool.name)
        self._tools[tool.name] = tool

    def unregister(self, name: str) -> None:
        self._tools.pop(name, None)

    def has_tool(self, name: str) -> bool:
        """Return whether a tool name is currently registered."""
        return name in self._tools

    def get(self, name: str) -> Tool:
        """Get a tool by name.

        Raises:
            ToolNotFoundError if not found
        """
        if name not in self._tools:
            raise ToolNotFoundError(name)
        return self._tools[name]

    def get_all(self) -> list[Tool]:
        """Snapshot of all registered tools."""
        return list(self._tools.values())

    def list_tools(self) -> list[str]:
        return list(self._tools.keys())

    def to_definitions(self) -> list[ToolDefinition]:
        """Project every registered tool into a backend-facing definition."""
        return [tool.get_definition() for tool in self._tools.values()]

    def __len__(self) -> int:
        return len(self._tools)


# Global registry
_registry: ToolRegistry | None = None


def get_tool_registry() -> ToolRegistry:
    """Get the global tool registry."""
    global _registry
    if _registry is None:
        _registry = ToolRegistry()
    return _registry


def set_tool_registry(registry: ToolRegistry) -> None:
    """Set the global tool registry."""
    global _registry
    _registry = registry
