"""Custom exceptions for agentloop."""

from typing import Any


class AgentLoopError(Exception):
    """Base exception for agentloop."""

    pass


class ConfigurationError(AgentLoopError):
    """Configuration-related errors."""

    pass


class LLMError(AgentLoopError):
    """LLM-related errors."""

    pass


class LLMAPIError(LLMError):
    """LLM API errors (rate limit, auth, etc.)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ToolError(AgentLoopError):
    """Tool execution errors."""

    pass


class ToolExecutionError(ToolError):
    """Tool execution failed."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Tool '{tool_name}' failed: {message}")
        self.tool_name = tool_name


class ToolNotFoundError(ToolError):
    """Tool not found in registry."""

    def __init__(self, tool_name: str):
        super().__init__(f"Tool not found: {tool_name}")
        self.tool_name = tool_name


class AllToolsFailedError(ToolError):
    """Every call in a non-empty tool batch failed.

    The per-call results are still attached so the caller can hand the
    failures back to the model.
    """

    def __init__(self, failed_count: int, results: list[Any] | None = None):
        super().__init__(f"All tools in batch failed: {failed_count} tool(s) failed")
        self.failed_count = failed_count
        self.results = list(results or [])


class SessionError(AgentLoopError):
    """Session-related errors."""

    pass


class SessionNotFoundError(SessionError):
    """Session not found."""

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class RunError(AgentLoopError):
    """A run of the agent loop aborted."""

    pass


class LLMCallError(RunError):
    """The backend call failed during a run."""

    def __init__(self, message: str):
        super().__init__(f"LLM chat failed: {message}")


class ToolBatchError(RunError):
    """The executor hit a fault that is not a tool failure."""

    def __init__(self, message: str):
        super().__init__(f"Tool execution failed: {message}")


class MaxIterationsError(RunError):
    """Iteration bound reached without a final answer."""

    def __init__(self, max_iterations: int):
        super().__init__(
            f"max iterations ({max_iterations}) reached without final response"
        )
        self.max_iterations = max_iterations


class RunCancelledError(RunError):
    """Run aborted because the abort event was set."""

    def __init__(self, message: str = "Run cancelled"):
        super().__init__(message)


class ModelSwitchError(AgentLoopError):
    """Hot-swapping the model backend failed."""

    pass


class ModelSwitchNotConfiguredError(ModelSwitchError):
    """No provider factory was configured on the agent."""

    def __init__(self):
        super().__init__("Model switching not configured: no provider factory set")
