"""Tools package for agentloop."""

from agentloop.tools.ask_user import AskUserTool
from agentloop.tools.default import build_default_tools, create_default_registry
from agentloop.tools.echo import EchoTool
from agentloop.tools.executor import (
    ToolCallRequest,
    ToolCallResult,
    ToolExecutor,
    result_to_message,
)
from agentloop.tools.git import GitDiffTool, GitStatusTool
from agentloop.tools.read_file import ReadFileTool
from agentloop.tools.registry import (
    Tool,
    ToolRegistry,
    get_tool_registry,
    set_tool_registry,
)
from agentloop.tools.run_command import RunCommandTool
from agentloop.tools.write_file import WriteFileTool

__all__ = [
    "Tool",
    "ToolRegistry",
    "ToolExecutor",
    "ToolCallRequest",
    "ToolCallResult",
    "result_to_message",
    "get_tool_registry",
    "set_tool_registry",
    "build_default_tools",
    "create_default_registry",
    "EchoTool",
    "AskUserTool",
    "ReadFileTool",
    "WriteFileTool",
    "RunCommandTool",
    "GitStatusTool",
    "GitDiffTool",
]
