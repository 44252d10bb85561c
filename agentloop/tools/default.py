"""Default tool set."""

from agentloop.config import Config, get_config
from agentloop.logging import get_logger
from agentloop.tools.ask_user import AskUserTool
from agentloop.tools.echo import EchoTool
from agentloop.tools.git import GitDiffTool, GitStatusTool
from agentloop.tools.read_file import ReadFileTool
from agentloop.tools.registry import Tool, ToolRegistry
from agentloop.tools.run_command import RunCommandTool
from agentloop.tools.write_file import WriteFileTool

log = get_logger(__name__)


def build_default_tools(config: Config | None = None) -> list[Tool]:
    """Instantiate every built-in tool."""
    cfg = config or get_config()
    run_command_cfg = cfg.tools.run_command
    return [
        EchoTool(),
        AskUserTool(),
        ReadFileTool(),
        WriteFileTool(),
        GitStatusTool(),
        GitDiffTool(),
        RunCommandTool(
            allowed_commands=run_command_cfg.allowed_commands,
            timeout=run_command_cfg.timeout,
        ),
    ]


def create_default_registry(config: Config | None = None) -> ToolRegistry:
    """Create a registry holding the built-in tools enabled in config."""
    cfg = config or get_config()
    enabled = set(cfg.tools.enabled)
    registry = ToolRegistry()
    for tool in build_default_tools(cfg):
        if tool.name in enabled:
            registry.register(tool)
    unknown = enabled - set(registry.list_tools())
    if unknown:
        log.warning("Ignoring unknown tools in config", tools=sorted(unknown))
    return registry
