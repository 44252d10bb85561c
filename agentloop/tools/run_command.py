"""Allow-listed command runner."""

import asyncio
from typing import Any

from agentloop.llm import ParameterSchema, Property
from agentloop.logging import get_logger
from agentloop.tools._process import run_process
from agentloop.tools.registry import Tool

log = get_logger(__name__)

MAX_OUTPUT_SIZE = 100 * 1024  # 100KB
TRUNCATION_NOTE = "\n... (truncated at 100KB)"


def _truncate(text: str) -> tuple[str, bool]:
    if len(text) > MAX_OUTPUT_SIZE:
        return text[:MAX_OUTPUT_SIZE] + TRUNCATION_NOTE, True
    return text, False


class RunCommandTool(Tool):
    """Run a command from a fixed allow list, without a shell."""

    name = "run_command"
    parameters = ParameterSchema(
        properties={
            "command": Property(type="string", description="Command to run (must be in allowed list)"),
            "args": Property(
                type="array",
                description="Command arguments as an array of strings (optional)",
                items=Property(type="string", description="A command argument"),
            ),
        },
        required=["command"],
    )

    def __init__(self, allowed_commands: list[str], timeout: float = 30.0):
        self.allowed_commands = {cmd.strip() for cmd in allowed_commands if cmd.strip()}
        self.timeout = max(1.0, float(timeout))
        self.description = (
            f"Run a safe shell command (limited to: {self._allowed_list()}). Use this to "
            "inspect system state, list files, or run read-only commands."
        )

    def _allowed_list(self) -> str:
        return ", ".join(sorted(self.allowed_commands))

    async def execute(self, command: Any = None, args: Any = None, **kwargs: Any) -> dict[str, Any]:
        if not isinstance(command, str) or not command:
            raise ValueError("command parameter is required and must be a string")
        if command not in self.allowed_commands:
            log.warning("Blocked command", command=command)
            raise PermissionError(
                f"command '{command}' is not allowed. Allowed: {self._allowed_list()}"
            )

        cmd_args = [item for item in (args or []) if isinstance(item, str)] if isinstance(args, list) else []
        abort_event = kwargs.get("_abort_event")
        if not isinstance(abort_event, asyncio.Event):
            abort_event = None

        log.info("Running command", command=command, args=cmd_args, timeout=self.timeout)
        output = await run_process(command, cmd_args, timeout=self.timeout, abort_event=abort_event)

        stdout, stdout_truncated = _truncate(output.stdout)
        stderr, stderr_truncated = _truncate(output.stderr)
        result: dict[str, Any] = {
            "command": command,
            "args": cmd_args,
            "stdout": stdout,
            "stderr": stderr,
            "exit_code": output.exit_code,
        }
        if stdout_truncated or stderr_truncated:
            result["truncated"] = True
        return result
