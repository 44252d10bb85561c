"""Write tool for writing file contents."""

import asyncio
from pathlib import Path
from typing import Any

from agentloop.llm import ParameterSchema, Property
from agentloop.logging import get_logger
from agentloop.tools._paths import expand_path
from agentloop.tools.registry import Tool

log = get_logger(__name__)


class WriteFileTool(Tool):
    """Create or overwrite a file with content."""

    name = "write_file"
    description = (
        "Write content to a file on the local filesystem. Creates the file if it "
        "doesn't exist, overwrites if it does. Parent directories are created automatically."
    )
    parameters = ParameterSchema(
        properties={
            "path": Property(
                type="string",
                description=(
                    "Path to file (absolute or relative to current directory, "
                    "~ expands to home directory)"
                ),
            ),
            "content": Property(type="string", description="Content to write to the file"),
        },
        required=["path", "content"],
    )

    async def execute(self, path: Any = None, content: Any = None, **kwargs: Any) -> dict[str, Any]:
        if not isinstance(path, str) or not path:
            raise ValueError("path parameter is required and must be a string")
        if not isinstance(content, str):
            raise ValueError("content parameter is required and must be a string")

        file_path = expand_path(path)
        return await asyncio.to_thread(self._write, file_path, content)

    @staticmethod
    def _write(file_path: Path, content: str) -> dict[str, Any]:
        created = not file_path.exists()
        file_path.parent.mkdir(parents=True, exist_ok=True)
        data = content.encode("utf-8")
        file_path.write_bytes(data)

        log.info("Wrote file", path=str(file_path), bytes=len(data), created=created)
        return {
            "path": str(file_path),
            "bytes_written": len(data),
            "created": created,
        }
