"""Read tool for reading text files."""

import asyncio
from pathlib import Path
from typing import Any

from agentloop.llm import ParameterSchema, Property
from agentloop.logging import get_logger
from agentloop.tools._paths import expand_path
from agentloop.tools.registry import Tool

log = get_logger(__name__)

MAX_FILE_SIZE = 1024 * 1024  # 1MB
BINARY_SNIFF_BYTES = 512


def _is_binary(data: bytes) -> bool:
    """Treat a NUL byte in the first 512 bytes as a binary marker."""
    return b"\x00" in data[:BINARY_SNIFF_BYTES]


class ReadFileTool(Tool):
    """Read contents of a text file."""

    name = "read_file"
    description = (
        "Read contents of a file from the local filesystem. Use this to read "
        "configuration files, source code, or any text files the user asks about."
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
        },
        required=["path"],
    )

    async def execute(self, path: Any = None, **kwargs: Any) -> dict[str, Any]:
        if not isinstance(path, str) or not path:
            raise ValueError("path parameter is required and must be a string")

        file_path = expand_path(path)
        return await asyncio.to_thread(self._read, file_path)

    @staticmethod
    def _read(file_path: Path) -> dict[str, Any]:
        if not file_path.exists():
            raise FileNotFoundError(f"file not found: {file_path}")
        if file_path.is_dir():
            raise IsADirectoryError(f"path is a directory, not a file: {file_path}")

        size = file_path.stat().st_size
        if size > MAX_FILE_SIZE:
            size_mb = size / (1024 * 1024)
            raise ValueError(f"file too large ({size_mb:.1f}MB), max 1MB supported")

        data = file_path.read_bytes()
        if _is_binary(data):
            raise ValueError(f"file appears to be binary, not text: {file_path}")

        log.debug("Read file", path=str(file_path), size=len(data))
        return {
            "path": str(file_path),
            "content": data.decode("utf-8", errors="replace"),
            "size_bytes": len(data),
        }
