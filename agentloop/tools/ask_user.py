"""Tool that asks the user a question and waits for the answer."""

import asyncio
import sys
from typing import Any, TextIO

from agentloop.llm import ParameterSchema, Property
from agentloop.tools.registry import Tool


class AskUserTool(Tool):
    """Pause the loop to collect input from the user."""

    name = "ask_user"
    description = (
        "Ask the user a question and wait for their response. "
        "Use this when you need additional information from the user."
    )
    parameters = ParameterSchema(
        properties={
            "question": Property(type="string", description="The question to ask the user"),
        },
        required=["question"],
    )

    def __init__(self, reader: TextIO | None = None, writer: TextIO | None = None):
        self.reader = reader if reader is not None else sys.stdin
        self.writer = writer if writer is not None else sys.stdout

    async def execute(self, question: Any = None, **kwargs: Any) -> dict[str, str]:
        if not isinstance(question, str) or not question:
            raise ValueError("missing or invalid 'question' parameter")

        self.writer.write(f"{question} ")
        self.writer.flush()

        # readline() returns "" on EOF, which yields an empty answer.
        line = await asyncio.to_thread(self.reader.readline)
        return {"answer": line.rstrip("\r\n")}
