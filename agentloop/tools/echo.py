"""Echo tool, handy for exercising the agent loop."""

from typing import Any

from agentloop.llm import ParameterSchema, Property
from agentloop.tools.registry import Tool


class EchoTool(Tool):
    """Echo back the input message."""

    name = "echo"
    description = "Echoes back the input message. Useful for testing."
    parameters = ParameterSchema(
        properties={
            "message": Property(type="string", description="The message to echo back"),
        },
        required=["message"],
    )

    async def execute(self, message: Any = "", **kwargs: Any) -> dict[str, str]:
        if not isinstance(message, str):
            message = ""
        return {"echoed": message}
