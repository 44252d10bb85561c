"""agentloop - an agentic tool-calling loop with swappable model backends."""

__version__ = "0.1.0"

from agentloop.agent import Agent, provider_factory_from_config
from agentloop.config import Config
from agentloop.session import Session, SessionManager

__all__ = [
    "Agent",
    "Config",
    "Session",
    "SessionManager",
    "provider_factory_from_config",
    "__version__",
]
