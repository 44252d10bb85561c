"""Conversation sessions and an in-memory session manager."""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from agentloop.exceptions import SessionNotFoundError
from agentloop.llm import Message, TokenUsage
from agentloop.logging import get_logger

log = get_logger(__name__)

# Pruning never keeps fewer than this many messages.
MIN_KEEP_MESSAGES = 10


def _utcnow_iso() -> str:
    """Return current UTC timestamp in ISO format."""
    return datetime.now(UTC).isoformat()


@dataclass
class Session:
    """Conversation history plus token accounting for one conversation.

    A session is single-writer: only one `Agent.run` may drive it at a time.
    """

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    messages: list[Message] = field(default_factory=list)
    # None or 0 disables pruning.
    max_messages: int | None = None
    created_at: str = field(default_factory=_utcnow_iso)
    metadata: dict[str, Any] = field(default_factory=dict)

    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_tokens: int = 0

    # Reset at the start of every run.
    run_input_tokens: int = 0
    run_output_tokens: int = 0
    run_tokens: int = 0
    run_llm_calls: int = 0

    @property
    def message_count(self) -> int:
        return len(self.messages)

    def add_message(self, message: Message) -> None:
        """Append a message, pruning the oldest history once `max_messages` is exceeded.

        Pruning keeps the most recent `max(max_messages // 2, 10)` messages and
        does not keep tool calls paired with their results.
        """
        self.messages.append(message)

        if self.max_messages and len(self.messages) > self.max_messages:
            keep_count = max(self.max_messages // 2, MIN_KEEP_MESSAGES)
            dropped = len(self.messages) - keep_count
            self.messages = self.messages[-keep_count:]
            log.debug(
                "Pruned session history",
                session_id=self.id,
                dropped=dropped,
                kept=keep_count,
            )

    def add_messages(self, messages: list[Message]) -> None:
        """Append a batch of messages in order.

        The batch path does not prune; route traffic through `add_message` when
        the size bound must hold.
        """
        self.messages.extend(messages)

    def clear(self) -> None:
        """Drop the conversation history. Token counters are kept."""
        self.messages = []

    def reset_run_stats(self) -> None:
        """Zero the per-run counters."""
        self.run_input_tokens = 0
        self.run_output_tokens = 0
        self.run_tokens = 0
        self.run_llm_calls = 0

    def add_token_usage(self, usage: TokenUsage) -> None:
        """Accumulate usage from one backend call into run and session totals."""
        self.run_input_tokens += usage.input_tokens
        self.run_output_tokens += usage.output_tokens
        self.run_tokens += usage.total_tokens
        self.run_llm_calls += 1

        self.total_input_tokens += usage.input_tokens
        self.total_output_tokens += usage.output_tokens
        self.total_tokens += usage.total_tokens

    def to_dict(self) -> dict[str, Any]:
        """Summarize the session (without message bodies)."""
        return {
            "id": self.id,
            "message_count": self.message_count,
            "max_messages": self.max_messages,
            "created_at": self.created_at,
            "metadata": self.metadata,
            "total_input_tokens": self.total_input_tokens,
            "total_output_tokens": self.total_output_tokens,
            "total_tokens": self.total_tokens,
            "run_input_tokens": self.run_input_tokens,
            "run_output_tokens": self.run_output_tokens,
            "run_tokens": self.run_tokens,
            "run_llm_calls": self.run_llm_calls,
        }


class SessionManager:
    """Keeps sessions in memory, keyed by id. Nothing survives a restart."""

    def __init__(self, default_max_messages: int | None = None):
        self.default_max_messages = default_max_messages
        self._sessions: dict[str, Session] = {}

    def create(
        self,
        session_id: str | None = None,
        max_messages: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Session:
        """Create and register a new, empty session.

        An existing session with the same id is replaced.
        """
        session = Session(
            id=session_id or str(uuid.uuid4()),
            max_messages=max_messages if max_messages is not None else self.default_max_messages,
            metadata=dict(metadata or {}),
        )
        self._sessions[session.id] = session
        log.info("Created new session", session_id=session.id)
        return session

    def get(self, session_id: str) -> Session:
        """Get a session by id.

        Raises:
            SessionNotFoundError if the id is unknown
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def get_or_create(self, session_id: str) -> Session:
        if session_id in self._sessions:
            return self._sessions[session_id]
        return self.create(session_id=session_id)

    def delete(self, session_id: str) -> bool:
        """Delete a session. Returns False if it did not exist."""
        return self._sessions.pop(session_id, None) is not None

    def list_sessions(self) -> list[Session]:
        """List sessions, most recently created first."""
        return sorted(self._sessions.values(), key=lambda s: s.created_at, reverse=True)


# Global session manager
_manager: SessionManager | None = None


def get_session_manager() -> SessionManager:
    """Get the global session manager."""
    global _manager
    if _manager is None:
        from agentloop.config import get_config

        max_messages = get_config().agent.max_messages
        _manager = SessionManager(default_max_messages=max_messages or None)
    return _manager


def set_session_manager(manager: SessionManager) -> None:
    """Set the global session manager."""
    global _manager
    _manager = manager
