import pytest

from agentloop.exceptions import SessionNotFoundError
from agentloop.llm import Message, TokenUsage, ToolCall
from agentloop.session import Session, SessionManager


def _user(i: int) -> Message:
    return Message(role="user", content=f"message {i}")


def test_new_session_is_empty():
    session = Session()

    assert session.messages == []
    assert session.message_count == 0
    assert session.total_tokens == 0
    assert session.run_llm_calls == 0


def test_add_message_preserves_order():
    session = Session()
    session.add_message(Message(role="user", content="first"))
    session.add_message(Message(role="assistant", content="second"))
    session.add_message(Message(role="user", content="first"))

    assert [m.content for m in session.messages] == ["first", "second", "first"]
    assert [m.role for m in session.messages] == ["user", "assistant", "user"]


def test_clear_resets_history_but_keeps_counters():
    session = Session()
    session.add_message(_user(1))
    session.add_message(_user(2))
    session.add_token_usage(TokenUsage(input_tokens=5, output_tokens=3, total_tokens=8))

    session.clear()

    assert session.message_count == 0
    assert session.total_tokens == 8
    assert session.run_llm_calls == 1

    session.add_message(_user(3))
    assert session.message_count == 1


def test_add_message_unbounded_without_max_messages():
    session = Session()
    for i in range(250):
        session.add_message(_user(i))

    assert session.message_count == 250


def test_add_message_prunes_to_half_of_bound():
    session = Session(max_messages=40)
    for i in range(41):
        session.add_message(_user(i))

    assert session.message_count == 20
    assert [m.content for m in session.messages] == [f"message {i}" for i in range(21, 41)]


def test_add_message_prune_keeps_at_least_ten():
    session = Session(max_messages=12)
    for i in range(13):
        session.add_message(_user(i))

    assert session.message_count == 10
    assert session.messages[0].content == "message 3"
    assert session.messages[-1].content == "message 12"


def test_add_message_prune_with_tiny_bound():
    session = Session(max_messages=4)
    for i in range(11):
        session.add_message(_user(i))

    assert session.message_count == 10
    assert [m.content for m in session.messages] == [f"message {i}" for i in range(1, 11)]


def test_add_message_at_bound_does_not_prune():
    session = Session(max_messages=20)
    for i in range(20):
        session.add_message(_user(i))

    assert session.message_count == 20


def test_prune_can_split_tool_call_from_result():
    session = Session(max_messages=20)
    session.add_message(Message(
        role="assistant",
        tool_calls=[ToolCall(id="c1", name="echo", arguments={"message": "hi"})],
    ))
    session.add_message(Message(role="user", content="{}", tool_result_id="c1", tool_name="echo"))
    for i in range(19):
        session.add_message(_user(i))

    assert session.message_count == 10
    assert all(not m.tool_calls for m in session.messages)
    assert all(m.tool_result_id is None for m in session.messages)


def test_add_messages_appends_batch_in_order():
    session = Session()
    session.add_message(_user(0))
    session.add_messages([_user(1), _user(2), _user(3)])

    assert [m.content for m in session.messages] == [f"message {i}" for i in range(4)]


def test_add_messages_does_not_prune():
    session = Session(max_messages=20)
    session.add_messages([_user(i) for i in range(30)])

    assert session.message_count == 30


def test_add_message_after_oversized_batch_prunes():
    session = Session(max_messages=20)
    session.add_messages([_user(i) for i in range(30)])
    session.add_message(_user(30))

    assert session.message_count == 10
    assert session.messages[-1].content == "message 30"


def test_add_token_usage_accumulates_run_and_total():
    session = Session()
    session.add_token_usage(TokenUsage(input_tokens=10, output_tokens=5, total_tokens=15))
    session.add_token_usage(TokenUsage(input_tokens=20, output_tokens=7, total_tokens=27))

    assert session.run_input_tokens == 30
    assert session.run_output_tokens == 12
    assert session.run_tokens == 42
    assert session.run_llm_calls == 2
    assert session.total_input_tokens == 30
    assert session.total_output_tokens == 12
    assert session.total_tokens == 42


def test_add_token_usage_counts_zero_usage_calls():
    session = Session()
    session.add_token_usage(TokenUsage())

    assert session.run_llm_calls == 1
    assert session.total_tokens == 0


def test_reset_run_stats_keeps_totals():
    session = Session()
    session.add_token_usage(TokenUsage(input_tokens=10, output_tokens=5, total_tokens=15))

    session.reset_run_stats()

    assert session.run_input_tokens == 0
    assert session.run_output_tokens == 0
    assert session.run_tokens == 0
    assert session.run_llm_calls == 0
    assert session.total_input_tokens == 10
    assert session.total_output_tokens == 5
    assert session.total_tokens == 15


def test_messages_are_immutable():
    message = Message(role="user", content="hello")

    with pytest.raises(AttributeError):
        message.content = "changed"  # type: ignore[misc]


def test_to_dict_summarizes_counters():
    session = Session(id="s1", max_messages=50)
    session.add_message(_user(1))
    session.add_token_usage(TokenUsage(input_tokens=1, output_tokens=2, total_tokens=3))

    data = session.to_dict()

    assert data["id"] == "s1"
    assert data["message_count"] == 1
    assert data["max_messages"] == 50
    assert data["total_tokens"] == 3
    assert data["run_llm_calls"] == 1


def test_session_manager_create_get_delete():
    manager = SessionManager()
    session = manager.create(session_id="alpha", metadata={"project": "demo"})

    assert manager.get("alpha") is session
    assert session.metadata == {"project": "demo"}
    assert manager.delete("alpha") is True
    assert manager.delete("alpha") is False
    with pytest.raises(SessionNotFoundError):
        manager.get("alpha")


def test_session_manager_applies_default_bound():
    manager = SessionManager(default_max_messages=30)

    assert manager.create().max_messages == 30
    assert manager.create(max_messages=100).max_messages == 100


def test_session_manager_get_or_create_reuses_session():
    manager = SessionManager()
    first = manager.get_or_create("beta")
    second = manager.get_or_create("beta")

    assert first is second
    assert [s.id for s in manager.list_sessions()] == ["beta"]


def test_global_session_manager_uses_configured_bound():
    import agentloop.config as config_module
    import agentloop.session as session_module
    from agentloop.config import Config
    from agentloop.session import get_session_manager, set_session_manager

    previous_config = config_module._config
    previous_manager = session_module._manager
    try:
        cfg = Config()
        cfg.agent.max_messages = 30
        config_module._config = cfg
        session_module._manager = None

        manager = get_session_manager()
        assert manager is get_session_manager()
        assert manager.create().max_messages == 30

        replacement = SessionManager()
        set_session_manager(replacement)
        assert get_session_manager() is replacement
    finally:
        config_module._config = previous_config
        session_module._manager = previous_manager
