"""Unit tests for message helpers and history windowing."""

from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from agentrelay.utils.message_utils import last_assistant_text, role_and_text, stringify_content, window_history


def tool_round(call_id: str, result: str):
    return [
        AIMessage(content="", tool_calls=[{"name": "get_balance", "args": {}, "id": call_id}]),
        ToolMessage(content=result, tool_call_id=call_id),
    ]


class TestStringify:
    def test_text_blocks(self):
        content = [{"type": "text", "text": "a"}, {"type": "image_url", "image_url": {}}, "b"]

        assert stringify_content(content) == "a\nb"
        assert stringify_content(content, separator="") == "ab"

    def test_none_and_plain(self):
        assert stringify_content(None) == ""
        assert stringify_content("hi") == "hi"

    def test_role_and_text(self):
        assert role_and_text(HumanMessage(content="q")) == ("user", "q")
        assert role_and_text(AIMessage(content="a")) == ("assistant", "a")
        assert role_and_text({"role": "tool", "content": "r"}) == ("tool", "r")


class TestLastAssistantText:
    def test_skips_empty_tool_call_messages(self):
        messages = [
            HumanMessage(content="q"),
            AIMessage(content="Let me check."),
            *tool_round("c1", "ok"),
        ]

        assert last_assistant_text(messages) == "Let me check."

    def test_no_assistant_text(self):
        assert last_assistant_text([HumanMessage(content="q")]) == ""


class TestWindowHistory:
    def test_short_history_untouched(self):
        messages = [HumanMessage(content="q"), AIMessage(content="a")]

        assert window_history(messages, 5) == messages
        assert window_history(messages, None) == messages

    def test_keeps_tool_pairs_together(self):
        messages = [
            SystemMessage(content="sys"),
            HumanMessage(content="q1"),
            AIMessage(content="a1"),
            HumanMessage(content="q2"),
            *tool_round("c1", "r1"),
            AIMessage(content="a2"),
        ]

        windowed = window_history(messages, 2)

        # The tool result in the window pulls in the assistant call that issued it
        assert windowed == [messages[0], messages[3], messages[4], messages[5], messages[6]]

    def test_always_keeps_latest_user_message(self):
        messages = [
            HumanMessage(content="q"),
            AIMessage(content="a1"),
            AIMessage(content="a2"),
            AIMessage(content="a3"),
        ]

        windowed = window_history(messages, 1)

        assert windowed == [messages[0], messages[3]]
