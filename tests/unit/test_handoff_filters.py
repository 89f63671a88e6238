"""Unit tests for the history filters applied on handoff."""

from langchain_core.messages import AIMessage, HumanMessage, ToolMessage

from agentrelay.agents.handoff_filters import apply_input_filter, drop_handoff_chatter, keep_full_history
from agentrelay.agents.handoff_tools import HANDOFF_TOOL_NAME


def handoff_round(*, text="", context=None, sibling=False):
    arguments = {"agent": "operations"}
    if context:
        arguments["context"] = context
    calls = [{"name": HANDOFF_TOOL_NAME, "args": arguments, "id": "h1"}]
    results = [ToolMessage(content="Transferred to operations.", tool_call_id="h1", name=HANDOFF_TOOL_NAME)]
    if sibling:
        calls.append({"name": "get_balance", "args": {}, "id": "c9"})
        results.append(ToolMessage(content="Skipped", tool_call_id="c9", name="get_balance", status="error"))
    return [AIMessage(content=text, tool_calls=calls, name="triage"), *results]


class TestDropHandoffChatter:
    def test_handoff_round_removed(self):
        history = [HumanMessage(content="balance?"), *handoff_round(sibling=True)]

        filtered = drop_handoff_chatter(history)

        assert [m.content for m in filtered] == ["balance?"]

    def test_assistant_text_kept_without_tool_calls(self):
        history = [HumanMessage(content="balance?"), *handoff_round(text="Let me get operations.")]

        filtered = drop_handoff_chatter(history)

        assert len(filtered) == 2
        assert isinstance(filtered[1], AIMessage)
        assert filtered[1].content == "Let me get operations."
        assert filtered[1].tool_calls == []
        assert filtered[1].name == "triage"

    def test_context_kept_as_note(self):
        history = [HumanMessage(content="balance?"), *handoff_round(context="savings account")]

        filtered = drop_handoff_chatter(history)

        assert filtered[-1].content == "Context for operations: savings account"

    def test_other_tool_rounds_untouched(self):
        history = [
            HumanMessage(content="balance?"),
            AIMessage(content="", tool_calls=[{"name": "get_balance", "args": {}, "id": "c1"}]),
            ToolMessage(content="$10", tool_call_id="c1"),
        ]

        assert drop_handoff_chatter(history) == history

    def test_input_not_mutated(self):
        history = [HumanMessage(content="balance?"), *handoff_round(text="One moment.")]

        drop_handoff_chatter(history)

        assert len(history) == 3
        assert history[1].tool_calls[0]["name"] == HANDOFF_TOOL_NAME


class TestApplyInputFilter:
    def test_default_is_drop_handoff_chatter(self):
        history = [HumanMessage(content="balance?"), *handoff_round()]

        assert [m.content for m in apply_input_filter(None, history)] == ["balance?"]

    def test_keep_full_history(self):
        history = [HumanMessage(content="balance?"), *handoff_round()]

        assert apply_input_filter(keep_full_history, history) == history

    def test_failing_filter_falls_back(self, caplog):
        def broken(history):
            raise ValueError("boom")

        history = [HumanMessage(content="balance?"), *handoff_round()]

        assert apply_input_filter(broken, history) == history
        assert "broken failed" in caplog.text

    def test_non_message_output_falls_back(self):
        history = [HumanMessage(content="balance?")]

        assert apply_input_filter(lambda h: ["not a message"], history) == history
