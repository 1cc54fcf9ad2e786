"""Tests for ContentAccumulator and ToolInvocationCollector."""

import json

from codehero.api.accumulator import ContentAccumulator, ToolInvocationCollector
from codehero.api.callbacks import StatusNotice, StreamCallbacks
from codehero.api.models import TextBlock, ToolUseBlock
from codehero.api.sse import StreamEvent


def _start_text(index):
    return StreamEvent(type="content_block_start", index=index, block={"type": "text", "text": ""})


def _start_tool(index, tool_id, name):
    return StreamEvent(
        type="content_block_start",
        index=index,
        block={"type": "tool_use", "id": tool_id, "name": name, "input": {}},
    )


def _text(index, text):
    return StreamEvent(type="content_block_delta", index=index, delta={"type": "text_delta", "text": text})


def _json(index, fragment):
    return StreamEvent(
        type="content_block_delta",
        index=index,
        delta={"type": "input_json_delta", "partial_json": fragment},
    )


def _fragments(value, size):
    raw = json.dumps(value)
    return [raw[i:i + size] for i in range(0, len(raw), size)]


class TestToolInvocationCollector:
    def test_upsert_replaces_in_place(self):
        collector = ToolInvocationCollector()
        collector.register("a", "first")
        collector.register("b", "second")
        collector.upsert("a", "first", {"x": 1})
        assert [(c.id, c.input) for c in collector.calls()] == [("a", {"x": 1}), ("b", {})]

    def test_upsert_unknown_appends(self):
        collector = ToolInvocationCollector()
        collector.upsert("a", "first", {"x": 1})
        collector.upsert("a", "first", {"x": 2})
        assert len(collector) == 1
        assert collector.calls()[0].input == {"x": 2}


class TestContentAccumulator:
    def test_text_deltas_forwarded_in_order(self):
        received = []
        acc = ContentAccumulator(StreamCallbacks(on_text_delta=received.append))
        acc.on_event(_start_text(0))
        for chunk in ("Creating ", "a ", "cube."):
            acc.on_event(_text(0, chunk))
        assert received == ["Creating ", "a ", "cube."]
        assert acc.text == "Creating a cube."
        assert acc.blocks == [TextBlock("Creating a cube.")]

    def test_tool_input_independent_of_fragmentation(self):
        value = {"gameobject_name": "Cube", "position": "0,1,0", "nested": {"k": [1, 2, "x}"]}}
        for size in (1, 3, 7, 500):
            acc = ContentAccumulator()
            acc.on_event(_start_tool(0, "toolu_1", "set_transform"))
            for fragment in _fragments(value, size):
                acc.on_event(_json(0, fragment))
            calls = acc.tool_calls()
            assert len(calls) == 1
            assert calls[0].input == value

    def test_execution_order_follows_first_appearance(self):
        acc = ContentAccumulator()
        acc.on_event(_start_tool(0, "toolu_a", "list_gameobjects"))
        acc.on_event(_start_tool(1, "toolu_b", "create_gameobject"))
        acc.on_event(_json(0, '{"fil'))
        acc.on_event(_json(1, '{"name": "B"}'))
        acc.on_event(_json(0, 'ter": "A"}'))
        assert [c.id for c in acc.tool_calls()] == ["toolu_a", "toolu_b"]

    def test_tool_without_fragments_uses_start_input(self):
        acc = ContentAccumulator()
        acc.on_event(_start_tool(0, "toolu_1", "list_gameobjects"))
        calls = acc.tool_calls()
        assert len(calls) == 1
        assert calls[0].input == {}

    def test_unparseable_input_dropped(self):
        acc = ContentAccumulator()
        acc.on_event(_start_tool(0, "toolu_bad", "create_script"))
        acc.on_event(_json(0, '{"script_name": "Sp'))
        acc.on_event(_start_tool(1, "toolu_ok", "list_gameobjects"))
        assert [c.id for c in acc.tool_calls()] == ["toolu_ok"]

    def test_out_of_range_delta_is_noop(self):
        received = []
        acc = ContentAccumulator(StreamCallbacks(on_text_delta=received.append))
        acc.on_event(_text(3, "ghost"))
        acc.on_event(_json(5, "{}"))
        assert acc.blocks == []
        assert received == []

    def test_mismatched_delta_type_ignored(self):
        acc = ContentAccumulator()
        acc.on_event(_start_tool(0, "toolu_1", "list_gameobjects"))
        acc.on_event(_text(0, "stray"))
        assert acc.text == ""
        assert isinstance(acc.blocks[0], ToolUseBlock)

    def test_status_notices_fire_once(self):
        notices = []
        acc = ContentAccumulator(StreamCallbacks(on_status=lambda n, d: notices.append((n, d))))
        acc.on_event(_start_tool(0, "toolu_1", "add_component"))
        for fragment in _fragments({"gameobject_name": "Cube", "component_type": "Rigidbody"}, 4):
            acc.on_event(_json(0, fragment))
        assert notices == [
            (StatusNotice.TOOL_REQUESTED, "add_component"),
            (StatusNotice.GENERATING_PARAMETERS, "add_component"),
            (StatusNotice.PARAMETERS_READY, "add_component"),
        ]

    def test_stop_reason_and_usage(self):
        acc = ContentAccumulator()
        assert not acc.has_content
        acc.on_event(StreamEvent(type="message_start", usage={"input_tokens": 5}))
        acc.on_event(StreamEvent(type="message_delta", stop_reason="end_turn", usage={"output_tokens": 9}))
        assert acc.stop_reason == "end_turn"
        assert acc.usage == {"input_tokens": 5, "output_tokens": 9}
        assert acc.has_content

    def test_block_start_beyond_end_pads(self):
        acc = ContentAccumulator()
        acc.on_event(_start_tool(1, "toolu_1", "list_gameobjects"))
        assert len(acc.blocks) == 2
        assert isinstance(acc.blocks[1], ToolUseBlock)

    def test_failing_callback_does_not_break_accumulation(self):
        def boom(_text):
            raise RuntimeError("renderer crashed")

        acc = ContentAccumulator(StreamCallbacks(on_text_delta=boom))
        acc.on_event(_start_text(0))
        acc.on_event(_text(0, "still here"))
        assert acc.text == "still here"
