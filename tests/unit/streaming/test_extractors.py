"""Unit tests for the block extractors and their text helpers.

Message and plan blocks are exercised through the parser so the partial
streaming path sees a real buffer.
"""

import pytest

from codestream.streaming.extractors import (
    ACTION_OPEN_PATTERN,
    FILE_OPEN_PATTERN,
    clean_file_content,
    hold_back_close_tag,
)
from tests.unit.streaming.conftest import feed


class TestHoldBackCloseTag:
    """Trailing fragments that may start a close tag are held back."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("print(x)</fi", "print(x)"),
            ("done</file", "done"),
            ("a <", "a "),
            ("a < b", "a < b"),
            ("plain", "plain"),
            ("", ""),
            ("</file>", "</file>"),
        ],
    )
    def test_file_close_tag(self, text, expected):
        assert hold_back_close_tag(text, "</file>") == expected

    def test_message_close_tag(self):
        assert hold_back_close_tag("Hello</mess", "</message>") == "Hello"


class TestCleanFileContent:
    def test_strips_leading_newlines_and_trailing_whitespace(self):
        assert clean_file_content("\n\nx = 1\n  \n") == "x = 1"

    def test_keeps_leading_indentation(self):
        assert clean_file_content("\n    indented\n") == "    indented"


class TestOpenPatterns:
    def test_file_with_description(self):
        match = FILE_OPEN_PATTERN.search('<file path="pages/Home.js" description="Home page">')
        assert match.group(1, 2) == ("pages/Home.js", "Home page")

    def test_file_without_description(self):
        match = FILE_OPEN_PATTERN.search('<file path="a.txt">')
        assert match.group(1, 2) == ("a.txt", None)

    def test_incomplete_file_tag_does_not_match(self):
        assert FILE_OPEN_PATTERN.search('<file path="a.txt" descr') is None

    def test_action_attributes(self):
        match = ACTION_OPEN_PATTERN.search(
            '<action module="items" action="bulkInsert" description="Seed data">'
        )
        assert match.group(1, 2, 3) == ("items", "bulkInsert", "Seed data")


class TestMessageStreaming:
    """``<message>`` blocks stream as deltas once past the threshold."""

    @pytest.mark.asyncio
    async def test_short_partial_not_streamed(self, make_parser, recorder):
        parser = make_parser()

        await parser.process_chunk("<message>Short one")

        assert recorder.events == []

    @pytest.mark.asyncio
    async def test_partial_past_threshold(self, make_parser, recorder):
        parser = make_parser()

        await parser.process_chunk("<message>This is long enough")
        await parser.process_chunk(" to stream</mess")

        deltas = recorder.of("message_delta")
        assert [(d["delta"], d["position"]) for d in deltas] == [
            ("This is long enough", 0),
            (" to stream", 19),
        ]

    @pytest.mark.asyncio
    async def test_completion_emits_remaining_delta(self, make_parser, recorder):
        parser = make_parser()

        await feed(parser, ["<message>This is long enough", " end</message>"])

        assert recorder.types == ["message_delta", "message_delta", "message"]
        assert recorder.of("message")[0]["message"] == "This is long enough end"

    @pytest.mark.asyncio
    async def test_threshold_is_configurable(self, make_parser, recorder):
        parser = make_parser(partial_min_length=0)

        await parser.process_chunk("<message>Hi")

        assert recorder.of("message_delta")[0]["delta"] == "Hi"


class TestPlanStreaming:
    """``<plan>`` blocks stream as full snapshots."""

    @pytest.mark.asyncio
    async def test_snapshots_then_plan(self, make_parser, recorder):
        parser = make_parser()

        await feed(
            parser,
            ["<plan>1. Build the page", "\n2. Wire the data", "</plan>"],
        )

        snapshots = recorder.of("plan_streaming")
        assert [s["plan"] for s in snapshots] == [
            "1. Build the page",
            "1. Build the page\n2. Wire the data",
        ]
        assert all(s["is_partial"] for s in snapshots)
        plan = recorder.of("plan")[0]
        assert plan["plan"] == "1. Build the page\n2. Wire the data"
        assert plan["message"].startswith("Plan: 1. Build the page")

    @pytest.mark.asyncio
    async def test_unchanged_snapshot_not_repeated(self, make_parser, recorder):
        parser = make_parser()

        await parser.process_chunk("<plan>1. Build the page")
        await parser.process_chunk("  ")
        await parser.process_chunk("</pl")

        assert len(recorder.of("plan_streaming")) == 1

    @pytest.mark.asyncio
    async def test_long_plan_summary_truncated(self, make_parser, recorder):
        parser = make_parser()
        plan = "x" * 150

        await feed(parser, [f"<plan>{plan}</plan>"])

        assert recorder.of("plan")[0]["message"] == f"Plan: {'x' * 100}..."


class TestActionExtractor:
    """Action failures surface as events and errors."""

    @pytest.mark.asyncio
    async def test_non_array_payload(self, make_parser, recorder, items):
        parser = make_parser()

        result = await feed(parser, ['<action module="items" action="insert">{"a": 1}</action>'])

        assert recorder.types == ["action_error"]
        assert "expected a JSON array" in recorder.of("action_error")[0]["error"]
        assert items.calls == []
        assert len(result.errors) == 1

    @pytest.mark.asyncio
    async def test_deeply_nested_payload(self, make_parser, recorder, items):
        """A payload too deep to decode is an action error; later blocks still run."""
        parser = make_parser()
        payload = "[" * 100_000 + "]" * 100_000

        result = await feed(
            parser,
            [f'<action module="items" action="insert">{payload}</action><message>after</message>'],
        )

        assert recorder.types == ["action_error", "message"]
        assert recorder.of("action_error")[0]["error"].startswith("Failed to parse action payload")
        assert recorder.of("message")[0]["message"] == "after"
        assert items.calls == []
        assert len(result.errors) == 1

    @pytest.mark.asyncio
    async def test_unsupported_operation(self, make_parser, recorder):
        parser = make_parser()

        result = await feed(parser, ['<action module="items" action="drop">["Products"]</action>'])

        assert recorder.types == ["action_start", "action_error"]
        assert result.errors == [
            "Failed to execute action items.drop: Unsupported operation: items.drop"
        ]

    @pytest.mark.asyncio
    async def test_handler_exception(self, make_parser, recorder):
        parser = make_parser()

        result = await feed(parser, ['<action module="items" action="fail">[]</action>'])

        error = recorder.of("action_error")[0]
        assert error["payload"] == []
        assert result.errors == [
            "Failed to execute action items.fail: collection is read-only"
        ]

    @pytest.mark.asyncio
    async def test_sync_handler_result(self, make_parser, recorder):
        parser = make_parser()

        await feed(parser, ['<action module="items" action="remove">["Products", "1"]</action>'])

        complete = recorder.of("action_complete")[0]
        assert complete["result"] is True
        assert complete["message"] == "Action completed: items.remove"
