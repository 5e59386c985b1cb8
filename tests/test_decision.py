# Copyright 2025 Vijaykumar Singh <singhvjd@gmail.com>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Unit tests for the completion decision engine."""

import pytest

from victor_fim.completion.decision import (
    CompletionDecisionEngine,
    count_line_breaks,
    strip_stop_words,
)
from victor_fim.completion.protocol import ContextWindow, TerminationReason
from victor_fim.completion.templates import STOP_DEEPSEEK, STOP_LLAMA


def feed(engine, chunks):
    """Feed chunks until termination; return (reason, index of last chunk fed)."""
    for index, chunk in enumerate(chunks):
        reason = engine.on_fragment(chunk)
        if reason is not None:
            return reason, index
    return None, len(chunks) - 1


@pytest.fixture
def window():
    return ContextWindow(prefix="x = ", suffix="")


class TestHelpers:
    """Tests for module helpers."""

    def test_strip_stop_words(self):
        assert strip_stop_words("foo<EOT>", STOP_LLAMA) == "foo"
        assert strip_stop_words("a<｜fim▁hole｜>b<END>", STOP_DEEPSEEK) == "ab"

    def test_count_line_breaks(self):
        assert count_line_breaks("a\nb\r\nc\rd") == 3


class TestDecisionEngine:
    """Tests for stream termination rules."""

    def test_stop_word_terminates_and_is_stripped(self, window):
        engine = CompletionDecisionEngine(STOP_LLAMA)
        engine.start(1, window)

        assert feed(engine, ["foo", "<EOT>", "ignored"]) == (TerminationReason.STOP_WORD, 1)
        assert engine.finalize() == "foo"

    def test_single_line_mode_stops_at_line_break(self, window):
        engine = CompletionDecisionEngine(STOP_LLAMA, multiline_enabled=False)
        engine.start(1, window)

        reason, index = feed(engine, ["export ", "default ", "foo", "\n", "bar"])

        assert reason == TerminationReason.SINGLE_LINE
        assert index == 3
        assert engine.finalize() == "export default foo\n"

    def test_single_line_mode_allows_leading_break_in_first_chunk(self, window):
        engine = CompletionDecisionEngine(STOP_LLAMA, multiline_enabled=False)
        engine.start(1, window)

        assert engine.on_fragment("\n") is None

    def test_max_lines_terminates_on_exceeding_break(self, window):
        engine = CompletionDecisionEngine(STOP_LLAMA, max_lines=1)
        engine.start(1, window)

        reason, index = feed(engine, ["a", "\n", "b", "\n", "c"])

        assert reason == TerminationReason.MAX_LINES
        assert index == 3

    def test_whitespace_loop_terminates(self, window):
        engine = CompletionDecisionEngine(STOP_LLAMA, max_lines=1000)
        engine.start(1, window)

        reason, _ = feed(engine, [" " * 100] * 3)

        assert reason == TerminationReason.EMPTY_LOOP

    def test_natural_end(self, window):
        engine = CompletionDecisionEngine(STOP_LLAMA)
        session = engine.start(7, window)

        feed(engine, ["+", " b"])
        engine.end()

        assert session.termination == TerminationReason.NATURAL_END
        assert session.chunk_count == 2
        assert session.nonce == 7
        assert engine.finalize() == "+ b"

    def test_end_keeps_first_reason(self, window):
        engine = CompletionDecisionEngine(STOP_LLAMA)
        session = engine.start(1, window)
        engine.on_fragment("x<EOT>")

        engine.end(TerminationReason.CANCELLED)

        assert session.termination == TerminationReason.STOP_WORD

    def test_session_required(self):
        with pytest.raises(RuntimeError):
            CompletionDecisionEngine(STOP_LLAMA).on_fragment("x")


class StubSyntax:
    """Cursor syntax with fixed answers."""

    def __init__(self, multiline_required=True, take_first=True, complete=True):
        self.node_type = "block"
        self.multiline_required = multiline_required
        self.take_first = take_first
        self.complete = complete
        self.checked = []

    def is_complete(self, completion):
        self.checked.append(completion)
        return self.complete


class TestSyntaxAwareDecisions:
    """Tests for stop rules driven by the syntax node at the cursor."""

    BLOCK_CHUNKS = ["if x:", "\n    y()\n", "\n", "z()"]

    def test_single_line_node_stops_at_first_line_break(self, window):
        engine = CompletionDecisionEngine(STOP_LLAMA, syntax=StubSyntax(multiline_required=False))
        engine.start(1, window)

        assert feed(engine, ["foo(", "1)\n", "bar()"]) == (
            TerminationReason.MULTILINE_NOT_REQUIRED,
            1,
        )
        assert engine.finalize() == "foo(1)\n"

    def test_leading_line_break_does_not_stop(self, window):
        engine = CompletionDecisionEngine(STOP_LLAMA, syntax=StubSyntax(multiline_required=False))
        engine.start(1, window)

        assert feed(engine, ["\n", "x"]) == (None, 1)

    def test_blank_line_ends_complete_block(self, window):
        syntax = StubSyntax()
        engine = CompletionDecisionEngine(STOP_LLAMA, syntax=syntax)
        engine.start(1, window)

        assert feed(engine, self.BLOCK_CHUNKS) == (TerminationReason.DELIMITER, 2)
        assert syntax.checked == ["if x:\n    y()\n\n"]

    def test_blank_line_inside_incomplete_code_continues(self, window):
        engine = CompletionDecisionEngine(STOP_LLAMA, syntax=StubSyntax(complete=False))
        engine.start(1, window)

        assert feed(engine, self.BLOCK_CHUNKS) == (None, 3)

    def test_blank_line_ignored_without_take_first(self, window):
        syntax = StubSyntax(take_first=False)
        engine = CompletionDecisionEngine(STOP_LLAMA, syntax=syntax)
        engine.start(1, window)

        assert feed(engine, self.BLOCK_CHUNKS) == (None, 3)
        assert syntax.checked == []

    def test_single_line_setting_wins(self, window):
        engine = CompletionDecisionEngine(
            STOP_LLAMA, multiline_enabled=False, syntax=StubSyntax(multiline_required=False)
        )
        engine.start(1, window)

        assert feed(engine, ["a", "\n"]) == (TerminationReason.SINGLE_LINE, 1)
