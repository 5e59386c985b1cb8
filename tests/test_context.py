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

"""Unit tests for context extraction and trigger filters."""

import pytest

from victor_fim.completion.context import (
    StringTextBuffer,
    character_before,
    extract_context_window,
    get_context_line_budget,
    get_text_after_cursor,
    should_skip_completion,
)
from victor_fim.completion.protocol import CompletionTriggerKind, Position


@pytest.fixture
def numbered_buffer():
    """Buffer of 1000 lines named l0..l999."""
    return StringTextBuffer("\n".join(f"l{i}" for i in range(1000)), path="numbers.txt")


class TestStringTextBuffer:
    """Tests for the in-memory text buffer."""

    def test_language_detected_from_extension(self):
        assert StringTextBuffer("", path="main.py").language_id == "python"
        assert StringTextBuffer("", path="notes.unknown").language_id == "plaintext"

    def test_get_text_between_positions(self):
        buffer = StringTextBuffer("abc\ndef\nghi")
        assert buffer.get_text(Position(0, 1), Position(1, 2)) == "bc\nde"
        assert buffer.get_text() == "abc\ndef\nghi"

    def test_positions_are_clamped(self):
        buffer = StringTextBuffer("abc\ndef")
        assert buffer.get_text(Position(0, 99), Position(50, 0)) == "\ndef"


class TestContextBudget:
    """Tests for splitting the line budget."""

    def test_default_split(self):
        assert get_context_line_budget(100, 500, 1000) == (85, 15)

    def test_surplus_prefix_moves_to_suffix(self):
        assert get_context_line_budget(100, 10, 1000) == (10, 90)

    def test_surplus_suffix_moves_to_prefix(self):
        assert get_context_line_budget(100, 995, 1000) == (95, 5)


class TestExtractContextWindow:
    """Tests for the prefix/suffix window."""

    def test_window_in_middle_of_document(self, numbered_buffer):
        window = extract_context_window(numbered_buffer, Position(500, 2), 100)

        assert window.prefix.startswith("l415\n")
        assert window.prefix.endswith("\nl5")
        assert window.suffix.startswith("00\nl501")
        assert window.suffix.endswith("l514\n")

    def test_window_near_start_gives_suffix_the_surplus(self, numbered_buffer):
        window = extract_context_window(numbered_buffer, Position(10, 0), 100)

        assert window.prefix.startswith("l0\n")
        assert window.suffix.endswith("l99\n")

    def test_small_buffer_yields_whole_text(self):
        buffer = StringTextBuffer("function add(a, b) {\n  return a \n}", path="add.js")
        window = extract_context_window(buffer, Position(1, 11), 100)

        assert window.prefix == "function add(a, b) {\n  return a "
        assert window.suffix == "\n}"


class TestTriggerFilters:
    """Tests for the skip heuristics."""

    def test_text_after_cursor(self):
        buffer = StringTextBuffer("x = foo(bar)")
        assert get_text_after_cursor(buffer, Position(0, 8)) == "bar)"

    def test_character_before_skips_whitespace(self):
        buffer = StringTextBuffer("x =   \n  ")
        assert character_before(buffer, Position(1, 2)) == "="

    def test_character_before_at_start_is_assignment(self):
        assert character_before(StringTextBuffer("abc"), Position(0, 0)) == "="

    def test_skip_inside_declaration(self):
        buffer = StringTextBuffer("const x = foo", path="a.js")
        assert should_skip_completion(
            buffer, Position(0, 10), CompletionTriggerKind.AUTOMATIC, True
        )

    def test_no_skip_before_closing_brackets(self):
        buffer = StringTextBuffer("const x = )", path="a.js")
        assert not should_skip_completion(
            buffer, Position(0, 10), CompletionTriggerKind.AUTOMATIC, True
        )

    def test_skip_inside_import(self):
        buffer = StringTextBuffer("import foo from 'x'", path="a.js")
        assert should_skip_completion(
            buffer, Position(0, 10), CompletionTriggerKind.AUTOMATIC, True
        )

    def test_no_skip_after_import_brace(self):
        buffer = StringTextBuffer("import { } from 'x'", path="a.js")
        assert not should_skip_completion(
            buffer, Position(0, 9), CompletionTriggerKind.AUTOMATIC, True
        )

    def test_automatic_trigger_skipped_when_auto_suggest_disabled(self):
        buffer = StringTextBuffer("x = 1\ny", path="a.py")
        position = Position(1, 1)

        assert should_skip_completion(buffer, position, CompletionTriggerKind.AUTOMATIC, False)
        assert not should_skip_completion(buffer, position, CompletionTriggerKind.INVOKED, False)
        assert not should_skip_completion(buffer, position, CompletionTriggerKind.AUTOMATIC, True)
