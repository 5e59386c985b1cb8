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

"""Context extraction around the cursor.

Builds the prefix/suffix window sent to the backend and decides when a
trigger should not produce a completion at all.
"""

import logging
import math
from pathlib import Path
from typing import Optional

from victor_fim.completion.protocol import (
    CompletionTriggerKind,
    ContextWindow,
    Position,
    TextBuffer,
)
from victor_fim.languages import detect_language

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_RATIO = 0.85

# Heuristics for positions where an automatic completion is unwanted
SKIP_DECLARATION_SYMBOLS = ["="]
IMPORT_SEPARATORS = [",", "{"]
SKIP_IMPORT_KEYWORDS_AFTER = ["from", "as", "import"]
BRACKETS = set("()[]{}")


class StringTextBuffer:
    """In-memory ``TextBuffer`` over a string.

    Lines are separated by ``\\n``; positions past the end of a line or the
    buffer are clamped, matching editor range validation.
    """

    def __init__(
        self,
        text: str,
        path: str = "untitled",
        language_id: Optional[str] = None,
        uri: Optional[str] = None,
    ):
        self._text = text
        self._lines = text.split("\n")
        self._path = path
        self._language_id = language_id or detect_language(path) or "plaintext"
        self._uri = uri or (Path(path).absolute().as_uri() if path != "untitled" else "untitled:")

    @property
    def path(self) -> str:
        return self._path

    @property
    def uri(self) -> str:
        return self._uri

    @property
    def language_id(self) -> str:
        return self._language_id

    @property
    def line_count(self) -> int:
        return len(self._lines)

    def line_at(self, line: int) -> str:
        return self._lines[line]

    def offset_at(self, position: Position) -> int:
        if position.line < 0:
            return 0
        if position.line >= len(self._lines):
            return len(self._text)
        offset = sum(len(line) + 1 for line in self._lines[: position.line])
        return offset + max(0, min(position.character, len(self._lines[position.line])))

    def get_text(self, start: Optional[Position] = None, end: Optional[Position] = None) -> str:
        start_offset = self.offset_at(start) if start is not None else 0
        end_offset = self.offset_at(end) if end is not None else len(self._text)
        if end_offset < start_offset:
            start_offset, end_offset = end_offset, start_offset
        return self._text[start_offset:end_offset]


def get_context_line_budget(
    context_lines: int, current_line: int, line_count: int, ratio: float = DEFAULT_CONTEXT_RATIO
) -> tuple[int, int]:
    """Split a line budget between prefix and suffix.

    Budget a side cannot use (start or end of the buffer) is handed to the
    other side.

    Returns:
        Tuple of (prefix_lines, suffix_lines)
    """
    prefix_lines = math.floor(abs(context_lines * ratio))
    suffix_lines = abs(context_lines) - prefix_lines
    lines_to_end = line_count - current_line

    if prefix_lines > current_line:
        suffix_lines += prefix_lines - current_line
        prefix_lines = current_line

    if suffix_lines > lines_to_end:
        prefix_lines += suffix_lines - lines_to_end
        suffix_lines = lines_to_end

    return prefix_lines, suffix_lines


def extract_context_window(
    buffer: TextBuffer,
    position: Position,
    context_lines: int,
    ratio: float = DEFAULT_CONTEXT_RATIO,
) -> ContextWindow:
    """Extract the prefix/suffix window around ``position``.

    Args:
        buffer: Document to read from
        position: Cursor position
        context_lines: Total line budget for prefix + suffix
        ratio: Share of the budget given to the prefix

    Returns:
        ContextWindow snapshot
    """
    prefix_lines, suffix_lines = get_context_line_budget(
        context_lines, position.line, buffer.line_count, ratio
    )

    prefix = buffer.get_text(Position(max(0, position.line - prefix_lines), 0), position)
    suffix = buffer.get_text(position, Position(position.line + suffix_lines, 0))
    return ContextWindow(prefix=prefix, suffix=suffix)


def get_text_after_cursor(buffer: TextBuffer, position: Position) -> str:
    """Text between the cursor and the end of its line."""
    if position.line >= buffer.line_count:
        return ""
    return buffer.line_at(position.line)[position.character :]


def character_before(buffer: TextBuffer, position: Position) -> str:
    """Nearest non-whitespace character before the cursor.

    Returns ``"="`` when only whitespace precedes the cursor so the start of
    a buffer is treated like a pending declaration.
    """
    text_before = buffer.get_text(Position(0, 0), position)
    stripped = text_before.rstrip()
    if not stripped:
        return SKIP_DECLARATION_SYMBOLS[0]
    return stripped[-1]


def _is_only_brackets(text: str) -> bool:
    return bool(text) and all(char in BRACKETS for char in text)


def should_skip_variable_declaration(char_before: str, text_after: str) -> bool:
    return (
        char_before.strip() in SKIP_DECLARATION_SYMBOLS
        and len(text_after) > 0
        and not _is_only_brackets(text_after)
    )


def should_skip_import_declaration(char_before: str, text_after: str) -> bool:
    for keyword in SKIP_IMPORT_KEYWORDS_AFTER:
        if keyword in text_after and char_before not in IMPORT_SEPARATORS and char_before != " ":
            return True
    return False


def should_skip_completion(
    buffer: TextBuffer,
    position: Position,
    trigger_kind: CompletionTriggerKind,
    auto_suggest_enabled: bool,
) -> bool:
    """Check whether a trigger at ``position`` should be ignored."""
    text_after = get_text_after_cursor(buffer, position)
    char_before = character_before(buffer, position)

    if should_skip_variable_declaration(char_before, text_after):
        logger.debug("Skipping completion inside a declaration")
        return True
    if should_skip_import_declaration(char_before, text_after):
        logger.debug("Skipping completion inside an import statement")
        return True

    return trigger_kind == CompletionTriggerKind.AUTOMATIC and not auto_suggest_enabled
