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

"""Cleanup of raw completions before they are shown in the editor."""

import re
from difflib import SequenceMatcher
from typing import Optional

from victor_fim.completion.decision import count_line_breaks
from victor_fim.completion.protocol import Position, TextBuffer
from victor_fim.languages import DEFAULT_LINE_COMMENT, get_language

OPENING_BRACKETS = ("[", "{", "(")
CLOSING_BRACKETS = ("]", "}", ")")
BRACKET_PAIRS = {"(": ")", "[": "]", "{": "}"}
QUOTES = ('"', "'", "`")
SIMILARITY_THRESHOLD = 0.6
COMMENT_REFERENCE_REGEX = re.compile(r"\b(Language|File|End):\s*(.*)\b")
WORD_CHAR_REGEX = re.compile(r"\w")


class CompletionFormatter:
    """Normalizes a raw completion against the text around the cursor.

    Every rule only removes text, so ``format`` applies the rules until the
    result stops changing. That makes formatting idempotent: formatting an
    already formatted completion returns it unchanged.
    """

    def __init__(self, buffer: TextBuffer, position: Position, language_id: Optional[str] = None):
        self._buffer = buffer
        self._position = position
        self._language_id = language_id or buffer.language_id

        if position.line < buffer.line_count:
            self._line_text = buffer.line_at(position.line)
        else:
            self._line_text = ""
        self._text_after_cursor = self._line_text[position.character :]
        self._char_after_cursor = self._text_after_cursor[:1]
        self._char_before_cursor = (
            self._line_text[position.character - 1] if 0 < position.character <= len(self._line_text) else ""
        )

        self._completion = ""
        self._original = ""

    @property
    def text_after_cursor(self) -> str:
        return self._text_after_cursor

    def format(self, completion: str) -> str:
        current = completion
        while True:
            formatted = self._format_once(current)
            if formatted == current or len(formatted) >= len(current):
                return formatted
            current = formatted

    def _format_once(self, completion: str) -> str:
        self._original = completion
        self._completion = ""

        return (
            self._match_completion_brackets()
            ._prevent_quotation_completions()
            ._prevent_duplicate_line()
            ._remove_duplicate_quotes()
            ._remove_unnecessary_middle_quotes()
            ._ignore_blank_lines()
            ._remove_invalid_line_breaks()
            ._remove_duplicate_text()
            ._skip_middle_of_word()
            ._skip_similar_completions()
            ._trim_start()
            ._get_completion()
        )

    def _is_cursor_in_middle_of_word(self) -> bool:
        return bool(
            WORD_CHAR_REGEX.match(self._char_after_cursor)
            and WORD_CHAR_REGEX.match(self._char_before_cursor)
        )

    def _match_completion_brackets(self) -> "CompletionFormatter":
        # Cut at the first closing bracket that has no opener in the completion
        accumulated = ""
        open_brackets: list[str] = []

        for char in self._original:
            if char in OPENING_BRACKETS:
                open_brackets.append(char)
            elif char in CLOSING_BRACKETS:
                if open_brackets and BRACKET_PAIRS[open_brackets[-1]] == char:
                    open_brackets.pop()
                else:
                    break
            accumulated += char

        self._completion = accumulated.rstrip() or self._original.rstrip()
        return self

    def _prevent_quotation_completions(self) -> "CompletionFormatter":
        normalized = self._completion.strip()
        if normalized.startswith("// File:") or normalized == "//":
            self._completion = ""
            return self

        language = get_language(self._language_id)
        if language is None:
            return self
        starts = tuple(
            token
            for token in (language.comment_start, language.single_line_comment, DEFAULT_LINE_COMMENT)
            if token
        )
        if count_line_breaks(self._completion) > 1:
            return self

        # Drop echoes of the prompt header comments
        lines = [
            line
            for line in self._completion.split("\n")
            if not (line.lstrip().startswith(starts) and COMMENT_REFERENCE_REGEX.search(line))
        ]
        self._completion = "\n".join(lines)
        return self

    def _prevent_duplicate_line(self) -> "CompletionFormatter":
        original = self._original.strip()
        for offset in (1, 2):
            next_line = self._position.line + offset
            if next_line >= self._buffer.line_count:
                break
            if self._buffer.line_at(next_line).strip() == original:
                self._completion = ""
                break
        return self

    def _remove_duplicate_quotes(self) -> "CompletionFormatter":
        char_after = self._char_after_cursor.strip()
        normalized = self._completion.strip()
        last_char = normalized[-1:]

        if char_after and (
            normalized.endswith("',")
            or normalized.endswith('",')
            or (normalized.endswith(",") and char_after in QUOTES)
        ):
            self._completion = self._completion[:-2]
        elif (normalized.endswith("'") or normalized.endswith('"')) and char_after in QUOTES:
            self._completion = self._completion[:-1]
        elif last_char in QUOTES and char_after == last_char:
            self._completion = self._completion[:-1]
        return self

    def _remove_unnecessary_middle_quotes(self) -> "CompletionFormatter":
        if self._is_cursor_in_middle_of_word():
            if self._completion[:1] in QUOTES and self._completion:
                self._completion = self._completion[1:]
            if self._completion[-1:] in QUOTES and self._completion:
                self._completion = self._completion[:-1]
        return self

    def _ignore_blank_lines(self) -> "CompletionFormatter":
        if self._completion.lstrip() == "" and self._original != "\n":
            self._completion = self._completion.strip()
        return self

    def _remove_invalid_line_breaks(self) -> "CompletionFormatter":
        if self._text_after_cursor:
            self._completion = self._completion.rstrip()
        return self

    def _remove_duplicate_text(self) -> "CompletionFormatter":
        # Drop the tail of the completion that repeats the text after the cursor
        after = self._text_after_cursor.strip()
        max_length = min(len(self._completion), len(after))
        overlap = 0
        for length in range(1, max_length + 1):
            if self._completion[-length:] == after[:length]:
                overlap = length
        if overlap:
            self._completion = self._completion[:-overlap]
        return self

    def _skip_middle_of_word(self) -> "CompletionFormatter":
        if self._is_cursor_in_middle_of_word():
            self._completion = ""
        return self

    def _skip_similar_completions(self) -> "CompletionFormatter":
        if not self._completion or not self._text_after_cursor:
            return self
        similarity = SequenceMatcher(None, self._text_after_cursor, self._completion).ratio()
        if similarity > SIMILARITY_THRESHOLD:
            self._completion = ""
        return self

    def _trim_start(self) -> "CompletionFormatter":
        match = re.search(r"\S", self._completion)
        first_non_space = match.start() if match else -1
        if first_non_space > 0 and self._position.character <= first_non_space:
            self._completion = self._completion.lstrip()
        return self

    def _get_completion(self) -> str:
        if not self._completion.strip():
            self._completion = ""
        return self._completion
