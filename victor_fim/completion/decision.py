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

"""Incremental stop decisions over streamed completion text."""

import logging
import re
from typing import Optional, Sequence

from victor_fim.completion.protocol import (
    CompletionSession,
    ContextWindow,
    TerminationReason,
)
from victor_fim.completion.syntax import MULTI_LINE_DELIMITERS, CursorSyntax

logger = logging.getLogger(__name__)

LINE_BREAK_REGEX = re.compile(r"\r\n|\r|\n")
# Whitespace-only output longer than this means the model is looping
MAX_EMPTY_COMPLETION_CHARS = 250


def strip_stop_words(text: str, stop_words: Sequence[str]) -> str:
    """Remove every occurrence of each stop word."""
    for stop_word in stop_words:
        if stop_word:
            text = text.replace(stop_word, "")
    return text


def count_line_breaks(text: str) -> int:
    return len(LINE_BREAK_REGEX.findall(text))


class CompletionDecisionEngine:
    """Decides when to stop consuming a completion stream.

    Feed every fragment to ``on_fragment``; it returns None to keep
    streaming or the reason the session must terminate. ``finalize``
    returns the accumulated text without stop words.

    With ``syntax`` set, a completion whose cursor node does not need
    several lines ends at its first line break, and one that does ends at
    a blank line once the text parses cleanly.
    """

    def __init__(
        self,
        stop_words: Sequence[str],
        multiline_enabled: bool = True,
        max_lines: int = 30,
        syntax: Optional[CursorSyntax] = None,
    ):
        self._stop_words = tuple(stop_words)
        self._multiline_enabled = multiline_enabled
        self._max_lines = max_lines
        self._syntax = syntax
        self._session: Optional[CompletionSession] = None

    @property
    def stop_words(self) -> tuple[str, ...]:
        return self._stop_words

    @property
    def session(self) -> CompletionSession:
        if self._session is None:
            raise RuntimeError("No completion session started")
        return self._session

    def start(self, nonce: int, window: ContextWindow) -> CompletionSession:
        self._session = CompletionSession(nonce=nonce, context_window=window)
        return self._session

    def on_fragment(self, text: str) -> Optional[TerminationReason]:
        session = self.session
        if session.is_terminated:
            return session.termination

        session.accumulated_text += text
        session.chunk_count += 1
        completion = session.accumulated_text

        if len(completion) > MAX_EMPTY_COMPLETION_CHARS and not completion.strip():
            logger.debug(f"Stream ended, model produced only whitespace: {session.nonce}")
            return self._terminate(TerminationReason.EMPTY_LOOP)

        has_line_break = LINE_BREAK_REGEX.search(text) is not None

        if has_line_break and not self._multiline_enabled and session.chunk_count > 1:
            logger.debug(f"Stream ended for single line completion: {session.nonce}")
            return self._terminate(TerminationReason.SINGLE_LINE)

        if has_line_break and self._syntax is not None and session.chunk_count > 1:
            reason = self._check_syntax(completion)
            if reason is not None:
                return self._terminate(reason)

        if has_line_break:
            session.lines_generated += 1

        if session.lines_generated > self._max_lines:
            logger.debug(f"Stream ended at max line count: {session.nonce}")
            return self._terminate(TerminationReason.MAX_LINES)

        if any(stop_word in completion for stop_word in self._stop_words):
            logger.debug(f"Stream ended at stop word: {session.nonce}")
            return self._terminate(TerminationReason.STOP_WORD)

        return None

    def _check_syntax(self, completion: str) -> Optional[TerminationReason]:
        syntax = self._syntax
        if not syntax.multiline_required:
            logger.debug(
                f"Stream ended, {syntax.node_type} needs no multiline completion: "
                f"{self.session.nonce}"
            )
            return TerminationReason.MULTILINE_NOT_REQUIRED
        if (
            syntax.take_first
            and completion.endswith(MULTI_LINE_DELIMITERS)
            and syntax.is_complete(completion)
        ):
            logger.debug(f"Stream ended at delimiter: {self.session.nonce}")
            return TerminationReason.DELIMITER
        return None

    def end(self, reason: TerminationReason = TerminationReason.NATURAL_END) -> None:
        """Mark the session terminated from outside the fragment loop."""
        session = self.session
        if not session.is_terminated:
            session.termination = reason

    def finalize(self) -> str:
        """Accumulated text with all stop words removed."""
        return strip_stop_words(self.session.accumulated_text, self._stop_words)

    def _terminate(self, reason: TerminationReason) -> TerminationReason:
        self.session.termination = reason
        return reason
