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

"""Completion protocol types.

Shared data structures for the inline completion engine and the
interfaces of the host collaborators it consumes (text buffers,
workspace, status sink).
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class Position:
    """Zero-based position in a text buffer."""

    line: int
    character: int = 0

    def __lt__(self, other: "Position") -> bool:
        return (self.line, self.character) < (other.line, other.character)


@dataclass(frozen=True)
class ContextWindow:
    """Immutable snapshot of the text around the cursor at trigger time."""

    prefix: str
    suffix: str = ""


class CompletionTriggerKind(Enum):
    """How an inline completion was triggered."""

    INVOKED = "invoked"  # Explicit user request
    AUTOMATIC = "automatic"  # Typing or cursor movement


class CompletionStatus(Enum):
    """Lifecycle notifications sent to the status sink."""

    IDLE = "idle"
    THINKING = "thinking"
    STREAMING = "streaming"
    ERROR = "error"


class TerminationReason(Enum):
    """Why a completion session stopped consuming the stream."""

    NATURAL_END = "natural_end"
    SINGLE_LINE = "single_line"
    MAX_LINES = "max_lines"
    STOP_WORD = "stop_word"
    EMPTY_LOOP = "empty_loop"
    MULTILINE_NOT_REQUIRED = "multiline_not_required"
    DELIMITER = "delimiter"
    CANCELLED = "cancelled"
    ERROR = "error"


class CancellationHandle:
    """Cooperative cancellation token for a single streaming request.

    Cancelling is idempotent. The streaming read loop checks the handle
    between events and stops without delivering further data.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        if self._event.is_set():
            return
        self._event.set()
        for callback in self._callbacks:
            callback()
        self._callbacks.clear()

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` on cancellation (immediately if already cancelled)."""
        if self._event.is_set():
            callback()
        else:
            self._callbacks.append(callback)

    async def wait(self) -> None:
        await self._event.wait()


@dataclass
class CompletionSession:
    """Per-trigger streaming state.

    The nonce identifies the trigger that created the session; results are
    only delivered when it still matches the engine's current nonce.
    """

    nonce: int
    context_window: ContextWindow
    chunk_count: int = 0
    lines_generated: int = 0
    accumulated_text: str = ""
    cancellation: Optional[CancellationHandle] = None
    termination: Optional[TerminationReason] = None

    @property
    def is_terminated(self) -> bool:
        return self.termination is not None


@dataclass
class InlineCompletion:
    """A completion suggestion ready for insertion at ``position``."""

    text: str
    position: Position
    nonce: int
    from_cache: bool = False
    latency_ms: float = 0.0


@dataclass
class CompletionMetrics:
    """Counters collected by the completion engine."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    cancelled_requests: int = 0
    stale_results: int = 0
    cache_hits: int = 0
    total_latency_ms: float = 0.0
    termination_counts: dict[str, int] = field(default_factory=dict)

    @property
    def average_latency_ms(self) -> float:
        if self.successful_requests == 0:
            return 0.0
        return self.total_latency_ms / self.successful_requests

    @property
    def cache_hit_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.cache_hits / self.total_requests

    def record_termination(self, reason: TerminationReason) -> None:
        self.termination_counts[reason.value] = self.termination_counts.get(reason.value, 0) + 1


@runtime_checkable
class TextBuffer(Protocol):
    """Editor document the engine reads from."""

    @property
    def path(self) -> str:
        """File system path of the document."""
        ...

    @property
    def uri(self) -> str:
        """Document URI used in prompt headers."""
        ...

    @property
    def language_id(self) -> str:
        """Editor language identifier (e.g., 'python')."""
        ...

    @property
    def line_count(self) -> int:
        ...

    def line_at(self, line: int) -> str:
        """Return the text of ``line`` without its line break."""
        ...

    def get_text(self, start: Optional[Position] = None, end: Optional[Position] = None) -> str:
        """Return text between two positions (whole document by default)."""
        ...


@runtime_checkable
class Workspace(Protocol):
    """Workspace view used to gather cross-file context."""

    @property
    def name(self) -> str:
        ...

    def open_documents(self) -> list[TextBuffer]:
        ...

    def read_text(self, path: str) -> Optional[str]:
        """Read a file that is not open, or None when unreadable."""
        ...


StatusSink = Callable[[CompletionStatus], None]
