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

"""File engagement tracking.

Records how the user interacts with files (keystrokes, visits, time spent)
so the most relevant other files can contribute context to the prompt.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Callable, Iterable, Optional

from victor_fim.completion.cache import MISSING, LRUCache
from victor_fim.completion.protocol import Position
from victor_fim.ignore_patterns import is_tracking_excluded

logger = logging.getLogger(__name__)

KEY_STROKE_WEIGHT = 2.0
VISIT_WEIGHT = 0.5
SESSION_LENGTH_WEIGHT = 1.0
RECENCY_WEIGHT = 3.0
OPEN_FILE_WEIGHT = 10.0
MAX_RECENCY_PENALTY_HOURS = 24.0


@dataclass
class FileInteractionRecord:
    """Interaction statistics for one file."""

    path: str
    key_strokes: int = 0
    visits: int = 0
    session_length: float = 0.0  # seconds
    last_visited: float = 0.0  # epoch seconds
    active_lines: list[Position] = field(default_factory=list)
    is_open: bool = False


@dataclass
class ScoredInteraction:
    """A record paired with its relevance score."""

    record: FileInteractionRecord
    score: float

    @property
    def path(self) -> str:
        return self.record.path


class FileInteractionTracker:
    """LRU-bounded engagement statistics with session bookkeeping.

    A session covers the time a file is active. After
    ``inactivity_threshold`` seconds without keystrokes the session pauses;
    the next keystroke resumes it and the paused time is excluded from the
    session length.
    """

    def __init__(
        self,
        capacity: int = 20,
        inactivity_threshold: float = 300.0,
        clock: Callable[[], float] = time.time,
    ):
        self._interactions: LRUCache[str, FileInteractionRecord] = LRUCache(capacity)
        self._inactivity_threshold = inactivity_threshold
        self._clock = clock
        self._current_file: Optional[str] = None
        self._session_start: Optional[float] = None
        self._session_pause: Optional[float] = None
        self._inactivity_handle: Optional[asyncio.TimerHandle] = None

    @property
    def current_file(self) -> Optional[str]:
        return self._current_file

    @property
    def is_paused(self) -> bool:
        return self._session_pause is not None

    def get(self, path: str) -> Optional[FileInteractionRecord]:
        record = self._interactions.peek(path)
        return None if record is MISSING else record

    def __len__(self) -> int:
        return len(self._interactions)

    # Session lifecycle

    def start_session(self, path: str) -> None:
        """Make ``path`` the active file and count a visit."""
        self._session_start = self._clock()
        self._session_pause = None
        self.put_open_file(path)
        self._current_file = path
        self.increment_visits()
        self.reset_inactivity_timeout()

    def end_session(self) -> None:
        """Add the elapsed session time to the current file's record."""
        if not self._current_file or self._session_start is None:
            return
        self._cancel_inactivity_timeout()

        session_end = self._session_pause if self._session_pause is not None else self._clock()
        elapsed = max(0.0, session_end - self._session_start)

        record = self._interactions.get(self._current_file)
        if record is not MISSING:
            record.session_length += elapsed
            record.last_visited = self._clock()
            logger.debug(f"Session ended for {self._current_file} after {elapsed:.1f}s")

        self._session_start = None
        self._session_pause = None
        self._current_file = None

    def pause_session(self) -> None:
        if self._session_start is None or self._session_pause is not None:
            return
        self._session_pause = self._clock()
        logger.debug(f"Session paused for {self._current_file}")

    def resume_session(self) -> None:
        if self._session_start is None or self._session_pause is None:
            return
        paused_for = self._clock() - self._session_pause
        self._session_start += paused_for
        self._session_pause = None
        self.reset_inactivity_timeout()

    def reset_inactivity_timeout(self) -> None:
        """Restart the inactivity timer (only with a running event loop)."""
        self._cancel_inactivity_timeout()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._inactivity_handle = loop.call_later(self._inactivity_threshold, self.pause_session)

    def _cancel_inactivity_timeout(self) -> None:
        if self._inactivity_handle is not None:
            self._inactivity_handle.cancel()
            self._inactivity_handle = None

    def dispose(self) -> None:
        self._cancel_inactivity_timeout()

    # Counters

    def increment_visits(self) -> None:
        if not self._current_file:
            return
        record = self._interactions.get(self._current_file)
        if record is MISSING:
            return
        record.visits += 1
        record.last_visited = self._clock()

    def increment_strokes(self, line: int, character: int) -> None:
        if not self._current_file:
            return
        record = self._interactions.get(self._current_file)
        if record is MISSING:
            return
        record.key_strokes += 1
        record.active_lines.append(Position(line, character))
        record.last_visited = self._clock()

        self.resume_session()
        self.reset_inactivity_timeout()

    # Records

    def put_open_file(self, path: str) -> None:
        self.put_file(path, is_open=True)

    def put_closed_file(self, path: str) -> None:
        self.put_file(path, is_open=False)

    def put_file(self, path: str, is_open: bool) -> None:
        """Create a record for ``path`` if it is trackable and new."""
        if is_tracking_excluded(path):
            return

        record = self._interactions.get(path)
        if record is not MISSING:
            if is_open:
                record.is_open = True
            return

        if not PurePath(path).suffix:
            return

        self._interactions.set(
            path,
            FileInteractionRecord(
                path=path, visits=1, last_visited=self._clock(), is_open=is_open
            ),
        )

    def add_open_files(self, paths: Iterable[str]) -> None:
        """Register the editor's open documents without changing the active file."""
        for path in paths:
            self.put_open_file(path)

    def mark_closed(self, path: str, forget: bool = False) -> None:
        """Handle a closed document: mark it closed, or drop its record."""
        if forget:
            self.delete(path)
            return
        record = self._interactions.peek(path)
        if record is not MISSING:
            record.is_open = False

    def delete(self, path: str) -> None:
        if self._interactions.delete(path) and path == self._current_file:
            self._current_file = None

    # Ranking

    def calculate_relevance_score(self, record: Optional[FileInteractionRecord]) -> float:
        if record is None:
            return 0.0

        hours_since_visit = max(0.0, self._clock() - record.last_visited) / 3600
        recency_penalty = min(MAX_RECENCY_PENALTY_HOURS, hours_since_visit)

        return (
            record.key_strokes * KEY_STROKE_WEIGHT
            + record.visits * VISIT_WEIGHT
            + record.session_length * SESSION_LENGTH_WEIGHT
            - recency_penalty * RECENCY_WEIGHT
            + (OPEN_FILE_WEIGHT if record.is_open else 0.0)
        )

    def get_all(self) -> list[ScoredInteraction]:
        """All records, most relevant first."""
        scored = [
            ScoredInteraction(record=record, score=self.calculate_relevance_score(record))
            for _, record in self._interactions.items()
        ]
        scored.sort(key=lambda item: item.score, reverse=True)
        return scored
