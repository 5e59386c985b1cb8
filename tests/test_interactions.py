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

"""Unit tests for the file engagement tracker."""

import asyncio

import pytest

from victor_fim.completion.interactions import FileInteractionTracker
from victor_fim.completion.protocol import Position


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tracker(clock):
    return FileInteractionTracker(capacity=3, clock=clock)


class TestRecords:
    """Tests for which files get tracked."""

    def test_start_session_creates_open_record_with_visit(self, tracker):
        tracker.start_session("/repo/src/main.py")

        record = tracker.get("/repo/src/main.py")
        assert record is not None
        # Seeded visit plus the session visit
        assert record.visits == 2
        assert record.is_open
        assert tracker.current_file == "/repo/src/main.py"

    def test_new_record_counts_one_visit(self, tracker):
        tracker.put_closed_file("a.py")
        assert tracker.get("a.py").visits == 1

        tracker.start_session("a.py")
        tracker.end_session()
        tracker.start_session("a.py")
        assert tracker.get("a.py").visits == 3

    def test_vcs_and_package_files_are_not_tracked(self, tracker):
        tracker.put_open_file("/repo/.git/COMMIT_EDITMSG.txt")
        tracker.put_open_file("/repo/package.json")
        assert len(tracker) == 0

    def test_files_without_extension_are_not_tracked(self, tracker):
        tracker.put_open_file("/repo/Makefile")
        assert tracker.get("/repo/Makefile") is None

    def test_capacity_evicts_least_recent(self, tracker):
        for name in ("a.py", "b.py", "c.py", "d.py"):
            tracker.put_closed_file(name)

        assert tracker.get("a.py") is None
        assert len(tracker) == 3

    def test_mark_closed_keeps_record(self, tracker):
        tracker.put_open_file("a.py")
        tracker.mark_closed("a.py")
        assert tracker.get("a.py").is_open is False

    def test_mark_closed_with_forget_drops_record(self, tracker):
        tracker.start_session("a.py")
        tracker.mark_closed("a.py", forget=True)
        assert tracker.get("a.py") is None
        assert tracker.current_file is None


class TestSessions:
    """Tests for session timing."""

    def test_session_length_accumulates(self, tracker, clock):
        tracker.start_session("a.py")
        clock.advance(60)
        tracker.end_session()

        assert tracker.get("a.py").session_length == pytest.approx(60)
        assert tracker.current_file is None

    def test_paused_time_is_excluded(self, tracker, clock):
        tracker.start_session("a.py")
        clock.advance(30)
        tracker.pause_session()
        clock.advance(60)
        tracker.resume_session()
        clock.advance(10)
        tracker.end_session()

        assert tracker.get("a.py").session_length == pytest.approx(40)

    def test_end_while_paused_stops_at_pause(self, tracker, clock):
        tracker.start_session("a.py")
        clock.advance(20)
        tracker.pause_session()
        clock.advance(500)
        tracker.end_session()

        assert tracker.get("a.py").session_length == pytest.approx(20)

    def test_keystroke_resumes_paused_session(self, tracker, clock):
        tracker.start_session("a.py")
        tracker.pause_session()
        tracker.increment_strokes(3, 4)

        record = tracker.get("a.py")
        assert not tracker.is_paused
        assert record.key_strokes == 1
        assert record.active_lines == [Position(3, 4)]

    @pytest.mark.asyncio
    async def test_inactivity_pauses_session(self, clock):
        tracker = FileInteractionTracker(inactivity_threshold=0.01, clock=clock)
        tracker.start_session("a.py")

        await asyncio.sleep(0.05)

        assert tracker.is_paused
        tracker.dispose()


class TestRelevance:
    """Tests for relevance scoring."""

    def test_score_combines_weights(self, tracker):
        tracker.start_session("a.py")
        tracker.increment_strokes(1, 0)
        tracker.increment_strokes(2, 0)

        # 2 strokes * 2 + 2 visits * 0.5 + open file bonus 10
        assert tracker.calculate_relevance_score(tracker.get("a.py")) == pytest.approx(15.0)

    def test_recency_penalty_is_capped(self, tracker, clock):
        tracker.put_closed_file("a.py")
        clock.advance(48 * 3600)

        assert tracker.calculate_relevance_score(tracker.get("a.py")) == pytest.approx(0.5 - 72)

    def test_missing_record_scores_zero(self, tracker):
        assert tracker.calculate_relevance_score(None) == 0.0

    def test_get_all_is_ranked(self, tracker):
        tracker.put_closed_file("quiet.py")
        tracker.start_session("busy.py")
        tracker.increment_strokes(0, 0)

        ranked = tracker.get_all()
        assert [item.path for item in ranked] == ["busy.py", "quiet.py"]
        assert ranked[0].score > ranked[1].score
