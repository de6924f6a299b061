"""
Tests for the in-memory analysis history.

Run with: python -m pytest tests/test_history.py -v
"""

import json
import threading

import pytest

from SequenceDetector import AnalysisHistory, PatternKind, analyze, identify_trends, predict_multiple


@pytest.fixture
def history():
    return AnalysisHistory()


class TestRecording:
    """record / entries / by_kind / recent."""

    def test_record_returns_entry(self, history):
        result = analyze([1, 2, 3])
        entry = history.record(result)
        assert entry.entry_id.startswith("mem_")
        assert entry.result is result
        assert entry.timestamp
        assert len(history) == 1

    def test_ids_are_unique(self, history):
        ids = {history.record(analyze([1, 2])).entry_id for _ in range(20)}
        assert len(ids) == 20

    def test_by_kind(self, history):
        history.record(analyze([1, 2, 3]))
        history.record(analyze([2, 4, 8]))
        history.record(analyze([5, 10, 15]))
        assert len(history.by_kind("arithmetic")) == 2
        assert len(history.by_kind(PatternKind.GEOMETRIC)) == 1
        assert history.by_kind("polynomial") == []

    def test_recent_is_newest_first(self, history):
        for n in range(1, 15):
            history.record(analyze([n, n + 1]))
        recent = history.recent()
        assert len(recent) == 10
        assert recent[0].result.sequence == (14, 15)
        assert recent[-1].result.sequence == (5, 6)
        assert history.recent(0) == []

    def test_entries_is_a_copy(self, history):
        history.record(analyze([1, 2]))
        history.entries().clear()
        assert len(history) == 1

    def test_clear(self, history):
        history.record(analyze([1, 2]))
        history.clear()
        assert len(history) == 0
        assert history.stats()["total_processed"] == 0

    def test_concurrent_records(self, history):
        def worker():
            for _ in range(50):
                history.record(analyze([1, 2, 3]))

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(history) == 200


class TestStatistics:
    """stats / summarize / export."""

    def test_empty(self, history):
        assert history.stats() == {
            "total_processed": 0,
            "by_kind": {},
            "average_confidence": 0.0,
            "success_rate": 0.0,
        }
        summary = history.summarize()
        assert summary["most_common_kind"] is None
        assert summary["trends"] == []

    def test_stats(self, history):
        history.record(analyze([1, 2, 3]))          # 1.0
        history.record(analyze([1, 4, 9, 16]))      # 0.9
        history.record(analyze([1, 2, 4, 7, 13]))   # unknown, no confidence
        history.record(analyze([1]))                # invalid
        stats = history.stats()
        assert stats["total_processed"] == 4
        assert stats["by_kind"] == {"arithmetic": 1, "polynomial": 1, "unknown": 1, "invalid": 1}
        assert stats["average_confidence"] == pytest.approx(1.9 / 4)
        assert stats["success_rate"] == 0.5

    def test_summarize(self, history):
        history.record(analyze([1, 2, 3]))
        history.record(analyze([2, 4, 6, 8, 10]))
        history.record(analyze([3, 9, 27, 81]))
        summary = history.summarize()
        assert summary["most_common_kind"] == "arithmetic"
        assert summary["average_sequence_length"] == pytest.approx(4.0)
        assert summary["sequence_length_range"] == {"min": 3, "max": 5}
        assert summary["kind_distribution"]["arithmetic"] == {"count": 2, "percentage": "66.67%"}
        assert summary["kind_distribution"]["geometric"] == {"count": 1, "percentage": "33.33%"}

    def test_multi_step_results_are_counted(self, history):
        history.record(predict_multiple([2, 4, 8], 3))
        assert history.stats()["by_kind"] == {"geometric": 1}

    def test_current_streak(self, history):
        for n in range(4):
            history.record(analyze([n, n + 1, n + 2]))
        assert history.summarize()["trends"] == ["Current streak of 4 arithmetic sequences"]

    def test_export(self, history):
        history.record(analyze([1, 4, 9, 16, 25]))
        data = json.loads(history.export())
        assert set(data) == {"memories", "stats", "exportDate"}
        memory = data["memories"][0]
        assert memory["id"].startswith("mem_")
        assert memory["result"]["kind"] == "polynomial"
        assert memory["result"]["parameters"]["degree"] == 2
        assert data["stats"]["total_processed"] == 1


class TestTrends:
    """Streak detection over a list of kinds."""

    def test_too_few(self):
        assert identify_trends(["arithmetic", "arithmetic"]) == []

    def test_inner_and_current_streaks(self):
        kinds = ["geometric"] * 3 + ["unknown"] + ["arithmetic"] * 4
        assert identify_trends(kinds) == [
            "Streak of 3 geometric sequences",
            "Current streak of 4 arithmetic sequences",
        ]

    def test_no_streak(self):
        assert identify_trends(["a", "b", "a", "b"]) == []
