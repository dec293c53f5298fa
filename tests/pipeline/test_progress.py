"""Tests for progress math and the item tracker."""

import pytest
from mailbundle.pipeline import ProgressTracker, format_duration, percent_of


class TestPercentOf:
    """Tests for percent_of."""

    @pytest.mark.parametrize("processed, total, expected", [
        (0, 10, 0),
        (1, 3, 33),
        (2, 3, 66),
        (3, 3, 100),
        (5, 0, 0),
        (5, -1, 0),
        (12, 10, 100),
        (-1, 10, 0),
    ])
    def test_floor_and_clamp(self, processed, total, expected):
        """Test integer floor percent clamped to [0, 100]."""
        assert percent_of(processed, total) == expected


class TestProgressTracker:
    """Tests for ProgressTracker."""

    @pytest.mark.parametrize("total", [1, 2, 3, 7, 200])
    def test_exact_sequence(self, total):
        """Test that increments yield floor(k/N*100) and end at exactly 100."""
        tracker = ProgressTracker(total_items=total, log_interval=0)

        percents = [tracker.increment() for _ in range(total)]

        assert percents == [k * 100 // total for k in range(1, total + 1)]
        assert percents[-1] == 100
        assert percents == sorted(percents)

    def test_get_progress(self):
        """Test progress statistics."""
        tracker = ProgressTracker(total_items=4, log_interval=0)
        tracker.increment(3)

        progress = tracker.get_progress()

        assert progress["items_processed"] == 3
        assert progress["remaining_items"] == 1
        assert progress["percent"] == 75
        assert progress["eta_seconds"] >= 0

    def test_periodic_logging(self, caplog):
        """Test that progress is logged every log_interval items."""
        tracker = ProgressTracker(total_items=4, log_interval=2, label="messages")

        with caplog.at_level("INFO", logger="mailbundle.pipeline.progress"):
            for _ in range(4):
                tracker.increment()
            tracker.log_final_summary()

        progress_lines = [r.getMessage() for r in caplog.records if r.getMessage().startswith("Progress:")]
        assert len(progress_lines) == 2
        assert "2/4 messages (50%)" in progress_lines[0]
        assert any(r.getMessage().startswith("Processed 4/4 messages") for r in caplog.records)


class TestFormatDuration:
    """Tests for format_duration."""

    @pytest.mark.parametrize("seconds, expected", [
        (0, "0s"),
        (45, "45s"),
        (125, "2m 5s"),
        (3600, "1h"),
        (8130, "2h 15m 30s"),
    ])
    def test_format(self, seconds, expected):
        """Test human-readable durations."""
        assert format_duration(seconds) == expected
