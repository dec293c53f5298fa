"""Progress tracking for pipeline stages.

Percent math shared by all stages, plus a per-item tracker that logs rate and
ETA while messages are processed.
"""

import logging
import time

logger = logging.getLogger(__name__)


def percent_of(processed: int, total: int) -> int:
    """Integer percent ``floor(processed / total * 100)`` clamped to [0, 100].

    An unknown or zero total reports 0.
    """
    if total <= 0:
        return 0
    return max(0, min(100, processed * 100 // total))


class ProgressTracker:
    """Tracks item progress and calculates ETA.

    Features:
    - Items processed count and integer percent
    - Processing rate (items/sec)
    - Estimated time remaining
    - Periodic logging (every N items)
    """

    def __init__(self, total_items: int, log_interval: int = 100, label: str = "items"):
        """Initialize progress tracker.

        Args:
            total_items: Total number of items to process
            log_interval: Log progress every N items
            label: Noun used in log messages
        """
        self.total_items = total_items
        self.log_interval = log_interval
        self.label = label

        self.items_processed = 0
        self.start_time = time.monotonic()
        self.last_log_time = self.start_time
        self.last_log_count = 0

    @property
    def percent(self) -> int:
        return percent_of(self.items_processed, self.total_items)

    def increment(self, count: int = 1) -> int:
        """Increment the processed counter.

        Args:
            count: Number of items to add

        Returns:
            Current percent
        """
        self.items_processed += count

        if self.log_interval > 0 and self.items_processed % self.log_interval == 0:
            self._log_progress()

        return self.percent

    def get_progress(self) -> dict:
        """Get current progress statistics.

        Returns:
            Dict with progress metrics
        """
        elapsed_time = time.monotonic() - self.start_time

        if elapsed_time > 0:
            rate = self.items_processed / elapsed_time
        else:
            rate = 0.0

        remaining = self.total_items - self.items_processed
        if rate > 0 and remaining > 0:
            eta_seconds = remaining / rate
        else:
            eta_seconds = 0.0

        return {
            "total_items": self.total_items,
            "items_processed": self.items_processed,
            "remaining_items": remaining,
            "percent": self.percent,
            "elapsed_seconds": elapsed_time,
            "rate_items_per_sec": rate,
            "eta_seconds": eta_seconds,
        }

    def _log_progress(self) -> None:
        progress = self.get_progress()

        current_time = time.monotonic()
        time_delta = current_time - self.last_log_time
        count_delta = self.items_processed - self.last_log_count
        instant_rate = count_delta / time_delta if time_delta > 0 else 0.0

        logger.info(
            f"Progress: {self.items_processed}/{self.total_items} {self.label} "
            f"({progress['percent']}%) - "
            f"{progress['rate_items_per_sec']:.1f} {self.label}/sec (avg), "
            f"{instant_rate:.1f} {self.label}/sec (current) - "
            f"ETA: {format_duration(progress['eta_seconds'])}"
        )

        self.last_log_time = current_time
        self.last_log_count = self.items_processed

    def log_final_summary(self) -> None:
        """Log final progress summary."""
        elapsed_time = time.monotonic() - self.start_time
        rate = self.items_processed / elapsed_time if elapsed_time > 0 else 0.0

        logger.info(
            f"Processed {self.items_processed}/{self.total_items} {self.label} "
            f"in {format_duration(elapsed_time)} ({rate:.1f} {self.label}/sec average)"
        )


def format_duration(seconds: float) -> str:
    """Format seconds as human-readable time (e.g. "2h 15m 30s")."""
    if seconds <= 0:
        return "0s"

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)

    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:
        parts.append(f"{secs}s")

    return " ".join(parts)
