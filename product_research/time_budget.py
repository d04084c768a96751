"""Run budget checks: wall-clock time, search calls and unique sources."""
import time
from typing import Callable, Optional

from product_research.config.settings import ModeConfig
from product_research.models import RunStats


def monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


class Budget:
    """Budget tracker for a single research run.

    Call and source counters live on RunStats so the record carries them;
    this class only owns the clock and the ceilings.
    """

    def __init__(self, mode: ModeConfig, clock: Optional[Callable[[], int]] = None):
        """Initialize budget from a mode configuration.

        Args:
            mode: Mode budgets (time_ms, max_calls, max_sources)
            clock: Millisecond clock; defaults to a monotonic clock
        """
        self.mode = mode
        self.clock = clock or monotonic_ms
        self.t0 = self.clock()
        self.deadline = self.t0 + mode.time_ms

    def elapsed_ms(self) -> int:
        return self.clock() - self.t0

    def is_expired(self) -> bool:
        """Check if the time budget has passed.

        Returns:
            True if the deadline has passed
        """
        return self.clock() >= self.deadline

    def calls_remaining(self, stats: RunStats) -> int:
        return max(0, self.mode.max_calls - stats.calls_made)

    def sources_remaining(self, stats: RunStats) -> int:
        return max(0, self.mode.max_sources - stats.sources_collected)

    def exhausted_resource(self, stats: RunStats) -> Optional[str]:
        """Name of the first exhausted resource ('time', 'calls', 'sources') or None."""
        if self.is_expired():
            return "time"
        if self.calls_remaining(stats) <= 0:
            return "calls"
        if self.sources_remaining(stats) <= 0:
            return "sources"
        return None

    def percentage_used(self) -> float:
        """Get percentage of the time budget used.

        Returns:
            Percentage (0-100) of budget consumed
        """
        if self.mode.time_ms <= 0:
            return 100.0
        return min(100.0, (self.elapsed_ms() / self.mode.time_ms) * 100)
