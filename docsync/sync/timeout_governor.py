"""Time budget computation and monitoring for long-running passes."""

import sys
import time
from typing import Callable

import psutil
import structlog

from docsync.sync.models import TimeoutStatus

log = structlog.stdlib.get_logger()

MIB = 1024 * 1024


class TimeoutGovernor:
    """Computes a safe time budget and reports how much of it is used.

    The coordinator polls ``status`` only between records; a record that is in
    flight always finishes before the pass stops.
    """

    INCREMENTAL_BASE_SECONDS: int = 300
    FULL_BASE_SECONDS: int = 600
    MIN_TIMEOUT_SECONDS: int = 300
    MAX_TIMEOUT_SECONDS: int = 1800
    WARN_PERCENT: float = 60.0
    STOP_PERCENT: float = 80.0

    def __init__(
        self,
        memory_budget_mb: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the governor.

        Args:
            memory_budget_mb: Fixed memory budget. Detected from the host when None.
            clock: Monotonic clock used for elapsed time.
        """
        self._memory_budget_mb = memory_budget_mb
        self._clock = clock

    def now(self) -> float:
        return self._clock()

    def optimal_timeout(
        self,
        incremental: bool,
        memory_budget_bytes: int | None = None,
        is_background: bool | None = None,
    ) -> int:
        """
        Compute the time budget for a pass.

        Args:
            incremental: True for an incremental pass, False for a full pass
            memory_budget_bytes: Memory available to the pass, detected when None
            is_background: Whether the pass runs without an interactive terminal,
                           detected when None

        Returns:
            Budget in seconds, clamped to [300, 1800]
        """
        base_timeout = self.INCREMENTAL_BASE_SECONDS if incremental else self.FULL_BASE_SECONDS

        if memory_budget_bytes is None:
            memory_budget_bytes = self._detect_memory_budget()
        if is_background is None:
            is_background = self._detect_background()

        factor = 1.0
        if memory_budget_bytes >= 512 * MIB:
            factor = 1.5
        elif memory_budget_bytes >= 256 * MIB:
            factor = 1.2
        elif memory_budget_bytes < 128 * MIB:
            factor = 0.8

        if is_background:
            factor *= 2.0

        timeout = int(base_timeout * factor)
        timeout = max(self.MIN_TIMEOUT_SECONDS, min(self.MAX_TIMEOUT_SECONDS, timeout))

        log.info(
            "time_budget_computed",
            mode="incremental" if incremental else "full",
            memory_budget_mb=memory_budget_bytes // MIB,
            is_background=is_background,
            timeout_seconds=timeout,
        )
        return timeout

    def status(self, start_time: float, limit: float) -> TimeoutStatus:
        """
        Report time budget consumption.

        Args:
            start_time: Clock reading taken when the pass started
            limit: Budget in seconds

        Returns:
            TimeoutStatus with warn (60-80%) and stop (>= 80%) flags
        """
        elapsed = max(0.0, self._clock() - start_time)
        usage = (elapsed / limit) * 100

        return TimeoutStatus(
            elapsed_time=elapsed,
            time_limit=limit,
            usage_percent=usage,
            should_warn=self.WARN_PERCENT <= usage < self.STOP_PERCENT,
            should_stop=usage >= self.STOP_PERCENT,
        )

    def _detect_memory_budget(self) -> int:
        if self._memory_budget_mb is not None:
            return self._memory_budget_mb * MIB
        return int(psutil.virtual_memory().available)

    @staticmethod
    def _detect_background() -> bool:
        stdin = sys.stdin
        return stdin is None or not stdin.isatty()
