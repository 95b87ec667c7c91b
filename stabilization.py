"""
Drives a virtualized transcript list until its materialized item count
stops growing.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional

from extraction_config import ExtractionConfig, get_extraction_config
from log_events import evt
from logging_setup import get_logger
from page_accessor import PageAccessor
from segment_collector import SegmentCollector

logger = get_logger(__name__)


@dataclass
class StabilizationState:
    """Counters for one monitor run."""
    previous_count: int = 0
    stable_iterations: int = 0
    iterations: int = 0


@dataclass(frozen=True)
class StabilizationResult:
    """Outcome of one monitor run. converged=False is the best-effort case."""
    count: int
    converged: bool
    iterations: int
    stopped_early: bool = False


class StabilizationMonitor:
    """
    Repeated scroll-and-poll cycles against a scrollable list container.

    Each iteration scrolls the container to its end, suspends, and recounts.
    After `stable_threshold` unchanged polls one confirmation poll runs after
    a longer pause; only a matching count there means convergence. The run
    is bounded by `max_iterations` and always returns a count.
    """

    def __init__(self, accessor: PageAccessor, collector: SegmentCollector,
                 config: Optional[ExtractionConfig] = None):
        config = config or get_extraction_config()
        self.accessor = accessor
        self.collector = collector
        self.poll_interval_ms = config.poll_interval_ms
        self.stable_threshold = config.stable_threshold
        self.confirm_pause_ms = config.confirm_pause_ms
        self.max_iterations = config.max_iterations

    async def _poll(self, container: Any, pause_ms: int) -> int:
        await self.accessor.scroll_to_end(container)
        await self.accessor.suspend(pause_ms)
        return await self.collector.count_items()

    async def run(self, container: Any,
                  should_continue: Optional[Callable[[], bool]] = None) -> StabilizationResult:
        """
        Scroll container until the item count converges or the budget runs out.

        Args:
            container: Scrollable list element
            should_continue: Checked before every poll; returning False stops
                the run at that boundary

        Returns:
            StabilizationResult with the last observed count
        """
        state = StabilizationState()

        while state.iterations < self.max_iterations:
            if should_continue is not None and not should_continue():
                evt("stabilization_stopped",
                    count=state.previous_count,
                    iterations=state.iterations)
                return StabilizationResult(state.previous_count, False, state.iterations, stopped_early=True)

            count = await self._poll(container, self.poll_interval_ms)
            state.iterations += 1

            if count != state.previous_count:
                state.previous_count = count
                state.stable_iterations = 0
                logger.debug(f"Loaded {count} transcript segments so far")
                continue

            state.stable_iterations += 1
            if state.stable_iterations < self.stable_threshold:
                continue

            # The confirmation poll counts toward max_iterations
            if state.iterations >= self.max_iterations:
                break

            if should_continue is not None and not should_continue():
                return StabilizationResult(state.previous_count, False, state.iterations, stopped_early=True)

            # Transient stalls look stable; confirm after a longer pause
            confirmed = await self._poll(container, self.confirm_pause_ms)
            state.iterations += 1
            if confirmed == state.previous_count:
                evt("stabilization_converged",
                    count=confirmed,
                    iterations=state.iterations)
                return StabilizationResult(confirmed, True, state.iterations)

            evt("stabilization_confirm_mismatch",
                expected=state.previous_count,
                observed=confirmed)
            state.previous_count = confirmed
            state.stable_iterations = 0

        evt("stabilization_budget_exhausted",
            count=state.previous_count,
            iterations=state.iterations)
        return StabilizationResult(state.previous_count, False, state.iterations)
