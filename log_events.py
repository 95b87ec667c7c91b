"""
Event helper functions for structured JSON logging.

This module provides consistent event emission and stage timing utilities
for the transcript extractor's logging system.
"""

import logging
import time
from typing import Optional

# Get the main application logger
logger = logging.getLogger()


def evt(event: str, **fields) -> None:
    """
    Emit a structured event with consistent field naming.

    Args:
        event: The event type/name
        **fields: Additional fields to include in the event

    Example:
        evt("panel_strategy_attempt", strategy="overflow_menu")
        evt("stage_result", stage="stabilizing", outcome="success", dur_ms=1250)
    """
    event_data = {"event": event}
    event_data.update(fields)

    logger.info("", extra=event_data)


class StageTimer:
    """
    Context manager for automatic stage timing with structured logging.

    Emits stage_start event on entry and stage_result event on exit,
    with automatic duration calculation and exception handling.

    Example:
        with StageTimer("stabilizing", video_id="abc123"):
            await monitor.run(container)
    """

    def __init__(self, stage: str, **context_fields):
        """
        Initialize the stage timer.

        Args:
            stage: The name of the stage being timed
            **context_fields: Additional context fields
        """
        self.stage = stage
        self.context_fields = context_fields
        self.start_time: Optional[float] = None
        self.outcome: Optional[str] = None

    def __enter__(self):
        self.start_time = time.time()

        evt("stage_start", stage=self.stage, **self.context_fields)

        return self

    def __exit__(self, exc_type, exc_value, traceback):
        if self.start_time is None:
            duration_ms = 0
        else:
            duration_ms = int((time.time() - self.start_time) * 1000)

        if exc_type is None:
            # Callers may downgrade a clean exit, e.g. "partial"
            outcome = self.outcome or "success"
            detail = None
        else:
            outcome = "error"
            detail = f"{exc_type.__name__}: {str(exc_value)}"

        event_fields = {
            "stage": self.stage,
            "outcome": outcome,
            "dur_ms": duration_ms,
            **self.context_fields
        }

        if detail is not None:
            event_fields["detail"] = detail

        evt("stage_result", **event_fields)

        # Don't suppress the exception - let it propagate
        return False


def time_stage(stage: str, **context_fields) -> StageTimer:
    """
    Create a StageTimer context manager for the given stage.

    Example:
        with time_stage("collecting", video_id="abc123"):
            segments = await collector.collect()
    """
    return StageTimer(stage, **context_fields)


def extraction_finished(video_id: str, outcome: str, duration_ms: int, **result_fields) -> None:
    """
    Emit the terminal event of one extraction session.

    Args:
        video_id: YouTube video ID
        outcome: success, degraded, or the failure kind value
        duration_ms: Session duration in milliseconds
        **result_fields: Additional result fields (segment_count, final_state)

    Example:
        extraction_finished("abc123", outcome="success", duration_ms=8500, segment_count=212)
    """
    evt("extraction_finished",
        video_id=video_id,
        outcome=outcome,
        dur_ms=duration_ms,
        **result_fields)


def classify_error_type(exception: Exception) -> str:
    """
    Classify exception into error type for structured logging.

    Args:
        exception: The exception to classify

    Returns:
        Error type string for consistent categorization
    """
    exception_name = type(exception).__name__
    exception_str = str(exception).lower()

    if "timeout" in exception_name.lower() or "timeout" in exception_str:
        return "timeout_error"

    if "target closed" in exception_str or "detached" in exception_str or "context was destroyed" in exception_str:
        return "page_gone_error"

    if any(term in exception_str for term in ["connection", "network", "dns", "ssl"]):
        return "network_error"

    if "auth" in exception_str or "api key" in exception_str or "permission" in exception_str:
        return "auth_error"

    if "rate limit" in exception_str or "quota" in exception_str:
        return "resource_error"

    return "unknown_error"
