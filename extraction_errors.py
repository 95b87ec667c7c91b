#!/usr/bin/env python3
"""
Failure taxonomy and error handling for transcript extraction.

Core components raise ExtractionError subclasses; the orchestrator converts
them into a FailureKind on a typed result so nothing crosses the
invocation boundary as an exception.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, Optional

from logging_setup import get_logger


class FailureKind(str, Enum):
    """Terminal failure kinds of one extraction session."""

    PANEL_NOT_FOUND = "panel_not_found"
    RENDERER_NOT_FOUND = "renderer_not_found"
    SEGMENTS_EMPTY = "segments_empty"
    SUMMARIZATION_FAILED = "summarization_failed"
    ALREADY_IN_PROGRESS = "already_in_progress"
    SESSION_INVALIDATED = "session_invalidated"
    UNEXPECTED_ERROR = "unexpected_error"


PANEL_UNAVAILABLE_MESSAGE = "Transcript panel is not available on this video."

USER_MESSAGES: Dict[FailureKind, str] = {
    FailureKind.PANEL_NOT_FOUND: PANEL_UNAVAILABLE_MESSAGE,
    # Renderer failures read the same as a missing panel
    FailureKind.RENDERER_NOT_FOUND: PANEL_UNAVAILABLE_MESSAGE,
    FailureKind.SEGMENTS_EMPTY: (
        "Transcript could not be found. Some videos disable transcripts "
        "or they may be unavailable for this language."
    ),
    FailureKind.SUMMARIZATION_FAILED: "Summary could not be generated.",
    FailureKind.ALREADY_IN_PROGRESS: "",
    FailureKind.SESSION_INVALIDATED: "Extraction cancelled because the video changed.",
    FailureKind.UNEXPECTED_ERROR: "Transcript extraction failed.",
}


def user_message(kind: FailureKind, detail: Optional[str] = None) -> str:
    """
    Message shown to the user for a failure kind.

    Summarization failures surface the collaborator's own message verbatim
    when one is available.
    """
    if kind is FailureKind.SUMMARIZATION_FAILED and detail:
        return detail
    return USER_MESSAGES.get(kind, USER_MESSAGES[FailureKind.UNEXPECTED_ERROR])


class ExtractionError(Exception):
    """Base class for failures raised inside an extraction session."""

    kind = FailureKind.UNEXPECTED_ERROR

    def __init__(self, message: str = None):
        super().__init__(message or USER_MESSAGES[self.kind])


class PanelNotFoundError(ExtractionError):
    """All panel acquisition strategies were exhausted."""

    kind = FailureKind.PANEL_NOT_FOUND


class RendererNotFoundError(ExtractionError):
    """The panel opened but the list container never appeared."""

    kind = FailureKind.RENDERER_NOT_FOUND


class SegmentsEmptyError(ExtractionError):
    """The list yielded no readable text after stabilization."""

    kind = FailureKind.SEGMENTS_EMPTY


class SessionInvalidatedError(ExtractionError):
    """Navigation to another video superseded the session."""

    kind = FailureKind.SESSION_INVALIDATED


class ErrorHandler:
    """Per-kind failure bookkeeping with structured logging."""

    def __init__(self):
        self.logger = get_logger(__name__)
        self.error_counts: Dict[str, int] = {}
        self.last_errors: Dict[str, Dict[str, Any]] = {}

    def handle_extraction_failure(self, video_id: Optional[str], kind: FailureKind,
                                  error: Optional[Exception] = None,
                                  duration_ms: int = None) -> str:
        """Record an extraction failure and return its user-facing message."""
        key = kind.value
        self.error_counts[key] = self.error_counts.get(key, 0) + 1
        self.last_errors[key] = {
            "error": str(error) if error else kind.value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "video_id": video_id,
        }

        log = self.logger.error if kind is FailureKind.UNEXPECTED_ERROR else self.logger.warning
        log(
            f"extraction_failure kind={kind.value} video_id={video_id}",
            extra={
                "error_type": type(error).__name__ if error else None,
                "error_count": self.error_counts[key],
                "dur_ms": duration_ms,
            },
        )

        return user_message(kind)

    def handle_summarization_failure(self, video_id: Optional[str], message: str,
                                     transcript_length: int = None) -> str:
        """Record a summarization failure; the collaborator message is kept verbatim."""
        key = FailureKind.SUMMARIZATION_FAILED.value
        self.error_counts[key] = self.error_counts.get(key, 0) + 1
        self.last_errors[key] = {
            "error": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "video_id": video_id,
        }

        self.logger.error(
            f"summarization_failure video_id={video_id}",
            extra={
                "transcript_length": transcript_length,
                "error_count": self.error_counts[key],
            },
        )

        return user_message(FailureKind.SUMMARIZATION_FAILED, message)

    def get_error_stats(self) -> Dict[str, Any]:
        """Get error statistics for monitoring"""
        return {
            "error_counts": self.error_counts.copy(),
            "last_errors": {k: v.copy() for k, v in self.last_errors.items()},
            "total_errors": sum(self.error_counts.values())
        }

    def reset_error_stats(self):
        """Reset error statistics (for testing or periodic cleanup)"""
        self.error_counts.clear()
        self.last_errors.clear()
