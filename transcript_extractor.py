"""
Transcript extraction orchestrator.

This module provides:
- ExtractionSession: explicit per-extraction state, no module globals
- ExtractionOrchestrator: the Idle → Locating → Opening → Stabilizing →
  Collecting → Closing → Done state machine
- SessionManager: the single owner of the "extraction running" slot,
  invalidated by navigation to another video
"""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence, Tuple

from extraction_config import ExtractionConfig, get_extraction_config
from extraction_errors import (
    ErrorHandler,
    ExtractionError,
    FailureKind,
    PanelNotFoundError,
    RendererNotFoundError,
    SegmentsEmptyError,
    SessionInvalidatedError,
    user_message,
)
from log_events import evt, StageTimer, extraction_finished, classify_error_type
from logging_setup import get_logger, set_session_ctx, clear_session_ctx
from page_accessor import PageAccessor
from panel_acquisition import PanelAcquisition, PanelVisibility, Strategy, default_strategies
from segment_collector import SegmentCollector
from stabilization import StabilizationMonitor
from youtube_page import current_video_id

logger = get_logger(__name__)

SEGMENT_DELIMITER = "\n"

# Scrollable list container, most specific first
SCROLL_CONTAINER_LOCATORS = (
    "ytd-transcript-renderer #segments-container",
    "#segments-container",
    "ytd-transcript-section-renderer #contents",
    "ytd-transcript-segment-list-renderer",
    "ytd-transcript-renderer",
    "ytd-transcript-search-panel-renderer",
    "#transcript",
)


class ExtractionState(str, Enum):
    IDLE = "idle"
    LOCATING = "locating"
    OPENING = "opening"
    STABILIZING = "stabilizing"
    COLLECTING = "collecting"
    CLOSING = "closing"
    DONE = "done"
    FAILED = "failed"
    ABORTED = "aborted"


@dataclass
class ExtractionSession:
    """State of one user-triggered extraction."""
    video_id: Optional[str]
    deadline: float
    strategies: List[Strategy]
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    segments: List[str] = field(default_factory=list)
    state: ExtractionState = ExtractionState.IDLE
    history: List[ExtractionState] = field(default_factory=lambda: [ExtractionState.IDLE])
    invalidated: bool = False
    panel_snapshot: Optional[PanelVisibility] = None

    def remaining_ms(self, now: float) -> int:
        """Time budget left, in milliseconds."""
        return max(0, int((self.deadline - now) * 1000))

    def is_relevant(self) -> bool:
        return not self.invalidated


@dataclass
class TranscriptResult:
    """Either a transcript text or a failure kind, never both."""
    text: Optional[str] = None
    failure: Optional[FailureKind] = None
    degraded: bool = False
    segment_count: int = 0
    video_id: Optional[str] = None
    final_state: Optional[ExtractionState] = None

    @property
    def ok(self) -> bool:
        return self.failure is None and bool(self.text)

    @property
    def message(self) -> str:
        return "" if self.failure is None else user_message(self.failure)


class ExtractionOrchestrator:
    """
    Sequences panel acquisition, stabilization and collection for a session.

    Every failure is converted to a TranscriptResult; panel visibility is
    restored on both success and failure paths.
    """

    def __init__(self, accessor: PageAccessor,
                 config: Optional[ExtractionConfig] = None,
                 clock: Callable[[], float] = time.monotonic,
                 error_handler: Optional[ErrorHandler] = None):
        self.config = config or get_extraction_config()
        self.accessor = accessor
        self.clock = clock
        self.error_handler = error_handler or ErrorHandler()
        self.collector = SegmentCollector(accessor)
        self.monitor = StabilizationMonitor(accessor, self.collector, self.config)

    def _transition(self, session: ExtractionSession, state: ExtractionState) -> None:
        evt("extraction_state", state=state.value, previous=session.state.value)
        session.state = state
        session.history.append(state)

    def _within_budget(self, session: ExtractionSession) -> bool:
        return session.remaining_ms(self.clock()) > 0

    def _should_continue(self, session: ExtractionSession) -> Callable[[], bool]:
        return lambda: session.is_relevant() and self._within_budget(session)

    def _ensure_relevant(self, session: ExtractionSession) -> None:
        if not session.is_relevant():
            raise SessionInvalidatedError()

    async def run(self, session: ExtractionSession) -> TranscriptResult:
        """
        Drive one session to a terminal state.

        Returns:
            TranscriptResult with text on success or a failure kind
        """
        started = self.clock()
        set_session_ctx(session_id=session.session_id, video_id=session.video_id)
        evt("extraction_start", video_id=session.video_id, strategies=len(session.strategies))

        result = TranscriptResult(video_id=session.video_id)
        failure_error: Optional[Exception] = None

        try:
            segments, degraded = await self._extract(session)
            session.segments = segments
            result.text = SEGMENT_DELIMITER.join(segments)
            result.degraded = degraded
            result.segment_count = len(segments)
        except ExtractionError as e:
            result.failure = e.kind
            failure_error = e
        except Exception as e:
            result.failure = FailureKind.UNEXPECTED_ERROR
            failure_error = e
            logger.warning(f"extraction error: {type(e).__name__}")
            evt("extraction_unexpected_error",
                error_type=type(e).__name__,
                error_class=classify_error_type(e),
                error=str(e)[:200])

        if result.failure is None:
            self._transition(session, ExtractionState.CLOSING)

        await self._close(session)

        if result.failure is None:
            self._transition(session, ExtractionState.DONE)
        elif result.failure is FailureKind.SESSION_INVALIDATED:
            self._transition(session, ExtractionState.ABORTED)
        else:
            self._transition(session, ExtractionState.FAILED)

        duration_ms = int((self.clock() - started) * 1000)
        result.final_state = session.state

        if result.failure is not None:
            self.error_handler.handle_extraction_failure(
                session.video_id, result.failure, failure_error, duration_ms
            )

        outcome = result.failure.value if result.failure else ("degraded" if result.degraded else "success")
        extraction_finished(session.video_id, outcome=outcome, duration_ms=duration_ms,
                            segment_count=result.segment_count, final_state=session.state.value)
        clear_session_ctx()
        return result

    async def _extract(self, session: ExtractionSession) -> Tuple[List[str], bool]:
        self._transition(session, ExtractionState.LOCATING)
        self._ensure_relevant(session)

        # Fast path: panel already open
        if await self.collector.collect():
            evt("extraction_fast_path")
            degraded = False
        else:
            degraded = await self._open_and_stabilize(session)

        self._ensure_relevant(session)
        self._transition(session, ExtractionState.COLLECTING)
        with StageTimer("collecting"):
            segments = await self.collector.collect()

        if not segments:
            raise SegmentsEmptyError()
        return segments, degraded

    async def _open_and_stabilize(self, session: ExtractionSession) -> bool:
        """Open the panel and materialize the list; returns True for a degraded run."""
        acquisition = PanelAcquisition(self.accessor, self.collector,
                                       strategies=session.strategies, config=self.config)
        session.panel_snapshot = await acquisition.snapshot_visibility()

        self._transition(session, ExtractionState.OPENING)
        with StageTimer("opening") as timer:
            opened = await acquisition.acquire(should_continue=self._should_continue(session))
            self._ensure_relevant(session)
            if not opened.success:
                timer.outcome = "not_found"
                raise PanelNotFoundError()
        # Strategies still untried when one succeeded
        session.strategies = session.strategies[len(opened.attempted):]

        self._transition(session, ExtractionState.STABILIZING)
        with StageTimer("stabilizing") as timer:
            container = await self._find_scroll_container(session)
            stabilized = await self.monitor.run(container, should_continue=self._should_continue(session))
            self._ensure_relevant(session)
            if not stabilized.converged:
                timer.outcome = "partial"
                logger.warning(f"transcript list did not converge; using {stabilized.count} segments")

        return not stabilized.converged

    async def _find_scroll_container(self, session: ExtractionSession) -> Any:
        waited_ms = 0
        while True:
            self._ensure_relevant(session)
            for locator in SCROLL_CONTAINER_LOCATORS:
                container = await self.accessor.query_first(locator)
                if container is not None:
                    evt("scroll_container_found", locator=locator, waited_ms=waited_ms)
                    return container

            if waited_ms >= self.config.renderer_wait_ms:
                raise RendererNotFoundError()

            await self.accessor.suspend(self.config.renderer_poll_ms)
            waited_ms += self.config.renderer_poll_ms

    async def _close(self, session: ExtractionSession) -> None:
        if session.panel_snapshot is None:
            return
        if not session.is_relevant():
            # Superseded; the panel now belongs to the newer session
            evt("panel_restore_skipped", reason="session_invalidated")
            return
        acquisition = PanelAcquisition(self.accessor, self.collector,
                                       strategies=(), config=self.config)
        try:
            await acquisition.restore_visibility(session.panel_snapshot)
        except Exception as e:
            # Cleanup must not replace the session's own outcome
            logger.warning(f"panel restore failed: {type(e).__name__}")
            evt("panel_restore_failed", error=str(e)[:100])


class SessionManager:
    """
    Owns the single extraction slot for one page.

    A second invocation while a session is active is rejected, not queued.
    Navigation to a different video invalidates the active session and frees
    the slot immediately; the superseded session stops at its next poll.
    """

    def __init__(self, accessor: PageAccessor,
                 config: Optional[ExtractionConfig] = None,
                 clock: Callable[[], float] = time.monotonic,
                 strategies: Optional[Sequence[Strategy]] = None,
                 video_id: Optional[str] = None,
                 error_handler: Optional[ErrorHandler] = None):
        self.config = config or get_extraction_config()
        self.accessor = accessor
        self.clock = clock
        self.strategies = tuple(strategies) if strategies is not None else default_strategies(self.config)
        self.current_video_id = video_id
        self.error_handler = error_handler or ErrorHandler()
        self.orchestrator = ExtractionOrchestrator(accessor, self.config, clock, self.error_handler)
        self._active_session: Optional[ExtractionSession] = None

    @property
    def is_processing(self) -> bool:
        return self._active_session is not None

    def on_navigation(self, video_id: Optional[str]) -> None:
        """Handle a change of the active video id."""
        if video_id == self.current_video_id:
            return

        previous = self.current_video_id
        self.current_video_id = video_id
        evt("navigation_detected", previous_video_id=previous, new_video_id=video_id)

        session = self._active_session
        if session is not None:
            session.invalidated = True
            self._active_session = None
            logger.info(f"extraction session {session.session_id} invalidated by navigation")

    async def extract_transcript(self) -> TranscriptResult:
        """
        Run one extraction session for the current video.

        Returns:
            TranscriptResult; never raises
        """
        if self._active_session is not None:
            logger.warning("Transcript extraction already in progress")
            evt("extraction_rejected", reason=FailureKind.ALREADY_IN_PROGRESS.value,
                active_session=self._active_session.session_id)
            return TranscriptResult(failure=FailureKind.ALREADY_IN_PROGRESS,
                                    video_id=self.current_video_id)

        if self.current_video_id is None:
            try:
                self.current_video_id = current_video_id(await self.accessor.current_url())
            except Exception as e:
                evt("extraction_video_id_unavailable", error=str(e)[:100])

        session = ExtractionSession(
            video_id=self.current_video_id,
            deadline=self.clock() + self.config.overall_budget_ms / 1000.0,
            strategies=list(self.strategies),
        )
        self._active_session = session

        try:
            return await self.orchestrator.run(session)
        finally:
            if self._active_session is session:
                self._active_session = None
