"""
"Summarize this video" workflow: title lookup, transcript extraction and
one summarization request.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from extraction_errors import ErrorHandler, FailureKind, user_message
from log_events import evt, time_stage
from logging_setup import get_logger
from summarizer import VideoSummarizer
from transcript_extractor import SessionManager
from youtube_page import read_video_title

logger = get_logger(__name__)

STATUS_LOADING_TRANSCRIPT = "Loading transcript from YouTube…"
STATUS_SUMMARIZING = "Generating summary…"


@dataclass
class PipelineOutcome:
    summary: Optional[str] = None
    error: Optional[str] = None
    failure: Optional[FailureKind] = None
    title: Optional[str] = None
    transcript: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.failure is None and bool(self.summary)


class SummaryPipeline:
    """
    Runs extraction and summarization for the video currently shown.

    A run requested while another is in flight is ignored.
    """

    def __init__(self, session_manager: SessionManager, summarizer: VideoSummarizer,
                 on_status: Optional[Callable[[str], None]] = None,
                 error_handler: Optional[ErrorHandler] = None):
        self.session_manager = session_manager
        self.summarizer = summarizer
        self.on_status = on_status or (lambda status: None)
        self.error_handler = error_handler or session_manager.error_handler
        self._busy = False

    async def run(self) -> PipelineOutcome:
        if self._busy or self.session_manager.is_processing:
            logger.warning("Summarization already in progress.")
            return PipelineOutcome(failure=FailureKind.ALREADY_IN_PROGRESS)

        self._busy = True
        try:
            title = await read_video_title(self.session_manager.accessor)
            video_id = self.session_manager.current_video_id

            self.on_status(STATUS_LOADING_TRANSCRIPT)
            extracted = await self.session_manager.extract_transcript()
            if not extracted.ok:
                return PipelineOutcome(error=extracted.message, failure=extracted.failure, title=title)

            self.on_status(STATUS_SUMMARIZING)
            with time_stage("summarizing", transcript_length=len(extracted.text)):
                summary = await self.summarizer.summarize(transcript_text=extracted.text, title=title)

            if not summary.ok:
                message = self.error_handler.handle_summarization_failure(
                    video_id, summary.error_message or "", transcript_length=len(extracted.text)
                )
                return PipelineOutcome(error=message, failure=FailureKind.SUMMARIZATION_FAILED,
                                       title=title, transcript=extracted.text)

            evt("summary_ready", video_id=video_id, summary_length=len(summary.summary_text),
                degraded=extracted.degraded)
            return PipelineOutcome(summary=summary.summary_text, title=title, transcript=extracted.text)

        except Exception as e:
            logger.error(f"Summarization failed: {type(e).__name__}")
            return PipelineOutcome(error=user_message(FailureKind.UNEXPECTED_ERROR),
                                   failure=FailureKind.UNEXPECTED_ERROR)
        finally:
            self._busy = False
