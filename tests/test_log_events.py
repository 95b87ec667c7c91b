"""
Unit tests for log_events.py event helper functions.

Tests the evt() function and StageTimer context manager for:
- Consistent event emission
- Stage outcomes, including caller-set partial outcomes
- Exception handling
- Error classification
"""

import unittest
import logging
import json
from unittest.mock import patch
from io import StringIO

# Add parent directory to path for imports
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import log_events
from logging_setup import JsonFormatter, set_session_ctx, clear_session_ctx


class JsonCaptureTestCase(unittest.TestCase):
    """Captures root logger output as parsed JSON lines."""

    def setUp(self):
        self.log_buffer = StringIO()
        self.handler = logging.StreamHandler(self.log_buffer)
        self.handler.setFormatter(JsonFormatter())

        self.logger = logging.getLogger()
        self.saved_handlers = self.logger.handlers[:]
        self.saved_level = self.logger.level
        for handler in self.saved_handlers:
            self.logger.removeHandler(handler)
        self.logger.addHandler(self.handler)
        self.logger.setLevel(logging.INFO)

    def tearDown(self):
        self.logger.removeHandler(self.handler)
        self.handler.close()
        for handler in self.saved_handlers:
            self.logger.addHandler(handler)
        self.logger.setLevel(self.saved_level)
        clear_session_ctx()

    def records(self):
        return [json.loads(line) for line in self.log_buffer.getvalue().splitlines() if line.strip()]


class TestEvtFunction(JsonCaptureTestCase):
    """Test the evt() function for consistent event emission."""

    def test_evt_basic_event_emission(self):
        log_events.evt("panel_strategy_attempt", strategy="overflow_menu", attempt=3)

        records = self.records()
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0]["event"], "panel_strategy_attempt")
        self.assertEqual(records[0]["strategy"], "overflow_menu")
        self.assertEqual(records[0]["attempt"], 3)
        self.assertEqual(records[0]["lvl"], "INFO")

    def test_evt_with_no_additional_fields(self):
        log_events.evt("extraction_fast_path")

        record = self.records()[0]
        self.assertEqual(record["event"], "extraction_fast_path")
        self.assertNotIn("detail", record)

    def test_evt_includes_session_context(self):
        set_session_ctx(session_id="s-1", video_id="abc123")

        log_events.evt("segments_collected", count=12)

        record = self.records()[0]
        self.assertEqual(record["session_id"], "s-1")
        self.assertEqual(record["video_id"], "abc123")

    def test_explicit_video_id_overrides_context(self):
        set_session_ctx(video_id="abc123")

        log_events.evt("navigation_detected", video_id="xyz789")

        self.assertEqual(self.records()[0]["video_id"], "xyz789")


class TestStageTimer(JsonCaptureTestCase):
    """Test StageTimer start/result events."""

    def test_successful_stage(self):
        with log_events.StageTimer("collecting", segment_locator="ytd-transcript-segment-renderer"):
            pass

        start, result = self.records()
        self.assertEqual(start["event"], "stage_start")
        self.assertEqual(start["stage"], "collecting")
        self.assertEqual(result["event"], "stage_result")
        self.assertEqual(result["outcome"], "success")
        self.assertIn("dur_ms", result)
        self.assertEqual(result["segment_locator"], "ytd-transcript-segment-renderer")

    def test_caller_set_outcome(self):
        with log_events.StageTimer("stabilizing") as timer:
            timer.outcome = "partial"

        self.assertEqual(self.records()[-1]["outcome"], "partial")

    def test_exception_reports_error_and_propagates(self):
        with self.assertRaises(ValueError):
            with log_events.StageTimer("opening"):
                raise ValueError("no trigger")

        result = self.records()[-1]
        self.assertEqual(result["outcome"], "error")
        self.assertEqual(result["detail"], "ValueError: no trigger")

    def test_time_stage_helper(self):
        timer = log_events.time_stage("summarizing", transcript_length=10)

        self.assertIsInstance(timer, log_events.StageTimer)
        self.assertEqual(timer.stage, "summarizing")


class TestExtractionFinished(unittest.TestCase):

    @patch('log_events.evt')
    def test_extraction_finished_fields(self, mock_evt):
        log_events.extraction_finished("abc123", outcome="degraded", duration_ms=8500,
                                       segment_count=212, final_state="done")

        mock_evt.assert_called_once_with(
            "extraction_finished",
            video_id="abc123",
            outcome="degraded",
            dur_ms=8500,
            segment_count=212,
            final_state="done",
        )


class TestClassifyErrorType(unittest.TestCase):

    def test_classification(self):
        cases = [
            (TimeoutError("waited"), "timeout_error"),
            (RuntimeError("Timeout 5000ms exceeded"), "timeout_error"),
            (RuntimeError("Target closed"), "page_gone_error"),
            (RuntimeError("Element is detached from document"), "page_gone_error"),
            (ConnectionError("connection reset"), "network_error"),
            (RuntimeError("Invalid API key provided"), "auth_error"),
            (RuntimeError("You exceeded your current quota"), "resource_error"),
            (RuntimeError("something odd"), "unknown_error"),
        ]
        for exc, expected in cases:
            with self.subTest(exc=exc):
                self.assertEqual(log_events.classify_error_type(exc), expected)


if __name__ == '__main__':
    unittest.main()
