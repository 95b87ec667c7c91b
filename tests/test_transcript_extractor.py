#!/usr/bin/env python3
"""
End-to-end tests for transcript_extractor.py against an in-memory page.

Covers the fast path, strategy fallback, stabilization, typed failures,
panel restoration, mutual exclusion and navigation invalidation.
"""

import asyncio
import os
import sys
import unittest

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from page_fakes import FakeElement, FakePageAccessor, GrowingList, make_segment
from extraction_config import ExtractionConfig
from extraction_errors import FailureKind, PANEL_UNAVAILABLE_MESSAGE
from panel_acquisition import (
    DIRECT_TOGGLE_LOCATORS,
    MENU_ITEM_LOCATORS,
    MORE_ACTIONS_LOCATORS,
    TRANSCRIPT_PANEL_LOCATOR,
    VISIBILITY_EXPANDED,
    VISIBILITY_HIDDEN,
)
from segment_collector import SEGMENT_ITEM_LOCATORS
from transcript_extractor import ExtractionState, SessionManager, TranscriptResult

S = ExtractionState


def make_config(**overrides):
    values = dict(overall_budget_ms=60000, poll_interval_ms=200, stable_threshold=3,
                  confirm_pause_ms=800, max_iterations=40, renderer_wait_ms=1000,
                  renderer_poll_ms=250, toggle_settle_ms=600, label_settle_ms=800,
                  menu_open_settle_ms=600, menu_settle_ms=1500, forced_settle_ms=300,
                  close_settle_ms=150)
    values.update(overrides)
    return ExtractionConfig(**values)


class ExtractorTestCase(unittest.TestCase):

    def setUp(self):
        self.page = FakePageAccessor()
        self.config = make_config()
        self.manager = SessionManager(self.page, config=self.config, clock=self.page.clock,
                                      video_id="abc123")

    def extract(self):
        return asyncio.run(self.manager.extract_transcript())

    def add_toggle_opening(self, growing, container=True):
        """Direct toggle that materializes `growing` and its scroll container."""
        def open_panel():
            self.page.register(SEGMENT_ITEM_LOCATORS[0], growing.items)
            self.page.on_scroll = growing.on_scroll
            if container:
                self.page.register("#segments-container", [FakeElement(name="container")])

        toggle = FakeElement(name="toggle", on_click=open_panel)
        self.page.register(DIRECT_TOGGLE_LOCATORS[0], [toggle])
        return toggle


class TestFastPath(ExtractorTestCase):

    def test_panel_already_open_skips_to_collecting(self):
        self.page.register(SEGMENT_ITEM_LOCATORS[0],
                           [make_segment("Hello"), make_segment("world"), make_segment("")])
        states = []
        original_run = self.manager.orchestrator.run

        async def spy(session):
            result = await original_run(session)
            states.extend(session.history)
            return result

        self.manager.orchestrator.run = spy

        result = self.extract()

        self.assertTrue(result.ok)
        self.assertEqual(result.text, "Hello\nworld")
        self.assertEqual(result.segment_count, 2)
        self.assertEqual(states, [S.IDLE, S.LOCATING, S.COLLECTING, S.CLOSING, S.DONE])
        self.assertEqual(self.page.scrolls, 0)


class TestPanelNotFound(ExtractorTestCase):

    def test_page_without_transcript_elements(self):
        result = self.extract()

        self.assertFalse(result.ok)
        self.assertIsNone(result.text)
        self.assertEqual(result.failure, FailureKind.PANEL_NOT_FOUND)
        self.assertEqual(result.final_state, S.FAILED)
        self.assertEqual(result.message, PANEL_UNAVAILABLE_MESSAGE)
        self.assertFalse(self.manager.is_processing)

    def test_failure_is_recorded(self):
        self.extract()

        stats = self.manager.error_handler.get_error_stats()
        self.assertEqual(stats["error_counts"], {"panel_not_found": 1})


class TestOverflowMenuScenario(ExtractorTestCase):

    def test_menu_only_panel_with_growing_list(self):
        growing = GrowingList(initial=2, step=2, max_growths=3)
        panel = FakeElement(name="panel", attrs={"visibility": VISIBILITY_EXPANDED})

        def open_panel():
            self.page.register(SEGMENT_ITEM_LOCATORS[0], growing.items)
            self.page.on_scroll = growing.on_scroll
            self.page.register("#segments-container", [FakeElement(name="container")])
            self.page.register(TRANSCRIPT_PANEL_LOCATOR, [panel])

        show = FakeElement(text="Show transcript", on_click=open_panel)
        more = FakeElement(attrs={"aria-label": "More actions"},
                           on_click=lambda: self.page.register(MENU_ITEM_LOCATORS[1], [show]))
        self.page.register(MORE_ACTIONS_LOCATORS[1], [more])

        result = self.extract()

        self.assertTrue(result.ok)
        self.assertFalse(result.degraded)
        self.assertEqual(result.text, "\n".join(f"line {i}" for i in range(8)))
        self.assertEqual(result.segment_count, 8)
        self.assertEqual(result.final_state, S.DONE)
        # The panel was opened by the extractor, so it is collapsed again
        self.assertEqual(panel.attrs["visibility"], VISIBILITY_HIDDEN)


class TestStabilizationOutcomes(ExtractorTestCase):

    def test_budget_exhaustion_returns_best_effort_text(self):
        self.manager = SessionManager(self.page, config=make_config(overall_budget_ms=5000),
                                      clock=self.page.clock, video_id="abc123")
        self.add_toggle_opening(GrowingList(initial=1, step=1))

        result = self.extract()

        self.assertTrue(result.ok)
        self.assertTrue(result.degraded)
        self.assertGreater(result.segment_count, 1)
        self.assertLessEqual(self.page.now, 5.0 + 0.2 + 0.15)

    def test_renderer_missing_is_reported(self):
        self.add_toggle_opening(GrowingList(initial=2, max_growths=0), container=False)

        result = self.extract()

        self.assertEqual(result.failure, FailureKind.RENDERER_NOT_FOUND)
        self.assertEqual(result.message, PANEL_UNAVAILABLE_MESSAGE)
        self.assertEqual(self.page.suspensions.count(250), 4)

    def test_list_emptied_after_opening_is_segments_empty(self):
        growing = GrowingList(initial=2, max_growths=0)
        self.add_toggle_opening(growing)
        self.page.suspend_hooks.append(
            lambda page: setattr(growing, "enabled", page.scrolls == 0)
        )

        result = self.extract()

        self.assertEqual(result.failure, FailureKind.SEGMENTS_EMPTY)
        self.assertEqual(result.final_state, S.FAILED)
        self.assertIsNone(result.text)


class TestRestoration(ExtractorTestCase):

    def test_forced_panel_is_restored_on_failure(self):
        panel = FakeElement(name="panel", attrs={"visibility": VISIBILITY_HIDDEN, "hidden": ""})
        self.page.register(TRANSCRIPT_PANEL_LOCATOR, [panel])
        self.page.register(
            SEGMENT_ITEM_LOCATORS[0],
            lambda: [make_segment("x")] if panel.attrs.get("visibility") == VISIBILITY_EXPANDED else []
        )

        result = self.extract()

        self.assertEqual(result.failure, FailureKind.RENDERER_NOT_FOUND)
        self.assertEqual(panel.attrs["visibility"], VISIBILITY_HIDDEN)
        self.assertIn("hidden", panel.attrs)
        self.assertEqual(panel.style, {})


class TestErrorBoundary(ExtractorTestCase):

    def test_unexpected_exception_becomes_typed_result(self):
        async def exploding(locator, root=None):
            raise RuntimeError("Target page, context or browser has been closed")

        self.page.query_all = exploding

        result = self.extract()

        self.assertIsInstance(result, TranscriptResult)
        self.assertEqual(result.failure, FailureKind.UNEXPECTED_ERROR)
        self.assertFalse(self.manager.is_processing)


class TestSessionExclusion(ExtractorTestCase):

    def test_second_invocation_while_active_is_rejected(self):
        self.add_toggle_opening(GrowingList(initial=2, max_growths=0))
        nested = []

        async def reenter(page):
            if not nested:
                nested.append(await self.manager.extract_transcript())

        self.page.suspend_hooks.append(reenter)

        result = self.extract()

        self.assertTrue(result.ok)
        self.assertEqual(nested[0].failure, FailureKind.ALREADY_IN_PROGRESS)
        self.assertEqual(nested[0].message, "")

    def test_slot_is_free_after_completion(self):
        self.page.register(SEGMENT_ITEM_LOCATORS[0], [make_segment("one")])

        first = self.extract()
        second = self.extract()

        self.assertTrue(first.ok and second.ok)


class TestNavigationInvalidation(ExtractorTestCase):

    def test_navigation_mid_stabilization_aborts_and_fresh_session_starts(self):
        growing = GrowingList(initial=2, step=2)
        self.add_toggle_opening(growing)
        observed = {}

        async def navigate(page):
            if page.scrolls == 2 and "fresh" not in observed:
                self.manager.on_navigation("xyz789")
                observed["processing_after_nav"] = self.manager.is_processing
                observed["fresh"] = await self.manager.extract_transcript()
                observed["fresh_session_video"] = observed["fresh"].video_id

        self.page.suspend_hooks.append(navigate)

        result = self.extract()

        self.assertEqual(result.failure, FailureKind.SESSION_INVALIDATED)
        self.assertEqual(result.final_state, S.ABORTED)
        self.assertFalse(observed["processing_after_nav"])
        self.assertEqual(observed["fresh_session_video"], "xyz789")
        self.assertTrue(observed["fresh"].ok)
        self.assertFalse(self.manager.is_processing)

    def test_superseded_session_leaves_panel_to_newer_session(self):
        panel = FakeElement(name="panel", attrs={"visibility": VISIBILITY_HIDDEN})
        close = FakeElement(name="close",
                            on_click=lambda: panel.attrs.update(visibility=VISIBILITY_HIDDEN))
        panel.children["#visibility-button button"] = [close]
        self.page.register(TRANSCRIPT_PANEL_LOCATOR, [panel])

        growing = GrowingList(initial=2, step=2, max_growths=3)
        self.page.register(
            SEGMENT_ITEM_LOCATORS[0],
            lambda: growing.items() if panel.attrs.get("visibility") == VISIBILITY_EXPANDED else []
        )
        tasks = []

        async def scenario():
            reopened = asyncio.Event()

            def open_panel():
                panel.attrs["visibility"] = VISIBILITY_EXPANDED
                self.page.on_scroll = growing.on_scroll
                self.page.register("#segments-container", [FakeElement(name="container")])
                if tasks:
                    reopened.set()

            self.page.register(DIRECT_TOGGLE_LOCATORS[0], [FakeElement(name="toggle", on_click=open_panel)])

            async def navigate(page):
                if page.scrolls == 2 and not tasks:
                    self.manager.on_navigation("xyz789")
                    # The page collapses the panel on navigation
                    panel.attrs["visibility"] = VISIBILITY_HIDDEN
                    tasks.append(asyncio.create_task(self.manager.extract_transcript()))
                    await reopened.wait()

            self.page.suspend_hooks.append(navigate)
            stale = await self.manager.extract_transcript()
            fresh = await tasks[0]
            return stale, fresh

        stale, fresh = asyncio.run(scenario())

        self.assertEqual(stale.failure, FailureKind.SESSION_INVALIDATED)
        self.assertEqual(stale.final_state, S.ABORTED)
        self.assertTrue(fresh.ok)
        self.assertEqual(fresh.video_id, "xyz789")
        # Only the newer session's own restore closed the panel
        self.assertEqual(close.clicks, 1)
        self.assertEqual(panel.attrs["visibility"], VISIBILITY_HIDDEN)

    def test_same_video_navigation_does_not_invalidate(self):
        self.add_toggle_opening(GrowingList(initial=2, max_growths=0))
        self.page.suspend_hooks.append(lambda page: self.manager.on_navigation("abc123"))

        result = self.extract()

        self.assertTrue(result.ok)

    def test_video_id_read_from_page_when_unknown(self):
        manager = SessionManager(self.page, config=self.config, clock=self.page.clock)
        self.page.register(SEGMENT_ITEM_LOCATORS[0], [make_segment("one")])

        result = asyncio.run(manager.extract_transcript())

        self.assertEqual(result.video_id, "abc123")
        self.assertEqual(manager.current_video_id, "abc123")


if __name__ == '__main__':
    unittest.main()
