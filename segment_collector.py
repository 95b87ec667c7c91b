"""
Reads the currently materialized transcript segments from the page.
"""

from typing import Any, List, Optional, Sequence

from log_events import evt
from page_accessor import PageAccessor

# Locators for "the list of segment items", most specific first
SEGMENT_ITEM_LOCATORS = (
    "ytd-transcript-segment-renderer",
    "ytd-transcript-segment-list-renderer .segment",
    "ytd-transcript-body-renderer .cue-group",
    "transcript-segment-view-model",
)

# Inner locators for one item's text; the item's own text is the last resort
SEGMENT_TEXT_LOCATORS = (
    ".segment-text",
    "yt-formatted-string",
)


class SegmentCollector:
    """
    Extracts segment texts in document order.

    Emptiness is the "not found" signal; collection never raises for it.
    """

    def __init__(self, accessor: PageAccessor,
                 item_locators: Sequence[str] = SEGMENT_ITEM_LOCATORS,
                 text_locators: Sequence[str] = SEGMENT_TEXT_LOCATORS):
        self.accessor = accessor
        self.item_locators = tuple(item_locators)
        self.text_locators = tuple(text_locators)
        self.matched_locator: Optional[str] = None

    async def _items(self) -> List[Any]:
        # First locator with results wins; never merge across locators
        for locator in self.item_locators:
            items = await self.accessor.query_all(locator)
            if items:
                self.matched_locator = locator
                return items
        self.matched_locator = None
        return []

    async def count_items(self) -> int:
        """Number of materialized segment items."""
        return len(await self._items())

    async def _item_text(self, item: Any) -> str:
        for locator in self.text_locators:
            node = await self.accessor.query_first(locator, root=item)
            if node is None:
                continue
            text = (await self.accessor.get_text(node)).strip()
            if text:
                return text
        return (await self.accessor.get_text(item)).strip()

    async def collect(self) -> List[str]:
        """Ordered, trimmed, non-empty segment texts."""
        items = await self._items()
        if not items:
            return []

        segments = []
        for item in items:
            text = await self._item_text(item)
            if text:
                segments.append(text)

        evt("segments_collected",
            locator=self.matched_locator,
            items=len(items),
            segments=len(segments))
        return segments
