"""
YouTube watch-page helpers: URL parsing, title lookup and navigation watching.
"""

from typing import Optional
from urllib.parse import urlparse, parse_qs

from log_events import evt
from logging_setup import get_logger

logger = get_logger(__name__)

WATCH_PATH = "/watch"
DEFAULT_TITLE = "Untitled video"
TITLE_LOCATORS = (
    "h1.ytd-watch-metadata",
    "ytd-watch-metadata h1",
    "h1.title",
)


def is_watch_page(url: Optional[str]) -> bool:
    """True for https://www.youtube.com/watch?v=... style URLs."""
    if not url:
        return False
    try:
        return urlparse(url).path == WATCH_PATH
    except ValueError:
        return False


def current_video_id(url: Optional[str]) -> Optional[str]:
    """
    Extract the `v` query parameter of a watch-page URL.

    Returns:
        The video id, or None for non-watch pages and malformed URLs
    """
    if not is_watch_page(url):
        return None
    try:
        values = parse_qs(urlparse(url).query).get("v")
    except ValueError:
        return None
    return values[0] if values and values[0] else None


async def read_video_title(accessor) -> str:
    """Title shown above the player, or a placeholder."""
    for locator in TITLE_LOCATORS:
        element = await accessor.query_first(locator)
        if element is None:
            continue
        title = (await accessor.get_text(element)).strip()
        if title:
            return title
    return DEFAULT_TITLE


class NavigationWatcher:
    """
    Turns page tree changes into navigation signals for a SessionManager.

    YouTube navigates in-app without a page load, so the watcher re-reads the
    URL whenever the page tree changes and reports video id changes.
    """

    def __init__(self, accessor, session_manager):
        self.accessor = accessor
        self.session_manager = session_manager
        self.last_video_id: Optional[str] = session_manager.current_video_id

    async def attach(self) -> None:
        """Subscribe to page changes and sync with the current URL."""
        await self.accessor.on_tree_changed(self.handle_page_update)
        await self.handle_page_update()
        logger.info("Navigation watcher attached")

    async def handle_page_update(self) -> None:
        url = await self.accessor.current_url()
        video_id = current_video_id(url)
        if video_id is None or video_id == self.last_video_id:
            return

        evt("watch_page_video_changed",
            previous_video_id=self.last_video_id,
            new_video_id=video_id)
        self.last_video_id = video_id
        self.session_manager.on_navigation(video_id)
