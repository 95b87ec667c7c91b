"""
Page capability surface used by the transcript extractor.

The extraction core touches the page only through PageAccessor, so it runs
unchanged against a live Playwright page or an in-memory test double.
"""

import abc
import inspect
from typing import Any, Awaitable, Callable, List, Optional, Union

from playwright.async_api import Page, ElementHandle, Error as PlaywrightError

from logging_setup import get_logger
from log_events import evt

logger = get_logger(__name__)

TreeChangedCallback = Callable[[], Union[None, Awaitable[None]]]

TREE_CHANGED_BINDING = "__transcriptExtractorTreeChanged"

# Installed into every document; batches mutations into one notification per frame
_TREE_OBSERVER_SCRIPT = """
(() => {
  if (window.__transcriptExtractorObserver) { return; }
  let pending = false;
  const notify = () => {
    if (pending) { return; }
    pending = true;
    requestAnimationFrame(() => {
      pending = false;
      if (window.%(binding)s) { window.%(binding)s(); }
    });
  };
  const start = () => {
    const observer = new MutationObserver(notify);
    observer.observe(document.body, { childList: true, subtree: true });
    window.__transcriptExtractorObserver = observer;
  };
  window.addEventListener('yt-navigate-finish', notify);
  window.addEventListener('yt-page-data-updated', notify);
  if (document.body) { start(); } else { document.addEventListener('DOMContentLoaded', start); }
})();
""" % {"binding": TREE_CHANGED_BINDING}


class PageAccessor(abc.ABC):
    """
    Capabilities the extraction core needs from the hosting page.

    Element references are opaque to the core. Reads never raise for a
    missing or detached element; they return empty text or None instead.
    """

    @abc.abstractmethod
    async def query_first(self, locator: str, root: Any = None) -> Optional[Any]:
        """Return the first element matching locator (inside root if given), or None."""

    @abc.abstractmethod
    async def query_all(self, locator: str, root: Any = None) -> List[Any]:
        """Return all elements matching locator in document order."""

    @abc.abstractmethod
    async def closest(self, element: Any, locator: str) -> Optional[Any]:
        """Return the nearest ancestor (or element itself) matching locator, or None."""

    @abc.abstractmethod
    async def get_text(self, element: Any) -> str:
        """Return the rendered text of element."""

    @abc.abstractmethod
    async def get_attribute(self, element: Any, name: str) -> Optional[str]:
        """Return an attribute value, or None when absent."""

    @abc.abstractmethod
    async def set_attribute(self, element: Any, name: str, value: str) -> None:
        """Set an attribute on element."""

    @abc.abstractmethod
    async def remove_attribute(self, element: Any, name: str) -> None:
        """Remove an attribute from element."""

    @abc.abstractmethod
    async def set_style(self, element: Any, name: str, value: Optional[str]) -> None:
        """Set an inline style property; None or '' clears it."""

    @abc.abstractmethod
    async def click(self, element: Any) -> None:
        """Click element."""

    @abc.abstractmethod
    async def scroll_to_end(self, container: Any) -> None:
        """Scroll container to its maximum extent."""

    @abc.abstractmethod
    async def suspend(self, duration_ms: int) -> None:
        """Yield to the host for duration_ms."""

    @abc.abstractmethod
    async def current_url(self) -> str:
        """URL of the page currently shown."""

    @abc.abstractmethod
    async def on_tree_changed(self, callback: TreeChangedCallback) -> None:
        """Subscribe callback to page tree changes and in-app navigations."""


class PlaywrightPageAccessor(PageAccessor):
    """
    PageAccessor backed by a Playwright async Page.
    """

    def __init__(self, page: Page, click_timeout_ms: int = 5000):
        self.page = page
        self.click_timeout_ms = click_timeout_ms
        self._tree_callbacks: List[TreeChangedCallback] = []
        self._observer_installed = False

    async def query_first(self, locator: str, root: Optional[ElementHandle] = None) -> Optional[ElementHandle]:
        scope = root if root is not None else self.page
        try:
            return await scope.query_selector(locator)
        except PlaywrightError as e:
            evt("page_query_failed", locator=locator, error=str(e)[:100])
            return None

    async def query_all(self, locator: str, root: Optional[ElementHandle] = None) -> List[ElementHandle]:
        scope = root if root is not None else self.page
        try:
            return await scope.query_selector_all(locator)
        except PlaywrightError as e:
            evt("page_query_failed", locator=locator, error=str(e)[:100])
            return []

    async def closest(self, element: ElementHandle, locator: str) -> Optional[ElementHandle]:
        try:
            handle = await element.evaluate_handle("(el, s) => el.closest(s)", locator)
        except PlaywrightError as e:
            evt("page_query_failed", locator=locator, error=str(e)[:100])
            return None
        return handle.as_element()

    async def get_text(self, element: ElementHandle) -> str:
        try:
            return await element.inner_text() or ""
        except PlaywrightError:
            # Detached between query and read
            return ""

    async def get_attribute(self, element: ElementHandle, name: str) -> Optional[str]:
        try:
            return await element.get_attribute(name)
        except PlaywrightError:
            return None

    async def set_attribute(self, element: ElementHandle, name: str, value: str) -> None:
        await element.evaluate("(el, [n, v]) => el.setAttribute(n, v)", [name, value])

    async def remove_attribute(self, element: ElementHandle, name: str) -> None:
        await element.evaluate("(el, n) => el.removeAttribute(n)", name)

    async def set_style(self, element: ElementHandle, name: str, value: Optional[str]) -> None:
        if value:
            await element.evaluate("(el, [n, v]) => el.style.setProperty(n, v)", [name, value])
        else:
            await element.evaluate("(el, n) => el.style.removeProperty(n)", name)

    async def click(self, element: ElementHandle) -> None:
        await element.click(timeout=self.click_timeout_ms)

    async def scroll_to_end(self, container: ElementHandle) -> None:
        await container.evaluate(
            "(el) => el.scrollTo({ top: el.scrollHeight, behavior: 'auto' })"
        )

    async def suspend(self, duration_ms: int) -> None:
        await self.page.wait_for_timeout(duration_ms)

    async def current_url(self) -> str:
        return self.page.url

    async def on_tree_changed(self, callback: TreeChangedCallback) -> None:
        self._tree_callbacks.append(callback)

        if self._observer_installed:
            return

        await self.page.expose_function(TREE_CHANGED_BINDING, self._dispatch_tree_changed)
        await self.page.add_init_script(_TREE_OBSERVER_SCRIPT)
        await self.page.evaluate(_TREE_OBSERVER_SCRIPT)
        self._observer_installed = True

        evt("page_tree_observer_installed", url=self.page.url)

    async def _dispatch_tree_changed(self) -> None:
        for callback in list(self._tree_callbacks):
            try:
                result = callback()
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                # A failing subscriber must not break the page bridge
                logger.warning(f"tree_changed callback failed: {type(e).__name__}")
                evt("page_tree_callback_failed", error=str(e)[:100])
