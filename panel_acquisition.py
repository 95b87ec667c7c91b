"""
Opens the transcript engagement panel.

Strategies are declarative records tried in a fixed priority order by one
generic driver: locate a trigger, activate it, settle, and check that
segments are now readable. Adding a layout means adding a Strategy (and,
for a new way of locating a trigger, one locate step).
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from extraction_config import ExtractionConfig, get_extraction_config
from label_matcher import matches_transcript_label
from log_events import evt
from logging_setup import get_logger
from page_accessor import PageAccessor
from segment_collector import SegmentCollector

logger = get_logger(__name__)

TRANSCRIPT_PANEL_ID = "engagement-panel-searchable-transcript"
TRANSCRIPT_PANEL_LOCATOR = (
    f'ytd-engagement-panel-section-list-renderer[target-id="{TRANSCRIPT_PANEL_ID}"]'
)
PANEL_CLOSE_LOCATORS = (
    "#visibility-button button",
    'button[aria-label*="Close" i]',
)

# Outer container that hosts the engagement panels beside the player
ENGAGEMENT_CONTAINER_LOCATOR = "ytd-engagement-panel"
ACTIVE_PANEL_ATTRIBUTE = "active-panel"

# Close controls live here; a label scan must not pick them
CLOSE_CONTROL_CONTAINERS = ("#visibility-button",)

VISIBILITY_ATTRIBUTE = "visibility"
VISIBILITY_EXPANDED = "ENGAGEMENT_PANEL_VISIBILITY_EXPANDED"
VISIBILITY_HIDDEN = "ENGAGEMENT_PANEL_VISIBILITY_HIDDEN"
FORCED_STYLES = (
    ("display", "block"),
    ("visibility", "visible"),
    ("transform", "translateX(0)"),
)

DIRECT_TOGGLE_LOCATORS = (
    f'button[aria-controls="{TRANSCRIPT_PANEL_ID}"]',
    f'[target-id="{TRANSCRIPT_PANEL_ID}"] button',
    "ytd-video-description-transcript-section-renderer button",
)
CLICKABLE_LOCATORS = (
    'ytd-watch-metadata button, ytd-watch-metadata [role="button"]',
    'ytd-engagement-panel-section-list-renderer button',
)
MORE_ACTIONS_LOCATORS = (
    "ytd-menu-renderer #button-shape button[aria-label*='More actions' i]",
    'ytd-watch-metadata button[aria-label*="More actions" i]',
    'ytd-watch-metadata #button-shape button[aria-haspopup="menu"]',
)
MENU_ITEM_LOCATORS = (
    'tp-yt-iron-dropdown[opened] tp-yt-paper-listbox [role="menuitem"]',
    'ytd-menu-popup-renderer [role="menuitem"]',
    "ytd-menu-service-item-renderer",
)


@dataclass(frozen=True)
class Strategy:
    """One way of revealing the transcript panel."""
    name: str
    kind: str
    locators: Tuple[str, ...]
    settle_ms: int
    action: str = "click"
    checks: int = 2
    menu_locators: Tuple[str, ...] = ()
    menu_open_settle_ms: int = 0
    exclude_within: Tuple[str, ...] = ()


@dataclass
class AcquisitionResult:
    success: bool
    strategy: Optional[str] = None
    attempted: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class PanelVisibility:
    """Panel state recorded before the extractor touches it."""
    existed: bool
    visibility: Optional[str] = None
    hidden: bool = False
    container_visibility: Optional[str] = None
    container_hidden: bool = False
    container_active_panel: Optional[str] = None

    @property
    def was_expanded(self) -> bool:
        return self.existed and not self.hidden and self.visibility == VISIBILITY_EXPANDED


def default_strategies(config: Optional[ExtractionConfig] = None) -> Tuple[Strategy, ...]:
    """Canonical order: cheapest and most direct first, broadest last."""
    config = config or get_extraction_config()
    return (
        Strategy(
            name="direct_toggle",
            kind="identity",
            locators=DIRECT_TOGGLE_LOCATORS,
            settle_ms=config.toggle_settle_ms,
        ),
        Strategy(
            name="direct_label_click",
            kind="label",
            locators=CLICKABLE_LOCATORS,
            settle_ms=config.label_settle_ms,
            exclude_within=CLOSE_CONTROL_CONTAINERS,
        ),
        Strategy(
            name="overflow_menu",
            kind="menu",
            locators=MORE_ACTIONS_LOCATORS,
            settle_ms=config.menu_settle_ms,
            menu_locators=MENU_ITEM_LOCATORS,
            menu_open_settle_ms=config.menu_open_settle_ms,
        ),
        Strategy(
            name="forced_visibility",
            kind="identity",
            locators=(TRANSCRIPT_PANEL_LOCATOR,),
            settle_ms=config.forced_settle_ms,
            action="force_visible",
        ),
    )


class PanelAcquisition:
    """
    Tries each Strategy until segments become readable.

    A failing strategy never aborts acquisition; it is logged and the next
    one runs.
    """

    def __init__(self, accessor: PageAccessor, collector: SegmentCollector,
                 strategies: Optional[Sequence[Strategy]] = None,
                 config: Optional[ExtractionConfig] = None):
        self.config = config or get_extraction_config()
        self.accessor = accessor
        self.collector = collector
        self.strategies = tuple(strategies) if strategies is not None else default_strategies(self.config)

        self._locate_steps: Dict[str, Callable[[Strategy], Any]] = {
            "identity": self._locate_by_identity,
            "label": self._locate_by_label,
            "menu": self._locate_in_menu,
        }
        self._actions: Dict[str, Callable[[Any], Any]] = {
            "click": self.accessor.click,
            "force_visible": self.force_visible,
        }

    async def acquire(self, should_continue: Optional[Callable[[], bool]] = None) -> AcquisitionResult:
        """
        Try strategies in order, stopping at the first success.

        Args:
            should_continue: Checked before each strategy; False ends acquisition

        Returns:
            AcquisitionResult naming the successful strategy, if any
        """
        result = AcquisitionResult(success=False)

        for strategy in self.strategies:
            if should_continue is not None and not should_continue():
                evt("panel_acquisition_stopped", attempted=len(result.attempted))
                break

            result.attempted.append(strategy.name)
            evt("panel_strategy_attempt", strategy=strategy.name)

            try:
                trigger = await self._locate_steps[strategy.kind](strategy)
                if trigger is None:
                    evt("panel_strategy_no_trigger", strategy=strategy.name)
                    continue

                await self._actions[strategy.action](trigger)

                if await self._check(strategy):
                    logger.info(f"transcript panel opened via {strategy.name}")
                    evt("panel_strategy_succeeded", strategy=strategy.name)
                    result.success = True
                    result.strategy = strategy.name
                    return result

                evt("panel_strategy_no_segments", strategy=strategy.name)

            except Exception as e:
                logger.warning(f"panel strategy {strategy.name} failed: {type(e).__name__}")
                evt("panel_strategy_failed",
                    strategy=strategy.name,
                    error_type=type(e).__name__,
                    error=str(e)[:100])

        evt("panel_acquisition_exhausted", attempted=len(result.attempted))
        return result

    async def _check(self, strategy: Strategy) -> bool:
        for _ in range(max(1, strategy.checks)):
            await self.accessor.suspend(strategy.settle_ms)
            if await self.collector.collect():
                return True
        return False

    async def _locate_by_identity(self, strategy: Strategy) -> Optional[Any]:
        for locator in strategy.locators:
            element = await self.accessor.query_first(locator)
            if element is not None:
                return element
        return None

    async def _inside_any(self, element: Any, containers: Sequence[str]) -> bool:
        for container in containers:
            if await self.accessor.closest(element, container) is not None:
                return True
        return False

    async def _first_labelled(self, elements: Sequence[Any],
                              exclude_within: Sequence[str] = ()) -> Optional[Any]:
        for element in elements:
            if exclude_within and await self._inside_any(element, exclude_within):
                continue
            text = await self.accessor.get_text(element)
            label = await self.accessor.get_attribute(element, "aria-label")
            if matches_transcript_label(text, label):
                return element
        return None

    async def _locate_by_label(self, strategy: Strategy) -> Optional[Any]:
        for locator in strategy.locators:
            match = await self._first_labelled(await self.accessor.query_all(locator),
                                               strategy.exclude_within)
            if match is not None:
                return match
        return None

    async def _locate_in_menu(self, strategy: Strategy) -> Optional[Any]:
        for locator in strategy.locators:
            opener = await self.accessor.query_first(locator)
            if opener is None:
                continue

            await self.accessor.click(opener)
            # Menu transitions are themselves async
            await self.accessor.suspend(strategy.menu_open_settle_ms)
            evt("panel_menu_opened", locator=locator)

            for item_locator in strategy.menu_locators:
                match = await self._first_labelled(await self.accessor.query_all(item_locator))
                if match is not None:
                    return match

            evt("panel_menu_no_transcript_item", locator=locator)
        return None

    async def force_visible(self, panel: Any) -> None:
        """Strip hidden/collapsed markers and force layout visibility, container included."""
        await self.accessor.remove_attribute(panel, "hidden")
        await self.accessor.remove_attribute(panel, "collapsed")
        await self.accessor.set_attribute(panel, VISIBILITY_ATTRIBUTE, VISIBILITY_EXPANDED)
        for name, value in FORCED_STYLES:
            await self.accessor.set_style(panel, name, value)

        container = await self.accessor.closest(panel, ENGAGEMENT_CONTAINER_LOCATOR)
        if container is not None:
            await self.accessor.remove_attribute(container, "hidden")
            await self.accessor.set_style(container, "display", "block")
            await self.accessor.set_attribute(container, ACTIVE_PANEL_ATTRIBUTE, TRANSCRIPT_PANEL_ID)
            await self.accessor.set_attribute(container, VISIBILITY_ATTRIBUTE, VISIBILITY_EXPANDED)

    async def snapshot_visibility(self) -> PanelVisibility:
        """Record panel and container visibility before any strategy mutates them."""
        panel = await self.accessor.query_first(TRANSCRIPT_PANEL_LOCATOR)
        if panel is None:
            return PanelVisibility(existed=False)

        snapshot = dict(
            existed=True,
            visibility=await self.accessor.get_attribute(panel, VISIBILITY_ATTRIBUTE),
            hidden=await self.accessor.get_attribute(panel, "hidden") is not None,
        )
        container = await self.accessor.closest(panel, ENGAGEMENT_CONTAINER_LOCATOR)
        if container is not None:
            snapshot.update(
                container_visibility=await self.accessor.get_attribute(container, VISIBILITY_ATTRIBUTE),
                container_hidden=await self.accessor.get_attribute(container, "hidden") is not None,
                container_active_panel=await self.accessor.get_attribute(container, ACTIVE_PANEL_ATTRIBUTE),
            )
        return PanelVisibility(**snapshot)

    async def restore_visibility(self, snapshot: PanelVisibility) -> bool:
        """
        Collapse the panel again unless it was already expanded.

        Returns:
            True when the panel was collapsed by this call
        """
        if snapshot.was_expanded:
            return False

        panel = await self.accessor.query_first(TRANSCRIPT_PANEL_LOCATOR)
        if panel is None:
            return False

        for locator in PANEL_CLOSE_LOCATORS:
            close_button = await self.accessor.query_first(locator, root=panel)
            if close_button is not None:
                await self.accessor.click(close_button)
                break

        await self.accessor.set_attribute(
            panel, VISIBILITY_ATTRIBUTE, snapshot.visibility or VISIBILITY_HIDDEN
        )
        for name, _ in FORCED_STYLES:
            await self.accessor.set_style(panel, name, None)
        if snapshot.hidden:
            await self.accessor.set_attribute(panel, "hidden", "")

        container = await self.accessor.closest(panel, ENGAGEMENT_CONTAINER_LOCATOR)
        if container is not None:
            await self._restore_container(container, snapshot)

        await self.accessor.suspend(self.config.close_settle_ms)
        evt("panel_visibility_restored", visibility=snapshot.visibility or VISIBILITY_HIDDEN)
        return True

    async def _restore_container(self, container: Any, snapshot: PanelVisibility) -> None:
        await self.accessor.set_attribute(
            container, VISIBILITY_ATTRIBUTE, snapshot.container_visibility or VISIBILITY_HIDDEN
        )
        # Another panel may have been active in the container before
        if snapshot.container_active_panel:
            await self.accessor.set_attribute(container, ACTIVE_PANEL_ATTRIBUTE,
                                              snapshot.container_active_panel)
        else:
            await self.accessor.remove_attribute(container, ACTIVE_PANEL_ATTRIBUTE)
        await self.accessor.set_style(container, "display", None)
        if snapshot.container_hidden:
            await self.accessor.set_attribute(container, "hidden", "")
