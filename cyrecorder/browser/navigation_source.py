"""Translate Playwright page lifecycle events into navigation signals."""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Set

from playwright.async_api import CDPSession, Error as PlaywrightError, Frame, Page, Request

from cyrecorder.browser.page_agent import TabRegistry
from cyrecorder.recorder.navigation import (
    FORWARD_BACK,
    FROM_ADDRESS_BAR,
    MAIN_FRAME_ID,
    NavigationDetails,
    NavigationSignal,
)

logger = logging.getLogger("cyrecorder.browser.navigation_source")

Handler = Callable[[NavigationDetails], Any]


def classify_history(
    history: Dict[str, Any],
    seen_entry_ids: Set[int],
    previous_entry_id: Optional[int],
) -> List[str]:
    """Derive transition qualifiers from a CDP ``Page.getNavigationHistory`` result."""
    entries = history.get("entries") or []
    index = history.get("currentIndex", -1)
    if not isinstance(index, int) or not 0 <= index < len(entries):
        return []
    entry = entries[index]
    entry_id = entry.get("id")
    if entry_id == previous_entry_id:
        return []
    if entry_id in seen_entry_ids:
        return [FORWARD_BACK]
    if entry.get("transitionType") == "typed":
        return [FROM_ADDRESS_BAR]
    return []


class PlaywrightNavigationSource:
    """Subscribe/unsubscribe surface over the pages of one browser context.

    Signals for a tab are emitted in the order Playwright reported them, even
    when the committed signal waits on a CDP history lookup.
    """

    def __init__(self, tabs: TabRegistry) -> None:
        self.tabs = tabs
        self._handlers: Dict[NavigationSignal, List[Handler]] = {signal: [] for signal in NavigationSignal}
        self._locks: Dict[int, asyncio.Lock] = {}
        self._cdp: Dict[int, CDPSession] = {}
        self._seen_entries: Dict[int, Set[int]] = {}
        self._current_entry: Dict[int, Optional[int]] = {}
        self._tasks: Set[asyncio.Task] = set()

    def subscribe(self, signal: NavigationSignal, handler: Handler) -> Callable[[], None]:
        self._handlers[signal].append(handler)

        def _unsubscribe() -> None:
            if handler in self._handlers[signal]:
                self._handlers[signal].remove(handler)

        return _unsubscribe

    def _emit(self, signal: NavigationSignal, details: NavigationDetails) -> None:
        for handler in list(self._handlers[signal]):
            handler(details)

    def _schedule(self, tab_id: int, coro) -> None:
        task = asyncio.get_running_loop().create_task(self._ordered(tab_id, coro))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _ordered(self, tab_id: int, coro) -> None:
        lock = self._locks.setdefault(tab_id, asyncio.Lock())
        async with lock:
            await coro

    async def attach(self, page: Page) -> int:
        """Start observing a page and return its tab id."""
        tab_id = self.tabs.add(page)
        try:
            self._cdp[tab_id] = await page.context.new_cdp_session(page)
            history = await self._cdp[tab_id].send("Page.getNavigationHistory")
            entries = history.get("entries") or []
            self._seen_entries[tab_id] = {entry["id"] for entry in entries if "id" in entry}
            index = history.get("currentIndex", -1)
            self._current_entry[tab_id] = entries[index]["id"] if 0 <= index < len(entries) else None
        except PlaywrightError as exc:
            logger.warning("CDP history unavailable for tab %s; qualifiers disabled: %s", tab_id, exc)
            self._seen_entries[tab_id] = set()
            self._current_entry[tab_id] = None

        page.on("request", lambda request: self._on_request(tab_id, page, request))
        page.on("framenavigated", lambda frame: self._on_frame_navigated(tab_id, page, frame))
        page.on("domcontentloaded", lambda loaded: self._on_dom_content_loaded(tab_id, loaded))
        page.on("close", lambda closed: self.tabs.remove(closed))
        logger.info("Observing navigation for tab %s", tab_id)
        return tab_id

    def _frame_id(self, page: Page, frame: Frame) -> int:
        return MAIN_FRAME_ID if frame == page.main_frame else id(frame)

    def _on_request(self, tab_id: int, page: Page, request: Request) -> None:
        if not request.is_navigation_request():
            return
        details = NavigationDetails(url=request.url, tab_id=tab_id, frame_id=self._frame_id(page, request.frame))
        self._schedule(tab_id, self._emit_async(NavigationSignal.BEFORE_NAVIGATE, details))

    def _on_frame_navigated(self, tab_id: int, page: Page, frame: Frame) -> None:
        frame_id = self._frame_id(page, frame)
        self._schedule(tab_id, self._emit_committed(tab_id, frame_id, frame.url))

    def _on_dom_content_loaded(self, tab_id: int, page: Page) -> None:
        details = NavigationDetails(url=page.url, tab_id=tab_id, frame_id=MAIN_FRAME_ID)
        self._schedule(tab_id, self._emit_async(NavigationSignal.DOM_READY, details))

    async def _emit_async(self, signal: NavigationSignal, details: NavigationDetails) -> None:
        self._emit(signal, details)

    async def _emit_committed(self, tab_id: int, frame_id: int, url: str) -> None:
        qualifiers: List[str] = []
        if frame_id == MAIN_FRAME_ID:
            qualifiers = await self._main_frame_qualifiers(tab_id)
        details = NavigationDetails(url=url, tab_id=tab_id, frame_id=frame_id, transition_qualifiers=qualifiers)
        self._emit(NavigationSignal.COMMITTED, details)

    async def _main_frame_qualifiers(self, tab_id: int) -> List[str]:
        cdp = self._cdp.get(tab_id)
        if cdp is None:
            return []
        try:
            history = await cdp.send("Page.getNavigationHistory")
        except PlaywrightError as exc:
            logger.warning("Navigation history lookup failed for tab %s: %s", tab_id, exc)
            return []
        seen = self._seen_entries.setdefault(tab_id, set())
        qualifiers = classify_history(history, seen, self._current_entry.get(tab_id))
        entries = history.get("entries") or []
        index = history.get("currentIndex", -1)
        if isinstance(index, int) and 0 <= index < len(entries):
            self._current_entry[tab_id] = entries[index].get("id")
        seen.update(entry["id"] for entry in entries if "id" in entry)
        return qualifiers
