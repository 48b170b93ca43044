"""Playwright-backed page agent injection and page channels."""

import logging
from pathlib import Path
from typing import Dict, Optional, Sequence

from playwright.async_api import Error as PlaywrightError, Page

from cyrecorder.config import DEFAULT_FORBIDDEN_URL_PREFIXES
from cyrecorder.recorder.navigation import is_forbidden_url

logger = logging.getLogger("cyrecorder.browser.page_agent")

INJECTOR_JS = Path(__file__).parent / "injector.js"
DISCONNECT_JS = "() => { if (window.__CYREC_DISCONNECT__) { window.__CYREC_DISCONNECT__(); } }"


class TabRegistry:
    """Stable integer ids for the pages of one browser context."""

    def __init__(self) -> None:
        self._pages: Dict[int, Page] = {}
        self._next_id = 0

    def add(self, page: Page) -> int:
        for tab_id, known in self._pages.items():
            if known is page:
                return tab_id
        tab_id = self._next_id
        self._pages[tab_id] = page
        self._next_id += 1
        return tab_id

    def get(self, tab_id: int) -> Optional[Page]:
        return self._pages.get(tab_id)

    def id_of(self, page: Page) -> Optional[int]:
        for tab_id, known in self._pages.items():
            if known is page:
                return tab_id
        return None

    def remove(self, page: Page) -> None:
        tab_id = self.id_of(page)
        if tab_id is not None:
            del self._pages[tab_id]


class PageChannel:
    """Live connection to the page agent running in one tab."""

    def __init__(self, page: Page, name: str, sender_url: str):
        self.page = page
        self.name = name
        self.sender_url = sender_url

    async def disconnect(self) -> None:
        """Remove the agent's DOM listeners from the page, if it is still alive."""
        if self.page.is_closed():
            return
        try:
            await self.page.evaluate(DISCONNECT_JS)
        except PlaywrightError as exc:
            # Execution context is usually already gone mid-navigation.
            logger.debug("Page channel %s disconnect skipped: %s", self.name, exc)


class PlaywrightPageAgent:
    """Inject the event capture agent into a tab's main frame."""

    def __init__(
        self,
        tabs: TabRegistry,
        *,
        injector_path: Path = INJECTOR_JS,
        forbidden_url_prefixes: Sequence[str] = DEFAULT_FORBIDDEN_URL_PREFIXES,
    ) -> None:
        self.tabs = tabs
        self.injector_code = injector_path.read_text(encoding="utf-8")
        self.forbidden_url_prefixes = list(forbidden_url_prefixes)

    async def inject(self, tab_id: int) -> bool:
        page = self.tabs.get(tab_id)
        if page is None or page.is_closed():
            logger.error("Cannot inject page agent: tab %s is not open", tab_id)
            return False
        if is_forbidden_url(page.url, self.forbidden_url_prefixes):
            logger.warning("Refusing to inject page agent into forbidden URL %s", page.url)
            return False
        try:
            await page.evaluate(self.injector_code)
        except PlaywrightError as exc:
            logger.error("Page agent injection failed for tab %s: %s", tab_id, exc)
            return False
        logger.info("Page agent injected into tab %s (%s)", tab_id, page.url)
        return True
