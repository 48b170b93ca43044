"""Navigation lifecycle monitor layered over the recording session."""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, Sequence
from urllib.parse import urlsplit

from cyrecorder.config import DEFAULT_FORBIDDEN_URL_PREFIXES
from cyrecorder.recorder.models import CodeBlock, RecordingStatus
from cyrecorder.recorder.session import SessionState
from cyrecorder.recorder.synthesizer import url_statement

logger = logging.getLogger("cyrecorder.recorder.navigation")

MAIN_FRAME_ID = 0
FORWARD_BACK = "forward_back"
FROM_ADDRESS_BAR = "from_address_bar"


class NavigationSignal(str, Enum):
    BEFORE_NAVIGATE = "before_navigate"
    COMMITTED = "committed"
    DOM_READY = "dom_ready"


@dataclass
class NavigationDetails:
    url: str
    tab_id: int = 0
    frame_id: int = MAIN_FRAME_ID
    transition_qualifiers: list[str] = field(default_factory=list)

    @property
    def is_main_frame(self) -> bool:
        return self.frame_id == MAIN_FRAME_ID


@dataclass
class NavigationMessage:
    signal: NavigationSignal
    details: NavigationDetails
    generation: int


def is_forbidden_url(url: str, prefixes: Sequence[str] = DEFAULT_FORBIDDEN_URL_PREFIXES) -> bool:
    """Return True for browser-internal pages the page agent must never enter."""
    lowered = (url or "").strip().lower()
    if not lowered:
        return True
    return any(lowered.startswith(prefix.lower()) for prefix in prefixes)


class NavigationMonitor:
    """Turn navigation signals into pauses, URL assertions and re-injection.

    The navigation source is any object with
    ``subscribe(signal, handler) -> unsubscribe``. Subscriptions are held only
    while recording is on; each set carries a generation number so callbacks
    that arrive after release are ignored.
    """

    def __init__(
        self,
        session: SessionState,
        source: Any,
        *,
        page_agent: Any = None,
        forbidden_url_prefixes: Sequence[str] = DEFAULT_FORBIDDEN_URL_PREFIXES,
    ) -> None:
        self.session = session
        self.source = source
        self.page_agent = page_agent
        self.forbidden_url_prefixes = list(forbidden_url_prefixes)
        self._submit: Optional[Callable[[NavigationMessage], Any]] = None
        self._unsubscribers: list[Callable[[], None]] = []
        self._generation = 0

    def bind(self, submit: Callable[[NavigationMessage], Any]) -> None:
        """Route navigation callbacks through the dispatcher queue."""
        self._submit = submit

    @property
    def subscribed(self) -> bool:
        return bool(self._unsubscribers)

    @property
    def generation(self) -> int:
        return self._generation

    def _subscribe(self) -> None:
        if self._unsubscribers or self.source is None:
            return
        self._generation += 1
        for signal in NavigationSignal:
            handler = functools.partial(self._deliver, self._generation, signal)
            self._unsubscribers.append(self.source.subscribe(signal, handler))
        logger.info("Navigation listeners registered (generation %s)", self._generation)

    def release(self) -> None:
        """Unregister every navigation listener."""
        if not self._unsubscribers:
            return
        unsubscribers, self._unsubscribers = self._unsubscribers, []
        for unsubscribe in unsubscribers:
            unsubscribe()
        logger.info("Navigation listeners released (generation %s)", self._generation)

    def _deliver(self, generation: int, signal: NavigationSignal, details: NavigationDetails) -> None:
        if generation != self._generation or not self._unsubscribers:
            logger.debug("Dropping stale %s signal for %s", signal.value, details.url)
            return
        if self._submit is None:
            raise RuntimeError("NavigationMonitor is not bound to a dispatcher")
        self._submit(NavigationMessage(signal=signal, details=details, generation=generation))

    async def handle(self, message: NavigationMessage) -> None:
        """Apply one queued navigation signal."""
        if message.generation != self._generation or not self._unsubscribers:
            logger.debug("Ignoring %s from released generation %s", message.signal.value, message.generation)
            return
        if message.signal == NavigationSignal.BEFORE_NAVIGATE:
            await self.on_before_navigate(message.details)
        elif message.signal == NavigationSignal.COMMITTED:
            await self.on_committed(message.details)
        elif message.signal == NavigationSignal.DOM_READY:
            await self.on_dom_ready(message.details)

    async def attach_channel(self, channel: Any) -> None:
        """Adopt a freshly connected page channel and record its visit."""
        recording = await self.session.attach_channel(channel)
        if not recording:
            return
        self._subscribe()
        sender_url = getattr(channel, "sender_url", None)
        if sender_url:
            await self.session.record_visit(sender_url)

    async def on_before_navigate(self, details: NavigationDetails) -> None:
        if not details.is_main_frame:
            return
        await self.session.drop_channel()

    async def on_committed(self, details: NavigationDetails) -> None:
        if self.session.status != RecordingStatus.ON:
            return
        origin_host = self.session.origin_host or ""
        is_different_host = origin_host not in details.url
        is_from_back_forward = FORWARD_BACK in details.transition_qualifiers
        is_from_address_bar = FROM_ADDRESS_BAR in details.transition_qualifiers

        if details.is_main_frame and (is_different_host or is_from_back_forward or is_from_address_bar):
            logger.info(
                "Disqualifying navigation to %s (host change=%s, back/forward=%s, address bar=%s)",
                details.url,
                is_different_host,
                is_from_back_forward,
                is_from_address_bar,
            )
            await self.pause()
            return

        if origin_host in details.url:
            await self.session.append(CodeBlock(code=url_statement(details.url), prompt="url"))

    async def on_dom_ready(self, details: NavigationDetails) -> None:
        if not details.is_main_frame or is_forbidden_url(details.url, self.forbidden_url_prefixes):
            return
        if self.session.status != RecordingStatus.ON or self.page_agent is None:
            return
        if (urlsplit(details.url).hostname or "") != (self.session.origin_host or ""):
            return
        if not await self.page_agent.inject(details.tab_id):
            logger.error("Page agent injection failed for tab %s at %s", details.tab_id, details.url)

    async def pause(self) -> None:
        """Pause the session, then release listeners; a failed write keeps both."""
        await self.session.pause()
        self.release()

    async def reset(self) -> None:
        await self.session.reset()
        self.release()
