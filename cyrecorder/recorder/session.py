"""Durable recording session state and ordered code-block log."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional

from cyrecorder.contracts import CODE_BLOCKS_KEY, NOTIFICATION_SCHEMA_V1, REC_STATUS_KEY
from cyrecorder.recorder.errors import (
    IndexOutOfRangeError,
    InjectionError,
    InsufficientHistoryError,
    NotRecordingError,
    PersistenceError,
)
from cyrecorder.recorder.models import CodeBlock, RecordingStatus, SessionSnapshot
from cyrecorder.recorder.synthesizer import visit_statement
from cyrecorder.storage.base import KeyValueStore

logger = logging.getLogger("cyrecorder.recorder.session")

BADGE_TEXT = {
    RecordingStatus.ON: "rec",
    RecordingStatus.PAUSED: "pause",
    RecordingStatus.OFF: "",
}

Listener = Callable[[dict[str, Any]], Any]


def _load_blocks(raw: Any) -> list[CodeBlock]:
    if not isinstance(raw, list):
        return []
    blocks: list[CodeBlock] = []
    for row in raw:
        if not isinstance(row, dict):
            continue
        code = str(row.get("code", "")).strip()
        if code:
            blocks.append(CodeBlock(code=code, prompt=str(row.get("prompt", ""))))
    return blocks


class SessionState:
    """Single owner of recording status and the generated statement list.

    Every mutation is written to the store before the in-memory state changes,
    so a failed write leaves memory matching the last durable record. All
    mutations hold one asyncio lock.

    The active channel is any object with a ``name`` (page hostname), a
    ``sender_url`` and an async ``disconnect()``. The page agent is any object
    with an async ``inject(tab_id) -> bool``.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        page_agent: Any = None,
        persist_retries: int = 3,
        retry_delay_seconds: float = 0.05,
    ) -> None:
        self.store = store
        self.page_agent = page_agent
        self.persist_retries = persist_retries
        self.retry_delay_seconds = retry_delay_seconds
        self.status = RecordingStatus.OFF
        self.blocks: list[CodeBlock] = []
        self.active_channel: Any = None
        self.origin_host: Optional[str] = None
        self.last_visited_url = ""
        self.degraded = False
        self._lock = asyncio.Lock()
        self._initialized = False
        self._listeners: list[Listener] = []

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Reconstitute state from storage once per runtime start.

        A stored ``off`` (or missing) status forces an empty block list; any
        other status comes back as ``paused`` since no page channel exists yet.
        """
        async with self._lock:
            if self._initialized:
                logger.debug("Session already initialized; skipping")
                return
            try:
                raw_status = await self.store.get(REC_STATUS_KEY)
                raw_blocks = await self.store.get(CODE_BLOCKS_KEY, [])
            except Exception as exc:
                raise PersistenceError(f"failed to read session record: {exc}") from exc

            if raw_status is None or raw_status == RecordingStatus.OFF.value:
                status, blocks = RecordingStatus.OFF, []
            else:
                status, blocks = RecordingStatus.PAUSED, _load_blocks(raw_blocks)

            await self._commit(status, blocks)
            self._initialized = True
            logger.info("Session initialized as %s with %s code blocks", status.value, len(blocks))

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register an outbound notification observer; returns its remover."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    async def _emit(self, payload: dict[str, Any]) -> None:
        message = {"schema_version": NOTIFICATION_SCHEMA_V1, **payload}
        for listener in list(self._listeners):
            try:
                result = listener(message)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.warning("Notification listener failed: %s", exc)

    async def _persist(self, status: RecordingStatus, blocks: list[CodeBlock]) -> None:
        record = {
            REC_STATUS_KEY: status.value,
            CODE_BLOCKS_KEY: [block.model_dump() for block in blocks],
        }
        last_error: Exception | None = None
        for attempt in range(1, self.persist_retries + 1):
            try:
                await self.store.set_many(record)
                if self.degraded:
                    logger.info("Session store recovered; leaving degraded mode")
                self.degraded = False
                return
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "Session persist attempt %s/%s failed: %s",
                    attempt,
                    self.persist_retries,
                    exc,
                )
                if attempt < self.persist_retries:
                    await asyncio.sleep(self.retry_delay_seconds * attempt)

        self.degraded = True
        logger.error("Session marked degraded after %s failed writes", self.persist_retries)
        raise PersistenceError(
            f"failed to persist session after {self.persist_retries} attempts"
        ) from last_error

    async def _commit(self, status: RecordingStatus, blocks: list[CodeBlock]) -> None:
        await self._persist(status, blocks)
        self.status = status
        self.blocks = blocks

    async def _drop_channel(self) -> None:
        channel, self.active_channel = self.active_channel, None
        if channel is None:
            return
        try:
            await channel.disconnect()
        except Exception as exc:
            logger.warning("Failed to disconnect channel %s: %s", getattr(channel, "name", "?"), exc)

    async def _set_status(self, status: RecordingStatus) -> None:
        await self._commit(status, self.blocks)
        await self._emit({"action": "status", "status": status.value, "badge": BADGE_TEXT[status]})

    async def start(self, tab_id: Optional[int] = None) -> None:
        """Move Off/Paused to On after the page agent is injected.

        Raises:
            InjectionError when the page agent reports failure; status is unchanged.
        """
        async with self._lock:
            if self.status == RecordingStatus.ON:
                logger.info("Recording already on")
                return
            if self.page_agent is not None and tab_id is not None:
                injected = await self.page_agent.inject(tab_id)
                if not injected:
                    raise InjectionError(f"page agent injection failed for tab {tab_id}")
            await self._set_status(RecordingStatus.ON)
            logger.info("Recording started")

    async def resume(self, tab_id: Optional[int] = None) -> None:
        await self.start(tab_id)

    async def pause(self) -> None:
        """Move On to Paused and drop the page channel; repeated calls are no-ops.

        The channel and origin host are kept when the status write fails.
        """
        async with self._lock:
            was_on = self.status == RecordingStatus.ON
            if was_on:
                await self._set_status(RecordingStatus.PAUSED)
            await self._drop_channel()
            self.origin_host = None
            if not was_on:
                logger.info("Pause ignored while %s", self.status.value)
                return
            logger.info("Recording paused with %s code blocks", len(self.blocks))

    async def reset(self) -> None:
        """Return to Off from any status and clear every recorded statement."""
        async with self._lock:
            await self._commit(RecordingStatus.OFF, [])
            await self._drop_channel()
            self.origin_host = None
            self.last_visited_url = ""
            await self._emit({"action": "status", "status": "off", "badge": ""})
            logger.info("Recording reset")

    def _require_on(self) -> None:
        if self.status != RecordingStatus.ON:
            raise NotRecordingError(f"cannot append while recording is {self.status.value}")

    async def append(self, block: CodeBlock) -> None:
        """Append one statement; only valid while On."""
        async with self._lock:
            self._require_on()
            await self._commit(self.status, [*self.blocks, block])
            await self._emit({"action": "add", "code": block.code})

    async def pop_last_two(self) -> list[CodeBlock]:
        """Remove and return the two most recent statements."""
        async with self._lock:
            if len(self.blocks) < 2:
                raise InsufficientHistoryError(f"need 2 code blocks, have {len(self.blocks)}")
            removed = self.blocks[-2:]
            await self._commit(self.status, self.blocks[:-2])
            await self._emit({"action": "retract", "count": 2})
            return removed

    async def collapse_double_click(self, block: CodeBlock) -> None:
        """Replace the two click statements preceding a double click with `block`.

        Pop and append land in one durable write under one lock hold.
        """
        async with self._lock:
            self._require_on()
            if len(self.blocks) < 2:
                raise InsufficientHistoryError(f"need 2 code blocks, have {len(self.blocks)}")
            await self._commit(self.status, [*self.blocks[:-2], block])
            await self._emit({"action": "retract", "count": 2})
            await self._emit({"action": "add", "code": block.code})

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self.blocks):
            raise IndexOutOfRangeError(index, len(self.blocks))

    async def delete_at(self, index: int) -> CodeBlock:
        async with self._lock:
            self._check_index(index)
            removed = self.blocks[index]
            await self._commit(self.status, self.blocks[:index] + self.blocks[index + 1 :])
            await self._emit({"action": "delete", "index": index})
            return removed

    async def move_to(self, source: int, target: int) -> None:
        async with self._lock:
            self._check_index(source)
            self._check_index(target)
            blocks = list(self.blocks)
            dragged = blocks.pop(source)
            blocks.insert(target, dragged)
            await self._commit(self.status, blocks)
            await self._emit({"action": "move", "from": source, "to": target})

    async def attach_channel(self, channel: Any) -> bool:
        """Record a newly connected page channel; returns True when recording is on."""
        async with self._lock:
            self.active_channel = channel
            if self.status != RecordingStatus.ON:
                return False
            self.origin_host = channel.name
            logger.info("Page channel attached for host %s", channel.name)
            return True

    async def drop_channel(self) -> None:
        async with self._lock:
            await self._drop_channel()

    async def record_visit(self, url: str) -> bool:
        """Append a visit statement unless `url` was the last visited page."""
        async with self._lock:
            self._require_on()
            if not url or url == self.last_visited_url:
                return False
            block = CodeBlock(code=visit_statement(url), prompt="visit")
            await self._commit(self.status, [*self.blocks, block])
            self.last_visited_url = url
            await self._emit({"action": "add", "code": block.code})
            return True

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            status=self.status,
            blocks=list(self.blocks),
            origin_host=self.origin_host,
            last_visited_url=self.last_visited_url,
            degraded=self.degraded,
        )
