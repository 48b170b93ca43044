"""Serialized dispatcher for recorder commands, events and navigation signals."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from cyrecorder.failures import build_failure, classify_failure
from cyrecorder.recorder.models import (
    ActionKind,
    CodeBlock,
    CommandAction,
    CommandMessage,
    EventMessage,
    ParsedEvent,
    RecordingStatus,
)
from cyrecorder.recorder.navigation import NavigationMessage, NavigationMonitor
from cyrecorder.recorder.session import SessionState
from cyrecorder.recorder.synthesizer import synthesize_statement

logger = logging.getLogger("cyrecorder.recorder.dispatcher")


@dataclass
class ChannelAttached:
    channel: Any


@dataclass
class DeleteBlock:
    index: int


@dataclass
class MoveBlock:
    source: int
    target: int


Message = Union[CommandMessage, EventMessage, NavigationMessage, ChannelAttached, DeleteBlock, MoveBlock]


@dataclass
class CommandResult:
    ok: bool
    action: str
    detail: str = ""
    failure: Optional[Dict[str, str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "action": self.action,
            "detail": self.detail,
            "failure": self.failure,
        }


class CommandDispatcher:
    """
    Single entry point that applies every inbound trigger in arrival order.

    Messages submitted with `submit()` are queued and handled one at a time by
    the worker started with `start()`. `dispatch()` handles a message inline
    and is what the worker calls.
    """

    def __init__(
        self,
        session: SessionState,
        monitor: NavigationMonitor,
        *,
        tab_id: Optional[int] = None,
    ):
        self.session = session
        self.monitor = monitor
        self.tab_id = tab_id
        self._queue: asyncio.Queue = asyncio.Queue()
        self._worker: asyncio.Task | None = None
        monitor.bind(self.submit)

    def submit(self, message: Message) -> asyncio.Future:
        """Queue a message; the returned future resolves to its CommandResult."""
        future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait((message, future))
        return future

    async def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run())
            logger.info("Dispatcher worker started")

    async def stop(self) -> None:
        if self._worker is None:
            return
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("Dispatcher worker stopped")

    async def drain(self) -> None:
        """Wait until every queued message has been handled."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            message, future = await self._queue.get()
            try:
                result = await self.dispatch(message)
                if not future.done():
                    future.set_result(result)
            finally:
                self._queue.task_done()

    async def dispatch(self, message: Message) -> CommandResult:
        """Handle one message; failures are logged and returned, never raised."""
        action = _message_action(message)
        try:
            if isinstance(message, CommandMessage):
                return await self._handle_command(message)
            if isinstance(message, EventMessage):
                return await self._handle_event(message.event)
            if isinstance(message, NavigationMessage):
                await self.monitor.handle(message)
                return CommandResult(ok=True, action=action)
            if isinstance(message, ChannelAttached):
                await self.monitor.attach_channel(message.channel)
                return CommandResult(ok=True, action=action)
            if isinstance(message, DeleteBlock):
                await self.session.delete_at(message.index)
                return CommandResult(ok=True, action=action, detail=str(len(self.session.blocks)))
            if isinstance(message, MoveBlock):
                await self.session.move_to(message.source, message.target)
                return CommandResult(ok=True, action=action)
        except Exception as exc:
            logger.error("Recorder %s failed: %s", action, exc)
            return CommandResult(ok=False, action=action, failure=classify_failure(error=exc, action=action))

        logger.error("Unsupported recorder message: %r", message)
        return CommandResult(
            ok=False,
            action=action,
            failure=build_failure(
                error_class="invalid_message",
                error_code="MSG_UNSUPPORTED",
                action=action,
                message=f"unsupported message type {type(message).__name__}",
            ),
        )

    async def _handle_command(self, message: CommandMessage) -> CommandResult:
        logger.info("Received recorder command: %s", message.action)
        tab_id = message.tab_id if message.tab_id is not None else self.tab_id

        if message.action in (CommandAction.START.value, CommandAction.RESUME.value):
            await self.session.start(tab_id)
        elif message.action == CommandAction.PAUSE.value:
            await self.monitor.pause()
        elif message.action == CommandAction.RESET.value:
            await self.monitor.reset()
        else:
            logger.error("Uncaptured recorder command: %s", message.action)
            return CommandResult(ok=True, action=message.action, detail="ignored")

        if message.tab_id is not None:
            self.tab_id = message.tab_id
        return CommandResult(ok=True, action=message.action, detail=self.session.status.value)

    async def _handle_event(self, event: ParsedEvent) -> CommandResult:
        if self.session.status != RecordingStatus.ON:
            logger.debug("Dropping %s event while recording is %s", event.action, self.session.status.value)
            return CommandResult(ok=True, action=event.action, detail="dropped")

        code = synthesize_statement(event)
        if code is None:
            return CommandResult(ok=True, action=event.action, detail="suppressed")

        if event.action == ActionKind.DBLCLICK.value:
            block = CodeBlock(code=code, prompt="dblclick")
            if len(self.session.blocks) >= 2:
                await self.session.collapse_double_click(block)
            else:
                logger.warning("Double click without two preceding clicks; appending as-is")
                await self.session.append(block)
        else:
            await self.session.append(CodeBlock(code=code, prompt=f"event:{event.action}"))
        return CommandResult(ok=True, action=event.action, detail="appended")


def _message_action(message: Any) -> str:
    if isinstance(message, CommandMessage):
        return message.action
    if isinstance(message, EventMessage):
        return message.event.action
    if isinstance(message, NavigationMessage):
        return message.signal.value
    if isinstance(message, ChannelAttached):
        return "connect"
    if isinstance(message, DeleteBlock):
        return "delete"
    if isinstance(message, MoveBlock):
        return "move"
    return "unknown"
