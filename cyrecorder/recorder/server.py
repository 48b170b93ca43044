"""Local HTTP receiver for recorder events, commands and notifications."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from aiohttp import web
from pydantic import ValidationError

from cyrecorder.recorder.dispatcher import (
    ChannelAttached,
    CommandDispatcher,
    CommandResult,
    DeleteBlock,
    MoveBlock,
)
from cyrecorder.recorder.models import (
    CommandMessage,
    ConnectRequest,
    EventMessage,
    MoveRequest,
    NavigationRequest,
)
from cyrecorder.recorder.navigation import NavigationDetails, NavigationSignal
from cyrecorder.recorder.remote import PushNavigationSource, RemoteChannel
from cyrecorder.recorder.synthesizer import render_script

logger = logging.getLogger("cyrecorder.recorder.server")

STREAM_QUEUE_SIZE = 256


class RecordingServer:
    """Aiohttp server that feeds the dispatcher and streams session notifications."""

    def __init__(
        self,
        dispatcher: CommandDispatcher,
        host: str = "127.0.0.1",
        port: int = 7331,
        navigation_source: PushNavigationSource | None = None,
    ):
        self.dispatcher = dispatcher
        self.navigation_source = navigation_source
        self.session = dispatcher.session
        self.host = host
        self.port = port
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None
        self._streams: set[asyncio.Queue] = set()
        self._remove_listener = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/event", self._handle_event)
        app.router.add_post("/command", self._handle_command)
        app.router.add_post("/connect", self._handle_connect)
        app.router.add_post("/navigation", self._handle_navigation)
        app.router.add_get("/session", self._handle_session)
        app.router.add_delete("/blocks/{index}", self._handle_delete)
        app.router.add_post("/blocks/move", self._handle_move)
        app.router.add_get("/script", self._handle_script)
        app.router.add_get("/stream", self._handle_stream)
        return app

    async def _read_json(self, request: web.Request) -> dict[str, Any] | None:
        try:
            body = await request.json()
        except Exception:
            return None
        if not isinstance(body, dict):
            return None
        return body

    async def _handle_event(self, request: web.Request) -> web.Response:
        """Accept a normalized event message and queue it."""
        body = await self._read_json(request)
        if body is None:
            return web.json_response({"status": "bad_request"}, status=400)
        try:
            message = EventMessage.model_validate(body)
        except ValidationError as exc:
            return web.json_response({"status": "bad_request", "errors": exc.errors(include_url=False, include_context=False)}, status=400)
        result = await self.dispatcher.submit(message)
        return web.json_response(result.to_dict())

    async def _handle_command(self, request: web.Request) -> web.Response:
        body = await self._read_json(request)
        if body is None:
            return web.json_response({"status": "bad_request"}, status=400)
        try:
            message = CommandMessage.model_validate(body)
        except ValidationError as exc:
            return web.json_response({"status": "bad_request", "errors": exc.errors(include_url=False, include_context=False)}, status=400)
        result = await self.dispatcher.submit(message)
        return web.json_response(result.to_dict())

    async def _handle_connect(self, request: web.Request) -> web.Response:
        """Attach a page channel announced by an HTTP capture agent."""
        body = await self._read_json(request)
        if body is None:
            return web.json_response({"status": "bad_request"}, status=400)
        try:
            connect = ConnectRequest.model_validate(body)
        except ValidationError as exc:
            return web.json_response({"status": "bad_request", "errors": exc.errors(include_url=False, include_context=False)}, status=400)
        channel = RemoteChannel(connect.name, connect.sender_url)
        result = await self.dispatcher.submit(ChannelAttached(channel=channel))
        return web.json_response(result.to_dict())

    async def _handle_navigation(self, request: web.Request) -> web.Response:
        """Publish a navigation lifecycle signal to the monitor."""
        if self.navigation_source is None:
            return web.json_response({"status": "unsupported"}, status=409)
        body = await self._read_json(request)
        if body is None:
            return web.json_response({"status": "bad_request"}, status=400)
        try:
            navigation = NavigationRequest.model_validate(body)
            signal = NavigationSignal(navigation.signal)
        except (ValidationError, ValueError):
            return web.json_response({"status": "bad_request"}, status=400)
        details = NavigationDetails(
            url=navigation.url,
            tab_id=navigation.tab_id,
            frame_id=navigation.frame_id,
            transition_qualifiers=list(navigation.transition_qualifiers),
        )
        delivered = self.navigation_source.publish(signal, details)
        return web.json_response({"status": "ok", "delivered": delivered})

    async def _handle_session(self, request: web.Request) -> web.Response:
        return web.json_response(self.session.snapshot().model_dump(mode="json"))

    async def _handle_delete(self, request: web.Request) -> web.Response:
        try:
            index = int(request.match_info["index"])
        except ValueError:
            return web.json_response({"status": "bad_request"}, status=400)
        result = await self.dispatcher.submit(DeleteBlock(index=index))
        return self._edit_response(result)

    async def _handle_move(self, request: web.Request) -> web.Response:
        body = await self._read_json(request)
        if body is None:
            return web.json_response({"status": "bad_request"}, status=400)
        try:
            move = MoveRequest.model_validate(body)
        except ValidationError as exc:
            return web.json_response({"status": "bad_request", "errors": exc.errors(include_url=False, include_context=False)}, status=400)
        result = await self.dispatcher.submit(MoveBlock(source=move.source, target=move.target))
        return self._edit_response(result)

    def _edit_response(self, result: CommandResult) -> web.Response:
        status = 200 if result.ok else 400
        return web.json_response(result.to_dict(), status=status)

    async def _handle_script(self, request: web.Request) -> web.Response:
        title = request.query.get("title", "recorded session")
        script = render_script([block.code for block in self.session.blocks], title=title)
        return web.Response(text=script, content_type="application/javascript")

    async def _handle_stream(self, request: web.Request) -> web.StreamResponse:
        """Stream outbound notifications as server-sent events."""
        response = web.StreamResponse(
            headers={
                "Content-Type": "text/event-stream",
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
            }
        )
        await response.prepare(request)
        queue: asyncio.Queue = asyncio.Queue(maxsize=STREAM_QUEUE_SIZE)
        self._streams.add(queue)
        try:
            while True:
                notification = await queue.get()
                await response.write(f"data: {json.dumps(notification)}\n\n".encode("utf-8"))
        except ConnectionResetError:
            logger.info("Notification stream client disconnected")
        finally:
            self._streams.discard(queue)
        return response

    def _broadcast(self, notification: dict[str, Any]) -> None:
        for queue in list(self._streams):
            if queue.full():
                logger.warning("Dropping notification for slow stream consumer")
                continue
            queue.put_nowait(notification)

    async def start(self) -> None:
        """Start aiohttp receiver."""
        self._app = self.build_app()
        self._remove_listener = self.session.add_listener(self._broadcast)
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, host=self.host, port=self.port)
        await self._site.start()
        logger.info("Recording server started at http://%s:%s", self.host, self.port)

    async def stop(self) -> None:
        """Stop aiohttp receiver."""
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None
        if self._site is not None:
            await self._site.stop()
            self._site = None
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        self._app = None
        logger.info("Recording server stopped")
