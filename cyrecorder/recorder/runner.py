"""Recorder runtime that drives a Playwright browser and writes a Cypress script."""

from __future__ import annotations

import asyncio
import logging
import signal
import socket
from pathlib import Path
from typing import Any, Optional

from playwright.async_api import async_playwright

from cyrecorder.browser.navigation_source import PlaywrightNavigationSource
from cyrecorder.browser.page_agent import PageChannel, PlaywrightPageAgent, TabRegistry
from cyrecorder.browser.selectors import synthesize_selector
from cyrecorder.config import load_config
from cyrecorder.recorder.dispatcher import ChannelAttached, CommandDispatcher
from cyrecorder.recorder.models import CommandAction, CommandMessage, EventMessage
from cyrecorder.recorder.navigation import NavigationMonitor
from cyrecorder.recorder.normalizer import normalize_event
from cyrecorder.recorder.remote import PushNavigationSource
from cyrecorder.recorder.server import RecordingServer
from cyrecorder.recorder.session import SessionState
from cyrecorder.recorder.synthesizer import render_script
from cyrecorder.storage.factory import create_store

logger = logging.getLogger("cyrecorder.recorder.runner")


def _choose_recording_port(preferred_port: int = 7331) -> int:
    """Return an available localhost port, preferring the configured recorder port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind(("127.0.0.1", preferred_port))
            return preferred_port
        except OSError:
            pass

    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return int(sock.getsockname()[1])


async def _wait_for_interrupt() -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, stop_event.set)
    except NotImplementedError:
        logger.warning("Signal handlers not supported on this platform.")
    await stop_event.wait()


async def run_record(
    start_url: str,
    output_path: Path,
    *,
    title: str = "recorded session",
    fresh: bool = False,
    headless: bool = False,
    config: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Record user interactions on `start_url` until Ctrl+C and write the script."""
    config = config or load_config()
    store = create_store(config)
    tabs = TabRegistry()
    page_agent = PlaywrightPageAgent(tabs, forbidden_url_prefixes=config["forbidden_url_prefixes"])
    source = PlaywrightNavigationSource(tabs)
    session = SessionState(store, page_agent=page_agent, persist_retries=config["persist_retries"])
    await session.initialize()
    monitor = NavigationMonitor(
        session,
        source,
        page_agent=page_agent,
        forbidden_url_prefixes=config["forbidden_url_prefixes"],
    )

    async with async_playwright() as playwright:
        browser = await playwright.chromium.launch(headless=headless)
        context = await browser.new_context()
        page = await context.new_page()
        tab_id = await source.attach(page)

        dispatcher = CommandDispatcher(session, monitor, tab_id=tab_id)
        server = RecordingServer(
            dispatcher,
            host=config["server_host"],
            port=_choose_recording_port(config["server_port"]),
        )

        async def _connect_binding(source_info: dict, hostname: object) -> None:
            connected_page = source_info["page"]
            if tabs.id_of(connected_page) is None:
                return
            channel = PageChannel(connected_page, name=str(hostname), sender_url=connected_page.url)
            dispatcher.submit(ChannelAttached(channel=channel))

        async def _record_event_binding(source_info: dict, raw: object) -> None:
            if not isinstance(raw, dict) or tabs.id_of(source_info["page"]) is None:
                return
            event = normalize_event(
                raw,
                config["custom_selector_attributes"],
                config["selector_attributes"],
                synthesize_selector,
            )
            if event is not None:
                dispatcher.submit(EventMessage(event=event))

        await context.expose_binding("__CYREC_CONNECT__", _connect_binding)
        await context.expose_binding("__CYREC_RECORD_EVENT__", _record_event_binding)

        await dispatcher.start()
        await server.start()
        try:
            if fresh:
                await dispatcher.submit(CommandMessage(action=CommandAction.RESET.value))
            await page.goto(start_url, wait_until="domcontentloaded")
            result = await dispatcher.submit(CommandMessage(action=CommandAction.START.value, tab_id=tab_id))
            if not result.ok:
                raise RuntimeError(f"could not start recording: {result.failure}")

            print(f"\nRecording: {start_url}")
            print(f"Control server: http://{server.host}:{server.port}")
            print("Perform actions in browser. Press Ctrl+C when finished.\n")
            await _wait_for_interrupt()

            await dispatcher.submit(CommandMessage(action=CommandAction.PAUSE.value))
            await dispatcher.drain()
        finally:
            await server.stop()
            await dispatcher.stop()
            await browser.close()
            await store.close()

    codes = [block.code for block in session.blocks]
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(render_script(codes, title=title), encoding="utf-8")
    print(f"\nRecorded {len(codes)} statements")
    print(f"Saved -> {output_path}\n")
    return {
        "status": session.status.value,
        "statements": len(codes),
        "output": str(output_path),
        "degraded": session.degraded,
    }


async def run_serve(config: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    """Serve the session over HTTP for an external capture agent until Ctrl+C."""
    config = config or load_config()
    store = create_store(config)
    session = SessionState(store, persist_retries=config["persist_retries"])
    await session.initialize()
    source = PushNavigationSource()
    monitor = NavigationMonitor(session, source, forbidden_url_prefixes=config["forbidden_url_prefixes"])
    dispatcher = CommandDispatcher(session, monitor)
    server = RecordingServer(
        dispatcher,
        host=config["server_host"],
        port=config["server_port"],
        navigation_source=source,
    )

    await dispatcher.start()
    await server.start()
    try:
        print(f"Recorder server listening on http://{server.host}:{server.port}")
        print("Press Ctrl+C to stop.\n")
        await _wait_for_interrupt()
        await dispatcher.drain()
    finally:
        await server.stop()
        await dispatcher.stop()
        await store.close()
    return {"status": session.status.value, "statements": len(session.blocks)}
