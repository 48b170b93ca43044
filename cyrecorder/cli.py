import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import httpx
import typer

from cyrecorder.config import config_path, default_config, load_config, save_config
from cyrecorder.contracts import CODE_BLOCKS_KEY, REC_STATUS_KEY
from cyrecorder.recorder.models import CommandAction
from cyrecorder.recorder.runner import run_record, run_serve
from cyrecorder.recorder.synthesizer import render_script
from cyrecorder.storage.factory import create_store

app = typer.Typer(help="Record browser interactions as Cypress statements.")

REQUEST_TIMEOUT_SECONDS = 5.0


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )


def _server_url(host: Optional[str], port: Optional[int]) -> str:
    config = load_config()
    return f"http://{host or config['server_host']}:{port or config['server_port']}"


def _request(method: str, path: str, *, host: Optional[str], port: Optional[int], payload: Optional[dict] = None) -> dict:
    url = f"{_server_url(host, port)}{path}"
    try:
        response = httpx.request(method, url, json=payload, timeout=REQUEST_TIMEOUT_SECONDS)
    except httpx.ConnectError:
        typer.echo(f"Recorder server is not running at {_server_url(host, port)}")
        raise typer.Exit(code=1)
    try:
        body = response.json()
    except ValueError:
        body = {"status": "invalid_response", "text": response.text}
    if response.status_code >= 400:
        typer.echo(f"Request failed ({response.status_code}): {json.dumps(body)}")
        raise typer.Exit(code=1)
    return body


def _send_command(action: CommandAction, host: Optional[str], port: Optional[int], tab_id: Optional[int] = None) -> None:
    payload: dict = {"action": action.value}
    if tab_id is not None:
        payload["tabId"] = tab_id
    result = _request("POST", "/command", host=host, port=port, payload=payload)
    if not result.get("ok"):
        failure = result.get("failure") or {}
        typer.echo(f"{action.value.upper()}: FAIL")
        typer.echo(f"  error: {failure.get('error_code', 'UNKNOWN')}")
        typer.echo(f"  message: {failure.get('message', '')}")
        raise typer.Exit(code=1)
    typer.echo(f"{action.value.upper()}: OK (status: {result.get('detail', '')})")


HostOption = typer.Option(None, "--host", help="Recorder server host")
PortOption = typer.Option(None, "--port", help="Recorder server port")


@app.command()
def record(
    start_url: str = typer.Argument(..., help="Initial URL to open before recording"),
    output: Path = typer.Option(Path("cypress/e2e/recorded.cy.js"), "--output", "-o"),
    title: str = typer.Option("recorded session", "--title"),
    fresh: bool = typer.Option(False, "--fresh", help="Reset any paused session before recording"),
    headless: bool = typer.Option(False, "--headless"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Open a browser, record interactions until Ctrl+C and write a Cypress spec."""
    _configure_logging(verbose)
    try:
        asyncio.run(run_record(start_url, output, title=title, fresh=fresh, headless=headless))
    except RuntimeError as exc:
        typer.echo(_format_record_runtime_error(exc))
        raise typer.Exit(code=1)


def _format_record_runtime_error(exc: RuntimeError) -> str:
    """Return compact user-facing guidance for common recorder runtime failures."""
    message = str(exc).strip()
    lower = message.lower()
    if "executable doesn't exist" in lower or "playwright install" in lower:
        return (
            "Recording failed: Chromium is not installed for Playwright.\n"
            "Run `playwright install chromium` and retry."
        )
    if "address already in use" in lower:
        return (
            "Recording failed: Recorder port is already in use.\n"
            "Stop stale cyrecorder processes and retry."
        )
    if "rec_injection_failed" in lower:
        return (
            "Recording failed: The capture agent could not be injected.\n"
            "Browser-internal pages cannot be recorded; open a web page and retry."
        )
    return f"Recording failed: {message}"


@app.command()
def serve(verbose: bool = typer.Option(False, "--verbose", "-v")):
    """Run the recorder server for an external capture agent."""
    _configure_logging(verbose)
    asyncio.run(run_serve())


@app.command()
def start(host: Optional[str] = HostOption, port: Optional[int] = PortOption, tab_id: Optional[int] = typer.Option(None, "--tab-id")):
    """Start recording."""
    _send_command(CommandAction.START, host, port, tab_id)


@app.command()
def resume(host: Optional[str] = HostOption, port: Optional[int] = PortOption, tab_id: Optional[int] = typer.Option(None, "--tab-id")):
    """Resume a paused recording."""
    _send_command(CommandAction.RESUME, host, port, tab_id)


@app.command()
def pause(host: Optional[str] = HostOption, port: Optional[int] = PortOption):
    """Pause recording and keep recorded statements."""
    _send_command(CommandAction.PAUSE, host, port)


@app.command()
def reset(host: Optional[str] = HostOption, port: Optional[int] = PortOption):
    """Stop recording and discard every recorded statement."""
    _send_command(CommandAction.RESET, host, port)


@app.command()
def status(host: Optional[str] = HostOption, port: Optional[int] = PortOption, json_output: bool = typer.Option(False, "--json")):
    """Show recorder status and recorded statements."""
    snapshot = _request("GET", "/session", host=host, port=port)
    if json_output:
        typer.echo(json.dumps(snapshot, indent=2))
        return
    typer.echo(f"Recorder: {str(snapshot.get('status', 'unknown')).upper()}")
    if snapshot.get("degraded"):
        typer.echo("  WARNING: session storage is degraded; recent changes may not be saved")
    if snapshot.get("origin_host"):
        typer.echo(f"  origin host: {snapshot['origin_host']}")
    blocks = snapshot.get("blocks") or []
    typer.echo(f"  statements: {len(blocks)}")
    for index, block in enumerate(blocks):
        typer.echo(f"  [{index}] {block.get('code', '')}")


@app.command()
def delete(index: int, host: Optional[str] = HostOption, port: Optional[int] = PortOption):
    """Delete one recorded statement by index."""
    _request("DELETE", f"/blocks/{index}", host=host, port=port)
    typer.echo(f"Deleted statement {index}")


@app.command()
def move(source: int, target: int, host: Optional[str] = HostOption, port: Optional[int] = PortOption):
    """Move one recorded statement to a new index."""
    _request("POST", "/blocks/move", host=host, port=port, payload={"from": source, "to": target})
    typer.echo(f"Moved statement {source} -> {target}")


async def _load_codes() -> tuple[str, list[str]]:
    store = create_store(load_config())
    try:
        rec_status = await store.get(REC_STATUS_KEY, "off")
        raw_blocks = await store.get(CODE_BLOCKS_KEY, [])
    finally:
        await store.close()
    codes = [str(row.get("code", "")) for row in raw_blocks or [] if isinstance(row, dict) and row.get("code")]
    return str(rec_status), codes


@app.command()
def export(
    output: Path = typer.Option(Path("cypress/e2e/recorded.cy.js"), "--output", "-o"),
    title: str = typer.Option("recorded session", "--title"),
):
    """Write the stored statements as a Cypress spec without a running server."""
    rec_status, codes = asyncio.run(_load_codes())
    if not codes:
        typer.echo(f"No recorded statements (status: {rec_status})")
        raise typer.Exit(code=1)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(render_script(codes, title=title), encoding="utf-8")
    typer.echo(f"Exported {len(codes)} statements -> {output}")


@app.command("config")
def show_config(init: bool = typer.Option(False, "--init", help="Write default config file")):
    """Print the effective recorder configuration."""
    if init:
        saved = save_config(default_config())
        typer.echo(f"Wrote {config_path()}")
        typer.echo(json.dumps(saved, indent=2))
        return
    typer.echo(json.dumps(load_config(), indent=2))


if __name__ == "__main__":
    app()
