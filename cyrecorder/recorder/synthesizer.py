"""Render ParsedEvents and URLs into Cypress statements."""

from __future__ import annotations

from typing import Callable, Optional
from urllib.parse import SplitResult, urlsplit

from cyrecorder.recorder.errors import UnhandledActionError
from cyrecorder.recorder.models import ActionKind, ParsedEvent

KEY_SEQUENCES = {
    "Backspace": "{backspace}",
    "Escape": "{esc}",
    "ArrowUp": "{uparrow}",
    "ArrowRight": "{rightarrow}",
    "ArrowDown": "{downarrow}",
    "ArrowLeft": "{leftarrow}",
}
SUPPRESSED_CHANGE_INPUT_TYPES = {"checkbox", "radio"}
DEFAULT_PORTS = {"http": 80, "https": 443, "ws": 80, "wss": 443}


def escape_value(value: str) -> str:
    return value.replace("'", "\\'")


def _click(event: ParsedEvent) -> str:
    return f"cy.get('{event.selector}').click();"


def _dblclick(event: ParsedEvent) -> str:
    return f"cy.get('{event.selector}').dblclick();"


def _keydown(event: ParsedEvent) -> Optional[str]:
    sequence = KEY_SEQUENCES.get(event.key or "")
    if sequence is None:
        return None
    return f"cy.get('{event.selector}').type('{sequence}');"


def _change(event: ParsedEvent) -> Optional[str]:
    if event.input_type in SUPPRESSED_CHANGE_INPUT_TYPES:
        return None
    return f"cy.get('{event.selector}').type('{escape_value(event.value)}');"


def _submit(event: ParsedEvent) -> str:
    return f"cy.get('{event.selector}').submit();"


_HANDLERS: dict[str, Callable[[ParsedEvent], Optional[str]]] = {
    ActionKind.CLICK.value: _click,
    ActionKind.DBLCLICK.value: _dblclick,
    ActionKind.KEYDOWN.value: _keydown,
    ActionKind.CHANGE.value: _change,
    ActionKind.SUBMIT.value: _submit,
}


def synthesize_statement(event: ParsedEvent) -> Optional[str]:
    """Return the statement for an event, or None when the action is suppressed.

    Raises:
        UnhandledActionError when the action kind has no template.
    """
    handler = _HANDLERS.get(event.action)
    if handler is None:
        raise UnhandledActionError(event.action)
    return handler(event)


def _origin(parts: SplitResult) -> str:
    host = (parts.hostname or "").lower()
    if ":" in host:
        host = f"[{host}]"
    try:
        port = parts.port
    except ValueError:
        port = None
    if port is not None and port != DEFAULT_PORTS.get(parts.scheme):
        host = f"{host}:{port}"
    return f"{parts.scheme}://{host}"


def url_statement(url: str) -> str:
    """Assert the current URL contains origin plus pathname of `url`.

    Matches how a browser reports them: lowercase host, no userinfo, no
    default port and `/` for an empty path.
    """
    parts = urlsplit(url)
    return f"cy.url().should('contains', '{_origin(parts)}{parts.path or '/'}');"


def visit_statement(url: str) -> str:
    return f"cy.visit('{url}');"


def render_script(codes: list[str], title: str = "recorded session") -> str:
    """Wrap statements into a runnable Cypress spec file."""
    lines = [f"describe('{escape_value(title)}', () => {{", "  it('replays recorded steps', () => {"]
    lines.extend(f"    {code}" for code in codes)
    lines.extend(["  });", "});", ""])
    return "\n".join(lines)
