"""Default CSS selector synthesis for captured element snapshots."""

from __future__ import annotations

import re
from typing import Any, Mapping, Sequence

_CSS_IDENT = re.compile(r"^-?[_a-zA-Z][_a-zA-Z0-9-]*$")


def synthesize_selector(element: Mapping[str, Any], allowed_attributes: Sequence[str]) -> str:
    """Build a selector from an element snapshot; always returns a usable selector.

    Preference order: a plain CSS id, the first allow-listed attribute, the
    structural path computed by the page agent, then the bare tag name.
    """
    tag = str(element.get("tagName") or "").lower()
    attributes = element.get("attributes") or {}
    if not isinstance(attributes, Mapping):
        attributes = {}

    element_id = str(attributes.get("id") or "").strip()
    if element_id and _CSS_IDENT.match(element_id):
        return f"#{element_id}"

    for name in allowed_attributes:
        value = attributes.get(name)
        if value is None or not str(value).strip():
            continue
        escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
        return f'{tag}[{name}="{escaped}"]' if tag else f'[{name}="{escaped}"]'

    css_path = str(element.get("cssPath") or "").strip()
    if css_path:
        return css_path
    return tag or "*"
