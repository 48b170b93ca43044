"""Normalize captured DOM events into ParsedEvent records."""

from __future__ import annotations

from typing import Any, Callable, Mapping, Sequence

from cyrecorder.recorder.models import CAPTURED_ACTIONS, ActionKind, ParsedEvent

SelectorSynthesizer = Callable[[Mapping[str, Any], Sequence[str]], str]


def _attributes(element: Mapping[str, Any]) -> dict[str, str]:
    attributes = element.get("attributes") or {}
    if not isinstance(attributes, Mapping):
        return {}
    return {str(name): "" if value is None else str(value) for name, value in attributes.items()}


def resolve_selector(
    element: Mapping[str, Any],
    custom_attributes: Sequence[str],
    allowed_attributes: Sequence[str],
    synthesize: SelectorSynthesizer,
) -> str:
    """Return the custom attribute selector if present, else the synthesized one."""
    attributes = _attributes(element)
    for name in custom_attributes:
        if name in attributes:
            return f"[{name}={attributes[name]}]"
    return synthesize(element, allowed_attributes)


def normalize_event(
    raw: Mapping[str, Any],
    custom_attributes: Sequence[str],
    allowed_attributes: Sequence[str],
    synthesize: SelectorSynthesizer,
) -> ParsedEvent | None:
    """Convert a captured DOM event into a ParsedEvent; untrusted or unlocatable events yield None."""
    if raw.get("isTrusted") is not True:
        return None

    element = raw.get("target") or {}
    if not isinstance(element, Mapping):
        element = {}
    attributes = _attributes(element)
    action = str(raw.get("type", ""))
    tag = str(element.get("tagName", "")).upper()
    value = element.get("value")

    selector = resolve_selector(element, custom_attributes, allowed_attributes, synthesize)
    if not selector.strip() and action in CAPTURED_ACTIONS:
        return None

    fields: dict[str, Any] = {
        "selector": selector,
        "action": action,
        "tag": tag,
        "value": "" if value is None else str(value),
    }
    if "href" in attributes:
        fields["href"] = str(element.get("href") or attributes["href"])
    if "id" in attributes:
        fields["id"] = str(element.get("id") or attributes["id"])
    if tag == "INPUT":
        fields["input_type"] = str(element.get("type") or attributes.get("type") or "text").lower()
    if action == ActionKind.KEYDOWN.value:
        fields["key"] = str(raw.get("key", ""))
    return ParsedEvent(**fields)
