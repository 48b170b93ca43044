"""Tests for DOM event normalization and default selector synthesis."""

import unittest

from pydantic import ValidationError

from cyrecorder.browser.selectors import synthesize_selector
from cyrecorder.recorder.models import ParsedEvent
from cyrecorder.recorder.normalizer import normalize_event

CUSTOM = ["data-cy", "data-testid"]
ALLOWED = ["name", "placeholder"]


def _raw(event_type: str, target: dict, **extra) -> dict:
    raw = {"type": event_type, "isTrusted": True, "target": target}
    raw.update(extra)
    return raw


class _RecordingSynthesizer:
    def __init__(self, result: str = "div > span"):
        self.result = result
        self.calls: list[tuple[dict, list[str]]] = []

    def __call__(self, element, allowed):
        self.calls.append((element, list(allowed)))
        return self.result


class EventNormalizerTests(unittest.TestCase):
    """Validate trust filtering, selector priority and optional fields."""

    def test_untrusted_events_are_dropped(self) -> None:
        synth = _RecordingSynthesizer()
        raw = _raw("click", {"tagName": "BUTTON", "attributes": {}})
        raw["isTrusted"] = False
        self.assertIsNone(normalize_event(raw, CUSTOM, ALLOWED, synth))
        raw.pop("isTrusted")
        self.assertIsNone(normalize_event(raw, CUSTOM, ALLOWED, synth))
        self.assertEqual(synth.calls, [])

    def test_custom_attribute_wins_in_priority_order(self) -> None:
        synth = _RecordingSynthesizer()
        target = {"tagName": "BUTTON", "attributes": {"data-testid": "save", "data-cy": "save-btn"}}
        event = normalize_event(_raw("click", target), CUSTOM, ALLOWED, synth)
        assert event is not None
        self.assertEqual(event.selector, "[data-cy=save-btn]")
        self.assertEqual(synth.calls, [])

    def test_falls_back_to_synthesizer_with_allow_list(self) -> None:
        synth = _RecordingSynthesizer("body > div:nth-of-type(2)")
        target = {"tagName": "div", "attributes": {"class": "card"}}
        event = normalize_event(_raw("click", target), CUSTOM, ALLOWED, synth)
        assert event is not None
        self.assertEqual(event.selector, "body > div:nth-of-type(2)")
        self.assertEqual(synth.calls[0][1], ALLOWED)
        self.assertEqual(event.tag, "DIV")
        self.assertIsNone(event.input_type)
        self.assertIsNone(event.key)

    def test_input_keydown_populates_optional_fields(self) -> None:
        target = {
            "tagName": "INPUT",
            "attributes": {"id": "name", "type": "text"},
            "id": "name",
            "type": "text",
            "value": "Ada",
        }
        event = normalize_event(_raw("keydown", target, key="Backspace"), CUSTOM, ALLOWED, synthesize_selector)
        assert event is not None
        self.assertEqual(event.selector, "#name")
        self.assertEqual(event.id, "name")
        self.assertEqual(event.input_type, "text")
        self.assertEqual(event.key, "Backspace")
        self.assertEqual(event.value, "Ada")

    def test_unlocatable_target_is_dropped(self) -> None:
        synth = _RecordingSynthesizer("")
        target = {"tagName": "DIV", "attributes": {}}
        self.assertIsNone(normalize_event(_raw("click", target), CUSTOM, ALLOWED, synth))
        self.assertEqual(len(synth.calls), 1)

    def test_href_uses_resolved_property(self) -> None:
        target = {
            "tagName": "A",
            "attributes": {"href": "/docs"},
            "href": "https://example.com/docs",
            "value": None,
        }
        event = normalize_event(_raw("click", target), CUSTOM, ALLOWED, synthesize_selector)
        assert event is not None
        self.assertEqual(event.href, "https://example.com/docs")
        self.assertEqual(event.value, "")
        self.assertIsNone(event.id)


class ParsedEventValidationTests(unittest.TestCase):
    """Validate field rules enforced on every ParsedEvent, whatever its source."""

    def test_captured_actions_require_selector(self) -> None:
        for action in ("click", "dblclick", "keydown", "change", "submit"):
            with self.assertRaises(ValidationError):
                ParsedEvent(action=action, selector="  ")
        self.assertEqual(ParsedEvent(action="mouseover").selector, "")

    def test_key_only_allowed_on_keydown(self) -> None:
        with self.assertRaises(ValidationError):
            ParsedEvent(action="click", selector="#a", key="Enter")
        self.assertEqual(ParsedEvent(action="keydown", selector="#a", key="Enter").key, "Enter")


class SelectorSynthesisTests(unittest.TestCase):
    """Validate default selector preference order."""

    def test_prefers_id_then_allowed_attribute_then_path(self) -> None:
        self.assertEqual(synthesize_selector({"tagName": "INPUT", "attributes": {"id": "email"}}, ALLOWED), "#email")
        self.assertEqual(
            synthesize_selector({"tagName": "INPUT", "attributes": {"id": "1bad", "name": "email"}}, ALLOWED),
            'input[name="email"]',
        )
        self.assertEqual(
            synthesize_selector({"tagName": "SPAN", "attributes": {}, "cssPath": "body > p > span"}, ALLOWED),
            "body > p > span",
        )
        self.assertEqual(synthesize_selector({"tagName": "SPAN", "attributes": {}}, ALLOWED), "span")

    def test_ignores_attributes_outside_allow_list(self) -> None:
        element = {"tagName": "BUTTON", "attributes": {"title": "Save"}, "cssPath": "body > button"}
        self.assertEqual(synthesize_selector(element, ALLOWED), "body > button")


if __name__ == "__main__":
    unittest.main()
