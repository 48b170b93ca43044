"""Tests for CLI command output and exit-code contracts."""

import asyncio
import io
import json
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest import mock

import typer

from cyrecorder.cli import _format_record_runtime_error, _send_command, export, status
from cyrecorder.config import default_config
from cyrecorder.recorder.models import CommandAction
from cyrecorder.storage.json_store import JsonFileStore


class CliCommandTests(unittest.TestCase):
    """Validate human and JSON output for recorder control commands."""

    def test_send_command_reports_failure_and_exits(self) -> None:
        result = {
            "ok": False,
            "action": "start",
            "detail": "",
            "failure": {"error_code": "REC_INJECTION_FAILED", "message": "page agent injection failed"},
        }
        output = io.StringIO()
        with mock.patch("cyrecorder.cli._request", return_value=result) as request:
            with self.assertRaises(typer.Exit) as cm:
                with redirect_stdout(output):
                    _send_command(CommandAction.START, None, None, tab_id=2)
        self.assertEqual(cm.exception.exit_code, 1)
        self.assertEqual(request.call_args.kwargs["payload"], {"action": "start", "tabId": 2})
        self.assertIn("START: FAIL", output.getvalue())
        self.assertIn("REC_INJECTION_FAILED", output.getvalue())

    def test_send_command_success_line(self) -> None:
        output = io.StringIO()
        with mock.patch("cyrecorder.cli._request", return_value={"ok": True, "detail": "paused"}):
            with redirect_stdout(output):
                _send_command(CommandAction.PAUSE, None, None)
        self.assertEqual(output.getvalue().strip(), "PAUSE: OK (status: paused)")

    def test_status_human_output_lists_blocks(self) -> None:
        snapshot = {
            "status": "on",
            "blocks": [{"code": "cy.visit('https://example.com/');", "prompt": "visit"}],
            "origin_host": "example.com",
            "last_visited_url": "https://example.com/",
            "degraded": True,
        }
        output = io.StringIO()
        with mock.patch("cyrecorder.cli._request", return_value=snapshot):
            with redirect_stdout(output):
                status(host=None, port=None, json_output=False)
        text = output.getvalue()
        self.assertIn("Recorder: ON", text)
        self.assertIn("WARNING: session storage is degraded", text)
        self.assertIn("[0] cy.visit('https://example.com/');", text)

    def test_export_writes_stored_statements(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            config = default_config()
            config["storage_path"] = str(Path(tmpdir) / "session.json")
            asyncio.run(
                JsonFileStore(Path(config["storage_path"])).set_many(
                    {"recStatus": "paused", "codeBlocks": [{"code": "cy.get('#a').click();", "prompt": ""}]}
                )
            )
            target = Path(tmpdir) / "out" / "flow.cy.js"
            output = io.StringIO()
            with mock.patch("cyrecorder.cli.load_config", return_value=config):
                with redirect_stdout(output):
                    export(output=target, title="flow")
            script = target.read_text(encoding="utf-8")
            self.assertIn("describe('flow', () => {", script)
            self.assertIn("cy.get('#a').click();", script)
            self.assertIn("Exported 1 statements", output.getvalue())

    def test_export_without_statements_exits(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            config = default_config()
            config["storage_path"] = str(Path(tmpdir) / "session.json")
            with mock.patch("cyrecorder.cli.load_config", return_value=config):
                with self.assertRaises(typer.Exit):
                    with redirect_stdout(io.StringIO()):
                        export(output=Path(tmpdir) / "x.cy.js", title="x")

    def test_format_record_runtime_error_missing_browser(self) -> None:
        msg = _format_record_runtime_error(
            RuntimeError("Executable doesn't exist at /ms-playwright/chromium/chrome")
        )
        self.assertIn("playwright install chromium", msg)

    def test_format_record_runtime_error_injection(self) -> None:
        failure = {"error_code": "REC_INJECTION_FAILED"}
        msg = _format_record_runtime_error(RuntimeError(f"could not start recording: {json.dumps(failure)}"))
        self.assertIn("capture agent could not be injected", msg)

    def test_format_record_runtime_error_passthrough(self) -> None:
        self.assertEqual(_format_record_runtime_error(RuntimeError("boom")), "Recording failed: boom")


if __name__ == "__main__":
    unittest.main()
