"""Tests for recorder control-server port selection."""

import socket
import unittest

from cyrecorder.config import validate_config
from cyrecorder.recorder.runner import _choose_recording_port


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return int(sock.getsockname()[1])


class RecorderPortSelectionTests(unittest.TestCase):
    """The configured server port is used when free, else an ephemeral one."""

    def test_configured_port_is_used_when_free(self) -> None:
        port = _free_port()
        config = validate_config({"server_port": port})
        self.assertEqual(_choose_recording_port(config["server_port"]), port)

    def test_busy_configured_port_falls_back_to_ephemeral(self) -> None:
        port = _free_port()
        config = validate_config({"server_port": port})
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as listener:
            listener.bind(("127.0.0.1", port))
            listener.listen(1)
            chosen = _choose_recording_port(config["server_port"])
        self.assertNotEqual(chosen, port)
        self.assertTrue(0 < chosen < 65536)


if __name__ == "__main__":
    unittest.main()
