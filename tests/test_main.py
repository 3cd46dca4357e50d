"""Tests for the command-line entry point."""

import socket
import sys
from unittest.mock import patch

from devlog_capture.main import main, run_child


class TestRunChild:
    def test_exit_code_returned(self):
        assert run_child([sys.executable, "-c", "import sys; sys.exit(3)"]) == 3

    def test_missing_executable(self):
        assert run_child(["definitely-not-a-real-command-xyz"]) is None


class TestMain:
    @patch("devlog_capture.main.signal.signal")
    def test_bind_failure_exits_nonzero(self, mock_signal, monkeypatch):
        for name in ("SERVER_HOST", "SERVER_PORT", "FILTER_CONFIG"):
            monkeypatch.delenv(name, raising=False)
        blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        blocker.bind(("127.0.0.1", 0))
        blocker.listen(1)
        port = blocker.getsockname()[1]
        try:
            assert main(["--host", "127.0.0.1", "--port", str(port)]) == 1
        finally:
            blocker.close()
        assert mock_signal.call_count == 2
