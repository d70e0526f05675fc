from __future__ import annotations

import json
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Dict, Iterator, List

import pytest

from chronsync.alerter import format_alert, notify


class _Recorder:
    def __init__(self) -> None:
        self.status = 200
        self.requests: List[Dict[str, Any]] = []


@pytest.fixture
def webhook_server() -> Iterator[tuple]:
    recorder = _Recorder()

    class Handler(BaseHTTPRequestHandler):
        def do_POST(self) -> None:  # noqa: N802
            length = int(self.headers.get("Content-Length", "0"))
            recorder.requests.append(
                {
                    "path": self.path,
                    "content_type": self.headers.get("Content-Type"),
                    "body": json.loads(self.rfile.read(length).decode("utf-8")),
                }
            )
            self.send_response(recorder.status)
            self.end_headers()

        def log_message(self, format: str, *args: Any) -> None:
            pass

    server = HTTPServer(("127.0.0.1", 0), Handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    url = f"http://127.0.0.1:{server.server_address[1]}/hook"
    try:
        yield url, recorder
    finally:
        server.shutdown()
        server.server_close()


def test_notify_posts_json_text_payload(webhook_server: tuple) -> None:
    url, recorder = webhook_server
    assert notify(url, "backup", "Command exited with status: exit status: 1\nStderr: oops") is True
    assert len(recorder.requests) == 1
    request = recorder.requests[0]
    assert request["path"] == "/hook"
    assert request["content_type"] == "application/json"
    text = request["body"]["text"]
    assert "Task Failed" in text
    assert "`backup`" in text
    assert "exit status: 1" in text
    assert "oops" in text


def test_notify_non_2xx_is_logged_not_raised(webhook_server: tuple, caplog: pytest.LogCaptureFixture) -> None:
    url, recorder = webhook_server
    recorder.status = 500
    assert notify(url, "backup", "failed") is False
    assert len(recorder.requests) == 1
    assert "Failed to send webhook. Status: 500" in caplog.text


def test_notify_unreachable_host_returns_false() -> None:
    assert notify("http://127.0.0.1:9/hook", "backup", "failed", timeout=2.0) is False


def test_notify_malformed_url_returns_false() -> None:
    assert notify("not a url", "backup", "failed") is False


def test_format_alert_names_task_and_error() -> None:
    text = format_alert("sync", "exit status: 4")
    assert text.startswith("**Chronsync Task Failed**")
    assert "**Task:** `sync`" in text
    assert text.endswith("**Error** exit status: 4")
