from __future__ import annotations

import json
import threading
import time
from pathlib import Path
from queue import Queue
from typing import Any, Dict, List

import pytest

from chronsync.daemon import Daemon
from chronsync.errors import ConfigError
from chronsync.scheduler import Scheduler
from chronsync.watcher import ConfigWatcher


def _task(name: str) -> Dict[str, Any]:
    return {"name": name, "cron_schedule": "0 0 0 1 1 *", "command": "true"}


def _write_config(path: Path, tasks: List[Dict[str, Any]]) -> Path:
    path.write_text(json.dumps({"tasks": tasks}), encoding="utf-8")
    return path


def _wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return predicate()


def _handle_names(scheduler: Scheduler) -> List[str]:
    return [handle.name for handle in scheduler.handles()]


def test_watcher_signals_on_change_and_coalesces(tmp_path: Path) -> None:
    path = _write_config(tmp_path / "config.json", [_task("a")])
    signals: "Queue[None]" = Queue(maxsize=1)
    watcher = ConfigWatcher(path, signals, poll_interval=0.05)
    watcher.start()
    try:
        time.sleep(0.2)
        assert signals.empty()

        _write_config(path, [_task("a"), _task("b")])
        assert _wait_for(lambda: signals.full())
        _write_config(path, [_task("a"), _task("b"), _task("c")])
        time.sleep(0.3)
        assert signals.qsize() == 1
    finally:
        watcher.stop()


def test_watcher_signals_when_file_disappears(tmp_path: Path) -> None:
    path = _write_config(tmp_path / "config.json", [_task("a")])
    signals: "Queue[None]" = Queue(maxsize=1)
    watcher = ConfigWatcher(path, signals, poll_interval=0.05)
    watcher.start()
    try:
        path.unlink()
        assert _wait_for(lambda: signals.full())
    finally:
        watcher.stop()


def test_daemon_start_rejects_invalid_initial_config(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text('{"tasks": [{"name": "x", "cron_schedule": "bad", "command": "true"}]}', encoding="utf-8")
    daemon = Daemon(path, poll_interval=0.05)
    with pytest.raises(ConfigError):
        daemon.start()
    assert daemon.scheduler.handles() == []


def test_daemon_reloads_on_change_and_keeps_jobs_on_rejected_config(tmp_path: Path) -> None:
    path = _write_config(tmp_path / "config.json", [_task("first")])
    daemon = Daemon(path, poll_interval=0.05)
    daemon.start()
    server = threading.Thread(target=daemon.serve_forever, daemon=True)
    server.start()
    try:
        assert _handle_names(daemon.scheduler) == ["first"]

        _write_config(path, [_task("second"), _task("third")])
        assert _wait_for(lambda: _handle_names(daemon.scheduler) == ["second", "third"])

        path.write_text("{ broken json", encoding="utf-8")
        time.sleep(1.0)
        assert _handle_names(daemon.scheduler) == ["second", "third"]
    finally:
        daemon.request_shutdown()
        server.join(timeout=3)
        daemon.shutdown()

    assert not server.is_alive()
    assert daemon.scheduler.handles() == []


def test_daemon_reload_returns_false_on_rejected_config(tmp_path: Path) -> None:
    path = _write_config(tmp_path / "config.json", [_task("keep")])
    daemon = Daemon(path, poll_interval=10)
    daemon.start()
    try:
        path.write_text('{"tasks": "nope"}', encoding="utf-8")
        assert daemon.reload() is False
        assert _handle_names(daemon.scheduler) == ["keep"]

        _write_config(path, [])
        assert daemon.reload() is True
        assert daemon.scheduler.handles() == []
    finally:
        daemon.shutdown()


def test_request_shutdown_stops_serve_forever(tmp_path: Path) -> None:
    path = _write_config(tmp_path / "config.json", [_task("idle")])
    daemon = Daemon(path, poll_interval=10)
    daemon.start()
    server = threading.Thread(target=daemon.serve_forever, daemon=True)
    server.start()
    assert server.is_alive()

    daemon.request_shutdown()
    server.join(timeout=3)
    assert not server.is_alive()

    handles = daemon.scheduler.handles()
    daemon.shutdown()
    assert daemon.scheduler.handles() == []
    assert all(handle.cancelled for handle in handles)
    assert all(handle.join(timeout=2) for handle in handles)
