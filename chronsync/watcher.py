from __future__ import annotations

import logging
import threading
from pathlib import Path
from queue import Full, Queue
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_POLL_SECONDS = 1.0

Fingerprint = Optional[Tuple[int, int]]


def fingerprint(path: Path) -> Fingerprint:
    try:
        stat = path.stat()
    except OSError:
        return None
    return stat.st_mtime_ns, stat.st_size


class ConfigWatcher:
    """Polls a config file and posts a unit reload signal when it changes.

    Signals go on a bounded queue; when a reload is already pending, further
    changes are dropped so that bursts of writes coalesce into one reload.
    """

    def __init__(self, path: Path, signals: "Queue[None]", poll_interval: float = DEFAULT_POLL_SECONDS) -> None:
        self.path = path
        self.signals = signals
        self.poll_interval = poll_interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._last: Fingerprint = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._last = fingerprint(self.path)
        self._thread = threading.Thread(target=self._run, daemon=True, name="chronsync-config-watcher")
        self._thread.start()
        logger.info("Watching %s for changes (poll=%ss)", self.path, self.poll_interval)

    def stop(self, timeout_seconds: float = 2.0) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout_seconds)
            self._thread = None

    def _run(self) -> None:
        while not self._stop_event.wait(self.poll_interval):
            current = fingerprint(self.path)
            if current == self._last:
                continue
            self._last = current
            logger.debug("Change detected on %s", self.path)
            try:
                self.signals.put_nowait(None)
            except Full:
                logger.debug("Reload already pending; coalescing change.")
