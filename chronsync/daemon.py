"""
Long-running daemon: initial load, live reload on config change, and
graceful shutdown on interrupt or SIGTERM.
"""

from __future__ import annotations

import logging
import signal
import threading
from pathlib import Path
from queue import Empty, Queue
from typing import Optional

from chronsync.config import Configuration, load_config
from chronsync.errors import ConfigError
from chronsync.scheduler import Scheduler
from chronsync.watcher import DEFAULT_POLL_SECONDS, ConfigWatcher

logger = logging.getLogger(__name__)

SIGNAL_POLL_SECONDS = 0.5


class Daemon:
    def __init__(
        self,
        config_path: Path,
        scheduler: Optional[Scheduler] = None,
        poll_interval: float = DEFAULT_POLL_SECONDS,
    ) -> None:
        self.config_path = config_path
        self.scheduler = scheduler or Scheduler()
        self.reload_signals: "Queue[None]" = Queue(maxsize=1)
        self.watcher = ConfigWatcher(config_path, self.reload_signals, poll_interval=poll_interval)
        self._shutdown = threading.Event()

    def start(self) -> Configuration:
        """Load the initial config and start scheduling. Raises ConfigError if it is invalid."""
        configuration = load_config(self.config_path)
        logger.info("Configuration loaded. %s tasks.", len(configuration.tasks))
        self.scheduler.reload(configuration)
        self.watcher.start()
        logger.info("chronsync daemon started.")
        return configuration

    def reload(self) -> bool:
        logger.info(">>> CONFIG CHANGE DETECTED! RELOADING... <<<")
        try:
            configuration = load_config(self.config_path)
        except ConfigError as exc:
            logger.error("Error reloading configuration (Configuration rejected): %s", exc)
            return False
        self.scheduler.reload(configuration)
        logger.info("New configuration applied. Tasks reloaded.")
        return True

    def request_shutdown(self) -> None:
        self._shutdown.set()

    def serve_forever(self) -> None:
        while not self._shutdown.is_set():
            try:
                self.reload_signals.get(timeout=SIGNAL_POLL_SECONDS)
            except Empty:
                continue
            if self._shutdown.is_set():
                break
            self.reload()

    def shutdown(self) -> None:
        logger.info("Shutting down gracefully...")
        self.scheduler.reload(Configuration.empty())
        self.watcher.stop()


def run_daemon(config_path: Path, poll_interval: float = DEFAULT_POLL_SECONDS) -> int:
    daemon = Daemon(config_path, poll_interval=poll_interval)

    def handle_sigterm(signum: int, frame: object) -> None:
        logger.info("Signal %s received.", signal.Signals(signum).name)
        daemon.request_shutdown()

    previous = signal.signal(signal.SIGTERM, handle_sigterm)
    try:
        try:
            daemon.start()
        except ConfigError as exc:
            logger.error("[Main] Failed to load initial config. Exiting: %s", exc)
            return 1
        daemon.serve_forever()
    except KeyboardInterrupt:
        logger.info("Ctrl+C received.")
    finally:
        signal.signal(signal.SIGTERM, previous)
        daemon.shutdown()
    return 0
