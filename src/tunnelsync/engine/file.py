"""File-backed routing engine — serves running info from a JSON file.

Watches the file's mtime on a background thread and fires the
running-info callback on change. Useful for driving the reconciler
from an engine that dumps its state to disk, and for local testing.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from pathlib import Path

from tunnelsync.tunnel.models import LogLevel

logger = logging.getLogger(__name__)


class FileMeshEngine:
    """MeshEngine implementation backed by a running-info JSON file."""

    def __init__(self, path: str | Path, poll_interval: float = 1.0) -> None:
        self._path = Path(path)
        self._poll_interval = poll_interval
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._info_callback: Callable[[], None] | None = None
        self._stop_callback: Callable[[], None] | None = None
        self._last_mtime: float | None = None
        self._latest_error: str | None = None
        self._tun_fd: int | None = None
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def tun_fd(self) -> int | None:
        with self._lock:
            return self._tun_fd

    def start(self, config: str, log_level: LogLevel = LogLevel.INFO) -> None:
        if self.is_running:
            return
        logger.setLevel(log_level.logging_level)
        self._stop_event.clear()
        self._last_mtime = self._mtime()
        self._thread = threading.Thread(
            target=self._watch_loop, name="tunnelsync-facts-watch", daemon=True
        )
        self._thread.start()
        logger.info("Watching running info at %s", self._path)

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=self._poll_interval + 1)
            self._thread = None

    def running_info(self) -> str | None:
        try:
            return self._path.read_text(encoding="utf-8")
        except OSError as exc:
            logger.debug("Running info unavailable: %s", exc)
            return None

    def register_running_info_callback(self, callback: Callable[[], None]) -> None:
        self._info_callback = callback

    def register_stop_callback(self, callback: Callable[[], None]) -> None:
        self._stop_callback = callback

    def latest_error(self) -> str | None:
        with self._lock:
            return self._latest_error

    def set_tun_fd(self, fd: int) -> None:
        with self._lock:
            self._tun_fd = fd
        logger.info("Tunnel fd set to %d", fd)

    def _mtime(self) -> float | None:
        try:
            return self._path.stat().st_mtime
        except OSError:
            return None

    def _watch_loop(self) -> None:
        while not self._stop_event.wait(timeout=self._poll_interval):
            mtime = self._mtime()
            if mtime is None and self._last_mtime is not None:
                with self._lock:
                    self._latest_error = f"running info file disappeared: {self._path}"
                logger.error("Running info file disappeared: %s", self._path)
                self._last_mtime = None
                if self._stop_callback is not None:
                    self._stop_callback()
                return
            if mtime != self._last_mtime:
                self._last_mtime = mtime
                if self._info_callback is not None:
                    self._info_callback()
