"""Cross-process error surfacing between the tunnel and its host.

The tunnel persists the last error message into the shared directory and
then posts a notification name as a datagram on a Unix socket. The host
binds that socket with a NotificationObserver and reads the message back
with read_last_error(). Posting is fire-and-forget: with no host
listening the datagram is simply dropped.
"""

from __future__ import annotations

import json
import logging
import os
import socket
import threading
import time
from collections.abc import Callable
from pathlib import Path

logger = logging.getLogger(__name__)

LAST_ERROR_KEY = "TunnelLastError"
LAST_ERROR_FILENAME = "last_error.json"
NOTIFY_SOCKET_NAME = "notify.sock"
ERROR_NOTIFICATION = "tunnelsync.tunnel.error"

_MAX_DATAGRAM = 1024


def _safe_dump_json(path: Path, payload: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, ensure_ascii=True, indent=2) + "\n", encoding="utf-8")
    tmp.replace(path)


def post_notification(shared_dir: Path, name: str) -> bool:
    """Post a notification datagram. Returns False if nobody is listening."""
    sock_path = shared_dir / NOTIFY_SOCKET_NAME
    try:
        with socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM) as sock:
            sock.sendto(name.encode("utf-8"), str(sock_path))
        return True
    except (FileNotFoundError, ConnectionRefusedError) as exc:
        logger.debug("No notification listener at %s: %s", sock_path, exc)
        return False
    except OSError as exc:
        logger.warning("Failed to post notification %s: %s", name, exc)
        return False


def read_last_error(shared_dir: str | Path) -> str | None:
    """Read the last error persisted by the tunnel, if any."""
    path = Path(shared_dir) / LAST_ERROR_FILENAME
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Cannot read last error from %s: %s", path, exc)
        return None
    if not isinstance(data, dict):
        return None
    message = data.get(LAST_ERROR_KEY)
    return message if isinstance(message, str) else None


class ErrorGateway:
    """Persists the last tunnel error and wakes the host process."""

    def __init__(self, shared_dir: str | Path) -> None:
        self._shared_dir = Path(shared_dir)

    @property
    def shared_dir(self) -> Path:
        return self._shared_dir

    def report(self, message: str) -> None:
        logger.error("Reporting tunnel error to host: %s", message)
        try:
            _safe_dump_json(
                self._shared_dir / LAST_ERROR_FILENAME,
                {LAST_ERROR_KEY: message, "timestamp": time.time()},
            )
        except OSError as exc:
            logger.error("Failed to persist last error: %s", exc)
        post_notification(self._shared_dir, ERROR_NOTIFICATION)


class NotificationObserver:
    """Host-side listener that invokes ``callback`` for a notification name.

    Binds the shared notification socket and receives on a daemon thread.
    """

    def __init__(
        self,
        shared_dir: str | Path,
        name: str,
        callback: Callable[[], None],
    ) -> None:
        self._name = name
        self._callback = callback
        self._path = Path(shared_dir) / NOTIFY_SOCKET_NAME
        self._path.parent.mkdir(parents=True, exist_ok=True)
        if self._path.exists():
            self._path.unlink()
        self._sock = socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM)
        self._sock.bind(str(self._path))
        self._sock.settimeout(0.2)
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._recv_loop, name="tunnelsync-notify", daemon=True
        )
        self._thread.start()

    def close(self) -> None:
        self._stop_event.set()
        self._thread.join(timeout=1)
        self._sock.close()
        try:
            os.unlink(self._path)
        except FileNotFoundError:
            pass

    def _recv_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                data = self._sock.recv(_MAX_DATAGRAM)
            except socket.timeout:
                continue
            except OSError:
                return
            if data.decode("utf-8", errors="ignore") != self._name:
                continue
            try:
                self._callback()
            except Exception:
                logger.exception("Notification callback failed")
