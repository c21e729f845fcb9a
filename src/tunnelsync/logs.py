"""Logging setup and diagnostic log export."""

from __future__ import annotations

import logging
import shutil
import time
from pathlib import Path

from tunnelsync.errors import LogExportError

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
EXPORT_PREFIX = "tunnelsync-provider-log"


def setup_logging(
    verbose: bool = False,
    log_file: Path | None = None,
    file_level: int | None = None,
) -> None:
    """Configure console logging and an optional file log for export.

    ``file_level`` overrides the file log level, which otherwise follows
    ``verbose``.
    """
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%H:%M:%S")

    if log_file is None:
        return

    root = logging.getLogger()
    # Pin console handlers so the file log can capture INFO without echoing it
    for existing in root.handlers:
        existing.setLevel(level)
    if file_level is None:
        file_level = logging.DEBUG if verbose else logging.INFO
    root.setLevel(min(level, file_level))

    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setLevel(file_level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)


def export_logs(log_file: str | Path, shared_dir: str | Path) -> Path:
    """Copy the tunnel log into the shared directory for the host to pick up."""
    log_file = Path(log_file)
    shared_dir = Path(shared_dir)
    try:
        shared_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise LogExportError(f"container unavailable: {exc}") from exc

    try:
        if log_file.stat().st_size == 0:
            raise LogExportError("empty logs")
    except FileNotFoundError as exc:
        raise LogExportError("empty logs") from exc

    target = shared_dir / f"{EXPORT_PREFIX}-{int(time.time())}.log"
    try:
        shutil.copyfile(log_file, target)
    except OSError as exc:
        raise LogExportError(f"copy failed: {exc}") from exc
    logging.getLogger(__name__).info("Exported logs to %s", target)
    return target
