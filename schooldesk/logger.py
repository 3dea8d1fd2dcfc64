from __future__ import annotations

import logging
import traceback
from datetime import datetime
from pathlib import Path

from .constants import ERROR_LOG_PATH

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


class ErrorLogger:
    def __init__(self, path: Path = ERROR_LOG_PATH):
        self.path = path

    def log_exception(self, exc: BaseException, context: str = "") -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        ts = now_ts()
        with self.path.open("a", encoding="utf-8") as f:
            f.write(f"[{ts}] {context}\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
            f.write("\n")


def configure_logging(path: Path | None = None, level: int = logging.INFO) -> logging.Logger:
    """Send the package's log records to ``path`` (or stderr when ``path`` is None)."""
    log = logging.getLogger("schooldesk")
    log.setLevel(level)
    for h in list(log.handlers):
        if getattr(h, "_schooldesk", False):
            log.removeHandler(h)
            h.close()

    if path is not None:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(path, encoding="utf-8")
    else:
        handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._schooldesk = True  # type: ignore[attr-defined]
    log.addHandler(handler)
    return log


def now_ts() -> str:
    return datetime.now().isoformat(timespec="seconds")
