"""
Simple JSON logging utilities for executions.

- Writes to file only (never stdout/stderr, which belong to the caller).
- File location defaults to $SHEXECUTOR_LOG_DIR or ~/.cache/shexecutor/logs/.
- Records below $SHEXECUTOR_LOG_LEVEL (default: info) are dropped.
"""

import json
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

# A very lightweight thread-safe JSON logger.
_lock = threading.Lock()
_log_dir_env = "SHEXECUTOR_LOG_DIR"
_log_level_env = "SHEXECUTOR_LOG_LEVEL"

_LEVELS = {"debug": 10, "info": 20, "warn": 30, "error": 40}


def _log_dir() -> Path:
    root = os.environ.get(_log_dir_env)
    if root:
        p = Path(root)
    else:
        p = Path.home() / ".cache" / "shexecutor" / "logs"
    try:
        p.mkdir(parents=True, exist_ok=True)
    except OSError:
        # Fall back to a temp directory if we cannot create the directory
        p = Path(tempfile.gettempdir()) / "shexecutor" / "logs"
        p.mkdir(parents=True, exist_ok=True)
    return p


def _threshold() -> int:
    name = os.environ.get(_log_level_env, "info").strip().lower()
    return _LEVELS.get(name, _LEVELS["info"])


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


def log_json(level: str, message: str, **fields: Any) -> None:
    """
    Emit a single-line JSON log to file only.
    Never raises; failures are swallowed.
    """
    level = level.lower()
    if _LEVELS.get(level, _LEVELS["info"]) < _threshold():
        return
    record = {
        "ts": _now_iso(),
        "level": level,
        "msg": message,
        "thread": threading.current_thread().name,
        **fields,
    }
    text = json.dumps(record, ensure_ascii=False, default=str)

    with _lock:
        try:
            logfile = _log_dir() / "shexecutor.log"
            with logfile.open("a", encoding="utf-8") as f:
                f.write(text + "\n")
        except Exception:
            pass


def debug(message: str, **fields: Any) -> None:
    log_json("debug", message, **fields)


def info(message: str, **fields: Any) -> None:
    log_json("info", message, **fields)


def warn(message: str, **fields: Any) -> None:
    log_json("warn", message, **fields)


def error(message: str, **fields: Any) -> None:
    log_json("error", message, **fields)
