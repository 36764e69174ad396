"""Runtime diagnostics helpers for optional evaluation trace logging."""
from __future__ import annotations

import threading
from pathlib import Path

__all__ = [
    "DEFAULT_TRACE_PATH",
    "enable_trace_logging",
    "log_trace",
    "trace_log_path",
    "trace_logging_enabled",
]


DEFAULT_TRACE_PATH = Path("logs/framegraph_trace.log")

_TRACE_ENABLED = False
_LOG_PATH = DEFAULT_TRACE_PATH
_LOG_LOCK = threading.Lock()


def enable_trace_logging(enabled: bool, path: str | Path | None = None) -> None:
    """Enable or disable the evaluation trace.

    When ``path`` is given, subsequent trace lines are appended there instead
    of :data:`DEFAULT_TRACE_PATH`.
    """

    global _TRACE_ENABLED, _LOG_PATH
    _TRACE_ENABLED = bool(enabled)
    if path is not None:
        _LOG_PATH = Path(path)


def trace_logging_enabled() -> bool:
    """Return ``True`` when the evaluation trace is enabled."""

    return _TRACE_ENABLED


def trace_log_path() -> Path:
    return _LOG_PATH


def log_trace(message: str) -> None:
    """Append ``message`` to the trace log when tracing is enabled."""

    if not _TRACE_ENABLED:
        return
    try:
        _LOG_PATH.parent.mkdir(parents=True, exist_ok=True)
    except OSError:
        return
    try:
        with _LOG_LOCK:
            with _LOG_PATH.open("a", encoding="utf-8") as handle:
                handle.write(f"{message}\n")
    except OSError:
        return
