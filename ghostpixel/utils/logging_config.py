"""Logging setup shared by the CLI, the engine and the client.

One call to :func:`setup_logging` at startup gives:
    - a console handler on stderr with short, optionally colored labels
    - an optional log file, plain or JSON lines, rotated by size
    - context fields (``app``, ``image``) stamped on every line
    - Python warnings and uncaught exceptions routed into the log

Console line:
    2026-10-19T13:45:12.345Z | INF | app=ghostpixel image=ghost.png | Placed 12 pixels!
JSON line:
    {"t": "2026-10-19T13:45:12.345000+00:00", "lvl": "INFO", "name": "...", "pid": 1, "msg": "...", "app": "ghostpixel"}

Calling ``setup_logging`` again replaces the handlers it installed, so
tests and re-configuration never duplicate output.
"""

import contextvars
import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional


_context_var = contextvars.ContextVar('ghostpixel_log_context', default={})

# Handlers installed by the last setup_logging() call
_installed: List[logging.Handler] = []

LEVEL_LABELS = {
    'DEBUG': 'DBG',
    'INFO': 'INF',
    'WARNING': 'WRN',
    'ERROR': 'ERR',
    'CRITICAL': 'CRT',
}

_ANSI = {
    'DEBUG': '\033[36m',
    'INFO': '\033[32m',
    'WARNING': '\033[33m',
    'ERROR': '\033[31m',
    'CRITICAL': '\033[35m',
}
_ANSI_RESET = '\033[0m'


class ContextFormatter(logging.Formatter):
    """Render records as a console line or a JSON object, with context.

    Parameters
    ----------
    fmt_mode : str
        ``"human"`` or ``"json"``.
    use_color : bool
        Color the level label; ignored unless stderr is a terminal.
    """

    def __init__(self, fmt_mode: str = "human", use_color: bool = True):
        super().__init__()
        if fmt_mode not in ("human", "json"):
            raise ValueError(f"Unknown log format: {fmt_mode!r}")
        self.fmt_mode = fmt_mode
        self.use_color = use_color and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc)
        context = _context_var.get()
        if self.fmt_mode == "json":
            payload = {
                't': ts.isoformat(),
                'lvl': record.levelname,
                'name': record.name,
                'pid': os.getpid(),
                'msg': record.getMessage(),
                **context,
            }
            if record.exc_info:
                payload['exc'] = self.formatException(record.exc_info)
            return json.dumps(payload, default=str)

        label = LEVEL_LABELS.get(record.levelname, record.levelname[:3])
        if self.use_color and record.levelname in _ANSI:
            label = f"{_ANSI[record.levelname]}{label}{_ANSI_RESET}"
        fields = [ts.strftime('%Y-%m-%dT%H:%M:%S.%f')[:-3] + 'Z', label]
        if context:
            fields.append(' '.join(f"{k}={v}" for k, v in context.items()))
        fields.append(record.getMessage())
        line = ' | '.join(fields)
        if record.exc_info:
            line += '\n' + self.formatException(record.exc_info)
        return line


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    *,
    json: bool = False,
    color: bool = True,
    max_bytes: int = 0,
    backup_count: int = 3,
    capture_warnings: bool = True,
    quiet_libs: Optional[List[str]] = None,
    context: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Configure the root logger.

    Parameters
    ----------
    log_level : str
        Root level name, e.g. ``"INFO"``.
    log_file : str, optional
        Also log to this file (``~`` is expanded, parents are created).
    json : bool
        Write the file as JSON lines instead of console lines.
    color : bool
        Color console level labels.
    max_bytes : int
        Rotate the file once it exceeds this size; ``0`` never rotates.
    backup_count : int
        Rotated files to keep.
    capture_warnings : bool
        Route :mod:`warnings` into the ``py.warnings`` logger.
    quiet_libs : list[str], optional
        Loggers held at WARNING (e.g. ``["urllib3", "PIL"]``).
    context : dict, optional
        Context fields pushed for every subsequent record.

    Returns
    -------
    dict
        ``{"handlers": [...]}``, the handlers now installed.
    """
    root = logging.getLogger()
    for handler in _installed:
        root.removeHandler(handler)
        handler.close()
    _installed.clear()

    root.setLevel(getattr(logging, log_level.upper()))

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(ContextFormatter("human", color))
    _installed.append(console)

    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        if max_bytes > 0:
            file_handler = logging.handlers.RotatingFileHandler(
                path, maxBytes=max_bytes, backupCount=backup_count,
            )
        else:
            file_handler = logging.FileHandler(path)
        file_handler.setFormatter(
            ContextFormatter("json" if json else "human", use_color=False)
        )
        _installed.append(file_handler)

    for handler in _installed:
        root.addHandler(handler)

    for lib in quiet_libs or ():
        logging.getLogger(lib).setLevel(logging.WARNING)
    if capture_warnings:
        logging.captureWarnings(True)
    if context:
        push_context(**context)

    return {'handlers': list(_installed)}


def push_context(**fields: Any) -> None:
    """Stamp *fields* on every later record (``push_context(image="a.png")``)."""
    _context_var.set({**_context_var.get(), **fields})


def pop_context(keys: Optional[List[str]] = None) -> None:
    """Remove context fields; all of them when *keys* is None."""
    if keys is None:
        _context_var.set({})
        return
    _context_var.set({k: v for k, v in _context_var.get().items() if k not in keys})


def install_excepthook() -> None:
    """Log uncaught exceptions (except Ctrl+C) before the process exits."""
    def log_exception(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return
        logging.getLogger(__name__).critical(
            "Uncaught exception", exc_info=(exc_type, exc_value, exc_traceback),
        )

    sys.excepthook = log_exception


def shutdown() -> None:
    """Flush and close every handler (end of ``main()``)."""
    logging.shutdown()
