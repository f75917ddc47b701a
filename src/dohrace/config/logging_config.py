"""Process-wide logging setup for the dohrace proxy.

Brief:
  ``init_logging`` installs the root handlers once at startup. Every record is
  rendered as ``<UTC time> [level] logger: message``; the syslog handler drops
  the timestamp since syslog stamps records itself. uvicorn is started with
  ``log_config=None`` so its loggers propagate here too.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple, Union

LOG_FORMAT = "%(asctime)s %(level_tag)s %(name)s: %(message)s"
SYSLOG_FORMAT = "%(level_tag)s %(name)s: %(message)s"
DEFAULT_SYSLOG_ADDRESS = "/dev/log"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "crit": logging.CRITICAL,
    "critical": logging.CRITICAL,
}

_TAGS = {
    logging.DEBUG: "[debug]",
    logging.INFO: "[info]",
    logging.WARNING: "[warn]",
    logging.ERROR: "[error]",
    logging.CRITICAL: "[crit]",
}


class LevelTagFormatter(logging.Formatter):
    """Formatter exposing a ``level_tag`` field and UTC ISO-8601 timestamps.

    Example:
        >>> fmt = LevelTagFormatter(LOG_FORMAT)
        >>> rec = logging.LogRecord("dohrace.flow", logging.WARNING, "", 0, "x", (), None)
        >>> rec.created = 0.0
        >>> fmt.format(rec)
        '1970-01-01T00:00:00Z [warn] dohrace.flow: x'
    """

    def formatTime(self, record, datefmt=None):
        return datetime.fromtimestamp(record.created, timezone.utc).strftime(
            "%Y-%m-%dT%H:%M:%SZ"
        )

    def format(self, record):
        record.level_tag = _TAGS.get(record.levelno, f"[lvl{record.levelno}]")
        return super().format(record)


def resolve_level(name: Any) -> int:
    """Map a level name such as 'warn' to a logging constant (default INFO)."""
    return _LEVELS.get(str(name or "info").lower(), logging.INFO)


def syslog_address(target: Any) -> Union[str, Tuple[str, int]]:
    """Brief: Turn a ``syslog`` setting into a SysLogHandler address.

    Inputs:
      - target: True (local socket), a socket path, or ``host:port`` for UDP.

    Outputs:
      - str socket path or (host, port) tuple.

    Example:
        >>> syslog_address(True)
        '/dev/log'
        >>> syslog_address("logs.example:5514")
        ('logs.example', 5514)
    """
    if not isinstance(target, str) or not target.strip():
        return DEFAULT_SYSLOG_ADDRESS
    target = target.strip()
    if target.startswith("/"):
        return target
    host, _, port = target.rpartition(":")
    if host and port.isdigit():
        return host, int(port)
    return target, 514


def _file_handler(path: str) -> logging.Handler:
    full = os.path.abspath(os.path.expanduser(path))
    os.makedirs(os.path.dirname(full), exist_ok=True)
    return logging.FileHandler(full, mode="a", encoding="utf-8")


def init_logging(cfg: Optional[Dict[str, Any]]) -> None:
    """
    Configure the root logger from the ``logging`` config section.

    Args:
        cfg: mapping with optional keys:
            - level: debug, info, warn, error, crit (default: info)
            - stderr: log to stderr (default: True)
            - file: path of an append-only log file
            - syslog: True for /dev/log, a socket path, or "host:port"

    Example config:
        {"level": "debug", "file": "./dohrace.log", "syslog": "127.0.0.1:514"}
    """
    cfg = cfg or {}
    level = resolve_level(cfg.get("level"))

    root = logging.getLogger()
    root.setLevel(level)
    for h in list(root.handlers):
        root.removeHandler(h)

    handlers = []
    if cfg.get("stderr", True):
        handlers.append(logging.StreamHandler(sys.stderr))
    file_path = cfg.get("file")
    if isinstance(file_path, str) and file_path.strip():
        handlers.append(_file_handler(file_path.strip()))

    formatter = LevelTagFormatter(LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    if cfg.get("syslog"):
        try:
            handler = logging.handlers.SysLogHandler(
                address=syslog_address(cfg["syslog"])
            )
        except (OSError, ValueError) as e:  # pragma: no cover - environment specific
            root.warning("Failed to configure syslog: %s", e)
        else:
            handler.setFormatter(LevelTagFormatter(SYSLOG_FORMAT))
            root.addHandler(handler)

    logging.captureWarnings(True)
