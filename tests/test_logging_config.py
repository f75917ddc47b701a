"""
Brief: Tests for dohrace.config.logging_config.

Inputs:
  - None

Outputs:
  - None
"""

import logging
import logging.handlers
from pathlib import Path

import pytest

from dohrace.config.logging_config import (
    LOG_FORMAT,
    SYSLOG_FORMAT,
    LevelTagFormatter,
    init_logging,
    resolve_level,
    syslog_address,
)


@pytest.fixture(autouse=True)
def _restore_logging():
    yield
    init_logging({"level": "info"})


def test_init_logging_adds_stderr_handler(caplog):
    """
    Brief: init_logging configures root logger with stderr handler by default.

    Inputs:
      - cfg: minimal dict with level

    Outputs:
      - None: Asserts StreamHandler present and level applied
    """
    caplog.set_level(logging.DEBUG)
    init_logging({"level": "debug"})
    root = logging.getLogger()
    assert any(isinstance(h, logging.StreamHandler) for h in root.handlers)
    assert root.level == logging.DEBUG
    assert all(isinstance(h.formatter, LevelTagFormatter) for h in root.handlers)


def test_init_logging_without_stderr_has_no_handlers():
    init_logging({"level": "warn", "stderr": False})
    root = logging.getLogger()
    assert root.handlers == []
    assert root.level == logging.WARNING


def test_init_logging_file_handler_writes(tmp_path):
    """
    Brief: init_logging creates the log directory and writes tagged lines.

    Inputs:
      - cfg: file path and level

    Outputs:
      - None: Asserts file created and contains the formatted message
    """
    log_path = tmp_path / "logs" / "dohrace.log"
    init_logging({"level": "info", "stderr": False, "file": str(log_path)})
    logging.getLogger("dohrace.test").info("file message")
    for h in logging.getLogger().handlers:
        h.flush()
    content = Path(log_path).read_text()
    assert "Z [info] dohrace.test: file message" in content


def test_init_logging_syslog_uses_address(monkeypatch):
    """
    Brief: init_logging attaches a syslog handler at the configured address.

    Inputs:
      - syslog: True or "host:port"

    Outputs:
      - None: Asserts address passed and timestamp-free formatter installed
    """
    created = {}

    class DummySysLogHandler(logging.Handler):
        def __init__(self, address=None):
            super().__init__()
            created["address"] = address

        def emit(self, record):
            created["line"] = self.format(record)

    monkeypatch.setattr(logging.handlers, "SysLogHandler", DummySysLogHandler)

    init_logging({"stderr": False, "syslog": True})
    assert created["address"] == "/dev/log"

    init_logging({"stderr": False, "syslog": "127.0.0.1:5514"})
    assert created["address"] == ("127.0.0.1", 5514)
    logging.getLogger("dohrace.flow").warning("escalating")
    assert created["line"] == "[warn] dohrace.flow: escalating"


def test_formatter_tags_and_utc_timestamp():
    fmt = LevelTagFormatter(LOG_FORMAT)
    rec = logging.LogRecord("n", logging.ERROR, __file__, 1, "m", (), None)
    rec.created = 0.0
    assert fmt.format(rec) == "1970-01-01T00:00:00Z [error] n: m"

    rec2 = logging.LogRecord("n2", 25, __file__, 2, "m2", (), None)
    assert LevelTagFormatter(SYSLOG_FORMAT).format(rec2) == "[lvl25] n2: m2"


@pytest.mark.parametrize(
    "target,expected",
    [
        (True, "/dev/log"),
        ("", "/dev/log"),
        ("/var/run/syslog", "/var/run/syslog"),
        ("logs.example:5514", ("logs.example", 5514)),
        ("logs.example", ("logs.example", 514)),
    ],
)
def test_syslog_address(target, expected):
    assert syslog_address(target) == expected


def test_resolve_level_aliases():
    assert resolve_level("warn") == logging.WARNING
    assert resolve_level("CRIT") == logging.CRITICAL
    assert resolve_level(None) == logging.INFO
    assert resolve_level("nonsense") == logging.INFO
