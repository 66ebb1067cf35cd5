# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

import io
import logging
from datetime import datetime

from rich.console import Console
from rich.logging import RichHandler

from rlnq_lib.core.logger import CFG, get_logger


def test_logger_debug_mode(monkeypatch):
    monkeypatch.setenv(CFG.env_vars.debug_mode, "1")
    logger = get_logger("test_debug")

    assert logger.level == logging.DEBUG


def test_logger_non_debug_mode(monkeypatch):
    monkeypatch.delenv(CFG.env_vars.debug_mode, raising=False)
    logger = get_logger("test_info")

    assert logger.level == logging.INFO


def test_logger_does_not_stack_handlers():
    logger = get_logger("test_no_stacking")
    get_logger("test_no_stacking")

    handlers = [h for h in logger.handlers if isinstance(h, RichHandler)]
    assert len(handlers) == 1
    assert logger.propagate is False


def _make_stringio_logger(monkeypatch, name: str, *, show_time=False):
    """Return a logger writing into a StringIO buffer."""
    buf = io.StringIO()

    monkeypatch.setitem(
        get_logger.__globals__,
        "Console",
        lambda **kwargs: Console(file=buf, force_terminal=False, **kwargs),
    )

    logging.getLogger(name).handlers.clear()
    logger = get_logger(name, show_time=show_time)
    return logger, buf


def test_logger_outputs_time_in_debug_mode(monkeypatch):
    monkeypatch.setenv(CFG.env_vars.debug_mode, "1")
    logger, buf = _make_stringio_logger(monkeypatch, "test_logger_debug_time")
    logger.info("hello")

    # ignore seconds
    timestamp = datetime.now().strftime(CFG.date_formats.standard)[:-3]
    assert timestamp in buf.getvalue()
    assert "hello" in buf.getvalue()


def test_logger_hides_debug_messages_outside_debug_mode(monkeypatch):
    monkeypatch.delenv(CFG.env_vars.debug_mode, raising=False)
    logger, buf = _make_stringio_logger(monkeypatch, "test_logger_hidden_debug")
    logger.debug("invisible")
    logger.info("visible")

    output = buf.getvalue()
    assert "invisible" not in output
    assert "visible" in output
