from __future__ import annotations

import logging as py_logging
from pathlib import Path

import quotaprobe.logging as qp_logging


def test_default_log_path_is_expanded() -> None:
    path = qp_logging.default_log_path()

    assert path.is_absolute()
    assert path.name == "quotaprobe.log"


def test_warning_alias_maps_to_warning_level() -> None:
    logger = qp_logging.configure_logging("warning")

    assert logger.level == qp_logging.LOG_LEVELS["WARN"]


def test_unknown_log_level_falls_back_to_info() -> None:
    logger = qp_logging.configure_logging("not-a-level")

    assert logger.level == py_logging.INFO


def test_environment_level_applies_when_none_given(monkeypatch) -> None:
    monkeypatch.setenv(qp_logging.LOG_LEVEL_ENV, "debug")

    logger = qp_logging.configure_logging(None)

    assert logger.level == py_logging.DEBUG


def test_configure_logging_resets_existing_handlers() -> None:
    logger = qp_logging.configure_logging("INFO")
    assert len(logger.handlers) == 1

    logger = qp_logging.configure_logging("INFO")

    assert len(logger.handlers) == 1
    assert logger.propagate is False


def test_configure_logging_adds_debug_file_handler(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "quotaprobe.log"

    logger = qp_logging.configure_logging("ERROR", log_file=log_file)
    file_handlers = [
        handler for handler in logger.handlers if isinstance(handler, py_logging.FileHandler)
    ]
    console = [handler for handler in logger.handlers if type(handler) is py_logging.StreamHandler]

    assert len(file_handlers) == 1
    assert file_handlers[0].level == py_logging.DEBUG
    assert console[0].level == py_logging.ERROR
    assert logger.level == py_logging.DEBUG
    assert log_file.exists()


def test_configure_logging_ignores_file_handler_oserror(monkeypatch, tmp_path: Path) -> None:
    def raise_os_error(*args: object, **kwargs: object) -> py_logging.Handler:
        raise OSError("disk full")

    monkeypatch.setattr(qp_logging.py_logging, "FileHandler", raise_os_error)

    logger = qp_logging.configure_logging("INFO", log_file=tmp_path / "nope" / "quotaprobe.log")

    assert len(logger.handlers) == 1
    assert type(logger.handlers[0]) is py_logging.StreamHandler
    assert logger.level == py_logging.INFO
