"""Tests for engine logging setup."""

import logging
import logging.handlers
import os
from unittest.mock import patch

from engine_logging import configure_engine_loggers, get_component_logger, setup_logging
from engine_logging.setup import ENGINE_COMPONENTS


def test_setup_logging_writes_rotating_file(tmp_path):
    logger = setup_logging("engine_test", log_dir=str(tmp_path), console_output=False)

    logger.info("sweep finished")
    for handler in logger.handlers:
        handler.flush()

    rotating = [
        h for h in logger.handlers if isinstance(h, logging.handlers.RotatingFileHandler)
    ]
    assert len(rotating) == 1
    assert rotating[0].maxBytes == 10 * 1024 * 1024
    assert rotating[0].backupCount == 5
    assert logger.propagate is False

    log_files = list(tmp_path.glob("engine_test_*.log"))
    assert len(log_files) == 1
    assert "sweep finished" in log_files[0].read_text(encoding="utf-8")


def test_setup_logging_replaces_handlers(tmp_path):
    setup_logging("engine_test_repeat", log_dir=str(tmp_path), console_output=True)
    logger = setup_logging("engine_test_repeat", log_dir=str(tmp_path), console_output=True)

    assert len(logger.handlers) == 2


def test_child_module_loggers_reach_component_file(tmp_path):
    setup_logging("engine_test_child", log_dir=str(tmp_path), console_output=False)

    logging.getLogger("engine_test_child.store").warning("store degraded")
    for handler in logging.getLogger("engine_test_child").handlers:
        handler.flush()

    text = next(tmp_path.glob("engine_test_child_*.log")).read_text(encoding="utf-8")
    assert "store degraded" in text
    assert "engine_test_child.store" in text


def test_get_component_logger_reuses_configured_logger(tmp_path):
    configured = setup_logging("engine_test_reuse", log_dir=str(tmp_path), console_output=False)

    assert get_component_logger("engine_test_reuse") is configured
    assert len(configured.handlers) == 1


def test_configure_engine_loggers_sets_up_every_package(tmp_path):
    try:
        with patch.dict(os.environ, {"KNOWLEDGE_STATE_DIR": str(tmp_path)}):
            configure_engine_loggers(log_level="DEBUG", console_output=False)

        for component in ENGINE_COMPONENTS:
            logger = logging.getLogger(component)
            assert logger.level == logging.DEBUG
            assert len(logger.handlers) == 1
            assert list((tmp_path / "logs" / component).glob(f"{component}_*.log"))
    finally:
        for component in ENGINE_COMPONENTS:
            logger = logging.getLogger(component)
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
                handler.close()
            logger.setLevel(logging.NOTSET)
            logger.propagate = True
