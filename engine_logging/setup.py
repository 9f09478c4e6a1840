"""
Logging Setup
Configures rotating file and console logging for the engine's packages.
"""
import logging
import logging.handlers
import os
import sys
from datetime import datetime
from typing import Optional

from knowledge.config import resolve_state_dir

ENGINE_COMPONENTS = ("knowledge", "assistant")


def setup_logging(
    component: str,
    log_dir: Optional[str] = None,
    log_level: str = "INFO",
    console_output: bool = True,
) -> logging.Logger:
    """
    Setup logging for a component.

    Module loggers created with logging.getLogger(__name__) inside the
    component's package propagate into the handlers installed here.

    Args:
        component: Logger name, usually a top-level package ("knowledge")
        log_dir: Directory for log files (defaults to STATE_DIR/logs/{component}/)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        console_output: Whether to also log to console

    Returns:
        Configured logger instance

    Example:
        >>> from engine_logging import setup_logging
        >>> logger = setup_logging("knowledge", log_level="DEBUG")
        >>> logger.info("Cleanup started")
    """
    if log_dir is None:
        log_dir = resolve_state_dir() / "logs" / component.lower()
    else:
        log_dir = os.path.expanduser(log_dir)

    os.makedirs(log_dir, exist_ok=True)

    level = getattr(logging, log_level.upper(), logging.INFO)
    logger = logging.getLogger(component)
    logger.setLevel(level)

    # Clear existing handlers to avoid duplicates
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    detailed_formatter = logging.Formatter(
        fmt="%(asctime)s | %(name)s | %(levelname)s | %(filename)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    simple_formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)s | %(message)s",
        datefmt="%H:%M:%S",
    )

    log_file = os.path.join(
        log_dir, f"{component.lower()}_{datetime.now().strftime('%Y%m%d')}.log"
    )
    file_handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(detailed_formatter)
    logger.addHandler(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(simple_formatter)
        logger.addHandler(console_handler)

    logger.propagate = False

    logger.debug(f"{component} logging initialized, log file: {log_file}")
    return logger


def get_component_logger(component: str) -> logging.Logger:
    """
    Get or create a configured logger for a component.
    """
    logger = logging.getLogger(component)
    if not logger.handlers:
        setup_logging(component)
    return logger


def configure_engine_loggers(log_level: Optional[str] = None, console_output: bool = True) -> None:
    """Configure loggers for every engine package."""
    level = log_level or os.getenv("KNOWLEDGE_LOG_LEVEL", os.getenv("LOG_LEVEL", "INFO"))
    for component in ENGINE_COMPONENTS:
        setup_logging(component, log_level=level, console_output=console_output)
