"""Logging package."""
from .setup import setup_logging, get_component_logger, configure_engine_loggers

__all__ = ["setup_logging", "get_component_logger", "configure_engine_loggers"]
