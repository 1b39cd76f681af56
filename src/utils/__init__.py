"""Utility modules for the sender sync engine."""

from .config import Config
from .logger import configure_logging, get_logger, setup_logger

__all__ = ["setup_logger", "get_logger", "configure_logging", "Config"]
