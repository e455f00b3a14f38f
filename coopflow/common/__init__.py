"""Common utilities for coopflow."""

from .logger import configure_logging, log_context
from .config import load_config

__all__ = ["configure_logging", "load_config", "log_context"]
