"""
Core configuration and logging for code-agent-tools.
"""

from .config import Settings, settings
from .logging import audit_logger, configure_logging, logger

__all__ = ["Settings", "settings", "logger", "audit_logger", "configure_logging"]
