"""
code-agent-tools - Tool adapters for code-executing agents

Exposes an embedded Python interpreter with import allow-listing and typed
media results, plus encyclopedia, finance, generative media and vision tools,
all behind one uniform tool descriptor.
"""

__version__ = "0.1.0"

from .core.config import settings
from .core.logging import logger

__all__ = ["settings", "logger"]
