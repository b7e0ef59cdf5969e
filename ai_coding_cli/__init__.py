"""AI Coding CLI - a terminal coding agent for locally hosted models."""

__version__ = "0.1.0"

from ai_coding_cli.config import Config
from ai_coding_cli.main import main

__all__ = ["Config", "main", "__version__"]
