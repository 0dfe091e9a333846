"""Utility functions for Browser Node."""
from browser_node.utils.logging import NodeLogger, console, get_logger

__all__ = [
    "NodeLogger",
    "console",
    "get_logger",
]
