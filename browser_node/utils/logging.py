"""Enhanced logging using Rich."""
import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional, Union

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.theme import Theme

from browser_node.config import get_config
from browser_node.constants import EMOJI_MAP

RICH_THEME = Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "red",
    "critical": "red reverse",
    "debug": "dim",
    "success": "green",
    "url": "blue underline",
    "item": "magenta",
    "time": "bright_black",
})

console = Console(theme=RICH_THEME, highlight=True, stderr=True)


class NodeLogger:
    """Logger with Rich formatting, emojis and key=value context."""

    def __init__(self, name: str, level: Union[str, int, None] = None):
        """Initialize the logger.

        Args:
            name: Logger name
            level: Log level, defaults to the configured level
        """
        self.name = name
        logging_config = get_config().logging
        self.emoji_enabled = logging_config.emoji_enabled

        self.console = console
        rich_handler = RichHandler(
            console=self.console,
            rich_tracebacks=True,
            markup=True,
            show_time=logging_config.show_timestamps,
            show_path=False,
            enable_link_path=False,
        )

        handlers = [rich_handler]
        if logging_config.file:
            log_path = Path(logging_config.file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path)
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            ))
            handlers.append(file_handler)

        self.logger = logging.getLogger(name)

        level = level or logging_config.level
        if isinstance(level, str):
            level = getattr(logging, level.upper())
        self.logger.setLevel(level)

        for existing in list(self.logger.handlers):
            self.logger.removeHandler(existing)
        for new_handler in handlers:
            self.logger.addHandler(new_handler)
        self.logger.propagate = False

    def _format_message(self, message: str, emoji_key: Optional[str] = None, **kwargs) -> str:
        """Format log message with emoji and optional metadata.

        Args:
            message: The log message
            emoji_key: Key for emoji lookup
            **kwargs: Additional context data to include

        Returns:
            Formatted message
        """
        emoji = ""
        if self.emoji_enabled and emoji_key and emoji_key in EMOJI_MAP:
            emoji = f"{EMOJI_MAP[emoji_key]} "

        formatted_message = f"{emoji}{escape(message)}"

        if kwargs:
            context_pairs = []
            for key, value in kwargs.items():
                if key == "time" and isinstance(value, (int, float)):
                    context_pairs.append(f"[time]{value:.2f}s[/time]")
                elif key == "url" and value:
                    context_pairs.append(f"[url]{escape(str(value))}[/url]")
                elif key == "item" and value is not None:
                    context_pairs.append(f"[item]item={value}[/item]")
                else:
                    context_pairs.append(escape(f"{key}={value}"))
            if context_pairs:
                formatted_message = f"{formatted_message} " + " ".join(context_pairs)

        return formatted_message

    def _log(self, level: int, message: str, emoji_key: Optional[str], exc_info=None, **kwargs):
        self.logger.log(level, self._format_message(message, emoji_key, **kwargs), exc_info=exc_info)

    def debug(self, message: str, emoji_key: Optional[str] = "debug", **kwargs):
        """Log a debug message."""
        self._log(logging.DEBUG, message, emoji_key, **kwargs)

    def info(self, message: str, emoji_key: Optional[str] = "info", **kwargs):
        """Log an info message."""
        self._log(logging.INFO, message, emoji_key, **kwargs)

    def warning(self, message: str, emoji_key: Optional[str] = "warning", **kwargs):
        """Log a warning message."""
        self._log(logging.WARNING, message, emoji_key, **kwargs)

    def error(self, message: str, emoji_key: Optional[str] = "error", **kwargs):
        """Log an error message."""
        self._log(logging.ERROR, message, emoji_key, **kwargs)

    def critical(self, message: str, emoji_key: Optional[str] = "critical", **kwargs):
        """Log a critical message."""
        self._log(logging.CRITICAL, message, emoji_key, **kwargs)

    def success(self, message: str, emoji_key: Optional[str] = "success", **kwargs):
        """Log a success message (info level with success styling)."""
        exc_info = kwargs.pop("exc_info", None)
        formatted = self._format_message(message, emoji_key, **kwargs)
        self.logger.info(f"[success]{formatted}[/success]", exc_info=exc_info)


@lru_cache(maxsize=32)
def get_logger(name: str) -> NodeLogger:
    """Get a logger instance with caching.

    Args:
        name: Logger name

    Returns:
        NodeLogger instance
    """
    return NodeLogger(name)
