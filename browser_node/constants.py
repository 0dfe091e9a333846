"""Constants used throughout Browser Node."""
from enum import Enum
from typing import Dict, Tuple


class Operation(str, Enum):
    """Operations the node can run against each input item."""
    GET_PAGE_CONTENT = "getPageContent"
    GET_SCREENSHOT = "getScreenshot"
    GET_PDF = "getPDF"
    RUN_CUSTOM_SCRIPT = "runCustomScript"

    @classmethod
    def is_valid(cls, value: str) -> bool:
        """Check whether a string names a supported operation."""
        return value in {op.value for op in cls}


class HeadlessMode(str, Enum):
    """How a locally launched browser is displayed."""
    HEADFUL = "headful"
    HEADLESS = "headless"
    SHELL = "shell"


class ExecutionMode(str, Enum):
    """How the host workflow was started."""
    MANUAL = "manual"
    TRIGGER = "trigger"
    WEBHOOK = "webhook"
    INTERNAL = "internal"
    CLI = "cli"


class ConnectionMode(str, Enum):
    """How the browser handle was acquired."""
    LOCAL = "local"
    REMOTE = "remote"


class LogLevel(str, Enum):
    """Log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# https://www.chromium.org/developers/how-tos/run-chromium-with-flags/
CONTAINER_LAUNCH_ARGS: Tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_14_1) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/73.0.3683.75 Safari/537.36"
)

# Playwright channel used for the lightweight headless shell build
HEADLESS_SHELL_CHANNEL = "chromium-headless-shell"

DEFAULT_PROTOCOL_TIMEOUT_MS = 180_000
DEFAULT_NAVIGATION_TIMEOUT_MS = 30_000
DEFAULT_WAIT_UNTIL = "load"
WAIT_UNTIL_EVENTS = ("load", "domcontentloaded", "networkidle", "commit")

DOWNLOAD_DIR_PREFIX = "browser-node-downloads"
SINGLE_DOWNLOAD_BINARY_KEY = "data"

SCRIPT_RETURN_SHAPE_MESSAGE = (
    "Custom script must return an array of items. Please ensure your script "
    "returns an array, e.g., return [{'key': 'value'}]."
)

PAPER_FORMATS = (
    "Letter", "Legal", "Tabloid", "Ledger",
    "A0", "A1", "A2", "A3", "A4", "A5", "A6",
)

# Emoji mapping by log type and action
EMOJI_MAP: Dict[str, str] = {
    "start": "🚀",
    "success": "✅",
    "error": "❌",
    "warning": "⚠️",
    "info": "ℹ️",
    "debug": "🔍",
    "critical": "🔥",

    # Component-specific emojis
    "config": "🔧",
    "browser": "🌐",
    "connect": "🔌",
    "page": "📄",
    "batch": "📦",
    "script": "📜",
    "console": "💬",
    "download": "📥",
    "camera": "📸",
    "pdf": "🖨️",
    "cleanup": "🧹",
    "time": "⏱️",
    "test": "🧪",
}
