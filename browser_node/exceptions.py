"""Exception hierarchy for Browser Node.

Errors fall into two groups. Connection errors (``BrowserConnectionError``) are
always fatal and abort the run before any item is processed. Every other error
raised while an item is processed is recoverable: the runner either turns it into
a per-item error result or, when failures are not tolerated, re-raises it wrapped
in a ``NodeOperationError``.
"""
from typing import Any, Dict, Optional


class BrowserNodeError(Exception):
    """Base class for all Browser Node errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the error for logging or result payloads."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


class BrowserConnectionError(BrowserNodeError):
    """The browser could not be launched or attached to."""

    def __init__(
        self,
        message: str,
        mode: str,
        endpoint: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        # endpoint must already be masked by the caller
        super().__init__(message, details={"mode": mode, "endpoint": endpoint})
        self.mode = mode
        self.endpoint = endpoint
        self.cause = cause


class ItemError(BrowserNodeError):
    """Base class for recoverable errors tied to a single item."""

    def __init__(self, message: str, url: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details)
        self.url = url


class NavigationError(ItemError):
    """The target could not be reached or answered with an error status."""

    def __init__(self, message: str, url: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, url=url, details={"status_code": status_code})
        self.status_code = status_code


class CaptureError(ItemError):
    """Rendering a screenshot or PDF failed."""


class InputValidationError(ItemError):
    """Item parameters are malformed."""

    def __init__(self, message: str, param_name: Optional[str] = None, provided_value: Any = None, url: Optional[str] = None):
        super().__init__(
            message,
            url=url,
            details={"param_name": param_name, "provided_value": provided_value},
        )
        self.param_name = param_name
        self.provided_value = provided_value


class UnsupportedOperationError(ItemError):
    """The requested operation is not one the executor knows."""


class ScriptExecutionError(ItemError):
    """A custom script failed or returned a value of the wrong shape."""


class NodeOperationError(BrowserNodeError):
    """A per-item failure that aborts the run because failures are not tolerated."""

    def __init__(
        self,
        message: str,
        item_index: int,
        url: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, details={"item_index": item_index, "url": url})
        self.item_index = item_index
        self.url = url
        self.cause = cause
