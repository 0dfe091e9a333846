"""Browser-facing components: connection, page scope, operations, scripts and downloads."""
from browser_node.browser.connection import BrowserConnector, BrowserHandle
from browser_node.browser.downloads import DownloadCapture, attach_downloads
from browser_node.browser.operations import PageOperationExecutor, build_target_url
from browser_node.browser.sandbox import ScriptRunner

__all__ = [
    "BrowserConnector",
    "BrowserHandle",
    "DownloadCapture",
    "attach_downloads",
    "PageOperationExecutor",
    "build_target_url",
    "ScriptRunner",
]
