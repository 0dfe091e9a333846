"""Shared fixtures: in-memory stand-ins for the Playwright driver."""
import asyncio
import os
from typing import Any, Dict, List, Optional, Tuple

import pytest
from pytest import MonkeyPatch

from browser_node.browser.connection import BrowserConnector
from browser_node.config import NodeSettings, reset_config
from browser_node.constants import ExecutionMode
from browser_node.host import NodeExecutionContext
from browser_node.orchestrator import BrowserNodeRunner

HOST_ENV_VARS = (
    "BROWSER_WS_ENDPOINT",
    "BROWSER_WS_TOKEN",
    "CODE_ENABLE_STDOUT",
    "NODE_FUNCTION_ALLOW_BUILTIN",
    "NODE_FUNCTION_ALLOW_EXTERNAL",
)


class FakeBehavior:
    """What the fake browser does when pages navigate, render and download."""

    def __init__(self):
        self.statuses: Dict[str, int] = {}
        self.delays: Dict[str, float] = {}
        self.goto_errors: Dict[str, Exception] = {}
        self.no_response: set = set()
        self.screenshot_error: Optional[Exception] = None
        self.downloads: List[Tuple[str, bytes]] = []
        self.events: List[Tuple[str, str]] = []


class FakeResponse:
    def __init__(self, status: int = 200, headers: Optional[Dict[str, str]] = None):
        self.status = status
        self.headers = headers or {"content-type": "text/html"}


class FakeKeyboard:
    def __init__(self):
        self.typed: List[str] = []

    async def type(self, text: str, **kwargs):
        self.typed.append(text)

    async def press(self, key: str, **kwargs):
        self.typed.append(f"<{key}>")


class FakeCDPSession:
    def __init__(self, browser: "FakeBrowser"):
        self.browser = browser

    async def send(self, method: str, params: Optional[Dict[str, Any]] = None):
        self.browser.cdp_calls.append((method, params or {}))
        return {}


class FakeDownload:
    def __init__(self, browser: "FakeBrowser", suggested_filename: str, data: bytes):
        self.browser = browser
        self.suggested_filename = suggested_filename
        self.data = data

    async def save_as(self, path: str):
        directory = os.path.dirname(path)
        if directory not in self.browser.download_dirs:
            self.browser.download_dirs.append(directory)
        with open(path, "wb") as f:
            f.write(self.data)


class FakePage:
    def __init__(self, context: "FakeContext"):
        self.context = context
        self.behavior = context.browser.behavior
        self.url = "about:blank"
        self.keyboard = FakeKeyboard()
        self.close_calls = 0
        self.goto_calls: List[Dict[str, Any]] = []
        self.screenshot_calls: List[Dict[str, Any]] = []
        self.pdf_calls: List[Dict[str, Any]] = []
        self.extra_headers: Dict[str, str] = {}
        self.listeners: Dict[str, List[Any]] = {}
        self.focused: List[str] = []

    async def goto(self, url: str, wait_until: Optional[str] = None, timeout: Optional[float] = None):
        self.goto_calls.append({"url": url, "wait_until": wait_until, "timeout": timeout})
        self.behavior.events.append(("start", url))
        if url in self.behavior.delays:
            await asyncio.sleep(self.behavior.delays[url])
        self.behavior.events.append(("end", url))
        if url in self.behavior.goto_errors:
            raise self.behavior.goto_errors[url]
        self.url = url
        if url in self.behavior.no_response:
            return None
        return FakeResponse(self.behavior.statuses.get(url, 200))

    async def content(self) -> str:
        return f"<html><body>{self.url}</body></html>"

    async def title(self) -> str:
        return "Fake Page"

    async def screenshot(self, **kwargs) -> bytes:
        self.screenshot_calls.append(kwargs)
        if self.behavior.screenshot_error:
            raise self.behavior.screenshot_error
        return b"\x89PNG-fake-image"

    async def pdf(self, **kwargs) -> bytes:
        self.pdf_calls.append(kwargs)
        return b"%PDF-1.4 fake"

    async def set_extra_http_headers(self, headers: Dict[str, str]):
        self.extra_headers = dict(headers)

    async def focus(self, selector: str, **kwargs):
        self.focused.append(selector)

    async def type(self, selector: str, text: str, **kwargs):
        await self.focus(selector)
        await self.keyboard.type(text)

    def on(self, event: str, handler):
        self.listeners.setdefault(event, []).append(handler)
        if event == "download":
            # the page starts its downloads once someone is listening
            for name, data in self.behavior.downloads:
                handler(FakeDownload(self.context.browser, name, data))

    async def close(self):
        self.close_calls += 1


class FakeContext:
    def __init__(self, browser: "FakeBrowser", options: Dict[str, Any]):
        self.browser = browser
        self.options = options
        self.pages: List[FakePage] = []
        self.close_calls = 0

    async def new_page(self) -> FakePage:
        page = FakePage(self)
        self.pages.append(page)
        self.browser.pages.append(page)
        return page

    async def new_cdp_session(self, page: FakePage) -> FakeCDPSession:
        return FakeCDPSession(self.browser)

    async def close(self):
        self.close_calls += 1


class FakeBrowser:
    def __init__(self, behavior: FakeBehavior):
        self.behavior = behavior
        self.contexts: List[FakeContext] = []
        self.pages: List[FakePage] = []
        self.cdp_calls: List[Tuple[str, Dict[str, Any]]] = []
        self.download_dirs: List[str] = []
        self.close_calls = 0

    async def new_context(self, **options) -> FakeContext:
        context = FakeContext(self, options)
        self.contexts.append(context)
        return context

    async def close(self):
        self.close_calls += 1


class FakeChromium:
    def __init__(self, browser: FakeBrowser):
        self.browser = browser
        self.launch_kwargs: Optional[Dict[str, Any]] = None
        self.connect_calls: List[Dict[str, Any]] = []
        self.launch_error: Optional[Exception] = None
        self.connect_error: Optional[Exception] = None

    async def launch(self, **kwargs) -> FakeBrowser:
        self.launch_kwargs = kwargs
        if self.launch_error:
            raise self.launch_error
        return self.browser

    async def connect_over_cdp(self, endpoint_url: str, timeout: Optional[float] = None, **kwargs) -> FakeBrowser:
        self.connect_calls.append({"endpoint": endpoint_url, "timeout": timeout})
        if self.connect_error:
            raise self.connect_error
        return self.browser


class FakePlaywright:
    def __init__(self):
        self.behavior = FakeBehavior()
        self.browser = FakeBrowser(self.behavior)
        self.chromium = FakeChromium(self.browser)
        self.devices = {
            "iPhone 13": {
                "user_agent": "Mozilla/5.0 (iPhone; CPU iPhone OS 15_0 like Mac OS X)",
                "viewport": {"width": 390, "height": 664},
                "is_mobile": True,
            },
        }
        self.stop_calls = 0

    async def stop(self):
        self.stop_calls += 1


class FakePlaywrightFactory:
    """Mimics ``async_playwright()``: calling it returns an object with ``start()``."""

    def __init__(self, playwright: FakePlaywright):
        self.playwright = playwright

    def __call__(self):
        return self

    async def start(self) -> FakePlaywright:
        return self.playwright


@pytest.fixture
def clean_env(monkeypatch: MonkeyPatch):
    """Remove host variables that would leak into settings."""
    for name in HOST_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
        monkeypatch.delenv(name.lower(), raising=False)
    yield monkeypatch
    reset_config()


@pytest.fixture
def settings(clean_env) -> NodeSettings:
    return NodeSettings()


@pytest.fixture
def fake_playwright() -> FakePlaywright:
    return FakePlaywright()


@pytest.fixture
def connector(fake_playwright: FakePlaywright) -> BrowserConnector:
    return BrowserConnector(playwright_factory=FakePlaywrightFactory(fake_playwright))


@pytest.fixture
def make_runner(settings: NodeSettings, connector: BrowserConnector):
    """Build a runner wired to the fake browser."""

    def _make(continue_on_fail: bool = False, mode: ExecutionMode = ExecutionMode.CLI, **context_kwargs) -> BrowserNodeRunner:
        context = NodeExecutionContext(continue_on_fail=continue_on_fail, mode=mode, **context_kwargs)
        return BrowserNodeRunner(settings=settings, context=context, connector=connector)

    return _make
