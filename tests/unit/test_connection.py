"""Tests for browser acquisition and endpoint handling."""
import pytest

from browser_node.browser.connection import (
    BrowserConnector,
    BrowserHandle,
    build_ws_endpoint,
    mask_endpoint,
    merge_container_args,
    resolve_ws_endpoint,
)
from browser_node.constants import CONTAINER_LAUNCH_ARGS, HEADLESS_SHELL_CHANNEL, ConnectionMode, HeadlessMode
from browser_node.exceptions import BrowserConnectionError
from browser_node.models import RunConfiguration
from browser_node.utils import get_logger

logger = get_logger("test.connection")


class TestEndpoints:
    """Endpoint assembly and masking."""

    def test_token_appended_with_question_mark(self):
        logger.info("Testing endpoint without query string", emoji_key="test")
        assert build_ws_endpoint("wss://browser.example/ws", "s3cret") == "wss://browser.example/ws?token=s3cret"

    def test_token_appended_with_ampersand(self):
        endpoint = build_ws_endpoint("wss://browser.example/ws?stealth=true", "s3cret")
        assert endpoint == "wss://browser.example/ws?stealth=true&token=s3cret"

    def test_empty_token_leaves_base(self):
        assert build_ws_endpoint("wss://browser.example/ws", "") == "wss://browser.example/ws"

    @pytest.mark.parametrize("base", ["wss://browser.example/ws", "wss://browser.example/ws?stealth=true"])
    def test_mask_never_contains_token(self, base):
        endpoint = build_ws_endpoint(base, "s3cret")
        masked = mask_endpoint(endpoint)
        assert "s3cret" not in masked
        assert masked == "wss://browser.example/ws?***"

    def test_mask_plain_and_empty(self):
        assert mask_endpoint("ws://localhost:9222") == "ws://localhost:9222"
        assert mask_endpoint("") == "(empty)"
        assert mask_endpoint(None) == "(empty)"

    def test_ui_value_wins(self):
        assert resolve_ws_endpoint("ws://ui:3000", "ws://env:3000", "tok") == ("ws://ui:3000", "UI field")

    def test_env_pair_used_when_ui_empty(self):
        assert resolve_ws_endpoint("", "ws://env:3000", "tok") == ("ws://env:3000?token=tok", "env vars")

    def test_no_endpoint(self):
        assert resolve_ws_endpoint("", "", "tok") == ("", "none")


class TestContainerArgs:
    """Container-safety launch arguments."""

    def test_missing_flags_appended(self):
        logger.info("Testing container argument merge", emoji_key="test")
        merged = merge_container_args(["--window-size=800,600"], enabled=True)
        assert merged[0] == "--window-size=800,600"
        assert merged[1:] == list(CONTAINER_LAUNCH_ARGS)

    def test_present_flags_not_duplicated(self):
        args = ["--no-sandbox", "--disable-gpu=true"]
        merged = merge_container_args(args, enabled=True)
        for flag in CONTAINER_LAUNCH_ARGS:
            assert sum(1 for a in merged if a == flag or a.startswith(f"{flag}=")) == 1
        assert merged[:2] == args

    def test_disabled_leaves_args_alone(self):
        assert merge_container_args(["--foo"], enabled=False) == ["--foo"]


class TestBrowserConnector:
    """Launch and attach through a fake driver."""

    @pytest.mark.asyncio
    async def test_local_launch_options(self, connector, fake_playwright):
        logger.info("Testing local launch", emoji_key="test")
        config = RunConfiguration(
            operation="getPageContent",
            headless_mode=HeadlessMode.SHELL,
            launch_args=("--no-sandbox",),
            executable_path="/opt/chrome/chrome",
            protocol_timeout=5000,
        )
        handle = await connector.connect(config)

        kwargs = fake_playwright.chromium.launch_kwargs
        assert kwargs["headless"] is True
        assert kwargs["channel"] == HEADLESS_SHELL_CHANNEL
        assert kwargs["args"] == ["--no-sandbox"]
        assert kwargs["executable_path"] == "/opt/chrome/chrome"
        assert kwargs["timeout"] == 5000
        assert handle.owned
        assert handle.mode == ConnectionMode.LOCAL

    @pytest.mark.asyncio
    async def test_headful_launch(self, connector, fake_playwright):
        await connector.connect(RunConfiguration(operation="getPDF", headless_mode=HeadlessMode.HEADFUL))
        kwargs = fake_playwright.chromium.launch_kwargs
        assert kwargs["headless"] is False
        assert "channel" not in kwargs
        assert "executable_path" not in kwargs

    @pytest.mark.asyncio
    async def test_remote_attach(self, connector, fake_playwright):
        config = RunConfiguration(operation="getPDF", ws_endpoint="wss://remote/ws?token=abc", protocol_timeout=1234)
        handle = await connector.connect(config)

        assert fake_playwright.chromium.connect_calls == [{"endpoint": "wss://remote/ws?token=abc", "timeout": 1234}]
        assert fake_playwright.chromium.launch_kwargs is None
        assert not handle.owned
        assert handle.endpoint == "wss://remote/ws?***"

    @pytest.mark.asyncio
    async def test_remote_failure_masks_token(self, connector, fake_playwright):
        logger.info("Testing remote connection failure", emoji_key="test")
        endpoint = "wss://remote/ws?token=abc123"
        fake_playwright.chromium.connect_error = ConnectionError(f"connect ECONNREFUSED {endpoint}")

        with pytest.raises(BrowserConnectionError) as exc_info:
            await connector.connect(RunConfiguration(operation="getPDF", ws_endpoint=endpoint))

        error = exc_info.value
        assert error.mode == "remote"
        assert "Failed to connect to remote browser at 'wss://remote/ws?***'" in error.message
        assert "abc123" not in error.message
        assert fake_playwright.stop_calls == 1

    @pytest.mark.asyncio
    async def test_local_failure_names_executable(self, connector, fake_playwright):
        fake_playwright.chromium.launch_error = RuntimeError("Executable doesn't exist")

        with pytest.raises(BrowserConnectionError) as exc_info:
            await connector.connect(RunConfiguration(operation="getPDF", executable_path="/missing/chrome"))

        assert exc_info.value.mode == "local"
        assert "Failed to launch local browser: Executable doesn't exist" in exc_info.value.message
        assert "/missing/chrome" in exc_info.value.message
        assert fake_playwright.stop_calls == 1

    @pytest.mark.asyncio
    async def test_release_is_idempotent(self, fake_playwright):
        handle = BrowserHandle(fake_playwright, fake_playwright.browser, ConnectionMode.REMOTE, endpoint="ws://x")
        await handle.release()
        await handle.release()
        assert fake_playwright.browser.close_calls == 1
        assert fake_playwright.stop_calls == 1

    @pytest.mark.asyncio
    async def test_release_swallows_close_errors(self, fake_playwright):
        async def broken_close():
            raise RuntimeError("already gone")

        fake_playwright.browser.close = broken_close
        handle = BrowserHandle(fake_playwright, fake_playwright.browser, ConnectionMode.LOCAL)
        await handle.release()
        assert fake_playwright.stop_calls == 1

    @pytest.mark.asyncio
    async def test_driver_start_failure(self):
        class BrokenFactory:
            def __call__(self):
                return self

            async def start(self):
                raise OSError("driver missing")

        connector = BrowserConnector(playwright_factory=BrokenFactory())
        with pytest.raises(BrowserConnectionError, match="driver missing"):
            await connector.connect(RunConfiguration(operation="getPDF"))
