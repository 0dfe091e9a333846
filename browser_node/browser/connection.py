"""Browser acquisition: launch a local Chromium or attach to a remote one.

Exactly one ``BrowserHandle`` exists per run. A handle knows whether it owns the
browser process (local launch) or merely references it (remote attach), which
decides how ``release()`` tears it down.
"""
from typing import Any, Callable, Iterable, List, Optional, Tuple

from playwright.async_api import Browser, Playwright, async_playwright

from browser_node.constants import (
    CONTAINER_LAUNCH_ARGS,
    HEADLESS_SHELL_CHANNEL,
    ConnectionMode,
    HeadlessMode,
)
from browser_node.exceptions import BrowserConnectionError
from browser_node.models import RunConfiguration
from browser_node.utils import get_logger

logger = get_logger("browser_node.browser.connection")


def build_ws_endpoint(base: str, token: Optional[str] = None) -> str:
    """Append ``token`` to ``base`` as a query parameter."""
    if not token:
        return base
    separator = "&" if "?" in base else "?"
    return f"{base}{separator}token={token}"


def mask_endpoint(url: Optional[str]) -> str:
    """Render an endpoint for diagnostics with its query string elided."""
    if not url:
        return "(empty)"
    if "?" in url:
        return url.split("?", 1)[0] + "?***"
    return url


def resolve_ws_endpoint(ui_value: Optional[str], env_base: str = "", env_token: str = "") -> Tuple[str, str]:
    """Pick the remote endpoint: the UI field first, then the environment pair.

    Returns:
        (endpoint, source) where source is ``UI field``, ``env vars`` or ``none``
    """
    if ui_value:
        return ui_value, "UI field"
    if env_base:
        return build_ws_endpoint(env_base, env_token), "env vars"
    return "", "none"


def merge_container_args(args: Iterable[str], enabled: bool) -> List[str]:
    """Append the container-safety flags missing from ``args``.

    A flag counts as present when it appears verbatim or as ``flag=value``.
    """
    merged = list(args)
    if not enabled:
        return merged
    missing = [
        flag for flag in CONTAINER_LAUNCH_ARGS
        if not any(existing == flag or existing.startswith(f"{flag}=") for existing in merged)
    ]
    if missing:
        logger.info(f"Adding container launch arguments: {missing}", emoji_key="config")
        merged.extend(missing)
    else:
        logger.info("Container launch arguments already present", emoji_key="config")
    return merged


class BrowserHandle:
    """The live browser for one run, owned (local) or referenced (remote)."""

    def __init__(self, playwright: Playwright, browser: Browser, mode: ConnectionMode, endpoint: str = ""):
        self.playwright = playwright
        self.browser = browser
        self.mode = mode
        self.endpoint = endpoint
        self._released = False

    @property
    def owned(self) -> bool:
        return self.mode == ConnectionMode.LOCAL

    @property
    def devices(self):
        return self.playwright.devices

    async def release(self) -> None:
        """Terminate an owned browser or disconnect from a remote one.

        Safe to call more than once; errors are logged and never raised.
        """
        if self._released:
            return
        self._released = True

        action = "close" if self.owned else "disconnect from"
        try:
            # close() on a CDP-attached browser only drops the connection
            await self.browser.close()
            logger.info(f"Browser {'closed' if self.owned else 'disconnected'}", emoji_key="cleanup")
        except Exception as e:
            logger.error(f"Failed to {action} browser: {e}", emoji_key="error")
        try:
            await self.playwright.stop()
        except Exception as e:
            logger.warning(f"Error stopping Playwright driver: {e}", emoji_key="warning")


class BrowserConnector:
    """Connection Manager: turns a run configuration into a ``BrowserHandle``."""

    def __init__(self, playwright_factory: Callable[[], Any] = async_playwright):
        self._playwright_factory = playwright_factory

    async def connect(self, config: RunConfiguration) -> BrowserHandle:
        """Launch or attach according to ``config``.

        Raises:
            BrowserConnectionError: naming the attempted mode and the cause
        """
        masked = mask_endpoint(config.ws_endpoint)
        logger.debug(
            "Browser launch configuration",
            emoji_key="config",
            remote=config.is_remote,
            endpoint=masked,
            endpoint_source=config.endpoint_source,
            executable_path=config.executable_path or "(default)",
            stealth=config.stealth,
            human_typing=config.human_typing,
        )

        mode = ConnectionMode.REMOTE if config.is_remote else ConnectionMode.LOCAL
        try:
            playwright = await self._playwright_factory().start()
        except Exception as e:
            raise BrowserConnectionError(
                f"Failed to start the Playwright driver for {mode.value} browser: {e}",
                mode=mode.value,
                endpoint=masked if config.is_remote else None,
                cause=e,
            ) from e

        try:
            if config.is_remote:
                return await self._attach(playwright, config, masked)
            return await self._launch(playwright, config)
        except BaseException:
            try:
                await playwright.stop()
            except Exception as stop_error:
                logger.warning(f"Error stopping Playwright driver: {stop_error}", emoji_key="warning")
            raise

    async def _attach(self, playwright: Playwright, config: RunConfiguration, masked: str) -> BrowserHandle:
        logger.info(f"Connecting to remote browser at {masked}", emoji_key="connect")
        try:
            browser = await playwright.chromium.connect_over_cdp(
                config.ws_endpoint,
                timeout=config.protocol_timeout,
            )
        except Exception as e:
            cause = str(e).replace(config.ws_endpoint, masked)
            raise BrowserConnectionError(
                f"Failed to connect to remote browser at '{masked}': {cause}. "
                "Verify the WebSocket endpoint is accessible and the browser is running.",
                mode=ConnectionMode.REMOTE.value,
                endpoint=masked,
                cause=e,
            ) from e
        logger.success("Connected to remote browser", emoji_key="connect")
        return BrowserHandle(playwright, browser, ConnectionMode.REMOTE, endpoint=masked)

    async def _launch(self, playwright: Playwright, config: RunConfiguration) -> BrowserHandle:
        logger.info("Launching local browser", emoji_key="browser", headless=config.headless_mode.value)
        launch_options = {
            "headless": config.headless_mode != HeadlessMode.HEADFUL,
            "args": list(config.launch_args),
            "timeout": config.protocol_timeout,
        }
        if config.headless_mode == HeadlessMode.SHELL:
            launch_options["channel"] = HEADLESS_SHELL_CHANNEL
        if config.executable_path:
            launch_options["executable_path"] = config.executable_path
        try:
            browser = await playwright.chromium.launch(**launch_options)
        except Exception as e:
            raise BrowserConnectionError(
                f"Failed to launch local browser: {e}. Check executablePath "
                f"('{config.executable_path or 'auto-detect'}') or ensure Chromium is installed.",
                mode=ConnectionMode.LOCAL.value,
                cause=e,
            ) from e
        logger.success("Launched local browser", emoji_key="browser")
        return BrowserHandle(playwright, browser, ConnectionMode.LOCAL)
