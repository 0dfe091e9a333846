"""Per-item page scope: open, configure and always close one page."""
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional

from playwright.async_api import BrowserContext, Page

from browser_node.browser.connection import BrowserHandle
from browser_node.browser.humanize import HumanTyper, apply_stealth, install_human_typing
from browser_node.constants import DEFAULT_USER_AGENT
from browser_node.models import RunConfiguration
from browser_node.utils import get_logger

logger = get_logger("browser_node.browser.page_setup")


@dataclass
class ItemPage:
    """The page owned by one item, plus its optional human typer."""
    page: Page
    context: BrowserContext
    typer: Optional[HumanTyper] = None


def context_options(handle: BrowserHandle, config: RunConfiguration) -> Dict[str, Any]:
    """Device descriptor when a device is named, otherwise a user agent."""
    if config.device:
        descriptor = handle.devices.get(config.device)
        if descriptor:
            # the browser is already chosen; only context options apply
            return {k: v for k, v in descriptor.items() if k != "default_browser_type"}
        logger.warning(f"Unknown device '{config.device}', not emulating", emoji_key="warning")
        return {}
    user_agent = (
        config.headers.get("User-Agent")
        or config.headers.get("user-agent")
        or DEFAULT_USER_AGENT
    )
    return {"user_agent": user_agent}


async def configure_page(page: Page, context: BrowserContext, config: RunConfiguration) -> Optional[HumanTyper]:
    """Apply caching, stealth, typing and extra headers to a fresh page."""
    session = await context.new_cdp_session(page)
    await session.send("Network.setCacheDisabled", {"cacheDisabled": not config.page_caching})

    if config.stealth:
        await apply_stealth(page)

    typer = None
    if config.human_typing:
        typer = install_human_typing(page, config.human_typing_options)

    if config.headers:
        await page.set_extra_http_headers(config.headers)
    return typer


async def _close_quietly(resource: Any, label: str, item_index: int) -> None:
    try:
        await resource.close()
    except Exception as e:
        logger.warning(f"Error closing {label}: {e}", emoji_key="cleanup", item=item_index)


@asynccontextmanager
async def open_item_page(handle: BrowserHandle, config: RunConfiguration, item_index: int) -> AsyncIterator[ItemPage]:
    """Open an isolated context and page for one item.

    The page and its context are closed exactly once when the block exits,
    whatever happened inside it; close errors are logged and swallowed.
    """
    context = await handle.browser.new_context(**context_options(handle, config))
    page: Optional[Page] = None
    try:
        page = await context.new_page()
        typer = await configure_page(page, context, config)
        yield ItemPage(page=page, context=context, typer=typer)
    finally:
        if page is not None:
            await _close_quietly(page, "page", item_index)
        await _close_quietly(context, "browser context", item_index)
