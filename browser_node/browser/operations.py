"""Built-in page operations: rendered HTML, screenshots and PDFs.

Each item follows the same path: build the target URL, navigate, then branch on
the decoded parameter variant. Failures are raised as typed ``ItemError``s
carrying the URL; the runner decides whether they become error results.
"""
import time
from typing import Dict, List, Optional, Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from playwright.async_api import Page, Response

from browser_node.exceptions import (
    CaptureError,
    InputValidationError,
    NavigationError,
    UnsupportedOperationError,
)
from browser_node.models import (
    BinaryData,
    ItemResult,
    PageContentParams,
    PdfParams,
    QueryParameter,
    RunConfiguration,
    ScreenshotParams,
)
from browser_node.utils import get_logger

logger = get_logger("browser_node.browser.operations")

PageParams = Union[PageContentParams, ScreenshotParams, PdfParams]

# Schemes that are valid without a host
_HOSTLESS_SCHEMES = ("file", "data", "about")

TRANSPARENT_BACKGROUND = {"color": {"r": 0, "g": 0, "b": 0, "a": 0}}


def build_target_url(url: str, query_parameters: Optional[List[QueryParameter]] = None) -> str:
    """Validate ``url`` and append the extra query parameters."""
    try:
        parts = urlsplit((url or "").strip())
    except ValueError as e:
        raise InputValidationError(f"Invalid URL: {url}", param_name="url", provided_value=url, url=url) from e
    if not parts.scheme or (not parts.netloc and parts.scheme not in _HOSTLESS_SCHEMES):
        raise InputValidationError(f"Invalid URL: {url}", param_name="url", provided_value=url, url=url)

    if not query_parameters:
        return urlunsplit(parts)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.extend((param.name, param.value) for param in query_parameters)
    return urlunsplit(parts._replace(query=urlencode(query)))


class PageOperationExecutor:
    """Navigates an item's page and runs the requested built-in operation."""

    def __init__(self, config: RunConfiguration):
        self.config = config

    async def navigate(self, page: Page, url: str) -> Response:
        """Load ``url``; a missing response or a status >= 400 is an error."""
        try:
            response = await page.goto(
                url,
                wait_until=self.config.wait_until,
                timeout=self.config.navigation_timeout,
            )
        except Exception as e:
            raise NavigationError(str(e), url=url) from e

        status_code = response.status if response is not None else None
        if response is None or (status_code and status_code >= 400):
            raise NavigationError(
                f"Request failed with status code {status_code or 0}",
                url=url,
                status_code=status_code,
            )
        return response

    async def execute(self, page: Page, params: PageParams, item_index: int, total: Optional[int] = None) -> List[ItemResult]:
        """Run one built-in operation for one item."""
        url = build_target_url(params.url, params.query_parameters)
        progress = f"{item_index + 1} of {total}" if total else f"{item_index + 1}"
        device = f" [{self.config.device}]" if self.config.device else ""
        logger.info(f"Processing {progress}: [{params.operation}]{device} {url}", emoji_key="page")

        if not isinstance(params, (PageContentParams, ScreenshotParams, PdfParams)):
            raise UnsupportedOperationError(f"Unsupported operation: {params.operation}", url=url)

        start_time = time.time()
        response = await self.navigate(page, url)
        meta = {
            "headers": response.headers,
            "statusCode": response.status,
            "url": url,
        }

        if isinstance(params, PageContentParams):
            body = await page.content()
            result = ItemResult(json={"body": body, **meta}, paired_item=item_index)
        elif isinstance(params, ScreenshotParams):
            result = await self._screenshot(page, params, url, meta, item_index)
        else:
            result = await self._pdf(page, params, url, meta, item_index)

        logger.debug(
            f"Finished [{params.operation}]",
            emoji_key="success",
            item=item_index,
            time=time.time() - start_time,
        )
        return [result]

    async def _screenshot(self, page: Page, params: ScreenshotParams, url: str, meta: Dict, item_index: int) -> ItemResult:
        options = params.screenshot_options()
        try:
            image = await page.screenshot(**options)
        except Exception as e:
            raise CaptureError(f"Screenshot failed: {e}", url=url) from e

        binary = BinaryData.from_bytes(image, self.config.file_name, f"image/{params.image_type}")
        logger.debug(f"Captured {params.image_type} screenshot ({len(image)} bytes)", emoji_key="camera", item=item_index)
        return ItemResult(json=meta, binary={params.data_property_name: binary}, paired_item=item_index)

    async def _pdf(self, page: Page, params: PdfParams, url: str, meta: Dict, item_index: int) -> ItemResult:
        options = params.pdf_options()
        try:
            if params.omit_background:
                session = await page.context.new_cdp_session(page)
                await session.send("Emulation.setDefaultBackgroundColorOverride", TRANSPARENT_BACKGROUND)
            document = await page.pdf(**options)
        except Exception as e:
            raise CaptureError(f"PDF generation failed: {e}", url=url) from e

        binary = BinaryData.from_bytes(document, self.config.file_name, "application/pdf")
        logger.debug(f"Rendered PDF ({len(document) / 1024:.1f} KB)", emoji_key="pdf", item=item_index)
        return ItemResult(json=meta, binary={params.data_property_name: binary}, paired_item=item_index)
