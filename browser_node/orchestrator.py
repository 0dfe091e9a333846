"""Batch Orchestrator: the entry point of a Browser Node run.

One run resolves its configuration once, acquires a single browser handle,
processes the input items in sequential batches (items inside a batch run
concurrently, each on its own page) and releases the handle exactly once.
"""
import asyncio
import time
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError

from browser_node.browser.connection import BrowserConnector, BrowserHandle, merge_container_args, resolve_ws_endpoint
from browser_node.browser.operations import PageOperationExecutor
from browser_node.browser.page_setup import open_item_page
from browser_node.browser.sandbox import ScriptRunner
from browser_node.config import NodeSettings, get_config
from browser_node.exceptions import InputValidationError, NodeOperationError, UnsupportedOperationError
from browser_node.host import NodeExecutionContext
from browser_node.models import (
    Item,
    ItemResult,
    NodeOptions,
    RunConfiguration,
    ScriptParams,
    decode_operation_params,
)
from browser_node.utils import get_logger

logger = get_logger("browser_node.orchestrator")


def resolve_run_configuration(
    operation: str,
    options: Union[NodeOptions, Dict[str, Any], None],
    settings: NodeSettings,
    continue_on_fail: bool = False,
) -> RunConfiguration:
    """Merge node options with settings into the immutable run configuration.

    Raises:
        InputValidationError: when ``options`` does not describe valid node options
    """
    if not isinstance(options, NodeOptions):
        try:
            options = NodeOptions.model_validate(options or {})
        except ValidationError as e:
            raise InputValidationError(
                f"Invalid node options: {e}",
                param_name="options",
                provided_value=options,
            ) from e
    defaults = settings.defaults

    launch_args = merge_container_args(options.launch_arguments, options.add_container_args)
    if options.proxy_server:
        launch_args.append(f"--proxy-server={options.proxy_server}")

    ws_endpoint, endpoint_source = resolve_ws_endpoint(
        options.browser_ws_endpoint,
        settings.browser_ws_endpoint,
        settings.browser_ws_token,
    )

    batch_size = options.batch_size if "batch_size" in options.model_fields_set else defaults.batch_size
    return RunConfiguration(
        operation=operation,
        batch_size=batch_size,
        headless_mode=options.headless_mode,
        launch_args=tuple(launch_args),
        executable_path=options.executable_path or None,
        ws_endpoint=ws_endpoint,
        endpoint_source=endpoint_source,
        protocol_timeout=options.protocol_timeout or defaults.protocol_timeout,
        stealth=options.stealth,
        human_typing=options.human_typing,
        human_typing_options=options.human_typing_options,
        device=options.device or None,
        headers=options.headers,
        page_caching=options.page_caching,
        capture_downloads=options.capture_downloads,
        wait_until=options.wait_until,
        navigation_timeout=options.timeout if options.timeout is not None else defaults.navigation_timeout,
        file_name=options.file_name or None,
        continue_on_fail=continue_on_fail,
    )


class BrowserNodeRunner:
    """Runs an operation over a list of items against one browser."""

    def __init__(
        self,
        settings: Optional[NodeSettings] = None,
        context: Optional[NodeExecutionContext] = None,
        connector: Optional[BrowserConnector] = None,
    ):
        self.settings = settings or get_config()
        self.context = context or NodeExecutionContext()
        self.connector = connector or BrowserConnector()

    async def run(
        self,
        items: Sequence[Union[Item, Dict[str, Any]]],
        operation: str,
        options: Union[NodeOptions, Dict[str, Any], None] = None,
    ) -> List[ItemResult]:
        """Process every item and return the results in input order.

        Raises:
            BrowserConnectionError: when the browser cannot be acquired
            NodeOperationError: when an item fails and failures are not tolerated
        """
        if items and not isinstance(items[0], Item):
            items = Item.from_rows(items)
        items = list(items)
        config = resolve_run_configuration(operation, options, self.settings, self.context.continue_on_fail)
        if not items:
            logger.info("No input items, nothing to do", emoji_key="info")
            return []

        start_time = time.time()
        handle = await self.connector.connect(config)
        results: List[ItemResult] = []
        try:
            batch_size = config.batch_size
            batch_count = (len(items) + batch_size - 1) // batch_size
            for batch_number, start in enumerate(range(0, len(items), batch_size), start=1):
                batch = items[start:start + batch_size]
                logger.info(
                    f"Processing batch {batch_number} of {batch_count} ({len(batch)} items)",
                    emoji_key="batch",
                )
                outcomes = await asyncio.gather(
                    *(self.process_item(handle, config, item, items) for item in batch),
                    return_exceptions=True,
                )
                # siblings have all settled, so their pages are closed before re-raising
                for outcome in outcomes:
                    if isinstance(outcome, BaseException):
                        raise outcome
                for outcome in outcomes:
                    results.extend(outcome)
        finally:
            await handle.release()

        failed = sum(1 for result in results if result.is_error)
        logger.success(
            f"Run finished: {len(results)} results, {failed} errors",
            emoji_key="success",
            time=time.time() - start_time,
        )
        return results

    async def process_item(
        self,
        handle: BrowserHandle,
        config: RunConfiguration,
        item: Item,
        items: List[Item],
    ) -> List[ItemResult]:
        """Decode, open a page, dispatch and close the page for one item."""
        url = item.parameters.get("url")
        try:
            if config.operation_kind is None:
                raise UnsupportedOperationError(f"Unsupported operation: {config.operation}", url=url)
            try:
                params = decode_operation_params(config.operation, item.parameters)
            except ValidationError as e:
                raise InputValidationError(
                    f"Invalid parameters for {config.operation}: {e}",
                    param_name="parameters",
                    provided_value=item.parameters,
                    url=url,
                ) from e

            async with open_item_page(handle, config, item.index) as item_page:
                if isinstance(params, ScriptParams):
                    runner = ScriptRunner(self.settings, self.context, config)
                    return await runner.run(handle, item_page, item, items, params)
                executor = PageOperationExecutor(config)
                return await executor.execute(item_page.page, params, item.index, len(items))
        except Exception as e:
            return [self.handle_error(e, item.index, getattr(e, "url", None) or url, config.continue_on_fail)]

    def handle_error(
        self,
        error: BaseException,
        item_index: int,
        url: Optional[str],
        continue_on_fail: bool,
    ) -> ItemResult:
        """Turn an item failure into an error result, or raise it when failures are not tolerated."""
        message = getattr(error, "message", None) or str(error) or type(error).__name__
        if continue_on_fail:
            logger.warning(f"Item {item_index} failed: {message}", emoji_key="warning", url=url)
            return ItemResult.failure(message, item_index, url)
        logger.error(f"Item {item_index} failed: {message}", emoji_key="error", url=url)
        raise NodeOperationError(message, item_index=item_index, url=url, cause=error) from error


async def run_node(
    items: Sequence[Union[Item, Dict[str, Any]]],
    operation: str,
    options: Union[NodeOptions, Dict[str, Any], None] = None,
    settings: Optional[NodeSettings] = None,
    context: Optional[NodeExecutionContext] = None,
) -> List[ItemResult]:
    """Run ``operation`` over ``items`` with a default connector."""
    runner = BrowserNodeRunner(settings=settings, context=context)
    return await runner.run(items, operation, options)
