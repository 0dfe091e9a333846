"""Capture files a page downloads into a private scratch directory."""
import asyncio
import os
import secrets
import shutil
import tempfile
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Set

import aiofiles
import aiofiles.os
from playwright.async_api import Download, Page

from browser_node.constants import DOWNLOAD_DIR_PREFIX, SINGLE_DOWNLOAD_BINARY_KEY
from browser_node.models import BinaryData, ItemResult
from browser_node.utils import get_logger

logger = get_logger("browser_node.browser.downloads")


@dataclass
class DownloadedFile:
    file_name: str
    data: bytes


def make_download_dir_name(base_dir: Optional[str] = None) -> str:
    """Unique scratch path: time plus a random suffix, so concurrent items never collide."""
    suffix = secrets.token_hex(6)
    name = f"{DOWNLOAD_DIR_PREFIX}-{int(time.time() * 1000)}-{suffix}"
    return os.path.join(base_dir or tempfile.gettempdir(), name)


class DownloadCapture:
    """Download Capture Helper for the pages of a single item."""

    def __init__(self, base_dir: Optional[str] = None):
        self._base_dir = base_dir
        self._directories: Dict[int, str] = {}
        self._pending: Set[asyncio.Task] = set()

    async def begin(self, page: Page) -> str:
        """Save the page's downloads into a fresh scratch directory.

        Playwright keeps each download in its own artifacts folder and fires a
        ``download`` event; every event is copied here with ``save_as`` under its
        suggested file name. Calling it again for the same page returns the
        directory already in use.
        """
        existing = self._directories.get(id(page))
        if existing:
            return existing

        directory = make_download_dir_name(self._base_dir)
        await aiofiles.os.makedirs(directory, exist_ok=True)
        self._directories[id(page)] = directory

        def _on_download(download: Download) -> None:
            task = asyncio.ensure_future(self._save(download, directory))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

        page.on("download", _on_download)
        logger.debug(f"Download capture enabled in {directory}", emoji_key="download")
        return directory

    @staticmethod
    async def _save(download: Download, directory: str) -> None:
        target = os.path.join(directory, os.path.basename(download.suggested_filename))
        try:
            await download.save_as(target)
        except Exception as e:
            logger.warning(f"Could not save download '{download.suggested_filename}': {e}", emoji_key="warning")

    async def harvest(self, directory: str) -> List[DownloadedFile]:
        """Read every regular file in ``directory``; a missing directory means no downloads."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

        try:
            names = sorted(await aiofiles.os.listdir(directory))
        except FileNotFoundError:
            return []

        files: List[DownloadedFile] = []
        for name in names:
            path = os.path.join(directory, name)
            if not await aiofiles.os.path.isfile(path):
                continue
            async with aiofiles.open(path, "rb") as f:
                files.append(DownloadedFile(file_name=name, data=await f.read()))
        if files:
            logger.info(f"Captured {len(files)} downloaded file(s)", emoji_key="download")
        return files

    async def cleanup(self, directory: str) -> None:
        """Delete the scratch directory; failures are logged, never raised.

        Saves still in flight finish first so nothing is written after the delete.
        """
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        for page_id, path in list(self._directories.items()):
            if path == directory:
                del self._directories[page_id]
        try:
            await asyncio.to_thread(shutil.rmtree, directory)
        except FileNotFoundError:
            pass
        except Exception as e:
            logger.warning(f"Failed to remove download directory {directory}: {e}", emoji_key="cleanup")


def attach_downloads(results: List[ItemResult], files: List[DownloadedFile]) -> List[ItemResult]:
    """Merge captured files into the script's result items.

    When the counts match each item receives its own file; otherwise every file
    goes to the first item. A lone file is stored under ``data``, several under
    ``data0``, ``data1``, ...
    """
    if not files:
        return results

    distribute = len(results) == len(files)
    merged: List[ItemResult] = []
    for index, result in enumerate(results):
        if not distribute and index != 0:
            merged.append(result)
            continue
        files_to_add = [files[index]] if distribute else files
        binary = {}
        for file_index, downloaded in enumerate(files_to_add):
            key = SINGLE_DOWNLOAD_BINARY_KEY if len(files) == 1 else f"{SINGLE_DOWNLOAD_BINARY_KEY}{file_index}"
            binary[key] = BinaryData.from_bytes(downloaded.data, downloaded.file_name)
        merged.append(result.model_copy(update={"binary": binary}))
    return merged
