"""Stealth patches and human-like typing for item pages."""
import asyncio
import random
from typing import Dict, Optional

from playwright.async_api import Page
from playwright_stealth import Stealth

from browser_node.models import HumanTypingOptions
from browser_node.utils import get_logger

logger = get_logger("browser_node.browser.humanize")

# Neighbouring keys used to produce plausible typos
KEYBOARD_NEIGHBOURS: Dict[str, Dict[str, str]] = {
    "en": {
        "q": "wa", "w": "qes", "e": "wrd", "r": "etf", "t": "ryg", "y": "tuh",
        "u": "yij", "i": "uok", "o": "ipl", "p": "o", "a": "qsz", "s": "awdz",
        "d": "sefx", "f": "drgc", "g": "fthv", "h": "gyjb", "j": "hukn",
        "k": "jilm", "l": "ko", "z": "asx", "x": "zsdc", "c": "xdfv",
        "v": "cfgb", "b": "vghn", "n": "bhjm", "m": "njk",
    },
}


async def apply_stealth(page: Page) -> None:
    """Patch the page's fingerprinting surface."""
    await Stealth().apply_stealth_async(page)


class HumanTyper:
    """Types text into a page with jittered delays and occasional corrected typos."""

    def __init__(self, page: Page, options: Optional[HumanTypingOptions] = None, rng: Optional[random.Random] = None):
        self.page = page
        self.options = options or HumanTypingOptions()
        self._rng = rng or random.Random()
        self._neighbours = KEYBOARD_NEIGHBOURS.get(self.options.keyboard_layout, KEYBOARD_NEIGHBOURS["en"])

    def _delay(self, low_ms: int, high_ms: int) -> float:
        low, high = sorted((low_ms, high_ms))
        return self._rng.uniform(low, high) / 1000.0

    def _typo_for(self, char: str) -> Optional[str]:
        neighbours = self._neighbours.get(char.lower())
        if not neighbours or self._rng.uniform(0, 100) >= self.options.typo_chance_percent:
            return None
        typo = self._rng.choice(neighbours)
        return typo.upper() if char.isupper() else typo

    async def type(self, selector: str, text: str, **kwargs) -> None:
        """Focus ``selector`` and type ``text`` like a person would."""
        await self.page.focus(selector, **{k: v for k, v in kwargs.items() if k == "timeout"})
        keyboard = self.page.keyboard
        opts = self.options
        for char in text:
            typo = self._typo_for(char)
            if typo:
                await keyboard.type(typo)
                await asyncio.sleep(self._delay(opts.minimum_delay_ms, opts.maximum_delay_ms))
                if self._rng.uniform(0, 100) < opts.keep_typo_chance_percent:
                    continue
                await asyncio.sleep(self._delay(opts.backspace_minimum_delay_ms, opts.backspace_maximum_delay_ms))
                await keyboard.press("Backspace")
            await keyboard.type(char)
            await asyncio.sleep(self._delay(opts.minimum_delay_ms, opts.maximum_delay_ms))


def install_human_typing(page: Page, options: HumanTypingOptions) -> HumanTyper:
    """Replace ``page.type`` with the human-like variant and return the typer."""
    typer = HumanTyper(page, options)
    page.type = typer.type
    logger.debug("Human-like typing installed on page", emoji_key="page")
    return typer
