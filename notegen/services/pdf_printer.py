"""
Headless-browser PDF rendering with Playwright (Chromium).
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from playwright.async_api import async_playwright

from notegen.config import settings

logger = logging.getLogger(__name__)


async def _print_pdf(full_html: str, timeout_ms: float) -> bytes:
    async with async_playwright() as pw:
        browser = await pw.chromium.launch()
        try:
            page = await browser.new_page()
            await page.set_content(full_html, wait_until="load", timeout=timeout_ms)
            # Web fonts load asynchronously after "load"
            await page.evaluate("() => document.fonts.ready.then(() => true)")
            await page.emulate_media(media="print")
            margin = settings.PDF_MARGIN
            return await page.pdf(
                format="A4",
                margin={"top": margin, "right": margin, "bottom": margin, "left": margin},
                print_background=True,
            )
        finally:
            await browser.close()


async def html_to_pdf(full_html: str, timeout: Optional[float] = None) -> bytes:
    """
    Print *full_html* to an A4 PDF.

    The browser is closed whether printing succeeds, fails or times out.

    Raises:
        asyncio.TimeoutError: rendering exceeded *timeout* seconds.
        playwright.async_api.Error: browser launch or page failure.
    """
    seconds = float(timeout or settings.PDF_RENDER_TIMEOUT)
    data = await asyncio.wait_for(_print_pdf(full_html, seconds * 1000), timeout=seconds)
    logger.info("PDF export: %d bytes", len(data))
    return data
