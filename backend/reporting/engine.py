"""
Chromium lifecycle for one render request.

Every request launches its own browser and context; nothing is pooled or shared.
Both context managers release what they acquired on success, timeout and error.
Close failures are logged and suppressed so they never replace the error that
is already propagating.
"""
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from playwright.async_api import Browser, Page, async_playwright
from playwright.async_api import Error as PlaywrightError

from reporting.errors import RenderEngineFailure

_LOG = logging.getLogger("uvicorn.error")

# Chromium's sandbox cannot start inside most containers.
CHROMIUM_ARGS = [
    a.strip()
    for a in os.getenv("CHROMIUM_ARGS", "--no-sandbox,--disable-dev-shm-usage").split(",")
    if a.strip()
]
DEFAULT_VIEWPORT = {"width": 1280, "height": 900}


async def _close_quietly(resource, name: str) -> None:
    try:
        await resource.close()
    except Exception as e:  # teardown must not mask the request outcome
        _LOG.warning("teardown_failed resource=%s error=%s", name, e)


@asynccontextmanager
async def launch_browser() -> AsyncIterator[Browser]:
    async with async_playwright() as p:
        try:
            browser = await p.chromium.launch(headless=True, args=CHROMIUM_ARGS)
        except PlaywrightError as e:
            raise RenderEngineFailure(f"Chromium failed to launch: {e}") from e
        _LOG.info("browser_launched args=%s", CHROMIUM_ARGS)
        try:
            yield browser
        finally:
            await _close_quietly(browser, "browser")


@asynccontextmanager
async def open_page(browser: Browser, viewport: Optional[dict] = None) -> AsyncIterator[Page]:
    """Fresh isolated context + page sized to `viewport`."""
    try:
        context = await browser.new_context()
    except PlaywrightError as e:
        raise RenderEngineFailure(f"Could not open browsing context: {e}") from e
    page: Optional[Page] = None
    try:
        page = await context.new_page()
        await page.set_viewport_size(viewport or DEFAULT_VIEWPORT)
        yield page
    except PlaywrightError as e:
        raise RenderEngineFailure(str(e)) from e
    finally:
        if page is not None:
            await _close_quietly(page, "page")
        await _close_quietly(context, "context")
