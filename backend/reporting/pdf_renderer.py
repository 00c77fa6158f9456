"""
Render the assembled report document to PDF with headless Chromium.

render_pdf: load HTML -> wait for render sync -> print media -> A4 PDF.
build_report_pdf: normalize images, assemble HTML, render.
build_static_report_pdf: same, but charts and map are pre-rendered to images.
"""
from __future__ import annotations

import html
import logging
import os
import time
from typing import Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from models import ReportSpec

from .assets import normalize_images
from .document import build_report_html
from .engine import DEFAULT_VIEWPORT, launch_browser, open_page
from .errors import InvalidInput, RenderEngineFailure, RenderTimeout
from .sync_protocol import wait_for_render_complete
from .visuals import render_chart_image, render_map_image

_LOG = logging.getLogger("uvicorn.error")

LOAD_TIMEOUT_MS = int(os.getenv("RENDER_LOAD_TIMEOUT_MS", "60000"))
SYNC_TIMEOUT_MS = int(os.getenv("RENDER_SYNC_TIMEOUT_MS", "60000"))
PDF_HEADER_TITLE = os.getenv("PDF_HEADER_TITLE", "Complete Report")
PDF_MARGIN = {"top": "1cm", "bottom": "1cm", "left": "1cm", "right": "1cm"}

_FOOTER_TEMPLATE = (
    '<div style="font-size:10px;width:100%;text-align:center;">'
    'Page <span class="pageNumber"></span> of <span class="totalPages"></span></div>'
)


def header_template(title: str) -> str:
    return f'<div style="font-size:10px;width:100%;text-align:center;">{html.escape(title)}</div>'


async def render_pdf(
    html_content: str,
    load_timeout_ms: Optional[int] = None,
    sync_timeout_ms: Optional[int] = None,
    header_title: Optional[str] = None,
) -> bytes:
    """
    Render `html_content` to A4 PDF bytes. Raises RenderTimeout when the document
    load or the render sync wait exceeds its bound, RenderEngineFailure when
    Chromium fails. Browser and page are closed on every exit path.
    """
    load_timeout_ms = LOAD_TIMEOUT_MS if load_timeout_ms is None else load_timeout_ms
    sync_timeout_ms = SYNC_TIMEOUT_MS if sync_timeout_ms is None else sync_timeout_ms
    start = time.perf_counter()
    async with launch_browser() as browser:
        async with open_page(browser, DEFAULT_VIEWPORT) as page:
            # DOM parse only; tiles and late resources are covered by render sync.
            try:
                await page.set_content(html_content, wait_until="domcontentloaded", timeout=load_timeout_ms)
            except PlaywrightTimeoutError as e:
                raise RenderTimeout("document load", load_timeout_ms) from e
            loaded_ms = (time.perf_counter() - start) * 1000

            await wait_for_render_complete(page, sync_timeout_ms)
            synced_ms = (time.perf_counter() - start) * 1000

            try:
                await page.emulate_media(media="print")
                pdf_bytes = await page.pdf(
                    format="A4",
                    print_background=True,
                    margin=PDF_MARGIN,
                    display_header_footer=True,
                    header_template=header_template(header_title or PDF_HEADER_TITLE),
                    footer_template=_FOOTER_TEMPLATE,
                )
            except PlaywrightError as e:
                raise RenderEngineFailure(f"PDF capture failed: {e}") from e
    _LOG.info(
        "pdf_rendered bytes=%s load_ms=%.0f sync_ms=%.0f total_ms=%.0f",
        len(pdf_bytes), loaded_ms, synced_ms, (time.perf_counter() - start) * 1000,
    )
    return pdf_bytes


async def build_report_html_for(spec: ReportSpec) -> str:
    """Assemble the document after resolving every image reference to a data URI."""
    images = await normalize_images(spec.images)
    return build_report_html(spec.model_copy(update={"images": images}))


async def build_report_pdf(spec: ReportSpec) -> bytes:
    """Normalize images, assemble HTML with live charts/map, render to PDF bytes."""
    html_str = await build_report_html_for(spec)
    return await render_pdf(html_str)


async def prerender_visuals(spec: ReportSpec) -> list[str]:
    """Chart and map screenshots as data URIs, charts first in input order."""
    rendered = [await render_chart_image(chart) for chart in spec.charts]
    if spec.map_config is None:
        return rendered
    if not spec.map_config.markers:
        # Map screenshots are framed on their markers.
        _LOG.warning("static_map_skipped reason=no markers center=%s", spec.map_config.center)
    else:
        try:
            rendered.append(await render_map_image(spec.map_config.markers, zoom=spec.map_config.zoom))
        except InvalidInput as e:
            _LOG.warning("static_map_skipped reason=%s", e)
    return rendered


async def build_static_report_pdf(spec: ReportSpec) -> bytes:
    """
    Report where charts and the map are embedded as static pictures. The page has
    no live visuals, so render sync completes immediately.
    """
    images = await normalize_images(spec.images)
    visuals = await prerender_visuals(spec)
    static_spec = spec.model_copy(update={"images": images + visuals, "charts": [], "map_config": None})
    return await render_pdf(build_report_html(static_spec))
