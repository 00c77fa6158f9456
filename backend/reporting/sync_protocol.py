"""
Render synchronization between the assembled document and the orchestrator.

The document owns one `window.renderState` object per page:

    chartsExpected, chartsRenderedCount, chartsComplete,
    mapExpected, mapComplete

Every chart render call receives that object and reports completion through
`markChartReady(state, index)`; the map reports through `markMapReady(state)`.
Each visual has two completion sources (the library callback and a fallback
timer) and both marks are idempotent, so a visual is counted once.

The orchestrator polls RENDER_COMPLETE_PREDICATE until it holds or the wait
times out. With zero charts and no map the predicate is true on load.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from reporting.errors import RenderEngineFailure, RenderTimeout

_LOG = logging.getLogger("uvicorn.error")

CHART_FALLBACK_MS = 1000
MAP_FALLBACK_MS = 3000
POLL_INTERVAL_MS = 100
# A page that missed its deadline may not answer evaluate() either.
STATE_SNAPSHOT_TIMEOUT_S = 2.0

RENDER_COMPLETE_PREDICATE = (
    "() => Boolean(window.renderState"
    " && window.renderState.chartsComplete === true"
    " && window.renderState.mapComplete === true)"
)

_READ_STATE_JS = "() => window.renderState ? JSON.parse(JSON.stringify(window.renderState)) : null"


@dataclass
class RenderCompletionState:
    """Python view of a page's `window.renderState`."""

    charts_expected: int = 0
    charts_completed: int = 0
    map_expected: bool = False
    map_completed: bool = False

    @classmethod
    def for_visuals(cls, chart_count: int, has_map: bool) -> "RenderCompletionState":
        return cls(charts_expected=chart_count, map_expected=has_map)

    @classmethod
    def for_spec(cls, spec: Any) -> "RenderCompletionState":
        return cls.for_visuals(len(spec.charts), spec.map_config is not None)

    @classmethod
    def from_page_state(cls, raw: Optional[dict[str, Any]]) -> Optional["RenderCompletionState"]:
        if not raw:
            return None
        return cls(
            charts_expected=int(raw.get("chartsExpected", 0)),
            charts_completed=int(raw.get("chartsRenderedCount", 0)),
            map_expected=bool(raw.get("mapExpected", False)),
            map_completed=bool(raw.get("mapComplete", False)),
        )

    @property
    def charts_complete(self) -> bool:
        return self.charts_completed >= self.charts_expected

    @property
    def map_complete(self) -> bool:
        return self.map_completed or not self.map_expected

    @property
    def is_complete(self) -> bool:
        return self.charts_complete and self.map_complete


def bootstrap_script(state: RenderCompletionState) -> str:
    """JS that creates the page's completion state and the two idempotent mark functions."""
    initial = {
        "chartsExpected": state.charts_expected,
        "chartsRenderedCount": 0,
        "chartsComplete": state.charts_expected == 0,
        "mapExpected": state.map_expected,
        "mapComplete": not state.map_expected,
        "readyCharts": {},
    }
    return f"""
window.renderState = {json.dumps(initial)};
window.markChartReady = function (state, index) {{
  if (state.readyCharts[index]) {{ return; }}
  state.readyCharts[index] = true;
  state.chartsRenderedCount += 1;
  if (state.chartsRenderedCount >= state.chartsExpected) {{ state.chartsComplete = true; }}
}};
window.markMapReady = function (state) {{
  state.mapComplete = true;
}};
"""


def fallback_timer_js(call: str, delay_ms: Optional[int]) -> str:
    """`setTimeout` wrapper for a completion fallback; None disables it."""
    if delay_ms is None:
        return ""
    return f"setTimeout(function () {{ {call}; }}, {int(delay_ms)});"


async def read_render_state(page: Page) -> Optional[RenderCompletionState]:
    try:
        raw = await page.evaluate(_READ_STATE_JS)
    except PlaywrightError:
        return None
    return RenderCompletionState.from_page_state(raw)


async def wait_for_render_complete(page: Page, timeout_ms: int) -> None:
    try:
        await page.wait_for_function(RENDER_COMPLETE_PREDICATE, timeout=timeout_ms, polling=POLL_INTERVAL_MS)
    except PlaywrightTimeoutError as e:
        try:
            snapshot = await asyncio.wait_for(read_render_state(page), STATE_SNAPSHOT_TIMEOUT_S)
        except asyncio.TimeoutError:
            snapshot = None
        _LOG.warning("render_sync_timeout timeout_ms=%s state=%s", timeout_ms, snapshot)
        raise RenderTimeout("render sync", timeout_ms) from e
    except PlaywrightError as e:
        raise RenderEngineFailure(f"render sync failed: {e}") from e
