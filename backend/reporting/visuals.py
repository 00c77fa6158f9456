"""
Standalone chart and map screenshots.

Each call launches its own browser, renders one visual in a minimal page and
returns a PNG data URI that can be embedded as a static image in a report.
"""
from __future__ import annotations

import base64
import logging
import math
from numbers import Real
from typing import Any, Iterable, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from models import ChartSpec, check_lat, check_lng

from .document import (
    CHART_JS_URL,
    LEAFLET_CSS_URL,
    LEAFLET_JS_URL,
    MAP_ATTRIBUTION,
    MAP_TILE_URL,
    js_literal,
    marker_popup_html,
)
from .engine import launch_browser, open_page
from .errors import InvalidInput, RenderEngineFailure, RenderTimeout
from .sync_protocol import MAP_FALLBACK_MS

_LOG = logging.getLogger("uvicorn.error")

CHART_SETTLE_MS = 1000
MAP_STABILIZE_MS = 500
LOAD_TIMEOUT_MS = 60000
MAP_VIEWPORT = {"width": 1024, "height": 768}
MAP_SIZE = (800, 600)
DEFAULT_MAP_ZOOM = 8
MAP_BOUNDS_PADDING = 0.1


def png_data_uri(png: bytes) -> str:
    return f"data:image/png;base64,{base64.b64encode(png).decode('ascii')}"


def _coord(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, Real):
        return None
    number = float(value)
    return number if math.isfinite(number) else None


def _in_range(lat: float, lng: float) -> bool:
    try:
        check_lat(lat)
        check_lng(lng)
    except ValueError:
        return False
    return True


def _point_fields(point: Any) -> dict[str, Any]:
    if isinstance(point, dict):
        geo = point.get("geo") if isinstance(point.get("geo"), dict) else point
        return {
            "lat": geo.get("lat"),
            "lng": geo.get("lng"),
            "title": point.get("title") or point.get("label") or "",
            "temperature": point.get("temperature"),
            "moisture": point.get("moisture", point.get("humidity")),
        }
    return {name: getattr(point, name, None) for name in ("lat", "lng", "title", "temperature", "moisture")}


def valid_markers(points: Iterable[Any]) -> list[dict[str, Any]]:
    """
    Points whose lat and lng are finite real numbers inside the WGS84 ranges
    (bool, NaN and out-of-range values rejected). Non-numeric readings become None.
    """
    markers = []
    for point in points or ():
        fields = _point_fields(point)
        lat, lng = _coord(fields["lat"]), _coord(fields["lng"])
        if lat is None or lng is None or not _in_range(lat, lng):
            continue
        markers.append({
            "lat": lat,
            "lng": lng,
            "title": str(fields["title"] or ""),
            "temperature": _coord(fields["temperature"]),
            "moisture": _coord(fields["moisture"]),
        })
    return markers


def map_center(markers: list[dict[str, Any]]) -> tuple[float, float]:
    n = len(markers)
    return sum(m["lat"] for m in markers) / n, sum(m["lng"] for m in markers) / n


def _chart_html(chart: ChartSpec, width: int, height: int) -> str:
    return f"""<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8" />
    <script src="{CHART_JS_URL}"></script>
  </head>
  <body style="margin:0;">
    <canvas id="chart" width="{int(width)}" height="{int(height)}"></canvas>
    <script>
      var options = Object.assign({{
        responsive: false,
        maintainAspectRatio: false,
        plugins: {{ legend: {{ position: 'bottom' }}, title: {{ display: {js_literal(bool(chart.title))}, text: {js_literal(chart.title)} }} }}
      }}, {js_literal(chart.options)});
      new Chart(document.getElementById('chart').getContext('2d'), {{
        type: {js_literal(chart.type.value)},
        data: {js_literal(chart.data)},
        options: options
      }});
    </script>
  </body>
</html>"""


def _map_html(markers: list[dict[str, Any]], zoom: int) -> str:
    lat, lng = map_center(markers)
    width, height = MAP_SIZE
    popups = [
        {"lat": m["lat"], "lng": m["lng"], "popup": marker_popup_html(i, m["title"], m["temperature"], m["moisture"])}
        for i, m in enumerate(markers)
    ]
    return f"""<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <link rel="stylesheet" href="{LEAFLET_CSS_URL}"/>
    <script src="{LEAFLET_JS_URL}"></script>
    <style>body {{ margin: 0; }} #map {{ width: {width}px; height: {height}px; }}</style>
  </head>
  <body>
    <div id="map"></div>
    <script>
      window.mapComplete = false;
      setTimeout(function () {{ window.mapComplete = true; }}, {MAP_FALLBACK_MS});
      var map = L.map('map').setView([{lat}, {lng}], {int(zoom)});
      var tiles = L.tileLayer({js_literal(MAP_TILE_URL)}, {{ maxZoom: 18, attribution: {js_literal(MAP_ATTRIBUTION)} }});
      tiles.on('load', function () {{ window.mapComplete = true; }});
      tiles.addTo(map);
      var markers = {js_literal(popups)}.map(function (m) {{
        return L.marker([m.lat, m.lng]).addTo(map).bindPopup(m.popup);
      }});
      if (markers.length > 1) {{
        map.fitBounds(L.featureGroup(markers).getBounds().pad({MAP_BOUNDS_PADDING}));
      }}
    </script>
  </body>
</html>"""


async def render_chart_image(chart: ChartSpec, width: int = 1250, height: int = 650) -> str:
    """Full-page PNG of one chart after a fixed settle delay."""
    async with launch_browser() as browser:
        async with open_page(browser) as page:
            try:
                await page.set_content(_chart_html(chart, width, height), wait_until="domcontentloaded", timeout=LOAD_TIMEOUT_MS)
            except PlaywrightTimeoutError as e:
                raise RenderTimeout("chart load", LOAD_TIMEOUT_MS) from e
            await page.wait_for_timeout(CHART_SETTLE_MS)
            png = await page.screenshot(type="png", full_page=True)
    _LOG.info("chart_image_rendered type=%s bytes=%s", chart.type.value, len(png))
    return png_data_uri(png)


async def render_map_image(points: Iterable[Any], zoom: int = DEFAULT_MAP_ZOOM) -> str:
    """
    PNG of the `#map` element with a marker per valid point. Raises InvalidInput,
    before any browser is launched, when no point has usable coordinates.
    """
    markers = valid_markers(points)
    if not markers:
        raise InvalidInput("No valid map points: every marker needs numeric lat and lng")

    async with launch_browser() as browser:
        async with open_page(browser, MAP_VIEWPORT) as page:
            try:
                await page.set_content(_map_html(markers, zoom), wait_until="networkidle", timeout=LOAD_TIMEOUT_MS)
                await page.wait_for_function("() => window.mapComplete === true", timeout=LOAD_TIMEOUT_MS)
            except PlaywrightTimeoutError as e:
                raise RenderTimeout("map load", LOAD_TIMEOUT_MS) from e
            await page.wait_for_timeout(MAP_STABILIZE_MS)
            element = await page.query_selector("#map")
            if element is None:
                raise RenderEngineFailure("Map element not found")
            try:
                png = await element.screenshot(type="png")
            except PlaywrightError as e:
                raise RenderEngineFailure(f"Map screenshot failed: {e}") from e
    _LOG.info("map_image_rendered markers=%s bytes=%s", len(markers), len(png))
    return png_data_uri(png)
