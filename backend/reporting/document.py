"""
Assemble the self-contained report HTML from a ReportSpec.

Sections, in order: header, image gallery, charts, map, data table. Empty
sections are omitted. The trailing script creates the render completion state
(see reporting.sync_protocol) and issues one render call per chart plus one
for the map. Images must already be data URIs (reporting.assets).
"""
from __future__ import annotations

import html
import json
import math
import os
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Sequence

from models import ChartSpec, ChartType, MapSpec, ReportSpec

from .sync_protocol import (
    CHART_FALLBACK_MS,
    MAP_FALLBACK_MS,
    RenderCompletionState,
    bootstrap_script,
    fallback_timer_js,
)

_TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"
_REPORT_HTML = (_TEMPLATE_DIR / "report.html").read_text(encoding="utf-8")
_PLACEHOLDER_RE = re.compile(r"__([A-Z][A-Z_]*[A-Z])__")

CHART_JS_URL = os.getenv("CHART_JS_URL", "https://cdn.jsdelivr.net/npm/chart.js")
LEAFLET_JS_URL = os.getenv("LEAFLET_JS_URL", "https://unpkg.com/leaflet@1.9.4/dist/leaflet.js")
LEAFLET_CSS_URL = os.getenv("LEAFLET_CSS_URL", "https://unpkg.com/leaflet@1.9.4/dist/leaflet.css")
MAP_TILE_URL = os.getenv("MAP_TILE_URL", "https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png")
MAP_ATTRIBUTION = "&copy; OpenStreetMap contributors"

MAX_TABLE_ROWS = 1000
GENERATED_AT_FORMAT = "%Y-%m-%d %H:%M UTC"


def _escape(s: Any) -> str:
    return html.escape(str(s), quote=True)


def js_literal(value: Any) -> str:
    """JSON for inline <script>; `<`, `>` and `&` are escaped so data cannot close the tag."""
    return (
        json.dumps(value, ensure_ascii=False)
        .replace("<", "\\u003c")
        .replace(">", "\\u003e")
        .replace("&", "\\u0026")
    )


def chart_element_id(index: int) -> str:
    return f"chart-{index}"


def _metadata_html(metadata: dict[str, Any]) -> str:
    if not metadata:
        return ""
    items = "".join(
        f"<li><strong>{_escape(k)}:</strong> {_escape(v)}</li>"
        for k, v in metadata.items()
        if not isinstance(v, (dict, list))
    )
    return f'<ul class="meta-list">{items}</ul>' if items else ""


def _images_section(images: Sequence[str]) -> str:
    if not images:
        return ""
    cells = "".join(
        f'<div class="image-container"><img src="{_escape(src)}" alt="Image {i}" /><p>Image {i}</p></div>'
        for i, src in enumerate(images, start=1)
    )
    return f'<div class="section"><h2 class="section-title">Images</h2><div class="images-grid">{cells}</div></div>'


def _charts_section(charts: Sequence[ChartSpec]) -> str:
    if not charts:
        return ""
    blocks = "".join(
        f'<div class="chart-container"><div class="chart-wrapper">'
        f'<h3 class="chart-title">{_escape(chart.title)}</h3>'
        f'<canvas id="{chart_element_id(i)}" class="chart-canvas"></canvas>'
        f"</div></div>"
        for i, chart in enumerate(charts)
    )
    return f'<div class="section"><h2 class="section-title">Charts</h2>{blocks}</div>'


def _map_section(map_config: Optional[MapSpec]) -> str:
    if map_config is None:
        return ""
    return (
        '<div class="section"><h2 class="section-title">Map</h2>'
        '<div class="map-wrapper"><div id="map" style="width:100%;height:100%;"></div></div></div>'
    )


def _cell(value: Any) -> str:
    return "" if value is None else _escape(value)


def table_notice(total_rows: int, max_rows: int = MAX_TABLE_ROWS) -> str:
    if total_rows > max_rows:
        pages = math.ceil(total_rows / max_rows)
        return f'<div class="pagination-info">Showing {max_rows} of {total_rows} rows (page 1 of {pages})</div>'
    return f'<div class="table-total">Total: {total_rows} rows</div>'


def _table_section(rows: Sequence[dict[str, Any]]) -> str:
    # Only the first page is rendered; larger inputs get an informational notice.
    if not rows:
        return ""
    headers = list(rows[0].keys())
    head = "".join(f"<th>{_escape(h)}</th>" for h in headers)
    body = "".join(
        "<tr>" + "".join(f"<td>{_cell(row.get(h))}</td>" for h in headers) + "</tr>"
        for row in rows[:MAX_TABLE_ROWS]
    )
    return (
        '<div class="section"><h2 class="section-title">Data</h2><div class="table-container">'
        f'<table class="data-table"><thead><tr>{head}</tr></thead><tbody>{body}</tbody></table>'
        f"{table_notice(len(rows))}</div></div>"
    )


def marker_popup_html(index: int, title: str, temperature: Any = None, moisture: Any = None) -> str:
    """Escaped popup body: title (or `Point N`), then the sensor readings when the marker has any."""
    lines = [_escape(title) if title else f"Point {index + 1}"]
    if temperature is not None or moisture is not None:
        lines.append(f"Temp: {_escape('N/A' if temperature is None else temperature)}°C")
        lines.append(f"Moisture: {_escape('N/A' if moisture is None else moisture)}%")
    return "<br>".join(lines)


def chart_options(chart: ChartSpec) -> str:
    scales = "{}" if chart.type in (ChartType.PIE, ChartType.DOUGHNUT) else "{ y: { beginAtZero: true } }"
    return (
        "{ responsive: true, maintainAspectRatio: false,"
        f" plugins: {{ title: {{ display: true, text: {js_literal(chart.title)} }}, legend: {{ position: 'top' }} }},"
        f" scales: {scales} }}"
    )


def chart_render_js(chart: ChartSpec, index: int, fallback_ms: Optional[int] = CHART_FALLBACK_MS) -> str:
    """One chart render call; completion from the animation callback or the fallback timer."""
    mark = f"markChartReady(state, {index})"
    return f"""
(function (state) {{
  {fallback_timer_js(mark, fallback_ms)}
  var el = document.getElementById({js_literal(chart_element_id(index))});
  if (!el || typeof Chart === 'undefined') {{ {mark}; return; }}
  var options = Object.assign({chart_options(chart)}, {js_literal(chart.options)});
  options.animation = Object.assign({{}}, options.animation, {{ onComplete: function () {{ {mark}; }} }});
  try {{
    new Chart(el, {{ type: {js_literal(chart.type.value)}, data: {js_literal(chart.data)}, options: options }});
  }} catch (err) {{
    console.error('chart {index} failed', err);
    {mark};
  }}
}})(window.renderState);
"""


def map_render_js(map_config: MapSpec, fallback_ms: Optional[int] = MAP_FALLBACK_MS) -> str:
    """Map render call; completion from the tile layer load event or the fallback timer."""
    markers = [
        {"lat": m.lat, "lng": m.lng, "popup": marker_popup_html(i, m.title, m.temperature, m.moisture)}
        for i, m in enumerate(map_config.markers)
    ]
    lat, lng = map_config.center
    return f"""
(function (state) {{
  {fallback_timer_js("markMapReady(state)", fallback_ms)}
  if (typeof L === 'undefined') {{ markMapReady(state); return; }}
  var map = L.map('map').setView([{lat}, {lng}], {int(map_config.zoom)});
  var tiles = L.tileLayer({js_literal(MAP_TILE_URL)}, {{ attribution: {js_literal(MAP_ATTRIBUTION)} }});
  tiles.on('load', function () {{ markMapReady(state); }});
  tiles.addTo(map);
  {js_literal(markers)}.forEach(function (m) {{
    L.marker([m.lat, m.lng]).addTo(map).bindPopup(m.popup);
  }});
  setTimeout(function () {{ map.invalidateSize(); }}, 500);
}})(window.renderState);
"""


def build_render_script(
    spec: ReportSpec,
    chart_fallback_ms: Optional[int] = CHART_FALLBACK_MS,
    map_fallback_ms: Optional[int] = MAP_FALLBACK_MS,
) -> str:
    parts = [bootstrap_script(RenderCompletionState.for_spec(spec))]
    parts.extend(chart_render_js(c, i, chart_fallback_ms) for i, c in enumerate(spec.charts))
    if spec.map_config is not None:
        parts.append(map_render_js(spec.map_config, map_fallback_ms))
    return "".join(parts)


def build_report_html(
    spec: ReportSpec,
    generated_at: Optional[datetime] = None,
    chart_fallback_ms: Optional[int] = CHART_FALLBACK_MS,
    map_fallback_ms: Optional[int] = MAP_FALLBACK_MS,
) -> str:
    """
    Produce the full HTML document for `spec`. Output depends only on `spec`,
    `generated_at` (defaults to now) and the fallback delays.
    A fallback delay of None disables that fallback timer.
    """
    stamp = (generated_at or datetime.now(timezone.utc)).strftime(GENERATED_AT_FORMAT)
    values = {
        "REPORT_TITLE": _escape(spec.title),
        "GENERATED_AT": _escape(stamp),
        "METADATA_HTML": _metadata_html(spec.metadata),
        "CHART_JS_URL": _escape(CHART_JS_URL),
        "LEAFLET_JS_URL": _escape(LEAFLET_JS_URL),
        "LEAFLET_CSS_URL": _escape(LEAFLET_CSS_URL),
        "IMAGES_SECTION": _images_section(spec.images),
        "CHARTS_SECTION": _charts_section(spec.charts),
        "MAP_SECTION": _map_section(spec.map_config),
        "TABLE_SECTION": _table_section(spec.csv_data),
        "RENDER_SCRIPT": build_render_script(spec, chart_fallback_ms, map_fallback_ms),
    }
    # Single pass so placeholder-like text inside user data is never expanded.
    return _PLACEHOLDER_RE.sub(lambda m: values.get(m.group(1), m.group(0)), _REPORT_HTML)
