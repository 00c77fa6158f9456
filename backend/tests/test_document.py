from __future__ import annotations

import json
import re
from datetime import datetime, timezone

from models import ChartSpec, MapMarker, MapSpec, ReportSpec
from reporting.document import (
    build_render_script,
    build_report_html,
    chart_render_js,
    js_literal,
    marker_popup_html,
    table_notice,
)

STAMP = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)


def _bar(title="Sales"):
    return ChartSpec(type="bar", title=title, data={"labels": ["Jan", "Feb"], "datasets": [{"data": [1, 2]}]})


def _bootstrap_state(doc: str) -> dict:
    match = re.search(r"window\.renderState = (\{.*?\});", doc)
    assert match, "render state bootstrap missing"
    return json.loads(match.group(1))


def test_empty_spec_has_header_only_and_completes_immediately():
    doc = build_report_html(ReportSpec(title="Empty"), generated_at=STAMP)
    assert "<h1>Empty</h1>" in doc
    assert "2024-05-01 12:30 UTC" in doc
    for marker in ('class="images-grid"', "<canvas", 'id="map"', 'class="data-table"'):
        assert marker not in doc
    state = _bootstrap_state(doc)
    assert state["chartsExpected"] == 0
    assert state["chartsComplete"] is True
    assert state["mapComplete"] is True


def test_sections_appear_in_order():
    spec = ReportSpec(
        title="All",
        images=["data:image/png;base64,AAAA"],
        charts=[_bar()],
        map_config=MapSpec(center=(0, 0), markers=[MapMarker(lat=1, lng=2, title="A")]),
        csv_data=[{"a": 1}],
    )
    doc = build_report_html(spec, generated_at=STAMP)
    positions = [doc.index(s) for s in ('class="images-grid"', 'id="chart-0"', 'id="map"', 'class="data-table"')]
    assert positions == sorted(positions)
    assert 'alt="Image 1"' in doc


def test_chart_ids_follow_input_order_and_count_is_expected():
    spec = ReportSpec(charts=[_bar("a"), _bar("b"), _bar("c")])
    doc = build_report_html(spec, generated_at=STAMP)
    for i in range(3):
        assert f'id="chart-{i}"' in doc
        assert f"markChartReady(state, {i})" in doc
    state = _bootstrap_state(doc)
    assert state["chartsExpected"] == 3
    assert state["chartsComplete"] is False
    assert state["mapExpected"] is False


def test_map_expected_when_configured_without_markers():
    spec = ReportSpec(map_config=MapSpec(center=(10, 20), zoom=6))
    state = _bootstrap_state(build_report_html(spec, generated_at=STAMP))
    assert state["mapExpected"] is True
    assert state["mapComplete"] is False


def test_table_at_limit_has_total_and_no_pagination():
    rows = [{"n": i} for i in range(1000)]
    doc = build_report_html(ReportSpec(csv_data=rows), generated_at=STAMP)
    assert doc.count("<tr>") == 1001
    assert "pagination-info" not in doc
    assert "Total: 1000 rows" in doc


def test_table_over_limit_renders_first_page_and_notice():
    rows = [{"n": i} for i in range(1001)]
    doc = build_report_html(ReportSpec(csv_data=rows), generated_at=STAMP)
    assert doc.count("<tr>") == 1001
    assert "<td>999</td>" in doc
    assert "<td>1000</td>" not in doc
    assert "Showing 1000 of 1001 rows (page 1 of 2)" in doc


def test_table_notice_page_count_rounds_up():
    assert "page 1 of 3" in table_notice(2500)
    assert "Total: 5 rows" in table_notice(5)


def test_columns_come_from_first_row_and_missing_cells_are_empty():
    rows = [{"name": "Ann", "age": 31}, {"name": "Bob"}, {"age": 5, "extra": "ignored"}]
    doc = build_report_html(ReportSpec(csv_data=rows), generated_at=STAMP)
    assert "<th>name</th><th>age</th>" in doc
    assert "extra" not in doc
    assert "<tr><td>Bob</td><td></td></tr>" in doc
    assert "<tr><td></td><td>5</td></tr>" in doc


def test_user_text_is_escaped():
    spec = ReportSpec(
        title="<script>alert(1)</script>",
        csv_data=[{"<b>col</b>": "a & b"}],
        metadata={"author": "<i>x</i>"},
        charts=[_bar("</script><script>bad()")],
    )
    doc = build_report_html(spec, generated_at=STAMP)
    assert "<script>alert(1)</script>" not in doc
    assert "&lt;script&gt;alert(1)&lt;/script&gt;" in doc
    assert "<th>&lt;b&gt;col&lt;/b&gt;</th>" in doc
    assert "<td>a &amp; b</td>" in doc
    assert "&lt;i&gt;x&lt;/i&gt;" in doc
    assert "</script><script>bad()" not in doc


def test_placeholder_text_in_user_data_is_not_expanded():
    doc = build_report_html(ReportSpec(title="__TABLE_SECTION__"), generated_at=STAMP)
    assert "<h1>__TABLE_SECTION__</h1>" in doc


def test_output_is_deterministic_for_same_timestamp():
    spec = ReportSpec(title="T", charts=[_bar()], csv_data=[{"a": 1}])
    first = build_report_html(spec, generated_at=STAMP)
    assert first == build_report_html(spec, generated_at=STAMP)
    later = build_report_html(spec, generated_at=datetime(2025, 1, 1, tzinfo=timezone.utc))
    assert first.replace("2024-05-01 12:30 UTC", "") == later.replace("2025-01-01 00:00 UTC", "")


def test_fallback_timers_can_be_disabled():
    spec = ReportSpec(charts=[_bar()], map_config=MapSpec(center=(0, 0)))
    with_fallbacks = build_render_script(spec)
    assert "setTimeout(function () { markChartReady(state, 0); }, 1000);" in with_fallbacks
    assert "setTimeout(function () { markMapReady(state); }, 3000);" in with_fallbacks
    without = build_render_script(spec, chart_fallback_ms=None, map_fallback_ms=None)
    assert "markChartReady(state, 0); }, 1000" not in without
    assert "markMapReady(state); }, 3000" not in without


def test_chart_fallback_is_registered_before_chart_construction():
    js = chart_render_js(_bar(), 4)
    assert js.index("setTimeout") < js.index("new Chart")
    assert "beginAtZero" in js
    pie = chart_render_js(ChartSpec(type="pie", data={}), 0)
    assert "beginAtZero" not in pie


def test_js_literal_cannot_close_script_tag():
    assert js_literal("</script>") == '"\\u003c/script\\u003e"'


def test_marker_popup_html():
    assert marker_popup_html(0, "") == "Point 1"
    assert marker_popup_html(2, "Farm <A>") == "Farm &lt;A&gt;"
    assert marker_popup_html(1, "", temperature=27.5) == "Point 2<br>Temp: 27.5°C<br>Moisture: N/A%"


def test_live_map_popups_carry_sensor_readings():
    marker = MapMarker(lat=1, lng=2, temperature=26.5, humidity=70)
    doc = build_report_html(ReportSpec(map_config=MapSpec(center=(0, 0), markers=[marker])), generated_at=STAMP)
    assert "Point 1\\u003cbr\\u003eTemp: 26.5°C\\u003cbr\\u003eMoisture: 70.0%" in doc
    assert "bindPopup(m.popup)" in doc


def test_chart_options_are_merged_and_keep_completion_callback():
    chart = ChartSpec(type="line", data={}, options={"animation": False, "scales": {"yTemp": {"min": 25}}})
    js = chart_render_js(chart, 2)
    assert 'Object.assign({ responsive: true' in js
    assert '{"animation": false, "scales": {"yTemp": {"min": 25}}}' in js
    assert "options.animation = Object.assign({}, options.animation, { onComplete: function () { markChartReady(state, 2); } });" in js
