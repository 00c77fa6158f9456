"""
Chart/map specs derived from raw inputs (CSV rows, datalogger readings) plus
the sample fallbacks used when a caller sends rows but no visual configuration.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Sequence

from models import ChartSpec, ChartType, MapMarker, MapSpec, SensorReading

DERIVED_CHART_ROWS = 10

_BAR_FILL = "rgba(54, 162, 235, 0.5)"
_BAR_BORDER = "rgba(54, 162, 235, 1)"


def _to_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    return None if number != number else number


def numeric_columns(rows: Sequence[dict[str, Any]]) -> list[str]:
    """Columns of the first row where at least one row holds a number."""
    if not rows:
        return []
    return [h for h in rows[0].keys() if any(_to_float(r.get(h)) is not None for r in rows)]


def derive_charts_from_rows(rows: Sequence[dict[str, Any]]) -> list[ChartSpec]:
    """
    One bar chart over the first numeric column of the first 10 rows.
    Needs at least two numeric columns, otherwise nothing is derived.
    """
    numeric = numeric_columns(rows)
    if len(numeric) < 2:
        return []
    column = numeric[0]
    head = rows[:DERIVED_CHART_ROWS]
    return [
        ChartSpec(
            type=ChartType.BAR,
            title=f"Analysis of {column}",
            data={
                "labels": [f"Item {i + 1}" for i in range(len(head))],
                "datasets": [
                    {
                        "label": column,
                        "data": [_to_float(r.get(column)) or 0 for r in head],
                        "backgroundColor": _BAR_FILL,
                        "borderColor": _BAR_BORDER,
                        "borderWidth": 1,
                    }
                ],
            },
        )
    ]


def sample_rows() -> list[dict[str, Any]]:
    return [
        {"name": "John", "age": 25, "salary": 5000, "city": "Sao Paulo"},
        {"name": "Mary", "age": 30, "salary": 6000, "city": "Rio de Janeiro"},
        {"name": "Peter", "age": 35, "salary": 7000, "city": "Belo Horizonte"},
        {"name": "Anna", "age": 28, "salary": 5500, "city": "Brasilia"},
        {"name": "Charles", "age": 32, "salary": 6500, "city": "Salvador"},
    ]


def sample_charts() -> list[ChartSpec]:
    return [
        ChartSpec(
            type=ChartType.BAR,
            title="Sales by Month",
            data={
                "labels": ["Jan", "Feb", "Mar", "Apr", "May", "Jun"],
                "datasets": [
                    {
                        "label": "Sales 2024",
                        "data": [12000, 15000, 18000, 14000, 16000, 19000],
                        "backgroundColor": _BAR_FILL,
                        "borderColor": _BAR_BORDER,
                        "borderWidth": 1,
                    }
                ],
            },
        ),
        ChartSpec(
            type=ChartType.PIE,
            title="Distribution by Region",
            data={
                "labels": ["North", "Northeast", "Midwest", "Southeast", "South"],
                "datasets": [
                    {
                        "data": [10, 25, 15, 35, 15],
                        "backgroundColor": ["#FF6384", "#36A2EB", "#FFCE56", "#4BC0C0", "#9966FF"],
                    }
                ],
            },
        ),
    ]


def sample_map_config() -> MapSpec:
    return MapSpec(
        center=(-14.235, -51.9253),
        zoom=4,
        markers=[
            MapMarker(lat=-23.5505, lng=-46.6333, title="Sao Paulo"),
            MapMarker(lat=-22.9068, lng=-43.1729, title="Rio de Janeiro"),
            MapMarker(lat=-19.9191, lng=-43.9386, title="Belo Horizonte"),
            MapMarker(lat=-15.8267, lng=-47.9218, title="Brasilia"),
        ],
    )


TEMPERATURE_RANGE = (26.0, 29.0)
MOISTURE_RANGE = (1.0, 99.0)

_TEMP_COLOR = "#5388CB"
_MOIST_COLOR = "#C294CB"
_TEMP_LIMIT_COLOR = "#FFA500"
_MOIST_LIMIT_COLOR = "#32CD32"


def reading_label(ts: datetime) -> str:
    return f"{ts.day}/{ts.month} - {ts.hour}:{ts.minute:02d}"


def label_interval(total_points: int) -> int:
    """Show every n-th x label so dense series stay readable."""
    if total_points > 50:
        return total_points // 10
    if total_points > 20:
        return total_points // 8
    if total_points > 10:
        return total_points // 6
    return 1


def _series(label: str, data: list[float], color: str, axis: str) -> dict[str, Any]:
    return {
        "label": label,
        "data": data,
        "borderColor": color,
        "backgroundColor": color,
        "borderWidth": 2,
        "yAxisID": axis,
        "pointRadius": 1,
        "pointHoverRadius": 3,
    }


def _limit(label: str, value: float, n: int, color: str, axis: str) -> dict[str, Any]:
    return {
        "label": label,
        "data": [value] * n,
        "borderColor": color,
        "backgroundColor": color,
        "borderWidth": 2,
        "fill": False,
        "pointRadius": 0,
        "yAxisID": axis,
    }


def sensor_series_chart(
    readings: Sequence[SensorReading],
    temperature_range: tuple[float, float] = TEMPERATURE_RANGE,
    moisture_range: tuple[float, float] = MOISTURE_RANGE,
) -> ChartSpec:
    """
    Line chart of datalogger readings: temperature on the left axis, moisture on
    the right, each with min/max threshold lines. Missing readings plot as 0.
    """
    n = len(readings)
    every = label_interval(n)
    labels = [reading_label(r.timestamp) if i % every == 0 else "" for i, r in enumerate(readings)]
    temp_min, temp_max = temperature_range
    moist_min, moist_max = moisture_range
    return ChartSpec(
        type=ChartType.LINE,
        data={
            "labels": labels,
            "datasets": [
                _series("Temperature", [r.temperature or 0 for r in readings], _TEMP_COLOR, "yTemp"),
                _series("Moisture", [r.moisture or 0 for r in readings], _MOIST_COLOR, "yMoist"),
                _limit("Temperature Max", temp_max, n, _TEMP_LIMIT_COLOR, "yTemp"),
                _limit("Temperature Min", temp_min, n, _TEMP_LIMIT_COLOR, "yTemp"),
                _limit("Moisture Max", moist_max, n, _MOIST_LIMIT_COLOR, "yMoist"),
                _limit("Moisture Min", moist_min, n, _MOIST_LIMIT_COLOR, "yMoist"),
            ],
        },
        options={
            "plugins": {
                "legend": {"position": "bottom", "labels": {"usePointStyle": True, "padding": 15}},
                "title": {"display": False},
            },
            "scales": {
                "x": {
                    "title": {"display": True, "text": "DATE - TIME", "color": "#666"},
                    "ticks": {"maxRotation": 45, "minRotation": 0, "autoSkip": False, "font": {"size": 10}},
                },
                "yTemp": {
                    "type": "linear",
                    "position": "left",
                    "min": temp_min - 1,
                    "max": temp_max + 3,
                    "title": {"display": True, "text": "Temperature (°C)", "color": _TEMP_COLOR},
                    "ticks": {"color": _TEMP_COLOR, "stepSize": 0.5, "font": {"size": 10}},
                },
                "yMoist": {
                    "type": "linear",
                    "position": "right",
                    "min": 0,
                    "max": 100,
                    "title": {"display": True, "text": "Moisture (%)", "color": _MOIST_COLOR},
                    "ticks": {"color": _MOIST_COLOR, "stepSize": 10, "font": {"size": 10}},
                    "grid": {"drawOnChartArea": False},
                },
            },
            "interaction": {"mode": "index", "intersect": False},
            "elements": {"line": {"tension": 0.1}},
        },
    )
