from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class ChartType(str, Enum):
    BAR = "bar"
    LINE = "line"
    PIE = "pie"
    DOUGHNUT = "doughnut"


class ChartSpec(BaseModel):
    """
    One Chart.js chart.

    `data` is the chart library payload ({labels, datasets}) and `options` extra
    Chart.js options merged over the defaults. Both are passed through to the
    page verbatim; only JSON-serializability is checked.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type: ChartType = Field(validation_alias=AliasChoices("type", "kind"))
    title: str = ""
    data: Dict[str, Any] = Field(default_factory=dict, validation_alias=AliasChoices("data", "series"))
    options: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("data", "options")
    @classmethod
    def validate_serializable(cls, v: Dict[str, Any]):
        try:
            json.dumps(v)
        except (TypeError, ValueError) as e:
            raise ValueError(f"chart data must be JSON-serializable: {e}") from e
        return v


def check_lat(v: float) -> float:
    if not -90.0 <= v <= 90.0:
        raise ValueError("latitude must be between -90 and 90")
    return v


def check_lng(v: float) -> float:
    if not -180.0 <= v <= 180.0:
        raise ValueError("longitude must be between -180 and 180")
    return v


class MapMarker(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    lat: float = Field(validation_alias=AliasChoices("lat", "latitude"))
    lng: float = Field(validation_alias=AliasChoices("lng", "lon", "longitude"))
    title: str = Field(default="", validation_alias=AliasChoices("title", "label"))
    temperature: Optional[float] = None
    moisture: Optional[float] = Field(default=None, validation_alias=AliasChoices("moisture", "humidity"))

    @field_validator("lat")
    @classmethod
    def validate_lat(cls, v: float):
        return check_lat(v)

    @field_validator("lng")
    @classmethod
    def validate_lng(cls, v: float):
        return check_lng(v)


class MapSpec(BaseModel):
    """Leaflet map: center (lat, lng), zoom level and optional markers."""
    model_config = ConfigDict(frozen=True)

    center: Tuple[float, float]
    zoom: int = Field(default=4, ge=0, le=19)
    markers: List[MapMarker] = Field(default_factory=list)

    @field_validator("center")
    @classmethod
    def validate_center(cls, v: Tuple[float, float]):
        check_lat(v[0])
        check_lng(v[1])
        return v


class ReportSpec(BaseModel):
    """
    Full report request. Immutable once built; the document assembler only reads it.

    images: data URIs, raw base64 strings or file-system paths.
    csv_data: table rows; columns come from the keys of the first row.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    title: str = "Complete Report"
    images: List[str] = Field(default_factory=list)
    csv_data: List[Dict[str, Any]] = Field(
        default_factory=list,
        validation_alias=AliasChoices("csv_data", "csvData", "tabular_rows", "tabularRows"),
    )
    charts: List[ChartSpec] = Field(default_factory=list)
    map_config: Optional[MapSpec] = Field(
        default=None,
        validation_alias=AliasChoices("map_config", "mapConfig"),
    )
    metadata: Dict[str, Any] = Field(default_factory=dict)


class MapImageRequest(BaseModel):
    """Raw points for the standalone map renderer; validity is checked by the renderer."""
    points: List[Any] = Field(default_factory=list, validation_alias=AliasChoices("points", "markers"))
    zoom: int = Field(default=8, ge=0, le=19)


class ImageResponse(BaseModel):
    data_uri: str


class JobCreateResponse(BaseModel):
    job_id: str
    status: str
    message: str


class JobStatusResponse(BaseModel):
    job_id: str
    status: str
    progress: int = Field(ge=0, le=100)
    error: Optional[str] = None
    download_url: Optional[str] = None
    created_at: Optional[str] = None
    completed_at: Optional[str] = None


class SensorReading(BaseModel):
    """One datalogger sample. `timestamp` accepts ISO strings or epoch seconds/milliseconds."""
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    temperature: Optional[float] = None
    moisture: Optional[float] = Field(default=None, validation_alias=AliasChoices("moisture", "humidity"))


class SensorChartRequest(BaseModel):
    readings: List[SensorReading] = Field(min_length=1)
    temperature_range: Tuple[float, float] = (26.0, 29.0)
    moisture_range: Tuple[float, float] = (1.0, 99.0)

    @field_validator("temperature_range", "moisture_range")
    @classmethod
    def validate_range(cls, v: Tuple[float, float]):
        if v[0] > v[1]:
            raise ValueError("range minimum must not exceed maximum")
        return v
