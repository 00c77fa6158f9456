"""
PDF endpoints: live, static and CSV-driven reports, standalone chart/map images,
and background jobs for large datasets.
"""
from __future__ import annotations

import json
import logging
import os
import time
from typing import Any, Awaitable, Callable, Optional

from fastapi import APIRouter, BackgroundTasks, File, Form, HTTPException, UploadFile
from fastapi.responses import HTMLResponse, Response
from pydantic import ValidationError

import pdf_store
from jobs.tasks import JobStatus, registry, run_pdf_job
from models import (
    ChartSpec,
    ImageResponse,
    JobCreateResponse,
    JobStatusResponse,
    MapImageRequest,
    ReportSpec,
    SensorChartRequest,
)
from reporting import pdf_renderer, visuals
from reporting.assets import bytes_to_data_uri, confine_image_refs, is_supported_image_upload
from reporting.derive import (
    derive_charts_from_rows,
    sample_charts,
    sample_map_config,
    sample_rows,
    sensor_series_chart,
)
from reporting.errors import InvalidInput, RenderEngineFailure, RenderTimeout, ReportRenderError
from services.csv_input import decode_csv_bytes, is_csv_upload, parse_csv_text

_LOG = logging.getLogger("uvicorn.error")

MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(50 * 1024 * 1024)))
DEFAULT_TITLE = "Complete Report"

router = APIRouter(prefix="/pdf", tags=["pdf"])


def http_error_for(e: Exception) -> HTTPException:
    """Map pipeline failures to status codes; the message is passed through as detail."""
    if isinstance(e, InvalidInput):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, RenderTimeout):
        return HTTPException(status_code=504, detail=str(e))
    if isinstance(e, RenderEngineFailure):
        return HTTPException(status_code=503, detail=f"PDF rendering engine failed: {e}")
    return HTTPException(status_code=500, detail=str(e))


async def _run(label: str, render: Callable[[], Awaitable[Any]]) -> Any:
    try:
        return await render()
    except (InvalidInput, ReportRenderError) as e:
        _LOG.warning("%s_failed error_type=%s error=%s", label, e.__class__.__name__, e)
        raise http_error_for(e) from e


def _pdf_response(pdf_bytes: bytes, stem: str) -> Response:
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{stem}-{int(time.time() * 1000)}.pdf"'},
    )


def _json_form_field(raw: Optional[str], name: str) -> Any:
    if raw is None or not raw.strip():
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=400, detail=f"Form field {name!r} is not valid JSON: {e}") from e


def _build_spec(**fields: Any) -> ReportSpec:
    try:
        return ReportSpec(**fields)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=json.loads(e.json(include_url=False))) from e


def _confined(spec: ReportSpec) -> ReportSpec:
    """Caller-supplied image paths may only point into IMAGE_ASSET_DIR."""
    try:
        images = confine_image_refs(spec.images)
    except InvalidInput as e:
        raise http_error_for(e) from e
    return spec.model_copy(update={"images": images})


async def _read_upload(file: UploadFile) -> bytes:
    content = await file.read()
    if len(content) > MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=413,
            detail=f"File {file.filename!r} exceeds the {MAX_UPLOAD_BYTES} byte limit",
        )
    return content


async def _image_uploads_to_data_uris(files: list[UploadFile]) -> list[str]:
    images = []
    for f in files:
        if not is_supported_image_upload(f.filename or "", f.content_type or ""):
            continue
        images.append(bytes_to_data_uri(await _read_upload(f), f.content_type or "image/png"))
    return images


@router.post("/generate")
async def generate_pdf(spec: ReportSpec) -> Response:
    """JSON ReportSpec in, PDF out. Charts and map render live in the page."""
    spec = _confined(spec)
    pdf_bytes = await _run("generate", lambda: pdf_renderer.build_report_pdf(spec))
    return _pdf_response(pdf_bytes, "report")


@router.post("/preview", response_class=HTMLResponse)
async def preview_html(spec: ReportSpec) -> HTMLResponse:
    """Assembled document without rendering; no browser needed."""
    spec = _confined(spec)
    return HTMLResponse(await pdf_renderer.build_report_html_for(spec))


@router.post("/generate-static")
async def generate_static_pdf(spec: ReportSpec) -> Response:
    """Charts and map are screenshotted first and embedded as images."""
    spec = _confined(spec)
    pdf_bytes = await _run("generate_static", lambda: pdf_renderer.build_static_report_pdf(spec))
    return _pdf_response(pdf_bytes, "report-static")


@router.post("/generate-complete")
async def generate_complete_pdf(
    files: list[UploadFile] = File(default=[]),
    title: Optional[str] = Form(None),
    csv_data: Optional[str] = Form(None),
    charts: Optional[str] = Form(None),
    map_config: Optional[str] = Form(None),
    metadata: Optional[str] = Form(None),
) -> Response:
    """
    Multipart: uploaded images plus JSON-encoded form fields. Omitted rows,
    charts or map fall back to the sample data set.
    """
    images = await _image_uploads_to_data_uris(files)
    rows = _json_form_field(csv_data, "csv_data")
    chart_list = _json_form_field(charts, "charts")
    map_spec = _json_form_field(map_config, "map_config")
    spec = _build_spec(
        title=title or DEFAULT_TITLE,
        images=images,
        csv_data=rows if rows is not None else sample_rows(),
        charts=chart_list if chart_list is not None else sample_charts(),
        map_config=map_spec if map_spec is not None else sample_map_config(),
        metadata=_json_form_field(metadata, "metadata") or {},
    )
    _LOG.info(
        "generate_complete images=%s rows=%s charts=%s map=%s",
        len(spec.images), len(spec.csv_data), len(spec.charts), spec.map_config is not None,
    )
    pdf_bytes = await _run("generate_complete", lambda: pdf_renderer.build_report_pdf(spec))
    return _pdf_response(pdf_bytes, "report-complete")


@router.post("/generate-from-csv")
async def generate_pdf_from_csv(
    files: list[UploadFile] = File(default=[]),
    map_config: Optional[str] = Form(None),
) -> Response:
    """One CSV upload (required) plus optional images; charts are derived from the rows."""
    csv_file = next((f for f in files if is_csv_upload(f.filename or "", f.content_type or "")), None)
    if csv_file is None:
        raise http_error_for(InvalidInput("CSV file not found in upload"))
    rows = parse_csv_text(decode_csv_bytes(await _read_upload(csv_file)))
    images = await _image_uploads_to_data_uris([f for f in files if f is not csv_file])
    map_spec = _json_form_field(map_config, "map_config")
    spec = _build_spec(
        title=f"CSV Report - {csv_file.filename}",
        images=images,
        csv_data=rows,
        charts=derive_charts_from_rows(rows),
        map_config=map_spec if map_spec is not None else sample_map_config(),
    )
    pdf_bytes = await _run("generate_from_csv", lambda: pdf_renderer.build_report_pdf(spec))
    return _pdf_response(pdf_bytes, "report-csv")


@router.post("/generate-large-dataset", response_model=JobCreateResponse)
async def generate_large_dataset(spec: ReportSpec, background_tasks: BackgroundTasks) -> JobCreateResponse:
    """Start a background render; poll /pdf/status/{job_id}, then /pdf/download/{job_id}."""
    spec = _confined(spec)
    job = registry.create()
    background_tasks.add_task(run_pdf_job, job.id, spec, pdf_renderer.build_report_pdf)
    _LOG.info("pdf_job_queued job_id=%s rows=%s", job.id, len(spec.csv_data))
    return JobCreateResponse(
        job_id=job.id,
        status=job.status.value,
        message="PDF is being generated. Use the job_id to check its status.",
    )


@router.get("/status/{job_id}", response_model=JobStatusResponse)
def get_job_status(job_id: str) -> JobStatusResponse:
    job = registry.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobStatusResponse(
        job_id=job.id,
        status=job.status.value,
        progress=job.progress,
        error=job.error,
        download_url=f"/pdf/download/{job.id}" if job.status is JobStatus.completed else None,
        created_at=job.created_at.isoformat(),
        completed_at=job.completed_at.isoformat() if job.completed_at else None,
    )


@router.get("/download/{job_id}")
def download_pdf(job_id: str) -> Response:
    pdf_bytes = pdf_store.load_pdf(job_id)
    if pdf_bytes is None:
        raise HTTPException(status_code=404, detail="PDF not found")
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="report-{job_id}.pdf"'},
    )


@router.post("/chart-image", response_model=ImageResponse)
async def chart_image(chart: ChartSpec) -> ImageResponse:
    data_uri = await _run("chart_image", lambda: visuals.render_chart_image(chart))
    return ImageResponse(data_uri=data_uri)


@router.post("/map-image", response_model=ImageResponse)
async def map_image(req: MapImageRequest) -> ImageResponse:
    data_uri = await _run("map_image", lambda: visuals.render_map_image(req.points, zoom=req.zoom))
    return ImageResponse(data_uri=data_uri)


@router.post("/sensor-chart-image", response_model=ImageResponse)
async def sensor_chart_image(req: SensorChartRequest) -> ImageResponse:
    """Datalogger readings in, temperature/moisture time-series PNG out."""
    chart = sensor_series_chart(req.readings, req.temperature_range, req.moisture_range)
    data_uri = await _run("sensor_chart_image", lambda: visuals.render_chart_image(chart))
    return ImageResponse(data_uri=data_uri)
