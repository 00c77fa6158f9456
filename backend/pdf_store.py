"""
Store and retrieve generated PDFs on disk for asynchronous download.
Files live at <PDF_OUTPUT_DIR>/<job_id>.pdf.
"""
from __future__ import annotations

import os
import re
from pathlib import Path

PDF_OUTPUT_DIR = Path(os.environ.get("PDF_OUTPUT_DIR", str(Path(__file__).resolve().parent / "generated-pdfs")))

_JOB_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def ensure_output_dir() -> Path:
    PDF_OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    return PDF_OUTPUT_DIR


def is_valid_job_id(job_id: str) -> bool:
    return bool(_JOB_ID_RE.match(job_id or ""))


def pdf_path(job_id: str) -> Path:
    if not is_valid_job_id(job_id):
        raise ValueError(f"Invalid job id: {job_id!r}")
    return PDF_OUTPUT_DIR / f"{job_id}.pdf"


def save_pdf(job_id: str, pdf_bytes: bytes) -> Path:
    path = pdf_path(job_id)
    ensure_output_dir()
    path.write_bytes(pdf_bytes)
    return path


def load_pdf(job_id: str) -> bytes | None:
    if not is_valid_job_id(job_id):
        return None
    path = pdf_path(job_id)
    if not path.is_file():
        return None
    return path.read_bytes()


def delete_pdf(job_id: str) -> None:
    if not is_valid_job_id(job_id):
        return
    pdf_path(job_id).unlink(missing_ok=True)
