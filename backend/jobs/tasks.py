"""
Background PDF jobs for large datasets.

Jobs run in-process on the event loop (FastAPI BackgroundTasks) and write their
PDF through pdf_store. Status lives in memory only and is lost on restart.
Finished jobs expire after JOB_TTL_SECONDS, together with their PDF file.
"""
from __future__ import annotations

import enum
import logging
import os
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

import pdf_store
from models import ReportSpec

_LOG = logging.getLogger("uvicorn.error")

# Finished jobs and their PDFs are dropped this long after completion.
JOB_TTL_SECONDS = int(os.getenv("JOB_TTL_SECONDS", "3600"))


class JobStatus(str, enum.Enum):
    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"


@dataclass
class PdfJob:
    id: str
    status: JobStatus = JobStatus.pending
    error: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    @property
    def progress(self) -> int:
        return 100 if self.status in (JobStatus.completed, JobStatus.failed) else 0


class JobRegistry:
    def __init__(self, ttl_seconds: int = JOB_TTL_SECONDS) -> None:
        self._jobs: dict[str, PdfJob] = {}
        self.ttl = timedelta(seconds=ttl_seconds)

    def __len__(self) -> int:
        return len(self._jobs)

    def prune(self, now: Optional[datetime] = None) -> list[str]:
        """Forget finished jobs older than the TTL and delete their PDFs; returns the removed ids."""
        now = now or datetime.now(timezone.utc)
        expired = [
            job.id for job in self._jobs.values()
            if job.completed_at is not None and now - job.completed_at > self.ttl
        ]
        for job_id in expired:
            del self._jobs[job_id]
            pdf_store.delete_pdf(job_id)
        if expired:
            _LOG.info("pdf_jobs_pruned count=%s", len(expired))
        return expired

    def create(self) -> PdfJob:
        self.prune()
        job = PdfJob(id=f"pdf-job-{uuid.uuid4().hex[:12]}")
        self._jobs[job.id] = job
        return job

    def get(self, job_id: str) -> Optional[PdfJob]:
        return self._jobs.get(job_id)

    def mark_running(self, job_id: str) -> None:
        self._jobs[job_id].status = JobStatus.running

    def mark_completed(self, job_id: str) -> None:
        job = self._jobs[job_id]
        job.status = JobStatus.completed
        job.completed_at = datetime.now(timezone.utc)

    def mark_failed(self, job_id: str, error: str) -> None:
        job = self._jobs[job_id]
        job.status = JobStatus.failed
        job.error = error
        job.completed_at = datetime.now(timezone.utc)


registry = JobRegistry()


async def run_pdf_job(
    job_id: str,
    spec: ReportSpec,
    builder: Callable[[ReportSpec], Awaitable[bytes]],
    jobs: JobRegistry = registry,
) -> None:
    """Build the PDF for `spec` and save it; failures are recorded on the job, not raised."""
    jobs.mark_running(job_id)
    start = time.perf_counter()
    try:
        pdf_bytes = await builder(spec)
        path = pdf_store.save_pdf(job_id, pdf_bytes)
    except Exception as e:
        _LOG.exception("pdf_job_failed job_id=%s", job_id)
        jobs.mark_failed(job_id, str(e) or e.__class__.__name__)
        return
    jobs.mark_completed(job_id)
    _LOG.info(
        "pdf_job_completed job_id=%s path=%s bytes=%s duration_ms=%.0f",
        job_id, path, len(pdf_bytes), (time.perf_counter() - start) * 1000,
    )
