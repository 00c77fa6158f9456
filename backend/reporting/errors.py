"""Failures surfaced by the rendering pipeline. routes.pdf maps these to HTTP status codes."""
from __future__ import annotations


class ReportRenderError(RuntimeError):
    """Base class for failures that abort a render request."""


class RenderTimeout(ReportRenderError):
    """Document load or the render synchronization wait exceeded its bound."""

    def __init__(self, stage: str, timeout_ms: int):
        self.stage = stage
        self.timeout_ms = timeout_ms
        super().__init__(f"{stage} timed out after {timeout_ms} ms")


class RenderEngineFailure(ReportRenderError):
    """Chromium failed to launch, crashed, or raised while producing PDF/screenshot output."""


class InvalidInput(ValueError):
    """Request rejected before any browser is launched."""
