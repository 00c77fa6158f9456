"""
Turn image references into embeddable data URIs.

A reference is a data URI (kept as is), raw base64 (wrapped as PNG) or a file path
(read and wrapped with a MIME type guessed from the extension). Unreadable paths
are returned unchanged so one broken image never aborts the whole report.

Path refs are trusted only from in-process callers. Requests coming over HTTP go
through confine_image_refs first, which limits paths to IMAGE_ASSET_DIR.
"""
from __future__ import annotations

import asyncio
import base64
import logging
import os
import re
from pathlib import Path
from typing import Iterable, Optional

from .errors import InvalidInput

_LOG = logging.getLogger("uvicorn.error")

# Only directory whose files HTTP callers may reference by path; unset disables paths.
IMAGE_ASSET_DIR = os.getenv("IMAGE_ASSET_DIR", "").strip()

_BASE64_RE = re.compile(r"^[A-Za-z0-9+/=]+$")
# Shorter strings are more likely file names than image payloads.
MIN_RAW_BASE64_LEN = 100

_MIME_BY_EXT = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "svg": "image/svg+xml",
    "webp": "image/webp",
}
UPLOAD_IMAGE_EXTENSIONS = ("png", "jpg", "jpeg", "svg")


def mime_from_extension(path: str) -> str:
    ext = path.rsplit(".", 1)[-1].lower() if "." in path else ""
    return _MIME_BY_EXT.get(ext, "image/png")


def bytes_to_data_uri(content: bytes, mime: str) -> str:
    return f"data:{mime};base64,{base64.b64encode(content).decode('ascii')}"


def looks_like_raw_base64(ref: str) -> bool:
    return len(ref) > MIN_RAW_BASE64_LEN and bool(_BASE64_RE.match(ref))


def is_supported_image_upload(filename: str, content_type: str) -> bool:
    """Uploaded file is an image/* with one of the accepted extensions."""
    name = (filename or "").lower()
    return (content_type or "").startswith("image/") and name.endswith(UPLOAD_IMAGE_EXTENSIONS)


async def normalize_image(ref: str) -> str:
    if ref.startswith("data:"):
        return ref
    if looks_like_raw_base64(ref):
        return f"data:image/png;base64,{ref}"
    try:
        content = await asyncio.to_thread(Path(ref).read_bytes)
    except (OSError, ValueError) as e:
        _LOG.warning("asset_unresolved ref=%r error=%s", ref[:120], e)
        return ref
    return bytes_to_data_uri(content, mime_from_extension(ref))


async def normalize_images(refs: Iterable[str]) -> list[str]:
    """Normalize every reference concurrently; output order matches input order."""
    return list(await asyncio.gather(*(normalize_image(r) for r in refs)))


def is_inline_image(ref: str) -> bool:
    return ref.startswith("data:") or looks_like_raw_base64(ref)


def confined_path(ref: str, asset_dir: str) -> Optional[Path]:
    """`ref` resolved below `asset_dir` (symlinks followed), or None when it points outside."""
    try:
        root = Path(asset_dir).resolve()
        candidate = (root / ref).resolve()
    except (OSError, ValueError):
        return None
    return candidate if candidate.is_relative_to(root) else None


def confine_image_refs(refs: Iterable[str], asset_dir: Optional[str] = None) -> list[str]:
    """
    Image refs from an untrusted caller. Inline images pass through; path refs are
    rewritten to absolute paths inside IMAGE_ASSET_DIR. Any other path raises
    InvalidInput, so a request can never embed arbitrary server files.
    """
    asset_dir = IMAGE_ASSET_DIR if asset_dir is None else asset_dir
    confined = []
    for ref in refs:
        if is_inline_image(ref):
            confined.append(ref)
            continue
        path = confined_path(ref, asset_dir) if asset_dir else None
        if path is None:
            raise InvalidInput(f"Image reference {ref[:120]!r} is not a data URI, base64 payload or asset file")
        confined.append(str(path))
    return confined
