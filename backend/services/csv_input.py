"""
CSV upload parsing: first line is the header, every other non-blank line a row.
Values stay strings; numeric detection happens in reporting.derive.
"""
from __future__ import annotations

import csv
from typing import Any

CSV_CONTENT_TYPES = {"text/csv", "application/csv", "application/vnd.ms-excel"}


def is_csv_upload(filename: str, content_type: str) -> bool:
    return (content_type or "").lower() in CSV_CONTENT_TYPES or (filename or "").lower().endswith(".csv")


def decode_csv_bytes(content: bytes) -> str:
    # utf-8-sig drops the BOM that spreadsheet exports prepend
    return content.decode("utf-8-sig", errors="replace")


def parse_csv_text(text: str) -> list[dict[str, Any]]:
    lines = [line for line in text.strip().splitlines() if line.strip()]
    if not lines:
        return []
    reader = csv.reader(lines, skipinitialspace=True)
    headers = [h.strip() for h in next(reader)]
    rows: list[dict[str, Any]] = []
    for values in reader:
        rows.append({h: (values[i].strip() if i < len(values) else "") for i, h in enumerate(headers)})
    return rows
