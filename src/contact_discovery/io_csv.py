"""CSV serialization helpers."""

from __future__ import annotations

import csv
from pathlib import Path

from .extraction import domain_from_url
from .models import CandidateContact
from .scoring import quality_label

CSV_FIELDS = [
    "name",
    "email",
    "role",
    "organization",
    "domain",
    "source_url",
    "confidence",
    "quality",
    "spam_score",
]


def contact_rows(candidates: list[CandidateContact]) -> list[dict[str, str]]:
    """Flatten ranked candidates into CSV rows, keeping their order."""
    rows: list[dict[str, str]] = []
    for candidate in candidates:
        rows.append(
            {
                "name": candidate.name or "",
                "email": candidate.email,
                "role": candidate.role or "",
                "organization": candidate.organization or "",
                "domain": domain_from_url(candidate.source_url),
                "source_url": candidate.source_url,
                "confidence": f"{candidate.confidence:.2f}",
                "quality": quality_label(candidate.confidence),
                "spam_score": f"{candidate.spam_score:.2f}",
            }
        )
    return rows


def write_rows(path: str, rows: list[dict[str, str]]) -> None:
    """Write contact rows to CSV with stable schema."""
    output_path = Path(path)
    with output_path.open("w", newline="", encoding="utf-8") as file_obj:
        writer = csv.DictWriter(file_obj, fieldnames=CSV_FIELDS)
        writer.writeheader()
        for row in rows:
            writer.writerow(row)
