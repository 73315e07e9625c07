"""Result persistence: one JSON file per job per run."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from stepwright.data_types import DEFAULT_OUTPUT_DIR, JobResult

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class ResultMetadata(BaseModel):
    scraper: str
    url: str
    pages_scraped: int
    total_records: int
    duration_ms: int
    scraped_at: str
    error: str | None = None


class PersistedResult(BaseModel):
    """On-disk form of a JobResult."""

    metadata: ResultMetadata
    data: list[dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_job_result(cls, result: JobResult) -> PersistedResult:
        return cls(
            metadata=ResultMetadata(
                scraper=result.name,
                url=result.url,
                pages_scraped=result.page_count,
                total_records=result.record_count,
                duration_ms=result.duration,
                scraped_at=result.started_at,
                error=result.error_message,
            ),
            data=result.data,
        )


def result_filename(result: JobResult) -> str:
    """``{name}-{timestamp}.json`` with a filesystem-safe timestamp.

    Example: ``shop-2026-01-02T03-04-05-678.json`` for a job named ``shop``
    started at ``2026-01-02T03:04:05.678Z``.
    """
    name = _UNSAFE_FILENAME_CHARS.sub("_", result.name).strip("_") or "job"
    timestamp = re.sub(r"[:.]", "-", result.started_at).removesuffix("Z")
    return f"{name}-{timestamp}.json"


def save_result(
    result: JobResult, output_dir: str | Path = DEFAULT_OUTPUT_DIR
) -> Path:
    """Write ``result`` to ``output_dir``, creating the directory if needed.

    Returns:
        Path of the written file.
    """
    directory = Path(output_dir)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / result_filename(result)
    path.write_text(
        PersistedResult.from_job_result(result).model_dump_json(indent=2),
        encoding="utf-8",
    )
    logger.info(f"Saved {result.record_count} record(s) to {path}")
    return path


def list_results(output_dir: str | Path = DEFAULT_OUTPUT_DIR) -> list[Path]:
    """Result files in ``output_dir``, sorted by name."""
    directory = Path(output_dir)
    if not directory.exists():
        return []
    return sorted(directory.glob("*.json"))


def load_result(path: str | Path) -> PersistedResult:
    return PersistedResult.model_validate_json(
        Path(path).read_text(encoding="utf-8")
    )
