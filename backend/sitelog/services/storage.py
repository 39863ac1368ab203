"""Blob storage for transcripts and generated report artifacts."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import date
from pathlib import Path, PurePosixPath
from typing import Protocol

from sitelog.config import get_settings
from sitelog.services.errors import BlobNotFoundError, StoreUnavailableError

logger = logging.getLogger(__name__)

TRANSCRIPT_FILENAME = "transcript.txt"
SUMMARY_FILENAME = "daily_summary.html"


class BlobStore(Protocol):
    """Minimal object-store contract used by the pipeline."""

    def read_text(self, path: str) -> str:
        """Return the object body as text."""

    def write_text(self, path: str, content: str) -> str:
        """Write the object and return its path."""

    def exists(self, path: str) -> bool:
        """Return whether the object exists."""


def report_prefix(project_id: str, report_date: date, report_id: str) -> str:
    """Path convention ``{projectId}/{year}/{month}/{day}/{reportId}``."""

    return str(
        PurePosixPath(
            project_id,
            f"{report_date.year:04d}",
            f"{report_date.month:02d}",
            f"{report_date.day:02d}",
            report_id,
        )
    )


def transcript_path(project_id: str, report_date: date, report_id: str) -> str:
    return f"{report_prefix(project_id, report_date, report_id)}/{TRANSCRIPT_FILENAME}"


def summary_path(project_id: str, report_date: date, report_id: str) -> str:
    return f"{report_prefix(project_id, report_date, report_id)}/{SUMMARY_FILENAME}"


@dataclass(slots=True)
class LocalBlobStore:
    """Filesystem-backed blob store rooted at one directory."""

    root: Path

    def read_text(self, path: str) -> str:
        target = self._resolve(path)
        try:
            return target.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise BlobNotFoundError(f"Blob not found: {path}") from exc
        except OSError as exc:
            raise StoreUnavailableError(f"Failed to read blob {path}: {exc}") from exc

    def write_text(self, path: str, content: str) -> str:
        target = self._resolve(path)
        tmp_path = target.with_name(f".{target.name}.tmp")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(content, encoding="utf-8")
            os.replace(tmp_path, target)
        except OSError as exc:
            raise StoreUnavailableError(f"Failed to write blob {path}: {exc}") from exc
        logger.info("storage.write path=%s bytes=%d", path, len(content.encode("utf-8")))
        return path

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def _resolve(self, path: str) -> Path:
        relative = PurePosixPath(path)
        if relative.is_absolute() or ".." in relative.parts:
            raise ValueError(f"Blob path must be relative and normalized: {path}")
        return self.root.joinpath(*relative.parts)


def get_default_blob_store() -> LocalBlobStore:
    """Return the configured local blob store."""

    return LocalBlobStore(root=Path(get_settings().blob_store_root))
