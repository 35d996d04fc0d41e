"""Progress reporting for running sync passes."""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

import structlog
from pydantic import BaseModel, Field, computed_field

log = structlog.stdlib.get_logger()

ProgressStatus = Literal["running", "completed", "failed"]


class ProgressUpdate(BaseModel):
    """Snapshot of a pass's progress."""

    status: ProgressStatus = Field(default="running")
    total: int = Field(default=0, ge=0)
    processed: int = Field(default=0, ge=0)
    imported: int = Field(default=0, ge=0)
    updated: int = Field(default=0, ge=0)
    skipped: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    deleted: int = Field(default=0, ge=0)
    message: str = Field(default="")
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @computed_field
    @property
    def percentage(self) -> float:
        if self.total == 0:
            return 100.0 if self.status == "completed" else 0.0
        return round(min(100.0, self.processed / self.total * 100), 1)


class ProgressSink(ABC):
    """Receives progress updates. Failures are never fatal to a pass."""

    @abstractmethod
    def update(self, task_id: str, progress: ProgressUpdate) -> bool:
        """Publish an update. Returns False when it could not be recorded."""


class NullProgressSink(ProgressSink):
    """Discards all updates."""

    def update(self, task_id: str, progress: ProgressUpdate) -> bool:
        return True


class FileProgressTracker(ProgressSink):
    """Writes the latest update of each task to ``<directory>/<task_id>.json``."""

    def __init__(self, directory: str | Path):
        self._directory = Path(directory)

    def update(self, task_id: str, progress: ProgressUpdate) -> bool:
        path = self._directory / f"{task_id}.json"
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            path.write_text(progress.model_dump_json(indent=2), encoding="utf-8")
        except OSError as e:
            log.warning("progress_update_failed", task_id=task_id, path=str(path), error=str(e))
            return False
        return True

    def read(self, task_id: str) -> ProgressUpdate | None:
        path = self._directory / f"{task_id}.json"
        if not path.exists():
            return None
        return ProgressUpdate.model_validate_json(path.read_text(encoding="utf-8"))
