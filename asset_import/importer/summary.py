"""
Run summary: per-item outcomes aggregated for the end-of-run report.
"""

import enum
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from asset_import.utils.logging import get_logger

logger = get_logger(__name__)

# Run kinds that resolve categories
CATEGORY_KINDS = ("resources", "avatars")


class ItemOutcome(str, enum.Enum):
    CREATED = "created"
    EXISTING = "existing"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class ItemFailure:
    path: str
    error: str
    error_type: str


@dataclass
class Orphan:
    """Uploaded object left without a record; needs reconciliation."""

    path: str
    storage_key: str


@dataclass
class ImportSummary:
    kind: str
    source: str
    run_id: str
    admin_id: Optional[str] = None
    created: int = 0
    existing: int = 0
    skipped: int = 0
    failed: int = 0
    categories_created: int = 0
    categories_existing: int = 0
    uploads_written: int = 0
    uploads_reused: int = 0
    bytes_uploaded: int = 0
    stopped_early: bool = False
    failures: List[ItemFailure] = field(default_factory=list)
    orphans: List[Orphan] = field(default_factory=list)
    started_at: float = field(default_factory=time.monotonic)
    duration_seconds: float = 0.0
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    @property
    def total(self) -> int:
        return self.created + self.existing + self.skipped + self.failed

    def record(self, outcome: ItemOutcome) -> None:
        with self._lock:
            if outcome is ItemOutcome.CREATED:
                self.created += 1
            elif outcome is ItemOutcome.EXISTING:
                self.existing += 1
            elif outcome is ItemOutcome.SKIPPED:
                self.skipped += 1
            else:
                self.failed += 1

    def record_failure(self, path: str, error: BaseException) -> None:
        with self._lock:
            self.failed += 1
            self.failures.append(ItemFailure(path, str(error), type(error).__name__))

    def record_upload(self, size: int, reused: bool) -> None:
        with self._lock:
            if reused:
                self.uploads_reused += 1
            else:
                self.uploads_written += 1
                self.bytes_uploaded += size

    def record_orphan(self, path: str, storage_key: str) -> None:
        with self._lock:
            self.orphans.append(Orphan(path, storage_key))

    def finish(self) -> None:
        self.duration_seconds = time.monotonic() - self.started_at

    def as_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "source": self.source,
            "run_id": self.run_id,
            "admin_id": self.admin_id,
            "items": {
                "total": self.total,
                "created": self.created,
                "existing": self.existing,
                "skipped": self.skipped,
                "failed": self.failed,
            },
            "categories": {
                "created": self.categories_created,
                "existing": self.categories_existing,
            },
            "uploads": {
                "written": self.uploads_written,
                "reused": self.uploads_reused,
                "bytes": self.bytes_uploaded,
            },
            "stopped_early": self.stopped_early,
            "failures": [
                {"path": f.path, "error": f.error, "error_type": f.error_type}
                for f in self.failures
            ],
            "orphans": [{"path": o.path, "storage_key": o.storage_key} for o in self.orphans],
            "duration_seconds": round(self.duration_seconds, 3),
        }

    def log(self) -> None:
        """Emit the end-of-run report."""
        logger.info(
            f"Import {self.kind} complete: {self.created} created, {self.existing} existing, "
            f"{self.skipped} skipped, {self.failed} failed "
            f"({self.bytes_uploaded / (1024 * 1024):.2f}MB uploaded in "
            f"{self.duration_seconds:.2f}s)",
            extra={"summary": self.as_dict()},
        )
        if self.kind in CATEGORY_KINDS:
            logger.info(
                f"Categories: {self.categories_created} created, "
                f"{self.categories_existing} existing"
            )
        if self.stopped_early:
            logger.warning("Run stopped before all entries were processed")
        for failure in self.failures:
            logger.error(f"Failed: {failure.path}: {failure.error_type}: {failure.error}")
        for orphan in self.orphans:
            logger.error(
                f"Orphaned object (uploaded, not registered): {orphan.storage_key} "
                f"from {orphan.path}"
            )
