"""Read-side projections over task snapshots. Nothing here mutates a registry."""
from dataclasses import dataclass
from typing import Iterable, List

from .models import UploadStatus, UploadTask


@dataclass(frozen=True)
class UploadSummary:
    """Aggregate counts for an overlay-style view."""
    total: int = 0
    waiting: int = 0
    uploading: int = 0
    completed: int = 0
    failed: int = 0
    average_progress: float = 0.0  # over non-waiting tasks

    @property
    def active(self) -> int:
        """Tasks that have left WAITING."""
        return self.total - self.waiting

    @property
    def is_finished(self) -> bool:
        return self.waiting == 0 and self.uploading == 0

    @property
    def all_success(self) -> bool:
        return self.total > 0 and self.completed == self.total

    @classmethod
    def from_tasks(cls, tasks: Iterable[UploadTask]) -> "UploadSummary":
        counts = {status: 0 for status in UploadStatus}
        progress_sum = 0.0
        for task in tasks:
            counts[task.status] += 1
            if task.status != UploadStatus.WAITING:
                progress_sum += task.progress

        total = sum(counts.values())
        active = total - counts[UploadStatus.WAITING]
        return cls(
            total=total,
            waiting=counts[UploadStatus.WAITING],
            uploading=counts[UploadStatus.UPLOADING],
            completed=counts[UploadStatus.COMPLETED],
            failed=counts[UploadStatus.ERROR],
            average_progress=progress_sum / active if active else 0.0,
        )


def sort_by_status(tasks: Iterable[UploadTask]) -> List[UploadTask]:
    """Stable sort by status order (waiting, uploading, completed, error)."""
    return sorted(tasks, key=lambda task: task.status.order)


def format_bytes(size: int, decimals: int = 2) -> str:
    """Human readable size, base 1024."""
    value = float(max(size, 0))
    units = ["B", "KB", "MB", "GB", "TB"]
    unit_idx = 0
    while value >= 1024.0 and unit_idx < len(units) - 1:
        value /= 1024.0
        unit_idx += 1
    if unit_idx == 0:
        return f"{int(value)} {units[unit_idx]}"
    return f"{value:.{decimals}f} {units[unit_idx]}"
