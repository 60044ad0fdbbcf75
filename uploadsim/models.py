"""
Models for uploadsim module.

Immutable dataclasses: a task is replaced, never mutated, on every change.
"""
import itertools
import os
import time
from dataclasses import dataclass, replace as dc_replace
from enum import Enum
from pathlib import Path
from typing import Optional


class UploadStatus(Enum):
    """Upload task status. Declaration order is the display order."""
    WAITING = "waiting"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (UploadStatus.COMPLETED, UploadStatus.ERROR)

    @property
    def order(self) -> int:
        return list(UploadStatus).index(self)


class SimulationOutcome(Enum):
    """How a single simulated transfer ended."""
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class FileDescriptor:
    """File selected by the caller. Content is never read by the core."""
    name: str
    size: int = 0
    path: Optional[Path] = None
    data: Optional[bytes] = None

    @classmethod
    def from_path(cls, path: Path) -> "FileDescriptor":
        path = Path(path)
        try:
            size = path.stat().st_size
        except OSError:
            size = 0
        return cls(name=path.name, size=size, path=path)


@dataclass(frozen=True)
class UploadTask:
    """Immutable snapshot of one file's simulated transfer."""
    id: str
    file: FileDescriptor
    progress: float = 0.0
    status: UploadStatus = UploadStatus.WAITING

    @property
    def name(self) -> str:
        return self.file.name

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def percent(self) -> int:
        return int(round(self.progress * 100))

    def replace(
        self,
        progress: Optional[float] = None,
        status: Optional[UploadStatus] = None,
    ) -> "UploadTask":
        """Return a copy with the same id and file."""
        return dc_replace(
            self,
            progress=self.progress if progress is None else progress,
            status=self.status if status is None else status,
        )


class TaskIdFactory:
    """
    Generates task ids as ``<epoch-millis>-<sequence>-<file name>``.

    The sequence makes ids unique even for same-named files added
    within the same millisecond.
    """

    def __init__(self, start: int = 1):
        self._counter = itertools.count(start)

    def __call__(self, file: FileDescriptor) -> str:
        millis = int(time.time() * 1000)
        return f"{millis}-{next(self._counter)}-{file.name}"


@dataclass(frozen=True)
class SimulatorConfig:
    """Immutable configuration for simulated transfers."""
    total_steps: int = 20
    tick_interval: float = 0.2  # seconds
    failure_rate: float = 0.2
    fail_after_step: int = 5  # some progress always precedes a failure

    def __post_init__(self):
        if self.total_steps < 2:
            raise ValueError(f"total_steps must be >= 2, got {self.total_steps}")
        if self.tick_interval < 0:
            raise ValueError(f"tick_interval must be >= 0, got {self.tick_interval}")
        if not 0.0 <= self.failure_rate <= 1.0:
            raise ValueError(f"failure_rate must be within [0, 1], got {self.failure_rate}")
        # a doomed run must fail before its final tick
        if not 0 <= self.fail_after_step < self.total_steps - 1:
            raise ValueError(
                f"fail_after_step must be within [0, {self.total_steps - 1}), "
                f"got {self.fail_after_step}"
            )

    @classmethod
    def from_env(cls) -> "SimulatorConfig":
        """Build config from UPLOADSIM_* environment variables."""
        defaults = cls()
        tick_ms = os.getenv("UPLOADSIM_TICK_MS")
        return cls(
            total_steps=int(os.getenv("UPLOADSIM_TOTAL_STEPS", defaults.total_steps)),
            tick_interval=float(tick_ms) / 1000 if tick_ms else defaults.tick_interval,
            failure_rate=float(os.getenv("UPLOADSIM_FAILURE_RATE", defaults.failure_rate)),
            fail_after_step=int(os.getenv("UPLOADSIM_FAIL_AFTER_STEP", defaults.fail_after_step)),
        )
