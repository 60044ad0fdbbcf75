"""
Uploadsim - Simulated upload task lifecycle for reactive front-ends.

Layers:
- Models: immutable task snapshots, replaced on every change
- Services: a transfer simulator and the registry that owns all tasks
- Dependency Injection: the simulator is injected into the registry

Usage:
    from uploadsim import TaskRegistry, TransferSimulator, FileDescriptor

    async with TaskRegistry(TransferSimulator()) as registry:
        registry.add_files([FileDescriptor("a.png", 1000)])

        # React to every change
        async for snapshot in registry.subscribe():
            render(snapshot)

    # Retry a failed task
    registry.retry_upload(task_id)

    # Overlay-style aggregate
    summary = registry.summary()
"""
from .models import (
    FileDescriptor,
    SimulationOutcome,
    SimulatorConfig,
    TaskIdFactory,
    UploadStatus,
    UploadTask,
)
from .services import SimulatedTransferError, SimulationHandle, TaskRegistry, TransferSimulator
from .summary import UploadSummary, format_bytes, sort_by_status

__version__ = "0.1.0"
__all__ = [
    # Main
    "TaskRegistry",
    "TransferSimulator",
    "SimulationHandle",
    "SimulatedTransferError",
    # Models
    "FileDescriptor",
    "UploadTask",
    "UploadStatus",
    "SimulationOutcome",
    "SimulatorConfig",
    "TaskIdFactory",
    # Projections
    "UploadSummary",
    "sort_by_status",
    "format_bytes",
]
