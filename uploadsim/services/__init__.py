"""Services for uploadsim module."""
from .simulator import SimulatedTransferError, SimulationHandle, TransferSimulator
from .registry import TaskRegistry

__all__ = [
    "SimulatedTransferError",
    "SimulationHandle",
    "TransferSimulator",
    "TaskRegistry",
]
