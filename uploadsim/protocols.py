"""
Protocols (Interfaces) for Dependency Inversion.

The registry only depends on these, so tests and callers can inject
their own simulator.
"""
from typing import Callable, Optional, Protocol, runtime_checkable

from .models import SimulationOutcome


@runtime_checkable
class ISimulationHandle(Protocol):
    """Handle to one running simulated transfer."""

    task_id: str

    def cancel(self) -> None:
        """Stop future ticks; no callback fires afterwards."""
        ...

    def done(self) -> bool:
        ...

    def add_done_callback(self, callback: Callable[["ISimulationHandle"], None]) -> None:
        ...

    async def wait(self) -> Optional[SimulationOutcome]:
        """Wait for the run to end and return its outcome."""
        ...


@runtime_checkable
class ITransferSimulator(Protocol):
    """Interface for transfer simulation."""

    def start(
        self,
        task_id: str,
        on_progress: Callable[[float], None],
        on_error: Callable[[], None],
    ) -> ISimulationHandle:
        """Start a simulated transfer for task_id."""
        ...
