"""
TransferSimulator - Fake, time-sliced transfers.

Produces a plausible progress signal for one task without any I/O.
A run is decided up front to succeed or fail; failing runs always show
some progress before the error.
"""
import asyncio
import logging
import random
from typing import AsyncIterator, Callable, List, Optional

from ..models import SimulationOutcome, SimulatorConfig

logger = logging.getLogger(__name__)


class SimulatedTransferError(RuntimeError):
    """Raised by progress_events when a doomed run reaches its failure tick."""

    def __init__(self, task_id: str, step: int):
        super().__init__(f"simulated transfer failure for {task_id} at step {step}")
        self.task_id = task_id
        self.step = step


class SimulationHandle:
    """
    Cancellable handle to one running simulation.

    Once cancel() returns, no further callback of this run is invoked.
    """

    def __init__(self, task_id: str):
        self.task_id = task_id
        self._task: Optional[asyncio.Task] = None
        self._cancelled = False
        self._done_callbacks: List[Callable[["SimulationHandle"], None]] = []

    def _attach(self, task: asyncio.Task) -> None:
        self._task = task
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "Simulation for %s crashed: %s", self.task_id, task.exception()
            )
        for callback in self._done_callbacks[:]:
            callback(self)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def outcome(self) -> Optional[SimulationOutcome]:
        """Outcome once done, None while running or after a crash."""
        task = self._task
        if task is None or not task.done():
            return None
        if task.cancelled():
            return SimulationOutcome.CANCELLED
        if task.exception() is not None:
            return None
        return task.result()

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    def cancel(self) -> None:
        """Stop future ticks. Safe to call more than once."""
        if self._cancelled:
            return
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def add_done_callback(self, callback: Callable[["SimulationHandle"], None]) -> None:
        """Call callback(handle) when the run ends, immediately if it already has."""
        if self.done():
            callback(self)
            return
        self._done_callbacks.append(callback)

    async def wait(self) -> Optional[SimulationOutcome]:
        """Wait for the run to end and return its outcome."""
        if self._task is None:
            return None
        try:
            await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise
        return self.outcome


class TransferSimulator:
    """
    Simulates transfers as a fixed number of ticks.

    Usage:
        simulator = TransferSimulator(SimulatorConfig(tick_interval=0.15))
        handle = simulator.start(task_id, on_progress, on_error)
        ...
        handle.cancel()
    """

    def __init__(
        self,
        config: Optional[SimulatorConfig] = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize simulator.

        Args:
            config: Step count, tick interval and failure settings
            rng: Random source deciding which runs fail (seed it for repeatable runs)
        """
        self._config = config or SimulatorConfig()
        self._rng = rng or random.Random()

    @property
    def config(self) -> SimulatorConfig:
        return self._config

    def will_fail(self) -> bool:
        return self._rng.random() < self._config.failure_rate

    async def progress_events(self, task_id: str) -> AsyncIterator[float]:
        """
        Yield strictly increasing progress fractions, ending at exactly 1.0.

        Raises:
            SimulatedTransferError: On a doomed run, at the first tick past
                fail_after_step.
        """
        config = self._config
        doomed = self.will_fail()
        step = 0
        while step < config.total_steps:
            await asyncio.sleep(config.tick_interval)
            if doomed and step > config.fail_after_step:
                raise SimulatedTransferError(task_id, step)
            step += 1
            yield step / config.total_steps

    def start(
        self,
        task_id: str,
        on_progress: Callable[[float], None],
        on_error: Callable[[], None],
    ) -> SimulationHandle:
        """
        Start a simulated transfer on the running loop (fire-and-forget).

        Exactly one of on_error() or a final on_progress(1.0) happens per
        run, unless the returned handle is cancelled first.
        """
        handle = SimulationHandle(task_id)
        task = asyncio.get_running_loop().create_task(
            self._drive(handle, on_progress, on_error),
            name=f"simulate:{task_id}",
        )
        handle._attach(task)
        return handle

    async def _drive(
        self,
        handle: SimulationHandle,
        on_progress: Callable[[float], None],
        on_error: Callable[[], None],
    ) -> SimulationOutcome:
        logger.debug("Simulation started: %s", handle.task_id)
        events = self.progress_events(handle.task_id)
        try:
            async for fraction in events:
                if handle.cancelled:
                    return SimulationOutcome.CANCELLED
                on_progress(fraction)
        except SimulatedTransferError as e:
            if handle.cancelled:
                return SimulationOutcome.CANCELLED
            logger.info("Simulated failure: %s (step %d)", e.task_id, e.step)
            on_error()
            return SimulationOutcome.FAILED
        finally:
            await events.aclose()

        logger.debug("Simulation completed: %s", handle.task_id)
        return SimulationOutcome.COMPLETED
