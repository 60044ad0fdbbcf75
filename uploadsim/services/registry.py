"""
TaskRegistry - Single source of truth for upload tasks.

Owns the ordered task collection, starts one simulated transfer per task
and turns simulator callbacks into task replacements. A snapshot is
published after every mutation.
"""
import asyncio
import logging
from collections import OrderedDict
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ..models import FileDescriptor, TaskIdFactory, UploadStatus, UploadTask
from ..protocols import ISimulationHandle, ITransferSimulator
from ..summary import UploadSummary
from ..utils.events import EventEmitter, SnapshotSubscription
from .simulator import TransferSimulator

logger = logging.getLogger(__name__)

Snapshot = Tuple[UploadTask, ...]


class TaskRegistry:
    """
    Orchestrates simulated uploads using an injected simulator.

    All mutations run synchronously on the event loop, so every publish
    is atomic for subscribers and no locking is needed.

    Usage:
        async with TaskRegistry(TransferSimulator()) as registry:
            registry.add_files([FileDescriptor("a.png", 1000)])
            async for snapshot in registry.subscribe():
                render(snapshot)
    """

    def __init__(
        self,
        simulator: Optional[ITransferSimulator] = None,
        id_factory: Optional[Callable[[FileDescriptor], str]] = None,
    ):
        """
        Initialize registry with dependencies.

        Args:
            simulator: Transfer simulator (default: TransferSimulator())
            id_factory: Callable producing a unique id for a file
        """
        self._simulator = simulator or TransferSimulator()
        self._id_factory = id_factory or TaskIdFactory()
        self._tasks: "OrderedDict[str, UploadTask]" = OrderedDict()
        self._handles: Dict[str, ISimulationHandle] = {}
        self._subscriptions: List[SnapshotSubscription[Snapshot]] = []
        self._events = EventEmitter()
        self._snapshot: Snapshot = ()
        self._closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.aclose()

    # Read side
    @property
    def tasks(self) -> Snapshot:
        """Current ordered snapshot."""
        return self._snapshot

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def active_count(self) -> int:
        """Number of simulations still running."""
        return sum(1 for handle in self._handles.values() if not handle.done())

    def get(self, task_id: str) -> Optional[UploadTask]:
        return self._tasks.get(task_id)

    def summary(self) -> UploadSummary:
        return UploadSummary.from_tasks(self._snapshot)

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: str) -> bool:
        return task_id in self._tasks

    # Event subscription methods
    def subscribe(self) -> SnapshotSubscription[Snapshot]:
        """Stream of snapshots, starting with the current one."""
        subscription: SnapshotSubscription[Snapshot] = SnapshotSubscription(
            initial=self._snapshot,
            on_close=self._drop_subscription,
        )
        if self._closed:
            subscription.close()
            return subscription
        self._subscriptions.append(subscription)
        return subscription

    def on_snapshot(self, callback: Callable[[Snapshot], None]):
        """Called after every publish. Receives the new snapshot."""
        self._events.on("snapshot", callback)

    def off_snapshot(self, callback: Callable[[Snapshot], None]):
        self._events.off("snapshot", callback)

    def on_task_completed(self, callback: Callable[[UploadTask], None]):
        """Called when a task reaches COMPLETED. Receives the task."""
        self._events.on("task_completed", callback)

    def on_task_failed(self, callback: Callable[[UploadTask], None]):
        """Called when a task reaches ERROR. Receives the task."""
        self._events.on("task_failed", callback)

    # Mutations
    def add_files(self, files: Iterable[FileDescriptor]) -> List[UploadTask]:
        """
        Create a WAITING task per file and start its simulated transfer.

        Tasks are appended in input order after existing ones. The call
        does not wait for any transfer. Must run on the event loop.

        Returns:
            The created tasks
        """
        if self._closed:
            raise RuntimeError("Cannot add files to a closed registry")

        new_tasks = []
        seen = set()
        for file in files:
            task_id = self._id_factory(file)
            if task_id in self._tasks or task_id in seen:
                raise ValueError(f"Duplicate task id: {task_id}")
            seen.add(task_id)
            new_tasks.append(UploadTask(id=task_id, file=file))
        for task in new_tasks:
            self._tasks[task.id] = task
        self._publish()

        logger.info("Added %d file(s), %d task(s) total", len(new_tasks), len(self._tasks))
        for task in new_tasks:
            self._start_upload(task.id)
        return new_tasks

    def retry_upload(self, task_id: str) -> bool:
        """
        Reset a task to WAITING and start a fresh simulated transfer.

        The previous run for the id is cancelled first. Unknown ids are
        ignored.

        Returns:
            True if the task existed and was restarted
        """
        task = self._tasks.get(task_id)
        if task is None:
            logger.debug("Retry ignored, unknown task: %s", task_id)
            return False
        if self._closed:
            raise RuntimeError("Cannot retry on a closed registry")

        previous = self._handles.pop(task_id, None)
        if previous is not None:
            previous.cancel()

        self._replace(task.replace(progress=0.0, status=UploadStatus.WAITING))
        logger.info("Retrying upload: %s", task.name)
        self._start_upload(task_id)
        return True

    def retry_failed(self) -> List[str]:
        """Retry every task in ERROR. Returns their ids."""
        failed = [task.id for task in self._snapshot if task.status == UploadStatus.ERROR]
        for task_id in failed:
            self.retry_upload(task_id)
        return failed

    async def wait_idle(self) -> None:
        """Wait until no simulation is running."""
        while True:
            pending = [
                handle for handle in self._handles.values() if not handle.done()
            ]
            if not pending:
                return
            await asyncio.gather(*(handle.wait() for handle in pending))

    async def aclose(self) -> None:
        """Cancel all simulations and end all subscriptions."""
        if self._closed:
            return
        self._closed = True

        handles = list(self._handles.values())
        self._handles.clear()
        for handle in handles:
            handle.cancel()
        if handles:
            await asyncio.gather(*(handle.wait() for handle in handles), return_exceptions=True)

        for subscription in self._subscriptions[:]:
            subscription.close()
        logger.debug("Registry closed with %d task(s)", len(self._tasks))

    # Simulator bridge
    def _start_upload(self, task_id: str) -> None:
        handle: Optional[ISimulationHandle] = None

        def on_progress(fraction: float) -> None:
            if self._handles.get(task_id) is handle:
                self._on_progress(task_id, fraction)

        def on_error() -> None:
            if self._handles.get(task_id) is handle:
                self._on_error(task_id)

        handle = self._simulator.start(task_id, on_progress, on_error)
        self._handles[task_id] = handle
        handle.add_done_callback(self._forget_handle)

    def _forget_handle(self, handle: ISimulationHandle) -> None:
        if self._handles.get(handle.task_id) is handle:
            del self._handles[handle.task_id]

    def _on_progress(self, task_id: str, fraction: float) -> None:
        task = self._tasks.get(task_id)
        if task is None:
            return

        status = UploadStatus.COMPLETED if fraction == 1.0 else UploadStatus.UPLOADING
        updated = task.replace(progress=fraction, status=status)
        self._replace(updated)
        if status == UploadStatus.COMPLETED:
            logger.info("Upload completed: %s", task.name)
            self._events.emit("task_completed", updated)

    def _on_error(self, task_id: str) -> None:
        task = self._tasks.get(task_id)
        if task is None:
            return

        updated = task.replace(status=UploadStatus.ERROR)
        self._replace(updated)
        logger.warning("Upload failed: %s at %d%%", task.name, task.percent)
        self._events.emit("task_failed", updated)

    # Publishing
    def _replace(self, task: UploadTask) -> None:
        self._tasks[task.id] = task
        self._publish()

    def _publish(self) -> None:
        self._snapshot = tuple(self._tasks.values())
        for subscription in self._subscriptions[:]:
            subscription.push(self._snapshot)
        self._events.emit("snapshot", self._snapshot)

    def _drop_subscription(self, subscription: SnapshotSubscription[Snapshot]) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
