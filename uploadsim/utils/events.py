from typing import Any, Callable, Dict, Generic, List, Optional, Set, TypeVar
import asyncio
import inspect
import logging
logger = logging.getLogger(__name__)

T = TypeVar("T")

_CLOSED = object()


class EventEmitter:
    """Simple event emitter for registry events."""

    def __init__(self):
        self._listeners: Dict[str, List[Callable]] = {}
        self._pending: Set[asyncio.Task] = set()

    def on(self, event_name: str, callback: Callable):
        """Subscribe to an event."""
        if event_name not in self._listeners:
            self._listeners[event_name] = []
        if callback not in self._listeners[event_name]:
            self._listeners[event_name].append(callback)

    def off(self, event_name: str, callback: Callable):
        """Unsubscribe from an event."""
        if event_name in self._listeners:
            if callback in self._listeners[event_name]:
                self._listeners[event_name].remove(callback)

    def listener_count(self, event_name: str) -> int:
        return len(self._listeners.get(event_name, []))

    def emit(self, event_name: str, *args, **kwargs):
        """
        Emit an event to all listeners without blocking.

        Plain callables run inline; coroutine functions are scheduled on
        the running loop. A failing listener is logged and skipped.
        """
        if event_name not in self._listeners:
            return

        for callback in self._listeners[event_name][:]:  # Copy list to avoid modification during iteration
            try:
                if inspect.iscoroutinefunction(callback):
                    task = asyncio.get_running_loop().create_task(callback(*args, **kwargs))
                    self._pending.add(task)
                    task.add_done_callback(self._pending.discard)
                else:
                    callback(*args, **kwargs)
            except Exception as e:
                logger.error(f"Error in event listener for {event_name}: {e}")


class SnapshotSubscription(Generic[T]):
    """
    Async stream of published values.

    Every value pushed is delivered once, in push order. Iteration ends
    after close().

    Usage:
        async for snapshot in subscription:
            render(snapshot)
    """

    def __init__(
        self,
        initial: Optional[T] = None,
        on_close: Optional[Callable[["SnapshotSubscription[T]"], None]] = None,
    ):
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self._on_close = on_close
        self._closed = False
        self._latest: Optional[T] = initial
        if initial is not None:
            self._queue.put_nowait(initial)

    @property
    def latest(self) -> Optional[T]:
        """Most recently pushed value, consumed or not."""
        return self._latest

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, value: T) -> None:
        if self._closed:
            return
        self._latest = value
        self._queue.put_nowait(value)

    def close(self) -> None:
        """End iteration once already queued values are consumed."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)
        if self._on_close is not None:
            self._on_close(self)

    async def get(self) -> T:
        """Next value; raises StopAsyncIteration once closed and drained."""
        item = await self._queue.get()
        if item is _CLOSED:
            # Keep the marker so later readers stop too
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item

    def __aiter__(self):
        return self

    async def __anext__(self) -> T:
        return await self.get()
