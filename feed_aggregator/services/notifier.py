"""Fire-and-forget progress broadcasting to any number of observers."""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, List, Set, Tuple

from ..utils.date_utils import utc_now

logger = logging.getLogger(__name__)


class UpdateEvent(str, Enum):
    """Progress events emitted by the update orchestrator."""
    SWEEP_STARTED = "FEEDS_UPDATE_STARTED"
    SWEEP_FEED = "FEEDS_UPDATE_RUNNING"
    ENTRY_PROCESSING = "ENTRY_PROCESSING"
    FEED_STARTED = "FEED_UPDATE_STARTED"
    FEED_FINISHED = "FEED_UPDATE_FINISHED"
    SWEEP_FINISHED = "FEEDS_UPDATE_FINISHED"


@dataclass(frozen=True)
class Notification:
    """One broadcast message."""
    event: str
    info: Tuple[Any, ...] = ()
    timestamp: datetime = field(default_factory=utc_now)

    def __str__(self) -> str:
        return " ".join([self.event, *(str(item) for item in self.info)])


Listener = Callable[[Notification], Any]


class Notifier:
    """Broadcasts notifications to listeners and subscriber queues.

    Delivery is best effort: a full subscriber queue drops the message and
    listener failures are logged, never propagated to the caller.
    """

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._listeners: List[Listener] = []
        self._queues: Set[asyncio.Queue] = set()
        self._tasks: Set[asyncio.Task] = set()

    def add_listener(self, listener: Listener):
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def subscribe(self) -> asyncio.Queue:
        """Register a queue receiving every subsequent notification."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._queues.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue):
        self._queues.discard(queue)

    def notify(self, event: Any, *info: Any) -> Notification:
        """Broadcast ``event`` with optional positional info."""
        name = event.value if isinstance(event, Enum) else str(event)
        notification = Notification(event=name, info=tuple(info))
        logger.debug("notify %s", notification)

        for queue in list(self._queues):
            try:
                queue.put_nowait(notification)
            except asyncio.QueueFull:
                logger.debug("Subscriber queue full, dropping %s", name)

        for listener in list(self._listeners):
            try:
                result = listener(notification)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._tasks.add(task)
                    task.add_done_callback(self._listener_done)
            except Exception as e:
                logger.warning(f"Notification listener failed on {name}: {e}")
        return notification

    def _listener_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Notification listener failed: {task.exception()}")
