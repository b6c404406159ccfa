"""
Event notification for Staffel

The engine reports state transitions through an EventNotifier that fans each
event out to the configured sinks. Delivery is best-effort: a sink that
raises is logged and skipped, it never blocks or fails a queue run.
"""

import asyncio
import inspect
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from pydantic import BaseModel, Field

from .models import utcnow

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """All events emitted by the engine"""

    # Queue events
    QUEUE_CREATED = "queue:created"
    QUEUE_STARTED = "queue:started"
    QUEUE_PROGRESS = "queue:progress"
    QUEUE_COMPLETED = "queue:completed"
    QUEUE_FAILED = "queue:failed"
    QUEUE_PAUSED = "queue:paused"
    QUEUE_RESUMED = "queue:resumed"
    QUEUE_CANCELLED = "queue:cancelled"
    QUEUE_RETRYING = "queue:retrying"

    # Command events
    COMMAND_STARTED = "command:started"
    COMMAND_COMPLETED = "command:completed"
    COMMAND_FAILED = "command:failed"


class EventSeverity(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class QueueEvent(BaseModel):
    """Event envelope with an event-specific payload"""

    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    event_type: EventType
    queue_id: str
    data: Dict[str, Any] = Field(default_factory=dict)
    severity: EventSeverity = EventSeverity.INFO
    correlation_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)


class EventSink(ABC):
    """Receives engine events. ``publish`` must return promptly."""

    @abstractmethod
    def publish(self, event: QueueEvent) -> None:
        pass


class LoggingEventSink(EventSink):
    """Writes every event to a logger"""

    _LEVELS = {
        EventSeverity.DEBUG: logging.DEBUG,
        EventSeverity.INFO: logging.INFO,
        EventSeverity.WARNING: logging.WARNING,
        EventSeverity.ERROR: logging.ERROR,
    }

    def __init__(self, event_logger: Optional[logging.Logger] = None):
        self.logger = event_logger or logging.getLogger("staffel.events")

    def publish(self, event: QueueEvent) -> None:
        self.logger.log(
            self._LEVELS[event.severity],
            f"{event.event_type.value} queue={event.queue_id} {event.data}",
        )


class RecordingEventSink(EventSink):
    """Keeps events in memory, in publish order"""

    def __init__(self, max_events: Optional[int] = None):
        self.max_events = max_events
        self.events: List[QueueEvent] = []

    def publish(self, event: QueueEvent) -> None:
        self.events.append(event)
        if self.max_events is not None and len(self.events) > self.max_events:
            del self.events[: len(self.events) - self.max_events]

    def events_of(self, event_type: EventType, queue_id: Optional[str] = None) -> List[QueueEvent]:
        return [
            event for event in self.events
            if event.event_type == event_type and (queue_id is None or event.queue_id == queue_id)
        ]

    def event_types(self, queue_id: Optional[str] = None) -> List[EventType]:
        return [
            event.event_type for event in self.events
            if queue_id is None or event.queue_id == queue_id
        ]

    def clear(self) -> None:
        self.events.clear()


class CallbackEventSink(EventSink):
    """
    Adapts a plain callable into a sink

    Coroutine functions are scheduled on the running loop and not awaited,
    so slow subscribers cannot hold up a run.
    """

    def __init__(
        self,
        callback: Callable[[QueueEvent], Any],
        event_types: Optional[Iterable[EventType]] = None,
    ):
        self.callback = callback
        self.event_types: Optional[Set[EventType]] = set(event_types) if event_types else None
        self._pending: Set[asyncio.Task] = set()

    def publish(self, event: QueueEvent) -> None:
        if self.event_types is not None and event.event_type not in self.event_types:
            return

        result = self.callback(event)
        if inspect.isawaitable(result):
            try:
                asyncio.get_running_loop()
            except RuntimeError:
                logger.warning(
                    f"Dropped async event callback for {event.event_type.value}: no running event loop"
                )
                if inspect.iscoroutine(result):
                    result.close()
                return
            task = asyncio.ensure_future(result)
            self._pending.add(task)
            task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Async event callback failed: {task.exception()}")


class EventNotifier:
    """Publishes events to every registered sink"""

    def __init__(self, sinks: Optional[Iterable[EventSink]] = None):
        self.sinks: List[EventSink] = list(sinks or [])
        self.stats = {
            'events_published': 0,
            'sink_failures': 0,
        }

    def add_sink(self, sink: EventSink) -> None:
        self.sinks.append(sink)

    def remove_sink(self, sink: EventSink) -> None:
        if sink in self.sinks:
            self.sinks.remove(sink)

    def emit(
        self,
        event_type: EventType,
        queue_id: str,
        severity: EventSeverity = EventSeverity.INFO,
        correlation_id: Optional[str] = None,
        **data: Any,
    ) -> QueueEvent:
        """Build an event and publish it"""
        event = QueueEvent(
            event_type=event_type,
            queue_id=queue_id,
            data=data,
            severity=severity,
            correlation_id=correlation_id,
        )
        self.publish(event)
        return event

    def publish(self, event: QueueEvent) -> None:
        self.stats['events_published'] += 1
        for sink in list(self.sinks):
            try:
                sink.publish(event)
            except Exception as e:
                self.stats['sink_failures'] += 1
                logger.warning(
                    f"Event sink {type(sink).__name__} failed on {event.event_type.value}: {e}"
                )
