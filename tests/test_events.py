"""
Tests for event publishing
"""

import asyncio
import logging

import pytest

from staffel.core.events import (
    CallbackEventSink,
    EventNotifier,
    EventSeverity,
    EventSink,
    EventType,
    LoggingEventSink,
    RecordingEventSink,
)


class FailingSink(EventSink):
    def publish(self, event):
        raise ValueError("boom")


class TestEventNotifier:
    """Fan-out to sinks"""

    def test_emit_builds_and_publishes_event(self, recording_sink):
        notifier = EventNotifier([recording_sink])

        event = notifier.emit(EventType.QUEUE_STARTED, "q1", correlation_id="run-1", groups=2)

        assert recording_sink.events == [event]
        assert event.event_type == EventType.QUEUE_STARTED
        assert event.queue_id == "q1"
        assert event.data == {"groups": 2}
        assert event.severity == EventSeverity.INFO
        assert event.correlation_id == "run-1"
        assert notifier.stats["events_published"] == 1

    def test_failing_sink_is_isolated(self, recording_sink):
        notifier = EventNotifier([FailingSink(), recording_sink])

        notifier.emit(EventType.QUEUE_CREATED, "q1")

        assert len(recording_sink.events) == 1
        assert notifier.stats["sink_failures"] == 1

    def test_add_and_remove_sink(self, recording_sink):
        notifier = EventNotifier()
        notifier.add_sink(recording_sink)
        notifier.emit(EventType.QUEUE_CREATED, "q1")
        notifier.remove_sink(recording_sink)
        notifier.emit(EventType.QUEUE_CREATED, "q2")

        assert [event.queue_id for event in recording_sink.events] == ["q1"]

    def test_event_values(self):
        assert EventType.QUEUE_CREATED.value == "queue:created"
        assert EventType.COMMAND_FAILED.value == "command:failed"


class TestSinks:
    """Provided sink implementations"""

    def test_recording_sink_filters_and_limits(self):
        sink = RecordingEventSink(max_events=2)
        notifier = EventNotifier([sink])
        notifier.emit(EventType.QUEUE_CREATED, "q1")
        notifier.emit(EventType.QUEUE_STARTED, "q1")
        notifier.emit(EventType.QUEUE_STARTED, "q2")

        assert len(sink.events) == 2
        assert len(sink.events_of(EventType.QUEUE_STARTED)) == 2
        assert len(sink.events_of(EventType.QUEUE_STARTED, queue_id="q2")) == 1
        assert sink.event_types("q1") == [EventType.QUEUE_STARTED]

        sink.clear()
        assert sink.events == []

    def test_logging_sink_uses_severity(self, caplog):
        notifier = EventNotifier([LoggingEventSink()])

        with caplog.at_level(logging.DEBUG, logger="staffel.events"):
            notifier.emit(EventType.COMMAND_FAILED, "q1", severity=EventSeverity.ERROR, command_id="B")

        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert "command:failed" in record.getMessage()
        assert "q1" in record.getMessage()

    def test_callback_sink_sync(self):
        received = []
        sink = CallbackEventSink(received.append, event_types=[EventType.QUEUE_FAILED])
        notifier = EventNotifier([sink])

        notifier.emit(EventType.QUEUE_CREATED, "q1")
        notifier.emit(EventType.QUEUE_FAILED, "q1")

        assert [event.event_type for event in received] == [EventType.QUEUE_FAILED]

    @pytest.mark.asyncio
    async def test_callback_sink_async_is_scheduled(self):
        received = []

        async def on_event(event):
            await asyncio.sleep(0)
            received.append(event.queue_id)

        notifier = EventNotifier([CallbackEventSink(on_event)])
        notifier.emit(EventType.QUEUE_CREATED, "q1")

        assert received == []
        await asyncio.sleep(0.01)
        assert received == ["q1"]

    @pytest.mark.asyncio
    async def test_callback_sink_async_failure_is_logged(self, caplog):
        async def on_event(event):
            raise RuntimeError("subscriber crashed")

        notifier = EventNotifier([CallbackEventSink(on_event)])
        with caplog.at_level(logging.WARNING):
            notifier.emit(EventType.QUEUE_CREATED, "q1")
            await asyncio.sleep(0.01)

        assert "subscriber crashed" in caplog.text
        assert notifier.stats["sink_failures"] == 0

    def test_callback_sink_async_without_loop_is_dropped(self, caplog):
        received = []

        async def on_event(event):
            received.append(event.queue_id)

        notifier = EventNotifier([CallbackEventSink(on_event)])
        with caplog.at_level(logging.WARNING, logger="staffel.core.events"):
            notifier.emit(EventType.QUEUE_CREATED, "q1")

        assert received == []
        assert notifier.stats["sink_failures"] == 0
        assert "no running event loop" in caplog.text
        assert "queue:created" in caplog.text
