"""
Tests for queue serialization
"""

import json

import pytest

from staffel.core.models import GroupKind, QueueOptions, QueueStatus
from staffel.core.queue import Queue
from staffel.core.queue_manager import QueueLifecycleManager

from conftest import RecordingExecutor


class TestQueueSerialization:
    """to_dict / from_dict through JSON"""

    @pytest.mark.asyncio
    async def test_failed_queue_survives_json(self, abc_commands):
        manager = QueueLifecycleManager(RecordingExecutor(fail_ids={"B"}))
        manager.create_queue("q1", abc_commands, QueueOptions(max_concurrent=2, timeout=30))
        await manager.execute("q1")
        queue = manager.get_queue("q1")

        data = json.loads(json.dumps(queue.to_dict()))
        restored = Queue.from_dict(data)

        assert data["status"] == "failed"
        assert data["execution"]["failed_ids"] == ["B"]
        assert data["execution"]["completed_ids"] == ["A", "C"]

        assert restored.status == QueueStatus.FAILED
        assert restored.execution.failed_ids == {"B"}
        assert restored.execution.completed_ids == {"A", "C"}
        assert not restored.all_completed
        assert [group.kind for group in restored.plan] == [GroupKind.SEQUENTIAL, GroupKind.PARALLEL]
        assert [group.command_ids for group in restored.plan] == [["A"], ["B", "C"]]
        assert restored.graph.dependencies_of("C") == ["A"]
        assert restored.graph.dependents_of("A") == ["B", "C"]
        assert restored.options.max_concurrent == 2
        assert [outcome.command_id for outcome in restored.execution.results] == \
            [outcome.command_id for outcome in queue.execution.results]
        assert restored.execution.end_time == queue.execution.end_time

    def test_pending_queue_has_no_plan(self, chain_commands):
        queue = Queue.create("q1", chain_commands)

        restored = Queue.from_dict(json.loads(json.dumps(queue.to_dict())))

        assert restored.status == QueueStatus.PENDING
        assert restored.plan is None
        assert restored.graph.command_ids == ["A", "B", "C"]
        assert restored.execution.settled_ids == set()
