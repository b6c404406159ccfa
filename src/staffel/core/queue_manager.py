"""
Queue Lifecycle Manager for Staffel

Owns every queue's state and drives it through its lifecycle:

    pending -> executing -> completed | failed
    executing -> paused -> executing (resume)
    any non-terminal state -> cancelled

At most one run per queue id is active at any time. Different queues run
fully concurrently on the same event loop.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Iterable, List, Optional, Set, Union

from pydantic import ValidationError

from .config import StaffelConfig
from .context import ExecutionContext
from .errors import (
    AlreadyExecuting,
    DuplicateQueueId,
    InvalidStateTransition,
    QueueDefinitionError,
    QueueNotFound,
)
from .events import EventNotifier, EventSeverity, EventSink, EventType
from .models import (
    Command,
    QueueHistoryEntry,
    QueueOptions,
    QueueStatistics,
    QueueStatus,
    QueueStatusReport,
    RunResult,
    utcnow,
)
from .planner import ExecutionPlanner
from .queue import Queue
from .runner import QueueRunner

logger = logging.getLogger(__name__)


def _caller_cancelling() -> bool:
    """True when the awaiting task itself has a pending cancellation"""
    task = asyncio.current_task()
    # Task.cancelling() only exists from Python 3.11
    cancelling = getattr(task, "cancelling", None)
    return bool(cancelling and cancelling())


class QueueLifecycleManager:
    """
    Queue Lifecycle Manager

    Responsibilities:
    - Validate and register queues
    - Plan and execute queues through a QueueRunner
    - Pause, resume, cancel and retry failed commands
    - Keep run history and report status and statistics

    Events Emitted:
    - queue:created, queue:started, queue:paused, queue:resumed
    - queue:completed, queue:failed, queue:cancelled, queue:retrying
    - command:* and queue:progress (through the runner)
    """

    def __init__(
        self,
        executor: Any,
        sinks: Optional[Iterable[EventSink]] = None,
        config: Optional[StaffelConfig] = None,
        notifier: Optional[EventNotifier] = None,
        planner: Optional[ExecutionPlanner] = None,
    ):
        self.executor = executor
        self.config = config or StaffelConfig()
        self.notifier = notifier or EventNotifier(sinks)
        if notifier is not None and sinks:
            for sink in sinks:
                self.notifier.add_sink(sink)
        self.planner = planner or ExecutionPlanner()
        self.runner = QueueRunner(self.notifier)

        # Queue tracking
        self.queues: Dict[str, Queue] = {}
        self.active: Set[str] = set()
        self._runs: Dict[str, asyncio.Task] = {}
        self._contexts: Dict[str, ExecutionContext] = {}

        # Finished runs, oldest first
        self._history: List[QueueHistoryEntry] = []

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_queue(
        self,
        queue_id: str,
        commands: List[Union[Command, Dict[str, Any]]],
        options: Optional[Union[QueueOptions, Dict[str, Any]]] = None,
    ) -> Queue:
        """Validate a command list and register it as a pending queue"""
        if queue_id in self.queues:
            raise DuplicateQueueId(queue_id)

        try:
            parsed = [
                command if isinstance(command, Command) else Command.model_validate(command)
                for command in commands
            ]
            if options is None:
                queue_options = self.config.default_queue_options()
            elif isinstance(options, QueueOptions):
                queue_options = options
            else:
                queue_options = QueueOptions.model_validate(options)
        except ValidationError as e:
            raise QueueDefinitionError(
                f"Invalid definition for queue {queue_id}: {e}",
                {"queue_id": queue_id, "errors": e.errors(include_url=False)},
            )

        queue = Queue.create(queue_id, parsed, queue_options)
        self.queues[queue_id] = queue

        logger.info(f"Created queue {queue_id} with {queue.total_steps} commands")
        self.notifier.emit(
            EventType.QUEUE_CREATED,
            queue_id,
            total_commands=queue.total_steps,
            priority=queue.options.priority.value,
        )
        return queue

    # ------------------------------------------------------------------
    # Lifecycle operations
    # ------------------------------------------------------------------

    async def execute(self, queue_id: str, target: Optional[Dict[str, Any]] = None) -> RunResult:
        """Plan and run a pending queue"""
        queue = self.get_queue(queue_id)
        if queue_id in self.active:
            raise AlreadyExecuting(queue_id)
        if queue.status != QueueStatus.PENDING:
            raise InvalidStateTransition(queue_id, "execute", queue.status.value)

        queue.plan = self.planner.plan(queue.graph)
        queue.execution.start_time = utcnow()
        queue.execution.run_seconds = 0.0

        logger.info(f"Executing queue {queue_id}: {len(queue.plan)} groups")
        self.notifier.emit(
            EventType.QUEUE_STARTED,
            queue_id,
            total_commands=queue.total_steps,
            groups=len(queue.plan),
        )
        return await self._launch(queue, target)

    def pause(self, queue_id: str) -> QueueStatusReport:
        """Stop the queue at the next group or batch boundary"""
        queue = self.get_queue(queue_id)
        if queue.status != QueueStatus.EXECUTING:
            raise InvalidStateTransition(queue_id, "pause", queue.status.value)

        queue.status = QueueStatus.PAUSED
        context = self._contexts.get(queue_id)
        if context is not None:
            context.request_pause()

        logger.info(f"Pausing queue {queue_id}")
        self.notifier.emit(
            EventType.QUEUE_PAUSED,
            queue_id,
            completed=len(queue.execution.completed_ids),
            total=queue.total_steps,
        )
        return self.status(queue_id)

    async def resume(self, queue_id: str, target: Optional[Dict[str, Any]] = None) -> RunResult:
        """Continue a paused queue; settled commands are not run again"""
        queue = self.get_queue(queue_id)
        if queue.status != QueueStatus.PAUSED:
            raise InvalidStateTransition(queue_id, "resume", queue.status.value)

        draining = self._runs.get(queue_id)
        if draining is not None:
            logger.debug(f"Waiting for paused run of queue {queue_id} to drain")
            await asyncio.wait([draining])

        # State may have moved on while the paused run drained
        if queue.status != QueueStatus.PAUSED:
            raise InvalidStateTransition(queue_id, "resume", queue.status.value)
        if queue_id in self.active:
            raise AlreadyExecuting(queue_id)

        if queue.plan is None:
            queue.plan = self.planner.plan(queue.graph)

        logger.info(f"Resuming queue {queue_id}")
        self.notifier.emit(
            EventType.QUEUE_RESUMED,
            queue_id,
            remaining=queue.total_steps - len(queue.execution.settled_ids),
        )
        return await self._launch(queue, target)

    def cancel(self, queue_id: str) -> QueueStatusReport:
        """Cancel a queue in any non-terminal state"""
        queue = self.get_queue(queue_id)
        if queue.status.is_terminal:
            raise InvalidStateTransition(queue_id, "cancel", queue.status.value)

        self.active.discard(queue_id)
        context = self._contexts.get(queue_id)
        if context is not None:
            context.cancel()
        task = self._runs.get(queue_id)
        if task is not None and not task.done():
            task.cancel()

        self._mark_cancelled(queue)
        return self.status(queue_id)

    def _mark_cancelled(self, queue: Queue, reason: str = "cancel requested") -> None:
        queue.status = QueueStatus.CANCELLED
        queue.execution.end_time = utcnow()

        logger.info(f"Cancelled queue {queue.id}: {reason}")
        self.notifier.emit(
            EventType.QUEUE_CANCELLED,
            queue.id,
            severity=EventSeverity.WARNING,
            completed=len(queue.execution.completed_ids),
            total=queue.total_steps,
            reason=reason,
        )

    async def retry_failed(self, queue_id: str, target: Optional[Dict[str, Any]] = None) -> RunResult:
        """Re-execute the failed commands of a finished queue"""
        queue = self.get_queue(queue_id)
        if queue_id in self.active:
            raise AlreadyExecuting(queue_id)
        if queue.status not in (QueueStatus.FAILED, QueueStatus.COMPLETED):
            raise InvalidStateTransition(queue_id, "retry_failed", queue.status.value)

        if not queue.execution.failed_ids:
            logger.info(f"Queue {queue_id} has no failed commands to retry")
            return RunResult.from_outcomes(queue_id, [])

        if queue.plan is None:
            queue.plan = self.planner.plan(queue.graph)
        queue.execution.run_seconds = 0.0

        self.notifier.emit(
            EventType.QUEUE_RETRYING,
            queue_id,
            failed_ids=sorted(queue.execution.failed_ids),
            attempt=queue.execution.retry_count + 1,
        )
        return await self._launch(queue, target, retry=True)

    # ------------------------------------------------------------------
    # Run driving
    # ------------------------------------------------------------------

    async def _launch(
        self,
        queue: Queue,
        target: Optional[Dict[str, Any]],
        retry: bool = False,
    ) -> RunResult:
        # No await between the active check of the caller and this add
        self.active.add(queue.id)
        queue.status = QueueStatus.EXECUTING

        context = ExecutionContext(queue.id, target=target, attempt=queue.execution.retry_count)
        self._contexts[queue.id] = context

        start_index = len(queue.execution.results)
        started = time.monotonic()
        task = asyncio.ensure_future(self._drive(queue, context, retry, start_index))
        self._runs[queue.id] = task
        try:
            result = await task
        except asyncio.CancelledError:
            # The run task may be cancelled before it ever started
            if not context.cancelled or _caller_cancelling():
                if queue.status != QueueStatus.CANCELLED:
                    self._mark_cancelled(queue, reason="caller stopped waiting")
                raise
            result = RunResult.from_outcomes(
                queue.id,
                queue.execution.results[start_index:],
                cancelled=True,
                error="Queue cancelled",
            )
        finally:
            queue.execution.run_seconds += time.monotonic() - started
            self.active.discard(queue.id)
            if self._runs.get(queue.id) is task:
                self._runs.pop(queue.id, None)
            if self._contexts.get(queue.id) is context:
                self._contexts.pop(queue.id, None)

        return self._finalize(queue, result)

    async def _drive(
        self,
        queue: Queue,
        context: ExecutionContext,
        retry: bool,
        start_index: int,
    ) -> RunResult:
        timeout = queue.options.timeout
        remaining = None if timeout is None else max(timeout - queue.execution.run_seconds, 0.0)
        if retry:
            run = self.runner.retry_failed(queue, self.executor, context)
        else:
            run = self.runner.run(queue, queue.plan or [], self.executor, context)

        try:
            return await asyncio.wait_for(run, timeout=remaining)
        except asyncio.TimeoutError:
            logger.warning(f"Queue {queue.id} timed out after {timeout}s")
            return RunResult.from_outcomes(
                queue.id,
                queue.execution.results[start_index:],
                timed_out=True,
                error=f"Queue timed out after {timeout}s",
            )

    def _finalize(self, queue: Queue, result: RunResult) -> RunResult:
        if result.cancelled or queue.status == QueueStatus.CANCELLED:
            return result

        if result.paused and queue.status == QueueStatus.PAUSED:
            logger.info(f"Queue {queue.id} paused with {len(queue.execution.settled_ids)} commands settled")
            return result

        queue.execution.end_time = utcnow()
        queue.status = QueueStatus.COMPLETED if queue.all_completed else QueueStatus.FAILED
        self._record_history(queue, result)

        if queue.status == QueueStatus.COMPLETED:
            logger.info(f"Queue {queue.id} completed: {result.success_count}/{result.total_count} in this run")
            self.notifier.emit(
                EventType.QUEUE_COMPLETED,
                queue.id,
                success_count=result.success_count,
                total_count=result.total_count,
                retry_count=queue.execution.retry_count,
                duration_seconds=queue.execution.duration_seconds(),
            )
        else:
            logger.warning(
                f"Queue {queue.id} failed: {len(queue.execution.failed_ids)} failed, "
                f"{queue.total_steps - len(queue.execution.settled_ids)} not run"
            )
            self.notifier.emit(
                EventType.QUEUE_FAILED,
                queue.id,
                severity=EventSeverity.ERROR,
                failed_ids=sorted(queue.execution.failed_ids),
                success_count=result.success_count,
                total_count=result.total_count,
                halted=result.halted,
                timed_out=result.timed_out,
                error=result.error,
            )
        return result

    def _record_history(self, queue: Queue, result: RunResult) -> None:
        self._history.append(QueueHistoryEntry(
            queue_id=queue.id,
            status=queue.status,
            run_result=result,
            started_at=queue.execution.start_time,
            finished_at=queue.execution.end_time,
        ))
        overflow = len(self._history) - self.config.history_limit
        if overflow > 0:
            del self._history[:overflow]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_queue(self, queue_id: str) -> Queue:
        queue = self.queues.get(queue_id)
        if queue is None:
            raise QueueNotFound(queue_id)
        return queue

    def is_executing(self, queue_id: str) -> bool:
        return queue_id in self.active

    def status(self, queue_id: str) -> QueueStatusReport:
        queue = self.get_queue(queue_id)
        return QueueStatusReport(
            queue_id=queue.id,
            status=queue.status,
            progress=queue.progress,
            completed_steps=len(queue.execution.completed_ids),
            total_steps=queue.total_steps,
            failed_steps=len(queue.execution.failed_ids),
            retry_count=queue.execution.retry_count,
            start_time=queue.execution.start_time,
            end_time=queue.execution.end_time,
            is_executing=queue.id in self.active,
            created_at=queue.created_at,
            priority=queue.options.priority,
        )

    def list_all(self, status: Optional[QueueStatus] = None) -> List[QueueStatusReport]:
        return [
            self.status(queue_id)
            for queue_id, queue in self.queues.items()
            if status is None or queue.status == status
        ]

    def history(self, queue_id: Optional[str] = None) -> List[QueueHistoryEntry]:
        return [
            entry for entry in self._history
            if queue_id is None or entry.queue_id == queue_id
        ]

    def statistics(self) -> QueueStatistics:
        """Aggregate statistics over live queues and the latest run of each finished queue"""
        queues = list(self.queues.values())

        distribution: Dict[str, int] = {}
        for queue in queues:
            distribution[queue.status.value] = distribution.get(queue.status.value, 0) + 1

        latest: Dict[str, QueueHistoryEntry] = {}
        for entry in self._history:
            latest[entry.queue_id] = entry
        durations = [
            entry.duration_seconds for entry in latest.values()
            if entry.duration_seconds is not None
        ]

        return QueueStatistics(
            total_queues=len(queues),
            executing_queues=len(self.active),
            completed_queues=len(latest),
            status_distribution=distribution,
            average_execution_time=sum(durations) / len(durations) if durations else 0.0,
            total_commands=sum(queue.total_steps for queue in queues),
            successful_commands=sum(len(queue.execution.completed_ids) for queue in queues),
            failed_commands=sum(len(queue.execution.failed_ids) for queue in queues),
        )

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def clear_completed(self) -> List[str]:
        """Forget finished queues; their history entries are kept"""
        cleared = [
            queue_id for queue_id, queue in self.queues.items()
            if queue.status.is_terminal and queue_id not in self.active
        ]
        for queue_id in cleared:
            del self.queues[queue_id]
        if cleared:
            logger.info(f"Cleared {len(cleared)} finished queues")
        return cleared

    def delete_queue(self, queue_id: str) -> None:
        queue = self.get_queue(queue_id)
        if not queue.status.is_terminal or queue_id in self.active:
            raise InvalidStateTransition(queue_id, "delete", queue.status.value)
        del self.queues[queue_id]
        logger.info(f"Deleted queue {queue_id}")
