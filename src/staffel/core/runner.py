"""
Queue runner

Drives one queue through its execution plan:

- sequential groups run their commands one after the other; with
  ``stop_on_error`` the first failure aborts the rest of the plan
- parallel groups are dispatched in batches of at most ``max_concurrent``
  commands, and every batch waits for all of its members to settle
- commands that already settled are skipped, so resuming a paused queue
  picks up where it stopped
- pause requests are honoured at group and batch boundaries; cancellation
  arrives as ``asyncio.CancelledError`` at the executor call

Every settled command is recorded on the queue immediately, so outcomes
survive a later cancellation or timeout of the run.
"""

import asyncio
import logging
import time
from typing import Any, List, Optional

from .context import ExecutionContext
from .errors import ExecutorFailure
from .events import EventNotifier, EventSeverity, EventType
from .models import Command, ExecutionGroup, GroupKind, Outcome, RunResult
from .queue import Queue

logger = logging.getLogger(__name__)


class QueueRunner:
    """Executes a queue's plan against an executor"""

    def __init__(self, notifier: Optional[EventNotifier] = None):
        self.notifier = notifier or EventNotifier()

    async def run(
        self,
        queue: Queue,
        plan: List[ExecutionGroup],
        executor: Any,
        context: ExecutionContext,
    ) -> RunResult:
        """Run every not yet settled command of the plan"""
        logger.info(f"Running queue {queue.id}: {len(plan)} groups, {queue.total_steps} commands")
        return await self._run_groups(queue, plan, executor, context, rerun_failed=False)

    async def retry_failed(
        self,
        queue: Queue,
        executor: Any,
        context: ExecutionContext,
    ) -> RunResult:
        """
        Re-execute exactly the commands recorded as failed

        Failed commands keep the dispatch mode of the plan group they came
        from: several failures of one parallel group are retried in
        parallel, anything else sequentially. ``max_retries`` is not
        consulted here; retrying is always the caller's decision.
        """
        failed_ids = set(queue.execution.failed_ids)
        if not failed_ids:
            logger.info(f"No failed commands to retry in queue {queue.id}")
            return RunResult.from_outcomes(queue.id, [])

        queue.execution.retry_count += 1
        context.attempt = queue.execution.retry_count

        plan = queue.plan or [
            ExecutionGroup(kind=GroupKind.SEQUENTIAL, commands=[command])
            for command in queue.commands
        ]

        retry_groups: List[ExecutionGroup] = []
        for group in plan:
            members = [command for command in group.commands if command.command_id in failed_ids]
            if not members:
                continue
            kind = (
                GroupKind.PARALLEL
                if group.kind == GroupKind.PARALLEL and len(members) > 1
                else GroupKind.SEQUENTIAL
            )
            retry_groups.append(ExecutionGroup(kind=kind, commands=members))

        logger.info(
            f"Retrying {len(failed_ids)} failed commands in queue {queue.id} "
            f"(attempt {queue.execution.retry_count})"
        )
        return await self._run_groups(queue, retry_groups, executor, context, rerun_failed=True)

    async def _run_groups(
        self,
        queue: Queue,
        groups: List[ExecutionGroup],
        executor: Any,
        context: ExecutionContext,
        rerun_failed: bool,
    ) -> RunResult:
        outcomes: List[Outcome] = []
        stop_on_error = queue.options.stop_on_error

        for index, group in enumerate(groups):
            pending = self._pending_commands(queue, group, rerun_failed)
            if not pending:
                logger.debug(f"Skipping group {index} of queue {queue.id}: already settled")
                continue

            if group.kind == GroupKind.SEQUENTIAL:
                for command in pending:
                    if context.pause_requested:
                        return self._paused(queue, outcomes)

                    outcome = await self._dispatch(queue, command, executor, context)
                    outcomes.append(outcome)

                    if not outcome.success and stop_on_error:
                        return self._halted(queue, outcomes, outcome.command_id)
            else:
                batch_size = queue.options.max_concurrent
                for start in range(0, len(pending), batch_size):
                    if context.pause_requested:
                        return self._paused(queue, outcomes)

                    batch = pending[start:start + batch_size]
                    batch_outcomes = await asyncio.gather(*[
                        self._dispatch(queue, command, executor, context)
                        for command in batch
                    ])
                    outcomes.extend(batch_outcomes)

                    failures = [outcome for outcome in batch_outcomes if not outcome.success]
                    if failures and stop_on_error:
                        return self._halted(queue, outcomes, failures[0].command_id)

        result = RunResult.from_outcomes(queue.id, outcomes)
        logger.info(
            f"Queue {queue.id} run finished: {result.success_count}/{result.total_count} succeeded"
        )
        return result

    @staticmethod
    def _pending_commands(queue: Queue, group: ExecutionGroup, rerun_failed: bool) -> List[Command]:
        execution = queue.execution
        return [
            command for command in group.commands
            if command.command_id not in execution.completed_ids
            and (rerun_failed or command.command_id not in execution.failed_ids)
        ]

    async def _dispatch(
        self,
        queue: Queue,
        command: Command,
        executor: Any,
        context: ExecutionContext,
    ) -> Outcome:
        """Execute one command and record its outcome; never raises except on cancellation"""
        command_id = command.command_id
        queue.execution.current_step += 1

        self.notifier.emit(
            EventType.COMMAND_STARTED,
            queue.id,
            correlation_id=context.run_id,
            command_id=command_id,
            action=command.action,
            step=queue.execution.current_step,
            attempt=context.attempt,
        )

        started = time.monotonic()
        try:
            result = await executor.execute(command, context)
            outcome = self._normalize(command, result, context, started)
        except asyncio.CancelledError:
            logger.info(f"Command {command_id} of queue {queue.id} cancelled in flight")
            raise
        except Exception as e:
            failure = ExecutorFailure(command_id, e)
            logger.error(failure.message)
            outcome = Outcome(
                command_id=command_id,
                success=False,
                error=failure.message,
                duration_ms=(time.monotonic() - started) * 1000,
                attempt=context.attempt,
            )

        queue.execution.record(outcome)

        if outcome.success:
            logger.debug(f"Command {command_id} of queue {queue.id} completed")
            self.notifier.emit(
                EventType.COMMAND_COMPLETED,
                queue.id,
                correlation_id=context.run_id,
                command_id=command_id,
                duration_ms=outcome.duration_ms,
                attempt=outcome.attempt,
            )
        else:
            logger.warning(f"Command {command_id} of queue {queue.id} failed: {outcome.error}")
            self.notifier.emit(
                EventType.COMMAND_FAILED,
                queue.id,
                severity=EventSeverity.ERROR,
                correlation_id=context.run_id,
                command_id=command_id,
                error=outcome.error,
                attempt=outcome.attempt,
            )

        settled = len(queue.execution.settled_ids)
        total = queue.total_steps
        self.notifier.emit(
            EventType.QUEUE_PROGRESS,
            queue.id,
            correlation_id=context.run_id,
            command_id=command_id,
            progress_percent=(settled / total * 100) if total else 100.0,
            completed=len(queue.execution.completed_ids),
            failed=len(queue.execution.failed_ids),
            total=total,
        )
        return outcome

    @staticmethod
    def _normalize(command: Command, result: Any, context: ExecutionContext, started: float) -> Outcome:
        """Accept an Outcome or a mapping from the executor"""
        if isinstance(result, Outcome):
            outcome = result
        elif isinstance(result, dict):
            outcome = Outcome.model_validate({"command_id": command.command_id, **result})
        else:
            raise TypeError(f"Executor returned {type(result).__name__}, expected Outcome")

        update = {"command_id": command.command_id, "attempt": context.attempt}
        if not outcome.duration_ms:
            update["duration_ms"] = (time.monotonic() - started) * 1000
        return outcome.model_copy(update=update)

    @staticmethod
    def _paused(queue: Queue, outcomes: List[Outcome]) -> RunResult:
        logger.info(f"Queue {queue.id} paused after {len(outcomes)} commands in this run")
        return RunResult.from_outcomes(queue.id, outcomes, paused=True)

    @staticmethod
    def _halted(queue: Queue, outcomes: List[Outcome], command_id: str) -> RunResult:
        logger.warning(f"Queue {queue.id} stopped on error in command {command_id}")
        return RunResult.from_outcomes(
            queue.id, outcomes, halted=True, error=f"Stopped on error: {command_id}"
        )
