"""
Simulated executor

Stands in for a real target: waits for the command's estimated duration and
reports success, or failure when asked to. Used for dry runs from the CLI
and for tests.
"""

import asyncio
import logging
import random
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from ..core.models import Command
from ..core.context import ExecutionContext
from .base import CommandExecutor

logger = logging.getLogger(__name__)


class SimulatedCommandError(RuntimeError):
    pass


class SimulatedExecutor(CommandExecutor):
    """
    Executor that simulates command execution

    A command fails when its payload has ``fail: true``, when its id is in
    ``fail_ids``, or randomly with probability ``failure_rate``. Ids in
    ``fail_once_ids`` fail on their first execution only.
    """

    def __init__(
        self,
        time_scale: float = 1.0,
        failure_rate: float = 0.0,
        fail_ids: Optional[Iterable[str]] = None,
        fail_once_ids: Optional[Iterable[str]] = None,
        seed: Optional[int] = None,
        executor_id: Optional[str] = None,
    ):
        if not 0.0 <= failure_rate <= 1.0:
            raise ValueError("failure_rate must be between 0 and 1")
        if time_scale < 0:
            raise ValueError("time_scale must be non-negative")

        super().__init__(executor_id=executor_id, name="Simulated Executor")
        self.time_scale = time_scale
        self.failure_rate = failure_rate
        self.fail_ids = set(fail_ids or [])
        self.fail_once_ids = set(fail_once_ids or [])
        self._random = random.Random(seed)
        self.executed: Dict[str, int] = {}

    async def run_command(self, command: Command, context: ExecutionContext) -> Any:
        command_id = command.command_id
        self.executed[command_id] = self.executed.get(command_id, 0) + 1

        delay = command.estimated_duration * self.time_scale
        if delay > 0:
            await asyncio.sleep(delay)

        if self._should_fail(command):
            raise SimulatedCommandError(f"Command {command.action} failed")

        return {
            "message": f"Command {command.action} completed successfully",
            "command_id": command_id,
            "target": context.target,
            "simulated_duration": delay,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def _should_fail(self, command: Command) -> bool:
        command_id = command.command_id
        if command.payload.get("fail"):
            return True
        if command_id in self.fail_ids:
            return True
        if command_id in self.fail_once_ids:
            self.fail_once_ids.discard(command_id)
            return True
        return self.failure_rate > 0 and self._random.random() < self.failure_rate
