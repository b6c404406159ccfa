"""
Base command executor for Staffel

Executors are the adapters between the engine and whatever actually runs a
command on the target. The engine only requires an object with an async
``execute(command, context)`` method returning an Outcome; CommandExecutor
provides that method around a simpler ``run_command`` hook.
"""

import asyncio
import logging
import time
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from ..core.context import ExecutionContext
from ..core.models import Command, Outcome

logger = logging.getLogger(__name__)


class CommandExecutor(ABC):
    """
    Abstract base class for command executors

    Subclasses implement ``run_command`` and raise on failure; ``execute``
    times the call and converts the result or the error into an Outcome.
    """

    def __init__(self, executor_id: Optional[str] = None, name: Optional[str] = None):
        self.executor_id = executor_id or f"{self.__class__.__name__.lower()}-{uuid.uuid4().hex[:8]}"
        self.name = name or self.__class__.__name__

        # Statistics
        self.request_count = 0
        self.error_count = 0

        logger.info(f"Initialized {self.__class__.__name__}: {self.executor_id}")

    @abstractmethod
    async def run_command(self, command: Command, context: ExecutionContext) -> Any:
        """
        Run one command against the target

        Returns:
            Command output (JSON serializable preferred)

        Raises:
            Exception: Any exception marks the command as failed
        """
        pass

    async def execute(self, command: Command, context: ExecutionContext) -> Outcome:
        self.request_count += 1
        started = time.monotonic()
        try:
            output = await self.run_command(command, context)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.error_count += 1
            logger.debug(f"{self.name} failed command {command.command_id}: {e}")
            return Outcome(
                command_id=command.command_id,
                success=False,
                error=str(e) or type(e).__name__,
                duration_ms=(time.monotonic() - started) * 1000,
                attempt=context.attempt,
            )

        return Outcome(
            command_id=command.command_id,
            success=True,
            output=output,
            duration_ms=(time.monotonic() - started) * 1000,
            attempt=context.attempt,
        )

    def get_stats(self) -> Dict[str, Any]:
        return {
            "executor_id": self.executor_id,
            "name": self.name,
            "request_count": self.request_count,
            "error_count": self.error_count,
        }
