"""
Execution context handed to executors
"""

import asyncio
import uuid
from typing import Any, Dict, Optional


class ExecutionContext:
    """
    Per-run context handed to every executor call

    Carries the caller's target description and the cancellation token of
    the run. Executors doing long work should check ``cancelled`` or await
    ``wait_cancelled()``; in-flight awaits are also cancelled directly when
    the queue is cancelled.
    """

    def __init__(
        self,
        queue_id: str,
        target: Optional[Dict[str, Any]] = None,
        run_id: Optional[str] = None,
        attempt: int = 0,
    ):
        self.queue_id = queue_id
        self.target: Dict[str, Any] = dict(target or {})
        self.run_id = run_id or uuid.uuid4().hex[:12]
        self.attempt = attempt
        self._cancel_event = asyncio.Event()
        self._pause_requested = False

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    @property
    def pause_requested(self) -> bool:
        return self._pause_requested

    def cancel(self) -> None:
        self._cancel_event.set()

    def request_pause(self) -> None:
        self._pause_requested = True

    async def wait_cancelled(self) -> None:
        await self._cancel_event.wait()

    def __repr__(self) -> str:
        return f"ExecutionContext(queue_id={self.queue_id}, run_id={self.run_id}, cancelled={self.cancelled})"
