"""
Global pytest configuration and fixtures for Staffel tests
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

import pytest

from staffel.core.context import ExecutionContext
from staffel.core.events import RecordingEventSink
from staffel.core.models import Command
from staffel.executors.base import CommandExecutor

# Configure logging for tests
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)

# Suppress noisy logs during testing
logging.getLogger('asyncio').setLevel(logging.WARNING)


class RecordingExecutor(CommandExecutor):
    """Runs commands after an optional delay and records call order and concurrency"""

    def __init__(self, fail_ids: Optional[Iterable[str]] = None, delay: float = 0.0):
        super().__init__(name="Recording Executor")
        self.fail_ids = set(fail_ids or [])
        self.delay = delay
        self.calls: List[str] = []
        self.contexts: List[ExecutionContext] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def run_command(self, command: Command, context: ExecutionContext) -> Any:
        self.calls.append(command.command_id)
        self.contexts.append(context)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1

        if command.command_id in self.fail_ids:
            raise RuntimeError(f"{command.command_id} failed")
        return {"command_id": command.command_id}


class GatedExecutor(CommandExecutor):
    """Holds commands until released; ``block_ids`` limits which ones wait"""

    def __init__(self, block_ids: Optional[Iterable[str]] = None):
        super().__init__(name="Gated Executor")
        self.block_ids = set(block_ids) if block_ids is not None else None
        self.started: List[str] = []
        self.finished: List[str] = []
        self.cancelled: List[str] = []
        self._gate: Optional[asyncio.Event] = None

    @property
    def gate(self) -> asyncio.Event:
        # Created lazily so it binds to the test's running loop
        if self._gate is None:
            self._gate = asyncio.Event()
        return self._gate

    def release(self) -> None:
        self.gate.set()

    def close_gate(self) -> None:
        self._gate = None

    async def wait_started(self, count: int = 1, timeout: float = 2.0) -> None:
        async def _poll():
            while len(self.started) < count:
                await asyncio.sleep(0.005)
        await asyncio.wait_for(_poll(), timeout=timeout)

    async def run_command(self, command: Command, context: ExecutionContext) -> Any:
        command_id = command.command_id
        self.started.append(command_id)
        if self.block_ids is None or command_id in self.block_ids:
            try:
                await self.gate.wait()
            except asyncio.CancelledError:
                self.cancelled.append(command_id)
                raise
        self.finished.append(command_id)
        return {"command_id": command_id}


def make_commands(spec: Dict[str, List[str]]) -> List[Command]:
    """Build commands from {id: [dependency ids]} in insertion order"""
    return [
        Command(id=command_id, action=f"run {command_id}", depends_on=deps, estimated_duration=0)
        for command_id, deps in spec.items()
    ]


@pytest.fixture
def recording_sink():
    """In-memory event sink"""
    return RecordingEventSink()


@pytest.fixture
def abc_commands():
    """A, then B and C which both depend on A"""
    return make_commands({"A": [], "B": ["A"], "C": ["A"]})


@pytest.fixture
def chain_commands():
    """A -> B -> C"""
    return make_commands({"A": [], "B": ["A"], "C": ["B"]})


@pytest.fixture
def temp_dir(tmp_path):
    """Provide a temporary directory for test files"""
    return tmp_path


# Custom markers for test categorization
def pytest_configure(config):
    """Configure custom pytest markers"""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Tests that take more than 5 seconds")
