"""
Staffel - dependency-aware command queue orchestration

Queues of interdependent commands are planned into sequential and parallel
groups and run against a pluggable executor, with pause, resume, cancel and
caller-driven retry of failed commands.
"""

__version__ = "0.1.0"

from .core import (
    Command,
    QueueLifecycleManager,
    QueueOptions,
    QueueStatus,
    RetryPolicy,
    RunResult,
    StaffelConfig,
    StaffelError,
)
from .executors import CommandExecutor, ExecutionContext, ShellExecutor, SimulatedExecutor

__all__ = [
    "__version__",
    "Command",
    "CommandExecutor",
    "ExecutionContext",
    "QueueLifecycleManager",
    "QueueOptions",
    "QueueStatus",
    "RetryPolicy",
    "RunResult",
    "ShellExecutor",
    "SimulatedExecutor",
    "StaffelConfig",
    "StaffelError",
]
