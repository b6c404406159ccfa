"""
Command executors for Staffel
"""

from ..core.context import ExecutionContext
from .base import CommandExecutor
from .shell import ShellExecutor, ShellCommandError
from .simulated import SimulatedExecutor, SimulatedCommandError

__all__ = [
    "CommandExecutor",
    "ExecutionContext",
    "ShellExecutor",
    "ShellCommandError",
    "SimulatedExecutor",
    "SimulatedCommandError",
]
