"""
Staffel core: queue model, dependency planning and lifecycle management
"""

from .config import StaffelConfig, setup_logging
from .context import ExecutionContext
from .dependency_graph import DependencyGraph, GraphNode
from .errors import (
    AlreadyExecuting,
    ConfigurationError,
    DuplicateCommandId,
    DuplicateQueueId,
    ErrorCode,
    ExecutorFailure,
    InvalidStateTransition,
    QueueDefinitionError,
    QueueNotFound,
    StaffelError,
    UnknownDependency,
)
from .events import (
    CallbackEventSink,
    EventNotifier,
    EventSeverity,
    EventSink,
    EventType,
    LoggingEventSink,
    QueueEvent,
    RecordingEventSink,
)
from .models import (
    Command,
    ExecutionGroup,
    ExecutionState,
    GroupKind,
    Outcome,
    QueueHistoryEntry,
    QueueOptions,
    QueuePriority,
    QueueStatistics,
    QueueStatus,
    QueueStatusReport,
    RetryPolicy,
    RunResult,
)
from .planner import ExecutionPlanner
from .queue import Queue
from .queue_loader import QueueDefinition, load_queue_definition, load_queue_definition_from_dict
from .queue_manager import QueueLifecycleManager
from .runner import QueueRunner

__all__ = [
    # Configuration
    "StaffelConfig",
    "setup_logging",
    # Models
    "Command",
    "ExecutionGroup",
    "ExecutionState",
    "GroupKind",
    "Outcome",
    "Queue",
    "QueueHistoryEntry",
    "QueueOptions",
    "QueuePriority",
    "QueueStatistics",
    "QueueStatus",
    "QueueStatusReport",
    "RetryPolicy",
    "RunResult",
    # Planning and execution
    "DependencyGraph",
    "GraphNode",
    "ExecutionPlanner",
    "ExecutionContext",
    "QueueRunner",
    "QueueLifecycleManager",
    # Definitions
    "QueueDefinition",
    "load_queue_definition",
    "load_queue_definition_from_dict",
    # Events
    "CallbackEventSink",
    "EventNotifier",
    "EventSeverity",
    "EventSink",
    "EventType",
    "LoggingEventSink",
    "QueueEvent",
    "RecordingEventSink",
    # Errors
    "AlreadyExecuting",
    "ConfigurationError",
    "DuplicateCommandId",
    "DuplicateQueueId",
    "ErrorCode",
    "ExecutorFailure",
    "InvalidStateTransition",
    "QueueDefinitionError",
    "QueueNotFound",
    "StaffelError",
    "UnknownDependency",
]
