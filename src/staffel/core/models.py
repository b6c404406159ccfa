"""
Core data models for Staffel

Commands, queue options, execution groups, per-command outcomes and the
reporting types returned by the queue manager.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QueueStatus(str, Enum):
    """Queue lifecycle status"""
    PENDING = "pending"
    EXECUTING = "executing"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({QueueStatus.COMPLETED, QueueStatus.FAILED, QueueStatus.CANCELLED})


class QueuePriority(str, Enum):
    """Queue priority levels"""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class GroupKind(str, Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class Command(BaseModel):
    """A single step of a queue"""

    id: Optional[str] = None
    action: str
    depends_on: List[str] = Field(default_factory=list)
    estimated_duration: float = Field(default=1.0, ge=0)  # seconds
    payload: Dict[str, Any] = Field(default_factory=dict)

    @property
    def command_id(self) -> str:
        """Identity within a queue: explicit id, falling back to the action"""
        return self.id or self.action

    def __str__(self) -> str:
        return f"Command(id={self.command_id}, action={self.action})"


class RetryPolicy(BaseModel):
    """Backoff parameters for caller-driven retries"""

    max_retries: int = Field(default=3, ge=0)
    retry_delay: float = Field(default=1.0, ge=0)  # seconds
    backoff_multiplier: float = Field(default=2.0, ge=1.0)

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0-based)"""
        return self.retry_delay * (self.backoff_multiplier ** attempt)

    def allows(self, retries_done: int) -> bool:
        return retries_done < self.max_retries


class QueueOptions(BaseModel):
    """Per-queue execution options"""

    max_concurrent: int = Field(default=1, ge=1)
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    timeout: Optional[float] = Field(default=300.0, gt=0)  # seconds per run, shared by pause and resume
    priority: QueuePriority = QueuePriority.NORMAL
    stop_on_error: bool = False


class ExecutionGroup(BaseModel):
    """Commands scheduled together, either strictly ordered or concurrently"""

    kind: GroupKind
    commands: List[Command]

    @property
    def command_ids(self) -> List[str]:
        return [command.command_id for command in self.commands]

    def __len__(self) -> int:
        return len(self.commands)


class Outcome(BaseModel):
    """Result of one command execution attempt"""

    command_id: str
    success: bool
    output: Any = None
    error: Optional[str] = None
    duration_ms: float = 0.0
    timestamp: datetime = Field(default_factory=utcnow)
    attempt: int = 0


class ExecutionState(BaseModel):
    """Mutable run state of a queue"""

    current_step: int = 0
    completed_ids: Set[str] = Field(default_factory=set)
    failed_ids: Set[str] = Field(default_factory=set)
    retry_count: int = 0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    results: List[Outcome] = Field(default_factory=list)
    # Time spent executing the current run, carried across pause and resume
    run_seconds: float = 0.0

    @property
    def settled_ids(self) -> Set[str]:
        return self.completed_ids | self.failed_ids

    def record(self, outcome: Outcome) -> None:
        self.results.append(outcome)
        if outcome.success:
            self.failed_ids.discard(outcome.command_id)
            self.completed_ids.add(outcome.command_id)
        else:
            self.failed_ids.add(outcome.command_id)

    def duration_seconds(self) -> Optional[float]:
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return None


class RunResult(BaseModel):
    """Result of one runner invocation (execute, resume or retry)"""

    queue_id: str
    success: bool
    outcomes: List[Outcome] = Field(default_factory=list)
    success_count: int = 0
    total_count: int = 0
    halted: bool = False
    paused: bool = False
    cancelled: bool = False
    timed_out: bool = False
    error: Optional[str] = None

    @classmethod
    def from_outcomes(cls, queue_id: str, outcomes: List[Outcome], **flags: Any) -> "RunResult":
        success_count = sum(1 for outcome in outcomes if outcome.success)
        interrupted = any(
            flags.get(name) for name in ("halted", "paused", "cancelled", "timed_out")
        )
        return cls(
            queue_id=queue_id,
            success=success_count == len(outcomes) and not interrupted,
            outcomes=list(outcomes),
            success_count=success_count,
            total_count=len(outcomes),
            **flags,
        )

    @property
    def failed_ids(self) -> List[str]:
        return [outcome.command_id for outcome in self.outcomes if not outcome.success]


class QueueStatusReport(BaseModel):
    queue_id: str
    status: QueueStatus
    progress: float
    completed_steps: int
    total_steps: int
    failed_steps: int
    retry_count: int
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    is_executing: bool = False
    created_at: datetime
    priority: QueuePriority = QueuePriority.NORMAL


class QueueHistoryEntry(BaseModel):
    """A finished run, kept for reporting after the queue is cleared"""

    queue_id: str
    status: QueueStatus
    run_result: RunResult
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    recorded_at: datetime = Field(default_factory=utcnow)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at and self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None


class QueueStatistics(BaseModel):
    total_queues: int
    executing_queues: int
    completed_queues: int
    status_distribution: Dict[str, int]
    average_execution_time: float  # seconds, over completed runs
    total_commands: int
    successful_commands: int
    failed_commands: int
    timestamp: datetime = Field(default_factory=utcnow)
