"""
Queue definition and execution state
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .dependency_graph import DependencyGraph
from .models import (
    Command,
    ExecutionGroup,
    ExecutionState,
    QueueOptions,
    QueueStatus,
    utcnow,
)


class Queue(BaseModel):
    """A dependency-annotated batch of commands submitted as one unit of work"""

    id: str
    commands: List[Command]
    status: QueueStatus = QueueStatus.PENDING
    options: QueueOptions = Field(default_factory=QueueOptions)
    execution: ExecutionState = Field(default_factory=ExecutionState)
    graph: DependencyGraph
    plan: Optional[List[ExecutionGroup]] = None
    created_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def create(
        cls,
        queue_id: str,
        commands: List[Command],
        options: Optional[QueueOptions] = None,
    ) -> "Queue":
        """Validate the commands and build the dependency graph"""
        graph = DependencyGraph.build(commands)
        return cls(
            id=queue_id,
            commands=list(commands),
            options=options or QueueOptions(),
            graph=graph,
        )

    @property
    def total_steps(self) -> int:
        return len(self.commands)

    @property
    def progress(self) -> float:
        """Percentage of commands completed successfully"""
        if not self.commands:
            return 0.0
        return len(self.execution.completed_ids) / len(self.commands) * 100

    @property
    def all_completed(self) -> bool:
        return (
            not self.execution.failed_ids
            and len(self.execution.completed_ids) == len(self.commands)
        )

    def command(self, command_id: str) -> Command:
        return self.graph.command(command_id)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-compatible dictionary"""
        data = self.model_dump(mode="json")
        data["execution"]["completed_ids"] = sorted(self.execution.completed_ids)
        data["execution"]["failed_ids"] = sorted(self.execution.failed_ids)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Queue":
        return cls.model_validate(data)

    def __str__(self) -> str:
        return f"Queue(id={self.id}, status={self.status.value}, commands={len(self.commands)})"
