"""
Dependency graph for a command queue

Built once when a queue is created and never modified afterwards. Unknown
dependency ids and duplicate command ids are rejected here; cycles are not,
the planner handles them with its sequential fallback group.
"""

import logging
from typing import Dict, Iterable, List

from pydantic import BaseModel, ConfigDict, Field

from .errors import DuplicateCommandId, UnknownDependency
from .models import Command

logger = logging.getLogger(__name__)


class GraphNode(BaseModel):
    """A command with its forward and reverse edges"""

    model_config = ConfigDict(frozen=True)

    command: Command
    dependencies: List[str] = Field(default_factory=list)  # must run before this command
    dependents: List[str] = Field(default_factory=list)  # wait on this command


class DependencyGraph(BaseModel):
    """
    Directed graph of commands keyed by command id

    ``order`` keeps the original input order of the commands, which the
    planner uses for scanning and for the cycle fallback group.
    """

    model_config = ConfigDict(frozen=True)

    nodes: Dict[str, GraphNode] = Field(default_factory=dict)
    order: List[str] = Field(default_factory=list)

    @classmethod
    def build(cls, commands: Iterable[Command]) -> "DependencyGraph":
        """Build the graph, raising on duplicate ids or unknown dependencies"""
        commands = list(commands)
        ids = [command.command_id for command in commands]

        if len(set(ids)) != len(ids):
            seen = set()
            dupes = []
            for command_id in ids:
                if command_id in seen and command_id not in dupes:
                    dupes.append(command_id)
                seen.add(command_id)
            raise DuplicateCommandId(dupes)

        known = set(ids)
        dependencies: Dict[str, List[str]] = {}
        dependents: Dict[str, List[str]] = {command_id: [] for command_id in ids}

        for command in commands:
            deps: List[str] = []
            for dep in command.depends_on:
                if dep not in known:
                    raise UnknownDependency(command.command_id, dep, sorted(known))
                if dep not in deps:
                    deps.append(dep)
                    dependents[dep].append(command.command_id)
            dependencies[command.command_id] = deps

        nodes = {
            command.command_id: GraphNode(
                command=command,
                dependencies=dependencies[command.command_id],
                dependents=dependents[command.command_id],
            )
            for command in commands
        }

        edge_count = sum(len(deps) for deps in dependencies.values())
        logger.debug(f"Built dependency graph with {len(nodes)} commands and {edge_count} edges")
        return cls(nodes=nodes, order=ids)

    @property
    def command_ids(self) -> List[str]:
        return list(self.order)

    @property
    def commands(self) -> List[Command]:
        return [self.nodes[command_id].command for command_id in self.order]

    def node(self, command_id: str) -> GraphNode:
        return self.nodes[command_id]

    def command(self, command_id: str) -> Command:
        return self.nodes[command_id].command

    def dependencies_of(self, command_id: str) -> List[str]:
        return list(self.nodes[command_id].dependencies)

    def dependents_of(self, command_id: str) -> List[str]:
        return list(self.nodes[command_id].dependents)

    def roots(self) -> List[str]:
        """Commands without dependencies, in input order"""
        return [command_id for command_id in self.order if not self.nodes[command_id].dependencies]

    def __contains__(self, command_id: object) -> bool:
        return command_id in self.nodes

    def __len__(self) -> int:
        return len(self.nodes)
