"""
Execution planner

Turns a dependency graph into an ordered list of execution groups using
layered readiness: every pass collects the commands whose dependencies are
all resolved. A pass with a single ready command becomes a sequential group,
a pass with several becomes a parallel group.

If a pass finds nothing ready while commands remain (a dependency cycle),
the remaining commands are emitted as one final sequential group in input
order. The plan therefore always terminates and always covers every command.
"""

import logging
from typing import Any, Dict, List, Set

from .dependency_graph import DependencyGraph
from .models import ExecutionGroup, GroupKind

logger = logging.getLogger(__name__)


class ExecutionPlanner:
    """Derives the execution plan of a queue from its dependency graph"""

    def plan(self, graph: DependencyGraph) -> List[ExecutionGroup]:
        remaining: List[str] = graph.command_ids
        resolved: Set[str] = set()
        groups: List[ExecutionGroup] = []

        while remaining:
            ready = [
                command_id for command_id in remaining
                if all(dep in resolved for dep in graph.dependencies_of(command_id))
            ]

            if not ready:
                logger.warning(
                    f"Unresolvable dependencies among {remaining}; "
                    f"running them sequentially in input order"
                )
                groups.append(ExecutionGroup(
                    kind=GroupKind.SEQUENTIAL,
                    commands=[graph.command(command_id) for command_id in remaining],
                ))
                break

            resolved.update(ready)
            remaining = [command_id for command_id in remaining if command_id not in resolved]

            kind = GroupKind.SEQUENTIAL if len(ready) == 1 else GroupKind.PARALLEL
            groups.append(ExecutionGroup(
                kind=kind,
                commands=[graph.command(command_id) for command_id in ready],
            ))

        logger.debug(f"Planned {len(graph)} commands into {len(groups)} groups")
        return groups

    @staticmethod
    def describe(plan: List[ExecutionGroup]) -> List[Dict[str, Any]]:
        """Plain representation of a plan for display"""
        return [
            {"index": index, "kind": group.kind.value, "commands": group.command_ids}
            for index, group in enumerate(plan)
        ]

    @staticmethod
    def group_index(plan: List[ExecutionGroup]) -> Dict[str, int]:
        """Map command id to the index of the group it was planned in"""
        return {
            command_id: index
            for index, group in enumerate(plan)
            for command_id in group.command_ids
        }
