"""
Tests for execution planning
"""

import itertools
import random

import pytest

from staffel.core.dependency_graph import DependencyGraph
from staffel.core.models import GroupKind
from staffel.core.planner import ExecutionPlanner

from conftest import make_commands


def plan_for(spec):
    return ExecutionPlanner().plan(DependencyGraph.build(make_commands(spec)))


def flatten(plan):
    return [command_id for group in plan for command_id in group.command_ids]


class TestExecutionPlanner:
    """Layered planning of dependency graphs"""

    def test_abc_plan(self):
        plan = plan_for({"A": [], "B": ["A"], "C": ["A"]})

        assert [group.kind for group in plan] == [GroupKind.SEQUENTIAL, GroupKind.PARALLEL]
        assert plan[0].command_ids == ["A"]
        assert plan[1].command_ids == ["B", "C"]

    def test_independent_commands_form_one_parallel_group(self):
        plan = plan_for({"A": [], "B": [], "C": []})

        assert len(plan) == 1
        assert plan[0].kind == GroupKind.PARALLEL
        assert plan[0].command_ids == ["A", "B", "C"]

    def test_chain_is_sequential(self):
        plan = plan_for({"A": [], "B": ["A"], "C": ["B"]})

        assert [group.command_ids for group in plan] == [["A"], ["B"], ["C"]]
        assert all(group.kind == GroupKind.SEQUENTIAL for group in plan)

    def test_diamond(self):
        plan = plan_for({"A": [], "B": ["A"], "C": ["A"], "D": ["B", "C"]})

        assert [group.command_ids for group in plan] == [["A"], ["B", "C"], ["D"]]

    def test_dependents_listed_before_dependencies(self):
        plan = plan_for({"deploy": ["build"], "build": ["fetch"], "fetch": []})

        assert flatten(plan) == ["fetch", "build", "deploy"]

    def test_two_cycle_falls_back_to_sequential_group(self):
        plan = plan_for({"A": ["B"], "B": ["A"]})

        assert len(plan) == 1
        assert plan[0].kind == GroupKind.SEQUENTIAL
        assert plan[0].command_ids == ["A", "B"]

    def test_cycle_after_resolvable_prefix(self):
        plan = plan_for({"setup": [], "X": ["setup", "Y"], "Y": ["X"], "tail": ["setup"]})

        assert plan[0].command_ids == ["setup"]
        assert plan[1].command_ids == ["tail"]
        assert plan[-1].kind == GroupKind.SEQUENTIAL
        assert plan[-1].command_ids == ["X", "Y"]

    def test_empty_graph_plans_nothing(self):
        assert ExecutionPlanner().plan(DependencyGraph.build([])) == []

    def test_describe_and_group_index(self):
        plan = plan_for({"A": [], "B": ["A"], "C": ["A"]})

        assert ExecutionPlanner.describe(plan) == [
            {"index": 0, "kind": "sequential", "commands": ["A"]},
            {"index": 1, "kind": "parallel", "commands": ["B", "C"]},
        ]
        assert ExecutionPlanner.group_index(plan) == {"A": 0, "B": 1, "C": 1}


class TestPlanProperties:
    """Invariants over generated acyclic graphs"""

    @pytest.mark.parametrize("seed", range(20))
    def test_plan_is_permutation_respecting_dependencies(self, seed):
        rng = random.Random(seed)
        ids = [f"c{i}" for i in range(rng.randint(1, 12))]
        spec = {}
        for position, command_id in enumerate(ids):
            earlier = ids[:position]
            spec[command_id] = rng.sample(earlier, k=min(len(earlier), rng.randint(0, 3)))

        # Shuffle input order so dependents may come first
        shuffled = dict(rng.sample(list(spec.items()), k=len(spec)))
        plan = plan_for(shuffled)

        planned = flatten(plan)
        assert sorted(planned) == sorted(ids)
        assert len(planned) == len(set(planned))

        index = ExecutionPlanner.group_index(plan)
        for command_id, deps in spec.items():
            for dep in deps:
                assert index[dep] < index[command_id]

    def test_every_permutation_of_small_queue(self):
        spec = {"A": [], "B": ["A"], "C": ["A"], "D": ["C"]}
        for order in itertools.permutations(spec):
            plan = plan_for({command_id: spec[command_id] for command_id in order})
            index = ExecutionPlanner.group_index(plan)

            assert sorted(flatten(plan)) == ["A", "B", "C", "D"]
            assert index["A"] < index["B"]
            assert index["A"] < index["C"] < index["D"]
