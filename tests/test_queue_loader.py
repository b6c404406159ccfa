"""
Tests for queue definition loading
"""

import json

import pytest
import yaml

from staffel.core.errors import QueueDefinitionError, UnknownDependency
from staffel.core.queue_loader import load_queue_definition, load_queue_definition_from_dict


DEPLOY_QUEUE = {
    "id": "deploy-web",
    "name": "Deploy web tier",
    "options": {"max_concurrent": 2, "stop_on_error": True, "timeout": 60},
    "commands": [
        {"id": "fetch", "action": "git pull"},
        {"id": "build", "action": "make build", "depends_on": ["fetch"], "estimated_duration": 30},
        {"id": "lint", "action": "make lint", "depends_on": ["fetch"]},
    ],
}


class TestQueueLoader:

    def test_load_yaml(self, temp_dir):
        path = temp_dir / "deploy.yaml"
        path.write_text(yaml.safe_dump(DEPLOY_QUEUE))

        definition = load_queue_definition(path)

        assert definition.id == "deploy-web"
        assert definition.name == "Deploy web tier"
        assert [command.command_id for command in definition.commands] == ["fetch", "build", "lint"]
        assert definition.commands[1].estimated_duration == 30
        assert definition.options.max_concurrent == 2
        assert definition.options.stop_on_error
        assert definition.validate_graph().dependents_of("fetch") == ["build", "lint"]

    def test_load_json(self, temp_dir):
        path = temp_dir / "deploy.json"
        path.write_text(json.dumps(DEPLOY_QUEUE))

        definition = load_queue_definition(str(path))

        assert definition.id == "deploy-web"
        assert len(definition.commands) == 3

    def test_generated_id_and_default_options(self):
        definition = load_queue_definition_from_dict({"commands": [{"action": "uptime"}]})

        assert definition.id.startswith("queue-")
        assert len(definition.id) == len("queue-") + 8
        assert definition.options is None
        assert definition.commands[0].command_id == "uptime"

    def test_missing_file(self, temp_dir):
        with pytest.raises(QueueDefinitionError):
            load_queue_definition(temp_dir / "nope.yaml")

    def test_unsupported_suffix(self, temp_dir):
        path = temp_dir / "queue.toml"
        path.write_text("id = 'x'")

        with pytest.raises(QueueDefinitionError, match="Unsupported file format"):
            load_queue_definition(path)

    def test_malformed_yaml(self, temp_dir):
        path = temp_dir / "broken.yml"
        path.write_text("commands: [unclosed")

        with pytest.raises(QueueDefinitionError):
            load_queue_definition(path)

    @pytest.mark.parametrize("data", [
        ["not", "a", "mapping"],
        {"commands": {"id": "a"}},
        {"commands": [{"id": "no-action"}]},
        {"commands": [{"action": "x"}], "options": {"max_concurrent": 0}},
    ])
    def test_invalid_definitions(self, data):
        with pytest.raises(QueueDefinitionError):
            load_queue_definition_from_dict(data)

    def test_unknown_dependency_found_by_graph_check(self):
        definition = load_queue_definition_from_dict({
            "commands": [{"id": "a", "action": "x", "depends_on": ["ghost"]}],
        })

        with pytest.raises(UnknownDependency):
            definition.validate_graph()
