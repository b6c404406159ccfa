"""
Queue Definition Loader

Loads queue definitions from YAML or JSON files so the CLI, tests and
callers share one way of describing a queue:

    id: deploy-web
    name: Deploy web tier
    options:
      max_concurrent: 2
      stop_on_error: true
    commands:
      - id: fetch
        action: git pull
      - id: build
        action: make build
        depends_on: [fetch]
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from uuid import uuid4

import yaml
from pydantic import BaseModel, Field, ValidationError

from .dependency_graph import DependencyGraph
from .errors import QueueDefinitionError
from .models import Command, QueueOptions

logger = logging.getLogger(__name__)


class QueueDefinition(BaseModel):
    """A queue as described in a definition file, not yet registered"""

    id: str
    name: Optional[str] = None
    description: str = ""
    commands: List[Command] = Field(default_factory=list)
    options: Optional[QueueOptions] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def validate_graph(self) -> DependencyGraph:
        """Check ids and dependencies the same way queue creation does"""
        return DependencyGraph.build(self.commands)


def load_queue_definition(file_path: Union[str, Path]) -> QueueDefinition:
    """Load a queue definition from a YAML or JSON file"""
    path = Path(file_path)
    if not path.exists():
        raise QueueDefinitionError(f"Queue file not found: {file_path}", {"path": str(path)})

    suffix = path.suffix.lower()
    with open(path, 'r') as f:
        try:
            if suffix in ['.yaml', '.yml']:
                data = yaml.safe_load(f)
            elif suffix == '.json':
                data = json.load(f)
            else:
                raise QueueDefinitionError(
                    f"Unsupported file format: {path.suffix}", {"path": str(path)}
                )
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise QueueDefinitionError(f"Cannot parse {file_path}: {e}", {"path": str(path)})

    logger.debug(f"Loaded queue definition from {path}")
    return load_queue_definition_from_dict(data)


def load_queue_definition_from_dict(data: Any) -> QueueDefinition:
    """Load a queue definition from a parsed YAML/JSON mapping"""
    if not isinstance(data, dict):
        raise QueueDefinitionError("Queue definition must be a mapping")

    commands = data.get('commands')
    if commands is None:
        commands = []
    if not isinstance(commands, list):
        raise QueueDefinitionError("'commands' must be a list")

    # Generate queue ID if not provided
    definition = dict(data)
    definition['id'] = str(data.get('id') or f"queue-{uuid4().hex[:8]}")
    definition['commands'] = commands

    try:
        return QueueDefinition.model_validate(definition)
    except ValidationError as e:
        raise QueueDefinitionError(
            f"Invalid queue definition {definition['id']}: {e}",
            {"queue_id": definition['id'], "errors": e.errors(include_url=False)},
        )
