#!/usr/bin/env python3
"""
Staffel CLI
Validate, plan and run command queues from YAML or JSON definition files.
"""

import asyncio
import json
import logging
import sys
from typing import Any, Dict, Optional, Tuple

import click
from rich.console import Console
from rich.table import Table

from .. import __version__
from ..core.config import StaffelConfig, setup_logging
from ..core.errors import StaffelError
from ..core.events import LoggingEventSink
from ..core.models import QueueOptions, QueueStatus
from ..core.planner import ExecutionPlanner
from ..core.queue_loader import QueueDefinition, load_queue_definition
from ..core.queue_manager import QueueLifecycleManager
from ..executors import CommandExecutor, ShellExecutor, SimulatedExecutor

logger = logging.getLogger(__name__)


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.option('--config', 'config_file', type=click.Path(exists=True), help='YAML configuration file')
@click.version_option(version=__version__, prog_name='Staffel')
@click.pass_context
def cli(ctx: click.Context, verbose: bool, debug: bool, config_file: Optional[str]):
    """
    Staffel - dependency-aware command queue orchestration

    Plan and run queues of interdependent commands.
    """
    try:
        config = StaffelConfig.from_yaml(config_file) if config_file else StaffelConfig()
    except StaffelError as e:
        click.echo(f"❌ {e}")
        sys.exit(1)

    # Configure logging based on verbosity
    if debug:
        config.log_level = 'DEBUG'
    elif verbose:
        config.log_level = 'INFO'
    else:
        # Production mode - only show warnings and errors
        config.log_level = 'WARNING'
        config.log_format = '%(levelname)s: %(message)s'
    setup_logging(config)

    ctx.obj = config


@cli.command()
@click.argument('queue_file', type=click.Path(exists=True))
def validate(queue_file: str):
    """Validate a queue definition file"""
    try:
        definition = load_queue_definition(queue_file)
        graph = definition.validate_graph()
    except StaffelError as e:
        click.echo(f"❌ {e}")
        sys.exit(1)

    plan = ExecutionPlanner().plan(graph)
    click.echo(f"✅ Queue {definition.id} is valid")
    click.echo(f"   Commands: {len(graph)}")
    click.echo(f"   Groups: {len(plan)}")


@cli.command()
@click.argument('queue_file', type=click.Path(exists=True))
@click.option('--json', 'as_json', is_flag=True, help='Print the plan as JSON')
def plan(queue_file: str, as_json: bool):
    """Show the execution plan of a queue definition"""
    try:
        definition = load_queue_definition(queue_file)
        graph = definition.validate_graph()
    except StaffelError as e:
        click.echo(f"❌ {e}")
        sys.exit(1)

    groups = ExecutionPlanner().plan(graph)
    if as_json:
        click.echo(json.dumps({
            "queue_id": definition.id,
            "groups": ExecutionPlanner.describe(groups),
        }, indent=2))
        return

    table = Table(title=f"Execution plan: {definition.name or definition.id}")
    table.add_column("Group", justify="right")
    table.add_column("Mode")
    table.add_column("Commands")
    for index, group in enumerate(groups):
        table.add_row(str(index), group.kind.value, ", ".join(group.command_ids))

    Console().print(table)


@cli.command()
@click.argument('queue_file', type=click.Path(exists=True))
@click.option('--executor', 'executor_name', type=click.Choice(['simulated', 'shell']),
              default='simulated', help='Executor that runs the commands')
@click.option('--time-scale', default=1.0, type=float,
              help='Scale simulated command durations (simulated executor)')
@click.option('--retries', default=0, type=int, help='Retry failed commands up to N times')
@click.option('--max-concurrent', type=int, help='Override max concurrent commands per parallel batch')
@click.option('--stop-on-error', is_flag=True, help='Stop the queue at the first failed command')
@click.option('--target', 'targets', multiple=True, help='Target description entry KEY=VALUE')
@click.option('--json', 'as_json', is_flag=True, help='Print the result as JSON')
@click.pass_obj
def run(
    config: StaffelConfig,
    queue_file: str,
    executor_name: str,
    time_scale: float,
    retries: int,
    max_concurrent: Optional[int],
    stop_on_error: bool,
    targets: Tuple[str, ...],
    as_json: bool,
):
    """Run a queue definition file"""
    target = _parse_targets(targets)
    if executor_name == 'shell':
        executor: CommandExecutor = ShellExecutor()
    else:
        executor = SimulatedExecutor(time_scale=time_scale)
    logger.debug(f"Running {queue_file} with {executor.name}")

    try:
        definition = load_queue_definition(queue_file)
        exit_code = asyncio.run(_run_queue(
            config, definition, executor, target, retries, max_concurrent, stop_on_error, as_json
        ))
    except StaffelError as e:
        click.echo(f"❌ Queue execution failed: {e}")
        sys.exit(1)

    sys.exit(exit_code)


def _parse_targets(targets: Tuple[str, ...]) -> Dict[str, Any]:
    target: Dict[str, Any] = {}
    for entry in targets:
        key, separator, value = entry.partition('=')
        if not separator or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got '{entry}'", param_hint='--target')
        target[key] = value
    return target


def _queue_options(
    config: StaffelConfig,
    definition: QueueDefinition,
    max_concurrent: Optional[int],
    stop_on_error: bool,
) -> QueueOptions:
    options = definition.options or config.default_queue_options()
    update: Dict[str, Any] = {}
    if max_concurrent is not None:
        if max_concurrent < 1:
            raise click.BadParameter("must be at least 1", param_hint='--max-concurrent')
        update['max_concurrent'] = max_concurrent
    if stop_on_error:
        update['stop_on_error'] = True
    return options.model_copy(update=update) if update else options


async def _run_queue(
    config: StaffelConfig,
    definition: QueueDefinition,
    executor: CommandExecutor,
    target: Dict[str, Any],
    retries: int,
    max_concurrent: Optional[int],
    stop_on_error: bool,
    as_json: bool,
) -> int:
    manager = QueueLifecycleManager(executor, sinks=[LoggingEventSink()], config=config)
    options = _queue_options(config, definition, max_concurrent, stop_on_error)
    queue = manager.create_queue(definition.id, definition.commands, options)

    if not as_json:
        click.echo(f"🚀 Executing queue: {definition.name or queue.id}")
        click.echo(f"   Commands: {queue.total_steps}")

    result = await manager.execute(queue.id, target)

    # Retries are caller-driven: back off between attempts, never loop forever
    policy = queue.options.retry_policy
    attempt = 0
    while queue.status == QueueStatus.FAILED and queue.execution.failed_ids and attempt < retries:
        delay = policy.delay_for(attempt)
        if not as_json:
            click.echo(
                f"🔁 Retrying {len(queue.execution.failed_ids)} failed commands "
                f"in {delay:.1f}s (attempt {attempt + 1}/{retries})"
            )
        await asyncio.sleep(delay)
        result = await manager.retry_failed(queue.id, target)
        attempt += 1

    report = manager.status(queue.id)

    if as_json:
        click.echo(json.dumps({
            "queue_id": queue.id,
            "status": report.status.value,
            "report": report.model_dump(mode="json"),
            "last_run": result.model_dump(mode="json"),
            "results": [outcome.model_dump(mode="json") for outcome in queue.execution.results],
        }, indent=2, default=str))
    else:
        _display_results(manager, queue.id)

    return 0 if report.status == QueueStatus.COMPLETED else 1


def _display_results(manager: QueueLifecycleManager, queue_id: str):
    """Display per-command results in a consistent format"""
    queue = manager.get_queue(queue_id)
    report = manager.status(queue_id)

    last_outcome = {outcome.command_id: outcome for outcome in queue.execution.results}

    if report.status == QueueStatus.COMPLETED:
        click.echo("\n✅ Queue completed!")
    else:
        click.echo(f"\n❌ Queue {report.status.value}")

    for command in queue.commands:
        command_id = command.command_id
        outcome = last_outcome.get(command_id)
        if command_id in queue.execution.completed_ids:
            click.echo(f"   ✅ {command_id}: completed")
        elif command_id in queue.execution.failed_ids:
            click.echo(f"   ❌ {command_id}: failed")
            if outcome is not None and outcome.error:
                click.echo(f"      Error: {outcome.error}")
        else:
            click.echo(f"   ⏭️  {command_id}: not run")

    click.echo(
        f"\n   Completed {report.completed_steps}/{report.total_steps}, "
        f"failed {report.failed_steps}, retries {report.retry_count}"
    )


def main():
    """Main CLI entry point"""
    try:
        cli()
    except KeyboardInterrupt:
        click.echo("\n⚠️  Interrupted by user")
        sys.exit(130)


if __name__ == '__main__':
    main()
