#!/usr/bin/env python3
"""
Lifecycle Control CLI - Command Line Interface for the Lifecycle Planner.

Provides commands for classifying identity transitions, building forward
provisioning plans, restoring access after a reversed leaver, reverting
native changes and inspecting the lifecycle configuration.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..engine import AccountSnapshotStore, LifecycleConfigStore
from ..exceptions import ConfigurationMissing
from ..ingestion import SnapshotLoader
from ..models import AccountOperation, LifecycleCategory, ProvisioningPlan
from ..planning import plan_summary
from ..service import LifecycleService

logger = logging.getLogger(__name__)

# Rich console for pretty output
console = Console()

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class LifecycleController:
    """Main controller for Lifecycle Planner operations."""

    def __init__(self, config_path: Optional[str] = None, snapshot_file: Optional[str] = None):
        """Initialize the lifecycle controller."""
        self.config_path = Path(config_path) if config_path else None
        self.config_store = LifecycleConfigStore(self.config_path)
        self.snapshots = AccountSnapshotStore(snapshot_file) if snapshot_file else None
        self.service = LifecycleService(self.config_store, snapshots=self.snapshots)
        self.loader = SnapshotLoader()


@click.group()
@click.option('--config', '-c', help='Path to lifecycle configuration file')
@click.option('--snapshots', help='Path to the account snapshot history (JSON)')
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, config, snapshots, verbose):
    """Lifecycle Planner Control CLI - Identity Lifecycle Classification and Planning"""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT)
    ctx.ensure_object(dict)
    ctx.obj['controller'] = LifecycleController(config, snapshots)


@cli.command()
@click.argument('files', nargs=-1, required=True, type=click.Path(exists=True))
@click.option('--plan/--no-plan', 'with_plan', default=False, help='Also build the forward plan')
@click.option('--application', '-a', help='Restrict the plan to one application')
@click.option('--json', 'as_json', is_flag=True, help='Print the plan as JSON')
@click.pass_context
def classify(ctx, files, with_plan, application, as_json):
    """Classify a transition from PREVIOUS and CURRENT snapshot files.

    A single file is read as a transition document with 'previous' and
    'current' snapshots.
    """
    controller = ctx.obj['controller']

    try:
        if len(files) == 1:
            previous, current = controller.loader.load_transition(Path(files[0]))
        elif len(files) == 2:
            previous = controller.loader.load_identity(Path(files[0]))
            current = controller.loader.load_identity(Path(files[1]))
        else:
            raise click.UsageError("Expected a transition file or PREVIOUS and CURRENT files")

        category = controller.service.classify(previous, current)
        if category is None:
            console.print(f"[yellow]No lifecycle event for {current.name}[/yellow]")
        else:
            console.print(f"[green]{current.name}: {category.value}[/green]")

        if with_plan and category is not None:
            plan = controller.service.build_forward_plan(category, current, application)
            display_plan(plan, as_json)

    except click.UsageError:
        raise
    except Exception as e:
        console.print(f"[red]Error classifying transition: {e}[/red]")
        logger.exception("Classification failed")
        ctx.exit(1)


@cli.command()
@click.argument('category', type=click.Choice([c.value for c in LifecycleCategory], case_sensitive=False))
@click.argument('identity_file', type=click.Path(exists=True))
@click.option('--application', '-a', help='Restrict the plan to one application')
@click.option('--json', 'as_json', is_flag=True, help='Print the plan as JSON')
@click.pass_context
def plan(ctx, category, identity_file, application, as_json):
    """Build the forward plan for CATEGORY from an identity snapshot file."""
    controller = ctx.obj['controller']

    try:
        if application:
            controller.config_store.require_birthright_rule(application)
        identity = controller.loader.load_identity(Path(identity_file))
        result = controller.service.build_forward_plan(LifecycleCategory(category.upper()), identity, application)
        display_plan(result, as_json)

    except ConfigurationMissing as e:
        console.print(f"[red]{e}[/red]")
        ctx.exit(2)
    except Exception as e:
        console.print(f"[red]Error building plan: {e}[/red]")
        logger.exception("Plan building failed")
        ctx.exit(1)


@cli.command()
@click.argument('plan_file', type=click.Path(exists=True))
@click.option('--application', '-a', required=True, help='Application whose access is restored')
@click.option('--identity', 'identity_file', type=click.Path(exists=True), help='Current identity snapshot file')
@click.option('--json', 'as_json', is_flag=True, help='Print the plan as JSON')
@click.pass_context
def restore(ctx, plan_file, application, identity_file, as_json):
    """Build the restoration plan that reverses a historical leaver plan."""
    controller = ctx.obj['controller']

    try:
        historical_plan = controller.loader.load_plan(Path(plan_file))
        identity = controller.loader.load_identity(Path(identity_file)) if identity_file else None
        result = controller.service.build_restoration_plan(historical_plan, application, identity)
        display_plan(result, as_json)

    except Exception as e:
        console.print(f"[red]Error building restoration plan: {e}[/red]")
        logger.exception("Restoration failed")
        ctx.exit(1)


@cli.command(name='native-change')
@click.argument('change_file', type=click.Path(exists=True))
@click.option('--privileged-only', is_flag=True, help='Only revert privileged values')
@click.option('--json', 'as_json', is_flag=True, help='Print the plan as JSON')
@click.pass_context
def native_change(ctx, change_file, privileged_only, as_json):
    """Detect a native account change and build the plan that reverts it.

    CHANGE_FILE holds identity, application, native_identity, operation and
    the account's old and new attributes.
    """
    controller = ctx.obj['controller']

    try:
        document = controller.loader.load_document(Path(change_file))
        pending = [controller.loader.load_plan(p) for p in document.get('pending_plans') or []]
        detection = controller.service.detect_native_change(
            document['identity'],
            document['application'],
            document['native_identity'],
            document.get('old'),
            document.get('new'),
            AccountOperation(document.get('operation', 'Modify')),
            pending,
        )
        if detection is None:
            console.print("[yellow]No native change detected[/yellow]")
            return

        result = controller.service.build_native_change_plan(detection.identity, [detection], privileged_only)
        display_plan(result, as_json)

    except Exception as e:
        console.print(f"[red]Error processing native change: {e}[/red]")
        logger.exception("Native change processing failed")
        ctx.exit(1)


@cli.command(name='show-config')
@click.pass_context
def show_config(ctx):
    """Show what the lifecycle configuration defines."""
    controller = ctx.obj['controller']

    try:
        summary = controller.config_store.get_summary()
    except Exception as e:
        console.print(f"[red]Error loading configuration: {e}[/red]")
        ctx.exit(1)

    console.print(Panel.fit(f"[bold blue]Lifecycle configuration[/bold blue]\n{summary['config_path']}"))
    console.print(f"Persona mode: {summary['persona_enabled']}")
    if summary['disabled_features']:
        console.print(f"Disabled features: {', '.join(summary['disabled_features'])}")

    table = Table(title="Trigger Processes")
    table.add_column("Process", style="cyan")
    table.add_column("Definitions", style="magenta")
    for process_key, count in summary['processes'].items():
        table.add_row(process_key, str(count))
    console.print(table)

    console.print(f"Populations: {', '.join(summary['populations']) or 'none'}")
    console.print(f"Roles: {', '.join(summary['roles']) or 'none'}")
    console.print(f"Applications: {', '.join(summary['applications']) or 'none'}")


def display_plan(plan: Optional[ProvisioningPlan], as_json: bool = False):
    """Display a provisioning plan."""
    if plan is None:
        console.print("[yellow]Nothing to provision[/yellow]")
        return

    if as_json:
        click.echo(plan.model_dump_json(indent=2))
        return

    summary: Dict[str, Any] = plan_summary(plan)
    console.print(
        f"[bold blue]{summary['request_type'] or 'Plan'}[/bold blue] for {summary['identity']} "
        f"({summary['account_requests']} account requests)"
    )

    table = Table(title="Account Requests")
    table.add_column("Application", style="cyan")
    table.add_column("Native Identity", style="green")
    table.add_column("Operation", style="yellow")
    table.add_column("Attribute Requests", style="magenta")

    for request in plan.account_requests:
        attributes = "\n".join(
            f"{req.operation.value} {req.name}={req.value}" for req in request.attribute_requests
        )
        table.add_row(
            request.application,
            request.native_identity or "(to be named)",
            request.operation.value,
            attributes or "-",
        )

    console.print(table)


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
