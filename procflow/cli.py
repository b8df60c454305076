"""Command line interface for authoring and running procflow processes."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import typer

from procflow.config import load_config
from procflow.contracts import FieldType, FormField, ProcessDefinition, ProcessKind
from procflow.definitions import AuthoringResult
from procflow.engine import flatten_with_report, inadmissible_children
from procflow.engine.flattener import FlattenResult
from procflow.engine.machine import TransitionResult
from procflow.forms import check_submission, effective_fields, parse_assignments
from procflow.persistence import get_repository
from procflow.workspace import Workspace

app = typer.Typer(help="CLI for procflow process templates and executions")

# Command groups
definition_app = typer.Typer(help="Commands for authoring process definitions")
execution_app = typer.Typer(help="Commands for running composite processes")

app.add_typer(definition_app, name="definition")
app.add_typer(execution_app, name="execution")


@app.callback()
def main() -> None:
    """procflow CLI entry point."""
    config = load_config()
    logging.basicConfig(level=config.log_level)


def _open_workspace() -> Workspace:
    """Load the stored state and save it back after every change."""
    repo = get_repository()
    state = asyncio.run(repo.load_state())
    workspace = Workspace.from_persisted(state)
    workspace.on_change(lambda document: asyncio.run(repo.save_state(document)))
    return workspace


def _fail(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED)
    raise typer.Exit(code=1)


def _authored(result: AuthoringResult, message: str) -> None:
    if not result.ok:
        _fail(f"Refused: {result.issue}")
    typer.echo(message.format(definition=result.definition))


def _transitioned(result: TransitionResult) -> None:
    if not result.ok:
        _fail(f"Refused: {result.error}")
    execution = result.execution
    typer.echo(
        f"Execution {execution.id}: {execution.status.value} at step {execution.current_step_index}"
    )


def _print_steps(result: FlattenResult, current: Optional[int] = None) -> None:
    for step in result.steps:
        marker = ">" if step.index == current else " "
        progress = ", ".join(
            f"{level.current.name} {n}/{m}"
            for level in step.hierarchy_path
            for n, m in [level.progress()]
        )
        typer.echo(f"{marker} {step.index}: {step.breadcrumb()} [{step.kind.value}] ({progress})")
    for gap in result.gaps:
        typer.secho(
            f"  skipped {' > '.join(gap.path)}: {gap.definition_id} ({gap.reason.value})",
            fg=typer.colors.YELLOW,
        )


def _describe(definition: ProcessDefinition, workspace: Workspace) -> None:
    typer.echo(f"Definition {definition.id}: {definition.name}")
    typer.echo(f"Kind: {definition.kind.value}{' (base)' if definition.is_base else ''}")
    if definition.code:
        typer.echo(f"Code: {definition.code}")
    if definition.description:
        typer.echo(f"Description: {definition.description}")
    if definition.base_definition_id:
        source = workspace.definitions.get_definition(definition.base_definition_id)
        typer.echo(f"Derived from: {source.name if source else definition.base_definition_id}")
    for f in definition.fields:
        flags = " required" if f.required else ""
        pattern = f" /{f.validation}/" if f.validation else ""
        typer.echo(f"- field {f.name} ({f.type.value}){flags}{pattern} [{f.id}]")
    for child in definition.children:
        child_def = workspace.definitions.get_definition(child.definition_id)
        kind = child_def.kind.value if child_def else "missing"
        typer.echo(f"- child {child.display_name} -> {child.definition_id} ({kind}) [{child.id}]")


# ----------------------------------------------------------------------
# Definitions


@definition_app.command("list")
def definition_list() -> None:
    """List base and custom definitions."""
    workspace = _open_workspace()
    for definition in workspace.definitions.list_definitions():
        base = "\tbase" if definition.is_base else ""
        typer.echo(f"{definition.id}\t{definition.kind.value}\t{definition.name}{base}")


@definition_app.command("show")
def definition_show(definition_id: str) -> None:
    """Show one definition with its fields or children."""
    workspace = _open_workspace()
    definition = workspace.definitions.get_definition(definition_id)
    if definition is None:
        _fail("Definition not found")
    _describe(definition, workspace)


@definition_app.command("create")
def definition_create(
    name: str,
    description: str = typer.Option("", help="Free-text description"),
    code: Optional[str] = typer.Option(None, help="Unique alphanumeric code"),
) -> None:
    """Create a new composite process."""
    workspace = _open_workspace()
    result = workspace.definitions.create_composite(name, description=description, code=code)
    _authored(result, "Created composite {definition.id}")


@definition_app.command("derive")
def definition_derive(
    source_id: str,
    name: str,
    code: Optional[str] = typer.Option(None, help="Unique alphanumeric code"),
) -> None:
    """Derive an editable copy of a form, approval or reference definition."""
    workspace = _open_workspace()
    result = workspace.definitions.derive(source_id, name, code=code)
    _authored(result, "Derived {definition.id}")


@definition_app.command("add-field")
def definition_add_field(
    definition_id: str,
    name: str,
    label: str = typer.Option("", help="Display label"),
    field_type: FieldType = typer.Option(FieldType.TEXT, "--type", help="Value type"),
    required: bool = typer.Option(False, help="Value must be provided"),
    pattern: Optional[str] = typer.Option(None, help="Regular expression to match"),
) -> None:
    """Add a field to a custom form definition."""
    workspace = _open_workspace()
    form_field = FormField(
        name=name, label=label or name, type=field_type, required=required, validation=pattern
    )
    result = workspace.definitions.add_field(definition_id, form_field)
    _authored(result, f"Added field {name} to {{definition.id}}")


@definition_app.command("remove-field")
def definition_remove_field(definition_id: str, field_id: str) -> None:
    """Remove a field from a custom form definition."""
    workspace = _open_workspace()
    result = workspace.definitions.remove_field(definition_id, field_id)
    _authored(result, "Updated {definition.id}")


@definition_app.command("add-child")
def definition_add_child(
    parent_id: str,
    child_id: str,
    name: Optional[str] = typer.Option(None, help="Name of the child slot"),
) -> None:
    """Append a child process to a composite."""
    workspace = _open_workspace()
    result = workspace.definitions.add_child(parent_id, child_id, name=name)
    _authored(result, f"Added {child_id} to {{definition.id}}")


@definition_app.command("remove-child")
def definition_remove_child(parent_id: str, instance_id: str) -> None:
    """Remove a child slot from a composite."""
    workspace = _open_workspace()
    result = workspace.definitions.remove_child(parent_id, instance_id)
    _authored(result, "Updated {definition.id}")


@definition_app.command("move-child")
def definition_move_child(
    parent_id: str,
    instance_id: str,
    offset: int = typer.Option(-1, help="Places to move; negative moves up"),
) -> None:
    """Reorder a child slot within a composite."""
    workspace = _open_workspace()
    result = workspace.definitions.move_child(parent_id, instance_id, offset)
    _authored(result, "Updated {definition.id}")


@definition_app.command("delete")
def definition_delete(definition_id: str) -> None:
    """Delete a custom definition."""
    workspace = _open_workspace()
    result = workspace.definitions.delete_definition(definition_id)
    _authored(result, "Deleted {definition.id}")


@definition_app.command("candidates")
def definition_candidates(parent_id: str) -> None:
    """List which definitions can be added under a composite."""
    workspace = _open_workspace()
    if parent_id not in workspace.definitions:
        _fail("Definition not found")
    blocked = inadmissible_children(parent_id, workspace.definitions.list_definitions())
    for definition in workspace.definitions.list_definitions():
        reason = blocked.get(definition.id)
        status = reason.value if reason else "ok"
        typer.echo(f"{definition.id}\t{definition.name}\t{status}")


@definition_app.command("steps")
def definition_steps(definition_id: str) -> None:
    """Preview the flattened steps of a composite."""
    workspace = _open_workspace()
    definition = workspace.definitions.get_definition(definition_id)
    if definition is None:
        _fail("Definition not found")
    if definition.kind != ProcessKind.COMPOSITE:
        _fail("Only composite definitions have steps")
    result = flatten_with_report(definition, workspace.definitions)
    if not result.steps:
        typer.echo("No executable steps")
    _print_steps(result)


# ----------------------------------------------------------------------
# Executions


@execution_app.command("start")
def execution_start(
    definition_id: str,
    name: str = typer.Option("", help="Instance name (defaults to the definition name)"),
) -> None:
    """Start running a composite process."""
    workspace = _open_workspace()
    result = workspace.start(definition_id, name)
    _transitioned(result)


@execution_app.command("list")
def execution_list() -> None:
    """List executions with their status."""
    workspace = _open_workspace()
    executions = workspace.list_executions()
    if not executions:
        typer.echo("No executions found")
        return
    for execution in executions:
        typer.echo(f"{execution.id}\t{execution.instance_name}\t{execution.status.value}")


@execution_app.command("show")
def execution_show(execution_id: str) -> None:
    """Show progress, collected data and history of an execution."""
    workspace = _open_workspace()
    execution = workspace.get_execution(execution_id)
    if execution is None:
        _fail("Execution not found")
    typer.echo(f"Execution {execution.id} ({execution.instance_name}): {execution.status.value}")
    _print_steps(workspace.steps(execution_id), current=execution.current_step_index)
    if execution.data:
        typer.echo(f"Data: {execution.data}")
    for entry in execution.history:
        suffix = f" {entry.data}" if entry.data else ""
        typer.echo(
            f"- {entry.timestamp:%Y-%m-%d %H:%M} step {entry.step_index}: {entry.action.value}{suffix}"
        )


def _form_data(
    workspace: Workspace, execution_id: str, assignments: List[str]
) -> Tuple[Dict[str, Any], Sequence[FormField]]:
    step = workspace.current_step(execution_id)
    fields = effective_fields(step.instance, step.definition) if step else ()
    try:
        return parse_assignments(assignments, fields), fields
    except ValueError as exc:
        _fail(str(exc))


@execution_app.command("submit")
def execution_submit(
    execution_id: str,
    values: Optional[List[str]] = typer.Argument(None, help="Field values as name=value"),
    skip_checks: bool = typer.Option(False, help="Submit without required/pattern checks"),
) -> None:
    """Submit the current form step."""
    workspace = _open_workspace()
    data, fields = _form_data(workspace, execution_id, values or [])
    if not skip_checks:
        issues = check_submission(fields, data)
        if issues:
            for issue in issues:
                typer.secho(f"{issue.field}: {issue.message}", fg=typer.colors.RED)
            raise typer.Exit(code=1)
    _transitioned(workspace.submit(execution_id, data))


@execution_app.command("approve")
def execution_approve(execution_id: str) -> None:
    """Approve the current approval step."""
    workspace = _open_workspace()
    _transitioned(workspace.approve(execution_id))


@execution_app.command("reject")
def execution_reject(execution_id: str) -> None:
    """Send the execution back to the previous form step."""
    workspace = _open_workspace()
    _transitioned(workspace.reject(execution_id))


@execution_app.command("complete")
def execution_complete(execution_id: str) -> None:
    """Finish the current reference step."""
    workspace = _open_workspace()
    _transitioned(workspace.complete_reference(execution_id))


@execution_app.command("edit")
def execution_edit(
    execution_id: str,
    values: List[str] = typer.Argument(..., help="Values as name=value"),
) -> None:
    """Edit collected data from the current reference step."""
    workspace = _open_workspace()
    try:
        data = parse_assignments(values)
    except ValueError as exc:
        _fail(str(exc))
    _transitioned(workspace.edit_reference(execution_id, data))


@execution_app.command("abandon")
def execution_abandon(execution_id: str) -> None:
    """Terminate an execution as rejected."""
    workspace = _open_workspace()
    _transitioned(workspace.mark_rejected(execution_id))


@execution_app.command("delete")
def execution_delete(execution_id: str) -> None:
    """Delete an execution record."""
    workspace = _open_workspace()
    if not workspace.delete_execution(execution_id):
        _fail("Execution not found")
    typer.echo(f"Deleted {execution_id}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
