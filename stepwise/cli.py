"""Command line interface for managing and running stepwise workflows."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import NoReturn, Optional

import typer

from stepwise.cli_utils.definitions import (
    _format_execution_line,
    _format_workflow_line,
    _load_definition_file,
    _parse_input,
)
from stepwise.config import load_config
from stepwise.contracts import ExecuteRequest, ExecutionStatus
from stepwise.errors import StepwiseError, WorkflowValidationError
from stepwise.persistence import get_repository
from stepwise.service import WorkflowService
from stepwise.streaming import encode_sse

app = typer.Typer(help="CLI for stepwise workflows")

# Command groups
workflow_app = typer.Typer(help="Commands for managing and running workflows")
execution_app = typer.Typer(help="Commands for inspecting and resuming executions")

app.add_typer(workflow_app, name="workflow")
app.add_typer(execution_app, name="execution")

OwnerOption = typer.Option(
    "local", "--owner", envvar="STEPWISE_OWNER", help="Owner the command acts for"
)


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Logging level (defaults to the configured level)"
    ),
) -> None:
    """stepwise CLI entry point."""
    level = log_level or load_config().log_level
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO))


def _service() -> WorkflowService:
    return WorkflowService(repository=get_repository())


def _fail(message: str) -> NoReturn:
    typer.secho(message, fg=typer.colors.RED)
    raise typer.Exit(code=1)


def _echo_json(data: object) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


@workflow_app.command("create")
def workflow_create(definition_path: Path, owner: str = OwnerOption) -> None:
    """
    Create a workflow from a YAML or JSON definition file.

    Example:
        stepwise workflow create ./research.yaml --owner alice
    """
    try:
        definition = _load_definition_file(definition_path)
    except (OSError, ValueError) as exc:
        _fail(f"Could not read {definition_path}: {exc}")

    try:
        workflow = asyncio.run(_service().create_workflow(owner, definition))
    except WorkflowValidationError as exc:
        typer.secho("Invalid workflow structure:", fg=typer.colors.RED)
        for issue in exc.errors:
            typer.echo(f"- {issue.field}: {issue.message}")
        raise typer.Exit(code=1)
    typer.echo(f"Workflow created: {workflow.id}")


@workflow_app.command("list")
def workflow_list(
    owner: str = OwnerOption,
    active: Optional[bool] = typer.Option(None, "--active/--inactive"),
    search: Optional[str] = None,
) -> None:
    """List the owner's workflows, newest first."""
    page = asyncio.run(
        _service().list_workflows(owner, active=active, search=search)
    )
    if not page.items:
        typer.echo("No workflows found")
        return
    for workflow in page.items:
        typer.echo(_format_workflow_line(workflow))
    if page.has_more:
        typer.echo(f"More results available after {page.next_cursor}")


@workflow_app.command("show")
def workflow_show(workflow_id: str, owner: str = OwnerOption) -> None:
    """Show a workflow definition."""
    try:
        workflow = asyncio.run(_service().get_workflow(owner, workflow_id))
    except StepwiseError as exc:
        _fail(str(exc))
    typer.echo(f"Workflow {workflow.id}: {workflow.name}")
    if workflow.description:
        typer.echo(workflow.description)
    typer.echo(f"Active: {workflow.is_active}")
    for step in workflow.steps:
        typer.echo(f"- {step.id} [{step.type}] {step.name}")


def _set_active(workflow_id: str, owner: str, active: bool) -> None:
    try:
        workflow = asyncio.run(_service().set_active(owner, workflow_id, active))
    except StepwiseError as exc:
        _fail(str(exc))
    typer.echo(f"Workflow {workflow.id} {'enabled' if active else 'disabled'}")


@workflow_app.command("enable")
def workflow_enable(workflow_id: str, owner: str = OwnerOption) -> None:
    """Mark a workflow active so it can be executed."""
    _set_active(workflow_id, owner, True)


@workflow_app.command("disable")
def workflow_disable(workflow_id: str, owner: str = OwnerOption) -> None:
    """Mark a workflow inactive; existing executions are kept."""
    _set_active(workflow_id, owner, False)


async def _stream(service: WorkflowService, owner: str, workflow_id: str, request: ExecuteRequest) -> None:
    async for event in await service.stream(owner, workflow_id, request):
        typer.echo(encode_sse(event), nl=False)


@workflow_app.command("run")
def workflow_run(
    workflow_id: str,
    owner: str = OwnerOption,
    input: Optional[str] = typer.Option(None, "--input", help="JSON object passed as run input"),
    auto_approve: bool = typer.Option(False, "--auto-approve"),
    stream: bool = typer.Option(False, "--stream", help="Print lifecycle events as SSE frames"),
) -> None:
    """
    Execute a workflow and print the result.

    Example:
        stepwise workflow run 3f2a... --input '{"topic": "llms"}' --auto-approve
    """
    try:
        payload = _parse_input(input)
    except ValueError as exc:
        _fail(f"Invalid input: {exc}")

    request = ExecuteRequest(input=payload, auto_approve=auto_approve, stream=stream)
    service = _service()
    try:
        if stream:
            asyncio.run(_stream(service, owner, workflow_id, request))
            return
        response = asyncio.run(service.execute(owner, workflow_id, request))
    except StepwiseError as exc:
        _fail(str(exc))

    _echo_json(response.to_wire())
    if response.execution.status == ExecutionStatus.FAILED:
        raise typer.Exit(code=1)


@execution_app.command("list")
def execution_list(
    owner: str = OwnerOption,
    workflow: Optional[str] = typer.Option(None, "--workflow"),
    status: Optional[ExecutionStatus] = typer.Option(None, "--status"),
) -> None:
    """List executions, newest first."""
    executions = asyncio.run(
        _service().list_executions(owner, workflow_id=workflow, status=status)
    )
    if not executions:
        typer.echo("No executions found")
        return
    for execution in executions:
        typer.echo(_format_execution_line(execution))


@execution_app.command("show")
def execution_show(execution_id: str, owner: str = OwnerOption) -> None:
    """Show an execution with its step results."""
    try:
        execution = asyncio.run(_service().get_execution(owner, execution_id))
    except StepwiseError as exc:
        _fail(str(exc))
    typer.echo(f"Execution {execution.id}: {execution.status.value}")
    for step_id, result in execution.step_results.items():
        typer.echo(
            f"- {step_id}: {result.status.value}"
            f" ({result.started_at} -> {result.completed_at})"
        )
    if execution.awaiting_approval:
        typer.echo(f"Awaiting approval at step {execution.awaiting_approval}")
    if execution.error:
        typer.echo(
            f"Error [{execution.error.code}] at {execution.error.step_id}: "
            f"{execution.error.message}"
        )


def _decide(execution_id: str, owner: str, approved: bool, comment: Optional[str]) -> None:
    try:
        response = asyncio.run(
            _service().resume(owner, execution_id, approved, comment=comment)
        )
    except StepwiseError as exc:
        _fail(str(exc))
    typer.echo(f"Execution {response.execution.id}: {response.execution.status.value}")


@execution_app.command("approve")
def execution_approve(
    execution_id: str,
    owner: str = OwnerOption,
    comment: Optional[str] = typer.Option(None, "--comment"),
) -> None:
    """Approve the pending gate of a waiting execution and continue it."""
    _decide(execution_id, owner, True, comment)


@execution_app.command("reject")
def execution_reject(
    execution_id: str,
    owner: str = OwnerOption,
    comment: Optional[str] = typer.Option(None, "--comment"),
) -> None:
    """Reject the pending gate of a waiting execution; the run fails."""
    _decide(execution_id, owner, False, comment)


@app.command("stats")
def stats(owner: str = OwnerOption) -> None:
    """Print workflow and execution counts for an owner."""
    result = asyncio.run(_service().workflow_stats(owner))
    _echo_json(result.to_wire())


if __name__ == "__main__":
    app()
