"""Execute and management boundary for stepwise workflows.

:class:`WorkflowService` is what an HTTP layer or the CLI talks to. It owns
the precondition checks (existence, ownership, active flag) that must pass
before an execution record is created, and it converts orchestrator failures
into queryable failed executions instead of raw exceptions.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, Optional, Union

from pydantic import ValidationError

from .agents import AgentService
from .config import StepwiseConfig, load_config
from .constants import EXECUTION_TIMEOUT
from .contracts import (
    CreateWorkflowRequest,
    ExecuteRequest,
    ExecuteResponse,
    ExecutionEvent,
    ExecutionStatus,
    WorkflowDefinition,
    WorkflowExecution,
    WorkflowPage,
    WorkflowStats,
    utcnow,
)
from .errors import (
    AccessDeniedError,
    ExecutionNotFoundError,
    InactiveWorkflowError,
    WorkflowExecutionError,
    WorkflowNotFoundError,
    WorkflowValidationError,
)
from .orchestrator import WorkflowOrchestrator
from .persistence import WorkflowRepository, get_repository
from .streaming import InMemoryEventChannel, stream_execution
from .validation import issues_from_pydantic, validate_definition

logger = logging.getLogger(__name__)


class WorkflowService:
    """Create, list and run workflows on behalf of an owner."""

    def __init__(
        self,
        repository: WorkflowRepository | None = None,
        agent_service: Optional[AgentService] = None,
        orchestrator: Optional[WorkflowOrchestrator] = None,
        config: Optional[StepwiseConfig] = None,
    ) -> None:
        self._config = config or load_config()
        self._repository = repository or get_repository(config=self._config)
        self._orchestrator = orchestrator or WorkflowOrchestrator(
            agent_service=agent_service,
            repository=self._repository,
            settings=self._config.engine,
        )

    @property
    def repository(self) -> WorkflowRepository:
        return self._repository

    # ------------------------------------------------------------------
    # Workflow management
    async def create_workflow(
        self, owner: str, request: Union[CreateWorkflowRequest, Dict[str, Any]]
    ) -> WorkflowDefinition:
        """Validate and store a new workflow owned by ``owner``.

        Raises:
            WorkflowValidationError: With one issue per structural problem.
        """

        if not isinstance(request, CreateWorkflowRequest):
            try:
                request = CreateWorkflowRequest.model_validate(request)
            except ValidationError as exc:
                raise WorkflowValidationError(issues_from_pydantic(exc)) from exc

        issues = validate_definition(request)
        if issues:
            logger.info(f"Rejected workflow {request.name!r} with {len(issues)} issue(s)")
            raise WorkflowValidationError(issues)

        now = utcnow()
        workflow = WorkflowDefinition(
            name=request.name,
            description=request.description,
            steps=request.steps,
            triggers=request.triggers,
            owner=owner,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        await self._repository.create_workflow(workflow)
        logger.info(f"Workflow created: {workflow.id} for owner {owner}")
        return workflow

    async def get_workflow(self, owner: str, workflow_id: str) -> WorkflowDefinition:
        workflow = await self._repository.get_workflow(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        if workflow.owner != owner:
            raise AccessDeniedError("Access denied: You do not own this workflow")
        return workflow

    async def list_workflows(
        self,
        owner: str,
        active: Optional[bool] = None,
        search: Optional[str] = None,
        cursor: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> WorkflowPage:
        """Return one page of the owner's workflows, newest first.

        ``cursor`` is the id of the last workflow on the previous page; an
        unknown cursor starts from the beginning.
        """

        settings = self._config.service
        limit = limit or settings.default_page_size
        if not 1 <= limit <= settings.max_page_size:
            raise ValueError(f"limit must be between 1 and {settings.max_page_size}")

        workflows = await self._repository.list_workflows(owner=owner)
        if active is not None:
            workflows = [wf for wf in workflows if wf.is_active == active]
        if search:
            needle = search.lower()
            workflows = [
                wf
                for wf in workflows
                if needle in wf.name.lower()
                or (wf.description and needle in wf.description.lower())
            ]
        workflows.sort(key=lambda wf: wf.created_at, reverse=True)

        start = 0
        if cursor:
            ids = [wf.id for wf in workflows]
            if cursor in ids:
                start = ids.index(cursor) + 1

        page = workflows[start : start + limit]
        has_more = start + limit < len(workflows)
        return WorkflowPage(
            items=page,
            next_cursor=page[-1].id if has_more and page else None,
            has_more=has_more,
            limit=limit,
        )

    async def set_active(
        self, owner: str, workflow_id: str, active: bool
    ) -> WorkflowDefinition:
        """Enable or disable a workflow; workflows are never hard-deleted."""

        workflow = await self.get_workflow(owner, workflow_id)
        updated = workflow.model_copy(update={"is_active": active, "updated_at": utcnow()})
        await self._repository.update_workflow(updated)
        logger.info(f"Workflow {workflow_id} is_active set to {active}")
        return updated

    # ------------------------------------------------------------------
    # Execution
    async def _runnable_workflow(self, owner: str, workflow_id: str) -> WorkflowDefinition:
        workflow = await self.get_workflow(owner, workflow_id)
        if not workflow.is_active:
            raise InactiveWorkflowError(workflow_id)
        return workflow

    async def _start_execution(
        self, workflow: WorkflowDefinition, owner: str, request: ExecuteRequest
    ) -> WorkflowExecution:
        execution = WorkflowExecution.for_workflow(
            workflow, owner=owner, input=request.input, metadata=request.metadata
        )
        await self._repository.save_execution(execution)
        logger.info(
            f"Workflow execution started: execution_id={execution.id} "
            f"workflow_id={workflow.id} owner={owner}"
        )
        return execution

    async def _abort_on_timeout(self, execution: WorkflowExecution) -> None:
        await self._orchestrator.abort(
            execution, "Workflow execution timed out", code=EXECUTION_TIMEOUT
        )

    async def execute(
        self,
        owner: str,
        workflow_id: str,
        request: Optional[ExecuteRequest] = None,
    ) -> Union[ExecuteResponse, AsyncIterator[ExecutionEvent]]:
        """Run a workflow to completion (or suspension) and summarise it.

        Failed runs are returned, not raised: the execution carries the
        error and the step results recorded before the failure. With
        ``request.stream`` set, an async iterator of lifecycle events is
        returned instead (see :meth:`stream`); its execution record is
        created when iteration starts.
        """

        request = request or ExecuteRequest()
        workflow = await self._runnable_workflow(owner, workflow_id)
        if request.stream:
            return self._stream_events(workflow, owner, request)
        execution = await self._start_execution(workflow, owner, request)
        try:
            execution = await asyncio.wait_for(
                self._orchestrator.run(workflow, execution, auto_approve=request.auto_approve),
                self._config.service.execution_timeout_seconds,
            )
        except WorkflowExecutionError as exc:
            execution = exc.execution
        except asyncio.TimeoutError:
            logger.error(f"Workflow execution {execution.id} timed out")
            await self._abort_on_timeout(execution)

        await self._repository.save_execution(execution)
        logger.info(
            f"Workflow execution finished: execution_id={execution.id} "
            f"status={execution.status.value} steps_completed={execution.steps_completed}"
        )
        return ExecuteResponse(
            execution=execution, summary=execution.summarize(len(workflow.steps))
        )

    async def stream(
        self,
        owner: str,
        workflow_id: str,
        request: Optional[ExecuteRequest] = None,
    ) -> AsyncIterator[ExecutionEvent]:
        """Start a run and return an iterator over its lifecycle events.

        Precondition errors are raised here, before any event exists. The
        execution record is created on the first iteration, so an iterator
        that is never consumed leaves nothing behind::

            async for event in await service.stream(owner, workflow_id):
                ...
        """

        request = (request or ExecuteRequest()).model_copy(update={"stream": True})
        workflow = await self._runnable_workflow(owner, workflow_id)
        return self._stream_events(workflow, owner, request)

    async def _stream_events(
        self,
        workflow: WorkflowDefinition,
        owner: str,
        request: ExecuteRequest,
    ) -> AsyncIterator[ExecutionEvent]:
        execution = await self._start_execution(workflow, owner, request)
        channel = InMemoryEventChannel()
        task = asyncio.create_task(
            stream_execution(
                self._orchestrator,
                workflow,
                execution,
                channel,
                auto_approve=request.auto_approve,
                timeout=self._config.service.execution_timeout_seconds,
                on_timeout=self._abort_on_timeout,
            )
        )
        try:
            async for event in channel:
                yield event
        finally:
            await task
            await self._repository.save_execution(execution)

    async def resume(
        self,
        owner: str,
        execution_id: str,
        approved: bool,
        comment: Optional[str] = None,
    ) -> ExecuteResponse:
        """Decide the pending approval gate of a waiting execution."""

        execution = await self.get_execution(owner, execution_id)
        workflow = await self._repository.get_workflow(execution.workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(execution.workflow_id)
        try:
            execution = await self._orchestrator.resume(
                workflow, execution, approved, approver=owner, comment=comment
            )
        except WorkflowExecutionError as exc:
            execution = exc.execution

        await self._repository.save_execution(execution)
        return ExecuteResponse(
            execution=execution, summary=execution.summarize(len(workflow.steps))
        )

    async def get_execution(self, owner: str, execution_id: str) -> WorkflowExecution:
        execution = await self._repository.get_execution(execution_id)
        if execution is None:
            raise ExecutionNotFoundError(execution_id)
        if execution.owner != owner:
            raise AccessDeniedError("Access denied: You do not own this execution")
        return execution

    async def list_executions(
        self,
        owner: str,
        workflow_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
        limit: Optional[int] = None,
    ) -> list[WorkflowExecution]:
        limit = min(limit or self._config.service.default_page_size, self._config.service.max_page_size)
        executions = await self._repository.list_executions(
            workflow_id=workflow_id, owner=owner, status=status
        )
        return executions[:limit]

    async def workflow_stats(self, owner: str) -> WorkflowStats:
        """Aggregate workflow and execution counts for ``owner``."""

        workflows = await self._repository.list_workflows(owner=owner)
        executions = await self._repository.list_executions(owner=owner)

        completed = [e for e in executions if e.status == ExecutionStatus.COMPLETED]
        failed = [e for e in executions if e.status == ExecutionStatus.FAILED]
        running = [e for e in executions if not e.is_terminal]
        durations = [e.execution_time_ms for e in completed if e.execution_time_ms is not None]

        return WorkflowStats(
            total_workflows=len(workflows),
            active_workflows=sum(1 for wf in workflows if wf.is_active),
            total_executions=len(executions),
            running_executions=len(running),
            completed_executions=len(completed),
            failed_executions=len(failed),
            success_rate=len(completed) / len(executions) if executions else 0.0,
            average_execution_time=sum(durations) / len(durations) if durations else 0.0,
        )
