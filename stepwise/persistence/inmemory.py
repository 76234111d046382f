"""In-memory implementation of the workflow repository."""

from __future__ import annotations

from typing import Dict, Optional

from ..contracts import ExecutionStatus, WorkflowDefinition, WorkflowExecution
from .repository import WorkflowRepository


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store workflows and executions in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Records are copied on the way in and
    out so callers never share mutable state with the store.
    """

    def __init__(self) -> None:
        self._workflows: Dict[str, WorkflowDefinition] = {}
        self._executions: Dict[str, WorkflowExecution] = {}

    # ------------------------------------------------------------------
    async def create_workflow(self, workflow: WorkflowDefinition) -> None:
        if workflow.id in self._workflows:
            raise ValueError(f"Workflow {workflow.id} already exists")
        self._workflows[workflow.id] = workflow.model_copy(deep=True)

    async def get_workflow(self, workflow_id: str) -> WorkflowDefinition | None:
        wf = self._workflows.get(workflow_id)
        return wf.model_copy(deep=True) if wf else None

    async def list_workflows(
        self, owner: Optional[str] = None
    ) -> list[WorkflowDefinition]:
        return [
            wf.model_copy(deep=True)
            for wf in self._workflows.values()
            if owner is None or wf.owner == owner
        ]

    async def update_workflow(self, workflow: WorkflowDefinition) -> None:
        if workflow.id in self._workflows:
            self._workflows[workflow.id] = workflow.model_copy(deep=True)

    async def save_execution(self, execution: WorkflowExecution) -> None:
        self._executions[execution.id] = execution.model_copy(deep=True)

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        execution = self._executions.get(execution_id)
        return execution.model_copy(deep=True) if execution else None

    async def list_executions(
        self,
        workflow_id: Optional[str] = None,
        owner: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
    ) -> list[WorkflowExecution]:
        matches = [
            execution.model_copy(deep=True)
            for execution in self._executions.values()
            if (workflow_id is None or execution.workflow_id == workflow_id)
            and (owner is None or execution.owner == owner)
            and (status is None or execution.status == status)
        ]
        matches.sort(key=lambda e: e.started_at, reverse=True)
        return matches
