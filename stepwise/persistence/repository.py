"""Repository abstraction for workflow and execution persistence."""

from __future__ import annotations

from typing import Optional, Protocol

from ..contracts import ExecutionStatus, WorkflowDefinition, WorkflowExecution


class WorkflowRepository(Protocol):
    """Protocol for workflow state persistence backends."""

    async def create_workflow(self, workflow: WorkflowDefinition) -> None:
        """Persist a newly created workflow definition."""

    async def get_workflow(self, workflow_id: str) -> WorkflowDefinition | None:
        """Retrieve a workflow definition by id."""

    async def list_workflows(
        self, owner: Optional[str] = None
    ) -> list[WorkflowDefinition]:
        """Return all workflows, optionally restricted to ``owner``."""

    async def update_workflow(self, workflow: WorkflowDefinition) -> None:
        """Replace the stored workflow (only mutable fields change)."""

    async def save_execution(self, execution: WorkflowExecution) -> None:
        """Insert or replace the execution record."""

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        """Retrieve an execution by id."""

    async def list_executions(
        self,
        workflow_id: Optional[str] = None,
        owner: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
    ) -> list[WorkflowExecution]:
        """Return executions, newest first, filtered by the given fields."""
