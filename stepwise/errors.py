"""Exception hierarchy for stepwise."""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from .contracts import ValidationIssue, WorkflowExecution


class StepwiseError(Exception):
    """Base error for stepwise."""

    code = "STEPWISE_ERROR"


# Definition errors -------------------------------------------------------


class WorkflowValidationError(StepwiseError):
    """A workflow definition failed structural validation."""

    code = "VALIDATION_ERROR"

    def __init__(self, errors: List["ValidationIssue"]):
        self.errors = errors
        summary = "; ".join(issue.message for issue in errors)
        super().__init__(f"Invalid workflow structure: {summary}")


# Precondition errors -----------------------------------------------------


class WorkflowNotFoundError(StepwiseError):
    code = "NOT_FOUND"

    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow not found: {workflow_id}")


class ExecutionNotFoundError(StepwiseError):
    code = "NOT_FOUND"

    def __init__(self, execution_id: str):
        self.execution_id = execution_id
        super().__init__(f"Execution not found: {execution_id}")


class AccessDeniedError(StepwiseError):
    """The caller does not own the requested resource."""

    code = "ACCESS_DENIED"


class InactiveWorkflowError(StepwiseError):
    code = "WORKFLOW_INACTIVE"

    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Cannot execute inactive workflow: {workflow_id}")


class InvalidExecutionStateError(StepwiseError):
    """The execution is not in a state that allows the requested transition."""

    code = "INVALID_STATE"


# Runtime step errors -----------------------------------------------------


class StepConfigurationError(StepwiseError):
    """A step is missing a field its handler requires."""

    code = "STEP_CONFIGURATION"


class StepNotFoundError(StepwiseError):
    code = "STEP_NOT_FOUND"

    def __init__(self, step_id: str):
        self.step_id = step_id
        super().__init__(f"Step not found: {step_id}")


class ApprovalSuspendError(StepwiseError):
    """An approval gate was reached where the run cannot be suspended."""

    code = "APPROVAL_NOT_RESUMABLE"


class StepExecutionError(StepwiseError):
    """Wraps a handler failure with the id of the step that raised it."""

    code = "EXECUTION_ERROR"

    def __init__(self, step_id: str, cause: BaseException):
        self.step_id = step_id
        self.cause = cause
        super().__init__(str(cause) or type(cause).__name__)


class WorkflowExecutionError(StepwiseError):
    """Raised by the orchestrator after a run has been marked failed."""

    code = "EXECUTION_ERROR"

    def __init__(self, execution: "WorkflowExecution", message: Optional[str] = None):
        self.execution = execution
        if message is None and execution.error is not None:
            message = execution.error.message
        super().__init__(message or "Workflow execution failed")
