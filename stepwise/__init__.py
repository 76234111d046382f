"""stepwise: validated step-graph workflows for AI agents."""

from .agents import AgentService, PydanticAIAgentService, SkippedAgentService
from .conditions import evaluate_condition
from .contracts import (
    CreateWorkflowRequest,
    ExecuteRequest,
    ExecuteResponse,
    ExecutionEvent,
    ExecutionStatus,
    WorkflowDefinition,
    WorkflowExecution,
)
from .orchestrator import WorkflowOrchestrator
from .persistence import get_repository
from .service import WorkflowService
from .validation import validate_definition

__version__ = "0.1.0"
__all__ = [
    "AgentService",
    "PydanticAIAgentService",
    "SkippedAgentService",
    "CreateWorkflowRequest",
    "ExecuteRequest",
    "ExecuteResponse",
    "ExecutionEvent",
    "ExecutionStatus",
    "WorkflowDefinition",
    "WorkflowExecution",
    "WorkflowOrchestrator",
    "WorkflowService",
    "evaluate_condition",
    "get_repository",
    "validate_definition",
]
