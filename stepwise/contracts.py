"""Core data contracts for stepwise workflows and executions."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from .constants import DEFAULT_DELAY_MS, DEFAULT_WEBHOOK_TYPE


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StepwiseModel(BaseModel):
    """Base model: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        """Return a JSON-compatible dict using wire (camelCase) keys."""
        return self.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Workflow definitions


class BaseStep(StepwiseModel):
    """Fields shared by every step type.

    ``successors`` are visited after the step by the default depth-first
    traversal. Fan-out step types keep their targets in ``branches`` instead.
    Definitions written against the older single ``nextSteps`` list are
    accepted and split into the right field for the step type.
    """

    fan_out: ClassVar[bool] = False

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    name: str
    successors: List[str] = Field(default_factory=list)
    requires_approval: bool = False

    @model_validator(mode="before")
    @classmethod
    def _split_next_steps(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        legacy = data.get("nextSteps", data.get("next_steps"))
        if legacy is None:
            return data
        data = {k: v for k, v in data.items() if k not in ("nextSteps", "next_steps")}
        data.setdefault("branches" if cls.fan_out else "successors", legacy)
        return data

    def referenced_steps(self) -> List[str]:
        """Every step id this step can hand control to."""
        return list(self.successors)


def _legacy_parameter(data: Any, *keys: str) -> Any:
    params = data.get("parameters") if isinstance(data, dict) else None
    if not isinstance(params, dict):
        return None
    for key in keys:
        if key in params:
            return params[key]
    return None


class AgentTaskStep(BaseStep):
    type: Literal["agent_task"] = "agent_task"
    agent_id: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)


class ConditionStep(BaseStep):
    """Follows ``successors`` when the expression holds, ``otherwise`` when not."""

    type: Literal["condition"] = "condition"
    condition: Optional[str] = None
    otherwise: List[str] = Field(default_factory=list)

    def referenced_steps(self) -> List[str]:
        return list(self.successors) + list(self.otherwise)


class ParallelStep(BaseStep):
    fan_out: ClassVar[bool] = True

    type: Literal["parallel"] = "parallel"
    branches: List[str] = Field(default_factory=list)
    max_concurrency: Optional[int] = Field(default=None, ge=1)

    def referenced_steps(self) -> List[str]:
        return list(self.branches) + list(self.successors)


class SequentialStep(BaseStep):
    fan_out: ClassVar[bool] = True

    type: Literal["sequential"] = "sequential"
    branches: List[str] = Field(default_factory=list)

    def referenced_steps(self) -> List[str]:
        return list(self.branches) + list(self.successors)


class HumanApprovalStep(BaseStep):
    type: Literal["human_approval"] = "human_approval"
    message: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _message_from_parameters(cls, data: Any) -> Any:
        if isinstance(data, dict) and "message" not in data:
            message = _legacy_parameter(data, "message")
            if isinstance(message, str):
                data = {**data, "message": message}
        return data


class DelayStep(BaseStep):
    type: Literal["delay"] = "delay"
    delay_ms: int = Field(default=DEFAULT_DELAY_MS, ge=0)

    @model_validator(mode="before")
    @classmethod
    def _delay_from_parameters(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "delayMs" in data or "delay_ms" in data:
            return data
        if not isinstance(data.get("parameters"), dict):
            return data
        value = _legacy_parameter(data, "delayMs", "delay_ms")
        # Non-numeric values fall back to the default delay.
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value >= 0:
            return {**data, "delay_ms": int(value)}
        return {**data, "delay_ms": DEFAULT_DELAY_MS}


class WebhookStep(BaseStep):
    type: Literal["webhook"] = "webhook"
    webhook_type: str = DEFAULT_WEBHOOK_TYPE
    url: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _webhook_from_parameters(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        updates: Dict[str, Any] = {}
        webhook_type = _legacy_parameter(data, "webhook_type", "webhookType")
        if "webhookType" not in data and "webhook_type" not in data:
            updates["webhook_type"] = (
                webhook_type if isinstance(webhook_type, str) else DEFAULT_WEBHOOK_TYPE
            )
        url = _legacy_parameter(data, "url")
        if "url" not in data and isinstance(url, str):
            updates["url"] = url
        payload = _legacy_parameter(data, "payload")
        if "payload" not in data and isinstance(payload, dict):
            updates["payload"] = payload
        return {**data, **updates} if updates else data


Step = Annotated[
    Union[
        AgentTaskStep,
        ConditionStep,
        ParallelStep,
        SequentialStep,
        HumanApprovalStep,
        DelayStep,
        WebhookStep,
    ],
    Field(discriminator="type"),
]

STEP_TYPES = (
    "agent_task",
    "condition",
    "parallel",
    "sequential",
    "human_approval",
    "delay",
    "webhook",
)


class Trigger(StepwiseModel):
    """Describes when a run is permitted; never evaluated by the engine."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    type: Literal["manual", "schedule", "webhook", "completion", "condition"]
    condition: str = ""
    parameters: Dict[str, Any] = Field(default_factory=dict)


class CreateWorkflowRequest(StepwiseModel):
    """Payload accepted by the workflow create API."""

    name: str
    description: Optional[str] = None
    steps: List[Step] = Field(default_factory=list)
    triggers: List[Trigger] = Field(default_factory=list)


class WorkflowDefinition(StepwiseModel):
    """An owned, validated workflow. The step graph never changes after creation."""

    id: str = Field(default_factory=new_id)
    name: str
    description: Optional[str] = None
    steps: List[Step] = Field(default_factory=list)
    triggers: List[Trigger] = Field(default_factory=list)
    owner: str
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def entry_step(self) -> Optional[Step]:
        """The first step is the canonical entry point."""
        return self.steps[0] if self.steps else None

    def get_step(self, step_id: str) -> Optional[Step]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None


class ValidationIssue(StepwiseModel):
    """One structural problem found in a workflow definition."""

    model_config = ConfigDict(frozen=True)

    field: str
    message: str
    step_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Executions


class ExecutionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    WAITING = "waiting"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED)


class StepStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class StepResult(StepwiseModel):
    status: StepStatus
    output: Any = None
    error: Optional[str] = None
    started_at: datetime
    completed_at: datetime


class ExecutionError(StepwiseModel):
    step_id: str
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class ExecutionSummary(StepwiseModel):
    execution_id: str
    status: ExecutionStatus
    steps_completed: int
    total_steps: int
    execution_time: Optional[int] = Field(
        default=None, description="Wall-clock milliseconds, set once terminal"
    )


class WorkflowExecution(StepwiseModel):
    """One run of a workflow, mutated by a single orchestrator until terminal."""

    id: str = Field(default_factory=new_id)
    workflow_id: str
    owner: str
    status: ExecutionStatus = ExecutionStatus.PENDING
    current_step: Optional[str] = None
    step_results: Dict[str, StepResult] = Field(default_factory=dict)
    input: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    pending_steps: List[str] = Field(
        default_factory=list, description="Continuation stack, top is last"
    )
    awaiting_approval: Optional[str] = None
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    error: Optional[ExecutionError] = None

    @classmethod
    def for_workflow(
        cls,
        workflow: WorkflowDefinition,
        owner: Optional[str] = None,
        input: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "WorkflowExecution":
        return cls(
            workflow_id=workflow.id,
            owner=owner or workflow.owner,
            input=input or {},
            metadata=metadata or {},
        )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def steps_completed(self) -> int:
        return sum(
            1 for r in self.step_results.values() if r.status == StepStatus.COMPLETED
        )

    @property
    def execution_time_ms(self) -> Optional[int]:
        if self.completed_at is None:
            return None
        return int((self.completed_at - self.started_at).total_seconds() * 1000)

    def summarize(self, total_steps: int) -> ExecutionSummary:
        return ExecutionSummary(
            execution_id=self.id,
            status=self.status,
            steps_completed=self.steps_completed,
            total_steps=total_steps,
            execution_time=self.execution_time_ms,
        )


class ExecuteRequest(StepwiseModel):
    input: Dict[str, Any] = Field(default_factory=dict)
    auto_approve: bool = False
    stream: bool = False
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ExecuteResponse(StepwiseModel):
    execution: WorkflowExecution
    summary: ExecutionSummary


class ExecutionEventType(str, Enum):
    STARTED = "execution_started"
    COMPLETED = "execution_completed"
    FAILED = "execution_failed"
    WAITING = "execution_waiting"


class ExecutionEvent(StepwiseModel):
    """Lifecycle event published by the streaming adapter."""

    type: ExecutionEventType
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.type != ExecutionEventType.STARTED


class AgentRun(StepwiseModel):
    """Result returned by the Agent Execution Service."""

    id: str = Field(default_factory=new_id)
    status: str
    result: Any = None


# ---------------------------------------------------------------------------
# Listings


class WorkflowPage(StepwiseModel):
    items: List[WorkflowDefinition] = Field(default_factory=list)
    next_cursor: Optional[str] = None
    has_more: bool = False
    limit: int


class WorkflowStats(StepwiseModel):
    total_workflows: int = 0
    active_workflows: int = 0
    total_executions: int = 0
    running_executions: int = 0
    completed_executions: int = 0
    failed_executions: int = 0
    success_rate: float = 0.0
    average_execution_time: float = Field(default=0.0, description="Milliseconds")
