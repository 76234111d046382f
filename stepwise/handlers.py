"""Step handlers: one coroutine per step type.

Every handler maps ``(step, StepContext)`` to a type-tagged, JSON-serialisable
dict or raises. Handlers never write to the execution record themselves; the
orchestrator records their output.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from .agents import AgentService
from .conditions import evaluate_condition
from .config import EngineSettings
from .contracts import (
    AgentTaskStep,
    ConditionStep,
    DelayStep,
    HumanApprovalStep,
    ParallelStep,
    SequentialStep,
    StepStatus,
    WebhookStep,
    WorkflowDefinition,
    WorkflowExecution,
    utcnow,
)
from .errors import ApprovalSuspendError, StepConfigurationError

logger = logging.getLogger(__name__)


class ApprovalPending(Exception):
    """Signals that an approval gate must suspend the run."""

    def __init__(self, step_id: str):
        self.step_id = step_id
        super().__init__(f"Approval pending for step {step_id}")


@dataclass
class StepContext:
    """Everything a handler may read while running one step."""

    workflow: WorkflowDefinition
    execution: WorkflowExecution
    agent_service: AgentService
    run_branch: Callable[[str], Awaitable[Any]]
    settings: EngineSettings = field(default_factory=EngineSettings)
    auto_approve: bool = False
    in_fan_out: bool = False
    http_client: Optional[httpx.AsyncClient] = None

    def previous_outputs(self, limit: int) -> List[Any]:
        """Outputs of the most recent ``limit`` completed steps, oldest first."""
        if limit <= 0:
            return []
        outputs = [
            result.output
            for result in self.execution.step_results.values()
            if result.status == StepStatus.COMPLETED
        ]
        return outputs[-limit:]

    def condition_variables(self) -> Dict[str, Any]:
        steps = {
            step_id: result.output
            for step_id, result in self.execution.step_results.items()
            if result.status == StepStatus.COMPLETED
        }
        return {**self.execution.input, "input": self.execution.input, "steps": steps}


def _timestamp() -> str:
    return utcnow().isoformat()


def build_agent_instruction(step: AgentTaskStep, previous_outputs: List[Any]) -> str:
    """Compose the instruction sent to the agent for ``step``."""

    instruction = f"Execute task: {step.name}\n\n"
    if step.parameters:
        instruction += f"Parameters:\n{json.dumps(step.parameters, indent=2, default=str)}\n\n"
    if previous_outputs:
        instruction += (
            f"Previous step results:\n{json.dumps(previous_outputs, indent=2, default=str)}\n\n"
        )
    instruction += (
        "Please complete this task according to the parameters and context provided."
    )
    return instruction


async def handle_agent_task(step: AgentTaskStep, ctx: StepContext) -> Dict[str, Any]:
    if not (step.agent_id or "").strip():
        raise StepConfigurationError(f'Agent task step "{step.name}" requires an agentId')

    instruction = build_agent_instruction(
        step, ctx.previous_outputs(ctx.settings.agent_history_size)
    )
    metadata = {
        "workflowExecutionId": ctx.execution.id,
        "workflowStepId": step.id,
        **step.parameters,
    }
    run = await ctx.agent_service.execute(
        step.agent_id,
        instruction,
        auto_approve=ctx.auto_approve,
        metadata=metadata,
    )
    return {
        "type": "agent_execution",
        "agentId": step.agent_id,
        "executionId": run.id,
        "result": run.result,
        "status": run.status,
    }


async def handle_condition(step: ConditionStep, ctx: StepContext) -> Dict[str, Any]:
    if not (step.condition or "").strip():
        raise StepConfigurationError(f'Condition step "{step.name}" requires a condition')

    result = evaluate_condition(step.condition, ctx.condition_variables())
    return {
        "type": "condition_evaluation",
        "condition": step.condition,
        "result": result,
        "timestamp": _timestamp(),
    }


async def handle_parallel(step: ParallelStep, ctx: StepContext) -> Dict[str, Any]:
    """Run every branch concurrently and report each outcome.

    A failing branch is reported as ``rejected``; it never fails the parallel
    step itself.
    """

    if not step.branches:
        raise StepConfigurationError(f'Parallel step "{step.name}" requires branches')

    limit = step.max_concurrency or ctx.settings.max_parallel_branches
    semaphore = asyncio.Semaphore(limit) if limit else None

    async def run(branch_id: str) -> Any:
        if semaphore is None:
            return await ctx.run_branch(branch_id)
        async with semaphore:
            return await ctx.run_branch(branch_id)

    outcomes = await asyncio.gather(
        *(run(branch_id) for branch_id in step.branches), return_exceptions=True
    )

    results: List[Dict[str, Any]] = []
    for branch_id, outcome in zip(step.branches, outcomes):
        if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, Exception):
            logger.warning(f"Parallel branch {branch_id} of step {step.id} failed: {outcome}")
            results.append({"stepId": branch_id, "status": "rejected", "error": str(outcome)})
        else:
            results.append({"stepId": branch_id, "status": "fulfilled", "value": outcome})
    return {"type": "parallel_execution", "results": results}


async def handle_sequential(step: SequentialStep, ctx: StepContext) -> Dict[str, Any]:
    """Run branches one at a time; the first failure aborts the rest."""

    if not step.branches:
        raise StepConfigurationError(f'Sequential step "{step.name}" requires branches')

    results: List[Dict[str, Any]] = []
    for branch_id in step.branches:
        value = await ctx.run_branch(branch_id)
        results.append({"stepId": branch_id, "result": value})
    return {"type": "sequential_execution", "results": results}


async def handle_human_approval(
    step: HumanApprovalStep, ctx: StepContext
) -> Dict[str, Any]:
    if ctx.auto_approve:
        return {
            "type": "human_approval",
            "approved": True,
            "autoApproved": True,
            "timestamp": _timestamp(),
        }
    if ctx.in_fan_out:
        raise ApprovalSuspendError(
            f'Approval step "{step.name}" cannot suspend inside a parallel or '
            "sequential branch; run with autoApprove"
        )
    raise ApprovalPending(step.id)


async def handle_delay(step: DelayStep, ctx: StepContext) -> Dict[str, Any]:
    await asyncio.sleep(step.delay_ms / 1000)
    return {"type": "delay", "delayMs": step.delay_ms, "timestamp": _timestamp()}


async def _post_webhook(
    step: WebhookStep, ctx: StepContext, client: httpx.AsyncClient
) -> Dict[str, Any]:
    body = {
        "webhookType": step.webhook_type,
        "workflowId": ctx.workflow.id,
        "executionId": ctx.execution.id,
        "stepId": step.id,
        "payload": step.payload,
    }
    try:
        response = await client.post(
            step.url, json=body, timeout=ctx.settings.webhook_timeout_seconds
        )
    except httpx.HTTPError as exc:
        logger.warning(f"Webhook {step.id} delivery to {step.url} failed: {exc}")
        return {"success": False, "message": f"Webhook delivery failed: {exc}"}
    if response.is_success:
        return {"success": True, "message": "Webhook sent successfully"}
    return {
        "success": False,
        "message": f"Webhook endpoint responded with {response.status_code}",
    }


async def handle_webhook(step: WebhookStep, ctx: StepContext) -> Dict[str, Any]:
    """Fire the webhook and acknowledge; delivery problems are reported, not raised."""

    if not step.url:
        response = {"success": True, "message": "Webhook sent successfully"}
    elif ctx.http_client is not None:
        response = await _post_webhook(step, ctx, ctx.http_client)
    else:
        async with httpx.AsyncClient() as client:
            response = await _post_webhook(step, ctx, client)

    return {
        "type": "webhook",
        "webhookType": step.webhook_type,
        "status": "sent",
        "timestamp": _timestamp(),
        "response": response,
    }


StepHandler = Callable[[Any, StepContext], Awaitable[Dict[str, Any]]]

HANDLERS: Dict[str, StepHandler] = {
    "agent_task": handle_agent_task,
    "condition": handle_condition,
    "parallel": handle_parallel,
    "sequential": handle_sequential,
    "human_approval": handle_human_approval,
    "delay": handle_delay,
    "webhook": handle_webhook,
}
