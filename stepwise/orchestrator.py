"""Workflow orchestrator: walks a step graph and resolves a run to a terminal state."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Set

import httpx

from .agents import AgentService, SkippedAgentService
from .config import EngineSettings
from .constants import APPROVAL_REJECTED, EXECUTION_ERROR, RUN_LEVEL_STEP_ID
from .contracts import (
    ConditionStep,
    ExecutionError,
    ExecutionStatus,
    Step,
    StepResult,
    StepStatus,
    WorkflowDefinition,
    WorkflowExecution,
    utcnow,
)
from .errors import (
    InvalidExecutionStateError,
    StepExecutionError,
    StepNotFoundError,
    WorkflowExecutionError,
)
from .handlers import HANDLERS, ApprovalPending, StepContext
from .persistence.repository import WorkflowRepository

logger = logging.getLogger(__name__)


@dataclass
class _RunState:
    """Per-invocation bookkeeping shared by the main walk and its branches."""

    workflow: WorkflowDefinition
    execution: WorkflowExecution
    auto_approve: bool
    claimed: Set[str] = field(default_factory=set)


class WorkflowOrchestrator:
    """Execute workflow definitions step by step.

    The walk is depth-first from the first step. After a step's handler
    finishes, its ``successors`` are visited in declared order (a condition
    step picks ``successors`` or ``otherwise`` from its result). Fan-out steps
    run their ``branches`` through :meth:`_run_branch` and then continue with
    their own successors. Each step runs at most once per execution.

    The main walk keeps its pending work on ``execution.pending_steps`` so a
    run suspended at an approval gate can be picked up again by
    :meth:`resume`.
    """

    def __init__(
        self,
        agent_service: Optional[AgentService] = None,
        repository: WorkflowRepository | None = None,
        settings: Optional[EngineSettings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._agent_service = agent_service or SkippedAgentService()
        self._repository = repository
        self._settings = settings or EngineSettings()
        self._http_client = http_client

    # ------------------------------------------------------------------
    # Public API
    async def run(
        self,
        workflow: WorkflowDefinition,
        execution: WorkflowExecution,
        auto_approve: bool = False,
    ) -> WorkflowExecution:
        """Run ``execution`` from the entry step.

        Returns the execution once it is completed, or in the non-terminal
        ``waiting`` state when an approval gate suspends the walk without
        ``auto_approve``. A waiting execution is finished by :meth:`resume`.

        Raises:
            WorkflowExecutionError: The run failed. The execution carried by
                the error is already in its failed terminal state.
        """

        if execution.status != ExecutionStatus.PENDING:
            raise InvalidExecutionStateError(
                f"Execution {execution.id} is {execution.status.value}, expected pending"
            )

        execution.status = ExecutionStatus.RUNNING
        logger.info(
            f"Starting workflow {workflow.id} for execution_id={execution.id}"
        )
        entry = workflow.entry_step
        if entry is None:
            self._fail(execution, RUN_LEVEL_STEP_ID, "Workflow has no steps")
            await self._checkpoint(execution)
            raise WorkflowExecutionError(execution)

        execution.pending_steps = [entry.id]
        await self._checkpoint(execution)
        return await self._drive(_RunState(workflow, execution, auto_approve))

    async def resume(
        self,
        workflow: WorkflowDefinition,
        execution: WorkflowExecution,
        approved: bool,
        approver: Optional[str] = None,
        comment: Optional[str] = None,
    ) -> WorkflowExecution:
        """Record the decision for the pending approval gate and continue.

        An approval continues with the gate's successors and then the rest of
        the suspended walk. A rejection fails the run with
        ``APPROVAL_REJECTED``.
        """

        gate_id = execution.awaiting_approval
        if execution.status != ExecutionStatus.WAITING or gate_id is None:
            raise InvalidExecutionStateError(
                f"Execution {execution.id} is not waiting for approval"
            )
        gate = self._require_step(workflow, gate_id)

        now = utcnow()
        output = {
            "type": "human_approval",
            "approved": approved,
            "autoApproved": False,
            "timestamp": now.isoformat(),
        }
        if approver:
            output["approver"] = approver
        if comment:
            output["comment"] = comment

        execution.awaiting_approval = None
        execution.status = ExecutionStatus.RUNNING
        execution.current_step = gate.id

        if not approved:
            execution.step_results[gate.id] = StepResult(
                status=StepStatus.FAILED,
                output=output,
                error="Approval rejected",
                started_at=now,
                completed_at=now,
            )
            logger.info(f"Approval rejected at step {gate.id} for execution_id={execution.id}")
            self._fail(execution, gate.id, "Approval rejected", code=APPROVAL_REJECTED)
            await self._checkpoint(execution)
            raise WorkflowExecutionError(execution)

        execution.step_results[gate.id] = StepResult(
            status=StepStatus.COMPLETED, output=output, started_at=now, completed_at=now
        )
        logger.info(f"Approval granted at step {gate.id} for execution_id={execution.id}")
        execution.pending_steps.extend(reversed(self._next_steps(gate, output)))
        await self._checkpoint(execution)
        state = _RunState(workflow, execution, auto_approve=False)
        state.claimed.update(execution.step_results)
        return await self._drive(state)

    async def abort(
        self, execution: WorkflowExecution, message: str, code: str = EXECUTION_ERROR
    ) -> WorkflowExecution:
        """Force a non-terminal execution into the failed state."""

        if not execution.is_terminal:
            self._fail(execution, execution.current_step or RUN_LEVEL_STEP_ID, message, code)
            await self._checkpoint(execution)
        return execution

    # ------------------------------------------------------------------
    # Traversal
    async def _drive(self, state: _RunState) -> WorkflowExecution:
        execution = state.execution
        try:
            await self._walk(execution.pending_steps, state, in_fan_out=False)
        except ApprovalPending as pending:
            execution.status = ExecutionStatus.WAITING
            execution.awaiting_approval = pending.step_id
            execution.current_step = pending.step_id
            logger.info(
                f"Execution {execution.id} waiting for approval at step {pending.step_id}"
            )
            await self._checkpoint(execution)
            return execution
        except StepExecutionError as exc:
            logger.error(
                f"Workflow {state.workflow.id} failed at step {exc.step_id} "
                f"for execution_id={execution.id}: {exc}"
            )
            self._fail(execution, exc.step_id, str(exc))
            await self._checkpoint(execution)
            raise WorkflowExecutionError(execution) from exc.cause
        except Exception as exc:
            logger.error(
                f"Workflow {state.workflow.id} failed for execution_id={execution.id}: {exc}"
            )
            self._fail(execution, RUN_LEVEL_STEP_ID, str(exc) or type(exc).__name__)
            await self._checkpoint(execution)
            raise WorkflowExecutionError(execution) from exc

        execution.status = ExecutionStatus.COMPLETED
        execution.completed_at = utcnow()
        logger.info(f"Workflow {state.workflow.id} completed for execution_id={execution.id}")
        await self._checkpoint(execution)
        return execution

    async def _walk(self, stack: List[str], state: _RunState, in_fan_out: bool) -> None:
        """Depth-first walk driven by ``stack`` (top is the last element)."""

        while stack:
            step_id = stack.pop()
            if step_id in state.claimed:
                logger.debug(f"Step {step_id} already visited; not running it again")
                continue
            step = self._require_step(state.workflow, step_id)
            output = await self._visit(step, state, in_fan_out)
            stack.extend(reversed(self._next_steps(step, output)))
            if not in_fan_out:
                await self._checkpoint(state.execution)

    async def _run_branch(self, step_id: str, state: _RunState) -> Any:
        """Walk one fan-out branch and return the branch step's own output."""

        await self._walk([step_id], state, in_fan_out=True)
        result = state.execution.step_results.get(step_id)
        return result.output if result is not None else None

    async def _visit(self, step: Step, state: _RunState, in_fan_out: bool) -> Any:
        execution = state.execution
        state.claimed.add(step.id)
        execution.current_step = step.id
        logger.info(
            f"Executing step {step.name} ({step.type}) id={step.id} "
            f"for execution_id={execution.id}"
        )

        ctx = StepContext(
            workflow=state.workflow,
            execution=execution,
            agent_service=self._agent_service,
            run_branch=lambda branch_id: self._run_branch(branch_id, state),
            settings=self._settings,
            auto_approve=state.auto_approve,
            in_fan_out=in_fan_out,
            http_client=self._http_client,
        )
        handler = HANDLERS[step.type]
        started_at = utcnow()
        try:
            output = await handler(step, ctx)
        except ApprovalPending:
            state.claimed.discard(step.id)
            raise
        except StepExecutionError as exc:
            # A nested branch failed; record this step and keep the innermost id.
            self._record_failure(execution, step.id, str(exc), started_at)
            raise
        except Exception as exc:
            logger.error(
                f"Step {step.id} failed for execution_id={execution.id}: {exc!r}"
            )
            self._record_failure(execution, step.id, str(exc) or type(exc).__name__, started_at)
            raise StepExecutionError(step.id, exc) from exc

        execution.step_results[step.id] = StepResult(
            status=StepStatus.COMPLETED,
            output=output,
            started_at=started_at,
            completed_at=utcnow(),
        )
        logger.debug(f"Step {step.id} completed for execution_id={execution.id}")
        return output

    # ------------------------------------------------------------------
    # Helpers
    @staticmethod
    def _next_steps(step: Step, output: Any) -> List[str]:
        if isinstance(step, ConditionStep):
            matched = isinstance(output, dict) and bool(output.get("result"))
            return list(step.successors if matched else step.otherwise)
        return list(step.successors)

    @staticmethod
    def _require_step(workflow: WorkflowDefinition, step_id: str) -> Step:
        step = workflow.get_step(step_id)
        if step is None:
            raise StepNotFoundError(step_id)
        return step

    @staticmethod
    def _record_failure(
        execution: WorkflowExecution, step_id: str, message: str, started_at
    ) -> None:
        execution.step_results[step_id] = StepResult(
            status=StepStatus.FAILED,
            error=message,
            started_at=started_at,
            completed_at=utcnow(),
        )

    @staticmethod
    def _fail(
        execution: WorkflowExecution,
        step_id: str,
        message: str,
        code: str = EXECUTION_ERROR,
    ) -> None:
        execution.status = ExecutionStatus.FAILED
        execution.error = ExecutionError(
            step_id=step_id,
            code=code,
            message=message,
            details={"workflowId": execution.workflow_id},
        )
        execution.awaiting_approval = None
        execution.pending_steps = []
        execution.completed_at = utcnow()

    async def _checkpoint(self, execution: WorkflowExecution) -> None:
        if self._repository is not None:
            await self._repository.save_execution(execution)
