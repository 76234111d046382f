"""Streaming adapter: runs an execution and reports it as lifecycle events."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Awaitable, Callable, Optional

from ..contracts import (
    ExecutionEvent,
    ExecutionEventType,
    ExecutionStatus,
    WorkflowDefinition,
    WorkflowExecution,
)
from ..errors import WorkflowExecutionError
from ..orchestrator import WorkflowOrchestrator
from .base import EventChannel

logger = logging.getLogger(__name__)


def encode_sse(event: ExecutionEvent) -> str:
    """Render ``event`` as a server-sent-events frame."""

    body = {"type": event.type.value, "data": event.data}
    return f"data: {json.dumps(body, default=str)}\n\n"


def _closing_event(execution: WorkflowExecution) -> ExecutionEvent:
    if execution.status == ExecutionStatus.WAITING:
        return ExecutionEvent(
            type=ExecutionEventType.WAITING,
            data={"executionId": execution.id, "stepId": execution.awaiting_approval},
        )
    return ExecutionEvent(type=ExecutionEventType.COMPLETED, data=execution.to_wire())


async def stream_execution(
    orchestrator: WorkflowOrchestrator,
    workflow: WorkflowDefinition,
    execution: WorkflowExecution,
    channel: EventChannel,
    auto_approve: bool = False,
    timeout: Optional[float] = None,
    on_timeout: Optional[Callable[[WorkflowExecution], Awaitable[None]]] = None,
) -> WorkflowExecution:
    """Publish one ``execution_started`` event, run, publish one closing event.

    The closing event is ``execution_completed`` (full execution),
    ``execution_waiting`` when an approval gate suspended the run, or
    ``execution_failed`` for any error. The channel is always closed
    afterwards; errors are reported on the channel, never raised.
    """

    try:
        await channel.publish(
            ExecutionEvent(
                type=ExecutionEventType.STARTED,
                data={"executionId": execution.id, "workflowId": workflow.id},
            )
        )
        result = await asyncio.wait_for(
            orchestrator.run(workflow, execution, auto_approve=auto_approve), timeout
        )
        closing = _closing_event(result)
    except WorkflowExecutionError as exc:
        closing = ExecutionEvent(
            type=ExecutionEventType.FAILED,
            data={"executionId": execution.id, "error": str(exc)},
        )
    except asyncio.TimeoutError:
        logger.error(f"Streaming execution {execution.id} exceeded {timeout}s")
        if on_timeout is not None:
            await on_timeout(execution)
        closing = ExecutionEvent(
            type=ExecutionEventType.FAILED,
            data={"executionId": execution.id, "error": "Workflow execution timed out"},
        )
    except Exception as exc:
        logger.error(f"Streaming execution {execution.id} failed: {exc}")
        closing = ExecutionEvent(
            type=ExecutionEventType.FAILED,
            data={"executionId": execution.id, "error": str(exc) or type(exc).__name__},
        )

    try:
        if not channel.closed:
            await channel.publish(closing)
    except Exception as exc:
        logger.error(f"Could not publish {closing.type.value} for {execution.id}: {exc}")
    finally:
        await channel.close()
    return execution
