import time

import pytest

from stepwise.contracts import ExecuteRequest, ExecutionStatus, StepStatus
from stepwise.persistence import SQLiteWorkflowRepository
from stepwise.service import WorkflowService

REVIEW_PIPELINE = {
    "name": "Review pipeline",
    "steps": [
        {"id": "draft", "name": "Draft", "type": "agent_task", "agentId": "writer", "successors": ["fan"]},
        {"id": "fan", "name": "Checks", "type": "parallel", "branches": ["lint", "facts"], "successors": ["score"]},
        {"id": "lint", "name": "Lint", "type": "agent_task", "agentId": "linter"},
        {"id": "facts", "name": "Fact check", "type": "agent_task", "agentId": "checker"},
        {
            "id": "score",
            "name": "Good enough",
            "type": "condition",
            "condition": "quality >= 7 && !rush",
            "successors": ["gate"],
            "otherwise": ["rework"],
        },
        {"id": "gate", "name": "Editor", "type": "human_approval", "successors": ["pause"]},
        {"id": "pause", "name": "Cool down", "type": "delay", "delayMs": 20, "successors": ["notify"]},
        {"id": "notify", "name": "Notify", "type": "webhook", "webhookType": "slack"},
        {"id": "rework", "name": "Rework", "type": "agent_task", "agentId": "writer"},
    ],
}


@pytest.mark.asyncio
async def test_suspended_execution_survives_restart(tmp_path, agent_service, config):
    db_path = tmp_path / "stepwise.db"
    service = WorkflowService(
        repository=SQLiteWorkflowRepository(db_path), agent_service=agent_service, config=config
    )
    workflow = await service.create_workflow("alice", REVIEW_PIPELINE)

    response = await service.execute(
        "alice", workflow.id, ExecuteRequest(input={"quality": 8, "rush": False})
    )
    execution = response.execution
    assert execution.status == ExecutionStatus.WAITING
    assert set(execution.step_results) == {"draft", "fan", "lint", "facts", "score"}

    restarted = WorkflowService(
        repository=SQLiteWorkflowRepository(db_path), agent_service=agent_service, config=config
    )
    start = time.monotonic()
    done = await restarted.resume("alice", execution.id, approved=True)

    assert (time.monotonic() - start) * 1000 >= 20
    assert done.execution.status == ExecutionStatus.COMPLETED
    assert "rework" not in done.execution.step_results
    assert done.execution.step_results["notify"].output["webhookType"] == "slack"
    assert all(r.status == StepStatus.COMPLETED for r in done.execution.step_results.values())
    assert agent_service.called("writer") == 1

    stored = await restarted.get_execution("alice", execution.id)
    assert stored.status == ExecutionStatus.COMPLETED
    assert stored.completed_at >= stored.started_at


@pytest.mark.asyncio
async def test_low_quality_takes_rework_branch(tmp_path, agent_service, config):
    service = WorkflowService(
        repository=SQLiteWorkflowRepository(tmp_path / "stepwise.db"),
        agent_service=agent_service,
        config=config,
    )
    workflow = await service.create_workflow("alice", REVIEW_PIPELINE)

    response = await service.execute(
        "alice", workflow.id, ExecuteRequest(input={"quality": 3}, auto_approve=True)
    )

    assert response.execution.status == ExecutionStatus.COMPLETED
    assert "gate" not in response.execution.step_results
    assert "rework" in response.execution.step_results
    assert agent_service.called("writer") == 2
