import pytest

from stepwise.config import ServiceSettings, StepwiseConfig
from stepwise.constants import EXECUTION_TIMEOUT
from stepwise.contracts import (
    CreateWorkflowRequest,
    ExecuteRequest,
    ExecutionEventType,
    ExecutionStatus,
)
from stepwise.errors import (
    AccessDeniedError,
    ExecutionNotFoundError,
    InactiveWorkflowError,
    WorkflowNotFoundError,
    WorkflowValidationError,
)
from stepwise.service import WorkflowService

LINEAR = {
    "name": "Research pipeline",
    "description": "Fetch then summarise",
    "steps": [
        {"id": "fetch", "name": "Fetch", "type": "agent_task", "agentId": "fetcher", "successors": ["sum"]},
        {"id": "sum", "name": "Summarise", "type": "agent_task", "agentId": "writer"},
    ],
}

GATED = {
    "name": "Gated",
    "steps": [
        {"id": "draft", "name": "Draft", "type": "agent_task", "agentId": "writer", "successors": ["gate"]},
        {"id": "gate", "name": "Review", "type": "human_approval", "successors": ["publish"]},
        {"id": "publish", "name": "Publish", "type": "webhook"},
    ],
}


@pytest.fixture
def service(repo, agent_service, config):
    return WorkflowService(repository=repo, agent_service=agent_service, config=config)


@pytest.mark.asyncio
async def test_create_and_get_workflow(service):
    workflow = await service.create_workflow("alice", LINEAR)

    assert workflow.owner == "alice"
    assert workflow.is_active is True
    assert await service.get_workflow("alice", workflow.id) == workflow
    with pytest.raises(AccessDeniedError):
        await service.get_workflow("bob", workflow.id)
    with pytest.raises(WorkflowNotFoundError):
        await service.get_workflow("alice", "missing")


@pytest.mark.asyncio
async def test_create_rejects_invalid_structure(service, repo):
    request = CreateWorkflowRequest(
        name="broken",
        steps=[{"id": "a", "name": "A", "type": "agent_task", "agentId": "x", "successors": ["nope"]}],
    )
    with pytest.raises(WorkflowValidationError) as exc_info:
        await service.create_workflow("alice", request)
    assert exc_info.value.errors[0].step_id == "a"
    assert "non-existent step: nope" in str(exc_info.value)

    with pytest.raises(WorkflowValidationError) as exc_info:
        await service.create_workflow("alice", {"name": "typeless", "steps": [{"name": "x"}]})
    assert exc_info.value.errors
    assert await repo.list_workflows() == []


@pytest.mark.asyncio
async def test_list_workflows_filters_and_pages(service):
    created = [
        await service.create_workflow("alice", {**LINEAR, "name": f"Pipeline {i}"})
        for i in range(3)
    ]
    await service.create_workflow("alice", {**LINEAR, "name": "Other", "description": "misc"})
    await service.create_workflow("bob", LINEAR)
    await service.set_active("alice", created[0].id, False)

    first = await service.list_workflows("alice", search="PIPELINE", limit=2)
    assert len(first.items) == 2
    assert first.has_more is True
    assert first.next_cursor == first.items[-1].id

    second = await service.list_workflows("alice", search="pipeline", cursor=first.next_cursor, limit=2)
    assert second.has_more is False
    assert second.next_cursor is None
    ids = {wf.id for wf in first.items} | {wf.id for wf in second.items}
    assert ids == {wf.id for wf in created}

    active = await service.list_workflows("alice", active=True)
    assert created[0].id not in {wf.id for wf in active.items}
    assert len(active.items) == 3

    with pytest.raises(ValueError):
        await service.list_workflows("alice", limit=1000)


@pytest.mark.asyncio
async def test_execute_returns_summary(service):
    workflow = await service.create_workflow("alice", LINEAR)

    response = await service.execute("alice", workflow.id, ExecuteRequest(input={"topic": "llms"}))

    assert response.execution.status == ExecutionStatus.COMPLETED
    assert response.execution.input == {"topic": "llms"}
    assert response.summary.steps_completed == 2
    assert response.summary.total_steps == 2
    assert response.summary.execution_time is not None
    stored = await service.get_execution("alice", response.execution.id)
    assert stored.status == ExecutionStatus.COMPLETED


@pytest.mark.asyncio
async def test_execute_preconditions_create_no_execution(service, repo):
    workflow = await service.create_workflow("alice", LINEAR)

    with pytest.raises(WorkflowNotFoundError):
        await service.execute("alice", "missing")
    with pytest.raises(AccessDeniedError):
        await service.execute("bob", workflow.id)
    await service.set_active("alice", workflow.id, False)
    with pytest.raises(InactiveWorkflowError):
        await service.execute("alice", workflow.id)

    assert await repo.list_executions() == []


@pytest.mark.asyncio
async def test_failed_run_is_returned_not_raised(service, agent_service):
    agent_service.fail_for.add("writer")
    workflow = await service.create_workflow("alice", LINEAR)

    response = await service.execute("alice", workflow.id)

    assert response.execution.status == ExecutionStatus.FAILED
    assert response.execution.error.step_id == "sum"
    assert response.summary.steps_completed == 1
    listed = await service.list_executions("alice", status=ExecutionStatus.FAILED)
    assert [e.id for e in listed] == [response.execution.id]


@pytest.mark.asyncio
async def test_execute_times_out(repo, agent_service):
    config = StepwiseConfig(service=ServiceSettings(execution_timeout_seconds=0.05))
    service = WorkflowService(repository=repo, agent_service=agent_service, config=config)
    workflow = await service.create_workflow(
        "alice", {"name": "slow", "steps": [{"id": "d", "name": "Wait", "type": "delay", "delayMs": 1000}]}
    )

    response = await service.execute("alice", workflow.id)

    assert response.execution.status == ExecutionStatus.FAILED
    assert response.execution.error.code == EXECUTION_TIMEOUT
    assert (await repo.get_execution(response.execution.id)).status == ExecutionStatus.FAILED


@pytest.mark.asyncio
async def test_stream_yields_lifecycle_events(service):
    workflow = await service.create_workflow("alice", LINEAR)

    events = [event async for event in await service.stream("alice", workflow.id)]

    assert [e.type for e in events] == [ExecutionEventType.STARTED, ExecutionEventType.COMPLETED]
    execution_id = events[0].data["executionId"]
    assert (await service.get_execution("alice", execution_id)).status == ExecutionStatus.COMPLETED


@pytest.mark.asyncio
async def test_stream_raises_preconditions_before_any_event(service):
    workflow = await service.create_workflow("alice", LINEAR)
    await service.set_active("alice", workflow.id, False)

    with pytest.raises(InactiveWorkflowError):
        await service.stream("alice", workflow.id)


@pytest.mark.asyncio
async def test_execute_with_stream_flag_returns_events(service, repo):
    workflow = await service.create_workflow("alice", GATED)

    events = await service.execute("alice", workflow.id, ExecuteRequest(stream=True))
    collected = [event async for event in events]

    assert [e.type for e in collected] == [ExecutionEventType.STARTED, ExecutionEventType.WAITING]
    assert collected[-1].data["stepId"] == "gate"
    stored = await repo.get_execution(collected[0].data["executionId"])
    assert stored.status == ExecutionStatus.WAITING


@pytest.mark.asyncio
async def test_resume_waiting_execution(service):
    workflow = await service.create_workflow("alice", GATED)

    waiting = await service.execute("alice", workflow.id)
    assert waiting.execution.status == ExecutionStatus.WAITING
    assert waiting.execution.awaiting_approval == "gate"

    with pytest.raises(AccessDeniedError):
        await service.resume("bob", waiting.execution.id, approved=True)
    with pytest.raises(ExecutionNotFoundError):
        await service.resume("alice", "missing", approved=True)

    done = await service.resume("alice", waiting.execution.id, approved=True, comment="ship it")
    assert done.execution.status == ExecutionStatus.COMPLETED
    assert done.execution.step_results["gate"].output["approver"] == "alice"
    assert done.execution.step_results["publish"].output["status"] == "sent"
    assert done.summary.steps_completed == 3


@pytest.mark.asyncio
async def test_workflow_stats(service, agent_service):
    workflow = await service.create_workflow("alice", LINEAR)
    gated = await service.create_workflow("alice", GATED)
    await service.execute("alice", workflow.id)
    await service.execute("alice", gated.id)
    agent_service.fail_for.add("fetcher")
    await service.execute("alice", workflow.id)

    stats = await service.workflow_stats("alice")

    assert stats.total_workflows == 2
    assert stats.active_workflows == 2
    assert stats.total_executions == 3
    assert stats.completed_executions == 1
    assert stats.failed_executions == 1
    assert stats.running_executions == 1
    assert stats.success_rate == pytest.approx(1 / 3)
    assert stats.average_execution_time >= 0
    assert (await service.workflow_stats("bob")).total_executions == 0


@pytest.mark.asyncio
async def test_unconsumed_stream_leaves_no_execution(service, repo):
    workflow = await service.create_workflow("alice", LINEAR)

    events = await service.execute("alice", workflow.id, ExecuteRequest(stream=True))
    assert await repo.list_executions() == []
    assert (await service.workflow_stats("alice")).running_executions == 0

    collected = [event async for event in events]
    stored = await repo.list_executions()
    assert [e.id for e in stored] == [collected[0].data["executionId"]]
    assert stored[0].status == ExecutionStatus.COMPLETED
