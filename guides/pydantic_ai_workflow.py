"""Run a stepwise workflow whose agent steps are pydantic-ai agents."""

import asyncio
from pathlib import Path

import yaml
from pydantic_ai import Agent

from stepwise import ExecuteRequest, PydanticAIAgentService, WorkflowService
from stepwise.agents import AgentStepDeps
from stepwise.persistence import get_repository

researcher = Agent(
    "test",  # Use test model to avoid API calls
    deps_type=AgentStepDeps,
    system_prompt="Research the requested topic and return short notes.",
)

writer = Agent(
    "test",
    deps_type=AgentStepDeps,
    system_prompt="Turn the previous step results into a short article.",
)


async def main():
    agents = PydanticAIAgentService({"researcher": researcher, "writer": writer})
    service = WorkflowService(repository=get_repository(), agent_service=agents)

    definition = yaml.safe_load((Path(__file__).parent / "research_workflow.yaml").read_text())
    workflow = await service.create_workflow("guide-user", definition)
    print(f"✅ Workflow created: {workflow.id}")

    response = await service.execute(
        "guide-user", workflow.id, ExecuteRequest(input={"confidence": 8})
    )
    print(f"⏸️  Execution {response.execution.id}: {response.execution.status.value}")

    if response.execution.awaiting_approval:
        response = await service.resume(
            "guide-user", response.execution.id, approved=True, comment="Looks good"
        )
    print(f"🏁 Execution finished: {response.execution.status.value}")
    print(f"   Steps completed: {response.summary.steps_completed}/{response.summary.total_steps}")


if __name__ == "__main__":
    asyncio.run(main())
