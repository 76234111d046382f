from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest

from stepwise.config import ServiceSettings, StepwiseConfig
from stepwise.contracts import AgentRun, WorkflowDefinition
from stepwise.persistence import InMemoryWorkflowRepository


class RecordingAgentService:
    """Agent service double that records calls and fails on demand."""

    def __init__(self) -> None:
        self.calls: List[SimpleNamespace] = []
        self.fail_for: set[str] = set()

    async def execute(
        self,
        agent_id: str,
        instruction: str,
        *,
        auto_approve: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AgentRun:
        self.calls.append(
            SimpleNamespace(
                agent_id=agent_id,
                instruction=instruction,
                auto_approve=auto_approve,
                metadata=metadata or {},
            )
        )
        if agent_id in self.fail_for:
            raise RuntimeError(f"agent {agent_id} failed")
        return AgentRun(status="completed", result=f"{agent_id}-done")

    def called(self, agent_id: str) -> int:
        return sum(1 for call in self.calls if call.agent_id == agent_id)


@pytest.fixture
def agent_service() -> RecordingAgentService:
    return RecordingAgentService()


@pytest.fixture
def repo() -> InMemoryWorkflowRepository:
    return InMemoryWorkflowRepository()


@pytest.fixture
def config() -> StepwiseConfig:
    return StepwiseConfig(service=ServiceSettings(execution_timeout_seconds=5))


@pytest.fixture
def build_workflow():
    def _build(steps: List[Dict[str, Any]], owner: str = "alice", **kwargs: Any) -> WorkflowDefinition:
        return WorkflowDefinition(name=kwargs.pop("name", "wf"), owner=owner, steps=steps, **kwargs)

    return _build
