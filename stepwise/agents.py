"""Agent Execution Service interface and adapters used by agent_task steps."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel, Field
from pydantic_ai import Agent

from .contracts import AgentRun
from .errors import StepConfigurationError

logger = logging.getLogger(__name__)


class AgentStepDeps(BaseModel):
    """Dependencies handed to an agent run started by a workflow step."""

    auto_approve: bool = False
    metadata: Dict[str, Any] = Field(default_factory=dict)
    previous_outputs: List[Any] = Field(default_factory=list)


class AgentService(Protocol):
    """Runs a single agent invocation on behalf of a workflow step."""

    async def execute(
        self,
        agent_id: str,
        instruction: str,
        *,
        auto_approve: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AgentRun:
        """Execute ``agent_id`` with ``instruction`` and return its run record."""


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if value is None or isinstance(value, (str, int, float, bool, list, dict)):
        return value
    return str(value)


class PydanticAIAgentService:
    """Dispatch agent_task steps to registered pydantic-ai agents."""

    def __init__(self, agents: Optional[Dict[str, Agent]] = None) -> None:
        self._agents: Dict[str, Agent] = dict(agents or {})

    def register(self, agent_id: str, agent: Agent) -> None:
        self._agents[agent_id] = agent

    async def execute(
        self,
        agent_id: str,
        instruction: str,
        *,
        auto_approve: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AgentRun:
        agent = self._agents.get(agent_id)
        if agent is None:
            raise StepConfigurationError(f"Agent {agent_id} not found in registry.")

        deps = AgentStepDeps(auto_approve=auto_approve, metadata=metadata or {})
        logger.debug(f"Running agent {agent_id} with auto_approve={auto_approve}")
        result = await agent.run(instruction, deps=deps)

        output = result.output if hasattr(result, "output") else result
        return AgentRun(status="completed", result=_jsonable(output))


class SkippedAgentService:
    """Placeholder used when no agent runtime is configured.

    Every call succeeds with status ``skipped`` so that workflows can still be
    exercised end to end.
    """

    async def execute(
        self,
        agent_id: str,
        instruction: str,
        *,
        auto_approve: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AgentRun:
        logger.warning(f"Skipping agent step - no agent runtime configured for {agent_id}")
        return AgentRun(
            id="skipped",
            status="skipped",
            result={"message": "Agent step skipped - no agent runtime configured"},
        )
