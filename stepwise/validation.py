"""Structural validation of workflow definitions.

Validation runs once, at creation time. A definition that passes is
guaranteed to have unique step ids, no dangling references, the per-type
fields each handler needs and an acyclic step graph, so the orchestrator
never has to re-check any of these.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Union

from pydantic import ValidationError

from .constants import MAX_DESCRIPTION_LENGTH, MAX_NAME_LENGTH, MAX_STEPS_PER_WORKFLOW
from .contracts import (
    AgentTaskStep,
    ConditionStep,
    CreateWorkflowRequest,
    ParallelStep,
    SequentialStep,
    Step,
    Trigger,
    ValidationIssue,
    WorkflowDefinition,
)


def _check_steps(steps: Sequence[Step]) -> List[ValidationIssue]:
    issues: List[ValidationIssue] = []
    if not steps:
        issues.append(
            ValidationIssue(field="steps", message="Workflow must have at least one step")
        )
        return issues
    if len(steps) > MAX_STEPS_PER_WORKFLOW:
        issues.append(
            ValidationIssue(
                field="steps",
                message=f"Maximum {MAX_STEPS_PER_WORKFLOW} steps allowed",
            )
        )

    seen: set[str] = set()
    for index, step in enumerate(steps):
        if step.id in seen:
            issues.append(
                ValidationIssue(
                    field=f"steps.{index}.id",
                    message=f"Duplicate step id: {step.id}",
                    step_id=step.id,
                )
            )
        seen.add(step.id)

    for index, step in enumerate(steps):
        prefix = f"steps.{index}"
        if not step.name or not step.name.strip():
            issues.append(
                ValidationIssue(
                    field=f"{prefix}.name", message="Step name is required", step_id=step.id
                )
            )
        elif len(step.name) > MAX_NAME_LENGTH:
            issues.append(
                ValidationIssue(
                    field=f"{prefix}.name",
                    message=f"Step name must be {MAX_NAME_LENGTH} characters or less",
                    step_id=step.id,
                )
            )

        for target in step.referenced_steps():
            if target not in seen:
                issues.append(
                    ValidationIssue(
                        field=prefix,
                        message=f'Step "{step.name}" references non-existent step: {target}',
                        step_id=step.id,
                    )
                )

        if isinstance(step, AgentTaskStep) and not (step.agent_id or "").strip():
            issues.append(
                ValidationIssue(
                    field=f"{prefix}.agentId",
                    message=f'Agent task step "{step.name}" requires an agentId',
                    step_id=step.id,
                )
            )
        if isinstance(step, ConditionStep) and not (step.condition or "").strip():
            issues.append(
                ValidationIssue(
                    field=f"{prefix}.condition",
                    message=f'Condition step "{step.name}" requires a condition',
                    step_id=step.id,
                )
            )
        if isinstance(step, (ParallelStep, SequentialStep)) and not step.branches:
            issues.append(
                ValidationIssue(
                    field=f"{prefix}.branches",
                    message=f'{step.type.capitalize()} step "{step.name}" requires branches',
                    step_id=step.id,
                )
            )
    return issues


def _check_triggers(triggers: Sequence[Trigger]) -> List[ValidationIssue]:
    return [
        ValidationIssue(
            field=f"triggers.{index}.condition",
            message=f'Trigger of type "{trigger.type}" requires a condition',
        )
        for index, trigger in enumerate(triggers)
        if not trigger.condition.strip()
    ]


def find_cycle(steps: Sequence[Step]) -> Optional[List[str]]:
    """Return the step ids of the first cycle found, or ``None``.

    Every edge kind is followed: successors, condition ``otherwise`` targets
    and fan-out branches. References to unknown ids are ignored here.
    """

    graph: Dict[str, List[str]] = {step.id: step.referenced_steps() for step in steps}
    state: Dict[str, int] = {}  # 1 = on the current path, 2 = finished
    path: List[str] = []

    def visit(node: str) -> Optional[List[str]]:
        state[node] = 1
        path.append(node)
        for target in graph.get(node, []):
            if target not in graph:
                continue
            if state.get(target) == 1:
                return path[path.index(target):] + [target]
            if target not in state:
                found = visit(target)
                if found:
                    return found
        path.pop()
        state[node] = 2
        return None

    for step_id in graph:
        if step_id not in state:
            found = visit(step_id)
            if found:
                return found
    return None


def validate_definition(
    definition: Union[CreateWorkflowRequest, WorkflowDefinition],
) -> List[ValidationIssue]:
    """Return every structural issue in ``definition``; empty when valid.

    The result depends only on the definition, so validating the same
    definition twice yields the same list.
    """

    issues: List[ValidationIssue] = []
    if not definition.name or not definition.name.strip():
        issues.append(ValidationIssue(field="name", message="Name is required"))
    elif len(definition.name) > MAX_NAME_LENGTH:
        issues.append(
            ValidationIssue(
                field="name",
                message=f"Name must be {MAX_NAME_LENGTH} characters or less",
            )
        )
    if definition.description and len(definition.description) > MAX_DESCRIPTION_LENGTH:
        issues.append(
            ValidationIssue(
                field="description",
                message=f"Description must be {MAX_DESCRIPTION_LENGTH} characters or less",
            )
        )

    issues.extend(_check_steps(definition.steps))
    issues.extend(_check_triggers(definition.triggers))

    cycle = find_cycle(definition.steps)
    if cycle:
        issues.append(
            ValidationIssue(
                field="steps",
                message=f"Cycle detected: {' -> '.join(cycle)}",
                step_id=cycle[0],
            )
        )
    return issues


def issues_from_pydantic(exc: ValidationError) -> List[ValidationIssue]:
    """Flatten a pydantic error into the same per-field issue list."""

    return [
        ValidationIssue(
            field=".".join(str(part) for part in error["loc"]) or "body",
            message=error["msg"],
        )
        for error in exc.errors()
    ]
