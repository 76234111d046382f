"""Helpers for reading workflow definitions and formatting records for the CLI."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

import yaml

from ..contracts import WorkflowDefinition, WorkflowExecution


def _load_definition_file(path: Path) -> Dict[str, Any]:
    """Read a YAML or JSON workflow definition into a plain dict."""

    text = path.read_text()
    if path.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a workflow mapping")
    return data


def _parse_input(raw: str | None) -> Dict[str, Any]:
    if not raw:
        return {}
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("--input must be a JSON object")
    return data


def _format_workflow_line(workflow: WorkflowDefinition) -> str:
    state = "active" if workflow.is_active else "inactive"
    return f"{workflow.id}\t{workflow.name}\t{state}\t{len(workflow.steps)} steps"


def _format_execution_line(execution: WorkflowExecution) -> str:
    return (
        f"{execution.id}\t{execution.workflow_id}\t{execution.status.value}"
        f"\t{execution.started_at.isoformat()}"
    )
