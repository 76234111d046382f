"""SQLite implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from pathlib import Path
from typing import Any, Optional

from ..contracts import ExecutionStatus, WorkflowDefinition, WorkflowExecution
from .repository import WorkflowRepository


class SQLiteWorkflowRepository(WorkflowRepository):
    """Persist workflows and executions using SQLite.

    Each record is stored as its JSON document next to the columns used for
    filtering.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                owner TEXT NOT NULL,
                is_active INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                document TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS executions (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                owner TEXT NOT NULL,
                status TEXT NOT NULL,
                started_at TEXT NOT NULL,
                document TEXT NOT NULL
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    # ------------------------------------------------------------------
    # Repository API
    async def create_workflow(self, workflow: WorkflowDefinition) -> None:
        await asyncio.to_thread(
            self._execute,
            "INSERT INTO workflows (id, owner, is_active, created_at, document) VALUES (?, ?, ?, ?, ?)",
            workflow.id,
            workflow.owner,
            int(workflow.is_active),
            workflow.created_at.isoformat(),
            workflow.model_dump_json(),
        )

    async def get_workflow(self, workflow_id: str) -> WorkflowDefinition | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT document FROM workflows WHERE id = ?", workflow_id
        )
        if not row:
            return None
        return WorkflowDefinition.model_validate_json(row["document"])

    async def list_workflows(
        self, owner: Optional[str] = None
    ) -> list[WorkflowDefinition]:
        if owner is None:
            rows = await asyncio.to_thread(
                self._fetchall, "SELECT document FROM workflows ORDER BY created_at"
            )
        else:
            rows = await asyncio.to_thread(
                self._fetchall,
                "SELECT document FROM workflows WHERE owner = ? ORDER BY created_at",
                owner,
            )
        return [WorkflowDefinition.model_validate_json(r["document"]) for r in rows]

    async def update_workflow(self, workflow: WorkflowDefinition) -> None:
        await asyncio.to_thread(
            self._execute,
            "UPDATE workflows SET is_active = ?, document = ? WHERE id = ?",
            int(workflow.is_active),
            workflow.model_dump_json(),
            workflow.id,
        )

    async def save_execution(self, execution: WorkflowExecution) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO executions (id, workflow_id, owner, status, started_at, document)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET status = excluded.status, document = excluded.document
            """,
            execution.id,
            execution.workflow_id,
            execution.owner,
            execution.status.value,
            execution.started_at.isoformat(),
            execution.model_dump_json(),
        )

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT document FROM executions WHERE id = ?", execution_id
        )
        if not row:
            return None
        return WorkflowExecution.model_validate_json(row["document"])

    async def list_executions(
        self,
        workflow_id: Optional[str] = None,
        owner: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
    ) -> list[WorkflowExecution]:
        clauses: list[str] = []
        params: list[Any] = []
        if workflow_id is not None:
            clauses.append("workflow_id = ?")
            params.append(workflow_id)
        if owner is not None:
            clauses.append("owner = ?")
            params.append(owner)
        if status is not None:
            clauses.append("status = ?")
            params.append(ExecutionStatus(status).value)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT document FROM executions{where} ORDER BY started_at DESC",
            *params,
        )
        return [WorkflowExecution.model_validate_json(r["document"]) for r in rows]
