"""PostgreSQL implementation of the workflow repository."""

from __future__ import annotations

from typing import Any, Optional

import asyncpg

from ..contracts import ExecutionStatus, WorkflowDefinition, WorkflowExecution
from .repository import WorkflowRepository


class PostgresWorkflowRepository(WorkflowRepository):
    """Persist workflows and executions using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS stepwise_workflows (
                id TEXT PRIMARY KEY,
                owner TEXT NOT NULL,
                is_active BOOLEAN NOT NULL,
                created_at TIMESTAMPTZ NOT NULL,
                document JSONB NOT NULL
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS stepwise_executions (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                owner TEXT NOT NULL,
                status TEXT NOT NULL,
                started_at TIMESTAMPTZ NOT NULL,
                document JSONB NOT NULL
            )
            """
        )

    # ------------------------------------------------------------------
    async def create_workflow(self, workflow: WorkflowDefinition) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                "INSERT INTO stepwise_workflows (id, owner, is_active, created_at, document) VALUES ($1, $2, $3, $4, $5)",
                workflow.id,
                workflow.owner,
                workflow.is_active,
                workflow.created_at,
                workflow.model_dump_json(),
            )
        finally:
            await conn.close()

    async def get_workflow(self, workflow_id: str) -> WorkflowDefinition | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT document::text AS document FROM stepwise_workflows WHERE id = $1",
                workflow_id,
            )
        finally:
            await conn.close()
        if not row:
            return None
        return WorkflowDefinition.model_validate_json(row["document"])

    async def list_workflows(
        self, owner: Optional[str] = None
    ) -> list[WorkflowDefinition]:
        conn = await self._connect()
        try:
            if owner is None:
                rows = await conn.fetch(
                    "SELECT document::text AS document FROM stepwise_workflows ORDER BY created_at"
                )
            else:
                rows = await conn.fetch(
                    "SELECT document::text AS document FROM stepwise_workflows WHERE owner = $1 ORDER BY created_at",
                    owner,
                )
        finally:
            await conn.close()
        return [WorkflowDefinition.model_validate_json(r["document"]) for r in rows]

    async def update_workflow(self, workflow: WorkflowDefinition) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                "UPDATE stepwise_workflows SET is_active = $1, document = $2 WHERE id = $3",
                workflow.is_active,
                workflow.model_dump_json(),
                workflow.id,
            )
        finally:
            await conn.close()

    async def save_execution(self, execution: WorkflowExecution) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO stepwise_executions (id, workflow_id, owner, status, started_at, document)
                VALUES ($1, $2, $3, $4, $5, $6)
                ON CONFLICT (id) DO UPDATE SET status = EXCLUDED.status, document = EXCLUDED.document
                """,
                execution.id,
                execution.workflow_id,
                execution.owner,
                execution.status.value,
                execution.started_at,
                execution.model_dump_json(),
            )
        finally:
            await conn.close()

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT document::text AS document FROM stepwise_executions WHERE id = $1",
                execution_id,
            )
        finally:
            await conn.close()
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
        for column, value in (
            ("workflow_id", workflow_id),
            ("owner", owner),
            ("status", ExecutionStatus(status).value if status is not None else None),
        ):
            if value is not None:
                params.append(value)
                clauses.append(f"{column} = ${len(params)}")
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                f"SELECT document::text AS document FROM stepwise_executions{where} ORDER BY started_at DESC",
                *params,
            )
        finally:
            await conn.close()
        return [WorkflowExecution.model_validate_json(r["document"]) for r in rows]
