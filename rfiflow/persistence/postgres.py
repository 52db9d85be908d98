"""PostgreSQL implementation of the RFI repository."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime
from typing import Any, Optional

import asyncpg

from ..errors import ConcurrentUpdateError, PersistenceError, RfiNotFoundError
from ..models import ActivityEntry, AuditEntry, RfiRecord
from ..states import Status
from .repository import ANY_STAGE, RfiRepository, stage_value


class PostgresRfiRepository(RfiRepository):
    """Persist RFIs and their audit trail using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False
        self._schema_lock = asyncio.Lock()

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            try:
                async with self._schema_lock:
                    if not self._initialized:
                        await self._ensure_schema(conn)
                        self._initialized = True
            except BaseException:
                await conn.close()
                raise
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS rfis (
                id TEXT PRIMARY KEY,
                status TEXT NOT NULL,
                stage TEXT,
                due_date TIMESTAMPTZ,
                data JSONB NOT NULL
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS rfi_audit_log (
                sequence BIGSERIAL PRIMARY KEY,
                rfi_id TEXT NOT NULL,
                timestamp TIMESTAMPTZ NOT NULL,
                actor_id TEXT NOT NULL,
                action_kind TEXT NOT NULL,
                from_state TEXT,
                to_state TEXT,
                detail TEXT
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS rfi_activity (
                id BIGSERIAL PRIMARY KEY,
                rfi_id TEXT,
                actor_id TEXT NOT NULL,
                activity_type TEXT NOT NULL,
                message TEXT NOT NULL,
                details JSONB,
                created_at TIMESTAMPTZ NOT NULL
            )
            """
        )

    # ------------------------------------------------------------------
    async def create_rfi(self, record: RfiRecord) -> RfiRecord:
        conn = await self._connect()
        try:
            await conn.execute(
                "INSERT INTO rfis (id, status, stage, due_date, data) VALUES ($1, $2, $3, $4, $5)",
                record.id,
                record.status.value,
                record.stage.value if record.stage else None,
                record.due_date,
                record.to_json(),
            )
        except asyncpg.UniqueViolationError as exc:
            raise PersistenceError(f"RFI '{record.id}' already exists") from exc
        finally:
            await conn.close()
        return record

    async def get_rfi(self, rfi_id: str) -> RfiRecord | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow("SELECT data FROM rfis WHERE id = $1", rfi_id)
        finally:
            await conn.close()
        if not row:
            return None
        return RfiRecord.from_json(row["data"])

    async def list_rfis(
        self,
        status: Optional[Status] = None,
        due_before: Optional[datetime] = None,
    ) -> list[RfiRecord]:
        query = "SELECT data FROM rfis WHERE TRUE"
        params: list[Any] = []
        if status is not None:
            params.append(Status(status).value)
            query += f" AND status = ${len(params)}"
        if due_before is not None:
            params.append(due_before)
            query += f" AND due_date IS NOT NULL AND due_date < ${len(params)}"
        conn = await self._connect()
        try:
            rows = await conn.fetch(query + " ORDER BY id", *params)
        finally:
            await conn.close()
        return [RfiRecord.from_json(r["data"]) for r in rows]

    async def update_rfi(
        self,
        rfi_id: str,
        fields: dict[str, Any],
        expected_status: Optional[Status] = None,
        expected_stage: Any = ANY_STAGE,
    ) -> RfiRecord:
        conn = await self._connect()
        try:
            async with conn.transaction():
                row = await conn.fetchrow(
                    "SELECT data FROM rfis WHERE id = $1 FOR UPDATE", rfi_id
                )
                if row is None:
                    raise RfiNotFoundError(rfi_id)
                current = RfiRecord.from_json(row["data"])
                if expected_status is not None and current.status != expected_status:
                    raise ConcurrentUpdateError(rfi_id, Status(expected_status).value)
                if expected_stage is not ANY_STAGE and current.stage != expected_stage:
                    raise ConcurrentUpdateError(rfi_id, stage_value(expected_stage), "stage")
                updated = current.merged(fields)
                result = await conn.execute(
                    """
                    UPDATE rfis SET status = $1, stage = $2, due_date = $3, data = $4
                    WHERE id = $5 AND status = $6 AND stage IS NOT DISTINCT FROM $7
                    """,
                    updated.status.value,
                    stage_value(updated.stage),
                    updated.due_date,
                    updated.to_json(),
                    rfi_id,
                    current.status.value,
                    stage_value(current.stage),
                )
                if result.endswith(" 0"):
                    raise ConcurrentUpdateError(rfi_id, current.status.value)
        finally:
            await conn.close()
        return updated

    async def delete_rfi(self, rfi_id: str) -> bool:
        conn = await self._connect()
        try:
            result = await conn.execute("DELETE FROM rfis WHERE id = $1", rfi_id)
        finally:
            await conn.close()
        return not result.endswith(" 0")

    async def insert_audit(self, entry: AuditEntry) -> AuditEntry:
        conn = await self._connect()
        try:
            sequence = await conn.fetchval(
                """
                INSERT INTO rfi_audit_log
                    (rfi_id, timestamp, actor_id, action_kind, from_state, to_state, detail)
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                RETURNING sequence
                """,
                entry.rfi_id,
                entry.timestamp,
                entry.actor_id,
                entry.action_kind.value,
                entry.from_state,
                entry.to_state,
                entry.detail,
            )
        finally:
            await conn.close()
        return entry.model_copy(update={"sequence": sequence})

    async def list_audit(self, rfi_id: str) -> list[AuditEntry]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                """
                SELECT sequence, rfi_id, timestamp, actor_id, action_kind, from_state, to_state, detail
                FROM rfi_audit_log WHERE rfi_id = $1 ORDER BY timestamp, sequence
                """,
                rfi_id,
            )
        finally:
            await conn.close()
        return [
            AuditEntry(
                sequence=r["sequence"],
                rfi_id=r["rfi_id"],
                timestamp=r["timestamp"],
                actor_id=r["actor_id"],
                action_kind=r["action_kind"],
                from_state=r["from_state"],
                to_state=r["to_state"],
                detail=r["detail"] or "",
            )
            for r in rows
        ]

    async def clear_audit(self, rfi_id: str | None = None) -> int:
        conn = await self._connect()
        try:
            if rfi_id is None:
                result = await conn.execute("DELETE FROM rfi_audit_log")
            else:
                result = await conn.execute(
                    "DELETE FROM rfi_audit_log WHERE rfi_id = $1", rfi_id
                )
        finally:
            await conn.close()
        return int(result.split()[-1])

    async def insert_activity(self, entry: ActivityEntry) -> ActivityEntry:
        conn = await self._connect()
        try:
            row_id = await conn.fetchval(
                """
                INSERT INTO rfi_activity
                    (rfi_id, actor_id, activity_type, message, details, created_at)
                VALUES ($1, $2, $3, $4, $5, $6)
                RETURNING id
                """,
                entry.rfi_id,
                entry.actor_id,
                entry.activity_type,
                entry.message,
                json.dumps(entry.details, default=str),
                entry.created_at,
            )
        finally:
            await conn.close()
        return entry.model_copy(update={"id": row_id})

    async def list_activity(
        self, rfi_id: str | None = None, limit: int | None = None
    ) -> list[ActivityEntry]:
        query = (
            "SELECT id, rfi_id, actor_id, activity_type, message, details, created_at "
            "FROM rfi_activity"
        )
        params: list[Any] = []
        if rfi_id is not None:
            params.append(rfi_id)
            query += f" WHERE rfi_id = ${len(params)}"
        query += " ORDER BY id DESC"
        if limit is not None:
            params.append(limit)
            query += f" LIMIT ${len(params)}"
        conn = await self._connect()
        try:
            rows = await conn.fetch(query, *params)
        finally:
            await conn.close()
        return [
            ActivityEntry(
                id=r["id"],
                rfi_id=r["rfi_id"],
                actor_id=r["actor_id"],
                activity_type=r["activity_type"],
                message=r["message"],
                details=json.loads(r["details"]) if r["details"] else {},
                created_at=r["created_at"],
            )
            for r in rows
        ]
