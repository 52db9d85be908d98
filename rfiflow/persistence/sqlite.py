"""SQLite implementation of the RFI repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from ..errors import ConcurrentUpdateError, PersistenceError, RfiNotFoundError
from ..models import ActivityEntry, AuditEntry, RfiRecord
from ..states import Status
from .repository import ANY_STAGE, RfiRepository, stage_value


def _iso(value: datetime | None) -> str | None:
    # Fixed-width UTC text so due dates compare correctly as strings.
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")


class SQLiteRfiRepository(RfiRepository):
    """Persist RFIs and their audit trail using SQLite."""

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
            CREATE TABLE IF NOT EXISTS rfis (
                id TEXT PRIMARY KEY,
                status TEXT NOT NULL,
                stage TEXT,
                due_date TEXT,
                data TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS audit_log (
                sequence INTEGER PRIMARY KEY AUTOINCREMENT,
                rfi_id TEXT NOT NULL,
                timestamp TEXT NOT NULL,
                actor_id TEXT NOT NULL,
                action_kind TEXT NOT NULL,
                from_state TEXT,
                to_state TEXT,
                detail TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS activity_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                rfi_id TEXT,
                actor_id TEXT NOT NULL,
                activity_type TEXT NOT NULL,
                message TEXT NOT NULL,
                details TEXT,
                created_at TEXT NOT NULL
            )
            """
        )
        cur.execute("CREATE INDEX IF NOT EXISTS idx_audit_rfi ON audit_log (rfi_id)")
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()
            return cur.rowcount

    def _insert(self, query: str, *params: Any) -> int:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()
            return cur.lastrowid

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

    def _update(
        self,
        rfi_id: str,
        fields: dict[str, Any],
        expected_status: Optional[Status],
        expected_stage: Any,
    ) -> RfiRecord:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute("SELECT data FROM rfis WHERE id = ?", (rfi_id,))
            row = cur.fetchone()
            if row is None:
                raise RfiNotFoundError(rfi_id)
            current = RfiRecord.from_json(row["data"])
            if expected_status is not None and current.status != expected_status:
                raise ConcurrentUpdateError(rfi_id, Status(expected_status).value)
            if expected_stage is not ANY_STAGE and current.stage != expected_stage:
                raise ConcurrentUpdateError(rfi_id, stage_value(expected_stage), "stage")
            updated = current.merged(fields)
            cur.execute(
                """
                UPDATE rfis SET status = ?, stage = ?, due_date = ?, data = ?
                WHERE id = ? AND status = ? AND stage IS ?
                """,
                (
                    updated.status.value,
                    stage_value(updated.stage),
                    _iso(updated.due_date),
                    updated.to_json(),
                    rfi_id,
                    current.status.value,
                    stage_value(current.stage),
                ),
            )
            if cur.rowcount == 0:
                self._conn.rollback()
                raise ConcurrentUpdateError(rfi_id, current.status.value)
            self._conn.commit()
            return updated

    # ------------------------------------------------------------------
    # Repository API
    async def create_rfi(self, record: RfiRecord) -> RfiRecord:
        try:
            await asyncio.to_thread(
                self._execute,
                "INSERT INTO rfis (id, status, stage, due_date, data) VALUES (?, ?, ?, ?, ?)",
                record.id,
                record.status.value,
                record.stage.value if record.stage else None,
                _iso(record.due_date),
                record.to_json(),
            )
        except sqlite3.IntegrityError as exc:
            raise PersistenceError(f"RFI '{record.id}' already exists") from exc
        return record

    async def get_rfi(self, rfi_id: str) -> RfiRecord | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT data FROM rfis WHERE id = ?", rfi_id
        )
        if not row:
            return None
        return RfiRecord.from_json(row["data"])

    async def list_rfis(
        self,
        status: Optional[Status] = None,
        due_before: Optional[datetime] = None,
    ) -> list[RfiRecord]:
        query = "SELECT data FROM rfis WHERE 1 = 1"
        params: list[Any] = []
        if status is not None:
            query += " AND status = ?"
            params.append(Status(status).value)
        if due_before is not None:
            query += " AND due_date IS NOT NULL AND due_date < ?"
            params.append(_iso(due_before))
        rows = await asyncio.to_thread(self._fetchall, query + " ORDER BY id", *params)
        return [RfiRecord.from_json(r["data"]) for r in rows]

    async def update_rfi(
        self,
        rfi_id: str,
        fields: dict[str, Any],
        expected_status: Optional[Status] = None,
        expected_stage: Any = ANY_STAGE,
    ) -> RfiRecord:
        return await asyncio.to_thread(
            self._update, rfi_id, fields, expected_status, expected_stage
        )

    async def delete_rfi(self, rfi_id: str) -> bool:
        deleted = await asyncio.to_thread(
            self._execute, "DELETE FROM rfis WHERE id = ?", rfi_id
        )
        return deleted > 0

    async def insert_audit(self, entry: AuditEntry) -> AuditEntry:
        sequence = await asyncio.to_thread(
            self._insert,
            """
            INSERT INTO audit_log
                (rfi_id, timestamp, actor_id, action_kind, from_state, to_state, detail)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            entry.rfi_id,
            _iso(entry.timestamp),
            entry.actor_id,
            entry.action_kind.value,
            entry.from_state,
            entry.to_state,
            entry.detail,
        )
        return entry.model_copy(update={"sequence": sequence})

    async def list_audit(self, rfi_id: str) -> list[AuditEntry]:
        rows = await asyncio.to_thread(
            self._fetchall,
            """
            SELECT sequence, rfi_id, timestamp, actor_id, action_kind, from_state, to_state, detail
            FROM audit_log WHERE rfi_id = ? ORDER BY timestamp, sequence
            """,
            rfi_id,
        )
        return [
            AuditEntry(
                sequence=r["sequence"],
                rfi_id=r["rfi_id"],
                timestamp=datetime.fromisoformat(r["timestamp"]),
                actor_id=r["actor_id"],
                action_kind=r["action_kind"],
                from_state=r["from_state"],
                to_state=r["to_state"],
                detail=r["detail"] or "",
            )
            for r in rows
        ]

    async def clear_audit(self, rfi_id: str | None = None) -> int:
        if rfi_id is None:
            return await asyncio.to_thread(self._execute, "DELETE FROM audit_log")
        return await asyncio.to_thread(
            self._execute, "DELETE FROM audit_log WHERE rfi_id = ?", rfi_id
        )

    async def insert_activity(self, entry: ActivityEntry) -> ActivityEntry:
        row_id = await asyncio.to_thread(
            self._insert,
            """
            INSERT INTO activity_log
                (rfi_id, actor_id, activity_type, message, details, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            entry.rfi_id,
            entry.actor_id,
            entry.activity_type,
            entry.message,
            json.dumps(entry.details, default=str),
            _iso(entry.created_at),
        )
        return entry.model_copy(update={"id": row_id})

    async def list_activity(
        self, rfi_id: str | None = None, limit: int | None = None
    ) -> list[ActivityEntry]:
        query = (
            "SELECT id, rfi_id, actor_id, activity_type, message, details, created_at "
            "FROM activity_log"
        )
        params: list[Any] = []
        if rfi_id is not None:
            query += " WHERE rfi_id = ?"
            params.append(rfi_id)
        query += " ORDER BY id DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        rows = await asyncio.to_thread(self._fetchall, query, *params)
        return [
            ActivityEntry(
                id=r["id"],
                rfi_id=r["rfi_id"],
                actor_id=r["actor_id"],
                activity_type=r["activity_type"],
                message=r["message"],
                details=json.loads(r["details"]) if r["details"] else {},
                created_at=datetime.fromisoformat(r["created_at"]),
            )
            for r in rows
        ]
