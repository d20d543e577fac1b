"""PostgreSQL checkpoint backend using asyncpg.

Direct SQL, no ORM: one row per job with the payload in JSONB. Selected with
CHECKPOINT_BACKEND=postgres; the table is created on first use.
"""

from __future__ import annotations

import json
from typing import Any

import asyncpg

from patent_risk.checkpoint import CheckpointStore

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS checkpoints (
    id TEXT PRIMARY KEY,
    timestamp BIGINT NOT NULL,
    data JSONB NOT NULL DEFAULT '{}'::jsonb,
    processed JSONB NOT NULL DEFAULT '[]'::jsonb,
    completed BOOLEAN NOT NULL DEFAULT false
)
"""


class PostgresCheckpointStore(CheckpointStore):
    def __init__(self, database_url: str) -> None:
        self._database_url = database_url
        self._pool: asyncpg.Pool | None = None

    async def get_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            self._pool = await asyncpg.create_pool(self._database_url, min_size=1, max_size=4)
            await self._pool.execute(_CREATE_TABLE)
        return self._pool

    async def close(self) -> None:
        if self._pool:
            await self._pool.close()
            self._pool = None

    async def exists(self, job_id: str) -> bool:
        pool = await self.get_pool()
        return bool(await pool.fetchval("SELECT EXISTS(SELECT 1 FROM checkpoints WHERE id = $1)", job_id))

    async def _read(self, job_id: str) -> dict[str, Any] | None:
        pool = await self.get_pool()
        row = await pool.fetchrow(
            "SELECT id, timestamp, data, processed, completed FROM checkpoints WHERE id = $1",
            job_id,
        )
        if row is None:
            return None
        return {
            "id": row["id"],
            "timestamp": row["timestamp"],
            "data": json.loads(row["data"]),
            "processed": json.loads(row["processed"]),
            "completed": row["completed"],
        }

    async def _write(self, job_id: str, record: dict[str, Any]) -> None:
        pool = await self.get_pool()
        # Single-statement upsert: the row is replaced as a whole or not at all.
        await pool.execute(
            """
            INSERT INTO checkpoints (id, timestamp, data, processed, completed)
            VALUES ($1, $2, $3::jsonb, $4::jsonb, $5)
            ON CONFLICT (id) DO UPDATE SET
                timestamp = EXCLUDED.timestamp,
                data = EXCLUDED.data,
                processed = EXCLUDED.processed,
                completed = EXCLUDED.completed
            """,
            job_id,
            int(record.get("timestamp") or 0),
            json.dumps(record.get("data")),
            json.dumps(record.get("processed") or []),
            bool(record.get("completed")),
        )
