"""Durable job state keyed by job identity.

`CheckpointStore` holds the job invariants on top of three storage primitives,
so a backend only has to read, write and test for one JSON document per job.
`put` replaces the whole record and starts a new run for the id; within a run
processed markers only grow and `completed` never reverts.

    FileCheckpointStore      one <id>.json per job, atomic replace on write
    MemoryCheckpointStore    dict, for tests and dry runs
    PostgresCheckpointStore  asyncpg, see patent_risk.db

There is no locking across processes. Two runs with the same job identity race
and the last write wins; one writer per identity is an operating constraint.
"""

from __future__ import annotations

import copy
import hashlib
import json
import os
import tempfile
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from patent_risk.config import Settings
from patent_risk.errors import NotFoundError, PersistenceError
from patent_risk.models import Job
from patent_risk.utils.logging import DIM, GREEN, RED, RESET, get_logger

log = get_logger(__name__)

JOB_ID_LENGTH = 8
_PATCHABLE_FIELDS = {"data", "processed", "completed"}


def derive_job_id(explicit_id: str | None, content: str) -> str:
    """Explicit id verbatim, otherwise a short MD5 of the content."""
    if explicit_id:
        return explicit_id
    return hashlib.md5(content.encode("utf-8")).hexdigest()[:JOB_ID_LENGTH]


def _now_ms() -> int:
    return int(time.time() * 1000)


class CheckpointStore(ABC):
    @abstractmethod
    async def exists(self, job_id: str) -> bool: ...

    @abstractmethod
    async def _read(self, job_id: str) -> dict[str, Any] | None: ...

    @abstractmethod
    async def _write(self, job_id: str, record: dict[str, Any]) -> None: ...

    async def get(self, job_id: str) -> Job:
        record = await self._read(job_id)
        if record is None:
            raise NotFoundError(job_id)
        log.debug(f"  {DIM}Checkpoint loaded: {job_id}{RESET}")
        return Job.model_validate(record)

    async def put(self, job_id: str, job: Job) -> Job:
        """Persist the full job as given, replacing whatever was stored.

        A `put` starts a new lifecycle for the id: markers and the completion
        flag come from `job`, not from the prior record. Within a lifecycle
        they only move forward through `append_processed`, `mark_completed`
        and `patch_field`.
        """
        stored = Job(
            id=job_id,
            timestamp=_now_ms(),
            data=job.data,
            processed=_merge_markers([], [str(m) for m in job.processed]),
            completed=job.completed,
        )
        await self._write_or_raise(job_id, stored.model_dump(mode="json"))
        log.info(f"  {GREEN}✓{RESET} Checkpoint saved: {job_id}")
        return stored

    async def patch_field(self, job_id: str, field: str, value: Any) -> None:
        if field not in _PATCHABLE_FIELDS:
            raise PersistenceError(f"Cannot patch checkpoint field '{field}'")
        record = await self._read(job_id)
        if record is None:
            record = Job(id=job_id).model_dump(mode="json")
        if field == "completed" and record.get("completed") and not value:
            raise PersistenceError(f"Checkpoint '{job_id}' is completed and cannot be reopened")
        if field == "processed":
            value = _merge_markers(record.get("processed") or [], [str(v) for v in value])
        record[field] = value
        record["timestamp"] = _now_ms()
        await self._write_or_raise(job_id, record)

    async def append_processed(self, job_id: str, marker: str) -> None:
        """Best effort: a lost marker only means the item is processed again."""
        try:
            record = await self._read(job_id)
            if record is None:
                record = Job(id=job_id).model_dump(mode="json")
            processed = record.get("processed") or []
            if marker in processed:
                return
            record["processed"] = [*processed, marker]
            record["timestamp"] = _now_ms()
            await self._write(job_id, record)
        except Exception as e:
            log.error(f"  {RED}✗{RESET} Failed to mark '{marker}' processed for {job_id}: {e}")

    async def mark_completed(self, job_id: str) -> None:
        """Best effort, same reasoning as `append_processed`."""
        try:
            await self.patch_field(job_id, "completed", True)
            log.info(f"  {GREEN}✓{RESET} Checkpoint marked as completed: {job_id}")
        except Exception as e:
            log.error(f"  {RED}✗{RESET} Failed to mark {job_id} completed: {e}")

    async def close(self) -> None:
        return None

    async def _write_or_raise(self, job_id: str, record: dict[str, Any]) -> None:
        try:
            await self._write(job_id, record)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to save checkpoint '{job_id}': {e}") from e


def _merge_markers(existing: list[str], new: list[str]) -> list[str]:
    merged = list(existing)
    for marker in new:
        if marker not in merged:
            merged.append(marker)
    return merged


class FileCheckpointStore(CheckpointStore):
    """One JSON document per job under `directory`."""

    extension = ".json"

    def __init__(self, directory: str | Path = "data/checkpoints") -> None:
        self.directory = Path(directory)

    def path_for(self, job_id: str) -> Path:
        return self.directory / f"{job_id}{self.extension}"

    async def exists(self, job_id: str) -> bool:
        if not job_id:
            return False
        return self.path_for(job_id).is_file()

    async def _read(self, job_id: str) -> dict[str, Any] | None:
        path = self.path_for(job_id)
        if not path.is_file():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Failed to load checkpoint '{job_id}': {e}") from e

    async def _write(self, job_id: str, record: dict[str, Any]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        # Write beside the target then rename: readers see the old or the new file, never half of one.
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{job_id}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(record, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path_for(job_id))
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


class MemoryCheckpointStore(CheckpointStore):
    def __init__(self, records: dict[str, dict[str, Any]] | None = None) -> None:
        self._records = records if records is not None else {}

    async def exists(self, job_id: str) -> bool:
        return job_id in self._records

    async def _read(self, job_id: str) -> dict[str, Any] | None:
        record = self._records.get(job_id)
        return copy.deepcopy(record) if record is not None else None

    async def _write(self, job_id: str, record: dict[str, Any]) -> None:
        self._records[job_id] = copy.deepcopy(record)


def get_checkpoint_store(settings: Settings) -> CheckpointStore:
    backend = settings.checkpoint_backend.lower()
    if backend == "file":
        return FileCheckpointStore(settings.checkpoint_dir)
    if backend == "memory":
        return MemoryCheckpointStore()
    if backend == "postgres":
        from patent_risk.db import PostgresCheckpointStore

        return PostgresCheckpointStore(settings.database_url)
    raise ValueError(f"Unknown checkpoint backend: {settings.checkpoint_backend}")
