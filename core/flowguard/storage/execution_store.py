"""
Execution Store - persistence for execution records.

The engine talks to an ExecutionStore, never to a dict, so record state
outlives the process when a durable backend is used and several engine
processes can share one store.

Backends:
- InMemoryExecutionStore: dict-backed, for tests and single-process use
- FileExecutionStore: one JSON file per record, atomic writes

    {base_path}/
      records/
        {execution_id}/
          {node_id}.json

Stores hand out copies. A caller that mutates a record must save() it
back; the engine serializes those writes per key.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import ValidationError

from flowguard.errors import StorageError
from flowguard.schemas.execution import ExecutionRecord, ExecutionStatus, RecordId
from flowguard.utils.io import atomic_write

logger = logging.getLogger(__name__)


class ExecutionStore(ABC):
    """Repository interface for execution records."""

    @abstractmethod
    async def get(self, execution_id: str, node_id: str) -> ExecutionRecord | None:
        """Load a record, or None if it does not exist."""

    @abstractmethod
    async def save(self, record: ExecutionRecord) -> None:
        """Create or replace a record."""

    @abstractmethod
    async def delete(self, execution_id: str, node_id: str) -> bool:
        """Delete a record. Returns True if it existed."""

    @abstractmethod
    async def list(
        self,
        status: ExecutionStatus | None = None,
        execution_id: str | None = None,
        workflow_id: str | None = None,
    ) -> list[ExecutionRecord]:
        """List records matching every given filter, oldest first."""


def _matches(
    record: ExecutionRecord,
    status: ExecutionStatus | None,
    execution_id: str | None,
    workflow_id: str | None,
) -> bool:
    if status is not None and record.status != status:
        return False
    if execution_id is not None and record.execution_id != execution_id:
        return False
    if workflow_id is not None and record.workflow_id != workflow_id:
        return False
    return True


class InMemoryExecutionStore(ExecutionStore):
    """Process-local store backed by a dict."""

    def __init__(self):
        self._records: dict[RecordId, ExecutionRecord] = {}

    async def get(self, execution_id: str, node_id: str) -> ExecutionRecord | None:
        record = self._records.get((execution_id, node_id))
        return record.model_copy(deep=True) if record else None

    async def save(self, record: ExecutionRecord) -> None:
        self._records[record.ident] = record.model_copy(deep=True)

    async def delete(self, execution_id: str, node_id: str) -> bool:
        return self._records.pop((execution_id, node_id), None) is not None

    async def list(
        self,
        status: ExecutionStatus | None = None,
        execution_id: str | None = None,
        workflow_id: str | None = None,
    ) -> list[ExecutionRecord]:
        records = [
            r.model_copy(deep=True)
            for r in self._records.values()
            if _matches(r, status, execution_id, workflow_id)
        ]
        records.sort(key=lambda r: r.created_at)
        return records

    def __len__(self) -> int:
        return len(self._records)


class FileExecutionStore(ExecutionStore):
    """
    Durable store writing one JSON document per record.

    Writes go through a temp file + rename so a crash never leaves a
    truncated record behind. Blocking file I/O runs in a worker thread.
    """

    def __init__(self, base_path: str | Path):
        self.base_path = Path(base_path)
        self.records_dir = self.base_path / "records"

    @staticmethod
    def _validate_key(key: str) -> None:
        """
        Reject identifiers that could escape the records directory.

        Raises:
            StorageError: If key is empty or contains path syntax
        """
        if not key or key.strip() == "":
            raise StorageError("Key cannot be empty")
        if "/" in key or "\\" in key:
            raise StorageError(f"Invalid key format: path separators not allowed in '{key}'")
        if ".." in key or key.startswith("."):
            raise StorageError(f"Invalid key format: path traversal detected in '{key}'")
        if "\x00" in key:
            raise StorageError("Invalid key format: null bytes not allowed")

    def get_record_path(self, execution_id: str, node_id: str) -> Path:
        self._validate_key(execution_id)
        self._validate_key(node_id)
        return self.records_dir / execution_id / f"{node_id}.json"

    @staticmethod
    def _load(path: Path) -> ExecutionRecord:
        try:
            return ExecutionRecord.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            raise StorageError(f"Failed to load execution record {path}: {e}") from e

    async def get(self, execution_id: str, node_id: str) -> ExecutionRecord | None:
        path = self.get_record_path(execution_id, node_id)

        def _read():
            if not path.exists():
                return None
            return self._load(path)

        return await asyncio.to_thread(_read)

    async def save(self, record: ExecutionRecord) -> None:
        path = self.get_record_path(record.execution_id, record.node_id)

        def _write():
            path.parent.mkdir(parents=True, exist_ok=True)
            with atomic_write(path) as f:
                f.write(record.model_dump_json(indent=2))

        await asyncio.to_thread(_write)
        logger.debug(f"Wrote execution record {record.key}")

    async def delete(self, execution_id: str, node_id: str) -> bool:
        path = self.get_record_path(execution_id, node_id)

        def _delete():
            if not path.exists():
                return False
            path.unlink()
            # Drop the execution directory once its last record is gone
            if not any(path.parent.iterdir()):
                shutil.rmtree(path.parent, ignore_errors=True)
            return True

        return await asyncio.to_thread(_delete)

    async def list(
        self,
        status: ExecutionStatus | None = None,
        execution_id: str | None = None,
        workflow_id: str | None = None,
    ) -> list[ExecutionRecord]:
        if execution_id is not None:
            self._validate_key(execution_id)

        def _scan():
            records: list[ExecutionRecord] = []
            if not self.records_dir.exists():
                return records

            if execution_id is not None:
                exec_dirs = [self.records_dir / execution_id]
            else:
                exec_dirs = [d for d in self.records_dir.iterdir() if d.is_dir()]

            for exec_dir in exec_dirs:
                if not exec_dir.is_dir():
                    continue
                for path in exec_dir.glob("*.json"):
                    try:
                        record = self._load(path)
                    except StorageError as e:
                        logger.warning(str(e))
                        continue
                    if _matches(record, status, execution_id, workflow_id):
                        records.append(record)

            records.sort(key=lambda r: r.created_at)
            return records

        return await asyncio.to_thread(_scan)
