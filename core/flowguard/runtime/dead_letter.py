"""
Dead-Letter Manager - operator view over executions that were abandoned.

Every operation works on records with status ``dlq``. Replays and
deletions go through the ExecutionEngine so they obey the same per-record
locking, cancellation and at-most-one-in-flight rules as normal retries.
"""

from __future__ import annotations

import asyncio
import csv
import io
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TextIO

from flowguard.errors import DeadLetterNotFoundError
from flowguard.retry.errors import display_category
from flowguard.runtime.engine import ExecutionEngine
from flowguard.runtime.event_bus import EventType, ExecutionEvent
from flowguard.schemas.execution import ExecutionRecord, ExecutionStatus

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = ["executionId", "nodeId", "lastError", "attempts", "createdAt", "updatedAt"]
EXPORT_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def _matches_text(record: ExecutionRecord, text: str) -> bool:
    needle = text.lower()
    haystacks = (record.node_id, record.execution_id, record.last_error or "")
    return any(needle in value.lower() for value in haystacks)


class DeadLetterManager:
    """
    List, replay, delete and export dead-lettered executions.

    Example:
        dlq = DeadLetterManager(engine)

        for record in await dlq.list("gmail"):
            print(record.key, record.last_error)

        await dlq.replay("exec_1", "send_mail")
        removed = await dlq.purge_all()
    """

    def __init__(
        self,
        engine: ExecutionEngine,
        replay_interval_s: float | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ):
        self._engine = engine
        self._store = engine.store
        self._replay_interval_s = (
            engine.config.replay_interval_s if replay_interval_s is None else replay_interval_s
        )
        self._sleep = sleep

    async def list(self, filter: str | None = None) -> list[ExecutionRecord]:
        """
        List dead-lettered records, oldest first.

        Args:
            filter: Case-insensitive text matched against node id,
                execution id and last error
        """
        records = await self._store.list(status=ExecutionStatus.DLQ)
        if filter:
            records = [r for r in records if _matches_text(r, filter)]
        return records

    async def get(self, execution_id: str, node_id: str) -> ExecutionRecord:
        """
        Raises:
            DeadLetterNotFoundError: If the record is not in the DLQ
        """
        record = await self._store.get(execution_id, node_id)
        if record is None or record.status != ExecutionStatus.DLQ:
            raise DeadLetterNotFoundError(execution_id, node_id)
        return record

    async def replay(self, execution_id: str, node_id: str) -> ExecutionRecord:
        """Send one record back to pending. Idempotent while it is pending or retrying."""
        return await self._engine.replay(execution_id, node_id)

    async def delete(self, execution_id: str, node_id: str) -> None:
        """
        Permanently remove a dead-lettered record.

        Raises:
            DeadLetterNotFoundError: If the record is not in the DLQ
        """
        deleted = await self._engine.delete(
            execution_id, node_id, only_status=ExecutionStatus.DLQ
        )
        if not deleted:
            raise DeadLetterNotFoundError(execution_id, node_id)

    async def purge_all(self) -> int:
        """
        Delete every dead-lettered record. Returns the number removed.

        A record replayed while the purge runs is no longer in the DLQ and is kept.
        """
        removed = 0
        for record in await self._store.list(status=ExecutionStatus.DLQ):
            if await self._engine.delete(
                record.execution_id, record.node_id, only_status=ExecutionStatus.DLQ
            ):
                removed += 1

        bus = self._engine.event_bus
        if bus is not None:
            await bus.publish(ExecutionEvent(type=EventType.DLQ_PURGED, data={"removed": removed}))
        logger.warning(f"Purged {removed} record(s) from the DLQ")
        return removed

    async def replay_all(
        self,
        filter: str | None = None,
        interval_s: float | None = None,
    ) -> int:
        """
        Replay every listed record, one at a time.

        Replays are spaced by ``interval_s`` so a large DLQ does not hit
        the executor all at once. A record that leaves the DLQ while the
        batch runs is skipped.

        Returns:
            Number of records replayed
        """
        interval_s = self._replay_interval_s if interval_s is None else interval_s
        records = await self.list(filter)
        replayed = 0

        for index, record in enumerate(records):
            if index and interval_s > 0:
                await self._sleep_for(interval_s)
            try:
                await self._engine.replay(record.execution_id, record.node_id)
            except DeadLetterNotFoundError:
                logger.info(f"Skipping {record.key}: no longer in the DLQ")
                continue
            replayed += 1

        logger.info(f"Replayed {replayed}/{len(records)} DLQ record(s)")
        return replayed

    async def _sleep_for(self, seconds: float) -> None:
        if self._sleep is not None:
            await self._sleep(seconds)
        else:
            await asyncio.sleep(seconds)

    # === EXPORT & SUMMARY ===

    async def export_rows(self, filter: str | None = None) -> list[dict[str, Any]]:
        """Flat rows for offline analysis, one per dead-lettered record."""
        return [
            {
                "executionId": record.execution_id,
                "nodeId": record.node_id,
                "lastError": record.last_error or "",
                "attempts": record.attempt_count,
                "createdAt": record.created_at.strftime(EXPORT_TIME_FORMAT),
                "updatedAt": record.updated_at.strftime(EXPORT_TIME_FORMAT),
            }
            for record in await self.list(filter)
        ]

    async def export_csv(
        self,
        destination: str | Path | TextIO | None = None,
        filter: str | None = None,
    ) -> str:
        """
        Export the DLQ as CSV.

        Args:
            destination: File path or open text stream; omitted returns the text only
            filter: Same text filter as list()

        Returns:
            The CSV text
        """
        rows = await self.export_rows(filter)
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=EXPORT_COLUMNS)
        writer.writeheader()
        writer.writerows(rows)
        text = buffer.getvalue()

        if isinstance(destination, str | Path):
            path = Path(destination)

            def _write():
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(text, encoding="utf-8", newline="")

            await asyncio.to_thread(_write)
            logger.info(f"Exported {len(rows)} DLQ record(s) to {path}")
        elif destination is not None:
            destination.write(text)
        return text

    async def summary(self) -> dict[str, Any]:
        """Counts of dead-lettered records per error category and per node."""
        records = await self.list()
        by_category: dict[str, int] = {}
        by_node: dict[str, int] = {}
        for record in records:
            category = display_category(record.last_error)
            by_category[category] = by_category.get(category, 0) + 1
            by_node[record.node_id] = by_node.get(record.node_id, 0) + 1

        return {
            "total": len(records),
            "by_category": by_category,
            "by_node": by_node,
        }
