"""
Execution Engine - retry state machine and scheduler for node executions.

The engine owns the lifecycle of execution records. For every record it:

1. dispatches an attempt to the external executor,
2. applies the attempt's outcome (success, failure or timeout),
3. asks the RetryEvaluator what to do after a failure,
4. arms a timer for the next attempt or moves the record to the DLQ.

Guarantees:
- Single writer per (execution_id, node_id): every mutation of a record
  happens under that record's asyncio.Lock.
- Attempts of one record are strictly sequential: a new attempt is only
  dispatched once the previous outcome has been applied.
- At most one in-flight dispatch per (node_id, idempotency_key), even
  across records that share a key.
- Backoff waits are timer tasks, not polling; a retrying record costs
  nothing until its timer fires.
- Cancelling (deleting a record, execution or workflow) stops its timer
  and discards any outcome that arrives afterwards.
- Bookkeeping is bounded by live work: locks exist while held or awaited,
  generations and settle events while a record is active.

Executors either return the outcome from ``invoke()`` or return None and
call ``report_outcome()`` later (queue-based executors). Timeouts are
reported as failures through the same path.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Protocol

from flowguard.config import EngineConfig
from flowguard.errors import DeadLetterNotFoundError, InvalidTransitionError, RecordNotFoundError
from flowguard.observability import set_trace_context
from flowguard.retry.evaluator import RetryEvaluator
from flowguard.retry.policy import RetryPolicy
from flowguard.runtime.event_bus import EventBus, EventType, ExecutionEvent
from flowguard.schemas.execution import (
    TRANSITIONS,
    Attempt,
    ExecutionRecord,
    ExecutionStatus,
    InvocationOutcome,
    RecordId,
    record_key,
    utcnow,
)
from flowguard.storage.execution_store import ExecutionStore, InMemoryExecutionStore

logger = logging.getLogger(__name__)


class NodeExecutor(Protocol):
    """External capability that runs a node's business logic."""

    async def invoke(
        self,
        node_id: str,
        execution_id: str,
        idempotency_key: str | None,
    ) -> InvocationOutcome | Any | None:
        """
        Run one attempt.

        Return an InvocationOutcome, any other value for success, or None
        if the outcome will be delivered later through report_outcome().
        Raising counts as a failure; TimeoutError counts as a timeout.
        """
        ...


@dataclass
class _RecordLock:
    """A record's lock and the number of coroutines holding or awaiting it."""

    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class ExecutionEngine:
    """
    Drives execution records through pending → retrying → succeeded | dlq.

    Example:
        engine = ExecutionEngine(executor=my_executor)

        await engine.submit("exec_1", "send_mail", idempotency_key="order-42")
        record = await engine.wait_for("exec_1", "send_mail")
        record.status  # ExecutionStatus.SUCCEEDED or ExecutionStatus.DLQ

        await engine.shutdown()
    """

    def __init__(
        self,
        executor: NodeExecutor,
        store: ExecutionStore | None = None,
        event_bus: EventBus | None = None,
        evaluator: RetryEvaluator | None = None,
        config: EngineConfig | None = None,
        default_policy: RetryPolicy | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ):
        """
        Initialize the engine.

        Args:
            executor: External executor invoked for every attempt
            store: Record store (in-memory if omitted)
            event_bus: Optional bus receiving one event per transition
            evaluator: Retry decision function (seed it for reproducible jitter)
            config: Engine configuration (loaded from the config file if omitted)
            default_policy: Policy for records submitted without one
            clock: Returns the current aware datetime
            sleep: Awaitable sleep used for backoff timers (seconds)
        """
        self._executor = executor
        self._store = store or InMemoryExecutionStore()
        self._event_bus = event_bus
        self._evaluator = evaluator or RetryEvaluator()
        self._config = config or EngineConfig()
        self._default_policy = default_policy or self._config.default_policy
        self._clock = clock or utcnow
        self._sleep = sleep

        # Per-record single-writer locks, dropped when the last user leaves
        self._locks: dict[RecordId, _RecordLock] = {}
        # Generation token of each active record; timers and dispatches carry
        # the token they were started with and stand down when it changes
        self._generations: dict[RecordId, object] = {}
        # Pending backoff timers and in-flight dispatches
        self._timers: dict[RecordId, asyncio.Task] = {}
        self._dispatches: dict[RecordId, asyncio.Task] = {}
        # (node_id, idempotency key) -> record holding the dispatch slot
        self._inflight_slots: dict[tuple[str, str], RecordId] = {}
        self._slot_waiters: dict[tuple[str, str], list[RecordId]] = {}
        # Set when a record reaches a terminal status or is removed
        self._settled: dict[RecordId, asyncio.Event] = {}

        self._running = True

    @property
    def store(self) -> ExecutionStore:
        return self._store

    @property
    def event_bus(self) -> EventBus | None:
        return self._event_bus

    @property
    def config(self) -> EngineConfig:
        return self._config

    # === RECORD CREATION ===

    async def submit(
        self,
        execution_id: str,
        node_id: str,
        policy: RetryPolicy | dict[str, Any] | None = None,
        idempotency_key: str | None = None,
        workflow_id: str | None = None,
        node_type: str | None = None,
    ) -> ExecutionRecord:
        """
        Create the record for a node execution and dispatch its first attempt.

        Submitting a record that already exists returns it unchanged and
        dispatches nothing.

        Args:
            execution_id: Workflow run this node execution belongs to
            node_id: Node being executed
            policy: Full policy, partial overrides of the default, or None
            idempotency_key: Caller token reused for every attempt
            workflow_id: Graph the run belongs to (enables cancel_workflow)
            node_type: Registry type of the node, informational

        Returns:
            The created (or existing) record
        """
        if not self._running:
            raise RuntimeError("ExecutionEngine is shut down")

        key = record_key(execution_id, node_id)
        async with self._record_lock((execution_id, node_id)):
            existing = await self._store.get(execution_id, node_id)
            if existing is not None:
                logger.debug(f"Record {key} already exists ({existing.status}), not resubmitting")
                return existing

            now = self._clock()
            record = ExecutionRecord(
                execution_id=execution_id,
                node_id=node_id,
                workflow_id=workflow_id,
                node_type=node_type,
                policy=self._resolve_policy(policy),
                idempotency_key=idempotency_key,
                created_at=now,
                updated_at=now,
            )
            await self._store.save(record)
            await self._emit(EventType.RECORD_CREATED, record)

        logger.info(f"Created execution record {key}")
        self._schedule(execution_id, node_id, 0)
        return record

    def _resolve_policy(self, policy: RetryPolicy | dict[str, Any] | None) -> RetryPolicy:
        if isinstance(policy, RetryPolicy):
            return policy
        return self._default_policy.merged(policy)

    # === SCHEDULING ===

    @asynccontextmanager
    async def _record_lock(self, ident: RecordId) -> AsyncIterator[None]:
        entry = self._locks.get(ident)
        if entry is None:
            entry = self._locks[ident] = _RecordLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if not entry.users:
                del self._locks[ident]

    def _schedule(self, execution_id: str, node_id: str, delay_s: float) -> None:
        """Arm (or re-arm) the dispatch timer of a record."""
        if not self._running:
            return
        ident = (execution_id, node_id)
        previous = self._timers.pop(ident, None)
        if previous is not None and not previous.done():
            previous.cancel()
        generation = self._generations.setdefault(ident, object())
        self._timers[ident] = asyncio.create_task(
            self._fire_timer(execution_id, node_id, delay_s, generation)
        )

    async def _fire_timer(
        self, execution_id: str, node_id: str, delay_s: float, generation: object
    ) -> None:
        ident = (execution_id, node_id)
        try:
            if delay_s > 0:
                await self._sleep_for(delay_s)
        finally:
            if self._timers.get(ident) is asyncio.current_task():
                del self._timers[ident]
        await self._dispatch(execution_id, node_id, generation)

    async def _sleep_for(self, seconds: float) -> None:
        if self._sleep is not None:
            await self._sleep(seconds)
        else:
            await asyncio.sleep(seconds)

    async def _dispatch(self, execution_id: str, node_id: str, generation: object) -> None:
        """Start the next attempt of a record if it is eligible."""
        ident = (execution_id, node_id)
        key = record_key(execution_id, node_id)
        async with self._record_lock(ident):
            if not self._running or self._generations.get(ident) is not generation:
                return
            record = await self._store.get(execution_id, node_id)
            if record is None or not record.is_active:
                return
            if record.in_flight_attempt is not None:
                logger.debug(f"Record {key}: attempt {record.in_flight_attempt} already in flight")
                return

            slot = record.idempotency_slot
            holder = self._inflight_slots.get(slot)
            if holder is not None and holder != ident:
                waiters = self._slot_waiters.setdefault(slot, [])
                if ident not in waiters:
                    waiters.append(ident)
                logger.info(
                    f"Record {key} waits: key {slot[1]!r} is in flight on {record_key(*holder)}"
                )
                return
            self._inflight_slots[slot] = ident

            now = self._clock()
            ordinal = record.next_ordinal
            record.in_flight_attempt = ordinal
            record.in_flight_since = now
            record.next_retry_at = None
            record.touch(now)
            await self._store.save(record)
            await self._emit(EventType.ATTEMPT_DISPATCHED, record, attempt=ordinal)

        self._dispatches[ident] = asyncio.create_task(
            self._run_attempt(execution_id, node_id, record.idempotency_key, ordinal)
        )

    async def _run_attempt(
        self,
        execution_id: str,
        node_id: str,
        idempotency_key: str | None,
        ordinal: int,
    ) -> None:
        """Invoke the executor for one attempt and apply an immediate outcome."""
        ident = (execution_id, node_id)
        key = record_key(execution_id, node_id)
        set_trace_context(execution_id=execution_id, node_id=node_id, attempt=ordinal)
        logger.info(f"Dispatching {key} attempt {ordinal}")

        try:
            result = await self._executor.invoke(node_id, execution_id, idempotency_key)
        except TimeoutError as e:
            result = InvocationOutcome.timed_out(str(e) or None)
        except Exception as e:
            logger.warning(f"Executor raised on {key} attempt {ordinal}: {e}")
            result = InvocationOutcome.failed(e)
        finally:
            if self._dispatches.get(ident) is asyncio.current_task():
                del self._dispatches[ident]

        if result is None:
            # Deferred: the executor reports through report_outcome()
            return
        outcome = result if isinstance(result, InvocationOutcome) else InvocationOutcome.succeeded()
        await self.report_outcome(execution_id, node_id, outcome, attempt=ordinal)

    # === OUTCOMES ===

    async def report_outcome(
        self,
        execution_id: str,
        node_id: str,
        outcome: InvocationOutcome,
        attempt: int | None = None,
    ) -> ExecutionRecord | None:
        """
        Apply the outcome of the in-flight attempt of a record.

        Outcomes for deleted records, for records with nothing in flight, or
        for an attempt other than the one in flight are discarded.

        Args:
            execution_id: Execution of the record
            node_id: Node of the record
            outcome: Success, failure or timeout
            attempt: Ordinal of the attempt the outcome belongs to, if known

        Returns:
            The updated record, or None if the outcome was discarded
        """
        ident = (execution_id, node_id)
        key = record_key(execution_id, node_id)
        retry_delay_s: float | None = None
        woken: list[RecordId] = []

        async with self._record_lock(ident):
            record = await self._store.get(execution_id, node_id)
            if (
                record is None
                or record.in_flight_attempt is None
                or (attempt is not None and attempt != record.in_flight_attempt)
            ):
                logger.debug(f"Discarding stale outcome for {key} (attempt {attempt})")
                await self._emit_discarded(execution_id, node_id, attempt)
                return None

            now = self._clock()
            entry = Attempt(
                attempt=record.in_flight_attempt,
                timestamp=now,
                dispatched_at=record.in_flight_since,
                succeeded=outcome.success,
                error=None if outcome.success else (outcome.error or "Unknown error"),
            )
            record.attempts.append(entry)
            record.in_flight_attempt = None
            record.in_flight_since = None
            woken = self._release_slot(record)

            if outcome.success:
                self._transition(record, ExecutionStatus.SUCCEEDED)
                record.touch(now)
                await self._store.save(record)
                await self._emit(EventType.ATTEMPT_SUCCEEDED, record, attempt=entry.attempt)
                self._settle(ident)
                logger.info(f"Record {key} succeeded on attempt {entry.attempt}")
            else:
                record.last_error = entry.error
                decision = self._evaluator.decide(
                    record.cycle_attempt_count, record.policy, entry.error
                )

                if decision.should_retry:
                    next_at = now + timedelta(milliseconds=decision.delay_ms)
                    entry.next_retry_at = next_at
                    record.next_retry_at = next_at
                    self._transition(record, ExecutionStatus.RETRYING)
                    record.touch(now)
                    await self._store.save(record)
                    await self._emit(
                        EventType.ATTEMPT_FAILED,
                        record,
                        attempt=entry.attempt,
                        error=entry.error,
                        category=decision.category.value,
                    )
                    await self._emit(
                        EventType.RETRY_SCHEDULED,
                        record,
                        attempt=entry.attempt,
                        delay_ms=decision.delay_ms,
                        next_retry_at=next_at.isoformat(),
                    )
                    retry_delay_s = decision.delay_ms / 1000
                    logger.warning(
                        f"Record {key} failed on attempt {entry.attempt}, "
                        f"retrying in {decision.delay_ms:.0f}ms: {entry.error}"
                    )
                else:
                    self._transition(record, ExecutionStatus.FAILED)
                    self._transition(record, ExecutionStatus.DLQ)
                    record.touch(now)
                    await self._store.save(record)
                    await self._emit(
                        EventType.ATTEMPT_FAILED,
                        record,
                        attempt=entry.attempt,
                        error=entry.error,
                        category=decision.category.value,
                    )
                    await self._emit(
                        EventType.MOVED_TO_DLQ,
                        record,
                        attempt=entry.attempt,
                        reason=decision.reason.value if decision.reason else None,
                        error=entry.error,
                    )
                    self._settle(ident)
                    logger.error(
                        f"Record {key} moved to DLQ after {record.cycle_attempt_count} "
                        f"attempt(s) ({decision.reason}): {entry.error}"
                    )

        if retry_delay_s is not None:
            self._schedule(execution_id, node_id, retry_delay_s)
        for waiter in woken:
            self._schedule(*waiter, 0)
        return record

    def _transition(self, record: ExecutionRecord, target: ExecutionStatus) -> None:
        if target not in TRANSITIONS[record.status]:
            raise InvalidTransitionError(record.key, record.status.value, target.value)
        logger.debug(f"Record {record.key}: {record.status} -> {target}")
        record.status = target

    def _release_slot(self, record: ExecutionRecord) -> list[RecordId]:
        """Free the idempotency slot held by a record; return records waiting on it."""
        slot = record.idempotency_slot
        if self._inflight_slots.get(slot) != record.ident:
            return []
        del self._inflight_slots[slot]
        return self._slot_waiters.pop(slot, [])

    def _stop_waiting(self, ident: RecordId) -> None:
        for slot, waiters in list(self._slot_waiters.items()):
            if ident in waiters:
                waiters.remove(ident)
                if not waiters:
                    del self._slot_waiters[slot]

    def _settle(self, ident: RecordId) -> None:
        """Wake waiters of a record that is terminal or gone and drop its bookkeeping."""
        self._generations.pop(ident, None)
        event = self._settled.pop(ident, None)
        if event is not None:
            event.set()

    def _is_tracked(self, ident: RecordId) -> bool:
        """True if this process is dispatching, timing or queueing the record."""
        return (
            ident in self._dispatches
            or ident in self._timers
            or ident in self._inflight_slots.values()
            or any(ident in waiters for waiters in self._slot_waiters.values())
        )

    # === OPERATOR ACTIONS ===

    async def replay(self, execution_id: str, node_id: str) -> ExecutionRecord:
        """
        Send a dead-lettered record back to pending and dispatch it again.

        Attempt history is kept; the retry quota starts over. Replaying a
        record that is already pending or retrying is a no-op, so repeated
        calls never cause overlapping dispatches.

        Raises:
            DeadLetterNotFoundError: If the record does not exist or succeeded
        """
        key = record_key(execution_id, node_id)
        async with self._record_lock((execution_id, node_id)):
            record = await self._store.get(execution_id, node_id)
            if record is None:
                raise DeadLetterNotFoundError(execution_id, node_id)
            if record.is_active:
                logger.debug(f"Replay of {key} ignored: already {record.status}")
                return record
            if record.status != ExecutionStatus.DLQ:
                raise DeadLetterNotFoundError(execution_id, node_id)

            self._transition(record, ExecutionStatus.PENDING)
            record.quota_start = len(record.attempts)
            record.replay_count += 1
            record.next_retry_at = None
            record.touch(self._clock())
            await self._store.save(record)
            await self._emit(EventType.REPLAY_REQUESTED, record, replay_count=record.replay_count)

        logger.info(f"Replaying {key} (replay #{record.replay_count})")
        self._schedule(execution_id, node_id, 0)
        return record

    async def delete(
        self,
        execution_id: str,
        node_id: str,
        only_status: ExecutionStatus | None = None,
    ) -> bool:
        """
        Remove a record permanently, cancelling its timer and in-flight attempt.

        Any outcome arriving for the removed record is discarded.

        Args:
            execution_id: Execution of the record
            node_id: Node of the record
            only_status: If given, delete only while the record has this status

        Returns:
            True if the record existed and was removed
        """
        ident = (execution_id, node_id)
        key = record_key(execution_id, node_id)
        woken: list[RecordId] = []

        async with self._record_lock(ident):
            record = await self._store.get(execution_id, node_id)
            if only_status is not None and (record is None or record.status != only_status):
                logger.debug(f"Not deleting {key}: status is not {only_status}")
                return False

            existed = await self._store.delete(execution_id, node_id)

            timer = self._timers.pop(ident, None)
            if timer is not None and not timer.done():
                timer.cancel()
            dispatch = self._dispatches.pop(ident, None)
            if dispatch is not None and not dispatch.done():
                dispatch.cancel()

            if record is not None:
                woken = self._release_slot(record)
                self._stop_waiting(ident)
                event_type = (
                    EventType.RECORD_CANCELLED if record.is_active else EventType.RECORD_DELETED
                )
                await self._emit(event_type, record)
            self._settle(ident)

        if existed:
            logger.info(f"Deleted execution record {key}")
        for waiter in woken:
            self._schedule(*waiter, 0)
        return existed

    async def cancel_execution(self, execution_id: str) -> int:
        """Delete every record of a workflow run. Returns the number removed."""
        records = await self._store.list(execution_id=execution_id)
        removed = 0
        for record in records:
            if await self.delete(record.execution_id, record.node_id):
                removed += 1
        logger.info(f"Cancelled execution {execution_id}: {removed} record(s) removed")
        return removed

    async def cancel_workflow(self, workflow_id: str) -> int:
        """Delete every record belonging to a deleted workflow graph."""
        records = await self._store.list(workflow_id=workflow_id)
        removed = 0
        for record in records:
            if await self.delete(record.execution_id, record.node_id):
                removed += 1
        logger.info(f"Cancelled workflow {workflow_id}: {removed} record(s) removed")
        return removed

    # === RECOVERY & MAINTENANCE ===

    async def recover(self) -> int:
        """
        Re-arm every non-terminal record found in the store.

        Used after a restart with a durable store. An attempt recorded as in
        flight belonged to the previous process and is dispatched again.
        Records this engine is already driving are left alone.

        Returns:
            Number of records rescheduled
        """
        now = self._clock()
        count = 0
        for record in await self._store.list():
            if not record.is_active:
                continue
            ident = record.ident
            key = record.key
            async with self._record_lock(ident):
                if self._is_tracked(ident):
                    logger.debug(f"Record {key} is live in this engine, not recovering")
                    continue
                record = await self._store.get(record.execution_id, record.node_id)
                if record is None or not record.is_active:
                    continue
                if record.in_flight_attempt is not None:
                    logger.warning(
                        f"Record {key}: attempt {record.in_flight_attempt} was in flight "
                        "at shutdown, dispatching again"
                    )
                    record.in_flight_attempt = None
                    record.in_flight_since = None
                    record.touch(now)
                    await self._store.save(record)

            delay_s = 0.0
            if record.next_retry_at is not None and record.next_retry_at > now:
                delay_s = (record.next_retry_at - now).total_seconds()
            self._schedule(record.execution_id, record.node_id, delay_s)
            count += 1

        if count:
            logger.info(f"Recovered {count} execution record(s)")
        return count

    async def prune(self, max_age_s: float | None = None) -> int:
        """
        Delete succeeded records last updated more than ``max_age_s`` ago.

        Dead-lettered records are left for the operator.
        """
        max_age_s = self._config.prune_after_s if max_age_s is None else max_age_s
        cutoff = self._clock() - timedelta(seconds=max_age_s)
        removed = 0
        for record in await self._store.list(status=ExecutionStatus.SUCCEEDED):
            if record.updated_at >= cutoff:
                continue
            if await self.delete(
                record.execution_id, record.node_id, only_status=ExecutionStatus.SUCCEEDED
            ):
                removed += 1
        logger.info(f"Pruned {removed} succeeded record(s)")
        return removed

    async def shutdown(self) -> None:
        """Cancel all timers and in-flight dispatches. Records stay in the store."""
        self._running = False
        tasks = [t for t in [*self._timers.values(), *self._dispatches.values()] if not t.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._timers.clear()
        self._dispatches.clear()
        self._inflight_slots.clear()
        self._slot_waiters.clear()
        self._generations.clear()
        logger.info("ExecutionEngine stopped")

    # === QUERIES ===

    async def get_record(self, execution_id: str, node_id: str) -> ExecutionRecord:
        """
        Raises:
            RecordNotFoundError: If no record exists
        """
        record = await self._store.get(execution_id, node_id)
        if record is None:
            raise RecordNotFoundError(execution_id, node_id)
        return record

    async def wait_for(
        self,
        execution_id: str,
        node_id: str,
        timeout: float | None = None,
    ) -> ExecutionRecord | None:
        """
        Wait until a record succeeds, is dead-lettered or is deleted.

        Returns:
            The settled record, or None if it was deleted or the wait timed out
        """
        ident = (execution_id, node_id)
        # Register before reading so a settle during the read still wakes us
        event = self._settled.get(ident)
        if event is None:
            event = self._settled[ident] = asyncio.Event()

        record = await self._store.get(execution_id, node_id)
        if record is None or record.is_terminal:
            if self._settled.get(ident) is event and not event.is_set():
                del self._settled[ident]
            return record

        try:
            if timeout is not None:
                await asyncio.wait_for(event.wait(), timeout=timeout)
            else:
                await event.wait()
        except TimeoutError:
            return None
        return await self._store.get(execution_id, node_id)

    def is_in_flight(self, execution_id: str, node_id: str) -> bool:
        """True while an attempt of the record awaits its outcome."""
        return (execution_id, node_id) in self._inflight_slots.values()

    def has_pending_timer(self, execution_id: str, node_id: str) -> bool:
        return (execution_id, node_id) in self._timers

    def get_bookkeeping_sizes(self) -> dict[str, int]:
        """Sizes of the engine's per-record maps, for leak monitoring."""
        return {
            "locks": len(self._locks),
            "generations": len(self._generations),
            "timers": len(self._timers),
            "dispatches": len(self._dispatches),
            "inflight_slots": len(self._inflight_slots),
            "slot_waiters": len(self._slot_waiters),
            "settle_events": len(self._settled),
        }

    async def get_stats(self) -> dict:
        """Get engine statistics."""
        records = await self._store.list()
        counts = {status.value: 0 for status in ExecutionStatus}
        for record in records:
            counts[record.status.value] += 1

        total = len(records)
        return {
            "total_records": total,
            "active_executions": counts["pending"] + counts["retrying"],
            "status_counts": counts,
            "dlq_items": counts["dlq"],
            "in_flight": len(self._inflight_slots),
            "scheduled_timers": len(self._timers),
            "success_rate": counts["succeeded"] / total if total else 1.0,
        }

    # === EVENTS ===

    async def _emit(
        self,
        event_type: EventType,
        record: ExecutionRecord,
        attempt: int | None = None,
        **data: Any,
    ) -> None:
        if self._event_bus is None:
            return
        await self._event_bus.publish(
            ExecutionEvent(
                type=event_type,
                execution_id=record.execution_id,
                node_id=record.node_id,
                status=record.status.value,
                attempt=attempt,
                data=data,
            )
        )

    async def _emit_discarded(self, execution_id: str, node_id: str, attempt: int | None) -> None:
        if self._event_bus is None:
            return
        await self._event_bus.publish(
            ExecutionEvent(
                type=EventType.OUTCOME_DISCARDED,
                execution_id=execution_id,
                node_id=node_id,
                attempt=attempt,
            )
        )
