"""Tests for the execution record stores - in-memory and file-backed."""

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from flowguard.errors import StorageError
from flowguard.schemas.execution import Attempt, ExecutionRecord, ExecutionStatus
from flowguard.storage.execution_store import FileExecutionStore, InMemoryExecutionStore

# === HELPER FUNCTIONS ===

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)


def create_test_record(
    execution_id: str = "exec_1",
    node_id: str = "send_mail",
    status: ExecutionStatus = ExecutionStatus.PENDING,
    workflow_id: str | None = "wf_1",
    offset_s: int = 0,
) -> ExecutionRecord:
    """Create an ExecutionRecord with deterministic timestamps."""
    created = T0 + timedelta(seconds=offset_s)
    return ExecutionRecord(
        execution_id=execution_id,
        node_id=node_id,
        workflow_id=workflow_id,
        status=status,
        created_at=created,
        updated_at=created,
    )


@pytest.fixture(params=["memory", "file"])
def store(request, tmp_path: Path):
    """Run each test against both backends."""
    if request.param == "memory":
        return InMemoryExecutionStore()
    return FileExecutionStore(tmp_path)


class TestStoreContract:
    """Behaviour shared by every backend."""

    @pytest.mark.asyncio
    async def test_save_and_get(self, store):
        record = create_test_record()
        record.attempts.append(Attempt(attempt=1, error="TIMEOUT: slow"))

        await store.save(record)
        loaded = await store.get("exec_1", "send_mail")

        assert loaded is not None
        assert loaded.key == "exec_1:send_mail"
        assert loaded.attempts[0].error == "TIMEOUT: slow"
        assert loaded.policy == record.policy

    @pytest.mark.asyncio
    async def test_colon_bearing_ids_are_distinct_records(self, store):
        await store.save(create_test_record("run:1", "send"))
        await store.save(create_test_record("run", "1:send", offset_s=1))

        first = await store.get("run:1", "send")
        second = await store.get("run", "1:send")

        assert (first.execution_id, first.node_id) == ("run:1", "send")
        assert (second.execution_id, second.node_id) == ("run", "1:send")
        assert len(await store.list()) == 2
        assert await store.delete("run", "1:send") is True
        assert await store.get("run:1", "send") is not None

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, store):
        assert await store.get("nope", "nothing") is None

    @pytest.mark.asyncio
    async def test_returned_records_are_copies(self, store):
        """Mutating a loaded record does not change the stored one."""
        await store.save(create_test_record())

        loaded = await store.get("exec_1", "send_mail")
        loaded.status = ExecutionStatus.DLQ

        again = await store.get("exec_1", "send_mail")
        assert again.status == ExecutionStatus.PENDING

    @pytest.mark.asyncio
    async def test_delete(self, store):
        await store.save(create_test_record())

        assert await store.delete("exec_1", "send_mail") is True
        assert await store.delete("exec_1", "send_mail") is False
        assert await store.get("exec_1", "send_mail") is None

    @pytest.mark.asyncio
    async def test_list_filters_and_order(self, store):
        await store.save(create_test_record("exec_2", "b", ExecutionStatus.DLQ, offset_s=20))
        await store.save(create_test_record("exec_1", "a", ExecutionStatus.DLQ, offset_s=10))
        await store.save(
            create_test_record("exec_1", "c", ExecutionStatus.SUCCEEDED, workflow_id="wf_2")
        )

        all_records = await store.list()
        dlq = await store.list(status=ExecutionStatus.DLQ)
        exec_1 = await store.list(execution_id="exec_1")
        wf_2 = await store.list(workflow_id="wf_2")

        assert [r.node_id for r in all_records] == ["c", "a", "b"]
        assert [r.node_id for r in dlq] == ["a", "b"]
        assert {r.node_id for r in exec_1} == {"a", "c"}
        assert [r.node_id for r in wf_2] == ["c"]


class TestFileExecutionStore:
    """File-specific behaviour."""

    @pytest.mark.asyncio
    async def test_layout(self, tmp_path: Path):
        store = FileExecutionStore(tmp_path)
        await store.save(create_test_record())

        path = tmp_path / "records" / "exec_1" / "send_mail.json"
        assert path.exists()
        assert not list(path.parent.glob("*.tmp"))

    @pytest.mark.asyncio
    async def test_delete_removes_empty_execution_dir(self, tmp_path: Path):
        store = FileExecutionStore(tmp_path)
        await store.save(create_test_record())

        await store.delete("exec_1", "send_mail")

        assert not (tmp_path / "records" / "exec_1").exists()

    @pytest.mark.asyncio
    async def test_survives_new_instance(self, tmp_path: Path):
        await FileExecutionStore(tmp_path).save(create_test_record(status=ExecutionStatus.DLQ))

        loaded = await FileExecutionStore(str(tmp_path)).get("exec_1", "send_mail")

        assert loaded.status == ExecutionStatus.DLQ
        assert loaded.created_at == T0

    @pytest.mark.asyncio
    async def test_list_skips_corrupt_files(self, tmp_path: Path):
        store = FileExecutionStore(tmp_path)
        await store.save(create_test_record())
        (tmp_path / "records" / "exec_1" / "broken.json").write_text("{not json")

        records = await store.list()

        assert [r.node_id for r in records] == ["send_mail"]

    @pytest.mark.asyncio
    async def test_get_corrupt_file_raises(self, tmp_path: Path):
        store = FileExecutionStore(tmp_path)
        path = tmp_path / "records" / "exec_1" / "send_mail.json"
        path.parent.mkdir(parents=True)
        path.write_text("{not json")

        with pytest.raises(StorageError):
            await store.get("exec_1", "send_mail")

    @pytest.mark.parametrize("bad_key", ["", "  ", "../etc", "a/b", "a\\b", ".hidden", "a\x00b"])
    def test_rejects_unsafe_keys(self, tmp_path: Path, bad_key: str):
        store = FileExecutionStore(tmp_path)

        with pytest.raises(StorageError):
            store.get_record_path(bad_key, "node")
        with pytest.raises(StorageError):
            store.get_record_path("exec", bad_key)
