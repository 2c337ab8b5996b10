# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Tests for TableStructure batching, commit, lifecycle and retrieval."""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import AsyncMock

import pandas as pd
import pytest

from cloudstructures import Entity, PartitionScan, StructureState, StructuresConfig, TableStructure
from cloudstructures.core.errors import (
    CommitError,
    InvalidArgumentError,
    StoreRejectedError,
    StoreUnavailableError,
    StructureStateError,
)
from cloudstructures.models.entity import OperationKind
from tests.unit.test_helpers import BlockingStoreClient, BrokenLogger, RecordingStoreClient


def committed_sizes(store):
    return [len(batch) for batch in store.committed]


def committed_keys(store):
    return [[op.entity.key for op in batch] for batch in store.committed]


@pytest.fixture
def table(store, recording_logger, metrics):
    return TableStructure("sampletable", store, logger=recording_logger, metrics=metrics)


@pytest.fixture
def small_table(store, small_config, recording_logger, metrics):
    return TableStructure("sampletable", store, small_config, logger=recording_logger, metrics=metrics)


class TestConstruction:
    def test_empty_name_rejected(self, store):
        with pytest.raises(InvalidArgumentError):
            TableStructure("", store)
        with pytest.raises(InvalidArgumentError):
            TableStructure("   ", store)

    def test_initial_state(self, table, metrics):
        assert table.name == "sampletable"
        assert table.state is StructureState.UNKNOWN
        assert table.config == StructuresConfig()
        assert table.metrics is metrics
        assert table.pending_batches == 0
        assert table.pending_operations == 0


class TestBatching:
    def test_inserts_past_capacity_rotate(self, table, make_entity):
        for i in range(201):
            table.insert(make_entity(row_key=str(i)))

        assert table.pending_batches == 3
        assert table.pending_operations == 201

    def test_partition_change_rotates(self, table, make_entity):
        for i in range(3):
            table.insert(make_entity("A", str(i)))
        table.insert(make_entity("B", "0"))

        assert table.pending_batches == 2

    def test_invalid_keys_are_not_queued(self, table, make_entity):
        with pytest.raises(InvalidArgumentError):
            table.insert(make_entity("", "1"))
        with pytest.raises(InvalidArgumentError):
            table.delete(make_entity("A", " "))
        assert table.pending_operations == 0

    def test_concurrent_inserts_keep_batches_bounded(self, table, make_entity):
        def worker(n):
            for i in range(250):
                table.insert(make_entity("A", f"{n}-{i}"))

        with ThreadPoolExecutor(max_workers=4) as pool:
            list(pool.map(worker, range(4)))

        assert table.pending_operations == 1000
        assert table.pending_batches == 10


class TestCommit:
    @pytest.mark.asyncio
    async def test_commit_splits_into_capacity_sized_batches(self, table, store, make_entity):
        for i in range(201):
            table.insert(make_entity(row_key=str(i), Foo=10))

        result = await table.commit()

        assert committed_sizes(store) == [100, 100, 1]
        assert result.batches_committed == 3
        assert result.operations_committed == 201
        assert [b.from_overflow for b in result.batches] == [True, True, False]
        assert [b.batch_index for b in result.batches] == [0, 1, 2]
        assert all(b.partition_key == "partitionkey" for b in result.batches)
        assert table.pending_batches == 0
        assert len(store.tables["sampletable"]) == 201

    @pytest.mark.asyncio
    async def test_small_capacity_three_inserts(self, small_table, store, make_entity):
        for i in range(3):
            small_table.insert(make_entity(row_key=str(i)))

        await small_table.commit()

        assert committed_sizes(store) == [2, 1]

    @pytest.mark.asyncio
    async def test_batches_commit_in_sealed_order(self, table, store, make_entity):
        table.insert(make_entity("A", "1"))
        table.insert(make_entity("A", "2"))
        table.insert(make_entity("B", "1"))
        table.insert(make_entity("A", "3"))

        await table.commit()

        assert committed_keys(store) == [
            [("A", "1"), ("A", "2")],
            [("B", "1")],
            [("A", "3")],
        ]

    @pytest.mark.asyncio
    async def test_duplicate_keys_are_kept_in_order(self, table, store, make_entity):
        table.insert(make_entity("A", "1", Foo=1))
        table.insert(make_entity("A", "1", Foo=2))

        await table.commit()

        assert committed_sizes(store) == [2]
        assert store.tables["sampletable"][("A", "1")]["Foo"] == 2

    @pytest.mark.asyncio
    async def test_empty_commit_makes_no_store_call(self, table, store):
        result = await table.commit()

        assert result.batches_committed == 0
        assert store.calls_to("commit_batch") == []

    @pytest.mark.asyncio
    async def test_active_batch_is_reused_after_commit(self, table, store, make_entity):
        table.insert(make_entity("A", "1"))
        await table.commit()
        active = table._active

        table.insert(make_entity("B", "1"))
        await table.commit()

        assert table._active is active
        assert committed_keys(store) == [[("A", "1")], [("B", "1")]]

    @pytest.mark.asyncio
    async def test_second_commit_without_changes_is_empty(self, table, store, make_entity):
        table.insert(make_entity())
        await table.commit()
        result = await table.commit()

        assert result.batches_committed == 0
        assert len(store.calls_to("commit_batch")) == 1

    @pytest.mark.asyncio
    async def test_delete_without_etag_uses_wildcard(self, table, store, make_entity):
        entity = make_entity("A", "1")
        table.delete(entity)
        table.delete(make_entity("A", "2", etag='W/"3"'))

        await table.commit()

        ops = store.committed[0]
        assert [op.kind for op in ops] == [OperationKind.DELETE, OperationKind.DELETE]
        assert ops[0].entity.etag == "*"
        assert ops[1].entity.etag == 'W/"3"'
        assert entity.etag is None

    @pytest.mark.asyncio
    async def test_failure_stops_drain_and_next_commit_resumes(self, small_table, store, make_entity):
        for i in range(5):
            small_table.insert(make_entity(row_key=str(i)))
        store.fail_commits[2] = StoreRejectedError("conflict", status_code=409)

        with pytest.raises(CommitError) as exc_info:
            await small_table.commit()

        err = exc_info.value
        assert err.batch_index == 1
        assert err.batches_committed == 1
        assert err.batches_pending == 2
        assert err.partition_key == "partitionkey"
        assert isinstance(err.error, StoreRejectedError)
        assert err.__cause__ is err.error
        assert committed_sizes(store) == [2]
        assert small_table.pending_batches == 2

        result = await small_table.commit()

        assert result.batches_committed == 2
        assert committed_keys(store)[1:] == [
            [("partitionkey", "2"), ("partitionkey", "3")],
            [("partitionkey", "4")],
        ]
        assert small_table.pending_batches == 0

    @pytest.mark.asyncio
    async def test_failed_active_batch_commits_before_newer_inserts(self, table, store, make_entity):
        table.insert(make_entity("A", "1"))
        store.fail_commits[1] = StoreUnavailableError("timeout")

        with pytest.raises(CommitError) as exc_info:
            await table.commit()
        assert exc_info.value.is_transient is True
        assert table.pending_batches == 1

        table.insert(make_entity("A", "2"))
        await table.commit()

        assert committed_keys(store) == [[("A", "1")], [("A", "2")]]

    @pytest.mark.asyncio
    async def test_cancel_waits_for_in_flight_batch(self, small_config, make_entity):
        store = BlockingStoreClient(tables=["sampletable"])
        table = TableStructure("sampletable", store, small_config, logger=BrokenLogger())
        for i in range(3):
            table.insert(make_entity(row_key=str(i)))

        task = asyncio.create_task(table.commit())
        await store.started.wait()
        task.cancel()
        await asyncio.sleep(0)
        store.release.set()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert committed_sizes(store) == [2]
        assert table.pending_batches == 1

        await table.commit()
        assert committed_sizes(store) == [2, 1]

    @pytest.mark.asyncio
    async def test_cancel_wins_over_in_flight_batch_failure(self, small_config, make_entity, recording_logger):
        store = BlockingStoreClient(tables=["sampletable"])
        store.fail_commits[1] = StoreRejectedError("conflict")
        table = TableStructure("sampletable", store, small_config, logger=recording_logger)
        for i in range(3):
            table.insert(make_entity(row_key=str(i)))

        task = asyncio.create_task(table.commit())
        await store.started.wait()
        task.cancel()
        await asyncio.sleep(0)
        store.release.set()

        with pytest.raises(asyncio.CancelledError) as exc_info:
            await task

        assert isinstance(exc_info.value.__cause__, StoreRejectedError)
        assert task.cancelled()
        assert store.committed == []
        assert table.pending_batches == 2
        assert recording_logger.texts("error") == ["sampletable batch 0 failed: conflict"]

        result = await table.commit()
        assert result.batches_committed == 2
        assert committed_sizes(store) == [2, 1]


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_is_created_caches_answer(self, table, store):
        assert await table.is_created() is True
        store.tables.clear()
        assert await table.is_created() is True
        assert len(store.calls_to("exists")) == 1

    @pytest.mark.asyncio
    async def test_load_existing_table(self, table, store, recording_logger):
        assert await table.create_or_load_structure() is True
        assert store.calls_to("create_if_missing") == []
        assert "sampletable was loaded." in recording_logger.texts("info")

    @pytest.mark.asyncio
    async def test_create_missing_table(self, recording_logger):
        store = RecordingStoreClient()
        table = TableStructure("newtable", store, logger=recording_logger)

        assert await table.create_or_load_structure() is True
        assert table.state is StructureState.CREATED
        assert "newtable" in store.tables
        assert "newtable was created." in recording_logger.texts("info")

    @pytest.mark.asyncio
    async def test_create_failure_returns_false(self, recording_logger):
        store = RecordingStoreClient()
        store.create_result = False
        table = TableStructure("newtable", store, logger=recording_logger)

        assert await table.create_or_load_structure() is False
        assert table.state is StructureState.ABSENT
        assert "newtable could not be created." in recording_logger.texts("info")

    @pytest.mark.asyncio
    async def test_unreachable_store_on_load_propagates(self, store, recording_logger):
        store.exists = AsyncMock(side_effect=StoreUnavailableError("down"))
        table = TableStructure("sampletable", store, logger=recording_logger)

        with pytest.raises(StoreUnavailableError):
            await table.create_or_load_structure()

        assert table.state is StructureState.UNKNOWN
        assert store.calls_to("create_if_missing") == []
        assert recording_logger.messages == []

    @pytest.mark.asyncio
    async def test_unreachable_store_on_create_propagates(self, recording_logger):
        store = RecordingStoreClient()
        store.create_if_missing = AsyncMock(side_effect=StoreUnavailableError("down"))
        table = TableStructure("newtable", store, logger=recording_logger)

        with pytest.raises(StoreUnavailableError):
            await table.create_or_load_structure()

        assert table.state is StructureState.ABSENT
        assert "newtable could not be created." not in recording_logger.texts()

    @pytest.mark.asyncio
    async def test_inserts_rejected_when_table_missing(self, make_entity):
        table = TableStructure("missing", RecordingStoreClient(), logger=BrokenLogger())

        assert await table.is_created() is False
        with pytest.raises(StructureStateError):
            table.insert(make_entity())

    @pytest.mark.asyncio
    async def test_delete_structure_discards_pending_batches(self, table, store, make_entity, recording_logger):
        await table.create_or_load_structure()
        for i in range(3):
            table.insert(make_entity(row_key=str(i)))

        assert await table.delete_structure() is True

        assert "sampletable" not in store.tables
        assert table.state is StructureState.ABSENT
        assert table.pending_batches == 0
        assert "sampletable was deleted." in recording_logger.texts("info")
        with pytest.raises(StructureStateError):
            table.insert(make_entity())
        with pytest.raises(StructureStateError):
            table.delete(make_entity())

        result = await table.commit()
        assert result.batches_committed == 0
        assert store.calls_to("commit_batch") == []

    @pytest.mark.asyncio
    async def test_recreate_after_delete(self, table, store, make_entity):
        await table.delete_structure()

        assert await table.create_or_load_structure() is True
        table.insert(make_entity())
        await table.commit()

        assert committed_sizes(store) == [1]

    @pytest.mark.asyncio
    async def test_delete_missing_table_returns_false(self):
        store = RecordingStoreClient()
        table = TableStructure("missing", store, logger=BrokenLogger())

        assert await table.delete_structure() is False
        assert store.calls_to("delete_if_exists") == []


class TestRetrieval:
    @pytest.mark.asyncio
    async def test_retrieve_all_pages_through_partition(self, table, store, make_entity, metrics):
        for i in range(5):
            table.insert(make_entity("A", str(i)))
        table.insert(make_entity("B", "0"))
        await table.commit()

        scan = table.retrieve_all("A")
        pages = [page async for page in scan.pages()]
        entities = await scan.to_list()

        assert isinstance(scan, PartitionScan)
        assert scan.filter == "PartitionKey eq 'A'"
        assert [p.page_number for p in pages] == [1, 2, 3]
        assert [len(p) for p in pages] == [2, 2, 1]
        assert pages[-1].has_more is False
        assert [e.row_key for e in entities] == ["0", "1", "2", "3", "4"]
        assert metrics.get("sampletable.entities_retrieved") == 10

    @pytest.mark.asyncio
    async def test_retrieve_all_is_lazy(self, table, store):
        scan = table.retrieve_all("A")
        assert store.calls_to("fetch_page") == []
        await scan.to_list()
        assert len(store.calls_to("fetch_page")) == 1

    @pytest.mark.asyncio
    async def test_retrieve_all_empty_partition(self, table, store):
        assert await table.retrieve_all("nothing-here").to_list() == []

    @pytest.mark.asyncio
    async def test_retrieve_all_with_extra_filter(self, table, store):
        await table.retrieve_all("A", "Foo gt 1").to_list()

        _, query_filter, _, _ = store.calls_to("fetch_page")[0]
        assert query_filter == "(PartitionKey eq 'A') and (Foo gt 1)"

    @pytest.mark.asyncio
    async def test_retrieve_all_or_operator_stays_in_partition(self, table, store, make_entity):
        table.insert(make_entity("A", "1"))
        table.insert(make_entity("B", "x"))
        await table.commit()

        entities = await table.retrieve_all("A", "RowKey eq 'x'", "or").to_list()

        assert {e.partition_key for e in entities} == {"A"}
        _, query_filter, _, _ = store.calls_to("fetch_page")[0]
        assert query_filter == "(PartitionKey eq 'A') and (RowKey eq 'x')"

    def test_retrieve_all_empty_partition_key(self, table, store):
        with pytest.raises(InvalidArgumentError):
            table.retrieve_all("")
        with pytest.raises(InvalidArgumentError):
            table.retrieve_all("A", "Foo gt 1", "xor")
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_retrieval_error_surfaces(self, table, store, recording_logger):
        store.fetch_page = AsyncMock(side_effect=StoreUnavailableError("down"))

        with pytest.raises(StoreUnavailableError):
            await table.retrieve_all("A").to_list()
        assert any("retrieval failed" in m for m in recording_logger.texts("error"))

    @pytest.mark.asyncio
    async def test_retrieve_by_key(self, table, store, make_entity):
        table.insert(make_entity("A", "1", Foo=10))
        await table.commit()

        found = await table.retrieve("A", "1")
        assert found["Foo"] == 10
        assert found.etag is not None
        assert await table.retrieve("A", "2") is None
        assert (await table.retrieve_entity(make_entity("A", "1"))).key == ("A", "1")

    @pytest.mark.asyncio
    async def test_retrieve_empty_key_fails_before_store_call(self, table, store):
        with pytest.raises(InvalidArgumentError):
            await table.retrieve("", "1")
        with pytest.raises(InvalidArgumentError):
            await table.retrieve("A", "")
        assert store.calls_to("get_by_key") == []


class TestReporting:
    @pytest.mark.asyncio
    async def test_metrics_are_collected(self, table, metrics, make_entity):
        for i in range(201):
            table.insert(make_entity(row_key=str(i)))
        await table.commit()

        assert metrics.get("sampletable.operations_queued") == 201
        assert metrics.get("sampletable.batches_rotated") == 2
        assert metrics.get("sampletable.batches_committed") == 3
        assert metrics.get("sampletable.operations_committed") == 201

    @pytest.mark.asyncio
    async def test_commit_logs_batches(self, table, recording_logger, make_entity):
        for i in range(101):
            table.insert(make_entity(row_key=str(i)))
        await table.commit()

        info = recording_logger.texts("info")
        assert any(m.startswith("Warning: sampletable now contains more than 100 operations") for m in info)
        assert "sampletable batch count: 100" in info
        assert "sampletable batch count: 1" in info
        assert info.count("Batch executed in sampletable") == 2

    @pytest.mark.asyncio
    async def test_commit_failure_is_logged(self, table, store, recording_logger, make_entity):
        table.insert(make_entity())
        store.fail_commits[1] = StoreRejectedError("conflict")

        with pytest.raises(CommitError):
            await table.commit()

        assert recording_logger.texts("error") == ["sampletable batch 0 failed: conflict"]

    @pytest.mark.asyncio
    async def test_logging_disabled(self, table, recording_logger, make_entity):
        table.logging_disabled = True
        table.insert(make_entity())
        await table.commit()

        assert table.logging_disabled is True
        assert recording_logger.messages == []

    @pytest.mark.asyncio
    async def test_broken_logger_does_not_break_operations(self, store, make_entity):
        table = TableStructure("sampletable", store, logger=BrokenLogger())

        assert await table.create_or_load_structure() is True
        table.insert(make_entity())
        result = await table.commit()

        assert result.batches_committed == 1


class TestDataFrames:
    @pytest.mark.asyncio
    async def test_insert_dataframe_and_scan_to_dataframe(self, table, store):
        df = pd.DataFrame({"PartitionKey": ["A", "A", "B"], "RowKey": ["1", "2", "1"], "Foo": [1, 2, 3]})

        assert table.insert_dataframe(df) == 3
        assert table.pending_batches == 2
        await table.commit()

        result = await table.retrieve_all("A").to_dataframe()
        assert list(result.columns) == ["PartitionKey", "RowKey", "Foo"]
        assert result["Foo"].tolist() == [1, 2]

    @pytest.mark.asyncio
    async def test_empty_scan_to_dataframe(self, table):
        result = await table.retrieve_all("nothing-here").to_dataframe(include_etag=True)
        assert result.empty
        assert list(result.columns) == ["PartitionKey", "RowKey", "etag"]
