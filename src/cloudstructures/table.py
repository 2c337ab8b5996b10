# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

from __future__ import annotations

import asyncio
import threading
import time
from enum import Enum
from typing import Any, AsyncIterator, List, Optional, Sequence, Tuple, Union

import pandas as pd

from .common.constants import OPERATOR_AND
from .core import _error_codes as ec
from .core.batch import BatchOverflowQueue, MutationBatch
from .core.config import StructuresConfig
from .core.errors import (
    BatchError,
    BatchFullError,
    CommitError,
    InvalidArgumentError,
    StoreError,
    StructureStateError,
)
from .core.log import SafeLogger, StructureLogger
from .core.results import BatchCommitResult, CommitResult, EntityPage
from .core.telemetry import (
    METRIC_BATCHES_ROTATED,
    METRIC_ENTITIES_RETRIEVED,
    METRIC_OPERATIONS_QUEUED,
    MetricsCollector,
    create_telemetry_manager,
)
from .data.store import StoreClient
from .models.entity import Entity, TableOperation, validate_keys
from .models.query import PartitionQuery
from .utils._pandas import dataframe_to_entities, entities_to_dataframe


class StructureState(str, Enum):
    """What the structure knows about the table's existence in the store."""

    UNKNOWN = "unknown"
    CREATED = "created"
    ABSENT = "absent"


class TableStructure:
    """
    Batched access to one table of a partitioned table store.

    Inserts and deletes are collected locally into batches of at most
    ``config.operations_limit`` operations, each targeting a single partition.
    When an operation does not fit the active batch (the batch is full, or the
    operation targets another partition) the active batch is sealed and queued,
    and a new one is opened. :meth:`commit` submits the queued batches and then
    the active batch to the store, one atomic transaction per batch, in the
    order they were sealed.

    One instance has a single logical owner. ``insert``/``delete`` may be called
    from several threads (batch rotation is guarded by a lock), and concurrent
    :meth:`commit` calls are serialized, but ordering across callers is only
    what the caller enforces.

    :param name: Table name.
    :type name: :class:`str`
    :param store: Store client executing the calls; shared, not owned.
    :type store: ~cloudstructures.data.store.StoreClient
    :param config: Optional batching, paging, logging and telemetry settings.
        Defaults come from :meth:`~cloudstructures.core.config.StructuresConfig.from_env`.
    :type config: ~cloudstructures.core.config.StructuresConfig or None
    :param logger: Sink for operation outcomes. ``None`` logs to the console.
    :type logger: ~cloudstructures.core.log.StructureLogger or None
    :param metrics: Collector receiving batch and retrieval counters.
    :type metrics: ~cloudstructures.core.telemetry.MetricsCollector or None

    :raises InvalidArgumentError: If ``name`` is empty.

    Example::

        async with AzureTableStoreClient.from_connection_string(conn_str) as store:
            table = TableStructure("sampletable", store)
            await table.create_or_load_structure()

            for i in range(201):
                table.insert(Entity("partitionkey", str(i), properties={"Foo": 10}))

            result = await table.commit()  # 3 batches: 100 + 100 + 1
    """

    def __init__(
        self,
        name: str,
        store: StoreClient,
        config: Optional[StructuresConfig] = None,
        *,
        logger: Optional[StructureLogger] = None,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        if not (name or "").strip():
            raise InvalidArgumentError("name is required.", subcode=ec.VALIDATION_EMPTY_STRUCTURE_NAME)
        self._name = name
        self._store = store
        self._config = config or StructuresConfig.from_env()
        self._log = SafeLogger(logger, disabled=self._config.logging_disabled)
        self._telemetry = create_telemetry_manager(self._config.telemetry, metrics)

        self._state = StructureState.UNKNOWN
        self._active: Optional[MutationBatch] = None
        self._overflow = BatchOverflowQueue()
        self._lock = threading.Lock()
        self._commit_lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"TableStructure(name={self._name!r}, state={self._state.value}, pending_batches={self.pending_batches})"

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> StructureState:
        return self._state

    @property
    def config(self) -> StructuresConfig:
        return self._config

    @property
    def metrics(self) -> Optional[MetricsCollector]:
        return self._telemetry.collector

    @property
    def logging_disabled(self) -> bool:
        return self._log.disabled

    @logging_disabled.setter
    def logging_disabled(self, value: bool) -> None:
        self._log.disabled = value

    @property
    def pending_batches(self) -> int:
        """Number of non-empty batches waiting for :meth:`commit`."""
        with self._lock:
            return self._pending_batch_count()

    @property
    def pending_operations(self) -> int:
        with self._lock:
            active = len(self._active) if self._active is not None else 0
            return self._overflow.operation_count + active

    # ---------------------------------------------------------------- lifecycle

    async def is_created(self) -> bool:
        """
        Whether the table exists.

        The store is only queried while the state is unknown; afterwards the
        cached answer is returned even if the table changed outside this instance.
        """
        if self._state is StructureState.UNKNOWN:
            exists = await self._store.exists(self._name)
            self._state = StructureState.CREATED if exists else StructureState.ABSENT
        return self._state is StructureState.CREATED

    async def create_or_load_structure(self) -> bool:
        """
        Load the table, creating it if it does not exist.

        :return: True if the table existed or was created; False if creation was
            attempted and the store reported it did not succeed.
        :rtype: bool

        :raises ~cloudstructures.core.errors.StoreUnavailableError: If the store cannot be
            reached or rejects the credentials.
        """
        if await self.is_created():
            self._log.info(f"{self._name} was loaded.")
            return True

        created = await self._store.create_if_missing(self._name)
        if created:
            self._state = StructureState.CREATED
        self._log.info(f"{self._name} was created." if created else f"{self._name} could not be created.")
        return created

    async def delete_structure(self) -> bool:
        """
        Delete the table and discard every pending batch without committing it.

        After deletion, :meth:`insert` and :meth:`delete` raise
        :class:`~cloudstructures.core.errors.StructureStateError` until
        :meth:`create_or_load_structure` succeeds again.

        :return: False if the table was not known to exist, True once deleted.
        :rtype: bool
        """
        if not await self.is_created():
            return False

        deleted = await self._store.delete_if_exists(self._name)
        with self._lock:
            discarded = self._pending_batch_count()
            self._overflow.clear()
            self._active = None
            self._state = StructureState.ABSENT
        if discarded:
            self._log.info(f"{self._name} discarded {discarded} uncommitted batches.")
        self._log.info(f"{self._name} was deleted." if deleted else f"{self._name} did not exist.")
        return deleted

    # ---------------------------------------------------------------- mutations

    def insert(self, entity: Entity) -> None:
        """
        Queue an insert-or-replace of ``entity``.

        The row is written when :meth:`commit` is awaited; an existing row with the
        same keys is replaced.

        :raises InvalidArgumentError: If the entity keys are empty.
        :raises StructureStateError: If the structure has been deleted.
        """
        self._add(TableOperation.upsert(entity))

    def delete(self, entity: Entity) -> None:
        """
        Queue a delete of ``entity``.

        An entity without an etag is deleted unconditionally (wildcard etag); the
        caller's entity is not modified.

        :raises InvalidArgumentError: If the entity keys are empty.
        :raises StructureStateError: If the structure has been deleted.
        """
        self._add(TableOperation.delete(entity, wildcard_etag=self._config.wildcard_etag))

    def insert_dataframe(self, df: pd.DataFrame, na_as_null: bool = False) -> int:
        """
        Queue an insert-or-replace for every row of ``df``.

        :param df: Rows with ``PartitionKey`` and ``RowKey`` columns; other columns become properties.
        :type df: pandas.DataFrame
        :param na_as_null: Write missing values as null instead of omitting them.
        :type na_as_null: bool
        :return: Number of inserts queued.
        :rtype: int

        :raises InvalidArgumentError: If a row lacks a key; rows before it stay queued.
        """
        entities = dataframe_to_entities(df, na_as_null=na_as_null)
        for entity in entities:
            self.insert(entity)
        return len(entities)

    def _add(self, operation: TableOperation) -> None:
        with self._lock:
            if self._state is StructureState.ABSENT:
                raise StructureStateError(
                    f"{self._name} does not exist; call create_or_load_structure() first.",
                    subcode=ec.STRUCTURE_DELETED,
                )
            if self._active is None:
                self._active = self._new_batch()
            try:
                self._active.append(operation)
            except BatchError as e:
                self._rotate(e)
                self._active.append(operation)
        self._telemetry.count(self._name, METRIC_OPERATIONS_QUEUED)

    def _new_batch(self) -> MutationBatch:
        return MutationBatch(self._config.operations_limit)

    def _rotate(self, reason: BatchError) -> None:
        # Caller holds self._lock
        if isinstance(reason, BatchFullError):
            self._log.info(
                f"Warning: {self._name} now contains more than {self._config.operations_limit} "
                "operations to be committed in a single batch; queueing a new batch."
            )
        sealed = self._active
        sealed.seal()
        self._overflow.enqueue(sealed)
        self._active = self._new_batch()
        self._telemetry.count(self._name, METRIC_BATCHES_ROTATED)

    def _pending_batch_count(self) -> int:
        # Caller holds self._lock
        active = 1 if self._active is not None and len(self._active) else 0
        return sum(1 for b in self._overflow if len(b)) + active

    # ---------------------------------------------------------------- commit

    async def commit(self) -> CommitResult:
        """
        Submit every pending batch to the store, oldest first.

        Queued batches are submitted in the order they were sealed, followed by the
        active batch. Each batch is one atomic transaction. A committed queued batch
        is dropped; the committed active batch is cleared and keeps accepting
        operations. Empty batches are skipped without a store call.

        The first failing batch stops the drain: it and every later batch stay
        queued, so awaiting :meth:`commit` again resumes at that batch. Cancelling a
        commit takes effect between batches; a batch already handed to the store is
        awaited first. If that batch then fails it stays queued and the commit still
        raises :class:`asyncio.CancelledError`, chained from the store error.

        :return: The committed batches, in commit order.
        :rtype: ~cloudstructures.core.results.CommitResult

        :raises ~cloudstructures.core.errors.CommitError: If the store rejects a batch or
            cannot be reached. ``batch_index`` locates the failed batch and the store
            error is available as ``error`` (and ``__cause__``).
        """
        async with self._commit_lock:
            committed: List[BatchCommitResult] = []
            while True:
                with self._lock:
                    batch, from_overflow = self._next_batch()
                if batch is None:
                    break
                if not len(batch):
                    with self._lock:
                        self._release(batch, from_overflow)
                    continue

                index = len(committed)
                partition_key = batch.partition_key
                operations = batch.seal()
                self._log.info(f"{self._name} batch count: {len(operations)}")
                start = time.perf_counter()
                try:
                    with self._telemetry.trace_batch(self._name, partition_key, index, len(operations)):
                        cancelled = await self._submit(operations)
                except asyncio.CancelledError as e:
                    if isinstance(e.__cause__, StoreError):
                        self._log.error(f"{self._name} batch {index} failed: {e.__cause__.message}")
                    raise
                except StoreError as e:
                    with self._lock:
                        pending = self._pending_batch_count()
                    self._log.error(f"{self._name} batch {index} failed: {e.message}")
                    raise CommitError(
                        e,
                        table_name=self._name,
                        batch_index=index,
                        batches_committed=len(committed),
                        batches_pending=pending,
                        partition_key=partition_key,
                    ) from e

                with self._lock:
                    self._release(batch, from_overflow)
                committed.append(
                    BatchCommitResult(
                        batch_index=index,
                        partition_key=partition_key,
                        operation_count=len(operations),
                        from_overflow=from_overflow,
                        duration_ms=(time.perf_counter() - start) * 1000,
                    )
                )
                self._log.info(f"Batch executed in {self._name}")
                if cancelled:
                    raise asyncio.CancelledError()

            return CommitResult(table_name=self._name, batches=tuple(committed))

    def _next_batch(self) -> Tuple[Optional[MutationBatch], bool]:
        # Caller holds self._lock
        head = self._overflow.peek()
        if head is not None:
            return head, True
        if self._active is not None and len(self._active):
            self._active.seal()
            return self._active, False
        return None, False

    def _release(self, batch: MutationBatch, from_overflow: bool) -> None:
        # Caller holds self._lock
        if not from_overflow and self._active is batch:
            batch.clear()
        elif self._overflow.peek() is batch:
            # Queued batch, or the active batch rotated into the queue while it was in flight
            self._overflow.dequeue()

    async def _submit(self, operations: Sequence[TableOperation]) -> bool:
        """Submit one batch; return True if cancellation arrived while it was in flight."""
        task = asyncio.ensure_future(self._store.commit_batch(self._name, operations))
        try:
            await asyncio.shield(task)
            return False
        except asyncio.CancelledError:
            if task.cancelled():
                raise
        while not task.done():
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                if task.cancelled():
                    raise
        error = task.exception()
        if error is not None:
            # The batch failed after cancellation arrived; cancellation wins
            raise asyncio.CancelledError() from error
        return True

    # ---------------------------------------------------------------- reads

    def retrieve_all(
        self,
        partition_key: str,
        extra_filter: Optional[Union[str, Sequence[str]]] = None,
        extra_operator: str = OPERATOR_AND,
    ) -> "PartitionScan":
        """
        Lazily scan every entity of a partition.

        Nothing is fetched until the result is iterated; each page is one store
        round trip. The scan can be iterated again to restart from the first page.

        :param partition_key: Partition to scan.
        :type partition_key: str
        :param extra_filter: Optional OData condition, or several, narrowing the scan. The
            partition condition is always joined with ``and``.
        :type extra_filter: str or Sequence[str] or None
        :param extra_operator: ``"and"`` (default) or ``"or"``; joins the ``extra_filter`` conditions.
        :type extra_operator: str
        :return: Async iterable of entities.
        :rtype: PartitionScan

        :raises InvalidArgumentError: If ``partition_key`` is empty or ``extra_operator`` is unknown.

        Example::

            async for entity in table.retrieve_all("invoices", "Amount gt 10"):
                print(entity.row_key)

            entities = await table.retrieve_all("invoices").to_list()
        """
        if not (partition_key or "").strip():
            raise InvalidArgumentError(
                "partition_key must be a non-empty string.",
                subcode=ec.VALIDATION_EMPTY_PARTITION_KEY,
            )
        query = PartitionQuery(partition_key, extra_filter, extra_operator)
        query_filter = query.filter
        return PartitionScan(self, query_filter)

    async def retrieve(self, partition_key: str, row_key: str) -> Optional[Entity]:
        """
        Point lookup by primary key.

        :return: The entity, or ``None`` if no such row exists.
        :rtype: ~cloudstructures.models.entity.Entity or None

        :raises InvalidArgumentError: If either key is empty; the store is not called.
        """
        validate_keys(partition_key, row_key)
        return await self._store.get_by_key(self._name, partition_key, row_key)

    async def retrieve_entity(self, entity: Entity) -> Optional[Entity]:
        """Fetch the stored version of ``entity`` by its keys."""
        return await self.retrieve(entity.partition_key, entity.row_key)


class PartitionScan:
    """
    Restartable async iterable over the entities of one partition scan.

    Produced by :meth:`TableStructure.retrieve_all`.
    """

    def __init__(self, structure: TableStructure, query_filter: str) -> None:
        self._structure = structure
        self._filter = query_filter

    @property
    def filter(self) -> str:
        return self._filter

    async def pages(self) -> AsyncIterator[EntityPage]:
        """Yield one :class:`~cloudstructures.core.results.EntityPage` per store round trip."""
        structure = self._structure
        token: Any = None
        page_number = 0
        structure._log.info(f"{structure.name} will retrieve data with condition: {self._filter}")
        while True:
            try:
                entities, token = await structure._store.fetch_page(
                    structure.name, self._filter, token, structure.config.page_size
                )
            except StoreError as e:
                structure._log.error(f"{structure.name} retrieval failed: {e.message}")
                raise
            page_number += 1
            structure._telemetry.count(structure.name, METRIC_ENTITIES_RETRIEVED, len(entities))
            structure._log.info(f"{structure.name} is retrieving page {page_number}: {len(entities)} entities")
            yield EntityPage(entities=entities, page_number=page_number, continuation_token=token)
            if token is None:
                break

    async def _entities(self) -> AsyncIterator[Entity]:
        async for page in self.pages():
            for entity in page:
                yield entity

    def __aiter__(self) -> AsyncIterator[Entity]:
        return self._entities()

    async def to_list(self) -> List[Entity]:
        return [entity async for entity in self]

    async def to_dataframe(self, include_etag: bool = False) -> pd.DataFrame:
        """Materialize the scan as a DataFrame led by ``PartitionKey`` and ``RowKey`` columns."""
        return entities_to_dataframe(await self.to_list(), include_etag=include_etag)


__all__ = ["TableStructure", "StructureState", "PartitionScan"]
