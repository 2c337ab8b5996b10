# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Capacity-bounded mutation batches and the FIFO queue of sealed batches.

A :class:`MutationBatch` maps to one atomic transaction on the table service:
it holds at most ``capacity`` operations, all targeting the same partition.
:class:`BatchOverflowQueue` keeps sealed batches in the order they were sealed
so they can be committed strictly first-in, first-out.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Deque, Iterator, List, Optional, Tuple

from ..common.constants import OPERATIONS_LIMIT
from ..models.entity import TableOperation
from .errors import BatchFullError, BatchSealedError, PartitionMismatchError


@dataclass(frozen=True)
class AppendOutcome:
    """
    Result of a successful :meth:`MutationBatch.append`.

    :param index: Zero-based position of the operation inside the batch.
    :type index: int
    :param is_full: Whether the batch reached capacity with this operation.
    :type is_full: bool
    """

    index: int
    is_full: bool


class MutationBatch:
    """
    Ordered, capacity-bounded collection of operations for one partition.

    The first appended operation establishes the batch's partition key.
    Appending never drops, defers or collapses operations: repeated operations
    on the same row are all kept and the store applies them in order.

    :param capacity: Maximum number of operations. Must be between 1 and the
        store's transaction limit.
    :type capacity: int

    :raises ValueError: If ``capacity`` is out of range.
    """

    def __init__(self, capacity: int = OPERATIONS_LIMIT) -> None:
        if not 1 <= capacity <= OPERATIONS_LIMIT:
            raise ValueError(f"capacity must be between 1 and {OPERATIONS_LIMIT}, got {capacity}.")
        self._capacity = capacity
        self._operations: List[TableOperation] = []
        self._partition_key: Optional[str] = None
        self._sealed = False

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def partition_key(self) -> Optional[str]:
        """Partition key shared by every operation, or ``None`` while empty."""
        return self._partition_key

    @property
    def is_sealed(self) -> bool:
        return self._sealed

    @property
    def is_full(self) -> bool:
        return len(self._operations) >= self._capacity

    @property
    def operations(self) -> Tuple[TableOperation, ...]:
        return tuple(self._operations)

    def __len__(self) -> int:
        return len(self._operations)

    def __iter__(self) -> Iterator[TableOperation]:
        return iter(tuple(self._operations))

    def __repr__(self) -> str:
        return (
            f"MutationBatch(partition_key={self._partition_key!r}, size={len(self._operations)}, "
            f"capacity={self._capacity}, sealed={self._sealed})"
        )

    def append(self, operation: TableOperation) -> AppendOutcome:
        """
        Append an operation at the tail of the batch.

        :param operation: Operation to append.
        :type operation: ~cloudstructures.models.entity.TableOperation
        :return: Position of the operation and whether the batch is now full.
        :rtype: AppendOutcome

        :raises BatchSealedError: If the batch has been sealed.
        :raises BatchFullError: If the batch already holds ``capacity`` operations.
        :raises PartitionMismatchError: If the operation targets a different partition
            than the one established by the first operation.
        """
        if self._sealed:
            raise BatchSealedError()
        if len(self._operations) >= self._capacity:
            raise BatchFullError(self._capacity)
        if self._partition_key is not None and operation.partition_key != self._partition_key:
            raise PartitionMismatchError(self._partition_key, operation.partition_key)

        if self._partition_key is None:
            self._partition_key = operation.partition_key
        self._operations.append(operation)
        return AppendOutcome(index=len(self._operations) - 1, is_full=self.is_full)

    def seal(self) -> Tuple[TableOperation, ...]:
        """
        Mark the batch as no longer appendable.

        Sealing an already sealed batch is a no-op.

        :return: Immutable snapshot of the operations, in insertion order.
        :rtype: tuple[TableOperation, ...]
        """
        self._sealed = True
        return tuple(self._operations)

    def clear(self) -> None:
        """Empty the batch and make it appendable again, for any partition."""
        self._operations.clear()
        self._partition_key = None
        self._sealed = False


class BatchOverflowQueue:
    """
    FIFO sequence of sealed batches awaiting commit.

    A pure ordering device: batches come out in exactly the order they went in,
    and there is no way to reorder or re-insert them.
    """

    def __init__(self) -> None:
        self._batches: Deque[MutationBatch] = deque()

    def __len__(self) -> int:
        return len(self._batches)

    def __iter__(self) -> Iterator[MutationBatch]:
        return iter(tuple(self._batches))

    def enqueue(self, batch: MutationBatch) -> None:
        """
        Append a sealed batch at the tail.

        :raises ValueError: If ``batch`` is not sealed.
        """
        if not batch.is_sealed:
            raise ValueError("Only sealed batches can be queued.")
        self._batches.append(batch)

    def dequeue(self) -> Optional[MutationBatch]:
        """Remove and return the head batch, or ``None`` when empty."""
        if not self._batches:
            return None
        return self._batches.popleft()

    def peek(self) -> Optional[MutationBatch]:
        """Return the head batch without removing it, or ``None`` when empty."""
        if not self._batches:
            return None
        return self._batches[0]

    def is_empty(self) -> bool:
        return not self._batches

    def clear(self) -> None:
        self._batches.clear()

    @property
    def operation_count(self) -> int:
        return sum(len(b) for b in self._batches)


__all__ = ["AppendOutcome", "MutationBatch", "BatchOverflowQueue"]
