# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Result types for table structure operations.

- :class:`BatchCommitResult`: Outcome of one batch submitted during a commit.
- :class:`CommitResult`: Outcome of a whole :meth:`TableStructure.commit` call.
- :class:`EntityPage`: One page of a partition scan.

Example::

    result = await table.commit()
    print(result.batches_committed, result.operations_committed)
    for batch in result.batches:
        print(batch.batch_index, batch.partition_key, batch.operation_count)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, List, Optional, Tuple

from ..models.entity import Entity


@dataclass(frozen=True)
class BatchCommitResult:
    """
    A batch the store accepted.

    :param batch_index: Zero-based position of the batch within the commit call.
    :type batch_index: :class:`int`
    :param partition_key: Partition shared by the batch's operations.
    :type partition_key: :class:`str` | None
    :param operation_count: Number of operations in the batch.
    :type operation_count: :class:`int`
    :param from_overflow: True when the batch was drained from the overflow queue,
        False for the active batch.
    :type from_overflow: :class:`bool`
    :param duration_ms: Round-trip time of the submission.
    :type duration_ms: :class:`float`
    """

    batch_index: int
    partition_key: Optional[str]
    operation_count: int
    from_overflow: bool
    duration_ms: float = 0.0


@dataclass(frozen=True)
class CommitResult:
    """Every batch committed by one :meth:`TableStructure.commit` call, in commit order."""

    table_name: str
    batches: Tuple[BatchCommitResult, ...] = ()

    @property
    def batches_committed(self) -> int:
        return len(self.batches)

    @property
    def operations_committed(self) -> int:
        return sum(b.operation_count for b in self.batches)


@dataclass(frozen=True)
class EntityPage:
    """
    Result for a single page of a partition scan.

    :param entities: Entities in this page.
    :type entities: :class:`list` of :class:`~cloudstructures.models.entity.Entity`
    :param page_number: 1-based page number.
    :type page_number: :class:`int`
    :param continuation_token: Token for the next page, ``None`` on the last page.
    :type continuation_token: Any
    """

    entities: List[Entity] = field(default_factory=list)
    page_number: int = 0
    continuation_token: Any = None

    @property
    def has_more(self) -> bool:
        return self.continuation_token is not None

    def __iter__(self) -> Iterator[Entity]:
        return iter(self.entities)

    def __len__(self) -> int:
        return len(self.entities)


__all__ = ["BatchCommitResult", "CommitResult", "EntityPage"]
