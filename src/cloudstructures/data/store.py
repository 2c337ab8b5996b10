# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Contract between table structures and the backing table store.

A :class:`StoreClient` executes single calls against the remote service:
existence checks, create/delete of tables, one atomic batch per
:meth:`~StoreClient.commit_batch`, paged queries and point reads. Retry and
backoff for transient failures belong to the implementation (the store's own
client pipeline); table structures never retry.
"""

from __future__ import annotations

from typing import Any, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

from ..models.entity import Entity, TableOperation


@runtime_checkable
class StoreClient(Protocol):
    """Asynchronous operations a table structure needs from the store.

    Implementations raise :class:`~cloudstructures.core.errors.StoreUnavailableError`
    when the store cannot be reached and
    :class:`~cloudstructures.core.errors.StoreRejectedError` when it refuses a request.
    """

    async def exists(self, table_name: str) -> bool:
        """Return whether the table exists."""
        ...

    async def create_if_missing(self, table_name: str) -> bool:
        """Create the table unless it exists.

        Returns True when the table exists afterwards, False when creation was
        attempted and the store reported that it did not succeed.
        """
        ...

    async def delete_if_exists(self, table_name: str) -> bool:
        """Delete the table. Returns False when there was nothing to delete."""
        ...

    async def commit_batch(self, table_name: str, operations: Sequence[TableOperation]) -> None:
        """Execute ``operations`` as one all-or-nothing transaction."""
        ...

    async def fetch_page(
        self,
        table_name: str,
        query_filter: str,
        continuation_token: Optional[Any] = None,
        page_size: Optional[int] = None,
    ) -> Tuple[List[Entity], Optional[Any]]:
        """Fetch one page of entities matching ``query_filter``.

        Returns the entities and the token for the next page (``None`` on the last page).
        """
        ...

    async def get_by_key(self, table_name: str, partition_key: str, row_key: str) -> Optional[Entity]:
        """Point read; ``None`` when no such row exists."""
        ...

    async def close(self) -> None:
        """Release connections held by the client."""
        ...


__all__ = ["StoreClient"]
