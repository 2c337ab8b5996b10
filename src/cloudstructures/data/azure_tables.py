# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
:class:`~cloudstructures.data.store.StoreClient` backed by Azure Table storage.

Wraps the asynchronous :class:`azure.data.tables.aio.TableServiceClient`.
Every method is a single passthrough call; azure-core exceptions are
translated into the cloudstructures error taxonomy. Transport retries are
those of the azure-core pipeline (configure them with ``retry_total`` and
friends as keyword arguments).
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence, Tuple, Union

from azure.core import MatchConditions
from azure.core.credentials import AzureNamedKeyCredential, AzureSasCredential
from azure.core.credentials_async import AsyncTokenCredential
from azure.core.exceptions import (
    AzureError,
    ClientAuthenticationError,
    HttpResponseError,
    ResourceModifiedError,
    ResourceNotFoundError,
)
from azure.data.tables import TableTransactionError, UpdateMode
from azure.data.tables.aio import TableServiceClient

from ..common.constants import WILDCARD_ETAG
from ..core import _error_codes as ec
from ..core.errors import StoreError, StoreRejectedError, StoreUnavailableError
from ..models.entity import Entity, OperationKind, TableOperation

Credential = Union[AzureNamedKeyCredential, AzureSasCredential, AsyncTokenCredential]


def _status_of(exc: AzureError) -> Optional[int]:
    return getattr(exc, "status_code", None)


def _error_code_of(exc: AzureError) -> Optional[str]:
    code = getattr(exc, "error_code", None)
    return str(code) if code is not None else None


def _map_azure_error(exc: AzureError, action: str, table_name: str) -> StoreError:
    """Translate an azure-core exception raised while performing ``action``."""
    status = _status_of(exc)
    message = f"{action} on {table_name} failed: {getattr(exc, 'message', None) or exc}"
    details = {"table_name": table_name, "action": action}

    if isinstance(exc, ClientAuthenticationError):
        return StoreUnavailableError(
            message,
            subcode=ec.STORE_AUTHENTICATION,
            status_code=status,
            is_transient=False,
            service_error_code=_error_code_of(exc),
            details=details,
        )
    if isinstance(exc, TableTransactionError):
        if status is not None and ec.is_transient_status(status):
            return StoreUnavailableError(
                message,
                subcode=ec.http_subcode(status),
                status_code=status,
                service_error_code=_error_code_of(exc),
                details=details,
            )
        return StoreRejectedError(
            message,
            subcode=ec.STORE_TRANSACTION_FAILED,
            status_code=status,
            operation_index=getattr(exc, "index", None),
            service_error_code=_error_code_of(exc),
            details=details,
        )
    if isinstance(exc, ResourceModifiedError):
        return StoreRejectedError(
            message,
            subcode=ec.STORE_CONCURRENCY_MISMATCH,
            status_code=status,
            service_error_code=_error_code_of(exc),
            details=details,
        )
    if isinstance(exc, HttpResponseError) and status is not None:
        if ec.is_transient_status(status):
            return StoreUnavailableError(
                message,
                subcode=ec.http_subcode(status),
                status_code=status,
                service_error_code=_error_code_of(exc),
                details=details,
            )
        return StoreRejectedError(
            message,
            subcode=ec.http_subcode(status),
            status_code=status,
            service_error_code=_error_code_of(exc),
            details=details,
        )
    # ServiceRequestError, ServiceResponseError and other transport failures
    return StoreUnavailableError(message, details=details)


def _to_transaction_operation(operation: TableOperation) -> Tuple[str, dict, dict]:
    entity = operation.entity.to_dict()
    if operation.kind is OperationKind.UPSERT:
        return ("upsert", entity, {"mode": UpdateMode.REPLACE})
    if operation.entity.etag == WILDCARD_ETAG:
        return ("delete", entity, {"match_condition": MatchConditions.Unconditionally})
    return (
        "delete",
        entity,
        {"etag": operation.entity.etag, "match_condition": MatchConditions.IfNotModified},
    )


def _to_entity(table_entity: Any) -> Entity:
    metadata = getattr(table_entity, "metadata", None) or {}
    return Entity.from_dict(dict(table_entity), etag=metadata.get("etag"))


class AzureTableStoreClient:
    """
    Azure Table storage implementation of the store contract.

    :param endpoint: Table service endpoint, e.g. ``"https://<account>.table.core.windows.net"``.
    :type endpoint: :class:`str`
    :param credential: Shared key, SAS or Azure Identity async credential.
    :type credential: ~azure.core.credentials.AzureNamedKeyCredential or
        ~azure.core.credentials.AzureSasCredential or
        ~azure.core.credentials_async.AsyncTokenCredential
    :param kwargs: Extra keyword arguments forwarded to
        :class:`~azure.data.tables.aio.TableServiceClient` (pipeline/retry settings).

    Example::

        from azure.identity.aio import DefaultAzureCredential

        async with AzureTableStoreClient(endpoint, DefaultAzureCredential()) as store:
            table = TableStructure("invoices", store)
            await table.create_or_load_structure()
    """

    def __init__(
        self,
        endpoint: str,
        credential: Optional[Credential] = None,
        *,
        _service: Optional[TableServiceClient] = None,
        **kwargs: Any,
    ) -> None:
        if _service is not None:
            self._service = _service
            return
        if not (endpoint or "").strip():
            raise ValueError("endpoint is required.")
        self._service = TableServiceClient(endpoint=endpoint, credential=credential, **kwargs)

    @classmethod
    def from_connection_string(cls, connection_string: str, **kwargs: Any) -> "AzureTableStoreClient":
        """Build a client from a storage account connection string."""
        if not (connection_string or "").strip():
            raise ValueError("connection_string is required.")
        service = TableServiceClient.from_connection_string(connection_string, **kwargs)
        return cls(service.url, _service=service)

    async def __aenter__(self) -> "AzureTableStoreClient":
        await self._service.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self._service.close()

    async def exists(self, table_name: str) -> bool:
        try:
            async for _ in self._service.query_tables("TableName eq @name", parameters={"name": table_name}):
                return True
            return False
        except AzureError as e:
            raise _map_azure_error(e, "exists", table_name) from e

    async def create_if_missing(self, table_name: str) -> bool:
        try:
            await self._service.create_table_if_not_exists(table_name)
            return True
        except HttpResponseError as e:
            # 409 TableBeingDeleted: the store refused creation for now
            if _status_of(e) == 409:
                return False
            raise _map_azure_error(e, "create_if_missing", table_name) from e
        except AzureError as e:
            raise _map_azure_error(e, "create_if_missing", table_name) from e

    async def delete_if_exists(self, table_name: str) -> bool:
        if not await self.exists(table_name):
            return False
        try:
            await self._service.delete_table(table_name)
            return True
        except ResourceNotFoundError:
            return False
        except AzureError as e:
            raise _map_azure_error(e, "delete_if_exists", table_name) from e

    async def commit_batch(self, table_name: str, operations: Sequence[TableOperation]) -> None:
        if not operations:
            return
        table = self._service.get_table_client(table_name)
        try:
            await table.submit_transaction([_to_transaction_operation(op) for op in operations])
        except AzureError as e:
            raise _map_azure_error(e, "commit_batch", table_name) from e

    async def fetch_page(
        self,
        table_name: str,
        query_filter: str,
        continuation_token: Optional[Any] = None,
        page_size: Optional[int] = None,
    ) -> Tuple[List[Entity], Optional[Any]]:
        table = self._service.get_table_client(table_name)
        try:
            pages = table.query_entities(query_filter, results_per_page=page_size).by_page(
                continuation_token=continuation_token
            )
            async for page in pages:
                entities = [_to_entity(e) async for e in page]
                return entities, pages.continuation_token
            return [], None
        except AzureError as e:
            raise _map_azure_error(e, "fetch_page", table_name) from e

    async def get_by_key(self, table_name: str, partition_key: str, row_key: str) -> Optional[Entity]:
        table = self._service.get_table_client(table_name)
        try:
            return _to_entity(await table.get_entity(partition_key, row_key))
        except ResourceNotFoundError:
            return None
        except AzureError as e:
            raise _map_azure_error(e, "get_by_key", table_name) from e


__all__ = ["AzureTableStoreClient"]
