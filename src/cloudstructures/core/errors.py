# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Structured errors raised by cloudstructures.

Every error carries a machine-readable ``code`` and optional ``subcode`` so
callers can branch without parsing messages. Batch errors are internal to the
table structure and never escape :meth:`TableStructure.insert` or
:meth:`TableStructure.delete`; store errors always surface to the caller.
"""

from __future__ import annotations

import datetime as _dt
from typing import Any, Dict, Optional

from . import _error_codes as ec


class CloudStructuresError(Exception):
    """Base structured error for cloudstructures."""

    def __init__(
        self,
        message: str,
        *,
        code: str,
        subcode: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        source: Optional[str] = None,
        is_transient: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.subcode = subcode
        self.status_code = status_code
        self.details = details or {}
        self.source = source or "client"
        self.is_transient = is_transient
        self.timestamp = _dt.datetime.now(_dt.timezone.utc).isoformat().replace("+00:00", "Z")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "subcode": self.subcode,
            "status_code": self.status_code,
            "details": self.details,
            "source": self.source,
            "is_transient": self.is_transient,
            "timestamp": self.timestamp,
        }

    def __repr__(self) -> str:  # pragma: no cover
        return f"{self.__class__.__name__}(code={self.code!r}, subcode={self.subcode!r}, message={self.message!r})"


class InvalidArgumentError(CloudStructuresError, ValueError):
    """Caller supplied an unusable argument (empty key, empty etag, unknown operator)."""

    def __init__(self, message: str, *, subcode: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="invalid_argument", subcode=subcode, details=details, source="client")


class StructureStateError(CloudStructuresError):
    """The structure is in a state that does not allow the requested operation."""

    def __init__(self, message: str, *, subcode: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="structure_state_error", subcode=subcode, details=details, source="client")


class BatchError(CloudStructuresError):
    """Base class for batch management errors; handled by rotation inside the table structure."""

    def __init__(self, message: str, *, subcode: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="batch_error", subcode=subcode, details=details, source="client")


class BatchFullError(BatchError):
    def __init__(self, capacity: int) -> None:
        super().__init__(
            f"Batch already holds {capacity} operations.",
            subcode=ec.BATCH_FULL,
            details={"capacity": capacity},
        )
        self.capacity = capacity


class PartitionMismatchError(BatchError):
    def __init__(self, batch_partition_key: str, partition_key: str) -> None:
        super().__init__(
            f"Batch targets partition {batch_partition_key!r}; cannot append an operation for {partition_key!r}.",
            subcode=ec.BATCH_PARTITION_MISMATCH,
            details={"batch_partition_key": batch_partition_key, "partition_key": partition_key},
        )
        self.batch_partition_key = batch_partition_key
        self.partition_key = partition_key


class BatchSealedError(BatchError):
    def __init__(self) -> None:
        super().__init__("Batch is sealed and no longer accepts operations.", subcode=ec.BATCH_SEALED)


class StoreError(CloudStructuresError):
    """Failure reported by (or while reaching) the backing table store."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "store_error",
        subcode: Optional[str] = None,
        status_code: Optional[int] = None,
        is_transient: bool = False,
        service_error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        d = details or {}
        if service_error_code is not None:
            d["service_error_code"] = service_error_code
        super().__init__(
            message,
            code=code,
            subcode=subcode,
            status_code=status_code,
            details=d,
            source="server",
            is_transient=is_transient,
        )


class StoreUnavailableError(StoreError):
    """The store could not be reached or refused the credentials. Transient unless authentication failed."""

    def __init__(
        self,
        message: str,
        *,
        subcode: Optional[str] = ec.STORE_UNREACHABLE,
        status_code: Optional[int] = None,
        is_transient: bool = True,
        service_error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message,
            code="store_unavailable",
            subcode=subcode,
            status_code=status_code,
            is_transient=is_transient,
            service_error_code=service_error_code,
            details=details,
        )


class StoreRejectedError(StoreError):
    """The store refused the request (concurrency token mismatch, conflicting row, bad batch)."""

    def __init__(
        self,
        message: str,
        *,
        subcode: Optional[str] = None,
        status_code: Optional[int] = None,
        operation_index: Optional[int] = None,
        service_error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        d = details or {}
        if operation_index is not None:
            d["operation_index"] = operation_index
        super().__init__(
            message,
            code="store_rejected",
            subcode=subcode,
            status_code=status_code,
            is_transient=False,
            service_error_code=service_error_code,
            details=d,
        )
        self.operation_index = operation_index


class CommitError(CloudStructuresError):
    """
    A batch failed during :meth:`TableStructure.commit`.

    :param error: The store error raised for the failed batch.
    :type error: StoreError
    :param batch_index: Zero-based position of the failed batch within this commit call.
    :type batch_index: int
    :param batches_committed: Number of batches committed (and cleared) before the failure.
    :type batches_committed: int
    :param batches_pending: Number of batches still queued, the failed one included.
    :type batches_pending: int
    """

    def __init__(
        self,
        error: StoreError,
        *,
        table_name: str,
        batch_index: int,
        batches_committed: int,
        batches_pending: int,
        partition_key: Optional[str] = None,
    ) -> None:
        super().__init__(
            f"Commit of batch {batch_index} on {table_name} failed: {error.message}",
            code="commit_error",
            subcode=error.subcode,
            status_code=error.status_code,
            details={
                "table_name": table_name,
                "batch_index": batch_index,
                "batches_committed": batches_committed,
                "batches_pending": batches_pending,
                "partition_key": partition_key,
                "error": error.to_dict(),
            },
            source=error.source,
            is_transient=error.is_transient,
        )
        self.error = error
        self.table_name = table_name
        self.batch_index = batch_index
        self.batches_committed = batches_committed
        self.batches_pending = batches_pending
        self.partition_key = partition_key


__all__ = [
    "CloudStructuresError",
    "InvalidArgumentError",
    "StructureStateError",
    "BatchError",
    "BatchFullError",
    "PartitionMismatchError",
    "BatchSealedError",
    "StoreError",
    "StoreUnavailableError",
    "StoreRejectedError",
    "CommitError",
]
