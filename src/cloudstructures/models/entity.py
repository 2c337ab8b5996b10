# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Entity and operation data models.

Provides a keyed representation of table entities with dict-like access to
their properties, and the pending operations that batches collect.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterator, Mapping, Optional

from ..common.constants import (
    ETAG_PROPERTY,
    PARTITION_KEY_PROPERTY,
    ROW_KEY_PROPERTY,
    WILDCARD_ETAG,
)
from ..core import _error_codes as ec
from ..core.errors import InvalidArgumentError

# Type aliases for semantic clarity
PartitionKey = str
RowKey = str


@dataclass
class Entity:
    """
    Keyed table entity with an optional concurrency token.

    Property values are passed to and from the store untouched; this model does
    not map or coerce field types.

    :param partition_key: Partition the entity lives in.
    :type partition_key: str
    :param row_key: Identifier of the entity within its partition.
    :type row_key: str
    :param etag: Optimistic concurrency token. ``None`` for new entities,
        ``"*"`` to skip the concurrency check.
    :type etag: str | None
    :param properties: Entity payload as key-value pairs.
    :type properties: dict[str, Any]

    Example::

        entity = Entity("invoices", "2020-0001", properties={"Amount": 10})
        entity["Paid"] = True
        print(entity.row_key, entity["Amount"])
    """

    partition_key: PartitionKey
    row_key: RowKey
    etag: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict)

    # Dict-like access to properties

    def __getitem__(self, key: str) -> Any:
        return self.properties[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.properties[key] = value

    def __delitem__(self, key: str) -> None:
        del self.properties[key]

    def __contains__(self, key: object) -> bool:
        return key in self.properties

    def __iter__(self) -> Iterator[str]:
        return iter(self.properties)

    def __len__(self) -> int:
        return len(self.properties)

    def __bool__(self) -> bool:
        # An entity without properties is still an existing row
        return True

    def get(self, key: str, default: Any = None) -> Any:
        return self.properties.get(key, default)

    @property
    def key(self) -> tuple:
        """``(partition_key, row_key)`` primary key tuple."""
        return (self.partition_key, self.row_key)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to the store's flat representation.

        Keys are emitted as ``PartitionKey``/``RowKey`` next to the properties;
        the etag is metadata and is not included.

        :return: Flat entity dictionary.
        :rtype: dict[str, Any]
        """
        flat = dict(self.properties)
        flat[PARTITION_KEY_PROPERTY] = self.partition_key
        flat[ROW_KEY_PROPERTY] = self.row_key
        return flat

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], *, etag: Optional[str] = None) -> "Entity":
        """
        Create an Entity from the store's flat representation.

        :param data: Flat entity mapping with ``PartitionKey`` and ``RowKey``.
        :type data: Mapping[str, Any]
        :param etag: ETag reported by the store; falls back to an ``etag`` key in ``data``.
        :type etag: str | None
        :return: Entity instance.
        :rtype: Entity
        :raises InvalidArgumentError: If either key is missing.
        """
        properties = dict(data)
        pk = properties.pop(PARTITION_KEY_PROPERTY, None)
        rk = properties.pop(ROW_KEY_PROPERTY, None)
        embedded_etag = properties.pop(ETAG_PROPERTY, None)
        if pk is None or rk is None:
            raise InvalidArgumentError(
                "Entity data must contain PartitionKey and RowKey.",
                subcode=ec.VALIDATION_EMPTY_PARTITION_KEY if pk is None else ec.VALIDATION_EMPTY_ROW_KEY,
            )
        return cls(
            partition_key=str(pk),
            row_key=str(rk),
            etag=etag if etag is not None else embedded_etag,
            properties=properties,
        )


class OperationKind(str, Enum):
    """Kind of pending mutation."""

    UPSERT = "upsert"
    DELETE = "delete"


def validate_keys(partition_key: Optional[str], row_key: Optional[str]) -> None:
    """
    Reject missing or blank keys.

    :raises InvalidArgumentError: If either key is empty or whitespace.
    """
    if not partition_key or not str(partition_key).strip():
        raise InvalidArgumentError(
            "partition_key must be a non-empty string.",
            subcode=ec.VALIDATION_EMPTY_PARTITION_KEY,
        )
    if not row_key or not str(row_key).strip():
        raise InvalidArgumentError(
            "row_key must be a non-empty string.",
            subcode=ec.VALIDATION_EMPTY_ROW_KEY,
        )


@dataclass(frozen=True)
class TableOperation:
    """
    A pending mutation against one entity.

    Delete operations always carry an etag; use :meth:`delete` to build one
    with an absent etag normalized to the wildcard.

    :param kind: Operation kind.
    :type kind: OperationKind
    :param entity: Target entity.
    :type entity: Entity
    :raises InvalidArgumentError: If the entity keys are empty, or a delete has no etag.
    """

    kind: OperationKind
    entity: Entity

    def __post_init__(self) -> None:
        validate_keys(self.entity.partition_key, self.entity.row_key)
        if self.kind is OperationKind.DELETE and not (self.entity.etag or "").strip():
            raise InvalidArgumentError(
                "Delete operations require an etag; use '*' to skip the concurrency check.",
                subcode=ec.VALIDATION_EMPTY_ETAG,
                details={"partition_key": self.entity.partition_key, "row_key": self.entity.row_key},
            )

    @property
    def partition_key(self) -> PartitionKey:
        return self.entity.partition_key

    @property
    def row_key(self) -> RowKey:
        return self.entity.row_key

    @classmethod
    def upsert(cls, entity: Entity) -> "TableOperation":
        return cls(OperationKind.UPSERT, entity)

    @classmethod
    def delete(cls, entity: Entity, *, wildcard_etag: str = WILDCARD_ETAG) -> "TableOperation":
        """Build a delete, copying the entity with ``wildcard_etag`` when it has no etag."""
        if not (entity.etag or "").strip():
            entity = replace(entity, etag=wildcard_etag, properties=dict(entity.properties))
        return cls(OperationKind.DELETE, entity)


__all__ = ["Entity", "OperationKind", "TableOperation", "PartitionKey", "RowKey", "validate_keys"]
