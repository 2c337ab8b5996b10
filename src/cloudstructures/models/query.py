# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Filter builders for partition scans.

Produces OData filter strings accepted by the table service, for example
``(PartitionKey eq 'invoices') and (Amount gt 10)``.
"""

from __future__ import annotations

import datetime as _dt
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Union

from ..common.constants import (
    OPERATOR_AND,
    PARTITION_KEY_PROPERTY,
    QUERY_COMPARISONS,
    QUERY_EQUAL,
    TABLE_OPERATORS,
)
from ..core import _error_codes as ec
from ..core.errors import InvalidArgumentError


def format_value(value: Any) -> str:
    """
    Format a value for OData filter syntax.

    :param value: Value to format.
    :return: OData-formatted value string.
    :rtype: str
    """
    if value is None:
        return "null"
    if isinstance(value, str):
        # Escape single quotes by doubling them
        escaped = value.replace("'", "''")
        return f"'{escaped}'"
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, _dt.datetime):
        if value.tzinfo is not None:
            value = value.astimezone(_dt.timezone.utc).replace(tzinfo=None)
        return f"datetime'{value.isoformat()}Z'"
    # For GUIDs and other types, convert to string
    return str(value)


def generate_filter_condition(property_name: str, operation: str, value: Any) -> str:
    """
    Build a single comparison, e.g. ``RowKey ge '100'``.

    :raises InvalidArgumentError: If ``operation`` is not a known comparison.
    """
    op = (operation or "").lower()
    if op not in QUERY_COMPARISONS:
        raise InvalidArgumentError(
            f"Unknown comparison operator {operation!r}.",
            subcode=ec.VALIDATION_UNKNOWN_OPERATOR,
            details={"allowed": sorted(QUERY_COMPARISONS)},
        )
    return f"{property_name} {op} {format_value(value)}"


def combine_filters(left: str, operator: str, right: str) -> str:
    """
    Combine two filter expressions with ``and``/``or``.

    Each side is parenthesized so operator precedence inside ``right`` cannot
    widen the combined condition.

    :raises InvalidArgumentError: If ``operator`` is not ``and`` or ``or``.
    """
    return f"({left}) {_table_operator(operator)} ({right})"


def _table_operator(operator: str) -> str:
    op = (operator or "").lower()
    if op not in TABLE_OPERATORS:
        raise InvalidArgumentError(
            f"Unknown table operator {operator!r}.",
            subcode=ec.VALIDATION_UNKNOWN_OPERATOR,
            details={"allowed": sorted(TABLE_OPERATORS)},
        )
    return op


@dataclass(frozen=True)
class PartitionQuery:
    """
    Scan of one partition, optionally narrowed by extra conditions.

    The partition condition is always joined with ``and``, so the scan never
    leaves the partition. ``extra_operator`` only joins the extra conditions
    with each other.

    :param partition_key: Partition to scan.
    :type partition_key: str
    :param extra_filter: Additional OData filter expression, or several of them.
    :type extra_filter: str | Sequence[str] | None
    :param extra_operator: Operator joining the expressions of ``extra_filter``.
    :type extra_operator: str

    Example::

        query = PartitionQuery("invoices", extra_filter="Amount gt 10")
        query.filter  # "(PartitionKey eq 'invoices') and (Amount gt 10)"

        query = PartitionQuery("invoices", ["RowKey eq '1'", "RowKey eq '2'"], "or")
        query.filter  # "(PartitionKey eq 'invoices') and ((RowKey eq '1') or (RowKey eq '2'))"
    """

    partition_key: str
    extra_filter: Optional[Union[str, Sequence[str]]] = None
    extra_operator: str = OPERATOR_AND

    @property
    def filter(self) -> str:
        condition = generate_filter_condition(PARTITION_KEY_PROPERTY, QUERY_EQUAL, self.partition_key)
        operator = _table_operator(self.extra_operator)
        conditions = [self.extra_filter] if isinstance(self.extra_filter, str) else list(self.extra_filter or ())
        extra = None
        for expression in conditions:
            extra = expression if extra is None else combine_filters(extra, operator, expression)
        if extra is None:
            return condition
        return combine_filters(condition, OPERATOR_AND, extra)


__all__ = ["PartitionQuery", "combine_filters", "format_value", "generate_filter_condition"]
