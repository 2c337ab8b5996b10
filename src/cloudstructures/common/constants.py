# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Constants shared by the table structure, its batches and the store adapters.

These values mirror limits and wire-level tokens imposed by the partitioned
table service rather than tunables of this library.
"""

# Hard limit on operations inside one atomic transaction (entity group)
OPERATIONS_LIMIT = 100

# ETag value that disables the optimistic concurrency check on deletes
WILDCARD_ETAG = "*"

# Reserved key property names in the store's flat entity representation
PARTITION_KEY_PROPERTY = "PartitionKey"
ROW_KEY_PROPERTY = "RowKey"
ETAG_PROPERTY = "etag"

# Filter comparison operators
# See: https://learn.microsoft.com/en-us/rest/api/storageservices/querying-tables-and-entities

QUERY_EQUAL = "eq"
QUERY_NOT_EQUAL = "ne"
QUERY_GREATER_THAN = "gt"
QUERY_GREATER_THAN_OR_EQUAL = "ge"
QUERY_LESS_THAN = "lt"
QUERY_LESS_THAN_OR_EQUAL = "le"

QUERY_COMPARISONS = frozenset(
    {
        QUERY_EQUAL,
        QUERY_NOT_EQUAL,
        QUERY_GREATER_THAN,
        QUERY_GREATER_THAN_OR_EQUAL,
        QUERY_LESS_THAN,
        QUERY_LESS_THAN_OR_EQUAL,
    }
)

# Boolean operators used to combine filter conditions
OPERATOR_AND = "and"
OPERATOR_OR = "or"

TABLE_OPERATORS = frozenset({OPERATOR_AND, OPERATOR_OR})

# OpenTelemetry semantic convention attribute names
OTEL_ATTR_DB_SYSTEM = "db.system"
OTEL_ATTR_DB_OPERATION = "db.operation"
OTEL_ATTR_TABLE_NAME = "cloudstructures.table"
OTEL_ATTR_PARTITION_KEY = "cloudstructures.partition_key"
OTEL_ATTR_BATCH_INDEX = "cloudstructures.batch.index"
OTEL_ATTR_BATCH_SIZE = "cloudstructures.batch.size"
