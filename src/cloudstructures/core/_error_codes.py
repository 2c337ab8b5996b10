# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

# HTTP subcode constants
HTTP_400 = "http_400"
HTTP_401 = "http_401"
HTTP_403 = "http_403"
HTTP_404 = "http_404"
HTTP_409 = "http_409"
HTTP_412 = "http_412"
HTTP_429 = "http_429"
HTTP_500 = "http_500"
HTTP_502 = "http_502"
HTTP_503 = "http_503"
HTTP_504 = "http_504"

ALL_HTTP_SUBCODES = {
    HTTP_400,
    HTTP_401,
    HTTP_403,
    HTTP_404,
    HTTP_409,
    HTTP_412,
    HTTP_429,
    HTTP_500,
    HTTP_502,
    HTTP_503,
    HTTP_504,
}

# Status codes surfaced as transient (caller may retry)
TRANSIENT_STATUS_CODES = {408, 429, 500, 502, 503, 504}

# Validation subcodes
VALIDATION_EMPTY_PARTITION_KEY = "validation_empty_partition_key"
VALIDATION_EMPTY_ROW_KEY = "validation_empty_row_key"
VALIDATION_EMPTY_ETAG = "validation_empty_etag"
VALIDATION_EMPTY_STRUCTURE_NAME = "validation_empty_structure_name"
VALIDATION_UNKNOWN_OPERATOR = "validation_unknown_operator"

# Batch subcodes
BATCH_FULL = "batch_full"
BATCH_PARTITION_MISMATCH = "batch_partition_mismatch"
BATCH_SEALED = "batch_sealed"

# Store subcodes
STORE_UNREACHABLE = "store_unreachable"
STORE_AUTHENTICATION = "store_authentication"
STORE_TRANSACTION_FAILED = "store_transaction_failed"
STORE_CONCURRENCY_MISMATCH = "store_concurrency_mismatch"

# Structure subcodes
STRUCTURE_DELETED = "structure_deleted"


def http_subcode(status: int) -> str:
    """Map an HTTP status code to its subcode constant."""
    return f"http_{status}"


def is_transient_status(status: int) -> bool:
    return status in TRANSIENT_STATUS_CODES
