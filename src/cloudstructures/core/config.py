# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..common.constants import OPERATIONS_LIMIT, WILDCARD_ETAG
from .telemetry import TelemetryConfig


@dataclass(frozen=True)
class StructuresConfig:
    """
    Configuration settings for table structures.

    :param operations_limit: Maximum operations per batch (default: 100, the store's
        transaction limit). Must be between 1 and 100.
    :type operations_limit: int
    :param page_size: Entities requested per page during partition scans. ``None``
        uses the store default.
    :type page_size: int or None
    :param wildcard_etag: ETag assigned to deletes that carry none (default: ``"*"``).
    :type wildcard_etag: str
    :param logging_disabled: Silence the structure's logger (default: False).
    :type logging_disabled: bool
    :param telemetry: Optional tracing/metrics/hook configuration.
    :type telemetry: ~cloudstructures.core.telemetry.TelemetryConfig or None

    :raises ValueError: If ``operations_limit`` or ``page_size`` is out of range,
        or ``wildcard_etag`` is empty.
    """

    operations_limit: int = OPERATIONS_LIMIT
    page_size: Optional[int] = None
    wildcard_etag: str = WILDCARD_ETAG
    logging_disabled: bool = False
    telemetry: Optional[TelemetryConfig] = None

    def __post_init__(self) -> None:
        if not 1 <= self.operations_limit <= OPERATIONS_LIMIT:
            raise ValueError(
                f"operations_limit must be between 1 and {OPERATIONS_LIMIT}, got {self.operations_limit}."
            )
        if self.page_size is not None and self.page_size < 1:
            raise ValueError(f"page_size must be positive, got {self.page_size}.")
        if not self.wildcard_etag:
            raise ValueError("wildcard_etag must be a non-empty string.")

    @classmethod
    def from_env(cls) -> "StructuresConfig":
        """
        Create a configuration instance with default settings.

        :return: Configuration instance with default values.
        :rtype: ~cloudstructures.core.config.StructuresConfig
        """
        # Environment-free defaults
        return cls(
            operations_limit=OPERATIONS_LIMIT,
            page_size=None,  # Store default (1000 entities per page)
            wildcard_etag=WILDCARD_ETAG,
            logging_disabled=False,
            telemetry=None,
        )
