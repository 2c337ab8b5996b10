# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Shared pytest fixtures and configuration for cloudstructures tests.

This module provides common test fixtures, store doubles, and configuration
that can be used across all test modules.
"""

import pytest

from cloudstructures.core.config import StructuresConfig
from cloudstructures.core.telemetry import MetricsCollector
from cloudstructures.models.entity import Entity
from tests.unit.test_helpers import RecordingLogger, RecordingStoreClient


@pytest.fixture
def store():
    """In-memory store where ``sampletable`` already exists."""
    return RecordingStoreClient(tables=["sampletable"])


@pytest.fixture
def recording_logger():
    return RecordingLogger()


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def small_config():
    """Configuration with a batch capacity of 2 operations."""
    return StructuresConfig(operations_limit=2)


@pytest.fixture
def make_entity():
    """Factory for entities: ``make_entity("A", "1", Price=10)``."""

    def _make(partition_key="partitionkey", row_key="1", etag=None, **properties):
        return Entity(partition_key, row_key, etag=etag, properties=properties)

    return _make
