# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Batched, partition-aware access to partitioned table stores.

Example::

    from cloudstructures import Entity, TableStructure
    from cloudstructures.data.azure_tables import AzureTableStoreClient

    async with AzureTableStoreClient.from_connection_string(conn_str) as store:
        table = TableStructure("sampletable", store)
        await table.create_or_load_structure()
        table.insert(Entity("partitionkey", "1", properties={"Foo": 10}))
        await table.commit()
"""

from .core.config import StructuresConfig
from .models.entity import Entity
from .table import PartitionScan, StructureState, TableStructure

__version__ = "0.1.0"

__all__ = [
    "Entity",
    "PartitionScan",
    "StructureState",
    "StructuresConfig",
    "TableStructure",
    "__version__",
]
