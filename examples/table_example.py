#!/usr/bin/env python3
# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
cloudstructures - Table quickstart

Creates (or loads) ``sampletable``, queues 201 inserts on a single partition
and commits them. The structure splits the inserts into three transactions
(100 + 100 + 1) because the table service accepts at most 100 operations per
batch.

Prerequisites:
- cloudstructures installed (``pip install -e .``)
- A storage account connection string in the ``AzureWebJobsStorage``
  environment variable (``UseDevelopmentStorage=true`` works with Azurite)

Usage:
    python examples/table_example.py
"""

import asyncio
import logging
import os
import sys

from cloudstructures import Entity, TableStructure
from cloudstructures.core.errors import CommitError, StoreError
from cloudstructures.core.log import StdlibLogger
from cloudstructures.core.telemetry import MetricsCollector
from cloudstructures.data.azure_tables import AzureTableStoreClient


async def main() -> None:
    connection_string = os.environ.get("AzureWebJobsStorage")
    if not connection_string:
        print("❌ Set the AzureWebJobsStorage environment variable to a storage connection string.")
        sys.exit(1)

    metrics = MetricsCollector()

    async with AzureTableStoreClient.from_connection_string(connection_string) as store:
        table = TableStructure("sampletable", store, metrics=metrics)

        # Creating "sampletable". Loading it if already exists.
        try:
            await table.create_or_load_structure()
        except StoreError as e:
            print(f"❌ Could not reach the table service: {e.message}")
            sys.exit(1)

        # Set this True to silence the structure's own messages
        table.logging_disabled = False

        for i in range(201):
            table.insert(Entity("partitionkey", str(i), properties={"FooProperty": 10}))
        print(f"📦 {table.pending_operations} operations queued in {table.pending_batches} batches")

        try:
            result = await table.commit()
        except CommitError as e:
            print(f"❌ Batch {e.batch_index} failed after {e.batches_committed} committed: {e.error.message}")
            if e.is_transient:
                print("   The failure is transient; awaiting commit() again resumes at the failed batch.")
            sys.exit(1)

        print(f"✅ Committed {result.operations_committed} operations in {result.batches_committed} batches")

        entities = await table.retrieve_all("partitionkey").to_list()
        print(f"🔎 partitionkey now holds {len(entities)} entities")

    metrics.log_report(StdlibLogger("cloudstructures.example"))


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    asyncio.run(main())
