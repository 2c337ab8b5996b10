# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Data models and type definitions for cloudstructures.

- :class:`~cloudstructures.models.entity.Entity`: Keyed table entity with dict-like property access.
- :class:`~cloudstructures.models.entity.TableOperation`: Pending upsert or delete.
- :class:`~cloudstructures.models.query.PartitionQuery`: Partition scan filter.

Note:
    This ``__init__.py`` does NOT import/export models. Import directly from
    the specific module files.
"""

__all__ = []
