# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Store access layer for cloudstructures.

- :mod:`~cloudstructures.data.store`: The asynchronous store contract.
- :mod:`~cloudstructures.data.azure_tables`: Azure Table storage implementation.
"""

__all__ = []
