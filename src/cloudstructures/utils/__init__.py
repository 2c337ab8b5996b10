# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Utilities for cloudstructures.

- :mod:`~cloudstructures.utils._pandas`: Entity list to/from DataFrame conversion
  (requires the ``pandas`` extra).
"""

__all__ = []
