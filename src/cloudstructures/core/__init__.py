# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Core infrastructure components for cloudstructures.

This package contains the foundational components: batching, configuration,
logging, telemetry, result types and error handling. Import from the specific
modules, e.g. ``from cloudstructures.core.batch import MutationBatch``.
"""

__all__ = []
