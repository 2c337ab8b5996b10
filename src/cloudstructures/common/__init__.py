# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Common utilities and constants for cloudstructures.

This module contains shared constants used across the library.
"""

__all__ = []
