"""
Store-level errors.

These describe a whole refresh cycle failing. The store keeps its previous
snapshot when they are raised, so cached data stays available.
"""
from __future__ import annotations


class StoreError(Exception):
    """Base class for refresh-cycle failures."""
    pass


class NoSourcesConfigured(StoreError):
    """No registry source is configured."""
    pass


class NoReachableRegistries(StoreError):
    """Every configured registry failed to list its catalog."""
    pass


__all__ = ["StoreError", "NoSourcesConfigured", "NoReachableRegistries"]
