"""Shared-state store and its merge policy."""

from chunksync.core.state.merge import merge_values
from chunksync.core.state.store import LOCK_SUFFIX, SharedStateStore, lock_key

__all__ = ["LOCK_SUFFIX", "SharedStateStore", "lock_key", "merge_values"]
