# src/chunksync/core/state/merge.py
"""Merge policy for shared-state updates.

For a key present in both current and patch:
- both lists: concat_arrays appends patch items not already present,
  otherwise the patch list replaces the current one
- both dicts: deep_merge recurses with the same flags, otherwise the
  patch dict replaces the current one
- anything else: the patch value wins

Keys only present in the patch are added; keys only present in current
are kept.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any


def _concat_unique(current: list[Any], patch: list[Any]) -> list[Any]:
    merged = list(current)
    for item in patch:
        if item not in merged:
            merged.append(item)
    return merged


def merge_values(
    current: Mapping[str, Any],
    patch: Mapping[str, Any],
    *,
    deep_merge: bool = False,
    concat_arrays: bool = False,
) -> dict[str, Any]:
    """Merge `patch` into `current` and return a new dict.

    Neither input is modified.
    """
    merged = dict(current)
    for key, new in patch.items():
        if key not in merged:
            merged[key] = new
            continue
        old = merged[key]
        if isinstance(old, list) and isinstance(new, list):
            merged[key] = _concat_unique(old, new) if concat_arrays else new
        elif isinstance(old, dict) and isinstance(new, dict) and deep_merge:
            merged[key] = merge_values(old, new, deep_merge=deep_merge, concat_arrays=concat_arrays)
        else:
            merged[key] = new
    return merged
