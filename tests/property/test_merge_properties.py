"""Property tests for shared-state merge laws."""

from typing import Any

from hypothesis import given
from hypothesis import strategies as st

from chunksync.core.state import merge_values
from tests.property.conftest import patch_values, state_keys
from tests.property.settings import STANDARD_SETTINGS

patches = st.dictionaries(state_keys, patch_values, max_size=5)


@given(current=patches, history=st.lists(patches, min_size=1, max_size=5))
@STANDARD_SETTINGS
def test_shallow_merge_keeps_latest_value_per_key(current: dict[str, Any], history: list[dict[str, Any]]) -> None:
    merged = current
    for patch in history:
        merged = merge_values(merged, patch)

    for key in merged:
        writers = [patch for patch in history if key in patch]
        expected = writers[-1][key] if writers else current[key]
        assert merged[key] == expected


list_patches = st.dictionaries(state_keys, st.lists(st.integers(0, 9), max_size=4), max_size=4)
nested_patches = st.dictionaries(state_keys, list_patches, max_size=3)


@given(a=nested_patches, b=nested_patches, c=nested_patches)
@STANDARD_SETTINGS
def test_deep_concat_merge_is_associative(a: dict[str, Any], b: dict[str, Any], c: dict[str, Any]) -> None:
    def merge(x: dict[str, Any], y: dict[str, Any]) -> dict[str, Any]:
        return merge_values(x, y, deep_merge=True, concat_arrays=True)

    assert merge(merge(a, b), c) == merge(a, merge(b, c))


@given(current=st.lists(st.integers(0, 9), max_size=6), patch=st.lists(st.integers(0, 9), max_size=6))
@STANDARD_SETTINGS
def test_concat_keeps_current_prefix_and_adds_only_new_items(current: list[int], patch: list[int]) -> None:
    merged = merge_values({"k": current}, {"k": patch}, concat_arrays=True)["k"]

    assert merged[: len(current)] == current
    assert set(merged) == set(current) | set(patch)
