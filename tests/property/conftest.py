"""Shared Hypothesis strategies for property-based tests.

Usage:
    from tests.property.conftest import json_records

    @given(records=st.lists(json_records))
    def test_split_preserves_order(records: list) -> None:
        ...
"""

from __future__ import annotations

from hypothesis import strategies as st

# JSON-safe scalars: NaN/Infinity are rejected by chunk payloads
json_scalars = st.one_of(
    st.none(),
    st.booleans(),
    st.integers(min_value=-(2**53), max_value=2**53),
    st.floats(allow_nan=False, allow_infinity=False),
    st.text(max_size=20),
)

json_records = st.recursive(
    json_scalars,
    lambda children: st.one_of(
        st.lists(children, max_size=4),
        st.dictionaries(st.text(max_size=8), children, max_size=4),
    ),
    max_leaves=10,
)

state_keys = st.text(alphabet="abcdefghij", min_size=1, max_size=3)

# Flat JSON values for merge patches
patch_values = st.one_of(json_scalars, st.lists(st.integers(0, 5), max_size=4))
