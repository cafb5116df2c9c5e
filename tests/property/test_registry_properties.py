"""Property tests for the registry merge."""

from typing import Any

from hypothesis import given
from hypothesis import strategies as st

from bulkimport.contracts.errors import SchemaConflictError
from bulkimport.core.registry import InMemoryStatusRegistry, deep_merge

keys = st.sampled_from(["a", "b", "c", "d"])
scalars = st.one_of(st.integers(), st.text(max_size=5), st.booleans())
nested = st.recursive(
    st.dictionaries(keys, scalars, max_size=3),
    lambda children: st.dictionaries(keys, children, max_size=3),
    max_leaves=10,
)


@given(partial=nested)
def test_merge_into_empty_is_identity(partial: dict[str, Any]) -> None:
    assert deep_merge({}, partial) == partial


@given(partial=nested)
def test_merging_mappings_twice_is_idempotent(partial: dict[str, Any]) -> None:
    once = deep_merge({}, partial)
    assert deep_merge(once, partial) == once


@given(files=st.lists(st.dictionaries(st.text(min_size=1, max_size=8), st.just({}), max_size=4), max_size=8))
def test_file_partials_accumulate(files: list[dict[str, dict[str, Any]]]) -> None:
    registry = InMemoryStatusRegistry()
    for entry in files:
        assert registry.merge_attributes_recursive("status", {"files": entry})

    status = registry.get_attribute("status") or {"files": {}}
    expected = {path for entry in files for path in entry}
    assert set(status["files"]) == expected


@given(first=nested, second=nested)
def test_merge_keeps_keys_absent_from_partial(first: dict[str, Any], second: dict[str, Any]) -> None:
    try:
        merged = deep_merge(first, second)
    except SchemaConflictError:
        return

    for key, value in first.items():
        if key not in second:
            assert merged[key] == value
    for key, value in second.items():
        if not isinstance(value, dict):
            assert merged[key] == value
