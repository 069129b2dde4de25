import tomllib

from forgeclaw.merge import deep_merge


def test_merge_disjoint_tables():
    base = tomllib.loads("[a]\nx = 1")
    overlay = tomllib.loads("[b]\ny = 2")
    merged = deep_merge(base, overlay)
    assert merged == {"a": {"x": 1}, "b": {"y": 2}}


def test_overlay_overrides_scalar():
    base = tomllib.loads("[a]\nx = 1")
    overlay = tomllib.loads("[a]\nx = 2")
    merged = deep_merge(base, overlay)
    assert merged["a"]["x"] == 2


def test_nested_tables_merge_recursively():
    base = tomllib.loads("[a]\nx = 1\n[a.nested]\nfoo = true")
    overlay = tomllib.loads("[a]\ny = 2\n[a.nested]\nbar = false")
    merged = deep_merge(base, overlay)
    assert merged["a"]["x"] == 1
    assert merged["a"]["y"] == 2
    assert merged["a"]["nested"] == {"foo": True, "bar": False}


def test_non_table_overlay_replaces_table():
    merged = deep_merge({"a": {"x": 1}}, {"a": 5})
    assert merged == {"a": 5}


def test_table_overlay_replaces_scalar():
    merged = deep_merge({"a": 5}, {"a": {"x": 1}})
    assert merged == {"a": {"x": 1}}


def test_inputs_are_not_modified():
    base = {"a": {"x": 1}}
    overlay = {"a": {"y": 2}}
    deep_merge(base, overlay)
    assert base == {"a": {"x": 1}}
    assert overlay == {"a": {"y": 2}}


def test_merge_into_empty_table():
    overlay = {"runtime": {"log_level": "debug"}}
    assert deep_merge({}, overlay) == overlay