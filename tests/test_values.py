"""Tests for values merging."""

import copy

import pytest

from chartrender.exceptions import MergeError, ParseError, RenderError
from chartrender.values import (
    PathStatus,
    coalesce_overrides,
    coalesce_values,
    merge_values,
    path_value,
    read_values,
)


# =============================================================================
# merge_values
# =============================================================================


class TestMergeValues:
    def test_nested_mappings_merge(self):
        base = {"image": {"repo": "nginx", "tag": "1.0"}, "port": 80}
        out = merge_values(base, {"image": {"tag": "2.0"}})
        assert out == {"image": {"repo": "nginx", "tag": "2.0"}, "port": 80}

    def test_lists_replace_wholesale(self):
        out = merge_values({"args": ["a", "b"]}, {"args": ["c"]})
        assert out == {"args": ["c"]}

    def test_scalar_replaces_mapping(self):
        out = merge_values({"a": {"x": 1}}, {"a": "flat"})
        assert out == {"a": "flat"}

    def test_null_deletes_key(self):
        """A null always deletes, even over a nested mapping."""
        out = merge_values({"a": {"x": {"y": 1}}, "b": 2}, {"a": None})
        assert out == {"b": 2}

    def test_null_deletes_nested_key(self):
        out = merge_values({"a": {"x": 1, "y": 2}}, {"a": {"x": None}})
        assert out == {"a": {"y": 2}}

    def test_inputs_not_modified(self):
        base = {"a": {"x": 1}}
        override = {"a": {"y": [1, 2]}}
        base_copy, override_copy = copy.deepcopy(base), copy.deepcopy(override)

        out = merge_values(base, override)
        out["a"]["y"].append(3)

        assert base == base_copy
        assert override == override_copy


# =============================================================================
# coalesce_overrides
# =============================================================================


class TestCoalesceOverrides:
    BASE = {"a": {"x": 1, "y": 2}, "b": [1], "c": "keep"}

    @pytest.mark.parametrize(
        "first, second, third",
        [
            ({"a": {"x": 5}}, {"a": {"z": 3}}, {"b": [2]}),
            ({"a": None}, {"a": {"z": 3}}, {"c": None}),
            ({"a": "scalar"}, {"a": {"z": 3}}, {"a": {"w": 4}}),
            ({"c": {"n": 1}}, {"c": None}, {"c": {"m": 2}}),
            ({}, {"a": {"x": None}}, {"a": {"x": 9}}),
        ],
    )
    def test_pre_merging_later_layers_is_equivalent(self, first, second, third):
        """A then B then C equals A then (B+C)."""
        sequential = merge_values(self.BASE, first, second, third)
        combined = merge_values(self.BASE, first, coalesce_overrides(second, third))
        assert sequential == combined

    def test_deletion_survives_coalescing(self):
        combined = coalesce_overrides({"a": {"x": 1}}, {"a": None})
        assert merge_values({"a": {"y": 2}}, combined) == {}


# =============================================================================
# coalesce_values
# =============================================================================


def test_root_override_wins(make_chart):
    chart = make_chart("app", values={"replicaCount": 1, "name": "web"})
    values = coalesce_values(chart, {"replicaCount": 3})
    assert values["app"]["replicaCount"] == 3
    assert values["app"]["name"] == "web"


def test_subchart_keeps_own_defaults(make_chart):
    """An override on the parent does not leak into a subchart."""
    db = make_chart("db", values={"replicaCount": 1})
    app = make_chart("app", values={"replicaCount": 1}, dependencies=[db])

    values = coalesce_values(app, {"replicaCount": 3})

    assert values["app"]["replicaCount"] == 3
    assert values["app/charts/db"]["replicaCount"] == 1


def test_parent_values_under_subchart_name_override_subchart(make_chart):
    db = make_chart("db", values={"replicaCount": 1, "port": 5432})
    app = make_chart("app", values={"db": {"port": 6543}}, dependencies=[db])

    values = coalesce_values(app, {"db": {"replicaCount": 2}})

    assert values["app/charts/db"]["replicaCount"] == 2
    assert values["app/charts/db"]["port"] == 6543
    # parent sees the subchart's merged values
    assert values["app"]["db"] == {"replicaCount": 2, "port": 6543}


def test_null_override_deletes_subchart_key(make_chart):
    db = make_chart("db", values={"replicaCount": 1, "port": 5432})
    app = make_chart("app", dependencies=[db])

    values = coalesce_values(app, {"db": {"replicaCount": None}})

    assert values["app/charts/db"] == {"port": 5432, "global": {}}
    assert values["app"]["db"] == {"port": 5432}


def test_null_override_deletes_nested_subchart_mapping(make_chart):
    db = make_chart("db", values={"resources": {"limits": {"cpu": 1}}, "port": 5432})
    app = make_chart("app", dependencies=[db])

    values = coalesce_values(app, {"db": {"resources": None}})

    assert "resources" not in values["app/charts/db"]
    assert values["app/charts/db"]["port"] == 5432


def test_null_override_reaches_grandchild(make_chart):
    cache = make_chart("cache", values={"size": 1, "ttl": 60})
    db = make_chart("db", values={"cache": {"size": 2}}, dependencies=[cache])
    app = make_chart("app", dependencies=[db])

    values = coalesce_values(app, {"db": {"cache": {"ttl": None}}})

    assert values["app/charts/db/charts/cache"] == {"size": 2, "global": {}}


def test_null_override_drops_parent_section(make_chart):
    """Deleting the whole section leaves the subchart with its own defaults."""
    db = make_chart("db", values={"port": 5432})
    app = make_chart("app", values={"db": {"port": 6543}}, dependencies=[db])

    values = coalesce_values(app, {"db": None})

    assert values["app/charts/db"]["port"] == 5432


def test_coalesced_override_files_delete_in_subchart(make_chart):
    db = make_chart("db", values={"replicaCount": 1, "port": 5432})
    app = make_chart("app", dependencies=[db])
    combined = coalesce_overrides({"db": {"port": 1}}, {"db": {"replicaCount": None}})

    values = coalesce_values(app, combined)

    assert values["app/charts/db"] == {"port": 1, "global": {}}


def test_global_shared_by_siblings(make_chart):
    a = make_chart("a")
    b = make_chart("b")
    app = make_chart(
        "app",
        values={"global": {"env": "dev", "region": "eu"}},
        dependencies=[a, b],
    )

    values = coalesce_values(app, {"global": {"env": "prod"}})

    expected = {"env": "prod", "region": "eu"}
    assert values["app"]["global"] == expected
    assert values["app/charts/a"]["global"] == expected
    assert values["app/charts/b"]["global"] == expected


def test_subchart_global_stays_below_parent(make_chart):
    """A subchart's own global defaults do not reach its parent or siblings."""
    a = make_chart("a", values={"global": {"env": "from-a", "team": "a"}})
    b = make_chart("b", values={"global": {"env": "from-b"}})
    c = make_chart("c")
    app = make_chart(
        "app", values={"global": {"env": "from-app"}}, dependencies=[a, b, c]
    )

    values = coalesce_values(app)

    assert values["app"]["global"] == {"env": "from-app"}
    assert values["app/charts/a"]["global"] == {"env": "from-a", "team": "a"}
    assert values["app/charts/b"]["global"] == {"env": "from-b"}
    assert values["app/charts/c"]["global"] == {"env": "from-app"}


def test_override_global_beats_subchart_default(make_chart):
    db = make_chart("db", values={"global": {"env": "from-db"}})
    app = make_chart("app", dependencies=[db])

    values = coalesce_values(app, {"global": {"env": "prod"}})

    assert values["app/charts/db"]["global"] == {"env": "prod"}


def test_global_injected_into_node_without_declaration(make_chart):
    sub = make_chart("sub", values={"x": 1})
    app = make_chart("app", dependencies=[sub])

    values = coalesce_values(app, {"global": {"env": "prod"}})

    assert values["app/charts/sub"]["global"] == {"env": "prod"}


def test_global_null_override_clears(make_chart):
    app = make_chart("app", values={"global": {"env": "dev"}})
    values = coalesce_values(app, {"global": None})
    assert values["app"]["global"] == {}


def test_chart_values_not_mutated(make_chart):
    db = make_chart("db", values={"nested": {"a": 1}})
    app = make_chart("app", values={"nested": {"b": 2}}, dependencies=[db])
    snapshot = (copy.deepcopy(app.values), copy.deepcopy(db.values))

    coalesce_values(app, {"nested": {"c": 3}, "db": {"nested": {"d": 4}}})

    assert (app.values, db.values) == snapshot


def test_non_mapping_override_is_parse_error(make_chart):
    with pytest.raises(ParseError, match="must be a mapping"):
        coalesce_values(make_chart("app"), ["not", "a", "mapping"])


def test_non_mapping_subchart_section_is_merge_error(make_chart):
    db = make_chart("db")
    app = make_chart("app", dependencies=[db])
    with pytest.raises(MergeError, match="subchart 'db'"):
        coalesce_values(app, {"db": "oops"})


def test_nested_mapping_errors_are_render_errors(make_chart):
    app = make_chart("app", values={"global": ["x"]})
    with pytest.raises(RenderError, match="global"):
        coalesce_values(app)
    assert issubclass(MergeError, RenderError)
    assert issubclass(ParseError, RenderError)


# =============================================================================
# read_values / path_value
# =============================================================================


def test_read_values_empty_document():
    assert read_values("") == {}


def test_read_values_rejects_list():
    with pytest.raises(ParseError, match="override.yaml"):
        read_values("- a\n- b\n", source="override.yaml")


def test_read_values_bad_yaml():
    with pytest.raises(ParseError):
        read_values("a: [unclosed\n")


def test_path_value_statuses():
    values = {"image": {"tag": "1.0"}, "port": 80}

    assert path_value(values, "image.tag").value == "1.0"
    assert path_value(values, "image.tag").found
    assert path_value(values, "image.repo").status is PathStatus.MISSING
    assert path_value(values, "port.number").status is PathStatus.TYPE_MISMATCH
