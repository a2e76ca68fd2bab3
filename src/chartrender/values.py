"""Values merging across a chart tree.

Precedence, lowest to highest, for one chart node:
1. the chart's own default values
2. each ancestor layer's section under the chart's name, outermost last
   (for the root chart: the user overrides)

The sections are taken from the raw layers, so a null aimed at a subchart key
still deletes that key in the subchart.

Per key: mapping over mapping merges recursively, anything else replaces the
base wholesale (lists included), and None deletes the key.

`global` is handled separately: the `global` defaults along a node's ancestor
chain are merged root first, then the override's `global` on top. A node that
declares nothing sees exactly its parent's map.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any, NamedTuple

import yaml

from chartrender.chart.spec import Chart
from chartrender.exceptions import MergeError, ParseError

logger = logging.getLogger(__name__)

GLOBAL_KEY = "global"


class _Replace:
    """Marks a mapping that replaces the base value instead of merging into it.

    Only produced by `coalesce_overrides`, when a later layer puts a mapping
    where an earlier layer had deleted or replaced the key.
    """

    __slots__ = ("value",)

    def __init__(self, value: dict[str, Any]):
        self.value = value

    def __eq__(self, other: object) -> bool:
        return isinstance(other, _Replace) and other.value == self.value

    def __repr__(self) -> str:
        return f"Replace({self.value!r})"


def _plain(value: Any) -> Any:
    """Deep copy into plain dicts and lists."""
    if isinstance(value, _Replace):
        return _Replace(_plain(value.value))
    if isinstance(value, Mapping):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def _apply(target: dict[str, Any], override: Mapping[str, Any]) -> None:
    for key, value in override.items():
        if value is None:
            target.pop(key, None)
        elif isinstance(value, _Replace):
            target[key] = _materialize(value.value)
        elif isinstance(value, Mapping):
            current = target.get(key)
            if not isinstance(current, dict):
                current = target[key] = {}
            _apply(current, value)
        else:
            target[key] = _plain(value)


def _materialize(value: Mapping[str, Any]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    _apply(result, value)
    return result


def merge_values(base: Mapping[str, Any], *overrides: Mapping[str, Any]) -> dict[str, Any]:
    """Apply each override onto a copy of `base`, in order.

    Neither `base` nor the overrides are modified.
    """
    result = _materialize(base)
    for override in overrides:
        _apply(result, override)
    return result


def _combine(target: dict[str, Any], override: Mapping[str, Any]) -> None:
    for key, value in override.items():
        current = target.get(key)
        if isinstance(value, _Replace):
            target[key] = _plain(value)
        elif isinstance(value, Mapping):
            if isinstance(current, _Replace):
                _combine(current.value, value)
            elif isinstance(current, dict):
                _combine(current, value)
            elif key in target:
                # an earlier layer deleted or replaced the key
                target[key] = _Replace(_plain(value))
            else:
                target[key] = _plain(value)
        else:
            target[key] = _plain(value)


def coalesce_overrides(*layers: Mapping[str, Any]) -> dict[str, Any]:
    """Pre-merge override layers into one layer.

    Deletions and wholesale replacements are preserved, so for any base:
    ``merge_values(base, a, b, c) == merge_values(base, a, coalesce_overrides(b, c))``.
    """
    combined: dict[str, Any] = {}
    for layer in layers:
        _combine(combined, layer)
    return combined


def read_values(data: str | bytes, source: str = "values.yaml") -> dict[str, Any]:
    """Parse one YAML values document.

    An empty document is an empty mapping. Anything else that is not a mapping
    is rejected.
    """
    try:
        loaded = yaml.safe_load(data)
    except yaml.YAMLError as e:
        raise ParseError(f"cannot parse values document {source}: {e}") from e

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ParseError(
            f"values document {source} must be a mapping, got {type(loaded).__name__}"
        )
    return loaded


def read_values_files(paths: list[str]) -> dict[str, Any]:
    """Read several values files and coalesce them, later files winning."""
    layers = []
    for path in paths:
        with open(path, "rb") as f:
            layers.append(read_values(f.read(), source=str(path)))
    return coalesce_overrides(*layers)


def _require_mapping(value: Any, what: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if isinstance(value, _Replace):
        return value.value
    if not isinstance(value, Mapping):
        raise MergeError(f"{what} must be a mapping, got {type(value).__name__}")
    return value


def _without_global(values: Mapping[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in values.items() if k != GLOBAL_KEY}


def _section_layers(layers: list[Mapping[str, Any]], name: str) -> list[Mapping[str, Any]]:
    """The raw layers aimed at subchart `name`, nulls left in place.

    A layer that deletes or replaces the whole section drops the ones below it.
    """
    sections: list[Mapping[str, Any]] = []
    for layer in layers:
        if name not in layer:
            continue
        section = layer[name]
        if isinstance(section, _Replace):
            sections = [section.value]
        elif isinstance(section, Mapping):
            sections.append(section)
        else:
            sections = []
    return sections


def merge_globals(
    declared: Mapping[str, Any], chart: Chart, path: str
) -> dict[str, Any]:
    """Merge `chart`'s own `global` defaults over the ones its ancestors declared."""
    merged = _plain(declared)
    own = chart.values.get(GLOBAL_KEY)
    if own is not None:
        _apply(merged, _require_mapping(own, f"{path}: global"))
    return merged


def _override_global(declared: dict[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    if GLOBAL_KEY not in overrides:
        return _plain(declared)
    override = overrides[GLOBAL_KEY]
    if override is None:
        return {}
    if isinstance(override, _Replace):
        return _materialize(override.value)
    return merge_values(declared, _require_mapping(override, "overrides: global"))


def coalesce_values(
    root: Chart, overrides: Mapping[str, Any] | None = None
) -> dict[str, dict[str, Any]]:
    """Compute final values for every chart node, keyed by node path.

    A non-mapping top-level override raises ParseError. A subchart section or
    `global` entry that is not a mapping raises MergeError. Both are
    RenderError subclasses.
    """
    if overrides is None:
        overrides = {}
    if not isinstance(overrides, Mapping):
        raise ParseError(
            f"values override must be a mapping, got {type(overrides).__name__}"
        )

    result: dict[str, dict[str, Any]] = {}

    def _visit(
        chart: Chart,
        path: str,
        layers: list[Mapping[str, Any]],
        declared: Mapping[str, Any],
    ) -> dict[str, Any]:
        defaults = _require_mapping(chart.values, f"{path}: default values")
        values = merge_values(
            _without_global(defaults), *(_without_global(layer) for layer in layers)
        )
        declared = merge_globals(declared, chart, path)
        values[GLOBAL_KEY] = _override_global(declared, overrides)
        result[path] = values

        for dep in chart.dependencies:
            child_path = f"{path}/charts/{dep.name}"
            _require_mapping(
                values.get(dep.name), f"{path}: values for subchart {dep.name!r}"
            )
            child_layers = _section_layers([defaults, *layers], dep.name)
            child_values = _visit(dep, child_path, child_layers, declared)
            values[dep.name] = _without_global(child_values)
        return values

    _visit(root, root.name, [overrides], {})
    logger.debug("Merged values for %d chart(s)", len(result))
    return result


class PathStatus(str, Enum):
    FOUND = "found"
    MISSING = "missing"
    TYPE_MISMATCH = "type_mismatch"


class PathResult(NamedTuple):
    value: Any
    status: PathStatus

    @property
    def found(self) -> bool:
        return self.status is PathStatus.FOUND


def path_value(values: Any, path: str) -> PathResult:
    """Look up a dotted path such as ``image.tag`` without raising.

    Returns MISSING when a key is absent and TYPE_MISMATCH when an
    intermediate value is not a mapping.
    """
    current = values
    for part in (p for p in path.split(".") if p):
        if not isinstance(current, Mapping):
            return PathResult(None, PathStatus.TYPE_MISMATCH)
        if part not in current:
            return PathResult(None, PathStatus.MISSING)
        current = current[part]
    return PathResult(current, PathStatus.FOUND)
