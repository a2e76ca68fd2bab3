"""Chart tree model.

A Chart is handed to the engine fully assembled: metadata, ordered template
files, default values, ordered subchart dependencies and static files.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from chartrender.exceptions import InvalidChartError


class ChartMetadata(BaseModel):
    """Contents of Chart.yaml that templates can see as `Chart`."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = Field(min_length=1, description="Chart name")
    version: str = Field(default="0.1.0", description="Chart version")
    api_version: str = Field(default="v2", alias="apiVersion")
    app_version: Optional[str] = Field(default=None, alias="appVersion")
    description: Optional[str] = None
    type: Optional[str] = Field(default=None, description="application or library")


@dataclass(frozen=True)
class TemplateFile:
    """A template file, path relative to its chart root."""

    path: str
    data: bytes

    @property
    def is_partial(self) -> bool:
        """Partials are only scanned for named templates, never rendered."""
        return self.path.rsplit("/", 1)[-1].startswith("_")


@dataclass
class Chart:
    """A chart with its subcharts."""

    metadata: ChartMetadata
    templates: List[TemplateFile] = field(default_factory=list)
    values: Dict[str, Any] = field(default_factory=dict)
    dependencies: List["Chart"] = field(default_factory=list)
    files: Dict[str, bytes] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.metadata.name

    @classmethod
    def from_dict(cls, d: Any) -> "Chart":
        """Build a chart tree from plain data.

        Expected shape::

            metadata: {name: app, version: 0.1.0}
            templates: {templates/a.yaml: "..."}   # or a list of {path, data}
            values: {...}
            dependencies: [<chart>, ...]
            files: {config.ini: "..."}

        Malformed input raises InvalidChartError, as `load_chart_dir` does.
        """
        if not isinstance(d, dict):
            raise InvalidChartError("Chart.from_dict expects a mapping")

        metadata = d.get("metadata") or {}
        templates_ = d.get("templates") or {}
        values_ = d.get("values") or {}
        deps_ = d.get("dependencies") or []
        files_ = d.get("files") or {}

        if not isinstance(values_, dict):
            raise InvalidChartError("Chart 'values' must be a mapping")
        if not isinstance(deps_, list):
            raise InvalidChartError("Chart 'dependencies' must be a list")
        if not isinstance(files_, dict):
            raise InvalidChartError("Chart 'files' must be a mapping")

        if isinstance(templates_, dict):
            templates = [
                TemplateFile(path=path, data=_as_bytes(data))
                for path, data in templates_.items()
            ]
        elif isinstance(templates_, list):
            try:
                templates = [
                    TemplateFile(path=t["path"], data=_as_bytes(t.get("data", b"")))
                    for t in templates_
                ]
            except (KeyError, TypeError, AttributeError) as e:
                raise InvalidChartError(
                    "Chart 'templates' entries need a 'path'"
                ) from e
        else:
            raise InvalidChartError("Chart 'templates' must be a mapping or list")

        try:
            meta = ChartMetadata.model_validate(metadata)
        except ValidationError as e:
            raise InvalidChartError(f"invalid chart metadata: {e}") from e

        return cls(
            metadata=meta,
            templates=templates,
            values=dict(values_),
            dependencies=[cls.from_dict(dep) for dep in deps_],
            files={path: _as_bytes(data) for path, data in files_.items()},
        )


def _as_bytes(data: Any) -> bytes:
    if isinstance(data, bytes):
        return data
    return str(data).encode("utf-8")


@dataclass(frozen=True)
class ChartNode:
    """A chart together with its position in the tree."""

    chart: Chart
    path: str
    parent: Optional[str] = None
    depth: int = 0

    @property
    def name(self) -> str:
        return self.chart.name


def walk(root: Chart) -> Iterator[ChartNode]:
    """Yield every chart in the tree, parent before its children.

    Children are visited in their declared dependency order. Every component
    that needs a traversal order uses this one.
    """

    def _visit(chart: Chart, path: str, parent: Optional[str], depth: int):
        yield ChartNode(chart=chart, path=path, parent=parent, depth=depth)
        for dep in chart.dependencies:
            yield from _visit(dep, f"{path}/charts/{dep.name}", path, depth + 1)

    yield from _visit(root, root.name, None, 0)
