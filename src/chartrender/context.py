"""Per-chart render contexts.

One RenderContext is built for every chart node and re-bound to each template
of that chart. Building never fails: anything missing is an empty value and
is only reported when a template actually asks for it.
"""

from __future__ import annotations

import base64
import fnmatch
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

import yaml

from chartrender.chart.spec import ChartMetadata, ChartNode

# Names a template always sees; they shadow values keys of the same name.
RESERVED_NAMES = ("Values", "Chart", "Release", "Files", "Capabilities", "Template", "this")


@dataclass(frozen=True)
class ReleaseInfo:
    """Release identity, identical for every chart of one render."""

    name: str = "release-name"
    namespace: str = "default"
    revision: int = 1
    is_upgrade: bool = False

    @property
    def is_install(self) -> bool:
        return not self.is_upgrade


@dataclass(frozen=True)
class Capabilities:
    """What the target cluster supports. Empty when no cluster is reachable."""

    kube_version: str = ""
    api_versions: frozenset[str] = field(default_factory=frozenset)

    def has(self, api_version: str) -> bool:
        """True if `api_version` (``group/version`` or ``group/version/Kind``) is served."""
        return api_version in self.api_versions


class Files:
    """Read-only access to one chart's static files.

    `get_bytes` is the collaborator interface: a miss is ``(b"", False)``,
    never an exception. The other methods are conveniences for templates.
    """

    def __init__(self, files: Mapping[str, bytes] | None = None):
        self._files = dict(files or {})

    def get_bytes(self, path: str) -> tuple[bytes, bool]:
        if path in self._files:
            return self._files[path], True
        return b"", False

    def get(self, path: str) -> str:
        data, _ = self.get_bytes(path)
        return data.decode("utf-8")

    def lines(self, path: str) -> list[str]:
        text = self.get(path)
        return text.splitlines() if text else []

    def glob(self, pattern: str) -> "Files":
        return Files(
            {p: d for p, d in self._files.items() if fnmatch.fnmatchcase(p, pattern)}
        )

    def names(self) -> list[str]:
        return list(self._files)

    def as_config(self) -> str:
        """Files as a ConfigMap `data` block, keyed by base name."""
        data = {_basename(p): d.decode("utf-8") for p, d in self._files.items()}
        return yaml.safe_dump(data, default_flow_style=False).rstrip("\n") if data else ""

    def as_secrets(self) -> str:
        """Files as a Secret `data` block, base64 encoded."""
        data = {
            _basename(p): base64.b64encode(d).decode("ascii")
            for p, d in self._files.items()
        }
        return yaml.safe_dump(data, default_flow_style=False).rstrip("\n") if data else ""

    def __contains__(self, path: object) -> bool:
        return path in self._files

    def __len__(self) -> int:
        return len(self._files)

    def __repr__(self) -> str:
        return f"Files({sorted(self._files)!r})"


def _basename(path: str) -> str:
    return path.rsplit("/", 1)[-1]


@dataclass(frozen=True)
class TemplateRef:
    """The template currently executing."""

    name: str = ""
    base_path: str = ""


@dataclass(frozen=True)
class RenderContext:
    """Everything a template of one chart node can see."""

    values: dict[str, Any]
    chart: ChartMetadata
    release: ReleaseInfo
    files: Files
    capabilities: Capabilities
    chart_path: str
    template: TemplateRef = field(default_factory=TemplateRef)

    def with_template(self, name: str) -> "RenderContext":
        return replace(
            self,
            template=TemplateRef(name=name, base_path=f"{self.chart_path}/templates"),
        )

    def template_vars(self) -> dict[str, Any]:
        """Top-level template variables: values keys plus the reserved names."""
        env: dict[str, Any] = {k: v for k, v in self.values.items() if isinstance(k, str)}
        env.update(
            Values=self.values,
            Chart=self.chart,
            Release=self.release,
            Files=self.files,
            Capabilities=self.capabilities,
            Template=self.template,
            this=self,
        )
        return env


def build_contexts(
    nodes: Iterable[ChartNode],
    values: Mapping[str, dict[str, Any]],
    release: ReleaseInfo | None = None,
    capabilities: Capabilities | None = None,
) -> dict[str, RenderContext]:
    """Build one RenderContext per chart node, keyed by node path."""
    release = release or ReleaseInfo()
    capabilities = capabilities or Capabilities()
    return {
        node.path: RenderContext(
            values=values.get(node.path, {}),
            chart=node.chart.metadata,
            release=release,
            files=Files(node.chart.files),
            capabilities=capabilities,
            chart_path=node.path,
        )
        for node in nodes
    }
