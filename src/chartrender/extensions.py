"""Jinja2 environment and extensions for chart templates."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any, Optional

from jinja2 import BaseLoader, ChainableUndefined, StrictUndefined, TemplateNotFound, nodes
from jinja2.ext import Extension
from jinja2.sandbox import ImmutableSandboxedEnvironment


class DefineExtension(Extension):
    """Extension for {% define "name" %}...{% enddefine %} named templates.

    A define block renders to nothing where it appears. The registry scans the
    parsed tree for these blocks and compiles each body into a standalone
    template callable through `include`.

    Example:
        {% define "app.labels" %}
        app: {{ Chart.name }}
        release: {{ Release.name }}
        {% enddefine %}

        metadata:
          labels:
            {{- include("app.labels", this) | nindent(4) }}
    """

    tags = {"define"}

    def parse(self, parser):
        """Parse the {% define "name" %}...{% enddefine %} block."""
        lineno = next(parser.stream).lineno

        name = parser.parse_expression()
        if not isinstance(name, nodes.Const) or not isinstance(name.value, str):
            parser.fail("define expects a string literal name", lineno)

        body = parser.parse_statements(("name:enddefine",), drop_needle=True)

        return nodes.CallBlock(
            self.call_method("_define", [nodes.Const(name.value)]), [], [], body
        ).set_lineno(lineno)

    def _define(self, name, caller):
        # Definitions produce no output where they are declared.
        return ""


def iter_defines(tree: nodes.Template) -> Iterator[tuple[str, list[nodes.Node], int]]:
    """Yield (name, body, lineno) for each define block, in source order."""
    for block in tree.find_all(nodes.CallBlock):
        target = block.call.node
        if (
            isinstance(target, nodes.ExtensionAttribute)
            and target.identifier == DefineExtension.identifier
            and target.name == "_define"
        ):
            yield block.call.args[0].value, block.body, block.lineno


class SourceLoader(BaseLoader):
    """Loads template sources by output key, reporting the key as filename.

    Using the key as filename makes Jinja tracebacks point at chart files.
    """

    def __init__(self, sources: Mapping[str, str]):
        self.sources = sources

    def get_source(self, environment, template):
        if template not in self.sources:
            raise TemplateNotFound(template)
        source = self.sources[template]
        return source, template, lambda: True

    def list_templates(self):
        return sorted(self.sources)


class ChartEnvironment(ImmutableSandboxedEnvironment):
    """Sandboxed environment where mapping keys win over mapping methods.

    `Values.items` is the `items` key of the values when one exists, not
    dict.items. Sandboxing keeps templates from mutating values they are given.
    """

    def getattr(self, obj: Any, attribute: str) -> Any:
        if isinstance(obj, Mapping):
            try:
                return obj[attribute]
            except (KeyError, TypeError):
                pass
        return super().getattr(obj, attribute)


def get_chart_jinja_env(
    sources: Optional[Mapping[str, str]] = None, strict: bool = False
) -> ChartEnvironment:
    """Create a Jinja2 environment for chart templates.

    Args:
        sources: Template sources keyed by output key, for the loader.
        strict: Fail on undefined variables instead of rendering them empty.

    Returns:
        Configured environment, without template functions installed.
    """
    return ChartEnvironment(
        loader=SourceLoader(sources or {}),
        extensions=[DefineExtension, "jinja2.ext.do", "jinja2.ext.loopcontrols"],
        undefined=StrictUndefined if strict else ChainableUndefined,
        autoescape=False,
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )
