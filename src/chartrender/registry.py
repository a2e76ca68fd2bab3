"""Named template registry.

Template files of the whole chart tree are flattened into one namespace before
any evaluation. Registration order is fixed: charts parent before children
(children in declared order), files in declared order, `define` blocks in
source order. The later registration of a name wins, so a subchart overrides
its parent and a later sibling overrides an earlier one.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, List, Tuple

from jinja2 import Environment, Template, TemplateSyntaxError, nodes

from chartrender.chart.spec import ChartNode
from chartrender.exceptions import EvaluationError, ParseError
from chartrender.extensions import iter_defines

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TemplateSource:
    """One template file, identified by its output key."""

    key: str
    chart_path: str
    path: str
    source: str
    partial: bool = False


@dataclass(frozen=True)
class NamedTemplate:
    """A compiled `define` block and where it came from."""

    name: str
    chart_path: str
    file_key: str
    lineno: int
    template: Template


def collect_sources(chart_nodes: Iterable[ChartNode]) -> List[TemplateSource]:
    """Template sources of every chart, in registration order.

    Output keys are ``<node path>/<file path>``, e.g.
    ``app/charts/db/templates/svc.yaml``.
    """
    sources = []
    for node in chart_nodes:
        for tf in node.chart.templates:
            key = f"{node.path}/{tf.path}"
            try:
                text = tf.data.decode("utf-8")
            except UnicodeDecodeError as e:
                raise ParseError(
                    f"template is not valid UTF-8: {e}", chart=node.path, template=key
                ) from e
            sources.append(
                TemplateSource(
                    key=key,
                    chart_path=node.path,
                    path=tf.path,
                    source=text,
                    partial=tf.is_partial,
                )
            )
    return sources


def _parse_error(e: TemplateSyntaxError, src: TemplateSource) -> ParseError:
    return ParseError(
        e.message or str(e),
        chart=src.chart_path,
        template=e.filename or src.key,
        lineno=e.lineno,
    )


def _compile_define(
    env: Environment, body: List[nodes.Node], name: str, file_key: str
) -> Template:
    tree = nodes.Template(body, lineno=1)
    tree.set_environment(env)
    code = env.compile(tree, name=name, filename=file_key)
    return env.template_class.from_code(env, code, env.make_globals(None))


class TemplateRegistry:
    """Immutable name to template table plus the concrete files to render."""

    def __init__(
        self,
        named: Mapping[str, NamedTemplate],
        files: Mapping[str, Template],
        concrete: Iterable[TemplateSource],
    ):
        self.named = MappingProxyType(dict(named))
        self.files = MappingProxyType(dict(files))
        self.concrete: Tuple[TemplateSource, ...] = tuple(concrete)

    @classmethod
    def build(cls, env: Environment, sources: Iterable[TemplateSource]) -> "TemplateRegistry":
        """Parse and compile every source.

        Raises:
            ParseError: If any template has a syntax error.
        """
        named: Dict[str, NamedTemplate] = {}
        files: Dict[str, Template] = {}
        concrete: List[TemplateSource] = []

        for src in sources:
            try:
                tree = env.parse(src.source, src.key, src.key)
                for name, body, lineno in iter_defines(tree):
                    previous = named.get(name)
                    if previous is not None:
                        logger.debug(
                            "Template %r from %s:%d overrides definition from %s:%d",
                            name,
                            src.key,
                            lineno,
                            previous.file_key,
                            previous.lineno,
                        )
                    named[name] = NamedTemplate(
                        name=name,
                        chart_path=src.chart_path,
                        file_key=src.key,
                        lineno=lineno,
                        template=_compile_define(env, body, name, src.key),
                    )
                files[src.key] = env.get_template(src.key)
            except TemplateSyntaxError as e:
                raise _parse_error(e, src) from e

            if not src.partial:
                concrete.append(src)

        logger.debug(
            "Registered %d named template(s), %d concrete file(s)",
            len(named),
            len(concrete),
        )
        return cls(named, files, concrete)

    def get(self, name: str) -> Template:
        """Named template by name, falling back to a whole file by output key."""
        if name in self.named:
            return self.named[name].template
        if name in self.files:
            return self.files[name]
        raise EvaluationError(f"no template named {name!r}")

    def __contains__(self, name: object) -> bool:
        return name in self.named or name in self.files

    def __len__(self) -> int:
        return len(self.named)
