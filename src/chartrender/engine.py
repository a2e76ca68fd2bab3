"""Render a chart tree into output documents.

A render runs in phases:

1. Initialize: merge values, collect sources, build the environment, the
   function library and the template registry
2. BuildContexts: one RenderContext per chart node
3. Execute: evaluate each concrete template with its chart's context
4. Collect: keep non-blank outputs keyed by output key
5. Finalize: return the outputs, or nothing when any step failed

The first error aborts the render and no partial output is returned.
"""

from __future__ import annotations

import logging
import threading
import traceback
from collections.abc import Mapping
from contextlib import contextmanager
from enum import Enum
from typing import Any, Dict, Iterator, Optional, Tuple

from jinja2 import Environment, Template, TemplateSyntaxError, Undefined
from jinja2.exceptions import SecurityError, UndefinedError

from chartrender.chart.spec import Chart, walk
from chartrender.config import EngineSettings
from chartrender.context import Capabilities, ReleaseInfo, RenderContext, build_contexts
from chartrender.exceptions import (
    EvaluationError,
    InvalidChartError,
    ParseError,
    RecursionLimitError,
    RenderCancelledError,
    RenderError,
)
from chartrender.extensions import get_chart_jinja_env
from chartrender.functions import ResourceLookup, install_functions
from chartrender.registry import TemplateRegistry, TemplateSource, collect_sources
from chartrender.values import coalesce_values

logger = logging.getLogger(__name__)


class RenderPhase(str, Enum):
    INITIALIZE = "Initialize"
    BUILD_CONTEXTS = "BuildContexts"
    EXECUTE = "Execute"
    COLLECT = "Collect"
    FINALIZE = "Finalize"


def scope_vars(scope: Any) -> Dict[str, Any]:
    """Top-level template variables for an include/tpl scope.

    A RenderContext exposes its full variable set, a mapping exposes its keys,
    and anything else is only reachable as `this`.
    """
    if isinstance(scope, RenderContext):
        return scope.template_vars()
    if isinstance(scope, Undefined):
        scope = None
    if isinstance(scope, Mapping):
        env = {k: v for k, v in scope.items() if isinstance(k, str)}
        env["this"] = scope
        return env
    return {"this": scope}


class RenderSession:
    """State of one render call: the registry and the include depth."""

    def __init__(self, env: Environment, max_depth: int):
        self.env = env
        self.max_depth = max_depth
        self.registry: Optional[TemplateRegistry] = None
        self.depth = 0

    @contextmanager
    def _nested(self, name: str) -> Iterator[None]:
        if self.depth >= self.max_depth:
            raise RecursionLimitError(name, self.max_depth)
        self.depth += 1
        try:
            yield
        finally:
            self.depth -= 1

    def include(self, name: str, scope: Any) -> str:
        if self.registry is None:
            raise EvaluationError(f"include of {name!r} before templates are registered")
        template = self.registry.get(name)
        with self._nested(name):
            return template.render(scope_vars(scope))

    def tpl(self, text: str, scope: Any) -> str:
        try:
            template = self.env.from_string(text)
        except TemplateSyntaxError as e:
            raise ParseError(f"tpl: {e.message}") from e
        with self._nested("tpl"):
            return template.render(scope_vars(scope))


class Engine:
    """Renders charts with fixed settings and collaborators.

    Args:
        settings: Engine settings; defaults when omitted.
        lookup: Live resource lookup, only used outside sandbox mode.
        capabilities: Cluster capabilities exposed as `Capabilities`.
    """

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        lookup: Optional[ResourceLookup] = None,
        capabilities: Optional[Capabilities] = None,
    ):
        self.settings = settings or EngineSettings()
        self.lookup = lookup
        self.capabilities = capabilities or Capabilities()

    def render(
        self,
        chart: Chart,
        overrides: Optional[Mapping[str, Any]] = None,
        release: Optional[ReleaseInfo] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Dict[str, bytes]:
        """Render every concrete template of `chart` and its subcharts.

        Returns:
            Output key to rendered bytes, blank outputs omitted.

        Raises:
            RenderError: On the first failure; nothing is returned.
        """
        if chart is None or not getattr(chart, "name", None):
            raise InvalidChartError("chart is missing or has no name")

        self._phase(RenderPhase.INITIALIZE, chart)
        chart_nodes = list(walk(chart))
        values = coalesce_values(chart, overrides)
        sources = collect_sources(chart_nodes)
        env = get_chart_jinja_env(
            {src.key: src.source for src in sources}, strict=self.settings.strict
        )
        session = RenderSession(env, self.settings.max_include_depth)
        install_functions(env, session, sandbox=self.settings.sandbox, lookup=self.lookup)
        session.registry = TemplateRegistry.build(env, sources)

        self._phase(RenderPhase.BUILD_CONTEXTS, chart)
        contexts = build_contexts(chart_nodes, values, release, self.capabilities)

        self._phase(RenderPhase.EXECUTE, chart)
        chart_of = {src.key: src.chart_path for src in sources}
        rendered = []
        for src in session.registry.concrete:
            if cancel is not None and cancel.is_set():
                raise RenderCancelledError(
                    "render cancelled", chart=src.chart_path, template=src.key
                )
            ctx = contexts[src.chart_path].with_template(src.key)
            template = session.registry.files[src.key]
            rendered.append((src, self._execute(template, ctx, src, chart_of)))

        self._phase(RenderPhase.COLLECT, chart)
        outputs: Dict[str, bytes] = {}
        for src, text in rendered:
            if not text.strip():
                logger.debug("Omitting blank output %s", src.key)
                continue
            outputs[src.key] = text.encode("utf-8")

        self._phase(RenderPhase.FINALIZE, chart)
        logger.info("Rendered %d document(s) from chart %s", len(outputs), chart.name)
        return outputs

    def _phase(self, phase: RenderPhase, chart: Chart) -> None:
        logger.debug("%s: %s", phase.value, chart.name)

    def _execute(
        self,
        template: Template,
        ctx: RenderContext,
        src: TemplateSource,
        chart_of: Mapping[str, str],
    ) -> str:
        try:
            return template.render(ctx.template_vars())
        except RenderError as e:
            raise _locate(e, e, src, chart_of)
        except TemplateSyntaxError as e:
            error = ParseError(e.message or str(e), lineno=e.lineno)
            raise _locate(error, e, src, chart_of) from e
        except RecursionError as e:
            error = RecursionLimitError(src.key, self.settings.max_include_depth)
            raise _locate(error, e, src, chart_of) from e
        except (UndefinedError, SecurityError) as e:
            error = EvaluationError(e.message or str(e))
            raise _locate(error, e, src, chart_of) from e
        except Exception as e:
            error = EvaluationError(f"{type(e).__name__}: {e}")
            raise _locate(error, e, src, chart_of) from e


def _template_frame(
    exc: BaseException, chart_of: Mapping[str, str]
) -> Tuple[Optional[str], Optional[int]]:
    """Innermost traceback frame that belongs to a chart template."""
    for frame in reversed(traceback.extract_tb(exc.__traceback__)):
        if frame.filename in chart_of:
            return frame.filename, frame.lineno
    return None, None


def _locate(
    error: RenderError,
    cause: BaseException,
    src: TemplateSource,
    chart_of: Mapping[str, str],
) -> RenderError:
    key, lineno = _template_frame(cause, chart_of)
    if key is None:
        return error.locate(src.chart_path, src.key)
    return error.locate(chart_of[key], key, lineno)


def render(
    chart: Chart,
    overrides: Optional[Mapping[str, Any]] = None,
    release: Optional[ReleaseInfo] = None,
    settings: Optional[EngineSettings] = None,
    lookup: Optional[ResourceLookup] = None,
    capabilities: Optional[Capabilities] = None,
) -> Dict[str, bytes]:
    """Render `chart` with a one-off Engine."""
    return Engine(settings, lookup, capabilities).render(chart, overrides, release)
