"""chartrender exceptions

Every failure surfaced by a render derives from RenderError and carries the
chart path, template name and line number when they are known.
"""

from __future__ import annotations


class RenderError(Exception):
    """Base exception for all render errors."""

    def __init__(
        self,
        message: str,
        *,
        chart: str | None = None,
        template: str | None = None,
        lineno: int | None = None,
    ):
        self.message = message
        self.chart = chart
        self.template = template
        self.lineno = lineno
        super().__init__(message)

    def locate(
        self,
        chart: str | None = None,
        template: str | None = None,
        lineno: int | None = None,
    ) -> "RenderError":
        """Fill in location fields that are still unknown."""
        if self.chart is None:
            self.chart = chart
        if self.template is None:
            self.template = template
        if self.lineno is None:
            self.lineno = lineno
        return self

    def __str__(self) -> str:
        where = self.template or ""
        if where and self.lineno is not None:
            where = f"{where}:{self.lineno}"
        if self.chart and not (self.template or "").startswith(self.chart + "/"):
            where = f"{self.chart}: {where}" if where else self.chart
        return f"{where}: {self.message}" if where else self.message


class ParseError(RenderError):
    """Raised when a values document or a template cannot be parsed."""


class MergeError(RenderError):
    """Raised when a value that must be a mapping is not one."""


class EvaluationError(RenderError):
    """Raised when template evaluation fails."""


class RequiredValueError(EvaluationError):
    """Raised by the `required` and `fail` template functions."""


class RecursionLimitError(RenderError):
    """Raised when nested include/tpl calls exceed the configured depth."""

    def __init__(self, name: str, depth: int, **kwargs):
        self.name = name
        self.depth = depth
        super().__init__(
            f"include of {name!r} exceeded maximum nesting depth of {depth}",
            **kwargs,
        )


class ResourceLookupError(RenderError):
    """Raised when an enabled live lookup fails."""


class InvalidChartError(RenderError):
    """Raised when the chart tree handed to the engine is unusable."""


class RenderCancelledError(RenderError):
    """Raised when a render is cancelled between template evaluations."""


class PluginConfigError(Exception):
    """Raised when a plugin declaration does not validate."""

    def __init__(self, plugin_type: str, message: str):
        self.plugin_type = plugin_type
        self.message = message
        super().__init__(f"{plugin_type} plugin: {message}")
