"""chartrender - merge chart values and render chart templates.

Public API:
    Engine, render          - render a chart tree into output documents
    Chart, load_chart_dir   - build a chart tree in memory or from disk
    EngineSettings          - sandbox/strict/max_include_depth
    ReleaseInfo, Capabilities
"""

from chartrender._version import __version__
from chartrender.chart import Chart, ChartMetadata, ChartNode, TemplateFile, walk
from chartrender.chart.loader import load_chart_dir
from chartrender.config import EngineSettings
from chartrender.context import Capabilities, Files, ReleaseInfo, RenderContext
from chartrender.engine import Engine, RenderPhase, render
from chartrender.exceptions import (
    EvaluationError,
    InvalidChartError,
    MergeError,
    ParseError,
    PluginConfigError,
    RecursionLimitError,
    RenderCancelledError,
    RenderError,
    RequiredValueError,
    ResourceLookupError,
)
from chartrender.values import coalesce_overrides, coalesce_values, merge_values, path_value

__all__ = [
    "__version__",
    "Capabilities",
    "Chart",
    "ChartMetadata",
    "ChartNode",
    "Engine",
    "EngineSettings",
    "EvaluationError",
    "Files",
    "InvalidChartError",
    "MergeError",
    "ParseError",
    "PluginConfigError",
    "RecursionLimitError",
    "ReleaseInfo",
    "RenderCancelledError",
    "RenderContext",
    "RenderError",
    "RenderPhase",
    "RequiredValueError",
    "ResourceLookupError",
    "TemplateFile",
    "coalesce_overrides",
    "coalesce_values",
    "load_chart_dir",
    "merge_values",
    "path_value",
    "render",
    "walk",
]
