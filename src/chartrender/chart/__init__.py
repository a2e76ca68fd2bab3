"""Chart tree model.

The directory loader lives in `chartrender.chart.loader`; it depends on the
values module, which itself walks chart trees.
"""

from chartrender.chart.spec import Chart, ChartMetadata, ChartNode, TemplateFile, walk

__all__ = [
    "Chart",
    "ChartMetadata",
    "ChartNode",
    "TemplateFile",
    "walk",
]
