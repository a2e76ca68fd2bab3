"""Read an already-assembled chart tree from a local directory.

Layout::

    mychart/
      Chart.yaml        # metadata, optional `dependencies` list for ordering
      values.yaml       # default values (optional)
      templates/        # template files
      charts/<sub>/     # subcharts, same layout
      <anything else>   # static files exposed through `Files`

Nothing is fetched: subcharts must already be unpacked under `charts/`.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from chartrender.chart.spec import Chart, ChartMetadata, TemplateFile
from chartrender.exceptions import InvalidChartError, ParseError
from chartrender.values import read_values

logger = logging.getLogger(__name__)

_RESERVED = {"Chart.yaml", "values.yaml", "templates", "charts", ".helmignore"}


def load_chart_dir(path: str | Path) -> Chart:
    """Load a chart and its unpacked subcharts from `path`."""
    root = Path(path)
    chart_yaml = root / "Chart.yaml"
    if not chart_yaml.is_file():
        raise InvalidChartError(f"Chart.yaml not found in {root}")

    try:
        raw = yaml.safe_load(chart_yaml.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ParseError(f"{chart_yaml}: {e}") from e
    if not isinstance(raw, dict):
        raise ParseError(f"{chart_yaml}: expected a mapping")

    try:
        metadata = ChartMetadata.model_validate(raw)
    except ValidationError as e:
        raise InvalidChartError(f"{chart_yaml}: {e}") from e

    values_file = root / "values.yaml"
    values = {}
    if values_file.is_file():
        values = read_values(values_file.read_bytes(), source=str(values_file))

    templates = []
    if (root / "templates").is_dir():
        templates = [
            TemplateFile(path=p.relative_to(root).as_posix(), data=p.read_bytes())
            for p in sorted((root / "templates").rglob("*"))
            if p.is_file()
        ]

    files = {}
    for p in sorted(root.rglob("*")):
        rel = p.relative_to(root)
        if not p.is_file() or rel.parts[0] in _RESERVED:
            continue
        files[rel.as_posix()] = p.read_bytes()

    dependencies = [
        load_chart_dir(sub) for sub in _ordered_subchart_dirs(root, raw)
    ]

    logger.debug(
        "Loaded chart %s (%d templates, %d files, %d subcharts)",
        metadata.name,
        len(templates),
        len(files),
        len(dependencies),
    )
    return Chart(
        metadata=metadata,
        templates=templates,
        values=values,
        dependencies=dependencies,
        files=files,
    )


def _ordered_subchart_dirs(root: Path, chart_yaml: dict) -> list[Path]:
    """Subchart directories in declared order, undeclared ones sorted last."""
    charts_dir = root / "charts"
    if not charts_dir.is_dir():
        return []

    available = {
        p.name: p for p in sorted(charts_dir.iterdir()) if (p / "Chart.yaml").is_file()
    }
    ordered: list[Path] = []
    for dep in chart_yaml.get("dependencies") or []:
        name = dep.get("name") if isinstance(dep, dict) else None
        if name in available:
            ordered.append(available.pop(name))
        elif name:
            logger.warning("Dependency %s of %s is not unpacked under charts/", name, root)
    ordered.extend(available.values())
    return ordered
