"""Shared fixtures for chartrender tests."""

import logging

import pytest

from chartrender.chart.spec import Chart, ChartMetadata, TemplateFile


def build_chart(name, templates=None, values=None, dependencies=None, files=None):
    """Helper to create an in-memory chart."""
    return Chart(
        metadata=ChartMetadata(name=name, version="1.0.0"),
        templates=[
            TemplateFile(path=path, data=body.encode("utf-8"))
            for path, body in (templates or {}).items()
        ],
        values=values or {},
        dependencies=list(dependencies or []),
        files={path: data.encode("utf-8") for path, data in (files or {}).items()},
    )


@pytest.fixture
def make_chart():
    return build_chart


@pytest.fixture
def chart_dir(tmp_path):
    """A chart on disk with one subchart."""
    root = tmp_path / "app"
    (root / "templates").mkdir(parents=True)
    (root / "Chart.yaml").write_text(
        "apiVersion: v2\nname: app\nversion: 1.2.3\n"
        "dependencies:\n  - name: db\n    version: 0.1.0\n"
    )
    (root / "values.yaml").write_text("replicaCount: 1\nname: web\n")
    (root / "templates" / "deploy.yaml").write_text(
        "name: {{ name }}\nreplicas: {{ replicaCount }}\n"
    )
    (root / "templates" / "_helpers.tpl").write_text(
        '{% define "app.owner" %}\nowner: {{ Chart.name }}\n{% enddefine %}\n'
    )
    (root / "config.ini").write_text("debug=true\n")

    db = root / "charts" / "db"
    (db / "templates").mkdir(parents=True)
    (db / "Chart.yaml").write_text("name: db\nversion: 0.1.0\n")
    (db / "values.yaml").write_text("replicaCount: 1\n")
    (db / "templates" / "svc.yaml").write_text("db replicas: {{ replicaCount }}\n")
    return root


@pytest.fixture(autouse=True)
def reset_package_logger():
    """The CLI installs its own handler on the package logger; undo it."""
    logger = logging.getLogger("chartrender")
    yield
    logger.handlers = []
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
