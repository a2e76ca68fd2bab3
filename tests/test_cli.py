"""Tests for the chartrender CLI."""

from typer.testing import CliRunner

from chartrender._version import __version__
from chartrender.cli import app

runner = CliRunner()


def test_template_prints_documents(chart_dir):
    result = runner.invoke(app, ["template", str(chart_dir)])

    assert result.exit_code == 0, result.output
    assert "# Source: app/templates/deploy.yaml" in result.output
    assert "replicas: 1" in result.output
    assert "# Source: app/charts/db/templates/svc.yaml" in result.output


def test_template_values_files(chart_dir, tmp_path):
    first = tmp_path / "a.yaml"
    first.write_text("replicaCount: 2\nname: api\n")
    second = tmp_path / "b.yaml"
    second.write_text("replicaCount: 5\n")

    result = runner.invoke(app, ["template", str(chart_dir), "-f", str(first), "-f", str(second)])

    assert result.exit_code == 0, result.output
    assert "name: api" in result.output
    assert "replicas: 5" in result.output


def test_template_output_dir(chart_dir, tmp_path):
    out = tmp_path / "out"

    result = runner.invoke(app, ["template", str(chart_dir), "-o", str(out)])

    assert result.exit_code == 0, result.output
    assert (out / "app" / "templates" / "deploy.yaml").read_text() == "name: web\nreplicas: 1\n"
    assert (out / "app" / "charts" / "db" / "templates" / "svc.yaml").exists()


def test_template_error_exits_nonzero(chart_dir):
    (chart_dir / "templates" / "bad.yaml").write_text("{{ required(Values.image, 'image!') }}\n")

    result = runner.invoke(app, ["template", str(chart_dir)])

    assert result.exit_code == 1


def test_template_strict_flag(chart_dir):
    (chart_dir / "templates" / "bad.yaml").write_text("{{ undefined_name }}\n")

    assert runner.invoke(app, ["template", str(chart_dir)]).exit_code == 0
    assert runner.invoke(app, ["template", str(chart_dir), "--strict"]).exit_code == 1


def test_template_missing_chart(tmp_path):
    result = runner.invoke(app, ["template", str(tmp_path)])
    assert result.exit_code == 1


def test_plugin_validate(tmp_path):
    path = tmp_path / "plugin.yaml"
    path.write_text("type: cli\nconfig:\n  usage: diff\n  shortHelp: show a diff\n")

    result = runner.invoke(app, ["plugin", "validate", str(path)])

    assert result.exit_code == 0, result.output
    assert "valid" in result.output


def test_plugin_validate_invalid(tmp_path):
    path = tmp_path / "plugin.yaml"
    path.write_text("type: download\nconfig:\n  downloaders:\n    - command: ''\n")

    result = runner.invoke(app, ["plugin", "validate", str(path)])

    assert result.exit_code == 1


def test_version():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.output
