"""CLI commands via typer's CliRunner: validate, run, config, --version."""

import textwrap

import pytest
from typer.testing import CliRunner

from stepflow.cli.main import app
from stepflow.version import __version__

runner = CliRunner()

WORKFLOWS = """
workflows:
  - logical_name: new_task
    trigger: manual
    max_attempts: 2
    steps:
      - type: log_message
        message: "hello {{trigger.who}}"
      - type: create_runtime_record
        entity_logical_name: task
        data: {title: "{{trigger.who}}"}
  - logical_name: on_invoice
    trigger:
      type: runtime_record_created
      entity_logical_name: invoice
"""


@pytest.fixture
def workflows_file(tmp_path):
    path = tmp_path / "workflows.yaml"
    path.write_text(textwrap.dedent(WORKFLOWS))
    return path


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


# ── validate ─────────────────────────────────────────────────────────────────

def test_validate_valid_file(workflows_file):
    result = runner.invoke(app, ["validate", str(workflows_file)])
    assert result.exit_code == 0, result.output
    assert "2 workflow(s) valid" in result.output


def test_validate_reports_violations(tmp_path):
    path = tmp_path / "workflows.yaml"
    path.write_text("workflows:\n  - logical_name: x\n    trigger: runtime_record_created\n")
    result = runner.invoke(app, ["validate", str(path)])
    assert result.exit_code == 1
    assert "trigger_entity_logical_name" in result.output


def test_validate_schema_error(tmp_path):
    path = tmp_path / "workflows.yaml"
    path.write_text("workflows:\n  - logical_name: x\n    max_attempts: 99\n")
    result = runner.invoke(app, ["validate", str(path)])
    assert result.exit_code == 1
    assert "max_attempts" in result.output


def test_validate_missing_file(tmp_path):
    result = runner.invoke(app, ["validate", str(tmp_path / "missing.yaml")])
    assert result.exit_code == 1


# ── run ──────────────────────────────────────────────────────────────────────

def test_run_succeeds(workflows_file):
    result = runner.invoke(app, ["run", str(workflows_file), "new_task", "--payload", '{"who": "ops"}'])
    assert result.exit_code == 0, result.output
    assert "succeeded" in result.output


def test_run_dead_letters_when_entity_fails(workflows_file):
    result = runner.invoke(app, ["run", str(workflows_file), "new_task", "--fail-entity", "task"])
    assert result.exit_code == 1
    assert "dead_lettered" in result.output


def test_run_rejects_bad_payload(workflows_file):
    assert runner.invoke(app, ["run", str(workflows_file), "new_task", "--payload", "{nope"]).exit_code == 2
    assert runner.invoke(app, ["run", str(workflows_file), "new_task", "--payload", "[1, 2]"]).exit_code == 2


def test_run_unknown_workflow(workflows_file):
    result = runner.invoke(app, ["run", str(workflows_file), "missing"])
    assert result.exit_code == 1


# ── config ───────────────────────────────────────────────────────────────────

def test_config_masks_secrets(monkeypatch):
    monkeypatch.setenv("STEPFLOW_SECRET_KEY", "super-secret-value-123")
    result = runner.invoke(app, ["config"])
    assert result.exit_code == 0
    assert "super-secret-value-123" not in result.output
    assert "STEPFLOW_DATABASE_URL" in result.output
