from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from deployer import __version__
from deployer.cli import app

runner = CliRunner()

CONFIG = """
[defaults]
method = "ansible"
task = "deploy"
playbook = "ansible/deploy.yml"

[branches.production]
playbook = "ansible/production.yml"
inventory = "ansible/inventory/production"

[branches.staging]
inventory = "ansible/inventory/staging"
notify_url = "http://example.org"

[branches.brian-test-branch]
method = "makefile"
task = "self-deploy"
"""


def write_project(tmp_path: Path, content: str = CONFIG) -> None:
    (tmp_path / "Makefile").write_text("deploy:\n\ttrue\nself-deploy:\n\ttrue\n", encoding="utf-8")
    for rel in (
        "ansible/deploy.yml",
        "ansible/production.yml",
        "ansible/inventory/production",
        "ansible/inventory/staging",
    ):
        path = tmp_path / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("---\n", encoding="utf-8")
    (tmp_path / ".deployer.conf").write_text(content, encoding="utf-8")


def test_version_flag() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_show_text_outputs_resolved_config(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    write_project(tmp_path)

    result = runner.invoke(app, ["show"])
    assert result.exit_code == 0
    assert "Default method: ansible" in result.output
    assert "Default task: deploy" in result.output
    assert "Default playbook: ansible/deploy.yml" in result.output
    assert "Default notify_url: none" in result.output
    assert "  staging (ansible)" in result.output
    assert "    inventory: ansible/inventory/staging" in result.output
    assert "    notify_url: http://example.org" in result.output
    assert "  brian-test-branch (makefile)" in result.output
    assert "    task: self-deploy" in result.output


def test_show_json_outputs_machine_readable_payload(tmp_path: Path) -> None:
    write_project(tmp_path)

    result = runner.invoke(app, ["show", "--root", str(tmp_path), "--format", "json"])
    assert result.exit_code == 0

    payload = json.loads(result.output)
    assert payload["ok"] is True
    assert payload["config_path"] == str(tmp_path / ".deployer.conf")
    assert payload["defaults"] == {
        "method": "ansible",
        "task": "deploy",
        "playbook": "ansible/deploy.yml",
        "notify_url": None,
    }
    assert payload["branches"]["production"] == {
        "method": "ansible",
        "make_task": None,
        "ansible_task": {
            "playbook": "ansible/production.yml",
            "inventory": "ansible/inventory/production",
        },
        "notify_url": None,
    }
    assert payload["branches"]["staging"]["ansible_task"]["playbook"] == "ansible/deploy.yml"
    assert payload["branches"]["brian-test-branch"]["make_task"] == "self-deploy"


def test_show_json_reports_config_error(tmp_path: Path) -> None:
    write_project(
        tmp_path,
        """
        [defaults]

        [branches.staging]
        task = "deploy"
        notify_url = 1
        """,
    )

    result = runner.invoke(app, ["show", "--root", str(tmp_path), "--format", "json"])
    assert result.exit_code == 2

    payload = json.loads(result.output)
    assert payload["ok"] is False
    assert payload["code"] == "DEPLOYER003"
    assert payload["error"]["kind"] == "config"
    assert payload["error"]["subject"] == "branch.staging.notify_url"


def test_show_json_reports_missing_config(tmp_path: Path) -> None:
    result = runner.invoke(app, ["show", "--root", str(tmp_path), "--format", "json"])
    assert result.exit_code == 2

    payload = json.loads(result.output)
    assert payload["code"] == "DEPLOYER002"
    assert payload["error"]["message"] == "could not open deployer configuration"


def test_branch_text(tmp_path: Path) -> None:
    write_project(tmp_path)

    result = runner.invoke(app, ["branch", "production", "--root", str(tmp_path)])
    assert result.exit_code == 0
    assert "production (ansible)" in result.output
    assert "playbook: ansible/production.yml" in result.output


def test_branch_json(tmp_path: Path) -> None:
    write_project(tmp_path)

    result = runner.invoke(
        app, ["branch", "brian-test-branch", "--root", str(tmp_path), "--format", "json"]
    )
    assert result.exit_code == 0

    payload = json.loads(result.output)
    assert payload["ok"] is True
    assert payload["branch"] == "brian-test-branch"
    assert payload["method"] == "makefile"
    assert payload["make_task"] == "self-deploy"
    assert payload["ansible_task"] is None


def test_branch_unknown_name(tmp_path: Path) -> None:
    write_project(tmp_path)

    result = runner.invoke(
        app, ["branch", "Production", "--root", str(tmp_path), "--format", "json"]
    )
    assert result.exit_code == 1

    payload = json.loads(result.output)
    assert payload["code"] == "DEPLOYER004"
