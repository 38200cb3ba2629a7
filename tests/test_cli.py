# /*
# Copyright 2026 The ASM VM Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""Tests for the typer CLI."""

from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from asm_vm.cli import app
from asm_vm.commands import create_cmd
from asm_vm.models import Outcome, Step, TerminalState

runner = CliRunner()

ARGS = [
    "create", "gce-instance-template", "vm-template",
    "--project-id", "my-project",
    "--cluster-location", "us-central1-c",
    "--cluster-name", "asm-cluster",
    "--workload-name", "vm-app",
    "--workload-namespace", "vm-ns",
]


@pytest.fixture
def captured(monkeypatch):
    """Replace the driver entry points and record the config they receive."""
    calls: dict = {}

    def fake_provision(config):
        calls["provision"] = config
        return calls.get("outcome", Outcome(state=TerminalState.SUCCESS, document={"name": config.new_template}))

    def fake_validate(config):
        calls["validate"] = config
        return Outcome(state=TerminalState.SUCCESS)

    monkeypatch.setattr(create_cmd, "provision", fake_provision)
    monkeypatch.setattr(create_cmd, "validate", fake_validate)
    return calls


class TestCreateCommand:
    """Test the create gce-instance-template command."""

    def test_success_exits_zero(self, captured):
        result = runner.invoke(app, ARGS + ["--workload-labels", "app=web"])
        assert result.exit_code == 0
        config = captured["provision"]
        assert config.new_template == "vm-template"
        assert config.workload_labels == "app=web"
        assert config.source_template is None

    def test_failure_exits_two(self, captured):
        captured["outcome"] = Outcome(
            state=TerminalState.VALIDATION_FAILED,
            step=Step.VALIDATE,
            message="Instance template 'vm-template' already exists",
            remediation="gcloud compute instance-templates delete vm-template --project my-project",
        )
        result = runner.invoke(app, ARGS)
        assert result.exit_code == 2

    def test_dry_run_prints_document(self, captured):
        result = runner.invoke(app, ARGS + ["--dry-run"])
        assert result.exit_code == 0
        assert captured["provision"].dry_run is True
        assert json.loads(result.stdout) == {"name": "vm-template"}

    def test_only_validate(self, captured):
        result = runner.invoke(app, ARGS + ["--only-validate"])
        assert result.exit_code == 0
        assert "validate" in captured
        assert "provision" not in captured

    def test_missing_required_option(self, captured, monkeypatch):
        monkeypatch.delenv("ASM_VM_PROJECT_ID", raising=False)
        args = [arg for arg in ARGS if arg not in ("--project-id", "my-project")]
        result = runner.invoke(app, args)
        assert result.exit_code == 2
        assert "provision" not in captured

    def test_options_from_environment(self, captured, monkeypatch):
        monkeypatch.setenv("ASM_VM_PROJECT_ID", "env-project")
        args = [arg for arg in ARGS if arg not in ("--project-id", "my-project")]
        result = runner.invoke(app, args)
        assert result.exit_code == 0
        assert captured["provision"].project_id == "env-project"
