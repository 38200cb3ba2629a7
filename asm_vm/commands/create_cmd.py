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

"""Create subcommands (gce-instance-template)."""

from __future__ import annotations

import json

import pydantic
import typer
from rich.markup import escape

from asm_vm import console
from asm_vm.config import ProvisionConfig
from asm_vm.models import Outcome, TerminalState
from asm_vm.orchestrator import provision, validate

app = typer.Typer(help="Create resources.")


def report(outcome: Outcome) -> None:
    """Print the terminal outcome of a run."""
    if outcome.state is TerminalState.SUCCESS:
        return
    step = outcome.step.value if outcome.step else "run"
    console.print(f"[red]❌ {step}: {escape(outcome.message)}[/red]")
    if outcome.remediation:
        console.print(f"[yellow]   Try: {escape(outcome.remediation)}[/yellow]")


@app.command("gce-instance-template")
def gce_instance_template(
    new_template: str = typer.Argument(..., help="Name of the instance template to create"),
    project_id: str | None = typer.Option(None, "--project-id", help="GCP project of the cluster"),
    cluster_location: str | None = typer.Option(None, "--cluster-location", help="Cluster zone or region"),
    cluster_name: str | None = typer.Option(None, "--cluster-name", help="GKE cluster running ASM"),
    workload_name: str | None = typer.Option(None, "--workload-name", help="Workload name"),
    workload_namespace: str | None = typer.Option(None, "--workload-namespace", help="Workload namespace"),
    source_instance_template: str | None = typer.Option(
        None, "--source-instance-template", help="Existing template to derive from"),
    workload_labels: str | None = typer.Option(
        None, "--workload-labels", help="Comma-separated key=value workload labels"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print the template instead of creating it"),
    only_validate: bool = typer.Option(False, "--only-validate", help="Only run the validation checks"),
) -> None:
    """Create a GCE instance template whose VMs join the ASM mesh."""
    options = {
        "new_template": new_template,
        "project_id": project_id,
        "cluster_location": cluster_location,
        "cluster_name": cluster_name,
        "workload_name": workload_name,
        "workload_namespace": workload_namespace,
        "source_template": source_instance_template,
        "workload_labels": workload_labels,
    }
    overrides: dict = {key: value for key, value in options.items() if value is not None}
    if dry_run:
        overrides["dry_run"] = True
    try:
        config = ProvisionConfig(**overrides)
    except pydantic.ValidationError as err:
        console.print(f"[red]❌ Invalid configuration:[/red]\n{escape(str(err))}")
        raise typer.Exit(code=2) from err

    outcome = validate(config) if only_validate else provision(config)
    report(outcome)
    if outcome.state is TerminalState.SUCCESS and config.dry_run and outcome.document is not None:
        typer.echo(json.dumps(outcome.document, indent=2))
    raise typer.Exit(code=outcome.exit_code)
