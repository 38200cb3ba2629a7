#!/usr/bin/env python3
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

r"""
cli.py - CLI for provisioning ASM VM instance templates.

Subcommands:
    create     Create resources (gce-instance-template)

Examples:
    # Create a template from scratch
    asm-vm create gce-instance-template my-vm-template \
        --project-id my-project --cluster-location us-central1-c \
        --cluster-name asm-cluster --workload-name vm-app --workload-namespace vm-ns

    # Derive from an existing template, with workload labels
    asm-vm create gce-instance-template my-vm-template ... \
        --source-instance-template base-template --workload-labels app=vm-app,version=v1

    # Only check that the cluster and project are ready
    asm-vm create gce-instance-template my-vm-template ... --only-validate

Environment Variables:
    Every option can be supplied as ASM_VM_<OPTION>, e.g. ASM_VM_PROJECT_ID.

For detailed usage information, run: asm-vm --help
"""

from __future__ import annotations

import logging
import sys

import typer

from asm_vm import console
from asm_vm.commands import create_cmd

app = typer.Typer(
    help="Provision GCE instance templates for ASM VM workloads.",
    no_args_is_help=True,
)


@app.callback()
def _main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Initialize logging for all subcommands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


app.add_typer(create_cmd.app, name="create")


def main() -> None:
    try:
        app()
    except Exception as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
