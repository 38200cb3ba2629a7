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

"""Data threaded through the provisioning steps."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from ipaddress import IPv4Address

LabelSet = tuple[tuple[str, str], ...]


@dataclass(frozen=True)
class CanonicalIdentity:
    """Normalized (service, revision) pair tagging the workload in the mesh."""

    service: str
    revision: str


@dataclass(frozen=True)
class ClusterFacts:
    """Live cluster state required to join the mesh.

    Attributes:
        dns_ip: Cluster DNS load-balancer address.
        ingress_ip: East-west gateway address reaching istiod.
        root_cert: Mesh root certificate in PEM form.
    """

    dns_ip: IPv4Address
    ingress_ip: IPv4Address
    root_cert: str


@dataclass(frozen=True)
class ProjectContext:
    """Project and workload coordinates used while assembling a template."""

    project_id: str
    project_number: str
    workload_name: str
    workload_namespace: str

    @property
    def mesh_id(self) -> str:
        return f"proj-{self.project_number}"

    @property
    def workload_pool(self) -> str:
        return f"{self.project_id}.svc.id.goog"

    @property
    def compute_service_account(self) -> str:
        return f"{self.project_number}-compute@developer.gserviceaccount.com"


class Step(str, enum.Enum):
    """Provisioning steps, in execution order."""

    VALIDATE = "validate"
    DERIVE_IDENTITY = "derive-identity"
    RETRIEVE_FACTS = "retrieve-facts"
    ASSEMBLE = "assemble-template"
    SUBMIT = "submit"
    CONFIRM = "confirm"


class TerminalState(str, enum.Enum):
    SUCCESS = "success"
    VALIDATION_FAILED = "validation-failed"
    PROVISIONING_FAILED = "provisioning-failed"


@dataclass(frozen=True)
class Outcome:
    """Terminal result of a provisioning run.

    Attributes:
        state: Terminal state reached.
        step: Step that failed, or None on success.
        message: Human-readable diagnostic.
        remediation: Command the user can run to fix or inspect, or None.
        operation_name: Compute operation name once submitted, or None.
        document: Assembled template document, or None if not reached.
    """

    state: TerminalState
    step: Step | None = None
    message: str = ""
    remediation: str | None = None
    operation_name: str | None = None
    document: dict | None = None

    @property
    def exit_code(self) -> int:
        return 0 if self.state is TerminalState.SUCCESS else 2
