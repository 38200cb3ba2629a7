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

"""Shared fixtures and fake remote collaborators."""

from __future__ import annotations

import copy
import re
from ipaddress import IPv4Address

import pytest

from asm_vm.config import ProvisionConfig
from asm_vm.models import CanonicalIdentity, ClusterFacts, ProjectContext

ROOT_CERT = (
    "-----BEGIN CERTIFICATE-----\n"
    "MIIC/TCCAeWgAwIBAgIRAKdQ7mTESTROOTCERTIFICATEAAAAAAAAAAAAAAAAAAAA\n"
    "-----END CERTIFICATE-----\n"
)


class FakeProvider:
    """In-memory stand-in for GcloudProvider."""

    def __init__(
        self,
        *,
        project_number: str = "123456789",
        clusters: tuple[str, ...] = ("asm-cluster",),
        templates: dict[str, dict] | None = None,
        create_response: dict | None = None,
        statuses: tuple[str, ...] = ("RUNNING", "DONE"),
        operation_error: dict | None = None,
    ) -> None:
        self.number = project_number
        self.clusters = list(clusters)
        self.templates = templates or {}
        self.create_response = create_response or {"name": "operation-123", "status": "PENDING"}
        self._statuses = iter(statuses)
        self.operation_error = operation_error
        self.created: list[dict] = []
        self.credential_calls = 0
        self.status_calls = 0

    def project_number(self) -> str:
        return self.number

    def list_clusters(self, name: str, location: str) -> list[str]:
        return list(self.clusters)

    def configure_credentials(self, cluster: str, location: str) -> str:
        self.credential_calls += 1
        return f"gke_my-project_{location}_{cluster}"

    def list_instance_templates(self, name_regex: str) -> list[str]:
        pattern = re.compile(name_regex)
        return [name for name in self.templates if pattern.match(name)]

    def get_instance_template(self, name: str) -> dict:
        return copy.deepcopy(self.templates[name])

    def get_access_token(self) -> str:
        return "ya29.token"

    def create_instance_template(self, document: dict, token: str) -> dict:
        self.created.append(document)
        return self.create_response

    def get_operation(self, operation_name: str) -> dict:
        self.status_calls += 1
        operation = {"name": operation_name, "status": next(self._statuses, "RUNNING")}
        if operation["status"] == "DONE" and self.operation_error:
            operation["error"] = self.operation_error
        return operation


class FakeCluster:
    """In-memory stand-in for KubeCluster."""

    def __init__(
        self,
        *,
        namespaces: tuple[str, ...] = ("default", "istio-system", "kube-system", "vm-ns"),
        deployments: list[dict[str, str]] | None = None,
        services: dict[tuple[str, str], str] | None = None,
        root_cert: str = ROOT_CERT,
    ) -> None:
        self.namespaces = list(namespaces)
        self.deployments = deployments if deployments is not None else [
            {"name": "istiod-asm-195-2", "image": "gcr.io/gke-release/asm/pilot:1.9.5-asm.2"},
        ]
        self.services = services if services is not None else {
            ("istio-system", "istio-eastwestgateway"): "35.1.2.3",
            ("kube-system", "kube-dns-lb"): "10.128.0.9",
        }
        self.root_cert = root_cert
        self.exec_calls: list[list[str]] = []

    def get_namespaces(self) -> list[str]:
        return list(self.namespaces)

    def get_deployments(self, namespace: str) -> list[dict[str, str]]:
        return list(self.deployments)

    def service_exists(self, namespace: str, name: str) -> bool:
        return (namespace, name) in self.services

    def get_load_balancer_ip(self, namespace: str, name: str) -> str:
        return self.services[(namespace, name)]

    def exec_in_pod(self, namespace: str, selector: str, command: list[str], container: str | None = None) -> str:
        self.exec_calls.append(command)
        return self.root_cert


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def config() -> ProvisionConfig:
    return ProvisionConfig(
        project_id="my-project",
        cluster_location="us-central1-c",
        cluster_name="asm-cluster",
        workload_name="vm-app",
        workload_namespace="vm-ns",
        new_template="vm-template",
        workload_labels="app=web,version=v2",
        retry_attempts=3,
        ip_poll_timeout=5,
        operation_timeout=5,
    )


@pytest.fixture
def facts() -> ClusterFacts:
    return ClusterFacts(
        dns_ip=IPv4Address("10.128.0.9"),
        ingress_ip=IPv4Address("35.1.2.3"),
        root_cert=ROOT_CERT,
    )


@pytest.fixture
def identity() -> CanonicalIdentity:
    return CanonicalIdentity(service="web", revision="v2")


@pytest.fixture
def project() -> ProjectContext:
    return ProjectContext(
        project_id="my-project",
        project_number="123456789",
        workload_name="vm-app",
        workload_namespace="vm-ns",
    )
