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

"""Thin kubectl wrappers bound to one kubeconfig context."""

from __future__ import annotations

import json
import shlex

import sh

from asm_vm import logger


def load_balancer_ip(service: dict) -> str:
    """Return ``status.loadBalancer.ingress[0].ip`` of a service, or ""."""
    ingress = service.get("status", {}).get("loadBalancer", {}).get("ingress") or []
    if not ingress:
        return ""
    return ingress[0].get("ip") or ""


def container_image(deployment: dict) -> str:
    containers = deployment.get("spec", {}).get("template", {}).get("spec", {}).get("containers") or []
    return containers[0].get("image", "") if containers else ""


class KubeCluster:
    """Cluster reads through ``kubectl --context <context>``."""

    def __init__(self, context: str) -> None:
        self.context = context

    def _kubectl(self, *args: str) -> str:
        logger.debug("kubectl --context %s %s", self.context, shlex.join(args))
        return str(sh.kubectl("--context", self.context, *args))

    def get_namespaces(self) -> list[str]:
        return self._kubectl("get", "namespaces", "-o", "jsonpath={.items[*].metadata.name}").split()

    def get_deployments(self, namespace: str) -> list[dict[str, str]]:
        """List deployments as ``{"name", "image"}`` using the first container image."""
        payload = json.loads(self._kubectl("get", "deployments", "-n", namespace, "-o", "json"))
        return [
            {"name": item["metadata"]["name"], "image": container_image(item)}
            for item in payload.get("items", [])
        ]

    def service_exists(self, namespace: str, name: str) -> bool:
        output = self._kubectl("get", "service", name, "-n", namespace, "--ignore-not-found", "-o", "name")
        return bool(output.strip())

    def get_service(self, namespace: str, name: str) -> dict:
        return json.loads(self._kubectl("get", "service", name, "-n", namespace, "-o", "json"))

    def get_load_balancer_ip(self, namespace: str, name: str) -> str:
        return load_balancer_ip(self.get_service(namespace, name))

    def exec_in_pod(
        self,
        namespace: str,
        selector: str,
        command: list[str],
        container: str | None = None,
    ) -> str:
        """Run *command* in the first pod matching *selector* and return stdout.

        Raises:
            RuntimeError: If no pod matches *selector*.
        """
        pod = self._kubectl(
            "get", "pods", "-n", namespace, "-l", selector,
            "-o", "jsonpath={.items[0].metadata.name}",
        ).strip()
        if not pod:
            raise RuntimeError(f"No pod matches '{selector}' in namespace {namespace}")
        args = ["exec", "-n", namespace, pod]
        if container:
            args += ["-c", container]
        return self._kubectl(*args, "--", *command)
