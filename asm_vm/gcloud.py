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

"""Thin gcloud and Compute API wrappers for project, cluster, and template calls."""

from __future__ import annotations

import json

import requests
import sh

from asm_vm import logger
from asm_vm.constants import COMPUTE_API_URL, COMPUTE_REQUEST_TIMEOUT_SECONDS


def _lines(output: str) -> list[str]:
    return [line.strip() for line in str(output).splitlines() if line.strip()]


def operation_status(operation: dict) -> str:
    """Return the ``status`` of a compute operation, or ""."""
    return operation.get("status") or ""


def operation_error(operation: dict) -> str | None:
    """Return the joined ``error.errors`` messages of a finished operation, or None."""
    error = operation.get("error")
    if not error:
        return None
    messages = [e.get("message") or e.get("code", "") for e in error.get("errors") or []]
    return "; ".join(m for m in messages if m) or str(error)


class GcloudProvider:
    """Provider-side operations scoped to one GCP project.

    Every method is a single remote call; failures surface as
    ``sh.ErrorReturnCode`` or ``requests`` exceptions for the caller to handle.
    """

    def __init__(self, project_id: str) -> None:
        self.project_id = project_id

    def _gcloud(self, *args: str) -> str:
        logger.debug("gcloud %s", " ".join(args))
        return str(sh.gcloud(*args, "--project", self.project_id))

    def project_number(self) -> str:
        return str(sh.gcloud(
            "projects", "describe", self.project_id, "--format=value(projectNumber)"
        )).strip()

    def list_clusters(self, name: str, location: str) -> list[str]:
        return _lines(self._gcloud(
            "container", "clusters", "list",
            f"--filter=name = {name} AND location = {location}",
            "--format=value(name)",
        ))

    def configure_credentials(self, cluster: str, location: str) -> str:
        """Fetch cluster credentials into kubeconfig and return the context name."""
        self._gcloud("container", "clusters", "get-credentials", cluster, "--location", location)
        return f"gke_{self.project_id}_{location}_{cluster}"

    def list_instance_templates(self, name_regex: str) -> list[str]:
        return _lines(self._gcloud(
            "compute", "instance-templates", "list",
            f"--filter=name ~ {name_regex}",
            "--format=value(name)",
        ))

    def get_instance_template(self, name: str) -> dict:
        return json.loads(self._gcloud("compute", "instance-templates", "describe", name, "--format=json"))

    def get_operation(self, operation_name: str) -> dict:
        return json.loads(self._gcloud(
            "compute", "operations", "describe", operation_name, "--global", "--format=json"
        ))

    def get_access_token(self) -> str:
        token = str(sh.gcloud("auth", "print-access-token")).strip()
        if not token:
            raise RuntimeError("gcloud returned an empty access token")
        return token

    def create_instance_template(self, document: dict, token: str) -> dict:
        """POST *document* to the Compute API and return the decoded response.

        Error responses are returned as decoded bodies, not raised, so the
        caller can surface the provider's message verbatim.
        """
        url = f"{COMPUTE_API_URL}/projects/{self.project_id}/global/instanceTemplates"
        response = requests.post(
            url,
            json=document,
            headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
            timeout=COMPUTE_REQUEST_TIMEOUT_SECONDS,
        )
        try:
            return response.json()
        except ValueError:
            return {"error": {"code": response.status_code, "message": response.text}}


def operation_describe_command(project_id: str, operation_name: str) -> str:
    """Command a user can run to inspect a global compute operation."""
    return f"gcloud compute operations describe {operation_name} --global --project {project_id}"
