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

"""Instance-template assembly: base documents, mesh metadata, and merges."""

from __future__ import annotations

import copy
import json
import re
import time
from collections.abc import Callable

from asm_vm import logger
from asm_vm.constants import (
    AGENT_BOOTSTRAP_ARCHIVE,
    AGENT_BUCKET,
    AGENT_RECIPE_NAME,
    BASE_IMAGE_FAMILY,
    BOOT_DISK_SIZE_GB,
    BOOT_DISK_TYPE,
    CLOUD_PLATFORM_SCOPE,
    DEFAULT_RETRY_ATTEMPTS,
    ISTIOD_HOST,
    ISTIOD_XDS_PORT,
    KEY_AGENT_BUCKET,
    KEY_GUEST_ATTRIBUTES,
    KEY_OSCONFIG,
    KEY_ROOT_CERT,
    KEY_SERVICE_PROXY,
    KEY_SOFTWARE_DECLARATION,
    KEY_STARTUP_SCRIPT,
    LABEL_CANONICAL_NAME,
    LABEL_CANONICAL_REVISION,
    MACHINE_TYPE,
    PEM_BEGIN,
    SERVICE_PROXY_API_VERSION,
    SHEBANG,
    STARTUP_BLOCK_BEGIN,
    STARTUP_BLOCK_END,
    TEMPLATE_READ_ONLY_FIELDS,
    VM_LABEL_MESH_ID,
    VM_LABEL_PROJECT_ID,
    VM_LABEL_SERVICE_NAME,
    VM_LABEL_SERVICE_PROXY,
    VM_LABEL_SERVICE_PROXY_VALUE,
)
from asm_vm.errors import ValidationError
from asm_vm.labels import labels_to_dict
from asm_vm.models import CanonicalIdentity, ClusterFacts, LabelSet, ProjectContext
from asm_vm.retry import retry

_MESH_BLOCK_RE = re.compile(
    rf"^{re.escape(STARTUP_BLOCK_BEGIN)}$.*?^{re.escape(STARTUP_BLOCK_END)}$\n?",
    re.DOTALL | re.MULTILINE,
)


# ============================================================================
# Base documents
# ============================================================================

def default_template(name: str, project: ProjectContext) -> dict:
    """Synthesize a minimal instance-template document.

    Args:
        name: Name of the new template, also used as the boot disk device name.
        project: Project coordinates for the network and service account.

    Returns:
        Template document with an empty metadata item list and no labels.
    """
    return {
        "name": name,
        "properties": {
            "machineType": MACHINE_TYPE,
            "canIpForward": False,
            "description": "",
            "tags": {"items": []},
            "labels": {},
            "metadata": {"items": []},
            "disks": [
                {
                    "kind": "compute#attachedDisk",
                    "type": "PERSISTENT",
                    "boot": True,
                    "mode": "READ_WRITE",
                    "autoDelete": True,
                    "deviceName": name,
                    "initializeParams": {
                        "sourceImage": BASE_IMAGE_FAMILY,
                        "diskType": BOOT_DISK_TYPE,
                        "diskSizeGb": BOOT_DISK_SIZE_GB,
                    },
                }
            ],
            "networkInterfaces": [
                {
                    "network": f"projects/{project.project_id}/global/networks/default",
                    "accessConfigs": [
                        {"name": "External NAT", "type": "ONE_TO_ONE_NAT", "networkTier": "PREMIUM"}
                    ],
                }
            ],
            "scheduling": {
                "preemptible": False,
                "onHostMaintenance": "MIGRATE",
                "automaticRestart": True,
            },
            "serviceAccounts": [
                {"email": project.compute_service_account, "scopes": [CLOUD_PLATFORM_SCOPE]}
            ],
        },
    }


def from_source_template(source: dict, name: str) -> tuple[dict, str, list[dict]]:
    """Turn a fetched template into the base of a new one.

    Read-only fields are dropped and the template and disk device names are
    rewritten to *name*. The source document is not modified.

    Args:
        source: Document returned by the provider for the source template.
        name: Name of the new template.

    Returns:
        Tuple of (document, existing_startup_script, carried_metadata_items),
        where the carried items exclude the startup script.
    """
    document = copy.deepcopy(source)
    for field in TEMPLATE_READ_ONLY_FIELDS:
        document.pop(field, None)
    document["name"] = name

    properties = document.setdefault("properties", {})
    for disk in properties.get("disks", []):
        disk["deviceName"] = name

    metadata = properties.setdefault("metadata", {})
    metadata.pop("fingerprint", None)
    metadata.pop("kind", None)

    startup_script = ""
    carried: list[dict] = []
    for item in metadata.get("items", []):
        if item.get("key") == KEY_STARTUP_SCRIPT:
            startup_script = item.get("value", "")
        else:
            carried.append({"key": item.get("key"), "value": item.get("value", "")})
    return document, startup_script, carried


# ============================================================================
# Mesh metadata
# ============================================================================

def service_proxy_descriptor(
    facts: ClusterFacts,
    identity: CanonicalIdentity,
    labels: LabelSet,
    project: ProjectContext,
) -> dict:
    """Build the gce-service-proxy descriptor read by the service-proxy agent.

    ``asm-labels`` starts from the canonical identity labels and then applies
    the workload labels in order, so a repeated key keeps its last value.
    """
    asm_labels = {
        LABEL_CANONICAL_NAME: identity.service,
        LABEL_CANONICAL_REVISION: identity.revision,
    }
    asm_labels.update(labels_to_dict(labels))
    return {
        "api-version": SERVICE_PROXY_API_VERSION,
        "proxy-spec": {
            "network": "",
            "api-server": f"{facts.ingress_ip}:{ISTIOD_XDS_PORT}",
            "log-level": "info",
            "mesh-id": project.mesh_id,
        },
        "service": {
            "name": project.workload_name,
            "namespace": project.workload_namespace,
        },
        "workload-pool": project.workload_pool,
        "asm-labels": asm_labels,
        "asm-env": {
            "CANONICAL_SERVICE": identity.service,
            "CANONICAL_REVISION": identity.revision,
            "ISTIO_META_MESH_ID": project.mesh_id,
        },
    }


def software_declaration(archive: str = AGENT_BOOTSTRAP_ARCHIVE) -> dict:
    """OS Config recipe that installs the service-proxy agent from *archive*."""
    script = "\n".join([
        SHEBANG,
        "set -e",
        'AGENT_DIR="$(mktemp -d)"',
        f'gsutil cp {archive} "${{AGENT_DIR}}/installer.tgz"',
        'tar -xzf "${AGENT_DIR}/installer.tgz" -C "${AGENT_DIR}"',
        '"${AGENT_DIR}/installer/install.sh"',
        'rm -rf "${AGENT_DIR}"',
    ])
    return {
        "softwareRecipes": [
            {
                "name": AGENT_RECIPE_NAME,
                "desired_state": "INSTALLED",
                "installSteps": [{"scriptRun": {"script": script}}],
            }
        ]
    }


def build_startup_script(existing: str, facts: ClusterFacts) -> str:
    """Append the mesh hosts/resolver block to *existing*.

    A block injected by an earlier run is replaced, not repeated. An empty
    script starts with a shebang line.
    """
    base = _MESH_BLOCK_RE.sub("", existing or "").rstrip("\n")
    if not base.strip():
        base = SHEBANG
    block = [
        STARTUP_BLOCK_BEGIN,
        f"sed -i '/ {ISTIOD_HOST}$/d' /etc/hosts",
        f'echo "{facts.ingress_ip} {ISTIOD_HOST}" >> /etc/hosts',
        f"sed -i '/^nameserver {facts.dns_ip}$/d' /etc/resolv.conf",
        f"sed -i '1i nameserver {facts.dns_ip}' /etc/resolv.conf",
        STARTUP_BLOCK_END,
    ]
    return "\n".join([base, *block]) + "\n"


def _item(key: str, value: str) -> dict:
    return {"key": key, "value": value}


def merge_metadata_items(reserved: list[dict], carried: list[dict]) -> list[dict]:
    """Reserved items first, then carried items whose key is not reserved.

    Args:
        reserved: Freshly generated items; their keys always win.
        carried: Items taken over from a source template.

    Returns:
        Metadata items with exactly one entry per key.
    """
    merged: dict[str, dict] = {}
    for item in reserved:
        merged[item["key"]] = item
    reserved_keys = set(merged)
    for item in carried:
        key = item.get("key")
        if not key or key in reserved_keys:
            continue
        merged[key] = _item(key, item.get("value", ""))
    return list(merged.values())


def vm_labels(identity: CanonicalIdentity, project: ProjectContext) -> dict[str, str]:
    return {
        VM_LABEL_SERVICE_PROXY: VM_LABEL_SERVICE_PROXY_VALUE,
        VM_LABEL_SERVICE_NAME: identity.service,
        VM_LABEL_PROJECT_ID: project.project_id,
        VM_LABEL_MESH_ID: project.mesh_id,
    }


def merge_labels(existing: dict[str, str] | None, additions: dict[str, str]) -> dict[str, str]:
    merged = dict(existing or {})
    merged.update(additions)
    return merged


# ============================================================================
# Assembly
# ============================================================================

def _require_facts(facts: ClusterFacts | None) -> ClusterFacts:
    if facts is None or facts.ingress_ip is None or facts.dns_ip is None:
        raise ValidationError("Cluster facts are incomplete: ingress and DNS addresses are required")
    if not facts.root_cert or PEM_BEGIN not in facts.root_cert:
        raise ValidationError("Cluster facts are incomplete: the mesh root certificate is missing")
    return facts


def assemble_template(
    new_name: str,
    source_name: str | None,
    facts: ClusterFacts,
    identity: CanonicalIdentity,
    labels: LabelSet,
    project: ProjectContext,
    provider=None,
    *,
    attempts: int = DEFAULT_RETRY_ATTEMPTS,
    sleep: Callable[[float], None] = time.sleep,
) -> dict:
    """Produce the instance-template document ready for submission.

    Args:
        new_name: Name of the template to create.
        source_name: Existing template to derive from, or None to synthesize.
        facts: Live cluster facts (addresses and root certificate).
        identity: Canonical service identity of the workload.
        labels: Workload labels, in input order.
        project: Project and workload coordinates.
        provider: Object exposing ``get_instance_template(name)``; required
            when *source_name* is given.
        attempts: Retry budget for fetching the source template.
        sleep: Sleep function used between retries.

    Returns:
        The assembled template document.

    Raises:
        ValidationError: If a required fact or the source document is unavailable.
        RetryExhausted: If the source template could not be fetched.
    """
    facts = _require_facts(facts)

    if source_name is None:
        document = default_template(new_name, project)
        existing_script, carried = "", []
    else:
        if provider is None:
            raise ValidationError(f"No provider available to read source template '{source_name}'")
        source = retry(
            attempts,
            lambda: provider.get_instance_template(source_name),
            sleep=sleep,
            description=f"Reading instance template {source_name}",
        )
        if not source:
            raise ValidationError(f"Source instance template '{source_name}' returned an empty document")
        document, existing_script, carried = from_source_template(source, new_name)
        logger.info("Carrying over %d metadata items from '%s'", len(carried), source_name)

    descriptor = service_proxy_descriptor(facts, identity, labels, project)
    reserved = [
        _item(KEY_GUEST_ATTRIBUTES, "TRUE"),
        _item(KEY_OSCONFIG, "true"),
        _item(KEY_AGENT_BUCKET, AGENT_BUCKET),
        _item(KEY_SOFTWARE_DECLARATION, json.dumps(software_declaration())),
        _item(KEY_ROOT_CERT, facts.root_cert),
        _item(KEY_SERVICE_PROXY, json.dumps(descriptor)),
        _item(KEY_STARTUP_SCRIPT, build_startup_script(existing_script, facts)),
    ]

    properties = document.setdefault("properties", {})
    metadata = properties.setdefault("metadata", {})
    metadata["items"] = merge_metadata_items(reserved, carried)
    properties["labels"] = merge_labels(properties.get("labels"), vm_labels(identity, project))
    return document
