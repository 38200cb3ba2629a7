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

"""Constants, dependency loading, and dep_value helper."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml


def load_dependencies() -> dict:
    """Load pinned versions and locations from dependencies.yaml.

    Returns:
        Parsed YAML content as a nested dictionary.
    """
    deps_file = Path(__file__).resolve().parent / "dependencies.yaml"
    with open(deps_file) as f:
        return yaml.safe_load(f)


DEPENDENCIES = load_dependencies()


def dep_value(*keys: str, default: Any = None) -> Any:
    """Safely traverse the DEPENDENCIES dict by key path.

    Args:
        *keys: Sequence of dictionary keys to traverse.
        default: Value to return if any key is missing.

    Returns:
        The value at the nested key path, or *default* if not found.
    """
    node = DEPENDENCIES
    for key in keys:
        if not isinstance(node, dict):
            return default
        node = node.get(key)
        if node is None:
            return default
    return node


REQUIRED_COMMANDS = ("gcloud", "kubectl")

# -- Retry / poll --
RETRY_WAIT_SECONDS = 2
POLL_INTERVAL_SECONDS = 1
DEFAULT_RETRY_ATTEMPTS = 5
DEFAULT_IP_POLL_TIMEOUT = 60
DEFAULT_OPERATION_TIMEOUT = 120
OPERATION_DONE = "DONE"

# -- Patterns --
IPV4_PATTERN = r"(25[0-5]|2[0-4]\d|1?\d?\d)(\.(25[0-5]|2[0-4]\d|1?\d?\d)){3}"
LABEL_PATTERN = r"^[^=,\s]+=[^=,\s]+$"
RESOURCE_NAME_PATTERN = r"^[a-z]([-a-z0-9]{0,61}[a-z0-9])?$"
ASM_IMAGE_VERSION_PATTERN = r":(\d+)\.(\d+)\.(\d+)-asm\.(\d+)"
PEM_BEGIN = "-----BEGIN CERTIFICATE-----"

# -- Namespaces & services --
NS_ISTIO_SYSTEM = dep_value("asm", "namespace", default="istio-system")
NS_KUBE_SYSTEM = "kube-system"
SVC_EASTWEST_GATEWAY = "istio-eastwestgateway"
SVC_DNS_LB = "kube-dns-lb"
ISTIOD_DEPLOYMENT_PREFIX = "istiod"
ISTIOD_HOST = "istiod.istio-system.svc"
ISTIOD_XDS_PORT = 15012

# -- Canonical identity labels --
LABEL_CANONICAL_NAME = "service.istio.io/canonical-name"
LABEL_CANONICAL_REVISION = "service.istio.io/canonical-revision"
SERVICE_NAME_LABELS = (LABEL_CANONICAL_NAME, "app.kubernetes.io/name", "app")
REVISION_LABELS = (LABEL_CANONICAL_REVISION, "app.kubernetes.io/version", "version")
DEFAULT_REVISION = "latest"

# -- Metadata keys --
KEY_GUEST_ATTRIBUTES = "enable-guest-attributes"
KEY_OSCONFIG = "enable-osconfig"
KEY_AGENT_BUCKET = "service-proxy-agent-bucket"
KEY_SOFTWARE_DECLARATION = "gce-software-declaration"
KEY_ROOT_CERT = "rootcert"
KEY_SERVICE_PROXY = "gce-service-proxy"
KEY_STARTUP_SCRIPT = "startup-script"
RESERVED_METADATA_KEYS = (
    KEY_GUEST_ATTRIBUTES,
    KEY_OSCONFIG,
    KEY_AGENT_BUCKET,
    KEY_SOFTWARE_DECLARATION,
    KEY_ROOT_CERT,
    KEY_SERVICE_PROXY,
    KEY_STARTUP_SCRIPT,
)

# -- VM labels --
VM_LABEL_SERVICE_PROXY = "gce-service-proxy"
VM_LABEL_SERVICE_PROXY_VALUE = "asm-istiod"
VM_LABEL_SERVICE_NAME = "asm_service_name"
VM_LABEL_PROJECT_ID = "asm_project_id"
VM_LABEL_MESH_ID = "mesh_id"

# -- Template defaults --
MACHINE_TYPE = dep_value("base_image", "machine_type", default="n1-standard-1")
BASE_IMAGE_FAMILY = dep_value(
    "base_image", "family", default="projects/debian-cloud/global/images/family/debian-10")
BOOT_DISK_SIZE_GB = dep_value("base_image", "disk_size_gb", default="10")
BOOT_DISK_TYPE = dep_value("base_image", "disk_type", default="pd-standard")
CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"
TEMPLATE_READ_ONLY_FIELDS = ("id", "kind", "selfLink", "creationTimestamp")
SERVICE_PROXY_API_VERSION = "0.2"
SHEBANG = "#! /bin/bash"
STARTUP_BLOCK_BEGIN = "# asm-vm: begin mesh configuration"
STARTUP_BLOCK_END = "# asm-vm: end mesh configuration"

# -- Service proxy agent --
AGENT_BUCKET = dep_value("service_proxy_agent", "bucket")
AGENT_BOOTSTRAP_ARCHIVE = dep_value("service_proxy_agent", "bootstrap_archive")
AGENT_RECIPE_NAME = "install-gce-service-proxy-agent"

# -- Root certificate --
ISTIOD_SELECTOR = dep_value("asm", "istiod_selector", default="app=istiod")
ISTIOD_CONTAINER = dep_value("asm", "istiod_container", default="discovery")
ROOT_CERT_PATH = dep_value("asm", "root_cert_path", default="/var/run/secrets/istio/root-cert.pem")
MIN_ASM_VERSION = tuple(int(part) for part in str(dep_value("asm", "min_version", default="1.9")).split("."))

# -- Compute API --
COMPUTE_API_URL = "https://compute.googleapis.com/compute/v1"
COMPUTE_REQUEST_TIMEOUT_SECONDS = 60
