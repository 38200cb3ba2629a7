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

"""Configuration classes and config models."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from asm_vm.constants import (
    DEFAULT_IP_POLL_TIMEOUT,
    DEFAULT_OPERATION_TIMEOUT,
    DEFAULT_RETRY_ATTEMPTS,
)


# ============================================================================
# Configuration classes
# ============================================================================

class ProvisionConfig(BaseSettings):
    """Instance-template provisioning configuration, auto-loaded from ASM_VM_* env vars.

    The model is frozen: every step receives the same immutable view.
    CLI options override environment values by being passed as init kwargs.

    Attributes:
        project_id: GCP project hosting the cluster and the new template.
        cluster_location: Zone or region of the GKE cluster.
        cluster_name: Name of the GKE cluster running ASM.
        workload_name: Workload name, used as the fallback canonical service.
        workload_namespace: Kubernetes namespace of the workload.
        new_template: Name of the instance template to create.
        source_template: Existing template to derive from, or None to synthesize.
        workload_labels: Comma-separated ``key=value`` workload labels.
        dry_run: Assemble and print the template without submitting it.
        retry_attempts: Attempts allowed for transient remote failures.
        ip_poll_timeout: Seconds to wait for load-balancer addresses.
        operation_timeout: Seconds to wait for the creation operation.
    """

    model_config = SettingsConfigDict(env_prefix="ASM_VM_", extra="ignore", frozen=True)

    project_id: str = Field(min_length=1)
    cluster_location: str = Field(min_length=1)
    cluster_name: str = Field(min_length=1)
    workload_name: str = Field(min_length=1)
    workload_namespace: str = Field(min_length=1)
    new_template: str = Field(min_length=1)
    source_template: str | None = None
    workload_labels: str = ""
    dry_run: bool = False
    retry_attempts: int = Field(default=DEFAULT_RETRY_ATTEMPTS, ge=0, le=20)
    ip_poll_timeout: int = Field(default=DEFAULT_IP_POLL_TIMEOUT, ge=0, le=3600)
    operation_timeout: int = Field(default=DEFAULT_OPERATION_TIMEOUT, ge=0, le=3600)
