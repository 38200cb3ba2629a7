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

"""Provisioning driver: validate, derive, retrieve, assemble, submit, confirm."""

from __future__ import annotations

import time
from collections.abc import Callable

import requests
from rich.panel import Panel

from asm_vm import console, logger
from asm_vm.config import ProvisionConfig
from asm_vm.constants import (
    ISTIOD_CONTAINER,
    ISTIOD_DEPLOYMENT_PREFIX,
    ISTIOD_SELECTOR,
    MIN_ASM_VERSION,
    NS_ISTIO_SYSTEM,
    NS_KUBE_SYSTEM,
    OPERATION_DONE,
    PEM_BEGIN,
    REQUIRED_COMMANDS,
    ROOT_CERT_PATH,
    SVC_DNS_LB,
    SVC_EASTWEST_GATEWAY,
)
from asm_vm.errors import (
    OperationFailed,
    PollTimeout,
    ProvisioningError,
    RetryExhausted,
    SubmissionError,
    ValidationError,
)
from asm_vm.gcloud import GcloudProvider, operation_describe_command, operation_error, operation_status
from asm_vm.kubectl import KubeCluster
from asm_vm.labels import derive_canonical_identity, parse_labels
from asm_vm.models import ClusterFacts, LabelSet, Outcome, ProjectContext, Step, TerminalState
from asm_vm.retry import poll_for_ipv4, poll_until_match, retry
from asm_vm.template import assemble_template
from asm_vm.utils import asm_version_from_image, format_version, is_resource_name, require_command

Sleep = Callable[[float], None]


# ============================================================================
# Internal helpers
# ============================================================================

def _check_prerequisites(config: ProvisionConfig) -> LabelSet:
    """Check CLI tools, template names, and workload labels.

    Returns:
        The parsed workload labels.
    """
    for cmd in REQUIRED_COMMANDS:
        require_command(cmd)
    for name in filter(None, (config.new_template, config.source_template)):
        if not is_resource_name(name):
            raise ValidationError(
                f"'{name}' is not a valid instance template name",
                remediation="Use lowercase letters, digits and hyphens, starting with a letter (max 63 characters)",
            )
    return parse_labels(config.workload_labels)


def _check_project(config: ProvisionConfig, provider: GcloudProvider, sleep: Sleep) -> str:
    """Confirm the project exists and return its number."""
    try:
        number = retry(config.retry_attempts, provider.project_number, sleep=sleep,
                       description=f"Describing project {config.project_id}")
    except RetryExhausted as err:
        raise ValidationError(
            f"Project '{config.project_id}' does not exist or is not accessible",
            remediation=f"gcloud projects describe {config.project_id}",
        ) from err
    if not number:
        raise ValidationError(f"Project '{config.project_id}' has no project number",
                              remediation=f"gcloud projects describe {config.project_id}")
    return number


def _check_cluster(config: ProvisionConfig, provider: GcloudProvider, sleep: Sleep) -> str:
    """Confirm the cluster exists and configure credentials; return the kube context."""
    list_cmd = f"gcloud container clusters list --project {config.project_id}"
    try:
        clusters = retry(config.retry_attempts,
                         lambda: provider.list_clusters(config.cluster_name, config.cluster_location),
                         sleep=sleep, description="Listing clusters")
    except RetryExhausted as err:
        raise ValidationError("Could not list GKE clusters", remediation=list_cmd) from err
    if config.cluster_name not in clusters:
        raise ValidationError(
            f"Cluster '{config.cluster_name}' not found in {config.cluster_location}",
            remediation=list_cmd,
        )

    try:
        return retry(config.retry_attempts,
                     lambda: provider.configure_credentials(config.cluster_name, config.cluster_location),
                     sleep=sleep, description="Fetching cluster credentials")
    except RetryExhausted as err:
        raise ValidationError(
            f"Cluster '{config.cluster_name}' is not reachable",
            remediation=(f"gcloud container clusters get-credentials {config.cluster_name} "
                         f"--project {config.project_id} --location {config.cluster_location}"),
        ) from err


def _check_asm_version(deployments: list[dict[str, str]]) -> tuple[int, int, int]:
    """Return the newest ASM version among istiod deployments.

    Raises:
        ValidationError: If no istiod deployment runs a supported ASM release.
    """
    istiods = [d for d in deployments if d["name"].startswith(ISTIOD_DEPLOYMENT_PREFIX)]
    if not istiods:
        raise ValidationError(
            f"No istiod deployment found in {NS_ISTIO_SYSTEM}; ASM does not appear to be installed",
            remediation=f"kubectl get deployments -n {NS_ISTIO_SYSTEM}",
        )
    versions = [v for v in (asm_version_from_image(d["image"]) for d in istiods) if v is not None]
    if not versions:
        images = ", ".join(d["image"] for d in istiods)
        raise ValidationError(f"Unrecognized ASM version in istiod image(s): {images}")
    newest = max(versions)
    if newest[:len(MIN_ASM_VERSION)] < MIN_ASM_VERSION:
        raise ValidationError(
            f"ASM {format_version(newest)} is not supported; "
            f"version {format_version(MIN_ASM_VERSION)} or newer is required"
        )
    return newest


def _check_mesh(
    config: ProvisionConfig, cluster: KubeCluster, context: str, refresh: Callable, sleep: Sleep
) -> None:
    """Check namespaces, ASM version, and the services VMs depend on."""
    def _read(op: Callable, description: str):
        try:
            return retry(config.retry_attempts, op, refresh=refresh, sleep=sleep, description=description)
        except RetryExhausted as err:
            raise ValidationError(
                f"Cluster '{config.cluster_name}' is not reachable: {err}",
                remediation=f"kubectl get namespaces --context {context}",
            ) from err

    namespaces = _read(cluster.get_namespaces, "Listing namespaces")
    if NS_ISTIO_SYSTEM not in namespaces:
        raise ValidationError(
            f"Namespace {NS_ISTIO_SYSTEM} not found; ASM does not appear to be installed",
            remediation="kubectl get namespaces",
        )
    deployments = _read(lambda: cluster.get_deployments(NS_ISTIO_SYSTEM),
                        f"Listing deployments in {NS_ISTIO_SYSTEM}")
    version = _check_asm_version(deployments)
    console.print(f"[green]  ✓ ASM {format_version(version)} detected[/green]")

    if config.workload_namespace not in namespaces:
        raise ValidationError(
            f"Workload namespace '{config.workload_namespace}' not found",
            remediation=f"kubectl create namespace {config.workload_namespace}",
        )

    for namespace, service in ((NS_ISTIO_SYSTEM, SVC_EASTWEST_GATEWAY), (NS_KUBE_SYSTEM, SVC_DNS_LB)):
        exists = _read(lambda: cluster.service_exists(namespace, service),
                       f"Looking up service {namespace}/{service}")
        if not exists:
            raise ValidationError(
                f"Service {service} not found in namespace {namespace}",
                remediation=f"kubectl get service {service} -n {namespace}",
            )


def _check_templates(config: ProvisionConfig, provider: GcloudProvider, sleep: Sleep) -> None:
    """Reject a name collision and require the source template when named."""
    def _exists(name: str) -> bool:
        names = retry(config.retry_attempts, lambda: provider.list_instance_templates(f"^{name}$"),
                      sleep=sleep, description="Listing instance templates")
        return name in names

    if _exists(config.new_template):
        raise ValidationError(
            f"Instance template '{config.new_template}' already exists",
            remediation=(f"gcloud compute instance-templates delete {config.new_template} "
                         f"--project {config.project_id}"),
        )
    if config.source_template and not _exists(config.source_template):
        raise ValidationError(
            f"Source instance template '{config.source_template}' does not exist",
            remediation=f"gcloud compute instance-templates list --project {config.project_id}",
        )


def _validate(
    config: ProvisionConfig,
    provider: GcloudProvider,
    cluster: KubeCluster | None,
    sleep: Sleep,
) -> tuple[LabelSet, ProjectContext, KubeCluster]:
    console.print(Panel.fit("Validating prerequisites", style="bold blue"))
    labels = _check_prerequisites(config)
    project_number = _check_project(config, provider, sleep)
    context = _check_cluster(config, provider, sleep)
    if cluster is None:
        cluster = KubeCluster(context)
    _check_mesh(config, cluster, context, _credential_refresher(config, provider), sleep)
    _check_templates(config, provider, sleep)
    console.print("[green]✅ All prerequisites are met[/green]")
    project = ProjectContext(
        project_id=config.project_id,
        project_number=project_number,
        workload_name=config.workload_name,
        workload_namespace=config.workload_namespace,
    )
    return labels, project, cluster


def _credential_refresher(config: ProvisionConfig, provider: GcloudProvider) -> Callable[[], str]:
    return lambda: provider.configure_credentials(config.cluster_name, config.cluster_location)


def _read_root_cert(cluster: KubeCluster) -> str:
    output = cluster.exec_in_pod(NS_ISTIO_SYSTEM, ISTIOD_SELECTOR, ["cat", ROOT_CERT_PATH],
                                 container=ISTIOD_CONTAINER)
    cert = output.strip()
    if PEM_BEGIN not in cert:
        raise RuntimeError(f"{ROOT_CERT_PATH} does not contain a PEM certificate")
    return cert + "\n"


def _retrieve_facts(
    config: ProvisionConfig,
    provider: GcloudProvider,
    cluster: KubeCluster,
    sleep: Sleep,
) -> ClusterFacts:
    console.print(Panel.fit("Retrieving cluster facts", style="bold blue"))
    ingress_ip = poll_for_ipv4(
        config.ip_poll_timeout,
        lambda: cluster.get_load_balancer_ip(NS_ISTIO_SYSTEM, SVC_EASTWEST_GATEWAY),
        sleep=sleep, description=f"Waiting for {SVC_EASTWEST_GATEWAY} address",
    )
    console.print(f"[green]  ✓ East-west gateway: {ingress_ip}[/green]")
    dns_ip = poll_for_ipv4(
        config.ip_poll_timeout,
        lambda: cluster.get_load_balancer_ip(NS_KUBE_SYSTEM, SVC_DNS_LB),
        sleep=sleep, description=f"Waiting for {SVC_DNS_LB} address",
    )
    console.print(f"[green]  ✓ Cluster DNS: {dns_ip}[/green]")
    root_cert = retry(config.retry_attempts, lambda: _read_root_cert(cluster),
                      refresh=_credential_refresher(config, provider), sleep=sleep,
                      description="Reading mesh root certificate")
    console.print("[green]  ✓ Mesh root certificate retrieved[/green]")
    return ClusterFacts(dns_ip=dns_ip, ingress_ip=ingress_ip, root_cert=root_cert)


def _submit(config: ProvisionConfig, provider: GcloudProvider, document: dict, sleep: Sleep) -> str:
    """Submit the template once; only the token fetch is retried.

    Returns:
        Name of the asynchronous creation operation.
    """
    console.print(Panel.fit(f"Creating instance template {config.new_template}", style="bold blue"))
    token = retry(config.retry_attempts, provider.get_access_token, sleep=sleep,
                  description="Fetching access token")
    try:
        response = provider.create_instance_template(document, token)
    except requests.RequestException as err:
        raise SubmissionError(f"Instance template creation request failed: {err}") from err

    operation_name = response.get("name")
    if not operation_name:
        error = response.get("error") or {}
        raise SubmissionError(error.get("message") or f"Unexpected response: {response}")
    logger.info("Submitted instance template %s (operation %s)", config.new_template, operation_name)
    return operation_name


def _confirm(config: ProvisionConfig, provider: GcloudProvider, operation_name: str, sleep: Sleep) -> None:
    console.print(f"[yellow]ℹ️  Waiting for operation {operation_name}...[/yellow]")
    remediation = operation_describe_command(config.project_id, operation_name)
    latest: dict = {}

    def _status() -> str:
        latest.clear()
        latest.update(provider.get_operation(operation_name))
        return operation_status(latest)

    try:
        poll_until_match(config.operation_timeout, OPERATION_DONE, _status,
                         sleep=sleep, description=f"Operation {operation_name}")
    except PollTimeout as err:
        raise OperationFailed(
            f"Operation {operation_name} did not reach {OPERATION_DONE} within {config.operation_timeout}s",
            remediation=remediation,
        ) from err
    error = operation_error(latest)
    if error:
        raise OperationFailed(f"Operation {operation_name} failed: {error}", remediation=remediation)
    console.print(f"[green]✅ Instance template {config.new_template} created[/green]")


def _failure(step: Step, err: ProvisioningError, **kwargs) -> Outcome:
    state = (TerminalState.VALIDATION_FAILED if isinstance(err, ValidationError)
             else TerminalState.PROVISIONING_FAILED)
    logger.debug("Step %s failed", step.value, exc_info=err)
    return Outcome(state=state, step=step, message=str(err), remediation=err.remediation, **kwargs)


# ============================================================================
# Public API
# ============================================================================

def validate(
    config: ProvisionConfig,
    *,
    provider: GcloudProvider | None = None,
    cluster: KubeCluster | None = None,
    sleep: Sleep = time.sleep,
) -> Outcome:
    """Run only the validation step.

    Args:
        config: Provisioning configuration.
        provider: Provider client, or None to use gcloud for the configured project.
        cluster: Cluster client, or None to bind one to the fetched credentials.
        sleep: Sleep function used by retries.

    Returns:
        SUCCESS or VALIDATION_FAILED/PROVISIONING_FAILED outcome.
    """
    provider = provider or GcloudProvider(config.project_id)
    try:
        _validate(config, provider, cluster, sleep)
    except ProvisioningError as err:
        return _failure(Step.VALIDATE, err)
    return Outcome(state=TerminalState.SUCCESS)


def provision(
    config: ProvisionConfig,
    *,
    provider: GcloudProvider | None = None,
    cluster: KubeCluster | None = None,
    sleep: Sleep = time.sleep,
) -> Outcome:
    """Create the instance template described by *config*.

    Steps run in order and the first failure ends the run; nothing is rolled
    back. With ``config.dry_run`` the run stops after assembly.

    Args:
        config: Provisioning configuration.
        provider: Provider client, or None to use gcloud for the configured project.
        cluster: Cluster client, or None to bind one to the fetched credentials.
        sleep: Sleep function used by retries and polls.

    Returns:
        Terminal outcome of the run.
    """
    provider = provider or GcloudProvider(config.project_id)
    step = Step.VALIDATE
    document: dict | None = None
    operation_name: str | None = None
    try:
        labels, project, cluster = _validate(config, provider, cluster, sleep)

        step = Step.DERIVE_IDENTITY
        identity = derive_canonical_identity(labels, config.workload_name)
        logger.info("Canonical service %s, revision %s", identity.service, identity.revision)

        step = Step.RETRIEVE_FACTS
        facts = _retrieve_facts(config, provider, cluster, sleep)

        step = Step.ASSEMBLE
        document = assemble_template(
            config.new_template, config.source_template, facts, identity, labels, project, provider,
            attempts=config.retry_attempts, sleep=sleep,
        )
        if config.dry_run:
            console.print("[yellow]ℹ️  Dry run: template not submitted[/yellow]")
            return Outcome(state=TerminalState.SUCCESS, document=document)

        step = Step.SUBMIT
        operation_name = _submit(config, provider, document, sleep)

        step = Step.CONFIRM
        _confirm(config, provider, operation_name, sleep)
    except ProvisioningError as err:
        return _failure(step, err, document=document, operation_name=operation_name)
    return Outcome(state=TerminalState.SUCCESS, document=document, operation_name=operation_name)
