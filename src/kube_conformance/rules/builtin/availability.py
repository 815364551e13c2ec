"""Availability rules: probes, disruption budgets and replica counts."""

from __future__ import annotations

from typing import List, Set, Tuple

from ...models import (
    Category,
    Document,
    DocumentPath,
    DocumentSet,
    Finding,
    Severity,
    effective_namespace,
)
from ..base import (
    CrossDocumentRule,
    SingleDocumentRule,
    container_name,
    describe,
    is_set,
    iter_containers,
    pod_template_labels,
    pod_template_labels_path,
)
from ..selectors import selector_matches

REPLICATED_KINDS = frozenset({"Deployment", "StatefulSet"})
METADATA_LABELS = DocumentPath(("metadata", "labels"))


class ProbesConfigured(SingleDocumentRule):
    id = "AVL001"
    category = Category.AVAILABILITY
    title = "Containers define health probes"
    default_severity = Severity.WARNING
    kinds = REPLICATED_KINDS

    def evaluate(self, document: Document) -> List[Finding]:
        findings: List[Finding] = []
        for path, container in iter_containers(document):
            if is_set(container.get("livenessProbe")) or is_set(
                container.get("readinessProbe")
            ):
                continue
            findings.append(
                self.finding(
                    document.ref,
                    path,
                    f"Container '{container_name(container)}' defines neither a "
                    "livenessProbe nor a readinessProbe.",
                )
            )
        return findings


class PDBDefined(CrossDocumentRule):
    """Replicated workloads need a PodDisruptionBudget selecting their pods.

    The budget must live in the workload's namespace and its selector must
    match the pod template labels, or the workload's own labels when the
    template carries none.
    """

    id = "AVL002"
    category = Category.AVAILABILITY
    title = "A PodDisruptionBudget covers the workload"
    default_severity = Severity.ERROR
    kinds = REPLICATED_KINDS

    def evaluate_all(self, documents: DocumentSet) -> List[Finding]:
        findings: List[Finding] = []
        for workload in documents.of_kind(*REPLICATED_KINDS):
            labels = pod_template_labels(workload)
            labels_path = pod_template_labels_path(workload)
            if not labels and workload.labels:
                labels = workload.labels
                labels_path = METADATA_LABELS
            budgets = documents.in_namespace(
                effective_namespace(workload), kind="PodDisruptionBudget"
            )
            if any(selector_matches(pdb.get("spec.selector"), labels) for pdb in budgets):
                continue

            selector_text = ",".join(f"{key}={value}" for key, value in labels.items())
            findings.append(
                self.finding(
                    workload.ref,
                    labels_path or DocumentPath(),
                    f"{describe(workload)} has no PodDisruptionBudget selecting its pods"
                    f" ({selector_text or 'no labels'}).",
                )
            )
        return findings


class MultipleReplicas(CrossDocumentRule):
    """Replicated workloads run at least two replicas unless an HPA scales them."""

    id = "AVL003"
    category = Category.AVAILABILITY
    title = "Workloads run more than one replica"
    default_severity = Severity.WARNING
    kinds = REPLICATED_KINDS

    minimum_replicas = 2

    def evaluate_all(self, documents: DocumentSet) -> List[Finding]:
        autoscaled = _autoscaled_targets(documents)
        findings: List[Finding] = []
        for workload in documents.of_kind(*REPLICATED_KINDS):
            key = (workload.kind or "", effective_namespace(workload), workload.name or "")
            if key in autoscaled:
                continue

            replicas = workload.get_scalar("spec.replicas", default=1)
            if isinstance(replicas, bool) or not isinstance(replicas, int):
                continue
            if replicas >= self.minimum_replicas:
                continue

            findings.append(
                self.finding(
                    workload.ref,
                    DocumentPath(("spec", "replicas")),
                    f"{describe(workload)} runs {replicas} replica(s); at least "
                    f"{self.minimum_replicas} are needed to survive a node drain.",
                )
            )
        return findings


class HPATargetExists(CrossDocumentRule):
    id = "AVL004"
    category = Category.AVAILABILITY
    title = "Autoscalers target a workload in the input"
    default_severity = Severity.WARNING
    kinds = frozenset({"HorizontalPodAutoscaler"})

    def evaluate_all(self, documents: DocumentSet) -> List[Finding]:
        findings: List[Finding] = []
        for hpa in documents.of_kind("HorizontalPodAutoscaler"):
            kind = hpa.get_scalar("spec.scaleTargetRef.kind")
            name = hpa.get_scalar("spec.scaleTargetRef.name")
            if kind and name and documents.lookup(str(kind), effective_namespace(hpa), str(name)):
                continue

            findings.append(
                self.finding(
                    hpa.ref,
                    DocumentPath(("spec", "scaleTargetRef")),
                    f"{describe(hpa)} targets {kind or '?'}/{name or '?'}, which is not "
                    f"defined in namespace '{effective_namespace(hpa)}'.",
                )
            )
        return findings


def _autoscaled_targets(documents: DocumentSet) -> Set[Tuple[str, str, str]]:
    targets: Set[Tuple[str, str, str]] = set()
    for hpa in documents.of_kind("HorizontalPodAutoscaler"):
        kind = hpa.get_scalar("spec.scaleTargetRef.kind")
        name = hpa.get_scalar("spec.scaleTargetRef.name")
        if kind and name:
            targets.add((str(kind), effective_namespace(hpa), str(name)))
    return targets


RULES = (ProbesConfigured, PDBDefined, MultipleReplicas, HPATargetExists)
