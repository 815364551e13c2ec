"""Networking rules: isolation policies, service wiring and host ports."""

from __future__ import annotations

from typing import List

from ...models import (
    GLOBAL_REF,
    ROOT,
    Category,
    Document,
    DocumentPath,
    DocumentSet,
    Finding,
    MappingNode,
    SequenceNode,
    Severity,
    effective_namespace,
    string_map,
)
from ..base import (
    WORKLOAD_KINDS,
    CrossDocumentRule,
    SingleDocumentRule,
    container_name,
    describe,
    iter_containers,
    pod_template_labels,
)
from ..selectors import labels_match


class NetworkPolicyDefined(CrossDocumentRule):
    """Each namespace running workloads has at least one NetworkPolicy.

    A namespace is not a document of its own, so findings go to the global
    result.
    """

    id = "NET001"
    category = Category.NETWORKING
    title = "Namespaces with workloads define a NetworkPolicy"
    default_severity = Severity.INFO
    kinds = WORKLOAD_KINDS | {"NetworkPolicy"}

    def evaluate_all(self, documents: DocumentSet) -> List[Finding]:
        workload_namespaces = {
            effective_namespace(document) for document in documents.of_kind(*WORKLOAD_KINDS)
        }
        policy_namespaces = {
            effective_namespace(document) for document in documents.of_kind("NetworkPolicy")
        }

        return [
            self.finding(
                GLOBAL_REF,
                ROOT,
                f"Namespace '{namespace}' runs workloads but has no NetworkPolicy.",
            )
            for namespace in sorted(workload_namespaces - policy_namespaces)
        ]


class ServiceSelectorMatches(CrossDocumentRule):
    id = "NET002"
    category = Category.NETWORKING
    title = "Service selectors match a workload"
    default_severity = Severity.WARNING
    kinds = frozenset({"Service"})

    def evaluate_all(self, documents: DocumentSet) -> List[Finding]:
        findings: List[Finding] = []
        for service in documents.of_kind("Service"):
            if service.get_scalar("spec.type") == "ExternalName":
                continue
            selector = string_map(service.get("spec.selector"))
            if not selector:
                continue

            candidates = [
                document
                for document in documents.in_namespace(effective_namespace(service))
                if document.kind in WORKLOAD_KINDS
            ]
            if any(labels_match(selector, pod_template_labels(doc)) for doc in candidates):
                continue

            selector_text = ",".join(f"{key}={value}" for key, value in selector.items())
            findings.append(
                self.finding(
                    service.ref,
                    DocumentPath(("spec", "selector")),
                    f"{describe(service)} selects {selector_text} but no workload in "
                    f"namespace '{effective_namespace(service)}' has matching pod labels.",
                )
            )
        return findings


class NoHostPort(SingleDocumentRule):
    id = "NET003"
    category = Category.NETWORKING
    title = "Containers do not bind host ports"
    default_severity = Severity.WARNING
    kinds = WORKLOAD_KINDS

    def evaluate(self, document: Document) -> List[Finding]:
        findings: List[Finding] = []
        for path, container in iter_containers(document, include_init=True):
            ports = container.get("ports")
            if not isinstance(ports, SequenceNode):
                continue
            for idx, port in enumerate(ports):
                if isinstance(port, MappingNode) and port.get("hostPort") is not None:
                    findings.append(
                        self.finding(
                            document.ref,
                            path.join("ports", idx, "hostPort"),
                            f"Container '{container_name(container)}' binds a hostPort, "
                            f"pinning {describe(document)} to specific nodes.",
                        )
                    )
        return findings


RULES = (NetworkPolicyDefined, ServiceSelectorMatches, NoHostPort)
