"""Metadata hygiene rules that keep objects discoverable."""

from __future__ import annotations

from typing import List

from ...models import Category, Document, DocumentPath, Finding, Severity
from ..base import WORKLOAD_KINDS, SingleDocumentRule, describe

NAME_LABEL = "app.kubernetes.io/name"

CLUSTER_SCOPED_KINDS = frozenset(
    {
        "Namespace",
        "Node",
        "ClusterRole",
        "ClusterRoleBinding",
        "StorageClass",
        "PersistentVolume",
        "CustomResourceDefinition",
        "PriorityClass",
        "IngressClass",
        "MutatingWebhookConfiguration",
        "ValidatingWebhookConfiguration",
    }
)


class RecommendedLabels(SingleDocumentRule):
    id = "OBS001"
    category = Category.OBSERVABILITY
    title = "Objects carry the recommended name label"
    default_severity = Severity.INFO
    kinds = WORKLOAD_KINDS | {"Service"}

    def evaluate(self, document: Document) -> List[Finding]:
        if NAME_LABEL in document.labels:
            return []
        return [
            self.finding(
                document.ref,
                DocumentPath(("metadata", "labels", NAME_LABEL)),
                f"{describe(document)} is missing the '{NAME_LABEL}' label.",
            )
        ]


class ExplicitNamespace(SingleDocumentRule):
    id = "OBS002"
    category = Category.OBSERVABILITY
    title = "Namespaced objects declare their namespace"
    default_severity = Severity.INFO

    def applies_to(self, document: Document) -> bool:
        return bool(document.kind) and document.kind not in CLUSTER_SCOPED_KINDS

    def evaluate(self, document: Document) -> List[Finding]:
        if document.namespace:
            return []
        return [
            self.finding(
                document.ref,
                DocumentPath(("metadata", "namespace")),
                f"{describe(document)} does not set metadata.namespace and will land in "
                "whatever namespace is current when applied.",
            )
        ]


RULES = (RecommendedLabels, ExplicitNamespace)
