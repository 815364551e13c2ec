"""Rule contracts and helpers for navigating workload manifests."""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from enum import Enum
from typing import ClassVar, Dict, FrozenSet, Iterator, List, Optional, Tuple

from ..models import (
    Category,
    Document,
    DocumentPath,
    DocumentRef,
    DocumentSet,
    Finding,
    MappingNode,
    Node,
    ScalarNode,
    SequenceNode,
    Severity,
    string_map,
)

WORKLOAD_KINDS: FrozenSet[str] = frozenset(
    {
        "Pod",
        "Deployment",
        "StatefulSet",
        "DaemonSet",
        "ReplicaSet",
        "ReplicationController",
        "Job",
        "CronJob",
    }
)

_POD_SPEC_PARTS: Dict[str, Tuple[str, ...]] = {
    "Pod": ("spec",),
    "CronJob": ("spec", "jobTemplate", "spec", "template", "spec"),
}
_TEMPLATE_SPEC_PARTS = ("spec", "template", "spec")


class RuleScope(str, Enum):
    """Whether a rule needs one document or the whole input set."""

    SINGLE_DOCUMENT = "single-document"
    CROSS_DOCUMENT = "cross-document"


class Rule(ABC):
    """Abstract base class describing the rule contract.

    Subclasses declare ``id``, ``category``, ``title`` and
    ``default_severity`` as class attributes. Rules hold no state besides
    their configured severity and must return the same findings for the same
    input.
    """

    id: ClassVar[str]
    category: ClassVar[Category]
    title: ClassVar[str]
    default_severity: ClassVar[Severity]
    kinds: ClassVar[Optional[FrozenSet[str]]] = None
    scope: ClassVar[RuleScope]

    def __init__(self, severity: Severity | None = None) -> None:
        self.severity = severity or self.default_severity

    def configured(self, *, severity: Severity) -> "Rule":
        """Return a copy of this rule reporting at ``severity``."""

        clone = copy.copy(self)
        clone.severity = severity
        return clone

    def applies_to(self, document: Document) -> bool:
        return self.kinds is None or document.kind in self.kinds

    def finding(self, document_ref: DocumentRef, path: DocumentPath, message: str) -> Finding:
        return Finding(
            rule_id=self.id,
            severity=self.severity,
            path=path,
            message=message,
            document_ref=document_ref,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, severity={self.severity.value!r})"


class SingleDocumentRule(Rule):
    """Rule evaluated independently against each applicable document."""

    scope = RuleScope.SINGLE_DOCUMENT

    @abstractmethod
    def evaluate(self, document: Document) -> List[Finding]:
        """Evaluate one document and return its findings."""


class CrossDocumentRule(Rule):
    """Rule that needs every document of the run to reach a verdict."""

    scope = RuleScope.CROSS_DOCUMENT

    @abstractmethod
    def evaluate_all(self, documents: DocumentSet) -> List[Finding]:
        """Evaluate the full document set and return findings for any document."""


# Workload navigation ---------------------------------------------------------
def pod_spec_path(document: Document) -> Optional[DocumentPath]:
    """Return the path of the pod spec for workload kinds, else ``None``."""

    if document.kind not in WORKLOAD_KINDS:
        return None
    return DocumentPath(_POD_SPEC_PARTS.get(document.kind or "", _TEMPLATE_SPEC_PARTS))


def pod_template_labels_path(document: Document) -> Optional[DocumentPath]:
    spec_path = pod_spec_path(document)
    if spec_path is None:
        return None
    if document.kind == "Pod":
        return DocumentPath(("metadata", "labels"))
    # ``spec.template.spec`` -> ``spec.template.metadata.labels``
    return DocumentPath(spec_path.parts[:-1] + ("metadata", "labels"))


def pod_template_labels(document: Document) -> Dict[str, str]:
    path = pod_template_labels_path(document)
    if path is None:
        return {}
    return string_map(document.get(path))


def iter_containers(
    document: Document, *, include_init: bool = False
) -> Iterator[Tuple[DocumentPath, MappingNode]]:
    """Yield ``(path, container)`` for each container of a workload document."""

    spec_path = pod_spec_path(document)
    if spec_path is None:
        return

    groups = ["containers"]
    if include_init:
        groups.append("initContainers")

    for group in groups:
        group_path = spec_path / group
        containers = document.get(group_path)
        if not isinstance(containers, SequenceNode):
            continue
        for idx, container in enumerate(containers):
            if isinstance(container, MappingNode):
                yield group_path / idx, container


def container_name(container: MappingNode) -> str:
    name = scalar_value(container.get("name"))
    return str(name) if name is not None else "<unnamed>"


def scalar_value(node: Optional[Node]) -> object:
    """Return a scalar node's value, or ``None`` for anything else."""

    if isinstance(node, ScalarNode):
        return node.value
    return None


def is_set(node: Optional[Node]) -> bool:
    """False for missing fields and for explicit YAML nulls (``key:`` or ``key: ~``)."""

    return node is not None and not (isinstance(node, ScalarNode) and node.value is None)


def describe(document: Document) -> str:
    return f"{document.kind or 'object'} '{document.name or '<unnamed>'}'"
