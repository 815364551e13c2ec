"""Data models for parsed manifests and conformance findings."""

from .document import (
    GLOBAL_REF,
    ROOT,
    Document,
    DocumentPath,
    DocumentRef,
    MappingNode,
    Node,
    ScalarNode,
    SequenceNode,
    build_node,
    string_map,
)
from .finding import (
    INTERNAL_RULE_ID,
    SEVERITY_RANK,
    Category,
    EvaluationResult,
    Finding,
    Severity,
)
from .index import DocumentIndex, DocumentSet, effective_namespace

__all__ = [
    "Category",
    "Document",
    "DocumentIndex",
    "DocumentPath",
    "DocumentRef",
    "DocumentSet",
    "EvaluationResult",
    "Finding",
    "GLOBAL_REF",
    "INTERNAL_RULE_ID",
    "MappingNode",
    "Node",
    "ROOT",
    "SEVERITY_RANK",
    "ScalarNode",
    "SequenceNode",
    "Severity",
    "build_node",
    "effective_namespace",
    "string_map",
]
