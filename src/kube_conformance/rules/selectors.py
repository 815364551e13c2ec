"""Kubernetes label-selector matching."""

from __future__ import annotations

from typing import Mapping, Optional

from ..models import MappingNode, Node, ScalarNode, SequenceNode, string_map


def selector_matches(selector: Optional[Node], labels: Mapping[str, str]) -> bool:
    """Return ``True`` when a ``LabelSelector`` node selects ``labels``.

    An empty selector (``{}``) selects everything; a missing selector selects
    nothing, matching ``policy/v1`` PodDisruptionBudget semantics.
    """

    if not isinstance(selector, MappingNode):
        return False

    match_labels = string_map(selector.get("matchLabels"))
    if not labels_match(match_labels, labels):
        return False

    expressions = selector.get("matchExpressions")
    if expressions is None:
        return True
    if not isinstance(expressions, SequenceNode):
        return False
    return all(_expression_matches(expression, labels) for expression in expressions)


def labels_match(required: Mapping[str, str], labels: Mapping[str, str]) -> bool:
    """Equality-based selector as used by ``Service.spec.selector``."""

    return all(labels.get(key) == value for key, value in required.items())


def _expression_matches(expression: Node, labels: Mapping[str, str]) -> bool:
    if not isinstance(expression, MappingNode):
        return False

    key_node = expression.get("key")
    operator_node = expression.get("operator")
    if not isinstance(key_node, ScalarNode) or not isinstance(operator_node, ScalarNode):
        return False

    key = str(key_node.value)
    operator = str(operator_node.value)
    values_node = expression.get("values")
    values = set()
    if isinstance(values_node, SequenceNode):
        values = {
            str(item.value).lower() if isinstance(item.value, bool) else str(item.value)
            for item in values_node
            if isinstance(item, ScalarNode)
        }

    if operator == "In":
        return key in labels and labels[key] in values
    if operator == "NotIn":
        return key not in labels or labels[key] not in values
    if operator == "Exists":
        return key in labels
    if operator == "DoesNotExist":
        return key not in labels
    return False
