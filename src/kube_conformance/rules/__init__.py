"""Rule contracts, the built-in catalog and rule configuration."""

from .base import (
    WORKLOAD_KINDS,
    CrossDocumentRule,
    Rule,
    RuleScope,
    SingleDocumentRule,
    is_set,
    iter_containers,
    pod_spec_path,
    pod_template_labels,
)
from .catalog import default_registry
from .config import RuleConfig, RuleConfigError, RuleConfigLoader
from .registry import DuplicateRuleId, RuleRegistry, RuleSet, UnknownRuleId
from .selectors import labels_match, selector_matches

__all__ = [
    "CrossDocumentRule",
    "DuplicateRuleId",
    "Rule",
    "RuleConfig",
    "RuleConfigError",
    "RuleConfigLoader",
    "RuleRegistry",
    "RuleScope",
    "RuleSet",
    "SingleDocumentRule",
    "UnknownRuleId",
    "WORKLOAD_KINDS",
    "default_registry",
    "is_set",
    "iter_containers",
    "labels_match",
    "pod_spec_path",
    "pod_template_labels",
    "selector_matches",
]
