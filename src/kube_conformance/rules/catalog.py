"""Default rule catalog."""

from __future__ import annotations

from .builtin import BUILTIN_RULES
from .registry import RuleRegistry


def default_registry() -> RuleRegistry:
    """Return a registry holding one instance of every built-in rule."""

    registry = RuleRegistry()
    for rule_class in BUILTIN_RULES:
        registry.register(rule_class())
    return registry
