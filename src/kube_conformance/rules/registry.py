"""Rule catalog registration and per-run rule set construction."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .base import CrossDocumentRule, Rule, SingleDocumentRule
from .config import RuleConfig

logger = logging.getLogger(__name__)


class DuplicateRuleId(ValueError):
    """Raised when two rules share the same id."""

    def __init__(self, rule_id: str) -> None:
        super().__init__(f"Duplicate rule id: {rule_id}")
        self.rule_id = rule_id


class UnknownRuleId(KeyError):
    """Raised when configuration references a rule id missing from the catalog."""

    def __init__(self, rule_ids: Iterable[str]) -> None:
        self.rule_ids = tuple(sorted(rule_ids))
        super().__init__(self.rule_ids)

    def __str__(self) -> str:
        return f"Unknown rule id(s): {', '.join(self.rule_ids)}"


class RuleSet:
    """Named, ordered and read-only collection of configured rules."""

    def __init__(self, name: str, rules: Sequence[Rule]) -> None:
        seen: Dict[str, Rule] = {}
        for rule in rules:
            if rule.id in seen:
                raise DuplicateRuleId(rule.id)
            seen[rule.id] = rule

        self._name = name
        self._rules: Tuple[Rule, ...] = tuple(rules)
        self._by_id = seen

    @property
    def name(self) -> str:
        return self._name

    @property
    def rules(self) -> Tuple[Rule, ...]:
        return self._rules

    @property
    def single_document_rules(self) -> List[SingleDocumentRule]:
        return [rule for rule in self._rules if isinstance(rule, SingleDocumentRule)]

    @property
    def cross_document_rules(self) -> List[CrossDocumentRule]:
        return [rule for rule in self._rules if isinstance(rule, CrossDocumentRule)]

    def get(self, rule_id: str) -> Optional[Rule]:
        return self._by_id.get(rule_id)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._by_id

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __repr__(self) -> str:
        return f"RuleSet(name={self._name!r}, rules={[rule.id for rule in self._rules]!r})"


class RuleRegistry:
    """Catalog of every known rule, keyed by stable id in registration order."""

    def __init__(self, rules: Iterable[Rule] | None = None) -> None:
        self._catalog: Dict[str, Rule] = {}
        for rule in rules or ():
            self.register(rule)

    def register(self, rule: Rule) -> Rule:
        if rule.id in self._catalog:
            raise DuplicateRuleId(rule.id)
        self._catalog[rule.id] = rule
        return rule

    @property
    def rules(self) -> List[Rule]:
        return list(self._catalog.values())

    def get(self, rule_id: str) -> Optional[Rule]:
        return self._catalog.get(rule_id)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._catalog

    def __len__(self) -> int:
        return len(self._catalog)

    # ------------------------------------------------------------------
    def instantiate(self, config: RuleConfig | None = None) -> RuleSet:
        """Build the rule set enabled by ``config`` with severity overrides applied."""

        config = config or RuleConfig()

        referenced = set(config.disabled_rule_ids) | set(config.severity_overrides)
        if config.enabled_rule_ids:
            referenced |= set(config.enabled_rule_ids)
        unknown = {rule_id for rule_id in referenced if rule_id not in self._catalog}
        if unknown:
            raise UnknownRuleId(unknown)

        selected: List[Rule] = []
        for rule in self._catalog.values():
            if not self._is_enabled(rule, config):
                continue
            override = config.severity_overrides.get(rule.id)
            selected.append(rule.configured(severity=override) if override else rule)

        logger.debug(
            "Instantiated rule set %s with %d of %d rules",
            config.name,
            len(selected),
            len(self._catalog),
        )
        return RuleSet(config.name, selected)

    def _is_enabled(self, rule: Rule, config: RuleConfig) -> bool:
        if rule.id in config.disabled_rule_ids:
            return False
        if config.enabled_rule_ids:
            return rule.id in config.enabled_rule_ids
        if config.enabled_categories:
            return rule.category in config.enabled_categories
        return True
