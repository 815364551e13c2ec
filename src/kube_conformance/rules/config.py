"""Utilities for loading and merging rule configuration files."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence

import yaml

from ..models import Category, Severity

logger = logging.getLogger(__name__)

_DEFAULT_MANIFEST = Path(__file__).resolve().parent / "manifests" / "default.yaml"


class RuleConfigError(RuntimeError):
    """Raised when rule configuration files cannot be loaded or parsed."""


@dataclass(frozen=True)
class RuleConfig:
    """Which rules run, at what severity, and when the run fails.

    ``enabled_rule_ids`` takes precedence over ``enabled_categories``; when
    neither is set every catalog rule is enabled.
    """

    name: str = "default"
    enabled_categories: Optional[FrozenSet[Category]] = None
    enabled_rule_ids: Optional[FrozenSet[str]] = None
    disabled_rule_ids: FrozenSet[str] = frozenset()
    severity_overrides: Mapping[str, Severity] = field(default_factory=dict)
    fail_on: Severity = Severity.ERROR
    max_workers: Optional[int] = None

    def merged(
        self,
        *,
        enabled_categories: Optional[Iterable[Category | str]] = None,
        enabled_rule_ids: Optional[Iterable[str]] = None,
        disabled_rule_ids: Optional[Iterable[str]] = None,
        severity_overrides: Optional[Mapping[str, Severity | str]] = None,
        fail_on: Optional[Severity | str] = None,
        max_workers: Optional[int] = None,
    ) -> "RuleConfig":
        """Return a copy with the provided (non-empty) settings applied on top."""

        changes: Dict[str, Any] = {}
        try:
            if enabled_categories:
                changes["enabled_categories"] = _categories(enabled_categories)
            if enabled_rule_ids:
                changes["enabled_rule_ids"] = _rule_ids(enabled_rule_ids)
            if disabled_rule_ids:
                changes["disabled_rule_ids"] = self.disabled_rule_ids | _rule_ids(disabled_rule_ids)
            if severity_overrides:
                overrides = dict(self.severity_overrides)
                overrides.update(_severity_map(severity_overrides))
                changes["severity_overrides"] = overrides
            if fail_on is not None:
                changes["fail_on"] = _severity(fail_on, "failOn")
            if max_workers is not None:
                changes["max_workers"] = _max_workers(max_workers)
        except ValueError as exc:
            raise RuleConfigError(str(exc)) from exc
        return replace(self, **changes)


class RuleConfigLoader:
    """Load configuration manifests and merge them into one :class:`RuleConfig`."""

    def __init__(self, default_manifests: Sequence[Path | str] | None = None) -> None:
        manifest_paths: List[Path]
        if default_manifests is None:
            manifest_paths = []
            if _DEFAULT_MANIFEST.exists():
                manifest_paths.append(_DEFAULT_MANIFEST)
        else:
            manifest_paths = [Path(path) for path in default_manifests]

        self._default_manifests = manifest_paths

    # ------------------------------------------------------------------
    def load(self, manifests: Sequence[Path | str] | None = None) -> RuleConfig:
        """Return the configuration produced by merging defaults and ``manifests``."""

        manifest_paths = list(self._default_manifests)
        if manifests:
            manifest_paths.extend(Path(path) for path in manifests)

        config = RuleConfig()
        for manifest_path in manifest_paths:
            data = self._load_manifest(manifest_path)
            try:
                config = self._apply(config, data)
            except ValueError as exc:
                raise RuleConfigError(f"Invalid rule configuration {manifest_path}: {exc}") from exc
            logger.debug("Applied rule configuration %s", manifest_path)

        return config

    # ------------------------------------------------------------------
    def _apply(self, config: RuleConfig, data: Mapping[str, Any]) -> RuleConfig:
        changes: Dict[str, Any] = {}

        if data.get("name"):
            changes["name"] = str(data["name"])

        if "enabledCategories" in data:
            categories = data["enabledCategories"]
            changes["enabled_categories"] = (
                None if categories is None else _categories(_as_list(categories, "enabledCategories"))
            )

        if "enabledRuleIds" in data:
            rule_ids = data["enabledRuleIds"]
            changes["enabled_rule_ids"] = (
                None if rule_ids is None else _rule_ids(_as_list(rule_ids, "enabledRuleIds"))
            )

        if data.get("disabledRuleIds") is not None:
            changes["disabled_rule_ids"] = _rule_ids(
                _as_list(data["disabledRuleIds"], "disabledRuleIds")
            )

        overrides = data.get("severityOverrides")
        if overrides is not None:
            if not isinstance(overrides, Mapping):
                raise ValueError("severityOverrides must be a mapping of rule id to severity")
            merged_overrides = dict(config.severity_overrides)
            merged_overrides.update(_severity_map(overrides))
            changes["severity_overrides"] = merged_overrides

        if data.get("failOn") is not None:
            changes["fail_on"] = _severity(data["failOn"], "failOn")

        if data.get("maxWorkers") is not None:
            changes["max_workers"] = _max_workers(data["maxWorkers"])

        return replace(config, **changes)

    def _load_manifest(self, path: Path) -> Dict[str, Any]:
        if not path.exists():
            raise RuleConfigError(f"Rule configuration not found: {path}")

        try:
            content = path.read_text(encoding="utf-8")
        except OSError as exc:  # pragma: no cover - filesystem errors surfaced to caller
            raise RuleConfigError(f"Failed to read rule configuration {path}") from exc

        try:
            data = yaml.safe_load(content) or {}
        except yaml.YAMLError as exc:
            raise RuleConfigError(f"Invalid YAML in rule configuration {path}") from exc

        if not isinstance(data, Mapping):
            raise RuleConfigError(f"Rule configuration must be a mapping: {path}")

        return dict(data)


def _as_list(value: Any, key: str) -> List[Any]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    raise ValueError(f"{key} must be a list")


def _categories(values: Iterable[Category | str]) -> FrozenSet[Category]:
    return frozenset(Category.parse(value) for value in values)


def _rule_ids(values: Iterable[str]) -> FrozenSet[str]:
    return frozenset(str(value).strip() for value in values if str(value).strip())


def _severity(value: Severity | str, key: str) -> Severity:
    try:
        return Severity.parse(value)
    except ValueError as exc:
        raise ValueError(f"{key}: {exc}") from None


def _severity_map(values: Mapping[str, Severity | str]) -> Dict[str, Severity]:
    overrides: Dict[str, Severity] = {}
    for rule_id, level in values.items():
        overrides[str(rule_id).strip()] = _severity(level, f"severityOverrides.{rule_id}")
    return overrides


def _max_workers(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"maxWorkers must be a positive integer, got {value!r}")
    return value
