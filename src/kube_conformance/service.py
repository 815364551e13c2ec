"""Orchestration layer used by the CLI to execute conformance checks."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, List, Mapping, Optional, Sequence, TextIO

from .adapters import EvaluationRun, Evaluator, ManifestLoader, ManifestLoaderError
from .models import Document
from .normalization import DocumentParser, ParseError
from .rules import RuleConfig, RuleRegistry, RuleSet, default_registry

logger = logging.getLogger(__name__)


class NoDocumentsError(ParseError):
    """Raised when inputs were given but none of them produced a document."""

    def __init__(self, errors: Sequence[ParseError]) -> None:
        first = errors[0] if errors else None
        super().__init__(
            f"no manifest document could be parsed ({len(errors)} parse error(s))",
            source=first.source if first else "<input>",
            index=first.index if first else None,
            line=first.line if first else None,
            column=first.column if first else None,
        )
        self.errors = list(errors)


@dataclass(slots=True)
class CheckResult:
    """Result returned by :class:`ConformanceService` runs."""

    run: EvaluationRun
    rule_set: RuleSet
    parse_errors: List[ParseError] = field(default_factory=list)
    metadata: Mapping[str, Any] = field(default_factory=dict)


ManifestLoaderFactory = Callable[..., ManifestLoader]
EvaluatorFactory = Callable[..., Evaluator]


class ConformanceService:
    """High level service responsible for manifest ingestion and rule evaluation."""

    def __init__(
        self,
        *,
        loader_factory: ManifestLoaderFactory | None = None,
        parser: DocumentParser | None = None,
        registry: RuleRegistry | None = None,
        evaluator_factory: EvaluatorFactory | None = None,
    ) -> None:
        self._loader_factory = loader_factory or ManifestLoader
        self._parser = parser or DocumentParser()
        self._registry = registry or default_registry()
        self._evaluator_factory = evaluator_factory or Evaluator

    @property
    def registry(self) -> RuleRegistry:
        return self._registry

    # ------------------------------------------------------------------
    def check(
        self,
        paths: Sequence[str | Path],
        *,
        config: RuleConfig | None = None,
        stdin: Optional[TextIO] = None,
        input_format: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> CheckResult:
        """Load, parse and evaluate ``paths`` and return the findings.

        Configuration errors are raised before any input is read. A
        :class:`NoDocumentsError` is raised when parsing failed for every
        document, before evaluation starts.
        """

        config = config or RuleConfig()
        rule_set = self._registry.instantiate(config)

        loader = self._loader_factory(paths, stdin=stdin, input_format=input_format)
        sources = loader.load()

        documents: List[Document] = []
        parse_errors: List[ParseError] = []
        for source in sources:
            if source.error is not None:
                parse_errors.append(source.error)
                continue
            stream = self._parser.parse_stream(source.text, source.format, source=source.name)
            documents.extend(stream.documents)
            parse_errors.extend(stream.errors)

        for error in parse_errors:
            logger.debug("Parse failure: %s", error)

        if parse_errors and not documents:
            raise NoDocumentsError(parse_errors)

        evaluator = self._evaluator_factory(config.max_workers, cancel_event=cancel_event)
        run = evaluator.evaluate(rule_set, documents)

        metadata: dict[str, Any] = {
            "config": config.name,
            "sources": [source.name for source in sources],
            "document_count": len(documents),
            "rule_count": len(rule_set),
            "rules": [rule.id for rule in rule_set],
            "fail_on": config.fail_on.value,
        }

        return CheckResult(
            run=run, rule_set=rule_set, parse_errors=parse_errors, metadata=metadata
        )


__all__ = [
    "CheckResult",
    "ConformanceService",
    "ManifestLoaderError",
    "NoDocumentsError",
]
