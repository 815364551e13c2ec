"""Evaluator applying a rule set to parsed documents on a bounded worker pool."""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from ..models import (
    GLOBAL_REF,
    INTERNAL_RULE_ID,
    ROOT,
    Document,
    DocumentRef,
    DocumentSet,
    EvaluationResult,
    Finding,
    Severity,
)
from ..rules import CrossDocumentRule, Rule, RuleSet, SingleDocumentRule

logger = logging.getLogger(__name__)


def default_max_workers() -> int:
    return min(32, (os.cpu_count() or 1) + 4)


@dataclass(frozen=True)
class EvaluationRun:
    """Results of one evaluator pass, one per input document plus an optional global one."""

    results: Tuple[EvaluationResult, ...]
    complete: bool = True

    @property
    def passed(self) -> bool:
        return all(result.passed for result in self.results)

    @property
    def findings(self) -> List[Finding]:
        return [finding for result in self.results for finding in result.findings]

    @property
    def global_result(self) -> Optional[EvaluationResult]:
        for result in self.results:
            if result.document_ref.is_global:
                return result
        return None

    def result_for(self, ref: DocumentRef) -> Optional[EvaluationResult]:
        for result in self.results:
            if result.document_ref == ref:
                return result
        return None


@dataclass(frozen=True)
class _WorkItem:
    rule: Rule
    document: Optional[Document] = None

    @property
    def target(self) -> DocumentRef:
        return self.document.ref if self.document is not None else GLOBAL_REF


class Evaluator:
    """Run every applicable ``(document, rule)`` pair and aggregate the findings.

    At most ``max_workers`` work items are in flight at a time. Setting
    ``cancel_event`` stops new items from being scheduled; items already
    running finish and their findings are kept, and the run is marked
    incomplete.
    """

    def __init__(
        self,
        max_workers: Optional[int] = None,
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        if max_workers is not None and max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers or default_max_workers()
        self.cancel_event = cancel_event or threading.Event()

    def cancel(self) -> None:
        self.cancel_event.set()

    # ------------------------------------------------------------------
    def evaluate(self, rule_set: RuleSet, documents: Sequence[Document]) -> EvaluationRun:
        """Evaluate ``documents`` against ``rule_set``."""

        documents = tuple(documents)
        collected: Dict[DocumentRef, List[Finding]] = {}
        for document in documents:
            if document.ref in collected:
                raise ValueError(f"Duplicate document reference: {document.ref.location}")
            collected[document.ref] = []
        global_findings: List[Finding] = []

        document_set = DocumentSet.of(documents)
        work = list(self._plan(rule_set, document_set))
        scheduled = 0

        logger.debug(
            "Evaluating %d document(s) with %d rule(s): %d work item(s), %d worker(s)",
            len(documents),
            len(rule_set),
            len(work),
            self.max_workers,
        )

        with ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="kube-conformance"
        ) as executor:
            in_flight: Dict[Future[List[Finding]], _WorkItem] = {}
            while True:
                while (
                    scheduled < len(work)
                    and len(in_flight) < self.max_workers
                    and not self.cancel_event.is_set()
                ):
                    item = work[scheduled]
                    in_flight[executor.submit(self._run_item, item, document_set)] = item
                    scheduled += 1

                if not in_flight:
                    break

                done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in done:
                    in_flight.pop(future)
                    for finding in future.result():
                        collected.get(finding.document_ref, global_findings).append(finding)

        complete = scheduled == len(work)
        if not complete:
            logger.warning(
                "Evaluation cancelled: %d of %d work item(s) were not run",
                len(work) - scheduled,
                len(work),
            )

        results = [
            EvaluationResult(document.ref, tuple(sorted(collected[document.ref], key=Finding.sort_key)))
            for document in documents
        ]
        if global_findings:
            results.append(
                EvaluationResult(GLOBAL_REF, tuple(sorted(global_findings, key=Finding.sort_key)))
            )

        return EvaluationRun(results=tuple(results), complete=complete)

    # ------------------------------------------------------------------
    def _plan(self, rule_set: RuleSet, document_set: DocumentSet) -> Iterator[_WorkItem]:
        single_rules = rule_set.single_document_rules
        for document in document_set.documents:
            for rule in single_rules:
                if rule.applies_to(document):
                    yield _WorkItem(rule=rule, document=document)
        for rule in rule_set.cross_document_rules:
            yield _WorkItem(rule=rule)

    def _run_item(self, item: _WorkItem, document_set: DocumentSet) -> List[Finding]:
        rule = item.rule
        try:
            if isinstance(rule, SingleDocumentRule) and item.document is not None:
                return list(rule.evaluate(item.document))
            if isinstance(rule, CrossDocumentRule):
                return list(rule.evaluate_all(document_set))
            raise TypeError(f"Rule {rule.id} does not implement a supported evaluation scope")
        except Exception as exc:  # noqa: BLE001 - faults are contained per work item
            logger.warning(
                "Rule %s failed on %s", rule.id, item.target.location, exc_info=True
            )
            return [
                Finding(
                    rule_id=INTERNAL_RULE_ID,
                    severity=Severity.ERROR,
                    path=ROOT,
                    message=f"Rule {rule.id} failed: {type(exc).__name__}: {exc}",
                    document_ref=item.target,
                )
            ]


__all__ = ["EvaluationRun", "Evaluator", "default_max_workers"]
