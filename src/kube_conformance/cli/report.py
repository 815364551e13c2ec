"""Rendering of evaluation results for terminals and machines."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, List, Mapping, MutableMapping, Sequence, Tuple

from ..models import DocumentRef, EvaluationResult, Finding, Severity
from ..normalization import ParseError

TABLE = "table"
JSON = "json"
OUTPUT_FORMATS = (TABLE, JSON)

_HEADERS = ("Severity", "Rule ID", "Path", "Message")


@dataclass(slots=True)
class ConformanceReport:
    """Evaluation results plus parse diagnostics and contextual metadata."""

    results: Sequence[EvaluationResult]
    diagnostics: Sequence[ParseError] = field(default_factory=list)
    metadata: Mapping[str, Any] = field(default_factory=dict)
    complete: bool = True

    @property
    def findings(self) -> List[Finding]:
        return [finding for result in self.results for finding in result.findings]

    @property
    def passed(self) -> bool:
        return all(result.passed for result in self.results)

    @property
    def highest_severity(self) -> Severity | None:
        findings = self.findings
        if not findings:
            return None
        return max(findings, key=lambda finding: finding.severity.rank).severity

    def counts_by_severity(self) -> dict[str, int]:
        counts: MutableMapping[Severity, int] = {severity: 0 for severity in Severity}
        for finding in self.findings:
            counts[finding.severity] += 1
        return {severity.value: count for severity, count in counts.items()}

    def should_fail(self, fail_on: Severity) -> bool:
        """Return ``True`` when any finding is at or above ``fail_on``."""

        return any(result.fails_at(fail_on) for result in self.results)

    def to_dict(self) -> dict[str, Any]:
        documents = [result for result in self.results if not result.document_ref.is_global]
        return {
            "metadata": dict(self.metadata),
            "complete": self.complete,
            "passed": self.passed,
            "summary": {
                "total_findings": len(self.findings),
                "highest_severity": self.highest_severity.value if self.highest_severity else None,
                "counts": self.counts_by_severity(),
                "documents": len(documents),
                "failed_documents": sum(1 for result in documents if not result.passed),
            },
            "diagnostics": [_serialize_diagnostic(error) for error in self.diagnostics],
            "findings": [_serialize_finding(finding) for finding in self.findings],
        }


def _serialize_finding(finding: Finding) -> dict[str, Any]:
    ref = finding.document_ref
    return {
        "ruleId": finding.rule_id,
        "severity": finding.severity.value,
        "path": str(finding.path),
        "message": finding.message,
        "documentRef": {"source": ref.source, "index": ref.index, "line": ref.line},
        "document": {"kind": ref.kind, "namespace": ref.namespace, "name": ref.name},
    }


def _serialize_diagnostic(error: ParseError) -> dict[str, Any]:
    return {
        "source": error.source,
        "index": error.index,
        "line": error.line,
        "column": error.column,
        "message": error.message,
    }


def _finding_order(finding: Finding) -> Tuple[int, object, str]:
    return (-finding.severity.rank, finding.path.sort_key(), finding.rule_id)


def render_table(report: ConformanceReport) -> str:
    """Render findings grouped by document as aligned text tables."""

    lines: List[str] = []
    if not report.complete:
        lines.append("INCOMPLETE: evaluation was interrupted; results below are partial.")
        lines.append("")

    groups: List[Tuple[EvaluationResult, List[Tuple[str, str, str, str]]]] = []
    for result in sorted(report.results, key=lambda item: item.document_ref.sort_key()):
        if not result.findings:
            continue
        rows = [
            (finding.severity.value, finding.rule_id, str(finding.path) or "-", finding.message)
            for finding in sorted(result.findings, key=_finding_order)
        ]
        groups.append((result, rows))

    if groups:
        all_rows = [_HEADERS] + [row for _, rows in groups for row in rows]
        widths = [max(len(row[idx]) for row in all_rows) for idx in range(len(_HEADERS))]

        def format_row(values: Tuple[str, str, str, str]) -> str:
            return "  ".join(value.ljust(width) for value, width in zip(values, widths, strict=True)).rstrip()

        for result, rows in groups:
            header = f"{_document_heading(result.document_ref)}  [{'PASS' if result.passed else 'FAIL'}]"
            lines.append(header)
            lines.append(format_row(_HEADERS))
            lines.append("  ".join("=" * width for width in widths))
            lines.extend(format_row(row) for row in rows)
            lines.append("")
    else:
        lines.append("No findings detected.")
        lines.append("")

    if report.diagnostics:
        lines.append("Diagnostics")
        lines.append("===========")
        lines.extend(f"parse error: {error}" for error in report.diagnostics)
        lines.append("")

    counts = report.counts_by_severity()
    documents = sum(1 for result in report.results if not result.document_ref.is_global)
    lines.append(
        f"{len(report.findings)} finding(s) across {documents} document(s): "
        f"{counts['error']} error, {counts['warning']} warning, {counts['info']} info"
    )
    return "\n".join(lines)


def _document_heading(ref: DocumentRef) -> str:
    if ref.is_global:
        return "(global)"
    return f"{ref.display_name} ({ref.location})"


def render_json(report: ConformanceReport) -> str:
    return json.dumps(report.to_dict(), indent=2)


def render(report: ConformanceReport, output_format: str = TABLE) -> str:
    """Render ``report`` in one of :data:`OUTPUT_FORMATS`."""

    if output_format == TABLE:
        return render_table(report)
    if output_format == JSON:
        return render_json(report)
    raise ValueError("format must be either 'table' or 'json'")


def exit_code(report: ConformanceReport, fail_on: Severity) -> int:
    return 1 if report.should_fail(fail_on) else 0
