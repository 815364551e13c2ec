"""Helpers for publishing conformance findings to GitHub Actions surfaces."""

from __future__ import annotations

import argparse
import json
import os
from pathlib import Path
from typing import Iterable, Mapping, MutableMapping, Sequence

SEVERITY_ORDER = ["error", "warning", "info"]
ANNOTATION_LEVELS = {
    "error": "error",
    "warning": "warning",
    "info": "notice",
}


def _normalize_counts(raw_counts: Mapping[str, int] | None) -> MutableMapping[str, int]:
    counts: MutableMapping[str, int] = {severity: 0 for severity in SEVERITY_ORDER}
    if not raw_counts:
        return counts
    for severity, value in raw_counts.items():
        severity_key = str(severity).lower()
        if severity_key in counts:
            counts[severity_key] = int(value)
    return counts


def _document_label(finding: Mapping[str, object]) -> str:
    document: Mapping[str, object] = finding.get("document") or {}
    kind = str(document.get("kind") or "").strip()
    name = str(document.get("name") or "").strip()
    namespace = str(document.get("namespace") or "").strip()
    if not kind and not name:
        return ""
    label = f"{kind or '-'}/{name or '-'}"
    if namespace:
        label = f"{kind or '-'}/{namespace}/{name or '-'}"
    return label


def format_summary(report: Mapping[str, object]) -> str:
    """Render a Markdown job summary for the provided report."""

    summary: Mapping[str, object] = report.get("summary") or {}
    metadata: Mapping[str, object] = report.get("metadata") or {}
    findings: Sequence[Mapping[str, object]] = report.get("findings") or []
    diagnostics: Sequence[Mapping[str, object]] = report.get("diagnostics") or []

    total_findings = int(summary.get("total_findings", 0))
    highest = summary.get("highest_severity")
    highest_display = str(highest).title() if highest else "None"
    status = "Passed" if report.get("passed", True) else "Failed"

    counts = _normalize_counts(summary.get("counts"))

    lines: list[str] = [
        "# Kubernetes Conformance Report",
        "",
        f"**Status:** {status}",
        f"**Total findings:** {total_findings}",
        f"**Highest severity:** {highest_display}",
    ]
    if report.get("complete") is False:
        lines.append("**Note:** evaluation was interrupted; results are incomplete.")

    lines.extend(["", "| Severity | Findings |", "| --- | ---: |"])
    for severity in SEVERITY_ORDER:
        lines.append(f"| {severity.title()} | {counts[severity]} |")

    if metadata:
        lines.extend(["", "## Metadata", ""])
        for key in sorted(metadata):
            value = metadata[key]
            if isinstance(value, (list, tuple)):
                value = ", ".join(str(item) for item in value)
            lines.append(f"- **{key}:** {value}")

    if findings:
        lines.extend(["", "## Findings", ""])
        display_limit = 10
        for finding in findings[:display_limit]:
            severity = str(finding.get("severity", "info")).lower()
            rule_id = str(finding.get("ruleId", "")).strip()
            message = str(finding.get("message", "")).strip()
            document = _document_label(finding)

            bullet = f"- **{severity.title()}**"
            if rule_id:
                bullet += f" `{rule_id}`"
            if message:
                bullet += f": {message}"
            if document:
                bullet += f" _(Document: `{document}`)_"
            lines.append(bullet)

        remaining = len(findings) - display_limit
        if remaining > 0:
            lines.append(f"- ...and {remaining} more findings.")

    if diagnostics:
        lines.extend(["", "## Parse errors", ""])
        for diagnostic in diagnostics:
            source = str(diagnostic.get("source", "")).strip()
            message = str(diagnostic.get("message", "")).strip()
            lines.append(f"- `{source}`: {message}")

    lines.append("")
    return "\n".join(lines)


def iter_annotations(report: Mapping[str, object]) -> Iterable[str]:
    """Generate GitHub Actions workflow command annotations for the findings."""

    findings: Sequence[Mapping[str, object]] = report.get("findings") or []
    for finding in findings:
        severity = str(finding.get("severity", "info")).lower()
        level = ANNOTATION_LEVELS.get(severity, "notice")
        rule_id = str(finding.get("ruleId", "")).strip()
        message = str(finding.get("message", "")).strip()
        path = str(finding.get("path", "")).strip()
        document = _document_label(finding)
        ref: Mapping[str, object] = finding.get("documentRef") or {}

        file_path = _annotation_file(ref.get("source"))
        line = _coerce_int(ref.get("line"))

        title_parts: list[str] = []
        if severity:
            title_parts.append(severity.title())
        if rule_id:
            title_parts.append(rule_id)
        title = " - ".join(title_parts)

        body_parts = [message] if message else []
        if document:
            body_parts.append(f"Document: {document}")
        if path:
            body_parts.append(f"Path: {path}")
        if not body_parts:
            body_parts.append("Conformance finding reported without message.")

        body = "; ".join(body_parts)
        body = body.replace("%", "%25").replace("\r", "").replace("\n", "%0A")

        attributes: list[str] = []
        if file_path:
            attributes.append(f"file={file_path}")
        if line is not None:
            attributes.append(f"line={line}")
        if title:
            attributes.append(f"title={title}")

        attribute_segment = ""
        if attributes:
            attribute_segment = " " + ",".join(attributes)

        yield f"::{level}{attribute_segment}::{body}"


def _annotation_file(source: object | None) -> str | None:
    """Return ``source`` when it names a real file; ``<stdin>`` and friends are skipped."""

    if not isinstance(source, str):
        return None
    trimmed = source.strip()
    if not trimmed or (trimmed.startswith("<") and trimmed.endswith(">")):
        return None
    return trimmed


def _coerce_int(value: object | None) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        try:
            return int(stripped)
        except ValueError:
            return None
    return None


def _load_report(path: Path) -> Mapping[str, object]:
    raw = path.read_text(encoding="utf-8-sig")
    if not raw.strip():
        return {}

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Failed to parse report JSON from '{path}': {exc.msg}.") from exc

    if not isinstance(data, Mapping):
        raise ValueError("Report JSON must be an object.")
    return data


def _write_summary(report: Mapping[str, object], destination: Path | None) -> None:
    if destination is None:
        return

    content = format_summary(report)
    destination.parent.mkdir(parents=True, exist_ok=True)
    with destination.open("a", encoding="utf-8") as handle:
        handle.write(content)


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="kube-conformance-github",
        description="Publish conformance findings as GitHub job summary and annotations.",
    )
    parser.add_argument("report", type=Path, help="Path to the JSON report produced by 'check'.")
    parser.add_argument(
        "--summary-path",
        type=Path,
        default=None,
        help="Optional explicit path for the GitHub job summary output.",
    )

    args = parser.parse_args(argv)

    summary_path = args.summary_path
    if summary_path is None:
        summary_env = os.getenv("GITHUB_STEP_SUMMARY")
        if summary_env:
            summary_path = Path(summary_env)

    report = _load_report(args.report)

    _write_summary(report, summary_path)

    for command in iter_annotations(report):
        print(command)

    return 0


def run() -> None:  # pragma: no cover - wrapper for console entry point
    raise SystemExit(main())


if __name__ == "__main__":  # pragma: no cover - module execution guard
    run()
