from __future__ import annotations

import json

import pytest

from kube_conformance.cli.report import ConformanceReport, exit_code, render, render_table
from kube_conformance.models import (
    GLOBAL_REF,
    DocumentPath,
    DocumentRef,
    EvaluationResult,
    Finding,
    Severity,
)
from kube_conformance.normalization import ParseError

DEPLOYMENT_REF = DocumentRef(
    source="deploy.yaml", index=0, line=1, kind="Deployment", name="my-app", namespace="shop"
)
CONFIG_REF = DocumentRef(source="deploy.yaml", index=1, line=20, kind="ConfigMap", name="settings")


def finding(rule_id: str, severity: Severity, path: str, ref: DocumentRef = DEPLOYMENT_REF) -> Finding:
    return Finding(
        rule_id=rule_id,
        severity=severity,
        path=DocumentPath.parse(path),
        message=f"{rule_id} message",
        document_ref=ref,
    )


def build_report(**kwargs: object) -> ConformanceReport:
    results = [
        EvaluationResult(
            DEPLOYMENT_REF,
            (
                finding("OBS001", Severity.INFO, "metadata.labels"),
                finding("RES001", Severity.ERROR, "spec.template.spec.containers[0].resources.limits.memory"),
                finding("AVL001", Severity.WARNING, "spec.template.spec.containers[0]"),
            ),
        ),
        EvaluationResult(CONFIG_REF, ()),
    ]
    return ConformanceReport(results=results, metadata={"config": "default"}, **kwargs)


def test_report_summary_counts() -> None:
    report = build_report()

    assert report.highest_severity is Severity.ERROR
    assert report.counts_by_severity() == {"info": 1, "warning": 1, "error": 1}
    assert not report.passed


def test_report_to_dict_serializes_findings() -> None:
    data = build_report().to_dict()

    assert data["passed"] is False
    assert data["complete"] is True
    assert data["summary"] == {
        "total_findings": 3,
        "highest_severity": "error",
        "counts": {"info": 1, "warning": 1, "error": 1},
        "documents": 2,
        "failed_documents": 1,
    }
    assert data["findings"][1] == {
        "ruleId": "RES001",
        "severity": "error",
        "path": "spec.template.spec.containers[0].resources.limits.memory",
        "message": "RES001 message",
        "documentRef": {"source": "deploy.yaml", "index": 0, "line": 1},
        "document": {"kind": "Deployment", "namespace": "shop", "name": "my-app"},
    }


def test_render_table_groups_by_document_and_orders_by_severity() -> None:
    output = render_table(build_report())

    lines = output.splitlines()
    assert lines[0] == "Deployment/shop/my-app (deploy.yaml#0)  [FAIL]"
    assert lines[1].split() == ["Severity", "Rule", "ID", "Path", "Message"]
    assert lines[3].startswith("error")
    assert lines[4].startswith("warning")
    assert lines[5].startswith("info")
    assert "ConfigMap" not in output
    assert lines[-1] == "3 finding(s) across 2 document(s): 1 error, 1 warning, 1 info"


def test_render_table_reports_clean_runs_and_diagnostics() -> None:
    report = ConformanceReport(
        results=[EvaluationResult(CONFIG_REF, ())],
        diagnostics=[ParseError("invalid YAML: oops", source="broken.yaml", index=0, line=3, column=1)],
    )

    output = render_table(report)

    assert "No findings detected." in output
    assert "parse error: broken.yaml:3:1: invalid YAML: oops" in output


def test_render_table_marks_incomplete_runs_and_global_findings() -> None:
    report = ConformanceReport(
        results=[EvaluationResult(GLOBAL_REF, (finding("NET001", Severity.INFO, "", GLOBAL_REF),))],
        complete=False,
    )

    output = render_table(report)

    assert output.startswith("INCOMPLETE")
    assert "(global)  [PASS]" in output
    assert "across 0 document(s)" in output


def test_render_json_is_parseable() -> None:
    payload = json.loads(render(build_report(complete=False), "json"))

    assert payload["complete"] is False
    assert payload["metadata"] == {"config": "default"}


def test_render_rejects_unknown_format() -> None:
    with pytest.raises(ValueError):
        render(build_report(), "xml")


@pytest.mark.parametrize(
    ("fail_on", "expected"),
    [(Severity.ERROR, 1), (Severity.WARNING, 1), (Severity.INFO, 1)],
)
def test_exit_code_with_error_findings(fail_on: Severity, expected: int) -> None:
    assert exit_code(build_report(), fail_on) == expected


def test_exit_code_honours_fail_on_threshold() -> None:
    warnings_only = ConformanceReport(
        results=[EvaluationResult(DEPLOYMENT_REF, (finding("AVL001", Severity.WARNING, "spec"),))]
    )

    assert warnings_only.passed
    assert exit_code(warnings_only, Severity.ERROR) == 0
    assert exit_code(warnings_only, Severity.WARNING) == 1
