"""Finding models shared across rules, the evaluator and reporting layers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

from .document import DocumentPath, DocumentRef

INTERNAL_RULE_ID = "INTERNAL"


class Severity(str, Enum):
    """Severity levels supported by the conformance checker."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return SEVERITY_RANK[self]

    @classmethod
    def parse(cls, value: "str | Severity") -> "Severity":
        """Return the severity named by ``value`` regardless of casing."""

        if isinstance(value, Severity):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(severity.value for severity in cls)
            raise ValueError(f"Unknown severity '{value}' (expected one of: {choices})") from None


SEVERITY_RANK: Dict[Severity, int] = {
    Severity.INFO: 0,
    Severity.WARNING: 1,
    Severity.ERROR: 2,
}


class Category(str, Enum):
    """Rule categories mirroring the sections of the best-practice guide."""

    SECURITY = "security"
    RESOURCES = "resources"
    AVAILABILITY = "availability"
    NETWORKING = "networking"
    OBSERVABILITY = "observability"

    @classmethod
    def parse(cls, value: "str | Category") -> "Category":
        if isinstance(value, Category):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(category.value for category in cls)
            raise ValueError(f"Unknown category '{value}' (expected one of: {choices})") from None


@dataclass(frozen=True, slots=True)
class Finding:
    """A single rule outcome against one location in one document."""

    rule_id: str
    severity: Severity
    path: DocumentPath
    message: str
    document_ref: DocumentRef

    def sort_key(self) -> Tuple[object, str, str]:
        return (self.path.sort_key(), self.rule_id, self.message)


@dataclass(frozen=True, slots=True)
class EvaluationResult:
    """All findings produced for one document during an evaluator run."""

    document_ref: DocumentRef
    findings: Tuple[Finding, ...] = ()

    @property
    def passed(self) -> bool:
        """``True`` iff no finding has :attr:`Severity.ERROR`."""

        return all(finding.severity is not Severity.ERROR for finding in self.findings)

    @property
    def highest_severity(self) -> Optional[Severity]:
        if not self.findings:
            return None
        return max(self.findings, key=lambda finding: finding.severity.rank).severity

    def fails_at(self, threshold: Severity) -> bool:
        """Return ``True`` when any finding is at or above ``threshold``."""

        return any(finding.severity.rank >= threshold.rank for finding in self.findings)
