"""Container resource request/limit rules."""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from ...models import Category, Document, Finding, Severity
from ..base import WORKLOAD_KINDS, SingleDocumentRule, container_name, is_set, iter_containers

_QUANTITY_RE = re.compile(r"^([+-]?[0-9.]+(?:[eE][+-]?[0-9]+)?)([a-zA-Z]*)$")
_SUFFIXES = {
    "": Decimal(1),
    "m": Decimal("0.001"),
    "k": Decimal(10) ** 3,
    "M": Decimal(10) ** 6,
    "G": Decimal(10) ** 9,
    "T": Decimal(10) ** 12,
    "P": Decimal(10) ** 15,
    "E": Decimal(10) ** 18,
    "Ki": Decimal(2) ** 10,
    "Mi": Decimal(2) ** 20,
    "Gi": Decimal(2) ** 30,
    "Ti": Decimal(2) ** 40,
    "Pi": Decimal(2) ** 50,
    "Ei": Decimal(2) ** 60,
}


def parse_quantity(value: object) -> Optional[Decimal]:
    """Parse a Kubernetes resource quantity (``500m``, ``1Gi``, ``2``)."""

    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return Decimal(str(value))

    match = _QUANTITY_RE.match(str(value).strip())
    if not match or match.group(2) not in _SUFFIXES:
        return None
    try:
        return Decimal(match.group(1)) * _SUFFIXES[match.group(2)]
    except InvalidOperation:
        return None


class ResourceLimitsSet(SingleDocumentRule):
    """Every container declares a memory limit and a CPU request."""

    id = "RES001"
    category = Category.RESOURCES
    title = "Memory limits and CPU requests are set"
    default_severity = Severity.ERROR
    kinds = WORKLOAD_KINDS

    _REQUIRED = (
        (("resources", "limits", "memory"), "memory limit"),
        (("resources", "requests", "cpu"), "CPU request"),
    )

    def evaluate(self, document: Document) -> List[Finding]:
        findings: List[Finding] = []
        for path, container in iter_containers(document):
            for parts, label in self._REQUIRED:
                target = path.join(*parts)
                if not is_set(document.get(target)):
                    findings.append(
                        self.finding(
                            document.ref,
                            target,
                            f"Container '{container_name(container)}' has no {label} "
                            f"({'.'.join(parts)}).",
                        )
                    )
        return findings


class MemoryRequestMatchesLimit(SingleDocumentRule):
    """Memory requests should equal limits so pods are not OOM-killed under node pressure."""

    id = "RES002"
    category = Category.RESOURCES
    title = "Memory request equals memory limit"
    default_severity = Severity.INFO
    kinds = WORKLOAD_KINDS

    def evaluate(self, document: Document) -> List[Finding]:
        findings: List[Finding] = []
        for path, container in iter_containers(document):
            request_path = path.join("resources", "requests", "memory")
            limit_path = path.join("resources", "limits", "memory")
            request = document.get_scalar(request_path)
            limit = document.get_scalar(limit_path)
            if request is None or limit is None:
                continue

            request_bytes = parse_quantity(request)
            limit_bytes = parse_quantity(limit)
            if request_bytes is None or limit_bytes is None or request_bytes == limit_bytes:
                continue

            findings.append(
                self.finding(
                    document.ref,
                    request_path,
                    f"Container '{container_name(container)}' requests {request} memory "
                    f"but is limited to {limit}.",
                )
            )
        return findings


RULES = (ResourceLimitsSet, MemoryRequestMatchesLimit)
